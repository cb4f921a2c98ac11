"""
Error taxonomy for zkpoker.

ValidationError is recovered where it is raised (the betting machine turns it
into a failed ActionResult). Everything under SettlementError bubbles up to the
settlement orchestrator, which always has a local fallback.
"""

from typing import Optional


class ZkPokerError(Exception):
    """Base class for all zkpoker errors."""


class ValidationError(ZkPokerError):
    """An illegal player action. Never reaches the ledger."""


class SettlementError(ZkPokerError):
    """Base class for failures in the proof / ledger path of a hand."""

    def __init__(self, message: str, hand_id: Optional[int] = None):
        super().__init__(message)
        self.hand_id = hand_id


class CommitmentMismatch(SettlementError):
    """A re-derived commitment disagrees with the one bound at hand start."""


class MissingSalt(CommitmentMismatch):
    """The salt for a bound commitment is gone; the hand can no longer be proven."""


class ProofInfeasible(SettlementError):
    """The circuit refused to produce a proof for the claimed rank."""


class VerificationFailure(SettlementError):
    """A proof failed cryptographic verification."""


class SequenceConflict(SettlementError):
    """The ledger rejected an operation because its sequence number was stale."""


class LedgerRejected(SettlementError):
    """The ledger accepted an operation but it failed on execution."""


class RemoteUnavailable(SettlementError):
    """An external service could not be reached or did not answer in time."""


class LedgerBusy(RemoteUnavailable):
    """The ledger asked the client to try again later."""
