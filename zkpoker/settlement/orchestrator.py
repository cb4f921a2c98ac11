"""
Settlement orchestrator.

Runs once per finished hand. The betting machine has already moved the pot
locally, and that result stands no matter what happens here: this module
only writes the cryptographic audit record to the ledger.

Showdown sequence:
1. reuse both commitments bound at hand start (never recompute);
2. prove and verify each player's rank, concurrently;
3. record both attestations on the ledger and wait until they settle;
4. submit resolve_showdown with (proof hash, rank, tiebreak, cards, salt)
   for both players.

A fold only needs a confirmed fold write. Any settlement error, running out
of time, or having no proof pipeline at a showdown degrades the hand to
LOCAL_ONLY. Such a hand keeps its salts and can be settled again with retry().
"""

from __future__ import annotations
import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from zkpoker.core.game import HandRecord
from zkpoker.crypto.commitment import CommitmentVault
from zkpoker.errors import RemoteUnavailable, SettlementError
from zkpoker.ledger import operations as ops
from zkpoker.ledger.sequencer import LedgerSequencer
from zkpoker.proof.artifacts import Attestation, VerifiedProof
from zkpoker.proof.pipeline import ProofPipeline


logger = logging.getLogger(__name__)


class SettlementStatus(Enum):
    LEDGER_CONFIRMED = "LEDGER_CONFIRMED"
    LOCAL_ONLY = "LOCAL_ONLY"


@dataclass
class SettlementOutcome:
    """
    What settlement produced for one hand.

    winner_index and payouts always come from the local result. status says
    whether the ledger holds a matching confirmed record.
    """
    hand_id: int
    winner_index: Optional[int]
    payouts: List[int]
    by_fold: bool
    status: SettlementStatus
    tx_reference: Optional[str] = None
    errors: List[str] = field(default_factory=list)
    attestations: Dict[str, Attestation] = field(default_factory=dict)

    @property
    def confirmed(self) -> bool:
        return self.status == SettlementStatus.LEDGER_CONFIRMED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hand_id": self.hand_id,
            "winner_index": self.winner_index,
            "payouts": list(self.payouts),
            "by_fold": self.by_fold,
            "status": self.status.value,
            "tx_reference": self.tx_reference,
            "errors": list(self.errors),
            "attestations": {pid: a.to_dict() for pid, a in self.attestations.items()},
        }


class SettlementOrchestrator:
    """
    Settles finished hands on the ledger, at most once per hand id.

    A hand that ends LOCAL_ONLY keeps its salts so retry() can run it again.
    Only the newest retain_unsettled such hands are kept; older ones have
    their salts discarded and can no longer be proven. Outcomes of the last
    `history` hands are kept for queries.

    Usage:
        orchestrator = SettlementOrchestrator(pipeline, sequencer, vault, signer="house")
        outcome = await orchestrator.settle(game.showdown_record())
        if not outcome.confirmed:
            outcome = await orchestrator.retry(outcome.hand_id)
    """

    def __init__(
        self,
        pipeline: Optional[ProofPipeline],
        sequencer: LedgerSequencer,
        vault: CommitmentVault,
        signer: str,
        timeout: float = 120.0,
        retain_unsettled: int = 8,
        history: int = 256,
    ):
        self.pipeline = pipeline
        self.sequencer = sequencer
        self.vault = vault
        self.signer = signer
        self.timeout = timeout
        self.retain_unsettled = retain_unsettled
        self.history = history
        self._tasks: Dict[int, "asyncio.Task[SettlementOutcome]"] = {}
        self._outcomes: "OrderedDict[int, SettlementOutcome]" = OrderedDict()
        self._unsettled: "OrderedDict[int, HandRecord]" = OrderedDict()

    async def settle(self, record: HandRecord) -> SettlementOutcome:
        """
        Settle a finished hand. Never raises a SettlementError.

        Calling again for a hand id that is running or done returns the
        same outcome without touching the ledger again.
        """
        task = self._tasks.get(record.hand_id)
        if task is None:
            done = self._outcomes.get(record.hand_id)
            if done is not None:
                logger.debug(f"Hand {record.hand_id} already settled: {done.status.value}")
                return done
            task = self._start(record)
        else:
            logger.debug(f"Settlement for hand {record.hand_id} already started")
        return await asyncio.shield(task)

    async def retry(self, hand_id: int) -> Optional[SettlementOutcome]:
        """
        Run a LOCAL_ONLY hand's ledger settlement again.

        A hand that is running, confirmed, or whose salts were already
        dropped returns its current outcome unchanged. Returns None for an
        unknown hand.
        """
        task = self._tasks.get(hand_id)
        if task is not None:
            return await asyncio.shield(task)
        record = self._unsettled.pop(hand_id, None)
        if record is None:
            return self._outcomes.get(hand_id)
        logger.info(f"Retrying ledger settlement of hand {hand_id}")
        self._outcomes.pop(hand_id, None)
        return await asyncio.shield(self._start(record))

    def outcome(self, hand_id: int) -> Optional[SettlementOutcome]:
        """The finished outcome for a hand, or None if unknown or still running."""
        return self._outcomes.get(hand_id)

    def is_settling(self, hand_id: int) -> bool:
        return hand_id in self._tasks

    def retryable(self) -> List[int]:
        """Hands that ended LOCAL_ONLY and still hold their salts."""
        return list(self._unsettled)

    def _start(self, record: HandRecord) -> "asyncio.Task[SettlementOutcome]":
        task = asyncio.get_running_loop().create_task(self._run(record))
        self._tasks[record.hand_id] = task
        return task

    async def _run(self, record: HandRecord) -> SettlementOutcome:
        try:
            outcome = await self._settle(record)
            self._remember(record, outcome)
            return outcome
        finally:
            self._tasks.pop(record.hand_id, None)

    def _remember(self, record: HandRecord, outcome: SettlementOutcome) -> None:
        self._outcomes[record.hand_id] = outcome
        while len(self._outcomes) > self.history:
            self._outcomes.popitem(last=False)

        if outcome.confirmed:
            return
        self._unsettled[record.hand_id] = record
        while len(self._unsettled) > self.retain_unsettled:
            dropped, _ = self._unsettled.popitem(last=False)
            self.vault.discard(dropped)
            logger.warning(f"Dropped salts of unsettled hand {dropped}; it can no longer be proven")

    async def _settle(self, record: HandRecord) -> SettlementOutcome:
        result = record.result
        outcome = SettlementOutcome(
            hand_id=record.hand_id,
            winner_index=result.winner_index,
            payouts=list(result.payouts),
            by_fold=result.by_fold,
            status=SettlementStatus.LOCAL_ONLY,
        )
        try:
            outcome.tx_reference = await asyncio.wait_for(
                self._write_ledger_record(record, outcome), self.timeout
            )
        except asyncio.TimeoutError:
            error = RemoteUnavailable(
                f"Settlement of hand {record.hand_id} timed out after {self.timeout}s",
                hand_id=record.hand_id,
            )
            outcome.errors.append(f"{type(error).__name__}: {error}")
            logger.warning(f"Hand {record.hand_id} settled locally only: {error}")
        except SettlementError as e:
            outcome.errors.append(f"{type(e).__name__}: {e}")
            logger.warning(f"Hand {record.hand_id} settled locally only: {type(e).__name__}: {e}")
        else:
            outcome.status = SettlementStatus.LEDGER_CONFIRMED
            self.vault.discard(record.hand_id)
            logger.info(f"Hand {record.hand_id} settled on ledger ({outcome.tx_reference})")
        return outcome

    async def _write_ledger_record(self, record: HandRecord, outcome: SettlementOutcome) -> Optional[str]:
        if record.by_fold:
            folded = record.player_ids[record.result.folded_seat]
            written = await self.sequencer.submit(
                ops.fold(self.signer, record.game_id, record.hand_id, folded)
            )
            return written.tx_reference

        if self.pipeline is None:
            raise RemoteUnavailable("Proof services not configured", hand_id=record.hand_id)

        values = record.result.values
        commitments = [
            self.vault.require(record.hand_id, pid, cards)
            for pid, cards in zip(record.player_ids, record.hole_cards)
        ]

        proofs: List[VerifiedProof] = await asyncio.gather(*(
            self.pipeline.prove_and_verify(
                cards, record.community_cards, int(value.rank), commitment,
                player_id=pid, hand_id=record.hand_id,
            )
            for pid, cards, value, commitment in zip(
                record.player_ids, record.hole_cards, values, commitments
            )
        ))

        for proof in proofs:
            attestation = proof.attestation
            await self.sequencer.submit(ops.record_attestation(
                self.signer, record.game_id, record.hand_id,
                attestation_id=attestation.attestation_id,
                proof_hash=attestation.proof_hash,
                player=proof.player_id,
                rank=attestation.claimed_rank,
                verified=attestation.verified,
                remote_reference=attestation.remote_reference,
            ))
            attestation.established = True
            outcome.attestations[proof.player_id] = attestation

        claims = [
            ops.ShowdownClaim(
                player=pid,
                proof_hash=proof.attestation.proof_hash,
                rank=int(value.rank),
                tiebreak=list(value.tiebreak),
                cards=list(cards),
                salt=commitment.salt,
            )
            for pid, cards, value, commitment, proof in zip(
                record.player_ids, record.hole_cards, values, commitments, proofs
            )
        ]
        written = await self.sequencer.submit(
            ops.resolve_showdown(self.signer, record.game_id, record.hand_id, claims)
        )
        return written.tx_reference
