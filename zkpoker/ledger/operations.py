"""
Ledger operation model.

Each contract call is a LedgerOperation issued under a signing identity. The
sequencer assigns the sequence number at submission time; operations carry
only what the contract needs plus the hand id used for idempotency.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence


class OperationKind(Enum):
    """Contract entry points."""
    INIT_HAND = "init_hand"
    BIND_COMMITMENT = "bind_commitment"
    POST_BET = "post_bet"
    RETURN_EXCESS = "return_excess"
    FOLD = "fold"
    REVEAL_COMMUNITY_CARDS = "reveal_community_cards"
    RECORD_ATTESTATION = "record_attestation"
    RESOLVE_SHOWDOWN = "resolve_showdown"


class OperationStatus(Enum):
    SUBMITTED = "SUBMITTED"   # accepted, not waited for
    CONFIRMED = "CONFIRMED"   # settled on the ledger
    FAILED = "FAILED"


class TxStatus(Enum):
    """Status the ledger reports for a transaction reference."""
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    NOT_FOUND = "NOT_FOUND"


@dataclass(frozen=True)
class LedgerOperation:
    """
    One contract call.

    confirm=True means later operations depend on this one, so the sequencer
    waits for it to settle before building the next operation for the signer.
    """
    kind: OperationKind
    signer: str
    game_id: str
    hand_id: int
    payload: Dict[str, Any] = field(default_factory=dict)
    confirm: bool = True

    @property
    def key(self) -> str:
        return f"{self.game_id}/{self.hand_id}/{self.kind.value}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "signer": self.signer,
            "game_id": self.game_id,
            "hand_id": self.hand_id,
            "payload": self.payload,
        }


@dataclass
class OperationResult:
    """What happened to a submitted operation."""
    operation: LedgerOperation
    status: OperationStatus
    sequence: Optional[int] = None
    tx_reference: Optional[str] = None
    attempts: int = 0
    error: Optional[str] = None

    @property
    def confirmed(self) -> bool:
        return self.status == OperationStatus.CONFIRMED


def init_hand(
    signer: str,
    game_id: str,
    hand_id: int,
    players: Sequence[str],
    stacks: Sequence[int],
    dealer: int = 0,
    blinds: Sequence[int] = (),
) -> LedgerOperation:
    """Open a hand. Stacks are before blinds; blinds are listed per seat."""
    return LedgerOperation(
        OperationKind.INIT_HAND, signer, game_id, hand_id,
        {"players": list(players), "stacks": list(stacks), "dealer": dealer, "blinds": list(blinds)},
    )


def bind_commitment(
    signer: str, game_id: str, hand_id: int, player: str, commitment_hex: str
) -> LedgerOperation:
    return LedgerOperation(
        OperationKind.BIND_COMMITMENT, signer, game_id, hand_id,
        {"player": player, "commitment": commitment_hex},
    )


def post_bet(signer: str, game_id: str, hand_id: int, player: str, amount: int) -> LedgerOperation:
    # Bets have no dependent operation
    return LedgerOperation(
        OperationKind.POST_BET, signer, game_id, hand_id,
        {"player": player, "amount": amount},
        confirm=False,
    )


def return_excess(signer: str, game_id: str, hand_id: int, player: str, amount: int) -> LedgerOperation:
    """Uncalled chips going back from the pot to the player who over-committed."""
    return LedgerOperation(
        OperationKind.RETURN_EXCESS, signer, game_id, hand_id,
        {"player": player, "amount": amount},
        confirm=False,
    )


def fold(signer: str, game_id: str, hand_id: int, player: str) -> LedgerOperation:
    return LedgerOperation(OperationKind.FOLD, signer, game_id, hand_id, {"player": player})


def reveal_community_cards(
    signer: str, game_id: str, hand_id: int, cards: Sequence[int]
) -> LedgerOperation:
    return LedgerOperation(
        OperationKind.REVEAL_COMMUNITY_CARDS, signer, game_id, hand_id,
        {"cards": list(cards)},
    )


def record_attestation(
    signer: str,
    game_id: str,
    hand_id: int,
    attestation_id: str,
    proof_hash: str,
    player: str,
    rank: int,
    verified: bool,
    remote_reference: Optional[str] = None,
) -> LedgerOperation:
    return LedgerOperation(
        OperationKind.RECORD_ATTESTATION, signer, game_id, hand_id,
        {
            "attestation_id": attestation_id,
            "proof_hash": proof_hash,
            "player": player,
            "rank": rank,
            "verified": verified,
            "remote_reference": remote_reference,
        },
    )


@dataclass(frozen=True)
class ShowdownClaim:
    """One player's side of resolve_showdown."""
    player: str
    proof_hash: str
    rank: int
    tiebreak: List[int]
    cards: List[int]
    salt: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "player": self.player,
            "proof_hash": self.proof_hash,
            "rank": self.rank,
            "tiebreak": list(self.tiebreak),
            "cards": list(self.cards),
            "salt": self.salt,
        }


def resolve_showdown(
    signer: str, game_id: str, hand_id: int, claims: Sequence[ShowdownClaim]
) -> LedgerOperation:
    return LedgerOperation(
        OperationKind.RESOLVE_SHOWDOWN, signer, game_id, hand_id,
        {"claims": [c.to_dict() for c in claims]},
    )
