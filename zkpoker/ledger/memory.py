"""
In-process ledger with the poker contract.

InMemoryLedger behaves like the real chain where it matters for ordering:

- every signer account has a strictly increasing sequence number;
- get_sequence reports the last *applied* sequence, so it is stale while
  writes are still queued;
- a submission must carry exactly the next free sequence (applied + queued
  + 1), otherwise it is rejected as a SequenceConflict;
- queued writes settle after confirm_delay seconds, in sequence order.

The contract mirrors the on-chain one: a hand is initialized, commitments are
bound, bets, returned excess and reveals are recorded, attestations are stored by proof hash,
and resolve_showdown re-derives both ledger commitments before paying out.
A hand pays out at most once.

Used by tests and by local play (ledger backend "memory").
"""

from __future__ import annotations
import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from zkpoker.core.card import validate_card_ints
from zkpoker.core.rules import split_pot
from zkpoker.crypto.commitment import ledger_commitment
from zkpoker.errors import LedgerBusy, LedgerRejected, SequenceConflict
from zkpoker.ledger.client import LedgerClient
from zkpoker.ledger.operations import LedgerOperation, OperationKind, TxStatus


logger = logging.getLogger(__name__)


@dataclass
class Transaction:
    reference: str
    operation: LedgerOperation
    sequence: int
    status: TxStatus = TxStatus.PENDING
    error: Optional[str] = None


@dataclass
class HandContract:
    """Contract storage for one hand."""
    players: List[str]
    stacks: Dict[str, int]
    dealer: int = 0
    pot: int = 0
    commitments: Dict[str, bytes] = field(default_factory=dict)
    community_cards: List[int] = field(default_factory=list)
    resolved: bool = False
    winner: Optional[str] = None
    payouts: Dict[str, int] = field(default_factory=dict)


class InMemoryLedger(LedgerClient):
    """
    Simulated ledger.

    Args:
        confirm_delay: Seconds between acceptance and settlement
        busy_submissions: Number of upcoming submissions to refuse with LedgerBusy
    """

    def __init__(self, confirm_delay: float = 0.0, busy_submissions: int = 0):
        self.confirm_delay = confirm_delay
        self.busy_submissions = busy_submissions

        self._applied: Dict[str, int] = {}
        self._queued: Dict[str, List[Transaction]] = {}
        self._transactions: Dict[str, Transaction] = {}
        self._refs = itertools.count(1)

        self.hands: Dict[Tuple[str, int], HandContract] = {}
        self.attestations: Dict[str, Dict[str, Any]] = {}
        # (signer, sequence) in the order they were applied
        self.applied_sequences: List[Tuple[str, int]] = []
        self.rejected_sequences: List[Tuple[str, int]] = []

    async def get_sequence(self, signer: str) -> int:
        return self._applied.get(signer, 0)

    async def submit(self, operation: LedgerOperation, sequence: int) -> str:
        if self.busy_submissions > 0:
            self.busy_submissions -= 1
            raise LedgerBusy("try again later", hand_id=operation.hand_id)

        signer = operation.signer
        queue = self._queued.setdefault(signer, [])
        expected = self._applied.get(signer, 0) + len(queue) + 1
        if sequence != expected:
            self.rejected_sequences.append((signer, sequence))
            raise SequenceConflict(
                f"Bad sequence {sequence} for {signer}, expected {expected}",
                hand_id=operation.hand_id,
            )

        tx = Transaction(reference=f"tx-{next(self._refs)}", operation=operation, sequence=sequence)
        queue.append(tx)
        self._transactions[tx.reference] = tx
        asyncio.get_running_loop().call_later(self.confirm_delay, self._settle_next, signer)
        return tx.reference

    async def get_status(self, tx_reference: str) -> TxStatus:
        tx = self._transactions.get(tx_reference)
        return tx.status if tx else TxStatus.NOT_FOUND

    def transaction(self, tx_reference: str) -> Optional[Transaction]:
        return self._transactions.get(tx_reference)

    def hand(self, game_id: str, hand_id: int) -> Optional[HandContract]:
        return self.hands.get((game_id, hand_id))

    def _settle_next(self, signer: str) -> None:
        queue = self._queued.get(signer)
        if not queue:
            return
        tx = queue.pop(0)
        self._applied[signer] = tx.sequence
        self.applied_sequences.append((signer, tx.sequence))
        try:
            self._apply(tx.operation)
            tx.status = TxStatus.SUCCESS
        except LedgerRejected as e:
            tx.status = TxStatus.FAILED
            tx.error = str(e)
            logger.info(f"{tx.operation.kind.value} failed on ledger: {e}")

    # ============= Contract =============

    def _apply(self, op: LedgerOperation) -> None:
        handler = {
            OperationKind.INIT_HAND: self._init_hand,
            OperationKind.BIND_COMMITMENT: self._bind_commitment,
            OperationKind.POST_BET: self._post_bet,
            OperationKind.RETURN_EXCESS: self._return_excess,
            OperationKind.FOLD: self._fold,
            OperationKind.REVEAL_COMMUNITY_CARDS: self._reveal,
            OperationKind.RECORD_ATTESTATION: self._record_attestation,
            OperationKind.RESOLVE_SHOWDOWN: self._resolve_showdown,
        }[op.kind]
        handler(op)

    def _require_hand(self, op: LedgerOperation) -> HandContract:
        contract = self.hands.get((op.game_id, op.hand_id))
        if contract is None:
            raise LedgerRejected(f"Hand {op.game_id}/{op.hand_id} not initialized", hand_id=op.hand_id)
        return contract

    def _require_player(self, contract: HandContract, player: str, op: LedgerOperation) -> None:
        if player not in contract.players:
            raise LedgerRejected(f"{player} is not seated in hand {op.hand_id}", hand_id=op.hand_id)

    def _init_hand(self, op: LedgerOperation) -> None:
        key = (op.game_id, op.hand_id)
        if key in self.hands:
            raise LedgerRejected(f"Hand {op.game_id}/{op.hand_id} already initialized", hand_id=op.hand_id)
        players = list(op.payload["players"])
        stacks = dict(zip(players, op.payload["stacks"]))
        contract = HandContract(players=players, stacks=stacks, dealer=op.payload.get("dealer", 0))
        for player, blind in zip(players, op.payload.get("blinds", [])):
            contract.stacks[player] -= blind
            contract.pot += blind
        self.hands[key] = contract

    def _bind_commitment(self, op: LedgerOperation) -> None:
        contract = self._require_hand(op)
        player = op.payload["player"]
        self._require_player(contract, player, op)
        value = bytes.fromhex(op.payload["commitment"])
        if len(value) != 32 or not any(value):
            raise LedgerRejected("Commitment must be 32 non-zero bytes", hand_id=op.hand_id)
        if contract.community_cards:
            raise LedgerRejected("Commitments must be bound before community cards", hand_id=op.hand_id)
        existing = contract.commitments.get(player)
        if existing is not None and existing != value:
            raise LedgerRejected(f"{player} already committed", hand_id=op.hand_id)
        contract.commitments[player] = value

    def _post_bet(self, op: LedgerOperation) -> None:
        contract = self._require_hand(op)
        player = op.payload["player"]
        amount = int(op.payload["amount"])
        self._require_player(contract, player, op)
        if contract.resolved:
            raise LedgerRejected("Hand already settled", hand_id=op.hand_id)
        if amount <= 0 or amount > contract.stacks[player]:
            raise LedgerRejected(f"Invalid bet {amount} for {player}", hand_id=op.hand_id)
        contract.stacks[player] -= amount
        contract.pot += amount

    def _return_excess(self, op: LedgerOperation) -> None:
        contract = self._require_hand(op)
        player = op.payload["player"]
        amount = int(op.payload["amount"])
        self._require_player(contract, player, op)
        if contract.resolved:
            raise LedgerRejected("Hand already settled", hand_id=op.hand_id)
        if amount <= 0 or amount > contract.pot:
            raise LedgerRejected(f"Invalid return of {amount} to {player}", hand_id=op.hand_id)
        contract.pot -= amount
        contract.stacks[player] += amount

    def _fold(self, op: LedgerOperation) -> None:
        contract = self._require_hand(op)
        player = op.payload["player"]
        self._require_player(contract, player, op)
        if contract.resolved:
            raise LedgerRejected("Hand already settled", hand_id=op.hand_id)
        winner = next(p for p in contract.players if p != player)
        self._pay(contract, {winner: contract.pot}, winner)

    def _reveal(self, op: LedgerOperation) -> None:
        contract = self._require_hand(op)
        cards = list(op.payload["cards"])
        try:
            validate_card_ints(cards)
        except ValueError as e:
            raise LedgerRejected(str(e), hand_id=op.hand_id)
        if not 3 <= len(cards) <= 5 or cards[:len(contract.community_cards)] != contract.community_cards:
            raise LedgerRejected("Community cards must extend the revealed board", hand_id=op.hand_id)
        contract.community_cards = cards

    def _record_attestation(self, op: LedgerOperation) -> None:
        payload = op.payload
        if not 0 <= int(payload["rank"]) <= 9:
            raise LedgerRejected("Rank out of range", hand_id=op.hand_id)
        self.attestations[payload["proof_hash"]] = dict(payload)

    def _resolve_showdown(self, op: LedgerOperation) -> None:
        contract = self._require_hand(op)
        if contract.resolved:
            raise LedgerRejected(f"Hand {op.game_id}/{op.hand_id} already resolved", hand_id=op.hand_id)
        if len(contract.community_cards) != 5:
            raise LedgerRejected("Board not fully revealed", hand_id=op.hand_id)

        claims = op.payload["claims"]
        if sorted(c["player"] for c in claims) != sorted(contract.players):
            raise LedgerRejected("Claims must cover both players", hand_id=op.hand_id)

        for claim in claims:
            player = claim["player"]
            bound = contract.commitments.get(player)
            try:
                derived = ledger_commitment(claim["cards"], claim["salt"])
            except ValueError as e:
                raise LedgerRejected(f"Bad reveal for {player}: {e}", hand_id=op.hand_id)
            if bound is None or derived != bound:
                raise LedgerRejected(f"Commitment mismatch for {player}", hand_id=op.hand_id)
            attestation = self.attestations.get(claim["proof_hash"])
            if attestation is None or not attestation.get("verified"):
                raise LedgerRejected(f"No verified attestation for {player}", hand_id=op.hand_id)
            if attestation["player"] != player or int(attestation["rank"]) != int(claim["rank"]):
                raise LedgerRejected(f"Attestation does not match claim for {player}", hand_id=op.hand_id)

        strengths = [(int(c["rank"]), tuple(c["tiebreak"])) for c in claims]
        best = max(strengths)
        winner_seats = [
            contract.players.index(claims[i]["player"])
            for i, s in enumerate(strengths) if s == best
        ]
        shares = split_pot(contract.pot, winner_seats, contract.dealer)
        payouts = {contract.players[seat]: amount for seat, amount in enumerate(shares) if amount}
        winner = contract.players[winner_seats[0]] if len(winner_seats) == 1 else None
        self._pay(contract, payouts, winner)

    def _pay(self, contract: HandContract, payouts: Dict[str, int], winner: Optional[str]) -> None:
        for player, amount in payouts.items():
            contract.stacks[player] += amount
        contract.payouts = dict(payouts)
        contract.pot = 0
        contract.winner = winner
        contract.resolved = True
