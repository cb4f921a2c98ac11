"""
Commitment binder: hides a player's hole cards behind two hashes.

Every hand gets two commitments over the same (cards, salt) tuple:

- circuit commitment: Poseidon2 over BN254, checked inside the proof circuit
  where general-purpose hashes are too expensive (see zkpoker.crypto.poseidon);
- ledger commitment: SHA-256 over raw bytes, which the ledger contract can
  recompute natively at resolution time.

They are not interchangeable. Collapsing them into one hash breaks either the
proof or the on-ledger check.

A commitment is bound once per hand, before any community card is dealt, and
is reused from the vault afterwards. If the salt is lost the hand can no longer
be proven; a fresh salt would not match what was already published.
"""

from __future__ import annotations
import hashlib
import logging
import secrets
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Sequence, Tuple

from zkpoker.core.card import validate_card_ints
from zkpoker.crypto.poseidon import CircuitCommitter
from zkpoker.errors import CommitmentMismatch, MissingSalt, RemoteUnavailable


logger = logging.getLogger(__name__)

SALT_BYTES = 32
# 31 bytes always fit below the BN254 modulus
FIELD_SALT_BYTES = 31


def generate_salt() -> str:
    """32 random bytes from the OS CSPRNG, hex encoded."""
    return secrets.token_hex(SALT_BYTES)


def _salt_bytes(salt: str) -> bytes:
    try:
        raw = bytes.fromhex(salt)
    except (TypeError, ValueError):
        raise ValueError("Salt must be a hex string")
    if len(raw) != SALT_BYTES:
        raise ValueError(f"Salt must be {SALT_BYTES} bytes, got {len(raw)}")
    return raw


def salt_to_field(salt: str) -> int:
    """The first 31 bytes of the salt as a field element."""
    return int.from_bytes(_salt_bytes(salt)[:FIELD_SALT_BYTES], "big")


def _check_cards(cards: Sequence[int]) -> Tuple[int, int]:
    if len(cards) != 2:
        raise ValueError(f"A commitment binds exactly 2 cards, got {len(cards)}")
    first, second = validate_card_ints(cards)
    return first, second


async def circuit_commitment(cards: Sequence[int], salt: str, committer: CircuitCommitter) -> int:
    """Poseidon2 over [card0, card1, salt_field, 0], lane 0."""
    first, second = _check_cards(cards)
    return await committer.commit((first, second), salt_to_field(salt))


def ledger_commitment(cards: Sequence[int], salt: str) -> bytes:
    """SHA-256(card0 || card1 || salt), as the ledger contract recomputes it."""
    first, second = _check_cards(cards)
    return hashlib.sha256(bytes([first, second]) + _salt_bytes(salt)).digest()


@dataclass(frozen=True)
class Commitment:
    """
    Both commitments for one player's hole cards in one hand.

    circuit_commitment is None when no circuit toolchain was available at
    bind time; such a hand can still settle by fold but cannot be proven.
    """
    circuit_commitment: Optional[int]
    ledger_commitment: bytes
    salt: str
    cards: Tuple[int, int]

    @property
    def circuit_hex(self) -> Optional[str]:
        if self.circuit_commitment is None:
            return None
        return f"0x{self.circuit_commitment:064x}"

    @property
    def ledger_hex(self) -> str:
        return self.ledger_commitment.hex()

    @property
    def provable(self) -> bool:
        return self.circuit_commitment is not None

    def matches(self, cards: Sequence[int]) -> bool:
        return tuple(cards) == self.cards

    def public_dict(self) -> Dict[str, Optional[str]]:
        """The parts that are safe to publish before showdown."""
        return {"circuit": self.circuit_hex, "ledger": self.ledger_hex}


async def bind(
    cards: Sequence[int],
    salt: str,
    committer: Optional[CircuitCommitter] = None,
) -> Commitment:
    """
    Derive both commitments from (cards, salt). Deterministic.

    Without a committer only the ledger commitment is derived.

    Raises:
        ValueError: Bad card ints or a salt that is not 32 hex bytes
        RemoteUnavailable: The committer produced no circuit commitment
    """
    first, second = _check_cards(cards)
    ledger = ledger_commitment((first, second), salt)
    circuit = None
    if committer is not None:
        circuit = await circuit_commitment((first, second), salt, committer)
    return Commitment(
        circuit_commitment=circuit,
        ledger_commitment=ledger,
        salt=salt,
        cards=(first, second),
    )


class CommitmentVault:
    """
    Keeps each hand's commitments (and therefore salts) until showdown.

    Usage:
        vault = CommitmentVault(NargoCommitter())
        commitment = await vault.bind(hand_id=1, player_id="alice", cards=[12, 25])
        ...
        commitment = vault.require(1, "alice", [12, 25])
    """

    def __init__(self, committer: Optional[CircuitCommitter] = None):
        self.committer = committer
        self._store: Dict[Tuple[int, str], Commitment] = {}

    async def bind(
        self,
        hand_id: int,
        player_id: str,
        cards: Sequence[int],
        salt: Optional[str] = None,
    ) -> Commitment:
        """
        Bind the player's cards for this hand, once.

        A second call for the same hand and player returns the stored
        commitment unchanged; it never re-salts or recomputes. If the
        committer is unavailable the ledger commitment is still bound and the
        hand is marked unprovable.

        Raises:
            CommitmentMismatch: The hand is already bound to different cards
        """
        key = (hand_id, player_id)
        existing = self._existing(key, cards)
        if existing is not None:
            return existing

        salt = salt if salt is not None else generate_salt()
        try:
            commitment = await bind(cards, salt, self.committer)
        except RemoteUnavailable as e:
            logger.warning(f"No circuit commitment for {player_id} in hand {hand_id}, hand cannot be proven: {e}")
            commitment = await bind(cards, salt)

        # Another bind for the same key may have finished while this one waited
        existing = self._existing(key, cards)
        if existing is not None:
            return existing
        self._store[key] = commitment
        logger.debug(f"Bound commitment for {player_id} in hand {hand_id}: {commitment.ledger_hex[:16]}")
        return commitment

    def _existing(self, key: Tuple[int, str], cards: Sequence[int]) -> Optional[Commitment]:
        existing = self._store.get(key)
        if existing is not None and not existing.matches(cards):
            hand_id, player_id = key
            raise CommitmentMismatch(
                f"Player {player_id} already bound other cards for hand {hand_id}",
                hand_id=hand_id,
            )
        return existing

    def get(self, hand_id: int, player_id: str) -> Optional[Commitment]:
        return self._store.get((hand_id, player_id))

    def require(self, hand_id: int, player_id: str, cards: Sequence[int]) -> Commitment:
        """
        Fetch the bound commitment for proving.

        Raises:
            MissingSalt: Nothing was bound (or it was discarded)
            CommitmentMismatch: The stored commitment is for different cards
        """
        commitment = self._store.get((hand_id, player_id))
        if commitment is None:
            raise MissingSalt(
                f"No salt stored for {player_id} in hand {hand_id}; hand cannot be proven",
                hand_id=hand_id,
            )
        if not commitment.matches(cards):
            raise CommitmentMismatch(
                f"Cards for {player_id} in hand {hand_id} differ from the bound commitment",
                hand_id=hand_id,
            )
        return commitment

    def discard(self, hand_id: int) -> None:
        """Forget every commitment of a settled hand."""
        for key in [k for k in self._store if k[0] == hand_id]:
            del self._store[key]

    def hands(self) -> Iterable[int]:
        return sorted({hand_id for hand_id, _ in self._store})

    def __len__(self) -> int:
        return len(self._store)
