"""
Pytest configuration and shared fixtures for zkpoker tests.
"""

import asyncio
import hashlib
import random
from typing import List, Optional, Sequence

import pytest

from zkpoker.core.card import Card, DECK_SIZE, Rank, Suit, cards_to_ints, parse_cards
from zkpoker.core.game import HeadsUpGame
from zkpoker.core.hand import circuit_rank
from zkpoker.core.player import Player
from zkpoker.core.rules import Call, Check
from zkpoker.crypto.commitment import CommitmentVault
from zkpoker.crypto.poseidon import BN254_MODULUS, CircuitCommitter
from zkpoker.errors import ProofInfeasible, RemoteUnavailable
from zkpoker.ledger.memory import InMemoryLedger
from zkpoker.ledger.sequencer import LedgerSequencer
from zkpoker.proof.artifacts import AttestationReceipt, ProofArtifact, PublicInputs
from zkpoker.proof.pipeline import ProofPipeline
from zkpoker.proof.verifier import LocalVerifier
from zkpoker.retry import RetryPolicy


FAST_RETRY = RetryPolicy(max_attempts=3, base_delay=0.01)


def stack_deck(p0: str, p1: str, board: str) -> List[Card]:
    """
    Deck order that deals p0's and p1's hole cards and then the given board,
    with spare cards burned before each street.
    """
    hole0, hole1, community = parse_cards(p0), parse_cards(p1), parse_cards(board)
    used = set(hole0 + hole1 + community)
    spare = [Card.from_int(i) for i in range(DECK_SIZE) if Card.from_int(i) not in used]
    order = (
        hole0 + hole1
        + [spare.pop()] + community[:3]
        + [spare.pop()] + community[3:4]
        + [spare.pop()] + community[4:5]
    )
    return order + spare


class StackedRandom(random.Random):
    """Random source whose next shuffles produce prearranged decks."""

    def __init__(self, *decks: Sequence[Card], seed: int = 7):
        super().__init__(seed)
        self._decks = [list(d) for d in decks]

    def shuffle(self, x, *args, **kwargs):
        if not self._decks:
            return super().shuffle(x)
        x[:] = self._decks.pop(0)


def play_checks(game: HeadsUpGame) -> None:
    """Check or call until the hand is over."""
    while game.is_hand_running():
        player = game.current_player
        to_call = game.highest_bet - player.round_bet
        result = game.take_action(Call() if to_call > 0 else Check())
        assert result.success, result.message


class FakeCommitter(CircuitCommitter):
    """Deterministic stand-in for the Poseidon2 commit circuit."""

    def __init__(self, down: bool = False, delay: float = 0.0):
        self.down = down
        self.delay = delay
        self.calls: List[tuple] = []

    async def commit(self, cards, salt_field: int) -> int:
        self.calls.append((tuple(cards), salt_field))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.down:
            raise RemoteUnavailable("circuit toolchain unavailable")
        digest = hashlib.sha256(bytes(cards) + salt_field.to_bytes(32, "big")).digest()
        return int.from_bytes(digest, "big") % BN254_MODULUS


class FakeCircuit:
    """Circuit service stand-in: refuses claims the circuit would reject."""

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.calls: List[PublicInputs] = []

    async def prove(self, hole_cards, salt_field, public_inputs: PublicInputs) -> ProofArtifact:
        self.calls.append(public_inputs)
        if self.delay:
            await asyncio.sleep(self.delay)
        cards = [Card.from_int(c) for c in list(hole_cards) + list(public_inputs.community_cards)]
        if circuit_rank(cards) != public_inputs.claimed_rank:
            raise ProofInfeasible("Constraint failed: rank mismatch")
        proof = bytes([public_inputs.claimed_rank]) + salt_field.to_bytes(32, "big") + bytes(hole_cards)
        return ProofArtifact(proof=proof, public_inputs=public_inputs)


class FakeVerifier(LocalVerifier):
    def __init__(self, result: bool = True):
        self.result = result
        self.calls = 0

    async def verify(self, artifact: ProofArtifact) -> bool:
        self.calls += 1
        return self.result


class FakeAttestation:
    """Attestation service stand-in; `down` makes it unreachable."""

    def __init__(self, verified: bool = True, down: bool = False):
        self.verified = verified
        self.down = down
        self.calls = 0

    async def attest(self, artifact: ProofArtifact) -> AttestationReceipt:
        self.calls += 1
        if self.down:
            raise RemoteUnavailable("attestation service unreachable")
        return AttestationReceipt(
            verified=self.verified,
            attestation_id=f"att-{artifact.proof_hash[:8]}",
            block_reference="block-1",
            tx_reference="0xabc",
        )


# ============= Core fixtures =============

@pytest.fixture
def sample_player():
    """Create a sample player with 1000 chips."""
    return Player(player_id="test_player", stack=1000, seat=0)


@pytest.fixture
def heads_up_game():
    """A fresh heads-up game with 10/20 blinds and 1000 chips each."""
    return HeadsUpGame(big_blind=20, small_blind=10, buy_in=1000, player_ids=["alice", "bob"])


@pytest.fixture
def rigged_game():
    """Factory for a game whose first hand deals the given cards."""
    def make(p0: str, p1: str, board: str, buy_in: int = 1000, **kwargs) -> HeadsUpGame:
        return HeadsUpGame(
            big_blind=kwargs.pop("big_blind", 20),
            small_blind=kwargs.pop("small_blind", 10),
            buy_in=buy_in,
            player_ids=kwargs.pop("player_ids", ["alice", "bob"]),
            rng=StackedRandom(stack_deck(p0, p1, board)),
            **kwargs,
        )
    return make


@pytest.fixture
def royal_flush():
    """Create a royal flush hand."""
    return [
        Card(Rank.ACE, Suit.SPADES),
        Card(Rank.KING, Suit.SPADES),
        Card(Rank.QUEEN, Suit.SPADES),
        Card(Rank.JACK, Suit.SPADES),
        Card(Rank.TEN, Suit.SPADES),
    ]


@pytest.fixture
def wheel_straight():
    """Create a wheel straight (A-2-3-4-5)."""
    return parse_cards("5h 4d 3c 2s Ah")


# ============= Settlement fixtures =============

@pytest.fixture
def ledger():
    return InMemoryLedger(confirm_delay=0.005)


@pytest.fixture
def make_sequencer():
    def make(client, **kwargs) -> LedgerSequencer:
        kwargs.setdefault("sequence_retry", FAST_RETRY)
        kwargs.setdefault("busy_retry", FAST_RETRY)
        kwargs.setdefault("poll_interval", 0.005)
        kwargs.setdefault("max_polls", 50)
        return LedgerSequencer(client, **kwargs)
    return make


@pytest.fixture
def make_pipeline():
    def make(
        verifier_result: bool = True,
        attestation: Optional[FakeAttestation] = None,
        circuit: Optional[FakeCircuit] = None,
        **kwargs,
    ) -> ProofPipeline:
        return ProofPipeline(
            circuit=circuit or FakeCircuit(),
            verifier=FakeVerifier(verifier_result),
            attestation=attestation,
            attestation_retry=kwargs.pop("attestation_retry", FAST_RETRY),
            **kwargs,
        )
    return make


@pytest.fixture
def vault():
    return CommitmentVault(FakeCommitter())


@pytest.fixture
def salt():
    return "ab" * 32


@pytest.fixture
def card_ints():
    def convert(cards: str) -> List[int]:
        return cards_to_ints(parse_cards(cards))
    return convert
