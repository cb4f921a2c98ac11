"""
Card and Deck classes for heads-up Texas Hold'em.

Cards carry a canonical integer encoding, card_int = suit * 13 + rank, which
is exactly what the proof circuit and the ledger contract consume. Commitments
bind these integers, so the encoding must never change.
"""

from __future__ import annotations
import random
from typing import Iterable, List, Optional
from enum import IntEnum


class Suit(IntEnum):
    """Card suits in circuit order."""
    CLUBS = 0     # ♣
    DIAMONDS = 1  # ♦
    HEARTS = 2    # ♥
    SPADES = 3    # ♠


class Rank(IntEnum):
    """Card ranks from 2 (lowest) to Ace (highest)."""
    TWO = 0
    THREE = 1
    FOUR = 2
    FIVE = 3
    SIX = 4
    SEVEN = 5
    EIGHT = 6
    NINE = 7
    TEN = 8
    JACK = 9
    QUEEN = 10
    KING = 11
    ACE = 12


NUM_RANKS = 13
NUM_SUITS = 4
DECK_SIZE = NUM_RANKS * NUM_SUITS

SUIT_SYMBOLS = {
    Suit.CLUBS: "♣",
    Suit.DIAMONDS: "♦",
    Suit.HEARTS: "♥",
    Suit.SPADES: "♠",
}

SUIT_CHARS = {
    Suit.CLUBS: "c",
    Suit.DIAMONDS: "d",
    Suit.HEARTS: "h",
    Suit.SPADES: "s",
}

RANK_CHARS = {rank: "23456789TJQKA"[rank] for rank in Rank}

CHAR_TO_RANK = {v: k for k, v in RANK_CHARS.items()}
CHAR_TO_SUIT = {v: k for k, v in SUIT_CHARS.items()}
SYMBOL_TO_SUIT = {v: k for k, v in SUIT_SYMBOLS.items()}


class Card:
    """
    A playing card represented as (rank, suit).

    Cards can be created from:
    - Rank and Suit enums: Card(Rank.ACE, Suit.SPADES)
    - String notation: Card.from_string("As"), Card.from_string("A♠"), Card.from_string("10h")
    - Circuit integer (0-51): Card.from_int(51) = Ace of Spades

    Ordering compares rank only, which is what sorting for display needs.
    """

    __slots__ = ("rank", "suit", "_int")

    def __init__(self, rank: Rank, suit: Suit):
        self.rank = Rank(rank)
        self.suit = Suit(suit)
        self._int = int(self.suit) * NUM_RANKS + int(self.rank)

    @classmethod
    def from_string(cls, s: str) -> Card:
        """Create a card from notation like "As", "Td", "10h" or "K♥"."""
        s = s.strip()
        if len(s) < 2:
            raise ValueError(f"Invalid card string: {s}")

        if s[:2] == "10":
            rank_char, suit_part = "T", s[2:]
        else:
            rank_char, suit_part = s[0].upper(), s[1:]

        if rank_char not in CHAR_TO_RANK:
            raise ValueError(f"Invalid rank: {rank_char}")

        if suit_part.lower() in CHAR_TO_SUIT:
            suit = CHAR_TO_SUIT[suit_part.lower()]
        elif suit_part in SYMBOL_TO_SUIT:
            suit = SYMBOL_TO_SUIT[suit_part]
        else:
            raise ValueError(f"Invalid suit: {suit_part}")

        return cls(CHAR_TO_RANK[rank_char], suit)

    @classmethod
    def from_int(cls, card_int: int) -> Card:
        """Create a card from its circuit integer (0-51)."""
        if not 0 <= card_int < DECK_SIZE:
            raise ValueError(f"Card int must be 0-51, got {card_int}")
        return cls(Rank(card_int % NUM_RANKS), Suit(card_int // NUM_RANKS))

    def to_int(self) -> int:
        """Return the circuit integer (0-51)."""
        return self._int

    def __int__(self) -> int:
        return self._int

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Card):
            return self._int == other._int
        return False

    def __hash__(self) -> int:
        return self._int

    def __lt__(self, other: Card) -> bool:
        return self.rank < other.rank

    def __repr__(self) -> str:
        return f"Card({self.short_str})"

    def __str__(self) -> str:
        return f"{RANK_CHARS[self.rank]}{SUIT_SYMBOLS[self.suit]}"

    @property
    def short_str(self) -> str:
        """Short string like 'As', 'Kh'."""
        return f"{RANK_CHARS[self.rank]}{SUIT_CHARS[self.suit]}"

    @property
    def color(self) -> str:
        return "red" if self.suit in (Suit.HEARTS, Suit.DIAMONDS) else "black"

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "rank": RANK_CHARS[self.rank],
            "suit": SUIT_SYMBOLS[self.suit],
            "text": str(self),
            "color": self.color,
            "value": self._int,
        }


class Deck:
    """
    A standard 52-card deck.

    Shuffling uses the operating system's secure random source unless an
    explicit rng is supplied (tests pass a seeded random.Random).

    Usage:
        deck = Deck()
        hole_cards = deck.deal(2)
        deck.burn()
        flop = deck.deal(3)
    """

    def __init__(self, shuffle: bool = True, rng: Optional[random.Random] = None):
        self._rng = rng if rng is not None else random.SystemRandom()
        self.reset()
        if shuffle:
            self.shuffle()

    def reset(self) -> None:
        """Reset the deck to a full 52 cards in circuit-integer order."""
        self._cards: List[Card] = [Card.from_int(i) for i in range(DECK_SIZE)]
        self._dealt: List[Card] = []

    def shuffle(self) -> None:
        """Shuffle the remaining cards in the deck."""
        self._rng.shuffle(self._cards)

    def deal(self, n: int = 1) -> List[Card]:
        """
        Deal n cards from the top of the deck.

        Raises:
            ValueError: If not enough cards remain.
        """
        if n > len(self._cards):
            raise ValueError(f"Cannot deal {n} cards, only {len(self._cards)} remain")

        dealt = self._cards[:n]
        self._cards = self._cards[n:]
        self._dealt.extend(dealt)
        return dealt

    def deal_one(self) -> Card:
        return self.deal(1)[0]

    def burn(self) -> Card:
        """Burn (discard) the top card."""
        return self.deal_one()

    @property
    def remaining(self) -> int:
        return len(self._cards)

    @property
    def dealt_cards(self) -> List[Card]:
        return self._dealt.copy()

    def __len__(self) -> int:
        return len(self._cards)

    def __repr__(self) -> str:
        return f"Deck({self.remaining} cards remaining)"


def parse_cards(cards_str: str) -> List[Card]:
    """
    Parse multiple cards from a string.

    Accepts "As Kh Td" (space-separated) or "AsKhTd" (2 chars each).
    """
    cards_str = cards_str.strip()

    if " " in cards_str:
        return [Card.from_string(s) for s in cards_str.split()]

    result = []
    i = 0
    while i < len(cards_str):
        if i + 1 < len(cards_str) and (
            cards_str[i + 1] in SYMBOL_TO_SUIT or cards_str[i + 1].lower() in CHAR_TO_SUIT
        ):
            result.append(Card.from_string(cards_str[i:i + 2]))
            i += 2
        else:
            raise ValueError(f"Cannot parse card at position {i}: {cards_str[i:]}")

    return result


def cards_to_ints(cards: Iterable[Card]) -> List[int]:
    """Circuit integers for a sequence of cards."""
    return [card.to_int() for card in cards]


def validate_card_ints(values: Iterable[int]) -> List[int]:
    """
    Check a sequence of circuit integers: each in 0..51 and no duplicates.

    Raises:
        ValueError: On an out-of-range or repeated card.
    """
    values = list(values)
    for value in values:
        if not isinstance(value, int) or not 0 <= value < DECK_SIZE:
            raise ValueError(f"Card int must be 0-51, got {value!r}")
    if len(set(values)) != len(values):
        raise ValueError(f"Duplicate cards in {values}")
    return values
