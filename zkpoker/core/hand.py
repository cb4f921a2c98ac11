"""
Hand Evaluation for heads-up Texas Hold'em.

Ranks follow the proof circuit's 0-9 scale:

0. High Card
1. One Pair
2. Two Pair
3. Three of a Kind
4. Straight
5. Flush
6. Full House
7. Four of a Kind
8. Straight Flush
9. Royal Flush

The category is assigned by sequential overwrite in ascending strength, the
same order the circuit uses, so a claimed rank that the circuit would compute
differently can never be proven. `circuit_rank` is a direct rendition of the
circuit's 7-card algorithm; `evaluate` picks the best 5 of the 21 subsets and
adds a tiebreak vector so equal categories still order correctly.

Note: Ace can be low in A-2-3-4-5 straight (wheel).
"""

from __future__ import annotations
from typing import List, Sequence, Tuple
from itertools import combinations
from enum import IntEnum
from collections import Counter
from dataclasses import dataclass, field

from zkpoker.core.card import Card, Rank, NUM_RANKS, NUM_SUITS


class HandRank(IntEnum):
    """Hand categories, weakest (0) to strongest (9)."""
    HIGH_CARD = 0
    ONE_PAIR = 1
    TWO_PAIR = 2
    THREE_OF_A_KIND = 3
    STRAIGHT = 4
    FLUSH = 5
    FULL_HOUSE = 6
    FOUR_OF_A_KIND = 7
    STRAIGHT_FLUSH = 8
    ROYAL_FLUSH = 9


HAND_RANK_NAMES = {
    HandRank.ROYAL_FLUSH: "Royal Flush",
    HandRank.STRAIGHT_FLUSH: "Straight Flush",
    HandRank.FOUR_OF_A_KIND: "Four of a Kind",
    HandRank.FULL_HOUSE: "Full House",
    HandRank.FLUSH: "Flush",
    HandRank.STRAIGHT: "Straight",
    HandRank.THREE_OF_A_KIND: "Three of a Kind",
    HandRank.TWO_PAIR: "Two Pair",
    HandRank.ONE_PAIR: "One Pair",
    HandRank.HIGH_CARD: "High Card",
}

WHEEL_RANKS = (Rank.ACE, Rank.TWO, Rank.THREE, Rank.FOUR, Rank.FIVE)
ROYAL_RANKS = (Rank.TEN, Rank.JACK, Rank.QUEEN, Rank.KING, Rank.ACE)


@dataclass(frozen=True, order=True)
class HandValue:
    """
    Comparable value of a hand.

    Ordering is by (rank, tiebreak); best_cards is informational only.
    """
    rank: HandRank
    tiebreak: Tuple[int, ...]
    best_cards: Tuple[Card, ...] = field(default=(), compare=False)

    @property
    def name(self) -> str:
        return HAND_RANK_NAMES[self.rank]

    def to_dict(self) -> dict:
        return {
            "rank": int(self.rank),
            "name": self.name,
            "tiebreak": list(self.tiebreak),
            "cards": [str(c) for c in self.best_cards],
        }


def _has_straight(rank_counts: Sequence[int]) -> bool:
    """Five consecutive ranks present, or the wheel."""
    for start in range(NUM_RANKS - 4):
        if all(rank_counts[start + i] > 0 for i in range(5)):
            return True
    return all(rank_counts[r] > 0 for r in WHEEL_RANKS)


def _assign_rank(
    max_count: int,
    second_count: int,
    has_straight: bool,
    has_flush: bool,
    has_straight_flush: bool,
    has_royal: bool,
) -> HandRank:
    # Order matters: each later line overrides the earlier ones.
    rank = HandRank.HIGH_CARD
    if max_count == 2 and second_count < 2:
        rank = HandRank.ONE_PAIR
    if max_count == 2 and second_count == 2:
        rank = HandRank.TWO_PAIR
    if max_count == 3 and second_count < 2:
        rank = HandRank.THREE_OF_A_KIND
    if has_straight and not has_straight_flush:
        rank = HandRank.STRAIGHT
    if has_flush and not has_straight_flush:
        rank = HandRank.FLUSH
    if max_count == 3 and second_count >= 2:
        rank = HandRank.FULL_HOUSE
    if max_count == 4:
        rank = HandRank.FOUR_OF_A_KIND
    if has_straight_flush and not has_royal:
        rank = HandRank.STRAIGHT_FLUSH
    if has_royal:
        rank = HandRank.ROYAL_FLUSH
    return rank


def circuit_rank(cards: Sequence[Card]) -> HandRank:
    """
    Rank 5-7 cards exactly as the proof circuit does.

    The straight-flush check only looks at ranks held in the flush suit, so a
    flush plus an unrelated straight across suits stays a flush.
    """
    if len(cards) < 5 or len(cards) > 7:
        raise ValueError(f"Need 5-7 cards, got {len(cards)}")

    rank_counts = [0] * NUM_RANKS
    suit_counts = [0] * NUM_SUITS
    for card in cards:
        rank_counts[card.rank] += 1
        suit_counts[card.suit] += 1

    flush_suit = -1
    for suit in range(NUM_SUITS):
        if suit_counts[suit] >= 5:
            flush_suit = suit
    has_flush = flush_suit >= 0

    flush_rank_counts = [0] * NUM_RANKS
    if has_flush:
        for card in cards:
            if card.suit == flush_suit:
                flush_rank_counts[card.rank] += 1

    has_straight_flush = has_flush and _has_straight(flush_rank_counts)
    has_royal = has_straight_flush and all(flush_rank_counts[r] > 0 for r in ROYAL_RANKS)

    max_count = 0
    second_count = 0
    for count in rank_counts:
        if count > max_count:
            second_count = max_count
            max_count = count
        elif count > second_count:
            second_count = count

    return _assign_rank(
        max_count,
        second_count,
        _has_straight(rank_counts),
        has_flush,
        has_straight_flush,
        has_royal,
    )


def _straight_high(ranks: Sequence[Rank]) -> Rank:
    """High card of a five-card straight (Five for the wheel)."""
    if set(ranks) == set(WHEEL_RANKS):
        return Rank.FIVE
    return max(ranks)


def _tiebreak(cards: Sequence[Card], rank: HandRank) -> Tuple[int, ...]:
    """Secondary comparison values for a five-card hand of the given category."""
    ranks = [c.rank for c in cards]
    if rank in (HandRank.STRAIGHT, HandRank.STRAIGHT_FLUSH, HandRank.ROYAL_FLUSH):
        return (int(_straight_high(ranks)),)
    if rank in (HandRank.FLUSH, HandRank.HIGH_CARD):
        return tuple(int(r) for r in sorted(ranks, reverse=True))
    counts = Counter(ranks)
    grouped = sorted(counts, key=lambda r: (counts[r], r), reverse=True)
    return tuple(int(r) for r in grouped)


def _order_cards(cards: Sequence[Card], rank: HandRank) -> Tuple[Card, ...]:
    if rank in (HandRank.STRAIGHT, HandRank.STRAIGHT_FLUSH) and \
            _straight_high([c.rank for c in cards]) == Rank.FIVE:
        ace = [c for c in cards if c.rank == Rank.ACE]
        others = sorted((c for c in cards if c.rank != Rank.ACE), key=lambda c: c.rank, reverse=True)
        return tuple(others + ace)
    counts = Counter(c.rank for c in cards)
    return tuple(sorted(cards, key=lambda c: (counts[c.rank], c.rank), reverse=True))


def evaluate(cards: Sequence[Card]) -> HandValue:
    """
    Evaluate a poker hand (5-7 cards).

    Every five-card subset is ranked with the circuit's overwrite order and
    the maximum (rank, tiebreak) wins.

    Raises:
        ValueError: If not 5-7 distinct cards are provided
    """
    if len(cards) < 5 or len(cards) > 7:
        raise ValueError(f"Need 5-7 cards, got {len(cards)}")
    if len(set(cards)) != len(cards):
        raise ValueError(f"Duplicate cards in hand: {list(cards)}")

    best = None
    for combo in combinations(cards, 5):
        rank = circuit_rank(combo)
        value = HandValue(rank, _tiebreak(combo, rank), _order_cards(combo, rank))
        if best is None or value > best:
            best = value
    return best


def compare_hands(cards1: Sequence[Card], cards2: Sequence[Card]) -> int:
    """
    Compare two hands.

    Returns:
        -1 if cards1 wins, 1 if cards2 wins, 0 if tie
    """
    value1 = evaluate(cards1)
    value2 = evaluate(cards2)
    if value1 > value2:
        return -1
    if value1 < value2:
        return 1
    return 0


def get_hand_description(cards: Sequence[Card]) -> str:
    """Get a human-readable description of the hand."""
    if len(cards) < 5:
        return "Incomplete hand"

    value = evaluate(cards)
    hand_type = value.rank
    lead = Rank(value.tiebreak[0])

    if hand_type == HandRank.ROYAL_FLUSH:
        return "Royal Flush"
    elif hand_type == HandRank.STRAIGHT_FLUSH:
        return f"Straight Flush, {_rank_name(lead)} high"
    elif hand_type == HandRank.FOUR_OF_A_KIND:
        return f"Four of a Kind, {_rank_name(lead)}s"
    elif hand_type == HandRank.FULL_HOUSE:
        pair = Rank(value.tiebreak[1])
        return f"Full House, {_rank_name(lead)}s full of {_rank_name(pair)}s"
    elif hand_type == HandRank.FLUSH:
        return f"Flush, {_rank_name(lead)} high"
    elif hand_type == HandRank.STRAIGHT:
        if lead == Rank.FIVE:
            return "Straight, Five high (Wheel)"
        return f"Straight, {_rank_name(lead)} high"
    elif hand_type == HandRank.THREE_OF_A_KIND:
        return f"Three of a Kind, {_rank_name(lead)}s"
    elif hand_type == HandRank.TWO_PAIR:
        low = Rank(value.tiebreak[1])
        return f"Two Pair, {_rank_name(lead)}s and {_rank_name(low)}s"
    elif hand_type == HandRank.ONE_PAIR:
        return f"Pair of {_rank_name(lead)}s"
    else:
        return f"High Card, {_rank_name(lead)}"


def _rank_name(rank: Rank) -> str:
    names = {
        Rank.TWO: "Two", Rank.THREE: "Three", Rank.FOUR: "Four",
        Rank.FIVE: "Five", Rank.SIX: "Six", Rank.SEVEN: "Seven",
        Rank.EIGHT: "Eight", Rank.NINE: "Nine", Rank.TEN: "Ten",
        Rank.JACK: "Jack", Rank.QUEEN: "Queen", Rank.KING: "King",
        Rank.ACE: "Ace"
    }
    return names[rank]


def best_of(values: List[HandValue]) -> List[int]:
    """Indices of the strongest values (more than one on an exact tie)."""
    top = max(values)
    return [i for i, v in enumerate(values) if v == top]
