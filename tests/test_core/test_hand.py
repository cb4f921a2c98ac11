"""
Tests for hand evaluation.

Categories use the circuit's 0-9 scale and the circuit's overwrite order, so
these tables double as the contract with the proof circuit.
"""

import itertools
import random

import pytest
from zkpoker.core.card import Card, parse_cards
from zkpoker.core.hand import (
    HandRank, HandValue, evaluate, circuit_rank, compare_hands, best_of, get_hand_description,
)


def rank_of(cards: str) -> HandRank:
    return evaluate(parse_cards(cards)).rank


class TestHandRanking:
    """One table entry per category."""

    @pytest.mark.parametrize("cards, expected", [
        ("As Ks Qs Js Ts 2d 3c", HandRank.ROYAL_FLUSH),
        ("9h 8h 7h 6h 5h Ac Kd", HandRank.STRAIGHT_FLUSH),
        ("5d 4d 3d 2d Ad Kc Qh", HandRank.STRAIGHT_FLUSH),
        ("Kc Kd Kh Ks 2c 3d 4h", HandRank.FOUR_OF_A_KIND),
        ("Qc Qd Qh 9s 9c 2d 3h", HandRank.FULL_HOUSE),
        ("Ac Jc 8c 6c 2c Kd Qh", HandRank.FLUSH),
        ("Tc 9d 8h 7s 6c 2d 2h", HandRank.STRAIGHT),
        ("Ah 2c 3d 4s 5h Kd 9c", HandRank.STRAIGHT),
        ("7c 7d 7h Ks 2c 4d 9h", HandRank.THREE_OF_A_KIND),
        ("Jc Jd 4h 4s Ac 2d 8h", HandRank.TWO_PAIR),
        ("Ac Ad 9h 7s 5c 3d 2h", HandRank.ONE_PAIR),
        ("Ac Jd 9h 7s 5c 3d 2h", HandRank.HIGH_CARD),
    ])
    def test_category(self, cards, expected):
        """Test each category on a 7-card hand."""
        assert rank_of(cards) == expected
        assert circuit_rank(parse_cards(cards)) == expected

    def test_five_card_hands(self, royal_flush, wheel_straight):
        """Test fixtures with exactly five cards."""
        assert evaluate(royal_flush).rank == HandRank.ROYAL_FLUSH
        assert evaluate(wheel_straight).rank == HandRank.STRAIGHT
        assert evaluate(wheel_straight).tiebreak == (3,)  # Five high

    def test_three_pairs_is_two_pair(self):
        """Test the third pair only plays as a kicker."""
        value = evaluate(parse_cards("Ac Ad Kc Kd Qc Qd 2h"))
        assert value.rank == HandRank.TWO_PAIR
        assert value.tiebreak[:3] == (12, 11, 10)

    def test_two_trips_is_full_house(self):
        """Test two sets of trips make a full house."""
        assert rank_of("9c 9d 9h 4c 4d 4h Ks") == HandRank.FULL_HOUSE

    def test_invalid_inputs(self):
        """Test wrong card counts and duplicates are rejected."""
        with pytest.raises(ValueError):
            evaluate(parse_cards("As Ks Qs Js"))
        with pytest.raises(ValueError):
            evaluate(parse_cards("As Ks Qs Js Ts 9s 8s 7s"))
        with pytest.raises(ValueError):
            evaluate(parse_cards("As As Qs Js Ts 2d 3c"))


class TestFlushStraightCollision:
    """A flush plus a straight outside the flush suit is not a straight flush."""

    def test_flush_with_offsuit_straight(self):
        """Test hearts flush with a 5-9 straight that uses a club."""
        cards = parse_cards("5h 6h 7h 8c 9h 2h Kd")
        assert circuit_rank(cards) == HandRank.FLUSH
        assert evaluate(cards).rank == HandRank.FLUSH

    def test_six_suited_with_mixed_straight(self):
        """Test six spades and a straight needing a diamond."""
        cards = parse_cards("As Ks Qs Jd Ts 2s 7c")
        assert rank_of("As Ks Qs Jd Ts 2s 7c") == HandRank.FLUSH
        assert circuit_rank(cards) != HandRank.STRAIGHT_FLUSH

    def test_straight_flush_inside_suit(self):
        """Test a straight fully inside the flush suit still counts."""
        assert rank_of("5h 6h 7h 8h 9h 2c Kd") == HandRank.STRAIGHT_FLUSH


class TestCircuitAgreement:
    """evaluate() and circuit_rank() must agree on every 7-card hand."""

    def test_random_hands(self):
        """Test agreement on a large random sample."""
        rng = random.Random(2024)
        deck = [Card.from_int(i) for i in range(52)]
        for _ in range(2000):
            cards = rng.sample(deck, 7)
            assert evaluate(cards).rank == circuit_rank(cards), cards

    def test_rank_range(self):
        """Test every returned rank lies in 0-9."""
        rng = random.Random(7)
        deck = [Card.from_int(i) for i in range(52)]
        for _ in range(500):
            assert 0 <= int(evaluate(rng.sample(deck, 7)).rank) <= 9


class TestHandComparison:
    """Ordering through (rank, tiebreak)."""

    def test_higher_category_wins(self):
        """Test a flush beats a straight."""
        flush = parse_cards("2h 5h 7h 9h Jh Ac Kd")
        straight = parse_cards("Tc 9d 8h 7s 6c 2d 2s")
        assert compare_hands(flush, straight) == -1
        assert compare_hands(straight, flush) == 1

    def test_kicker_decides(self):
        """Test same pair, better kicker."""
        board = "Ah Ad 9c 7s 3h"
        strong = parse_cards(f"{board} Kc 2d")
        weak = parse_cards(f"{board} Qc 2s")
        assert compare_hands(strong, weak) == -1

    def test_wheel_loses_to_six_high(self):
        """Test the wheel is the lowest straight."""
        wheel = evaluate(parse_cards("Ah 2c 3d 4s 5h"))
        six_high = evaluate(parse_cards("2c 3d 4s 5h 6c"))
        assert wheel < six_high

    def test_exact_tie(self):
        """Test board-played hands tie."""
        board = "As Ks Qd Jh Tc"
        assert compare_hands(parse_cards(f"{board} 2c 3d"), parse_cards(f"{board} 4c 5d")) == 0

    def test_best_of(self):
        """Test indices of the strongest values."""
        low = HandValue(HandRank.ONE_PAIR, (5, 12, 9, 7))
        high = HandValue(HandRank.TWO_PAIR, (5, 3, 12))
        assert best_of([low, high]) == [1]
        assert best_of([high, high]) == [0, 1]

    def test_total_order_within_category(self):
        """Test sorting high-card hands by value matches descending kickers."""
        hands = [parse_cards(h) for h in ("Ac Jd 9h 7s 5c", "Ac Jd 9h 7s 4c", "Kc Qd Jh 9s 8c")]
        values = sorted((evaluate(h) for h in hands), reverse=True)
        assert [v.tiebreak[:5] for v in values] == [
            (12, 9, 7, 5, 3), (12, 9, 7, 5, 2), (11, 10, 9, 7, 6),
        ]


class TestHandDescription:
    """Human-readable descriptions."""

    @pytest.mark.parametrize("cards, text", [
        ("As Ks Qs Js Ts", "Royal Flush"),
        ("Ac Ad 9h 7s 5c", "Pair of Aces"),
        ("Qc Qd Qh 9s 9c", "Full House, Queens full of Nines"),
        ("Ah 2c 3d 4s 5h", "Straight, Five high (Wheel)"),
    ])
    def test_descriptions(self, cards, text):
        """Test description strings."""
        assert get_hand_description(parse_cards(cards)) == text

    def test_to_dict(self):
        """Test serialized form of a value."""
        data = evaluate(parse_cards("Ac Ad 9h 7s 5c")).to_dict()
        assert data["rank"] == 1
        assert data["name"] == "One Pair"
        assert len(data["cards"]) == 5


def test_all_subsets_considered():
    """The best five of seven can use any two board cards."""
    cards = parse_cards("2c 3d Kh Kd Ks Kc 9s")
    assert evaluate(cards).rank == HandRank.FOUR_OF_A_KIND
    assert len(list(itertools.combinations(cards, 5))) == 21
