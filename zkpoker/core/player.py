"""
Player record for heads-up Texas Hold'em.

Manages player state including:
- Stack (chip count, never negative)
- Hole cards
- Contribution in the current betting round and in the whole hand
- Folded / all-in state and whether the seat is a bot
"""

from __future__ import annotations
from typing import List, Optional, Dict, Any
from dataclasses import dataclass, field
from enum import Enum, auto

from zkpoker.core.card import Card


class PlayerState(Enum):
    """Player states during a hand."""
    ACTIVE = auto()   # Still in the hand, can act
    FOLDED = auto()   # Has folded
    ALL_IN = auto()   # No chips left, no more actions


@dataclass
class Player:
    """
    A seat at the heads-up table.

    Attributes:
        player_id: Unique identifier (ledger address for humans)
        stack: Chips behind, excluding anything already in the pot
        seat: 0 or 1
        hole_cards: The player's private cards
        round_bet: Amount contributed in the current betting round
        total_bet: Amount contributed in the whole hand
        state: Current player state
        is_bot: True when an opponent agent drives this seat
    """
    player_id: str
    stack: int
    seat: int = 0
    hole_cards: List[Card] = field(default_factory=list)
    round_bet: int = 0
    total_bet: int = 0
    state: PlayerState = PlayerState.ACTIVE
    is_bot: bool = False

    # Acted since the last bet of the round (blinds don't count)
    has_acted: bool = False
    last_action: Optional[str] = None

    def reset_for_new_hand(self) -> None:
        self.hole_cards = []
        self.round_bet = 0
        self.total_bet = 0
        self.has_acted = False
        self.last_action = None
        self.state = PlayerState.ACTIVE

    def reset_for_new_round(self) -> None:
        self.round_bet = 0
        self.has_acted = False

    def deal_cards(self, cards: List[Card]) -> None:
        self.hole_cards = list(cards)

    def commit(self, amount: int) -> int:
        """
        Move chips from the stack into the pot.

        Returns:
            Actual amount committed (clamped to the stack)
        """
        if amount <= 0:
            return 0
        actual = min(amount, self.stack)
        self.stack -= actual
        self.round_bet += actual
        self.total_bet += actual
        if self.stack == 0:
            self.state = PlayerState.ALL_IN
        return actual

    def refund(self, amount: int) -> None:
        """Return uncallable chips from the pot to the stack."""
        if amount <= 0:
            return
        if amount > self.round_bet:
            raise ValueError(f"Cannot refund {amount}, only {self.round_bet} bet this round")
        self.stack += amount
        self.round_bet -= amount
        self.total_bet -= amount
        if self.state == PlayerState.ALL_IN and self.stack > 0:
            self.state = PlayerState.ACTIVE

    def fold(self) -> None:
        self.state = PlayerState.FOLDED
        self.has_acted = True
        self.last_action = "FOLD"

    @property
    def is_folded(self) -> bool:
        return self.state == PlayerState.FOLDED

    @property
    def is_all_in(self) -> bool:
        return self.state == PlayerState.ALL_IN

    @property
    def is_in_hand(self) -> bool:
        """Check if player is still contesting the pot."""
        return self.state != PlayerState.FOLDED

    def to_dict(self, hide_cards: bool = True) -> Dict[str, Any]:
        """
        Convert to dictionary for JSON serialization.

        Args:
            hide_cards: If True, don't include hole cards
        """
        result = {
            "id": self.player_id,
            "seat": self.seat,
            "stack": self.stack,
            "bet": self.round_bet,
            "total_bet": self.total_bet,
            "state": self.state.name,
            "is_bot": self.is_bot,
            "last_action": self.last_action,
        }

        if not hide_cards and self.hole_cards:
            result["cards"] = [card.to_dict() for card in self.hole_cards]

        return result

    def to_public_dict(self) -> Dict[str, Any]:
        return self.to_dict(hide_cards=True)

    def to_private_dict(self) -> Dict[str, Any]:
        return self.to_dict(hide_cards=False)

    def __repr__(self) -> str:
        return (
            f"Player({self.player_id}, stack={self.stack}, "
            f"bet={self.round_bet}, state={self.state.name})"
        )
