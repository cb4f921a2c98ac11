"""
Heads-up Texas Hold'em Rules and Constants.

Rules implemented by the betting machine:

1. Heads-up (2 players): Dealer posts small blind, non-dealer posts big blind.
   Preflop: Dealer acts first. Postflop: Non-dealer acts first.

2. Bet sizing: an opening bet must be at least the big blind; a raise must
   be at least twice the highest bet of the round. Bets are totals for the
   round ("raise to"), capped at what the opponent can still match.

3. No side pots: any excess one player committed beyond what the other could
   call is returned before the showdown.

4. Split pots: the odd chip goes to the first winner clockwise from the
   button (WSOP Rule 73), which heads-up is the non-dealer.
"""

from __future__ import annotations
from enum import Enum, auto
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence, Tuple, Union


class GamePhase(Enum):
    """Phases of a heads-up hand."""
    WAITING = auto()      # Waiting for hand to start
    BLINDS = auto()       # Posting blinds
    PREFLOP = auto()      # After hole cards dealt, before flop
    FLOP = auto()         # After 3 community cards
    TURN = auto()         # After 4th community card
    RIVER = auto()        # After 5th community card
    SHOWDOWN = auto()     # Determine winner
    HAND_OVER = auto()    # Hand is complete
    GAME_OVER = auto()    # A player cannot post the next blind


BETTING_PHASES = (GamePhase.PREFLOP, GamePhase.FLOP, GamePhase.TURN, GamePhase.RIVER)


class ActionType(Enum):
    """Kinds of player action."""
    FOLD = "FOLD"
    CHECK = "CHECK"
    CALL = "CALL"
    BET = "BET"


@dataclass(frozen=True)
class Fold:
    kind = ActionType.FOLD


@dataclass(frozen=True)
class Check:
    kind = ActionType.CHECK


@dataclass(frozen=True)
class Call:
    kind = ActionType.CALL


@dataclass(frozen=True)
class Bet:
    """Bet or raise to `amount`, the player's total contribution this round."""
    amount: int
    kind = ActionType.BET

    def __post_init__(self):
        if isinstance(self.amount, bool) or not isinstance(self.amount, int):
            raise ValueError(f"Bet amount must be an integer, got {self.amount!r}")
        if self.amount <= 0:
            raise ValueError(f"Bet amount must be positive, got {self.amount}")


Action = Union[Fold, Check, Call, Bet]


def action_from_dict(data: Dict[str, Any]) -> Action:
    """
    Build an action from a transport payload like {"type": "BET", "amount": 40}.

    "RAISE" is accepted as an alias of "BET".

    Raises:
        ValueError: Unknown type or a bet without a positive amount
    """
    kind = str(data.get("type") or data.get("action") or "").upper()
    if kind == "RAISE":
        kind = "BET"
    if kind == ActionType.FOLD.value:
        return Fold()
    if kind == ActionType.CHECK.value:
        return Check()
    if kind == ActionType.CALL.value:
        return Call()
    if kind == ActionType.BET.value:
        return Bet(int(data.get("amount") or 0))
    raise ValueError(f"Unknown action type: {kind!r}")


def action_to_dict(action: Action) -> Dict[str, Any]:
    result: Dict[str, Any] = {"type": action.kind.value}
    if isinstance(action, Bet):
        result["amount"] = action.amount
    return result


# Default game settings
DEFAULT_SMALL_BLIND = 10
DEFAULT_BIG_BLIND = 20
DEFAULT_BUY_IN = 1000
NUM_PLAYERS = 2

# Cards per phase
HOLE_CARDS = 2
FLOP_CARDS = 3
TURN_CARDS = 1
RIVER_CARDS = 1
TOTAL_COMMUNITY_CARDS = 5


def get_blind_positions(dealer_position: int) -> Tuple[int, int]:
    """
    Small blind and big blind seats for heads-up play.

    WSOP Rule: In heads-up play, the dealer posts the small blind.
    """
    return dealer_position, (dealer_position + 1) % NUM_PLAYERS


def get_first_to_act(phase: GamePhase, dealer_position: int) -> int:
    """Dealer acts first preflop; the non-dealer acts first on later streets."""
    if phase == GamePhase.PREFLOP:
        return dealer_position
    return (dealer_position + 1) % NUM_PLAYERS


def minimum_bet_to(highest_bet: int, big_blind: int) -> int:
    """
    Smallest legal round total for a bet or raise.

    Opening bet: at least the big blind. Raise: at least 2x the highest bet.
    """
    if highest_bet == 0:
        return big_blind
    return highest_bet * 2


def split_pot(pot: int, winners: Sequence[int], dealer_position: int) -> List[int]:
    """
    Split a pot between tied winners.

    Each winner gets pot // len(winners); leftover chips go one at a time to
    winners in clockwise order starting left of the button.

    Returns:
        Payout per seat (length NUM_PLAYERS)
    """
    if not winners:
        raise ValueError("Need at least one winner")
    payouts = [0] * NUM_PLAYERS
    share, remainder = divmod(pot, len(winners))
    for seat in winners:
        payouts[seat] += share
    for i in range(NUM_PLAYERS):
        if remainder == 0:
            break
        seat = (dealer_position + 1 + i) % NUM_PLAYERS
        if seat in winners:
            payouts[seat] += 1
            remainder -= 1
    return payouts
