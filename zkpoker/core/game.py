"""
Heads-up Texas Hold'em Game Engine - State Machine Implementation.

This module implements the betting state machine for two players:
- Phases: blinds, preflop, flop, turn, river, showdown, hand over, game over
- Legal-action validation for fold, check, call and bet/raise
- Pot accumulation (chips go into the pot as soon as they are committed)
- All-in fast-forward: once a stack is empty and the round settles, any
  uncallable excess is returned and the remaining board is dealt at once

Invariant: sum(player stacks) + pot is constant for the whole match.

Reference: WSOP Official Tournament Rules (heads-up blinds and action order)
"""

from __future__ import annotations
from typing import List, Dict, Optional, Any, Sequence
from dataclasses import dataclass, field
import logging
import random
import uuid

from zkpoker.core.card import Card, Deck, cards_to_ints
from zkpoker.core.player import Player
from zkpoker.core.hand import HandValue, evaluate, best_of, get_hand_description
from zkpoker.core.rules import (
    GamePhase, ActionType, Action, Fold, Check, Call, Bet, BETTING_PHASES,
    get_blind_positions, get_first_to_act, minimum_bet_to, split_pot,
    DEFAULT_BIG_BLIND, DEFAULT_SMALL_BLIND, DEFAULT_BUY_IN, NUM_PLAYERS,
    HOLE_CARDS, FLOP_CARDS, TURN_CARDS, RIVER_CARDS, TOTAL_COMMUNITY_CARDS,
)
from zkpoker.errors import ValidationError


logger = logging.getLogger(__name__)


@dataclass
class ActionResult:
    """Result of a player action."""
    success: bool
    message: str
    action_type: Optional[ActionType] = None
    amount: int = 0


@dataclass
class HandResult:
    """
    Outcome of a finished hand.

    winner_index is None on a split pot. payouts holds what each seat took
    from the pot; values is empty when the hand ended by a fold.
    """
    hand_id: int
    winner_index: Optional[int]
    amount_won: int
    payouts: List[int]
    pot: int
    by_fold: bool
    values: List[HandValue] = field(default_factory=list)
    folded_seat: Optional[int] = None

    @property
    def is_tie(self) -> bool:
        return self.winner_index is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hand_id": self.hand_id,
            "winner_index": self.winner_index,
            "tie": self.is_tie,
            "amount_won": self.amount_won,
            "payouts": list(self.payouts),
            "pot": self.pot,
            "by_fold": self.by_fold,
            "hands": [v.to_dict() for v in self.values],
        }


@dataclass(frozen=True)
class HandRecord:
    """Snapshot of a finished hand, handed to settlement."""
    game_id: str
    hand_id: int
    player_ids: List[str]
    hole_cards: List[List[int]]
    community_cards: List[int]
    result: HandResult

    @property
    def by_fold(self) -> bool:
        return self.result.by_fold


class HeadsUpGame:
    """
    Heads-up Texas Hold'em engine implementing a state machine.

    Usage:
        game = HeadsUpGame(big_blind=20, small_blind=10, buy_in=1000)
        game.start_hand()

        while game.is_hand_running():
            action = get_player_action(game.get_state())  # From UI or agent
            result = game.take_action(action)

        print(game.result)
    """

    def __init__(
        self,
        big_blind: int = DEFAULT_BIG_BLIND,
        small_blind: int = DEFAULT_SMALL_BLIND,
        buy_in: int = DEFAULT_BUY_IN,
        player_ids: Optional[Sequence[str]] = None,
        bot_seats: Sequence[int] = (),
        game_id: Optional[str] = None,
        rng: Optional[random.Random] = None,
    ):
        """
        Initialize a new heads-up game.

        Args:
            big_blind: Big blind amount
            small_blind: Small blind amount
            buy_in: Starting stack for each player
            player_ids: Optional pair of player IDs
            bot_seats: Seats driven by an opponent agent
            game_id: Identifier shared with the ledger (random if omitted)
            rng: Random source for shuffling (secure source if omitted)
        """
        if small_blind <= 0 or big_blind < small_blind:
            raise ValueError("Blinds must be positive with big_blind >= small_blind")
        if buy_in < big_blind:
            raise ValueError("Buy-in must cover at least one big blind")

        if player_ids is None:
            player_ids = [str(i) for i in range(NUM_PLAYERS)]
        if len(player_ids) != NUM_PLAYERS or len(set(player_ids)) != NUM_PLAYERS:
            raise ValueError("Exactly two distinct player IDs are required")

        self.game_id = game_id or uuid.uuid4().hex[:12]
        self.big_blind = big_blind
        self.small_blind = small_blind
        self.buy_in = buy_in
        self.total_chips = buy_in * NUM_PLAYERS

        self.players: List[Player] = [
            Player(player_id=pid, stack=buy_in, seat=i, is_bot=i in bot_seats)
            for i, pid in enumerate(player_ids)
        ]

        self._rng = rng
        self.deck = Deck(shuffle=False, rng=rng)
        self.community_cards: List[Card] = []
        self.phase = GamePhase.WAITING
        self.hand_id = 0

        # First hand puts the button on seat 0
        self.dealer_position = NUM_PLAYERS - 1
        self.small_blind_position = 0
        self.big_blind_position = 1
        self.current_player_index = 0

        self.pot = 0
        self.highest_bet = 0
        self.result: Optional[HandResult] = None

        self.hand_history: List[Dict[str, Any]] = []

    @property
    def num_players(self) -> int:
        return len(self.players)

    @property
    def current_player(self) -> Optional[Player]:
        """The player whose turn it is to act."""
        if not self.is_hand_running():
            return None
        return self.players[self.current_player_index]

    @property
    def round_bets(self) -> Dict[str, int]:
        """Per-player contributions in the current betting round."""
        return {p.player_id: p.round_bet for p in self.players}

    @property
    def chips_in_play(self) -> int:
        """sum(stacks) + pot; equals total_chips at every point of the match."""
        return sum(p.stack for p in self.players) + self.pot

    def is_hand_running(self) -> bool:
        """Check if a betting round is waiting for an action."""
        return self.phase in BETTING_PHASES

    def is_game_over(self) -> bool:
        return self.phase == GamePhase.GAME_OVER

    def get_player(self, player_id: str) -> Optional[Player]:
        for player in self.players:
            if player.player_id == player_id:
                return player
        return None

    def opponent_of(self, seat: int) -> Player:
        return self.players[(seat + 1) % NUM_PLAYERS]

    def can_post_blinds(self, dealer_position: int) -> bool:
        """Both blinds for a hand with the given button can be posted in full."""
        sb_pos, bb_pos = get_blind_positions(dealer_position)
        return (
            self.players[sb_pos].stack >= self.small_blind
            and self.players[bb_pos].stack >= self.big_blind
        )

    def start_hand(self) -> bool:
        """
        Start a new hand.

        Returns:
            True if hand started, False if a hand is running or the match is over
        """
        if self.is_hand_running():
            logger.warning("Cannot start hand: a hand is already in progress")
            return False
        if self.phase == GamePhase.GAME_OVER:
            return False

        next_dealer = (self.dealer_position + 1) % NUM_PLAYERS
        if not self.can_post_blinds(next_dealer):
            self.phase = GamePhase.GAME_OVER
            logger.info(
                f"Game {self.game_id} over: stacks "
                f"{[p.stack for p in self.players]} cannot cover the blinds"
            )
            return False

        self.hand_id += 1
        logger.info(f"Starting hand #{self.hand_id} of game {self.game_id}")

        self.deck = Deck(shuffle=True, rng=self._rng)
        self.community_cards = []
        self.pot = 0
        self.highest_bet = 0
        self.result = None
        self.hand_history = []

        for player in self.players:
            player.reset_for_new_hand()

        self.dealer_position = next_dealer
        self.small_blind_position, self.big_blind_position = get_blind_positions(next_dealer)

        self.phase = GamePhase.BLINDS
        self._post_blinds()
        self._deal_hole_cards()

        self.phase = GamePhase.PREFLOP
        self._setup_betting_round()

        self._log_action("HAND_START", {
            "hand_id": self.hand_id,
            "dealer": self.dealer_position,
            "small_blind": self.small_blind_position,
            "big_blind": self.big_blind_position,
        })

        # A blind can consume a whole stack
        if self._is_betting_round_complete():
            self._end_betting_round()

        return True

    def _post_blinds(self) -> None:
        sb_player = self.players[self.small_blind_position]
        bb_player = self.players[self.big_blind_position]

        sb_amount = sb_player.commit(self.small_blind)
        sb_player.last_action = f"SB {sb_amount}"

        bb_amount = bb_player.commit(self.big_blind)
        bb_player.last_action = f"BB {bb_amount}"

        self.pot += sb_amount + bb_amount
        self.highest_bet = self.big_blind

        logger.debug(f"Blinds posted: SB={sb_amount} BB={bb_amount}")

    def _deal_hole_cards(self) -> None:
        for player in self.players:
            player.deal_cards(self.deck.deal(HOLE_CARDS))

    def _setup_betting_round(self) -> None:
        if self.phase == GamePhase.PREFLOP:
            # Blinds stay in round_bet but do not count as having acted
            for player in self.players:
                player.has_acted = False
        else:
            for player in self.players:
                player.reset_for_new_round()
            self.highest_bet = 0

        self.current_player_index = get_first_to_act(self.phase, self.dealer_position)

    def _is_betting_round_complete(self) -> bool:
        """
        A round closes when contributions are equal and everyone with chips
        has acted since the last bet, or when the short side is all-in.
        """
        first, second = self.players
        if first.round_bet == second.round_bet:
            return all(p.has_acted or p.is_all_in for p in self.players)
        short = first if first.round_bet < second.round_bet else second
        return short.is_all_in

    def take_action(self, action: Action, player_id: Optional[str] = None) -> ActionResult:
        """
        Process an action for the player to act.

        Args:
            action: Fold(), Check(), Call() or Bet(amount)
            player_id: If given, the action is rejected unless it is this player's turn

        Returns:
            ActionResult indicating success/failure and chips moved
        """
        if not self.is_hand_running():
            return ActionResult(False, "No hand in progress")

        player = self.current_player
        if player_id is not None and player.player_id != player_id:
            return ActionResult(False, "Not your turn")

        try:
            result = self._execute_action(player, action)
        except ValidationError as e:
            logger.debug(f"Rejected action from {player.player_id}: {e}")
            return ActionResult(False, str(e), getattr(action, "kind", None))

        player.has_acted = True
        self._log_action(result.action_type.value, {
            "player": player.player_id,
            "amount": result.amount,
        })
        self._advance()
        return result

    def _execute_action(self, player: Player, action: Action) -> ActionResult:
        to_call = self.highest_bet - player.round_bet

        if isinstance(action, Fold):
            player.fold()
            return ActionResult(True, "Folded", ActionType.FOLD, 0)

        if isinstance(action, Check):
            if to_call > 0:
                raise ValidationError(f"Cannot check, must call {to_call}")
            player.last_action = "CHECK"
            return ActionResult(True, "Checked", ActionType.CHECK, 0)

        if isinstance(action, Call):
            if to_call <= 0:
                raise ValidationError("Nothing to call, use CHECK")
            actual = player.commit(to_call)
            self.pot += actual
            player.last_action = f"CALL {actual}" if not player.is_all_in else f"ALL-IN {actual}"
            return ActionResult(True, f"Called {actual}", ActionType.CALL, actual)

        if isinstance(action, Bet):
            cap = self._max_bet_to(player)
            if cap <= self.highest_bet:
                raise ValidationError("Cannot raise, opponent has nothing behind; use CALL")
            target = min(action.amount, cap)
            minimum = minimum_bet_to(self.highest_bet, self.big_blind)
            if target < minimum and target < cap:
                verb = "bet" if self.highest_bet == 0 else "raise"
                raise ValidationError(f"Minimum {verb} is to {minimum}")

            opening = self.highest_bet == 0
            actual = player.commit(target - player.round_bet)
            self.pot += actual
            self.highest_bet = player.round_bet
            # A bet reopens action for the opponent
            self.opponent_of(player.seat).has_acted = False

            verb = "Bet" if opening else "Raised to"
            player.last_action = f"ALL-IN {target}" if player.is_all_in else f"{verb.upper()} {target}"
            return ActionResult(True, f"{verb} {target}", ActionType.BET, actual)

        raise ValidationError(f"Unknown action: {action!r}")

    def _max_bet_to(self, player: Player) -> int:
        """Largest round total the player can bet that the opponent can still match."""
        opponent = self.opponent_of(player.seat)
        return min(player.stack + player.round_bet, opponent.stack + opponent.round_bet)

    def _advance(self) -> None:
        if any(p.is_folded for p in self.players):
            self._end_hand_by_fold()
            return

        if self._is_betting_round_complete():
            self._end_betting_round()
            return

        self.current_player_index = (self.current_player_index + 1) % NUM_PLAYERS

    def _end_betting_round(self) -> None:
        """End the current betting round and advance to the next phase."""
        if any(p.stack == 0 for p in self.players):
            self._return_uncalled_excess()
            self._deal_remaining_cards()
            self._go_to_showdown()
            return

        if self.phase == GamePhase.PREFLOP:
            self._deal_street(FLOP_CARDS)
            self.phase = GamePhase.FLOP
        elif self.phase == GamePhase.FLOP:
            self._deal_street(TURN_CARDS)
            self.phase = GamePhase.TURN
        elif self.phase == GamePhase.TURN:
            self._deal_street(RIVER_CARDS)
            self.phase = GamePhase.RIVER
        elif self.phase == GamePhase.RIVER:
            self._go_to_showdown()
            return

        self._log_action(self.phase.name, {"cards": [str(c) for c in self.community_cards]})
        self._setup_betting_round()

    def _return_uncalled_excess(self) -> None:
        """Give back whatever the deeper stack put in beyond the opponent's contribution."""
        first, second = self.players
        if first.round_bet == second.round_bet:
            return
        over, under = (first, second) if first.round_bet > second.round_bet else (second, first)
        excess = over.round_bet - under.round_bet
        over.refund(excess)
        self.pot -= excess
        self._log_action("RETURN_EXCESS", {"player": over.player_id, "amount": excess})
        logger.debug(f"Returned {excess} uncalled chips to {over.player_id}")

    def _deal_street(self, n: int) -> None:
        self.deck.burn()
        self.community_cards.extend(self.deck.deal(n))

    def _deal_remaining_cards(self) -> None:
        """Deal remaining community cards (when going directly to showdown)."""
        if not self.community_cards:
            self._deal_street(FLOP_CARDS)
        while len(self.community_cards) < TOTAL_COMMUNITY_CARDS:
            self._deal_street(1)

    def _go_to_showdown(self) -> None:
        self.phase = GamePhase.SHOWDOWN

        values = [evaluate(p.hole_cards + self.community_cards) for p in self.players]
        winners = best_of(values)
        pot = self.pot
        payouts = split_pot(pot, winners, self.dealer_position)
        self._award(payouts)

        winner_index = winners[0] if len(winners) == 1 else None
        self.result = HandResult(
            hand_id=self.hand_id,
            winner_index=winner_index,
            amount_won=min(payouts[w] for w in winners),
            payouts=payouts,
            pot=pot,
            by_fold=False,
            values=values,
        )
        self.phase = GamePhase.HAND_OVER
        self._log_action("SHOWDOWN", {"winners": self.get_winners()})

    def _end_hand_by_fold(self) -> None:
        folded = next(p for p in self.players if p.is_folded)
        winner = self.opponent_of(folded.seat)

        pot = self.pot
        payouts = [0] * NUM_PLAYERS
        payouts[winner.seat] = pot
        self._award(payouts)

        self.result = HandResult(
            hand_id=self.hand_id,
            winner_index=winner.seat,
            amount_won=pot,
            payouts=payouts,
            pot=pot,
            by_fold=True,
            folded_seat=folded.seat,
        )
        self.phase = GamePhase.HAND_OVER
        self._log_action("WIN_BY_FOLD", {"winner": winner.player_id, "amount": pot})

    def _award(self, payouts: List[int]) -> None:
        for player, amount in zip(self.players, payouts):
            player.stack += amount
        self.pot = 0

    def get_legal_actions(self, player: Optional[Player] = None) -> List[Dict[str, Any]]:
        """
        Get legal actions for the specified player (or current player).

        Returns:
            List of action dicts with type and constraints
        """
        if player is None:
            player = self.current_player
        if player is None or not self.is_hand_running() or player is not self.current_player:
            return []

        actions: List[Dict[str, Any]] = [{"type": ActionType.FOLD.value}]
        to_call = max(0, self.highest_bet - player.round_bet)

        if to_call == 0:
            actions.append({"type": ActionType.CHECK.value})
        else:
            actions.append({"type": ActionType.CALL.value, "amount": min(to_call, player.stack)})

        cap = self._max_bet_to(player)
        if cap > self.highest_bet:
            actions.append({
                "type": ActionType.BET.value,
                "min": min(minimum_bet_to(self.highest_bet, self.big_blind), cap),
                "max": cap,
            })

        return actions

    def get_state(self, for_player_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Get the current game state.

        Args:
            for_player_id: If specified, include private info for this player

        Returns:
            Game state dictionary
        """
        public_info = {
            "game_id": self.game_id,
            "hand_id": self.hand_id,
            "phase": self.phase.name,
            "pot": self.pot,
            "highest_bet": self.highest_bet,
            "board": [c.to_dict() for c in self.community_cards],
            "dealer_position": self.dealer_position,
            "small_blind_position": self.small_blind_position,
            "big_blind_position": self.big_blind_position,
            "current_player": self.current_player.player_id if self.current_player else None,
            "players": [p.to_public_dict() for p in self.players],
            "result": self.result.to_dict() if self.result else None,
        }

        if self.result is not None and not self.result.by_fold:
            public_info["showdown"] = [
                {"id": p.player_id, "cards": [c.to_dict() for c in p.hole_cards]}
                for p in self.players
            ]

        private_info: Dict[str, Any] = {}
        player = self.get_player(for_player_id) if for_player_id else None
        if player:
            legal = self.get_legal_actions(player)
            bet_range = next((a for a in legal if a["type"] == ActionType.BET.value), None)
            private_info = {
                "hand": [c.to_dict() for c in player.hole_cards],
                "available_moves": [a["type"] for a in legal],
                "legal_actions": legal,
                "chips_to_call": max(0, self.highest_bet - player.round_bet),
                "round_bet": player.round_bet,
                "bet_range": {"min": bet_range["min"], "max": bet_range["max"]} if bet_range else None,
            }

        return {
            "public_info": public_info,
            "private_info": private_info,
        }

    def showdown_record(self) -> HandRecord:
        """Snapshot of the finished hand for settlement."""
        if self.result is None:
            raise ValueError("Hand is not finished")
        return HandRecord(
            game_id=self.game_id,
            hand_id=self.hand_id,
            player_ids=[p.player_id for p in self.players],
            hole_cards=[cards_to_ints(p.hole_cards) for p in self.players],
            community_cards=cards_to_ints(self.community_cards),
            result=self.result,
        )

    def get_winners(self) -> List[Dict[str, Any]]:
        """Get winner information after hand is complete."""
        if self.result is None:
            return []
        winners = []
        for seat, amount in enumerate(self.result.payouts):
            if amount == 0:
                continue
            player = self.players[seat]
            if self.result.by_fold:
                hand_type = "WIN_BY_FOLD"
                description = "Opponent folded"
            else:
                hand_type = self.result.values[seat].rank.name
                description = get_hand_description(player.hole_cards + self.community_cards)
            winners.append({
                "player_id": player.player_id,
                "amount": amount,
                "stack": player.stack,
                "hand_type": hand_type,
                "description": description,
            })
        return winners

    def _log_action(self, action: str, details: Dict[str, Any]) -> None:
        self.hand_history.append({
            "action": action,
            "phase": self.phase.name,
            **details
        })
