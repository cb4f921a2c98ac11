"""
Edge case tests for the heads-up betting machine.

Covers:
- Invalid and out-of-turn actions
- Bet sizing boundaries
- Stacks too short for the next blinds
- Chip conservation across many random hands
"""

import random

from zkpoker.core.game import HeadsUpGame
from zkpoker.core.rules import GamePhase, Fold, Check, Call, Bet


class TestInvalidActions:
    """Rejected actions leave the state untouched."""

    def test_action_when_not_your_turn(self, heads_up_game):
        """Test acting for the waiting player."""
        heads_up_game.start_hand()
        result = heads_up_game.take_action(Check(), player_id="bob")
        assert not result.success
        assert result.message == "Not your turn"
        assert heads_up_game.pot == 30

    def test_check_when_facing_bet(self, heads_up_game):
        """Test the small blind cannot check preflop."""
        heads_up_game.start_hand()
        result = heads_up_game.take_action(Check())
        assert not result.success
        assert "must call 10" in result.message
        assert heads_up_game.current_player is heads_up_game.players[0]

    def test_call_with_nothing_to_call(self, heads_up_game):
        """Test calling when the bets are level."""
        heads_up_game.start_hand()
        heads_up_game.take_action(Call())
        result = heads_up_game.take_action(Call())
        assert not result.success

    def test_action_after_hand_over(self, heads_up_game):
        """Test nothing is accepted once the hand is finished."""
        heads_up_game.start_hand()
        heads_up_game.take_action(Fold())
        result = heads_up_game.take_action(Check())
        assert not result.success
        assert result.message == "No hand in progress"


class TestBettingBoundaries:
    """Minimum sizes and caps."""

    def test_minimum_raise_enforced(self, heads_up_game):
        """Test a raise must reach twice the highest bet."""
        heads_up_game.start_hand()
        result = heads_up_game.take_action(Bet(30))
        assert not result.success
        assert "Minimum raise is to 40" in result.message
        assert heads_up_game.pot == 30

    def test_minimum_opening_bet(self, heads_up_game):
        """Test a postflop bet must be at least the big blind."""
        heads_up_game.start_hand()
        heads_up_game.take_action(Call())
        heads_up_game.take_action(Check())
        result = heads_up_game.take_action(Bet(10))
        assert not result.success
        assert "Minimum bet is to 20" in result.message

    def test_oversized_bet_becomes_all_in(self, heads_up_game):
        """Test a bet above the stack is clamped."""
        heads_up_game.start_hand()
        result = heads_up_game.take_action(Bet(5000))
        assert result.success
        assert result.amount == 990
        assert heads_up_game.players[0].is_all_in
        assert heads_up_game.highest_bet == 1000

    def test_short_all_in_below_minimum_allowed(self):
        """Test an all-in smaller than the minimum raise is still legal."""
        game = HeadsUpGame(big_blind=20, small_blind=10, buy_in=1000)
        game.players[0].stack = 35
        game.total_chips = 1035
        game.start_hand()
        result = game.take_action(Bet(35))
        assert result.success
        assert game.players[0].is_all_in

    def test_no_raise_when_opponent_all_in(self):
        """Test only call or fold remain against an all-in."""
        game = HeadsUpGame(big_blind=20, small_blind=10, buy_in=1000)
        game.players[1].stack = 20
        game.total_chips = 1020
        game.start_hand()
        types = [a["type"] for a in game.get_legal_actions()]
        assert types == ["FOLD", "CALL"]
        result = game.take_action(Bet(100))
        assert not result.success


class TestShortStacks:
    """Stacks that cannot cover the next blinds end the match."""

    def test_game_over_when_big_blind_uncovered(self):
        """Test a stack below the big blind ends the game."""
        game = HeadsUpGame(big_blind=20, small_blind=10, buy_in=25)
        game.start_hand()
        game.take_action(Fold())
        assert [p.stack for p in game.players] == [15, 35]

        assert not game.start_hand()
        assert game.is_game_over()
        assert game.phase == GamePhase.GAME_OVER
        assert not game.start_hand()

    def test_blind_all_in_runs_out(self):
        """Test a big blind that takes the whole stack still gets a showdown."""
        game = HeadsUpGame(big_blind=20, small_blind=10, buy_in=1000)
        game.players[1].stack = 20
        game.total_chips = 1020
        game.start_hand()
        assert game.players[1].is_all_in
        game.take_action(Call())
        assert game.phase == GamePhase.HAND_OVER
        assert len(game.community_cards) == 5
        assert game.chips_in_play == 1020


class TestChipConservation:
    """sum(stacks) + pot never changes."""

    def test_random_play(self):
        """Test conservation after every action of many random hands."""
        rng = random.Random(11)
        game = HeadsUpGame(big_blind=20, small_blind=10, buy_in=500, rng=random.Random(5))

        for _ in range(60):
            if not game.start_hand():
                break
            while game.is_hand_running():
                legal = game.get_legal_actions()
                choice = rng.choice(legal)
                if choice["type"] == "FOLD":
                    action = Fold()
                elif choice["type"] == "CHECK":
                    action = Check()
                elif choice["type"] == "CALL":
                    action = Call()
                else:
                    action = Bet(rng.randint(choice["min"], choice["max"]))
                assert game.take_action(action).success
                assert game.chips_in_play == game.total_chips
            assert game.pot == 0
            assert all(p.stack >= 0 for p in game.players)
            assert sum(game.result.payouts) == game.result.pot
