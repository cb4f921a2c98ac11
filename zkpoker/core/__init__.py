"""
zkpoker Core - Pure Python heads-up game logic

Cards, hand evaluation, rules and the betting state machine. No I/O.
"""

from zkpoker.core.card import Card, Deck
from zkpoker.core.player import Player, PlayerState
from zkpoker.core.hand import HandRank, HandValue, circuit_rank, evaluate
from zkpoker.core.rules import GamePhase, ActionType, Fold, Check, Call, Bet
from zkpoker.core.game import HeadsUpGame, HandRecord, HandResult

__all__ = [
    "Card",
    "Deck",
    "Player",
    "PlayerState",
    "HandRank",
    "HandValue",
    "circuit_rank",
    "evaluate",
    "GamePhase",
    "ActionType",
    "Fold",
    "Check",
    "Call",
    "Bet",
    "HeadsUpGame",
    "HandRecord",
    "HandResult",
]
