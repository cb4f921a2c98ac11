"""
zkpoker - Heads-up Texas Hold'em with zero-knowledge settlement

A two-player poker engine whose showdowns are proven and recorded:
- Pure Python betting state machine and hand evaluator
- Commit-reveal of hole cards with proof-domain and ledger-domain hashes
- Proof pipeline with local verification and remote attestation
- Per-signer ledger sequencing and a local-first settlement orchestrator
- FastAPI + WebSocket server

Usage:
    from zkpoker.core import Card, HeadsUpGame, evaluate
    from zkpoker.agents import BaseAgent, RandomAgent
"""

__version__ = "0.1.0"

from zkpoker.core.card import Card, Deck
from zkpoker.core.player import Player
from zkpoker.core.game import HeadsUpGame
from zkpoker.core.hand import HandRank, evaluate

__all__ = [
    "Card",
    "Deck",
    "Player",
    "HeadsUpGame",
    "HandRank",
    "evaluate",
    "__version__",
]
