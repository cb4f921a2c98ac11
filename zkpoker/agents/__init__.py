"""
Opponent agents for zkpoker.
"""

from zkpoker.agents.base import BaseAgent, decide_action, safe_default
from zkpoker.agents.random_agent import RandomAgent, CallAgent, create_agent

__all__ = [
    "BaseAgent",
    "decide_action",
    "safe_default",
    "RandomAgent",
    "CallAgent",
    "create_agent",
]
