"""
Base Agent Interface for zkpoker.

An agent is the opponent-decision collaborator: given the public context of
the hand and its own private view, it returns one legal action. The session
calls it through decide_action, which bounds the time an agent may take and
falls back to a safe move when the agent misbehaves.

Usage:
    class MyAgent(BaseAgent):
        def observe(self, game_state):
            pass

        def act(self, game_state, legal_actions):
            return Call()
"""

from __future__ import annotations
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from zkpoker.core.rules import Action, ActionType, Bet, Check, Fold


logger = logging.getLogger(__name__)

DEFAULT_DECISION_TIMEOUT = 10.0


class BaseAgent(ABC):
    """
    Abstract base class for poker agents.

    Attributes:
        player_id: Seat identity this agent plays for
        name: Human-readable name
    """

    def __init__(self, player_id: str, name: Optional[str] = None):
        self.player_id = player_id
        self.name = name or f"Agent-{player_id}"

    @abstractmethod
    def observe(self, game_state: Dict[str, Any]) -> None:
        """
        Observe the current game state.

        Args:
            game_state: Dictionary containing:
                - public_info: Public game information
                - private_info: Private information for this agent
                    - hand: Agent's hole cards
                    - legal_actions: List of legal action dicts
                    - chips_to_call: Amount needed to call
                    - bet_range: Valid bet-to amounts
        """

    @abstractmethod
    def act(self, game_state: Dict[str, Any], legal_actions: List[Dict[str, Any]]) -> Action:
        """
        Choose an action given the current game state.

        Args:
            game_state: Current game state dictionary
            legal_actions: List of legal action dicts, each containing:
                - type: FOLD, CHECK, CALL or BET
                - amount: Chips needed (for CALL)
                - min/max: Valid bet-to range (for BET)

        Returns:
            Fold(), Check(), Call() or Bet(amount)
        """

    async def act_async(self, game_state: Dict[str, Any], legal_actions: List[Dict[str, Any]]) -> Action:
        """Asynchronous entry point; remote agents override this."""
        self.observe(game_state)
        return self.act(game_state, legal_actions)

    def reset(self) -> None:
        """Reset internal state for a new match."""

    def on_hand_start(self, hand_number: int) -> None:
        """Called when a new hand starts."""

    def on_hand_end(self, result: Dict[str, Any]) -> None:
        """
        Called when a hand ends.

        Args:
            result: HandResult.to_dict() of the finished hand
        """

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.player_id}, {self.name})"


def safe_default(legal_actions: List[Dict[str, Any]]) -> Action:
    """Check if that is legal, otherwise fold."""
    if any(a["type"] == ActionType.CHECK.value for a in legal_actions):
        return Check()
    return Fold()


def is_legal(action: Action, legal_actions: List[Dict[str, Any]]) -> bool:
    for legal in legal_actions:
        if legal["type"] != action.kind.value:
            continue
        if isinstance(action, Bet):
            return legal["min"] <= action.amount <= legal["max"]
        return True
    return False


async def decide_action(
    agent: BaseAgent,
    game_state: Dict[str, Any],
    legal_actions: List[Dict[str, Any]],
    timeout: float = DEFAULT_DECISION_TIMEOUT,
) -> Action:
    """
    Ask an agent for its move within `timeout` seconds.

    A timeout, an exception or an illegal answer yields the safe default.
    """
    try:
        action = await asyncio.wait_for(agent.act_async(game_state, legal_actions), timeout)
    except asyncio.TimeoutError:
        logger.warning(f"{agent} did not answer within {timeout}s, using safe default")
        return safe_default(legal_actions)
    except Exception as e:
        logger.warning(f"{agent} failed to decide ({e}), using safe default")
        return safe_default(legal_actions)

    if not is_legal(action, legal_actions):
        logger.warning(f"{agent} chose illegal action {action!r}, using safe default")
        return safe_default(legal_actions)
    return action
