"""
Baseline agents.

RandomAgent makes random legal moves with configurable tendencies; CallAgent
always checks or calls. Both are used as the default bot opponent and in tests.
"""

import random
from typing import Any, Dict, List, Optional

from zkpoker.agents.base import BaseAgent, safe_default
from zkpoker.core.rules import Action, ActionType, Bet, Call, Check, Fold


class RandomAgent(BaseAgent):
    """
    An agent that selects random legal actions.

    The agent has configurable tendencies:
    - fold_probability: How likely to fold when facing a bet
    - bet_probability: How likely to bet or raise instead of check/call
    """

    def __init__(
        self,
        player_id: str,
        name: Optional[str] = None,
        fold_probability: float = 0.1,
        bet_probability: float = 0.3,
        rng: Optional[random.Random] = None,
    ):
        super().__init__(player_id, name or f"Random-{player_id}")
        self.fold_probability = fold_probability
        self.bet_probability = bet_probability
        self._rng = rng or random.Random()

    def observe(self, game_state: Dict[str, Any]) -> None:
        pass

    def act(self, game_state: Dict[str, Any], legal_actions: List[Dict[str, Any]]) -> Action:
        if not legal_actions:
            return Fold()

        by_type = {a["type"]: a for a in legal_actions}
        roll = self._rng.random()

        # Folding with a free check available is never sensible
        if ActionType.CALL.value in by_type and roll < self.fold_probability:
            return Fold()

        bet = by_type.get(ActionType.BET.value)
        if bet and roll < self.fold_probability + self.bet_probability:
            return Bet(self._rng.randint(bet["min"], bet["max"]))

        if ActionType.CHECK.value in by_type:
            return Check()
        if ActionType.CALL.value in by_type:
            return Call()
        return safe_default(legal_actions)


class CallAgent(BaseAgent):
    """An agent that always checks or calls."""

    def __init__(self, player_id: str, name: Optional[str] = None):
        super().__init__(player_id, name or f"Caller-{player_id}")

    def observe(self, game_state: Dict[str, Any]) -> None:
        pass

    def act(self, game_state: Dict[str, Any], legal_actions: List[Dict[str, Any]]) -> Action:
        types = {a["type"] for a in legal_actions}
        if ActionType.CHECK.value in types:
            return Check()
        if ActionType.CALL.value in types:
            return Call()
        return Fold()


def create_agent(kind: str, player_id: str, **kwargs) -> BaseAgent:
    """Build an agent by name: "random" or "call"."""
    agents = {"random": RandomAgent, "call": CallAgent}
    try:
        cls = agents[kind.lower()]
    except KeyError:
        raise ValueError(f"Unknown agent type: {kind!r}; expected one of {sorted(agents)}")
    return cls(player_id, **kwargs)
