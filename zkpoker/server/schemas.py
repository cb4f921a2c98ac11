"""
Pydantic schemas for API request/response validation.
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


# ============= Request Schemas =============

class InitGameRequest(BaseModel):
    """Request to initialize a heads-up match against the bot."""
    big_blind: Optional[int] = Field(default=None, gt=0)
    small_blind: Optional[int] = Field(default=None, gt=0)
    buy_in: Optional[int] = Field(default=None, gt=0)
    bot_agent: Optional[str] = Field(default=None, description="Bot strategy: random or call")
    seed: Optional[int] = Field(default=None, description="Deck seed, for reproducible development games")


class ActionRequest(BaseModel):
    """Request to take a game action."""
    action_type: str = Field(..., description="Action type: FOLD, CHECK, CALL, BET (RAISE is an alias)")
    amount: Optional[int] = Field(default=0, ge=0, description="Bet-to amount for BET")


# ============= Response Schemas =============

class SettlementSchema(BaseModel):
    """Settlement status of a finished hand."""
    hand_id: int
    status: str
    winner_index: Optional[int] = None
    payouts: List[int] = []
    by_fold: Optional[bool] = None
    tx_reference: Optional[str] = None
    errors: List[str] = []
    attestations: Dict[str, Dict[str, Any]] = {}
