"""
HTTP API Routes for zkpoker.

Single-table mode: one human seat plays the configured bot. The human's
action is applied, then the bot acts until it is the human's turn again.
Ledger writes and settlement run in the background; responses never wait for
them.
"""

import random
from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException, Request

from zkpoker.config import Config
from zkpoker.core.game import ActionResult
from zkpoker.core.rules import action_from_dict
from zkpoker.server.schemas import ActionRequest, InitGameRequest, SettlementSchema
from zkpoker.settlement.session import MatchSession, build_session

router = APIRouter()

# Global session for single-table mode
_session: Optional[MatchSession] = None


def get_session() -> MatchSession:
    """Get the current session."""
    if _session is None:
        raise HTTPException(status_code=400, detail="Game not initialized")
    return _session


async def close_session() -> None:
    global _session
    if _session is not None:
        await _session.close()
        _session = None


def _table_overrides(config: Config, req: InitGameRequest) -> Config:
    updates = {
        key: value
        for key, value in req.model_dump(include={"big_blind", "small_blind", "buy_in", "bot_agent"}).items()
        if value is not None
    }
    if not updates:
        return config
    table = config.table.model_validate({**config.table.model_dump(), **updates})
    return config.model_copy(update={"table": table})


@router.post("/init_game")
async def init_game(req: InitGameRequest, request: Request) -> Dict[str, Any]:
    """Create a new match, replacing any running one."""
    global _session
    try:
        config = _table_overrides(request.app.state.config, req)
        rng = random.Random(req.seed) if req.seed is not None else None
        session = build_session(config, rng=rng)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    await close_session()
    _session = session
    game = session.game
    return {
        "success": True,
        "message": "Game initialized",
        "game_id": game.game_id,
        "players": [p.player_id for p in game.players],
        "big_blind": game.big_blind,
        "small_blind": game.small_blind,
        "buy_in": game.buy_in,
    }


@router.post("/start_hand")
async def start_hand() -> Dict[str, Any]:
    """Post blinds, deal and let the bot act if it is first."""
    session = get_session()
    if not await session.start_hand():
        detail = "Game over" if session.game.is_game_over() else "Cannot start hand"
        raise HTTPException(status_code=400, detail=detail)

    bot_actions = await session.play_opponent()
    return {
        "success": True,
        "message": f"Hand #{session.game.hand_id} started",
        "hand_id": session.game.hand_id,
        "bot_actions": [_action_summary(r) for r in bot_actions],
    }


@router.get("/get_game_state")
async def get_game_state(player_id: Optional[str] = None) -> Dict[str, Any]:
    """Game state with private info for player_id (the human seat by default)."""
    session = get_session()
    return session.get_state(player_id or session.game.players[0].player_id)


@router.post("/take_action")
async def take_action(req: ActionRequest) -> Dict[str, Any]:
    """
    Take an action for the human seat.

    Processes the action, lets the bot reply, and includes the hand result
    once the hand is over.
    """
    session = get_session()
    game = session.game
    human_id = game.players[0].player_id

    try:
        action = action_from_dict({"type": req.action_type, "amount": req.amount})
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    result = await session.act(action, human_id)
    if not result.success:
        return {"error": result.message}

    bot_actions = await session.play_opponent()

    response: Dict[str, Any] = _action_summary(result)
    response["success"] = True
    response["message"] = result.message
    response["bot_actions"] = [_action_summary(r) for r in bot_actions]

    if game.result is not None:
        response["winners"] = game.get_winners()
        response["pot"] = game.result.pot
        response["board"] = [card.to_dict() for card in game.community_cards]
        if not game.result.by_fold:
            response["showdown"] = [
                {"id": p.player_id, "cards": [c.to_dict() for c in p.hole_cards]}
                for p in game.players
            ]
    return response


@router.get("/legal_actions")
async def get_legal_actions() -> Dict[str, Any]:
    """Legal actions for the player to act."""
    session = get_session()
    if not session.game.is_hand_running():
        return {"actions": [], "message": "No hand in progress"}
    return {
        "player_id": session.game.current_player.player_id,
        "actions": session.game.get_legal_actions(),
    }


@router.get("/settlement/{hand_id}", response_model=SettlementSchema)
async def get_settlement(hand_id: int) -> Dict[str, Any]:
    """Ledger settlement status of a finished hand."""
    session = get_session()
    outcome = session.settlement(hand_id)
    if outcome is not None:
        return outcome.to_dict()
    if session.orchestrator.is_settling(hand_id):
        return {"hand_id": hand_id, "status": "PENDING"}
    raise HTTPException(status_code=404, detail=f"No settlement for hand {hand_id}")


@router.post("/settlement/{hand_id}/retry", response_model=SettlementSchema)
async def retry_settlement(hand_id: int) -> Dict[str, Any]:
    """Write a LOCAL_ONLY hand to the ledger again. Waits for the new outcome."""
    session = get_session()
    outcome = await session.retry_settlement(hand_id)
    if outcome is None:
        raise HTTPException(status_code=404, detail=f"No settlement for hand {hand_id}")
    return outcome.to_dict()


@router.post("/reset_game")
async def reset_game() -> Dict[str, Any]:
    """Drop the current match (for development/testing)."""
    await close_session()
    return {"success": True, "message": "Game reset"}


def _action_summary(result: ActionResult) -> Dict[str, Any]:
    return {
        "action_type": result.action_type.value if result.action_type else None,
        "amount": result.amount,
        "message": result.message,
    }
