"""
WebSocket handling for real-time game communication.

This module provides:
- GameRoom: one match session plus the sockets watching it
- GameManager: creates rooms and routes player messages
- websocket_endpoint: join handshake and message loop

A room registers itself as a session listener, so every transition (action,
new street, hand over, settlement finished) pushes a personalized state
snapshot to each connected player.
"""

from __future__ import annotations
from typing import Any, Dict, Optional
from dataclasses import dataclass, field
import logging

from fastapi import WebSocket, WebSocketDisconnect

from zkpoker.config import Config
from zkpoker.core.rules import action_from_dict
from zkpoker.settlement.session import MatchSession, build_session


logger = logging.getLogger(__name__)


@dataclass
class GameRoom:
    """A match session and the players connected to it."""
    room_id: str
    session: MatchSession
    connections: Dict[str, WebSocket] = field(default_factory=dict)

    def __post_init__(self):
        self.session.add_listener(self._on_session_event)

    async def _on_session_event(self, event: str, session: MatchSession) -> None:
        await self.send_state_to_all(event)

    async def broadcast(self, message: Dict[str, Any], exclude: Optional[str] = None):
        """Broadcast a message to all connected players."""
        for player_id, ws in list(self.connections.items()):
            if player_id != exclude:
                try:
                    await ws.send_json(message)
                except Exception as e:
                    logger.error(f"Error sending to {player_id}: {e}")

    async def send_state_to_all(self, event: str = "state"):
        """Send personalized game state to each connected player."""
        for player_id, ws in list(self.connections.items()):
            try:
                state = self.session.get_state(player_id)
                await ws.send_json({"type": "state", "event": event, **state})
            except Exception as e:
                logger.error(f"Error sending state to {player_id}: {e}")


class GameManager:
    """
    Manages game rooms and player connections.

    Usage:
        manager = GameManager(config)
        room_id = manager.create_room()
        await manager.handle_message(room_id, player_id, message)
        await manager.disconnect(room_id, player_id)
    """

    def __init__(self, config: Config):
        self.config = config
        self.rooms: Dict[str, GameRoom] = {}
        self._room_counter = 0

    def create_room(self, room_id: Optional[str] = None) -> str:
        """Create a room with a fresh session against the configured bot."""
        if room_id is None:
            self._room_counter += 1
            room_id = f"room-{self._room_counter}"
        self.rooms[room_id] = GameRoom(room_id=room_id, session=build_session(self.config))
        logger.info(f"Created room {room_id}")
        return room_id

    def get_room(self, room_id: str) -> Optional[GameRoom]:
        return self.rooms.get(room_id)

    async def disconnect(self, room_id: str, player_id: str):
        """Disconnect a player from a room."""
        room = self.get_room(room_id)
        if room and player_id in room.connections:
            del room.connections[player_id]
            logger.info(f"Player {player_id} disconnected from {room_id}")
            await room.broadcast({"type": "player_left", "player_id": player_id})

    async def close(self) -> None:
        for room in self.rooms.values():
            await room.session.close()
        self.rooms.clear()

    async def handle_message(
        self,
        room_id: str,
        player_id: str,
        message: Dict[str, Any]
    ) -> Dict[str, Any]:
        """
        Handle a message from a player.

        Args:
            room_id: The room ID
            player_id: The player ID
            message: The message dict with 'type' and optional data

        Returns:
            Response dict
        """
        room = self.get_room(room_id)
        if room is None:
            return {"type": "error", "message": "Room not found"}

        msg_type = message.get("type", "")

        if msg_type == "action":
            return await self._handle_action(room, player_id, message)
        elif msg_type == "start_hand":
            return await self._handle_start_hand(room)
        elif msg_type == "get_state":
            return {"type": "state", **room.session.get_state(player_id)}
        elif msg_type == "get_settlement":
            return self._handle_get_settlement(room, message)
        else:
            return {"type": "error", "message": f"Unknown message type: {msg_type}"}

    async def _handle_action(
        self,
        room: GameRoom,
        player_id: str,
        message: Dict[str, Any]
    ) -> Dict[str, Any]:
        session = room.session
        try:
            action = action_from_dict({"type": message.get("action"), "amount": message.get("amount")})
        except ValueError as e:
            return {"type": "error", "message": str(e)}

        result = await session.act(action, player_id)
        if not result.success:
            return {"type": "error", "message": result.message}

        await session.play_opponent()
        return {
            "type": "action_result",
            "success": True,
            "action": result.action_type.value,
            "amount": result.amount,
        }

    async def _handle_start_hand(self, room: GameRoom) -> Dict[str, Any]:
        session = room.session
        if not await session.start_hand():
            return {"type": "error", "message": "Cannot start hand"}
        await session.play_opponent()
        return {"type": "hand_started", "hand_id": session.game.hand_id}

    def _handle_get_settlement(self, room: GameRoom, message: Dict[str, Any]) -> Dict[str, Any]:
        hand_id = int(message.get("hand_id") or room.session.game.hand_id)
        outcome = room.session.settlement(hand_id)
        if outcome is None:
            return {"type": "settlement", "hand_id": hand_id, "status": "PENDING"}
        return {"type": "settlement", **outcome.to_dict()}


async def websocket_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint for game communication.

    Protocol:
    1. Client connects and sends: {"type": "join", "room_id": "...", "player_id": "..."}
    2. Server sends game state
    3. Client sends actions: {"type": "action", "action": "CALL", "amount": 0}
    4. Server pushes state snapshots after every transition
    """
    manager: GameManager = websocket.app.state.game_manager
    room_id: Optional[str] = None
    player_id: Optional[str] = None

    try:
        await websocket.accept()
        join_msg = await websocket.receive_json()

        if join_msg.get("type") != "join":
            await websocket.send_json({"type": "error", "message": "First message must be join"})
            await websocket.close()
            return

        room_id = join_msg.get("room_id")
        player_id = join_msg.get("player_id")
        if not room_id or not player_id:
            await websocket.send_json({"type": "error", "message": "room_id and player_id required"})
            await websocket.close()
            return

        room = manager.get_room(room_id)
        if room is None:
            manager.create_room(room_id)
            room = manager.get_room(room_id)

        room.connections[player_id] = websocket
        logger.info(f"Player {player_id} joined {room_id}")
        await websocket.send_json({"type": "state", **room.session.get_state(player_id)})

        while True:
            message = await websocket.receive_json()
            response = await manager.handle_message(room_id, player_id, message)
            await websocket.send_json(response)

    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected: {player_id}")
    except Exception as e:
        logger.error(f"WebSocket error: {e}")
    finally:
        if room_id and player_id:
            await manager.disconnect(room_id, player_id)
