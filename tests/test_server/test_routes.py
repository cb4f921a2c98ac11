"""
Tests for the HTTP routes and the WebSocket endpoint.
"""

import time

import pytest
from fastapi.testclient import TestClient
from zkpoker.config import Config, LedgerConfig
from zkpoker.server.app import create_app


@pytest.fixture
def client():
    config = Config(ledger=LedgerConfig(confirm_delay=0.0, poll_interval=0.005))
    app = create_app(config)
    with TestClient(app) as client:
        client.post("/reset_game")
        yield client
        client.post("/reset_game")


def wait_for_settlement(client, hand_id, attempts=200):
    for _ in range(attempts):
        response = client.get(f"/settlement/{hand_id}")
        if response.status_code == 200 and response.json()["status"] != "PENDING":
            return response.json()
        time.sleep(0.01)
    raise AssertionError(f"hand {hand_id} never settled")


def receive_until(ws, msg_type):
    for _ in range(50):
        message = ws.receive_json()
        if message["type"] == msg_type:
            return message
    raise AssertionError(f"no {msg_type} message")


class TestInitGame:

    def test_requires_init(self, client):
        """Test routes refuse to run before a game exists."""
        assert client.post("/start_hand").status_code == 400
        assert client.get("/get_game_state").status_code == 400

    def test_defaults(self, client):
        """Test a match against the configured bot."""
        data = client.post("/init_game", json={}).json()
        assert data["success"]
        assert data["players"] == ["human", "bot"]
        assert (data["small_blind"], data["big_blind"], data["buy_in"]) == (10, 20, 1000)

    def test_overrides(self, client):
        """Test table settings from the request."""
        data = client.post("/init_game", json={"small_blind": 25, "big_blind": 50, "buy_in": 500}).json()
        assert (data["small_blind"], data["big_blind"], data["buy_in"]) == (25, 50, 500)

    def test_invalid_table(self, client):
        """Test inconsistent blinds are rejected."""
        response = client.post("/init_game", json={"small_blind": 50, "big_blind": 20})
        assert response.status_code == 400

    def test_unknown_bot(self, client):
        """Test an unknown bot strategy is rejected."""
        assert client.post("/init_game", json={"bot_agent": "gto"}).status_code == 400


class TestPlay:

    def test_hand_flow(self, client):
        """Test a call, the bot's checks and the flop."""
        client.post("/init_game", json={"seed": 11})
        started = client.post("/start_hand").json()
        assert started["hand_id"] == 1
        assert started["bot_actions"] == []

        state = client.get("/get_game_state").json()
        assert len(state["private_info"]["hand"]) == 2
        assert state["public_info"]["pot"] == 30

        legal = client.get("/legal_actions").json()
        assert legal["player_id"] == "human"
        assert {a["type"] for a in legal["actions"]} == {"FOLD", "CALL", "BET"}

        data = client.post("/take_action", json={"action_type": "CALL"}).json()
        assert data["success"]
        assert data["amount"] == 10
        assert [a["action_type"] for a in data["bot_actions"]] == ["CHECK", "CHECK"]

        state = client.get("/get_game_state").json()
        assert state["public_info"]["phase"] == "FLOP"
        assert len(state["public_info"]["board"]) == 3

    def test_illegal_action(self, client):
        """Test an illegal action is reported, not applied."""
        client.post("/init_game", json={})
        client.post("/start_hand")
        data = client.post("/take_action", json={"action_type": "CHECK"}).json()
        assert "error" in data

    def test_unknown_action_type(self, client):
        """Test a malformed action type."""
        client.post("/init_game", json={})
        client.post("/start_hand")
        response = client.post("/take_action", json={"action_type": "SHOVE"})
        assert response.status_code == 400

    def test_fold_and_settlement(self, client):
        """Test a fold ends the hand and is settled on the ledger."""
        client.post("/init_game", json={})
        client.post("/start_hand")
        data = client.post("/take_action", json={"action_type": "FOLD"}).json()
        assert data["winners"][0]["player_id"] == "bot"
        assert data["pot"] == 30
        assert "showdown" not in data

        settlement = wait_for_settlement(client, 1)
        assert settlement["status"] == "LEDGER_CONFIRMED"
        assert settlement["by_fold"]
        assert settlement["payouts"] == [0, 30]

    def test_unknown_settlement(self, client):
        """Test a hand that never happened."""
        client.post("/init_game", json={})
        assert client.get("/settlement/9").status_code == 404

    def test_retry_settlement(self, client):
        """Test a retry returns the hand's outcome and unknown hands are 404."""
        client.post("/init_game", json={})
        assert client.post("/settlement/9/retry").status_code == 404

        client.post("/start_hand")
        client.post("/take_action", json={"action_type": "FOLD"})
        wait_for_settlement(client, 1)
        response = client.post("/settlement/1/retry")
        assert response.status_code == 200
        assert response.json()["status"] == "LEDGER_CONFIRMED"

    def test_legal_actions_between_hands(self, client):
        """Test no actions are offered without a running hand."""
        client.post("/init_game", json={})
        assert client.get("/legal_actions").json()["actions"] == []

    def test_reset(self, client):
        """Test reset drops the match."""
        client.post("/init_game", json={})
        assert client.post("/reset_game").json()["success"]
        assert client.get("/get_game_state").status_code == 400


class TestWebSocket:

    def test_join_and_play(self, client):
        """Test joining a room, starting a hand and acting."""
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "join", "room_id": "r1", "player_id": "human"})
            state = receive_until(ws, "state")
            assert state["public_info"]["phase"] == "WAITING"

            ws.send_json({"type": "start_hand"})
            assert receive_until(ws, "hand_started")["hand_id"] == 1

            ws.send_json({"type": "action", "action": "FOLD"})
            result = receive_until(ws, "action_result")
            assert result["action"] == "FOLD"

    def test_join_required(self, client):
        """Test the first message must be a join."""
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "action", "action": "CALL"})
            assert ws.receive_json()["type"] == "error"

    def test_unknown_message(self, client):
        """Test unknown message types are answered with an error."""
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "join", "room_id": "r2", "player_id": "human"})
            receive_until(ws, "state")
            ws.send_json({"type": "dance"})
            assert receive_until(ws, "error")["message"].startswith("Unknown message type")
