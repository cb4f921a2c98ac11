"""
zkpoker Server - FastAPI + WebSocket Server Layer
"""

from zkpoker.server.app import app, create_app

__all__ = ["app", "create_app"]
