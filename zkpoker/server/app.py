"""
FastAPI Application Entry Point for zkpoker.

This module creates and configures the FastAPI application with:
- HTTP routes for the single-table game against the bot
- WebSocket endpoint for rooms with pushed state snapshots
- CORS middleware for development
"""

import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from zkpoker import __version__
from zkpoker.config import Config, load_config
from zkpoker.server.routes import close_session, router
from zkpoker.server.websocket import GameManager, websocket_endpoint

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def create_app(config: Optional[Config] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        config: Settings to use; loaded from YAML/environment if omitted

    Returns:
        Configured FastAPI application instance
    """
    config = config or load_config()
    logging.basicConfig(level=config.logging.level, format=LOG_FORMAT)

    app = FastAPI(
        title="zkpoker",
        description="Heads-up Hold'em with zero-knowledge hand settlement",
        version=__version__,
    )
    app.state.config = config
    app.state.game_manager = GameManager(config)

    # CORS middleware for development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)
    app.websocket("/ws")(websocket_endpoint)

    @app.on_event("startup")
    async def startup_event():
        logger.info(
            f"zkpoker server starting up (ledger: {config.ledger.backend}, "
            f"proofs: {'on' if config.proof.enabled else 'off'})"
        )

    @app.on_event("shutdown")
    async def shutdown_event():
        await close_session()
        await app.state.game_manager.close()
        logger.info("zkpoker server shutting down...")

    return app


# Create the application instance
app = create_app()


def main():
    """Run the server (for use as entry point)."""
    import uvicorn
    uvicorn.run(
        "zkpoker.server.app:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )


if __name__ == "__main__":
    main()
