#!/usr/bin/env python3
"""
zkpoker - Server Startup Script

Usage:
    python run.py [--host HOST] [--port PORT] [--reload] [--config PATH]
"""

import argparse
import os

import uvicorn


def main():
    parser = argparse.ArgumentParser(description="zkpoker Server")
    parser.add_argument("--host", default="0.0.0.0", help="Host to bind to")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind to")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload")
    parser.add_argument("--config", help="YAML config file (default: $ZKPOKER_CONFIG)")
    args = parser.parse_args()

    if args.config:
        # The app is imported by uvicorn (possibly in a reloader subprocess)
        os.environ["ZKPOKER_CONFIG"] = args.config

    uvicorn.run(
        "zkpoker.server.app:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
    )


if __name__ == "__main__":
    main()
