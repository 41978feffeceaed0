#!/usr/bin/env python3
"""
Startup script for the MCP Tool Hub HTTP API
"""

import argparse
import logging

import uvicorn

from toolhub.api.app import create_app
from toolhub.core.config import get_settings


def main():
    s = get_settings()
    parser = argparse.ArgumentParser(description="Run the MCP Tool Hub API")
    parser.add_argument("--host", default=s.api_host)
    parser.add_argument("--port", type=int, default=s.api_port)
    args = parser.parse_args()

    logging.basicConfig(level=getattr(logging, s.log_level.upper(), logging.INFO))

    print("🚀 Starting MCP Tool Hub API...")
    print(f"📱 Listening on http://{args.host}:{args.port}/api/v1")
    print("🛑 Press Ctrl+C to stop the server")
    print("=" * 60)

    uvicorn.run(create_app(s), host=args.host, port=args.port)


if __name__ == "__main__":
    main()
