#!/usr/bin/env python3
"""
Billing Auth API -- OTP verification, password login and refresh-token sessions.

Usage:
  python main.py
  python main.py --port 8080
  python main.py --host 127.0.0.1 --reload

Configuration comes from the environment or a .env file (see core/config.py):
  JWT_SECRET, JWT_REFRESH_SECRET   signing secrets (>= 32 chars, required unless DEBUG=true)
  DATABASE_URL                     SQLAlchemy URL, defaults to a local SQLite file
  FIRST_ADMIN_NAME/EMAIL/PASSWORD  bootstrap credentials for the first Admin
  EMAIL_HOST/PORT/USER/PASS/FROM   SMTP relay; EMAIL_BACKEND=console logs mail instead
"""

import argparse

import uvicorn

from core.config import get_settings


def main() -> None:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Serve the billing auth API.")
    parser.add_argument("--host", default=settings.host, help=f"bind address (default: {settings.host})")
    parser.add_argument("--port", type=int, default=settings.port, help=f"bind port (default: {settings.port})")
    parser.add_argument("--reload", action="store_true", help="restart on code changes (development)")
    args = parser.parse_args()

    uvicorn.run("api.main:app", host=args.host, port=args.port, reload=args.reload)


if __name__ == "__main__":
    main()
