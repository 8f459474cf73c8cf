#!/usr/bin/env python3
"""
OtpGate -- Email/password accounts with OTP email verification.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 8080
  python main.py serve --reload
  python main.py purge-pending

Environment variables (see core/config.py for the full list):
  ENVIRONMENT   "production" (default) or "development". Production requires
                SECRET_KEY and marks the session cookie Secure.
  SECRET_KEY    JWT signing key, at least 32 characters.
  MAIL_MODE     "console" (default), "smtp" or "mailgun".
  DATABASE_URL  SQLAlchemy URL. Defaults to a SQLite file under auth/.
"""

import argparse
import logging
import sys

from auth.store import PendingRegistrationStore, create_db_engine
from core.config import get_settings

logger = logging.getLogger("otpgate.cli")


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("api.main:create_app", factory=True, host=args.host, port=args.port, reload=args.reload)
    return 0


def _purge_pending(args: argparse.Namespace) -> int:
    """Run one expiry sweep over pending registrations."""
    settings = get_settings()
    engine = create_db_engine(settings.database_url)
    try:
        removed = PendingRegistrationStore(engine).purge_expired()
    finally:
        engine.dispose()
    print(f"Removed {removed} expired pending registration(s).")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="otpgate",
        description="OtpGate -- OTP-verified signup and cookie sessions.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API with uvicorn.")
    serve.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1).")
    serve.add_argument("--port", type=int, default=8000, help="Bind port (default: 8000).")
    serve.add_argument("--reload", action="store_true", help="Reload on code changes (development).")
    serve.set_defaults(func=_serve)

    purge = sub.add_parser("purge-pending", help="Delete expired pending registrations and exit.")
    purge.set_defaults(func=_purge_pending)

    return parser


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    args = build_parser().parse_args(argv)
    try:
        return args.func(args)
    except ValueError as e:
        # Settings validation (missing SECRET_KEY, bad MAIL_MODE, ...).
        logger.error("Configuration error: %s", e)
        return 2


if __name__ == "__main__":
    sys.exit(main())
