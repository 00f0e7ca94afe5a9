#!/usr/bin/env python3
"""
TaskNest -- personal task management API.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 8080
  python main.py serve --reload
  python main.py purge-sessions

Environment variables (or .env):
  SECRET_KEY        Required unless DEBUG=true. At least 32 characters.
  DATABASE_URL      SQLAlchemy URL. Defaults to tasknest.db beside the code.
  SESSION_BACKEND   memory (default) or database.
"""

import argparse
from typing import Optional

from auth.sessions import build_session_store
from core.config import get_settings
from core.database import create_db_engine


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("asgi:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def _purge_sessions(args: argparse.Namespace) -> int:
    """Delete expired rows from the database session table.

    The memory backend lives inside the server process; there is nothing for
    a separate process to purge.
    """
    settings = get_settings()
    if settings.session_backend != "database":
        print(f"  Session backend is '{settings.session_backend}'; nothing to purge from here.")
        return 0
    engine = create_db_engine(settings.database_url)
    try:
        store = build_session_store("database", settings.session_expire_seconds, engine=engine)
        purged = store.purge_expired()
    finally:
        engine.dispose()
    print(f"  Purged {purged} expired session(s).")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="tasknest",
        description="Personal task management API.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py serve --reload
  SESSION_BACKEND=database python main.py purge-sessions
        """,
    )
    commands = parser.add_subparsers(dest="command", metavar="COMMAND")

    serve = commands.add_parser("serve", help="Run the API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    serve.add_argument("--port", type=int, default=8000, help="Bind port (default: 8000)")
    serve.add_argument("--reload", action="store_true", help="Restart on code changes (development only)")
    serve.set_defaults(handler=_serve)

    purge = commands.add_parser("purge-sessions", help="Delete expired sessions from the database backend")
    purge.set_defaults(handler=_purge_sessions)

    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 1
    return args.handler(args)


if __name__ == "__main__":
    raise SystemExit(main())
