"""Tests for the main.py command line entry point.

serve is not started here (it blocks in uvicorn); its argument parsing is
covered by patching uvicorn.run.
"""

import time
import uuid

import uvicorn

import main as cli
from auth.sessions import DatabaseSessionStore
from core.config import Settings
from core.database import create_db_engine


def test_no_command_prints_help(capsys):
    assert cli.main([]) == 1
    assert "serve" in capsys.readouterr().out


def test_serve_passes_options_to_uvicorn(monkeypatch):
    calls = {}
    monkeypatch.setattr(uvicorn, "run", lambda app, **kwargs: calls.update(app=app, **kwargs))
    assert cli.main(["serve", "--host", "0.0.0.0", "--port", "9000"]) == 0
    assert calls == {"app": "asgi:app", "host": "0.0.0.0", "port": 9000, "reload": False}


def test_purge_sessions_memory_backend(monkeypatch, capsys):
    monkeypatch.setattr(cli, "get_settings", lambda: Settings(_env_file=None, secret_key="k" * 32))
    assert cli.main(["purge-sessions"]) == 0
    assert "nothing to purge" in capsys.readouterr().out


def test_purge_sessions_database_backend(monkeypatch, capsys):
    db_url = f"sqlite:///file:cli_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"
    # Keep one connection open so the shared in-memory database outlives the CLI's engine.
    keeper = create_db_engine(db_url)
    with keeper.connect():
        seeded = DatabaseSessionStore(keeper, ttl_seconds=60, clock=lambda: time.time() - 3600)
        seeded.create(1)
        seeded.create(2)
        DatabaseSessionStore(keeper, ttl_seconds=3600).create(3)

        settings = Settings(_env_file=None, secret_key="k" * 32, session_backend="database", database_url=db_url)
        monkeypatch.setattr(cli, "get_settings", lambda: settings)
        assert cli.main(["purge-sessions"]) == 0
    keeper.dispose()
    assert "Purged 2 expired session(s)." in capsys.readouterr().out
