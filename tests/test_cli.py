"""
tests/test_cli.py -- Tests for the operator CLI in main.py.

Each test points the commands at a throwaway SQLite file under tmp_path
through --database-url, so nothing touches the configured database.
"""

from __future__ import annotations

import pytest

import main as cli
from auth.models import Role
from auth.store import AccountStore
from auth.tokens import verify_password
from catalog.store import CatalogStore
from core.config import get_settings
from core.db import Database


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'cli.db'}"


def _accounts(url: str) -> tuple[Database, AccountStore]:
    db = Database(url)
    return db, AccountStore(db)


def test_seed_is_idempotent(db_url, capsys):
    assert cli.main(["--database-url", db_url, "seed"]) == 0
    assert "8 categories inserted" in capsys.readouterr().out
    assert cli.main(["--database-url", db_url, "seed"]) == 0
    assert "0 categories inserted" in capsys.readouterr().out

    db = Database(db_url)
    try:
        assert len(CatalogStore(db).list_categories()) == 8
    finally:
        db.close()


def test_create_admin(db_url, capsys):
    code = cli.main(
        ["--database-url", db_url, "create-admin", "--email", "Root@Example.com", "--password", "rootpass1"]
    )
    assert code == 0
    assert "created" in capsys.readouterr().out

    db, accounts = _accounts(db_url)
    try:
        admin = accounts.get_by_email("root@example.com")
        assert admin.role is Role.admin
        assert admin.first_name == "Admin"
        assert verify_password("rootpass1", admin.password_hash)
    finally:
        db.close()


def test_create_admin_promotes_existing_account(db_url, capsys):
    cli.cmd_create_admin("ops@example.com", "firstpass", "Op", "S", database_url=db_url)
    db, accounts = _accounts(db_url)
    try:
        accounts.update_account(accounts.get_by_email("ops@example.com").id, role=Role.user, is_active=False)
    finally:
        db.close()

    assert cli.cmd_create_admin("ops@example.com", "ignored", "Op", "S", database_url=db_url) == 0
    assert "promoted" in capsys.readouterr().out

    db, accounts = _accounts(db_url)
    try:
        account = accounts.get_by_email("ops@example.com")
        assert account.role is Role.admin
        assert account.is_active is True
        assert verify_password("firstpass", account.password_hash)
    finally:
        db.close()


def test_create_admin_rejects_short_password(db_url, capsys):
    assert cli.cmd_create_admin("tiny@example.com", "123", "A", "B", database_url=db_url) == 1
    assert "at least" in capsys.readouterr().out


def test_create_admin_prompts_for_password(db_url, monkeypatch):
    monkeypatch.setattr(cli.getpass, "getpass", lambda prompt: "promptedpass")
    assert cli.cmd_create_admin("prompt@example.com", None, "A", "B", database_url=db_url) == 0

    db, accounts = _accounts(db_url)
    try:
        assert verify_password("promptedpass", accounts.get_by_email("prompt@example.com").password_hash)
    finally:
        db.close()


def test_serve_passes_database_url_to_the_app(db_url, monkeypatch):
    calls = []
    monkeypatch.setattr("uvicorn.run", lambda app, **kwargs: calls.append((app, kwargs)))
    monkeypatch.setenv("DATABASE_URL", "sqlite:///./unused.db")
    try:
        assert cli.main(["--database-url", db_url, "serve", "--port", "9001"]) == 0
        assert get_settings().database_url == db_url
    finally:
        get_settings.cache_clear()
    assert calls == [("asgi:app", {"host": "127.0.0.1", "port": 9001, "reload": False})]


def test_no_command_prints_help(capsys):
    assert cli.main([]) == 0
    assert "create-admin" in capsys.readouterr().out
