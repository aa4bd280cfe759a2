"""Integration tests for main.py -- the operator CLI.

Each test points DATABASE_URL at a throwaway SQLite file, seeds it through
AccountStore, and runs main() with getpass patched. Assertions are on the exit
code and printed output.
"""

from __future__ import annotations

from unittest.mock import patch

import pytest

from auth.hashing import hash_password
from auth.models import Account, Credential
from auth.store import AccountStore
from core.config import get_settings
from main import main


@pytest.fixture
def db_url(tmp_path, monkeypatch):
    url = f"sqlite:///{tmp_path / 'cli_auth.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    get_settings.cache_clear()
    store = AccountStore(url)
    uid = store.create_account(Account(email="a@b.com", user_key="cli-key"))
    store.create_credential(Credential("password", "a@b.com", hash_password("pw1"), uid))
    store.create_credential(Credential("token", "token", "cli-token", uid))
    store.close()
    yield url
    get_settings.cache_clear()


def test_no_command_prints_help(capsys):
    assert main([]) == 2
    assert "usage" in capsys.readouterr().out


def test_login_success(db_url, capsys):
    with patch("main.getpass", return_value="pw1"):
        assert main(["login", "a@b.com"]) == 0
    out = capsys.readouterr().out
    assert "Logged in." in out
    assert "a@b.com" in out


def test_login_failure_uses_public_message(db_url, capsys):
    with patch("main.getpass", return_value="wrong"):
        assert main(["login", "a@b.com"]) == 1
    wrong_password = capsys.readouterr().out
    with patch("main.getpass", return_value="pw1"):
        assert main(["login", "nobody@b.com"]) == 1
    unknown_email = capsys.readouterr().out
    assert "Invalid email or password" in wrong_password
    assert wrong_password == unknown_email


def test_token_login(db_url, capsys):
    assert main(["token", "cli-token"]) == 0
    assert main(["token", "bad-token"]) == 1
    assert "That token is invalid" in capsys.readouterr().out


def test_change_password(db_url, capsys):
    with patch("main.getpass", side_effect=["pw1", "pw2", "pw2"]):
        assert main(["change-password", "a@b.com"]) == 0
    with patch("main.getpass", return_value="pw2"):
        assert main(["login", "a@b.com"]) == 0


def test_change_password_mismatched_repeat(db_url, capsys):
    with patch("main.getpass", side_effect=["pw1", "pw2", "pw3"]):
        assert main(["change-password", "a@b.com"]) == 1
    assert "do not match" in capsys.readouterr().out


def test_reset_token_then_validate(db_url, capsys):
    assert main(["reset-token", "a@b.com"]) == 0
    line = next(line for line in capsys.readouterr().out.splitlines() if "Reset token:" in line)
    token = line.split("Reset token:")[1].strip()
    assert main(["validate-reset", token]) == 0
    assert main(["validate-reset", "bogus"]) == 1


def test_session(db_url, capsys):
    assert main(["session", "cli-key"]) == 0
    assert main(["session", "nope"]) == 1
    assert "That user key is invalid" in capsys.readouterr().out
