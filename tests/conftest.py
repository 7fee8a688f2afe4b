from __future__ import annotations

import contextlib
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from gastown_mail.config import clear_settings_cache
from gastown_mail.db import reset_database_state
from gastown_mail.errors import SessionCommandError
from gastown_mail.logs import reset_logging_state
from gastown_mail.registry import set_default_registry
from gastown_mail.store import SqlMailStore


@dataclass
class FakeSessions:
    """In-memory stand-in for the tmux session port."""

    active: set[str] = field(default_factory=set)
    fail_presence: bool = False
    fail_commands: bool = False
    checked: list[str] = field(default_factory=list)
    displayed: list[tuple[str, str]] = field(default_factory=list)
    injected: list[tuple[str, str]] = field(default_factory=list)

    def has_session(self, name: str) -> bool:
        self.checked.append(name)
        if self.fail_presence:
            raise SessionCommandError("tmux server not reachable")
        return name in self.active

    def display_message(self, name: str, text: str) -> None:
        if self.fail_commands:
            raise SessionCommandError("display-message failed")
        self.displayed.append((name, text))

    def send_keys_raw(self, name: str, text: str) -> None:
        if self.fail_commands:
            raise SessionCommandError("send-keys failed")
        self.injected.append((name, text))


@pytest.fixture
def isolated_env(tmp_path, monkeypatch):
    """Provide isolated database settings for tests and reset caches."""
    db_path: Path = tmp_path / "mail.sqlite3"
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_path}")
    monkeypatch.setenv("APP_ENVIRONMENT", "test")
    monkeypatch.setenv("MAIL_STORE_BACKEND", "sqlite")
    # A tmux binary that cannot exist: every session reads as absent.
    monkeypatch.setenv("TMUX_BIN", str(tmp_path / "no-such-tmux"))
    monkeypatch.setenv("MAIL_WAIT_POLL_SECONDS", "0")
    monkeypatch.delenv("GT_RIG", raising=False)
    monkeypatch.delenv("GT_POLECAT", raising=False)
    monkeypatch.delenv("GT_RIG_PREFIXES", raising=False)
    monkeypatch.chdir(tmp_path)
    clear_settings_cache()
    reset_database_state()
    set_default_registry(None)
    reset_logging_state()
    try:
        yield
    finally:
        reset_database_state()
        set_default_registry(None)
        reset_logging_state()
        clear_settings_cache()
        if db_path.exists():
            db_path.unlink()


@pytest.fixture
def store(isolated_env) -> SqlMailStore:
    return SqlMailStore()


@pytest.fixture
def sessions() -> FakeSessions:
    return FakeSessions()


@pytest.fixture(autouse=True)
def _global_resource_cleanup():
    """Dispose engine and registry state even for tests that skip ``isolated_env``."""
    yield
    with contextlib.suppress(Exception):
        reset_database_state()
    with contextlib.suppress(Exception):
        set_default_registry(None)
    with contextlib.suppress(Exception):
        clear_settings_cache()
