"""Application configuration loaded via python-decouple with typed helpers."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Final, Protocol, cast

from decouple import (
    Config as DecoupleConfig,
    RepositoryEmpty,
    RepositoryEnv,
)

_DOTENV_PATH: Final[Path] = Path(".env")


def _build_decouple_config() -> DecoupleConfig:
    # Missing .env (CI/tests) falls back to reading os.environ only.
    try:
        return DecoupleConfig(RepositoryEnv(str(_DOTENV_PATH)))
    except FileNotFoundError:
        return DecoupleConfig(RepositoryEmpty())


_decouple_config: Final[DecoupleConfig] = _build_decouple_config()


@dataclass(slots=True, frozen=True)
class DatabaseSettings:
    """SQLite mail store connectivity settings."""

    url: str
    echo: bool


@dataclass(slots=True, frozen=True)
class BeadsSettings:
    """Settings for the ``bd`` issue-tracker backed store."""

    bin: str
    workdir: str | None


@dataclass(slots=True, frozen=True)
class TmuxSettings:
    """Live-session (tmux) settings."""

    bin: str
    display_ms: int


@dataclass(slots=True, frozen=True)
class Settings:
    """Top-level application settings."""

    environment: str
    store_backend: str  # "sqlite" | "beads"
    database: DatabaseSettings
    beads: BeadsSettings
    tmux: TmuxSettings
    # prefix -> rig name pairs for the session registry
    rig_prefixes: list[tuple[str, str]]
    wait_poll_seconds: float
    # Logging
    log_level: str
    log_json_enabled: bool
    log_rich_enabled: bool


def _bool(value: str, *, default: bool) -> bool:
    normalized = value.strip().lower()
    if normalized in {"1", "true", "t", "yes", "y"}:
        return True
    if normalized in {"0", "false", "f", "no", "n"}:
        return False
    return default


def _int(value: str, *, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _float(value: str, *, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _csv(name: str, default: str) -> list[str]:
    raw = _decouple_config(name, default=default)
    return [part.strip() for part in raw.split(",") if part.strip()]


def parse_rig_prefixes(items: list[str]) -> list[tuple[str, str]]:
    """Parse ``prefix:rig`` entries, skipping anything without both halves."""
    pairs: list[tuple[str, str]] = []
    for item in items:
        prefix, sep, rig = item.partition(":")
        prefix, rig = prefix.strip(), rig.strip()
        if sep and prefix and rig:
            pairs.append((prefix, rig))
    return pairs


def _store_backend(value: str) -> str:
    v = (value or "").strip().lower()
    if v in {"sqlite", "beads"}:
        return v
    return "sqlite"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached application settings."""
    environment = _decouple_config("APP_ENVIRONMENT", default="development")

    database_settings = DatabaseSettings(
        url=_decouple_config("DATABASE_URL", default="sqlite:///./.gastown/mail.sqlite3"),
        echo=_bool(_decouple_config("DATABASE_ECHO", default="false"), default=False),
    )

    beads_settings = BeadsSettings(
        bin=_decouple_config("BEADS_BIN", default="bd").strip() or "bd",
        workdir=_decouple_config("BEADS_WORKDIR", default="").strip() or None,
    )

    tmux_settings = TmuxSettings(
        bin=_decouple_config("TMUX_BIN", default="tmux").strip() or "tmux",
        display_ms=_int(_decouple_config("TMUX_DISPLAY_MS", default="5000"), default=5000),
    )

    return Settings(
        environment=environment,
        store_backend=_store_backend(_decouple_config("MAIL_STORE_BACKEND", default="sqlite")),
        database=database_settings,
        beads=beads_settings,
        tmux=tmux_settings,
        rig_prefixes=parse_rig_prefixes(_csv("GT_RIG_PREFIXES", default="")),
        wait_poll_seconds=_float(_decouple_config("MAIL_WAIT_POLL_SECONDS", default="5"), default=5.0),
        log_level=_decouple_config("LOG_LEVEL", default="WARNING"),
        log_json_enabled=_bool(_decouple_config("LOG_JSON_ENABLED", default="false"), default=False),
        log_rich_enabled=_bool(_decouple_config("LOG_RICH_ENABLED", default="true"), default=True),
    )


class _CacheClearable(Protocol):
    def cache_clear(self) -> None: ...


def clear_settings_cache() -> None:
    """Clear the lru_cache for get_settings in a type-checker-friendly way."""
    cache_clear = getattr(cast(_CacheClearable, get_settings), "cache_clear", None)
    if callable(cache_clear):
        cache_clear()
