"""Live-session port and the tmux adapter behind it."""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Callable
from typing import Protocol

from .errors import SessionCommandError

_logger = logging.getLogger(__name__)

Runner = Callable[..., "subprocess.CompletedProcess[str]"]


class SessionPort(Protocol):
    def has_session(self, name: str) -> bool: ...

    def display_message(self, name: str, text: str) -> None: ...

    def send_keys_raw(self, name: str, text: str) -> None: ...


class Tmux:
    """Thin wrapper over the tmux CLI.

    ``has_session`` reports a missing tmux binary or server as "no session".
    The other commands raise ``SessionCommandError`` on failure.
    """

    def __init__(self, bin: str = "tmux", *, display_ms: int = 5000, runner: Runner | None = None):
        self.bin = bin
        self.display_ms = display_ms
        self._runner: Runner = runner or subprocess.run

    def _run(self, *args: str) -> subprocess.CompletedProcess[str]:
        cmd = [self.bin, *args]
        try:
            return self._runner(cmd, capture_output=True, text=True, check=False)
        except FileNotFoundError as exc:
            raise SessionCommandError(f"{self.bin} not found in PATH") from exc
        except OSError as exc:
            raise SessionCommandError(f"running {self.bin}: {exc}") from exc

    def _check(self, cp: subprocess.CompletedProcess[str], action: str) -> None:
        if cp.returncode != 0:
            err = (cp.stderr or "").strip()
            raise SessionCommandError(err or f"tmux {action} exited with {cp.returncode}")

    def has_session(self, name: str) -> bool:
        try:
            cp = self._run("has-session", "-t", f"={name}")
        except SessionCommandError:
            _logger.debug("tmux.unavailable", extra={"session": name})
            return False
        return cp.returncode == 0

    def display_message(self, name: str, text: str) -> None:
        """Show ``text`` on the session's status line for ``display_ms``."""
        cp = self._run("display-message", "-t", name, "-d", str(self.display_ms), text)
        self._check(cp, "display-message")

    def send_keys_raw(self, name: str, text: str) -> None:
        """Type ``text`` literally into the session's pane without pressing Enter."""
        cp = self._run("send-keys", "-t", name, "-l", text)
        self._check(cp, "send-keys")


__all__ = ["SessionPort", "Tmux"]
