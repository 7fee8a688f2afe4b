"""Blocking wait for new mail.

``next_state`` is the whole decision: given the current unread count, the
current time and an optional deadline, it says whether to keep waiting.
``wait_for_mail`` drives it, sleeping a fixed interval between polls. The
deadline is only checked between polls, so a wait can overrun it by up to
one interval.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .errors import MailError
from .mailbox import Mailbox

_logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 5.0


class WaitState(Enum):
    WAITING = "waiting"
    MAIL_ARRIVED = "mail_arrived"
    TIMED_OUT = "timed_out"
    ERRORED = "errored"

    @property
    def terminal(self) -> bool:
        return self is not WaitState.WAITING

    @property
    def exit_code(self) -> int:
        return _EXIT_CODES[self]


_EXIT_CODES = {
    WaitState.MAIL_ARRIVED: 0,
    WaitState.TIMED_OUT: 1,
    WaitState.ERRORED: 2,
    WaitState.WAITING: 2,
}


@dataclass(slots=True)
class WaitResult:
    state: WaitState
    unread: int = 0
    polls: int = 0
    error: Optional[MailError] = None


def next_state(now: float, unread: int, deadline: Optional[float]) -> WaitState:
    if unread > 0:
        return WaitState.MAIL_ARRIVED
    if deadline is not None and now > deadline:
        return WaitState.TIMED_OUT
    return WaitState.WAITING


def deadline_after(seconds: Optional[float], clock: Callable[[], float] = time.monotonic) -> Optional[float]:
    """Turn a relative timeout into a deadline; ``None`` or ``<= 0`` waits forever."""
    if not seconds or seconds <= 0:
        return None
    return clock() + seconds


def wait_for_mail(
    mailbox: Mailbox,
    deadline: Optional[float] = None,
    *,
    interval: float = POLL_INTERVAL_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> WaitResult:
    """Poll ``mailbox`` until unread mail shows up, ``deadline`` passes or the store fails.

    ``deadline`` is on the same timeline as ``clock``. A failing ``count()``
    ends the wait immediately in ``ERRORED``; it is not retried.
    """
    polls = 0
    while True:
        polls += 1
        try:
            _total, unread = mailbox.count()
        except MailError as exc:
            _logger.warning("wait.count_failed", extra={"identity": mailbox.identity, "error": str(exc)})
            return WaitResult(WaitState.ERRORED, polls=polls, error=exc)

        state = next_state(clock(), unread, deadline)
        if state.terminal:
            _logger.debug("wait.done", extra={"identity": mailbox.identity, "state": state.value, "polls": polls})
            return WaitResult(state, unread=unread, polls=polls)
        sleep(interval)


__all__ = [
    "POLL_INTERVAL_SECONDS",
    "WaitResult",
    "WaitState",
    "deadline_after",
    "next_state",
    "wait_for_mail",
]
