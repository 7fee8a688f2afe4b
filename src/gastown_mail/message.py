"""Message value object, its enums and thread id helpers."""

from __future__ import annotations

import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

THREAD_ID_PREFIX = "thread-"
_THREAD_ID_RE = re.compile(r"^thread-[0-9a-f]{12}$")


class Priority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class MessageType(str, Enum):
    TASK = "task"  # required processing
    SCAVENGE = "scavenge"  # optional first-come work
    NOTIFICATION = "notification"
    REPLY = "reply"


class Delivery(str, Enum):
    QUEUE = "queue"
    INTERRUPT = "interrupt"


# Store priority codes, lower is more urgent.
_PRIORITY_TO_STORE: dict[Priority, int] = {
    Priority.URGENT: 0,
    Priority.HIGH: 1,
    Priority.NORMAL: 2,
    Priority.LOW: 3,
}
_PRIORITY_FROM_STORE: dict[int, Priority] = {code: prio for prio, code in _PRIORITY_TO_STORE.items()}


def parse_priority(value: str | None) -> Priority:
    """Parse a priority name; anything unrecognized is normal."""
    normalized = (value or "").strip().lower()
    try:
        return Priority(normalized)
    except ValueError:
        return Priority.NORMAL


def parse_message_type(value: str | None) -> MessageType:
    """Parse a message type name; anything unrecognized is a notification."""
    normalized = (value or "").strip().lower()
    try:
        return MessageType(normalized)
    except ValueError:
        return MessageType.NOTIFICATION


def priority_to_store(priority: Priority) -> int:
    return _PRIORITY_TO_STORE[priority]


def priority_from_store(code: Any) -> Priority:
    try:
        return _PRIORITY_FROM_STORE.get(int(code), Priority.NORMAL)
    except (TypeError, ValueError):
        return Priority.NORMAL


def generate_thread_id() -> str:
    """Return a fresh thread id: fixed prefix plus 12 hex chars from 6 random bytes."""
    return THREAD_ID_PREFIX + secrets.token_hex(6)


def is_thread_id(value: str) -> bool:
    return bool(value) and _THREAD_ID_RE.fullmatch(value) is not None


def _parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse ISO-8601 with Z/offset support and normalize to UTC."""
    if not value:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    if dt.tzinfo is None or dt.tzinfo.utcoffset(dt) is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass
class Message:
    """A mail message exchanged between agents.

    ``from_`` and ``to`` hold addresses in the ``mayor/`` / ``<rig>/<target>``
    grammar. ``id`` and ``timestamp`` are assigned by the store when the
    message is persisted; ``thread_id`` is filled in by the router before that.
    """

    to: str
    subject: str
    from_: str = ""
    body: str = ""
    priority: Priority = Priority.NORMAL
    type: MessageType = MessageType.NOTIFICATION
    delivery: Delivery = Delivery.QUEUE
    thread_id: str = ""
    reply_to: str = ""
    id: str = ""
    timestamp: Optional[datetime] = None
    read: bool = False

    def __post_init__(self) -> None:
        if not self.subject:
            raise ValueError("message subject is required")
        self.priority = Priority(self.priority)
        self.type = MessageType(self.type)
        self.delivery = Delivery(self.delivery)
        # A reply_to on a default-typed message makes it a reply.
        if self.reply_to and self.type is MessageType.NOTIFICATION:
            self.type = MessageType.REPLY

    @property
    def is_reply(self) -> bool:
        return bool(self.reply_to)

    @property
    def is_important(self) -> bool:
        return self.priority in (Priority.HIGH, Priority.URGENT)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "from": self.from_,
            "to": self.to,
            "subject": self.subject,
            "body": self.body,
            "priority": self.priority.value,
            "type": self.type.value,
            "delivery": self.delivery.value,
            "thread_id": self.thread_id,
            "reply_to": self.reply_to,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "read": self.read,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Message":
        return cls(
            id=str(data.get("id") or ""),
            from_=str(data.get("from") or ""),
            to=str(data.get("to") or ""),
            subject=str(data.get("subject") or ""),
            body=str(data.get("body") or ""),
            priority=parse_priority(data.get("priority")),
            type=parse_message_type(data.get("type")),
            delivery=Delivery.INTERRUPT if data.get("delivery") == "interrupt" else Delivery.QUEUE,
            thread_id=str(data.get("thread_id") or ""),
            reply_to=str(data.get("reply_to") or ""),
            timestamp=_parse_timestamp(data.get("timestamp")),
            read=bool(data.get("read", False)),
        )


__all__ = [
    "THREAD_ID_PREFIX",
    "Delivery",
    "Message",
    "MessageType",
    "Priority",
    "generate_thread_id",
    "is_thread_id",
    "parse_message_type",
    "parse_priority",
    "priority_from_store",
    "priority_to_store",
]
