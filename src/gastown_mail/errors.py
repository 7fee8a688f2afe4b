"""Typed errors raised by the mail layer."""

from __future__ import annotations

from typing import Any, Optional


class MailError(Exception):
    """Base class for every error the mail layer surfaces to callers."""

    code = "mail_error"

    def __init__(self, message: str, *, data: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.data = data or {}


class AddressParseError(MailError):
    """Address text does not match the mail address grammar."""

    code = "address_parse"

    def __init__(self, address: str, reason: str = "malformed address"):
        super().__init__(f"invalid address {address!r}: {reason}", data={"address": address})
        self.address = address
        self.reason = reason


class PersistenceError(MailError):
    """The durable store rejected or could not perform an operation."""

    code = "persistence"


class MessageNotFoundError(MailError):
    """No message with the given id exists in the addressed mailbox."""

    code = "not_found"

    def __init__(self, message_id: str, identity: str | None = None):
        where = f" in mailbox {identity!r}" if identity else ""
        super().__init__(
            f"message {message_id!r} not found{where}",
            data={"message_id": message_id, "identity": identity},
        )
        self.message_id = message_id
        self.identity = identity


class SessionCommandError(MailError):
    """A live-session command failed. Never propagated past the Router."""

    code = "session"


__all__ = [
    "AddressParseError",
    "MailError",
    "MessageNotFoundError",
    "PersistenceError",
    "SessionCommandError",
]
