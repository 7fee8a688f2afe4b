"""Per-address mailbox over the durable store."""

from __future__ import annotations

import logging
from typing import Optional

from .address import to_durable_identity
from .errors import MailError
from .message import Message
from .store import MailStore

_logger = logging.getLogger(__name__)


class Mailbox:
    """Read/query/mutate facade scoped to one durable identity.

    Every call goes to the store: listings are fresh snapshots, not cursors,
    and nothing is cached or retried.
    """

    def __init__(self, identity: str, store: MailStore):
        self.identity = identity
        self.store = store

    @classmethod
    def from_address(cls, address: str, store: MailStore) -> "Mailbox":
        return cls(to_durable_identity(address), store)

    def __repr__(self) -> str:
        return f"Mailbox({self.identity!r})"

    def list(self) -> list[Message]:
        """All messages, newest first."""
        return self.store.list(self.identity)

    def list_unread(self) -> list[Message]:
        """Unread messages, newest first."""
        return self.store.list_unread(self.identity)

    def list_by_thread(self, thread_id: str) -> list[Message]:
        """Messages of one thread in this mailbox, oldest first."""
        return self.store.list_by_thread(self.identity, thread_id)

    def get(self, message_id: str) -> Message:
        return self.store.get(self.identity, message_id)

    def try_get(self, message_id: str) -> Optional[Message]:
        """Look a message up, returning None if it is missing or the store fails."""
        try:
            return self.store.get(self.identity, message_id)
        except MailError as exc:
            _logger.info(
                "mailbox.lookup_failed",
                extra={"identity": self.identity, "message_id": message_id, "error": str(exc)},
            )
            return None

    def mark_read(self, message_id: str) -> None:
        self.store.mark_read(self.identity, message_id)

    def read(self, message_id: str) -> Message:
        """Fetch a message and mark it read, returning it as fetched."""
        msg = self.get(message_id)
        if not msg.read:
            self.mark_read(message_id)
        return msg

    def delete(self, message_id: str) -> None:
        self.store.delete(self.identity, message_id)

    def count(self) -> tuple[int, int]:
        """Return ``(total, unread)`` from one store snapshot."""
        return self.store.count(self.identity)


__all__ = ["Mailbox"]
