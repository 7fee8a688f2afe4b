"""Message routing: persist through the store, then nudge the recipient's session."""

from __future__ import annotations

import logging
from enum import Enum

from .address import to_durable_identity, to_session_identity
from .mailbox import Mailbox
from .message import Delivery, Message, MessageType, Priority, generate_thread_id, priority_to_store
from .store import MailStore
from .tmux import SessionPort

_logger = logging.getLogger(__name__)

INBOX_HINT = "Run 'gt mail inbox' to see your messages."


class DeliveryOutcome(str, Enum):
    """What the post-persist live-session step did."""

    NOTIFIED = "notified"
    INTERRUPTED = "interrupted"
    NO_TARGET = "no_target"  # broadcast or unparseable address
    NO_SESSION = "no_session"
    FAILED = "failed"


def format_notification(msg: Message) -> str:
    return f"[MAIL] From {msg.from_}: {msg.subject}"


def format_reminder(msg: Message) -> str:
    annotation = ""
    if msg.priority is Priority.URGENT:
        annotation = " [URGENT]"
    elif msg.priority is Priority.HIGH:
        annotation = " [HIGH PRIORITY]"

    reminder = f"\n<system-reminder>\n📬 NEW MAIL{annotation} from {msg.from_}\nSubject: {msg.subject}\n"
    if msg.body:
        reminder += f"\n{msg.body}\n"
    reminder += f"\n{INBOX_HINT}\n</system-reminder>\n"
    return reminder


class Router:
    """Sends messages and hands out mailboxes over one store and session port."""

    def __init__(self, store: MailStore, sessions: SessionPort):
        self.store = store
        self.sessions = sessions

    def get_mailbox(self, address: str) -> Mailbox:
        """Return the mailbox for ``address``; raises ``AddressParseError`` if malformed."""
        return Mailbox.from_address(address, self.store)

    def resolve_thread(self, msg: Message) -> str:
        """Pick the thread id for ``msg``.

        Replies join the thread of the original when it can be found in the
        sender's own mailbox; everything else starts a new thread.
        """
        if msg.thread_id:
            return msg.thread_id
        if msg.reply_to:
            original = self.get_mailbox(msg.from_).try_get(msg.reply_to)
            if original is not None and original.thread_id:
                return original.thread_id
            _logger.debug("router.reply_new_thread", extra={"reply_to": msg.reply_to})
        return generate_thread_id()

    def send(self, msg: Message) -> Message:
        """Persist ``msg`` and perform its delivery side effect.

        The message is updated in place with its store id, timestamp and
        thread id, and returned. Only address and store failures raise; the
        live-session step is best effort.
        """
        to_identity = to_durable_identity(msg.to)
        from_identity = to_durable_identity(msg.from_)

        if msg.reply_to and msg.type is MessageType.NOTIFICATION:
            msg.type = MessageType.REPLY
        msg.thread_id = self.resolve_thread(msg)

        stored = self.store.create(
            to_identity=to_identity,
            from_identity=from_identity,
            subject=msg.subject,
            body=msg.body,
            priority=priority_to_store(msg.priority),
            message_type=None if msg.type is MessageType.NOTIFICATION else msg.type.value,
            thread_id=msg.thread_id,
            reply_to=msg.reply_to or None,
        )
        msg.id = stored.id
        msg.timestamp = stored.timestamp
        _logger.info(
            "router.sent",
            extra={"id": msg.id, "to": to_identity, "from": from_identity, "thread_id": msg.thread_id},
        )

        outcome = self.deliver(msg)
        _logger.debug("router.delivery", extra={"id": msg.id, "outcome": outcome.value})
        return msg

    def deliver(self, msg: Message) -> DeliveryOutcome:
        """Run the live-session side effect for an already persisted message."""
        session = to_session_identity(msg.to)
        if not session:
            return DeliveryOutcome.NO_TARGET

        try:
            if not self.sessions.has_session(session):
                return DeliveryOutcome.NO_SESSION
            if msg.delivery is Delivery.INTERRUPT:
                self.sessions.send_keys_raw(session, format_reminder(msg))
                return DeliveryOutcome.INTERRUPTED
            self.sessions.display_message(session, format_notification(msg))
            return DeliveryOutcome.NOTIFIED
        except Exception as exc:
            _logger.warning(
                "router.delivery_failed",
                extra={"session": session, "delivery": msg.delivery.value, "error": str(exc)},
            )
            return DeliveryOutcome.FAILED


__all__ = ["DeliveryOutcome", "Router", "format_notification", "format_reminder"]
