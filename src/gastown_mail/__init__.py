"""Inter-agent mail: addressing, routing and delivery between Gas Town agents."""

from __future__ import annotations

from .address import Address, AddressKind, parse_address, to_durable_identity, to_session_identity
from .errors import AddressParseError, MailError, MessageNotFoundError, PersistenceError
from .mailbox import Mailbox
from .message import Delivery, Message, MessageType, Priority, generate_thread_id
from .registry import PrefixRegistry, default_registry, is_known_session, prefix_for, set_default_registry
from .router import DeliveryOutcome, Router
from .wait import WaitResult, WaitState, wait_for_mail

__all__ = [
    "Address",
    "AddressKind",
    "AddressParseError",
    "Delivery",
    "DeliveryOutcome",
    "MailError",
    "Mailbox",
    "Message",
    "MessageNotFoundError",
    "MessageType",
    "PersistenceError",
    "PrefixRegistry",
    "Priority",
    "Router",
    "WaitResult",
    "WaitState",
    "default_registry",
    "generate_thread_id",
    "is_known_session",
    "parse_address",
    "prefix_for",
    "set_default_registry",
    "to_durable_identity",
    "to_session_identity",
    "wait_for_mail",
]
