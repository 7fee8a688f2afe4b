"""Mail address parsing and identity derivation.

Addresses follow a small grammar::

    mayor/ | mayor | <rig>/ | <rig>/<target>

``<target>`` is either a polecat name or the literal ``refinery``. An address
resolves to two identities: the durable identity handed to the message store,
and the live-session identity used to reach the recipient's terminal session.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from .errors import AddressParseError

MAYOR = "mayor"
REFINERY = "refinery"
SESSION_NAMESPACE = "gt"
MAYOR_SESSION = f"{SESSION_NAMESPACE}-{MAYOR}"

_TOKEN_RE = re.compile(r"^[^/\s]+$")


class AddressKind(Enum):
    MAYOR = "mayor"
    BROADCAST = "broadcast"
    REFINERY = "refinery"
    POLECAT = "polecat"


@dataclass(frozen=True, slots=True)
class Address:
    kind: AddressKind
    rig: str = ""
    target: str = ""

    def __str__(self) -> str:
        if self.kind is AddressKind.MAYOR:
            return f"{MAYOR}/"
        if self.kind is AddressKind.BROADCAST:
            return f"{self.rig}/"
        return f"{self.rig}/{self.target}"

    @property
    def is_broadcast(self) -> bool:
        return self.kind is AddressKind.BROADCAST


def parse_address(text: str) -> Address:
    """Parse address text, raising ``AddressParseError`` if it is malformed."""
    if not text:
        raise AddressParseError(text, "empty address")
    if text in (MAYOR, f"{MAYOR}/"):
        return Address(AddressKind.MAYOR)
    if "/" not in text:
        raise AddressParseError(text, "expected <rig>/ or <rig>/<target>")
    rig, target = text.split("/", 1)
    if not _TOKEN_RE.match(rig):
        raise AddressParseError(text, "rig name must be a non-empty token")
    if not target:
        return Address(AddressKind.BROADCAST, rig=rig)
    if not _TOKEN_RE.match(target):
        raise AddressParseError(text, "target must be a single token")
    kind = AddressKind.REFINERY if target == REFINERY else AddressKind.POLECAT
    return Address(kind, rig=rig, target=target)


def to_durable_identity(address: str) -> str:
    """Map an address to the identity string used by the message store.

    ``mayor/`` becomes ``mayor``, ``gastown/`` becomes ``gastown`` and
    ``gastown/Toast`` becomes ``gastown-Toast``.
    """
    parsed = parse_address(address)
    if parsed.kind is AddressKind.MAYOR:
        return MAYOR
    if parsed.kind is AddressKind.BROADCAST:
        return parsed.rig
    return f"{parsed.rig}-{parsed.target}"


def identity_to_address(identity: str) -> str:
    """Inverse of ``to_durable_identity`` for identities read back from the store.

    The split happens at the first ``-``, so a rig whose name contains a dash
    reads back wrong: ``gas-town-Toast`` becomes ``gas/town-Toast``. Only the
    displayed address is affected; it maps back to the same identity.
    """
    identity = identity.strip()
    if not identity:
        return ""
    if identity == MAYOR:
        return f"{MAYOR}/"
    if "/" in identity:
        return identity
    if "-" in identity:
        rig, target = identity.split("-", 1)
        return f"{rig}/{target}"
    return f"{identity}/"


def to_session_identity(address: str) -> str:
    """Map an address to its live-session name, or ``""`` when there is none.

    Never raises: an empty result means "no session to reach", not an error.
    """
    if address.startswith(MAYOR):
        return MAYOR_SESSION
    parts = address.split("/", 1)
    if len(parts) != 2 or not parts[0] or not parts[1]:
        return ""
    rig, target = parts
    return f"{SESSION_NAMESPACE}-{rig}-{target}"


__all__ = [
    "MAYOR",
    "MAYOR_SESSION",
    "REFINERY",
    "SESSION_NAMESPACE",
    "Address",
    "AddressKind",
    "identity_to_address",
    "parse_address",
    "to_durable_identity",
    "to_session_identity",
]
