"""Process-wide registry mapping short session prefixes to rig names.

The registry answers one question independently of tmux: does a session name
belong to a rig we know about? Names under the ``hq-`` namespace are always
known. Everything else is known only if its leading ``<prefix>-`` component
was registered for some rig.

A single default registry is shared by the process. It is built lazily from
``GT_RIG_PREFIXES`` and can be swapped wholesale with
``set_default_registry`` (reloads, test isolation). Each registry publishes
immutable snapshots, so a reader never sees a half-applied update.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from .config import get_settings

_logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "gt"
HQ_PREFIX = "hq-"


@dataclass(frozen=True, slots=True)
class _Snapshot:
    by_prefix: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    by_rig: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))


class PrefixRegistry:
    """Bidirectional prefix <-> rig name mapping."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._snapshot = _Snapshot()

    @classmethod
    def from_pairs(cls, pairs: Iterable[tuple[str, str]]) -> "PrefixRegistry":
        registry = cls()
        for prefix, rig_name in pairs:
            registry.register(prefix, rig_name)
        return registry

    def register(self, prefix: str, rig_name: str) -> None:
        """Add or overwrite one prefix/rig pair."""
        if not prefix or not rig_name:
            raise ValueError("prefix and rig name must be non-empty")
        with self._lock:
            by_prefix = dict(self._snapshot.by_prefix)
            by_rig = dict(self._snapshot.by_rig)
            # Drop stale pairs on either side so the mapping stays one-to-one.
            old_prefix = by_rig.pop(rig_name, None)
            if old_prefix is not None and old_prefix != prefix:
                by_prefix.pop(old_prefix, None)
            old_rig = by_prefix.get(prefix)
            if old_rig is not None and old_rig != rig_name:
                by_rig.pop(old_rig, None)
            by_prefix[prefix] = rig_name
            by_rig[rig_name] = prefix
            self._snapshot = _Snapshot(MappingProxyType(by_prefix), MappingProxyType(by_rig))

    def prefix_for(self, rig_name: str) -> str:
        """Return the prefix registered for ``rig_name``, or ``DEFAULT_PREFIX``."""
        return self._snapshot.by_rig.get(rig_name, DEFAULT_PREFIX)

    def rig_for(self, prefix: str) -> str | None:
        return self._snapshot.by_prefix.get(prefix)

    def is_known_session(self, name: str) -> bool:
        if name.startswith(HQ_PREFIX):
            return True
        by_prefix = self._snapshot.by_prefix
        prefix, sep, _ = name.partition("-")
        if sep and prefix in by_prefix:
            return True
        # Registered prefixes may themselves contain dashes.
        return any(name.startswith(f"{p}-") for p in by_prefix if "-" in p)

    def snapshot(self) -> dict[str, str]:
        """Return a copy of the prefix -> rig mapping."""
        return dict(self._snapshot.by_prefix)

    def prefixes(self) -> list[str]:
        return sorted(self._snapshot.by_prefix)

    def __len__(self) -> int:
        return len(self._snapshot.by_prefix)

    def __repr__(self) -> str:
        return f"PrefixRegistry({self.snapshot()!r})"


_default_lock = threading.Lock()
_default_registry: PrefixRegistry | None = None


def _load_default_registry() -> PrefixRegistry:
    pairs = get_settings().rig_prefixes
    registry = PrefixRegistry.from_pairs(pairs)
    _logger.debug("registry.loaded", extra={"prefixes": registry.prefixes()})
    return registry


def default_registry() -> PrefixRegistry:
    """Return the process-wide registry, building it from settings on first use."""
    global _default_registry
    current = _default_registry
    if current is not None:
        return current
    with _default_lock:
        if _default_registry is None:
            _default_registry = _load_default_registry()
        return _default_registry


def set_default_registry(registry: PrefixRegistry | None) -> None:
    """Atomically replace the process-wide registry.

    Passing ``None`` discards it so the next access reloads from settings.
    """
    global _default_registry
    with _default_lock:
        _default_registry = registry


def register(prefix: str, rig_name: str) -> None:
    default_registry().register(prefix, rig_name)


def prefix_for(rig_name: str) -> str:
    return default_registry().prefix_for(rig_name)


def is_known_session(name: str) -> bool:
    return default_registry().is_known_session(name)


__all__ = [
    "DEFAULT_PREFIX",
    "HQ_PREFIX",
    "PrefixRegistry",
    "default_registry",
    "is_known_session",
    "prefix_for",
    "register",
    "set_default_registry",
]
