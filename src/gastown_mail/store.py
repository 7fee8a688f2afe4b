"""Durable message store port and its adapters.

The mail core only talks to a ``MailStore``: an opaque, identity-addressed
store that assigns ids and timestamps. Two adapters ship here:

- ``SqlMailStore`` keeps messages in a local SQLite file through SQLModel.
- ``BeadsMailStore`` drives the ``bd`` issue tracker, where each message is
  an issue addressed to the recipient's identity.
"""

from __future__ import annotations

import json
import logging
import os
import secrets
import subprocess
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Protocol

from sqlalchemy import asc, desc
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select

from .address import identity_to_address
from .config import Settings, get_settings
from .context import find_beads_workdir
from .db import get_session
from .errors import MessageNotFoundError, PersistenceError
from .message import Message, parse_message_type, priority_from_store
from .models import MailRecord

_logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class StoredMessage:
    """What the store hands back for a newly created message."""

    id: str
    timestamp: datetime


class MailStore(Protocol):
    def create(
        self,
        *,
        to_identity: str,
        from_identity: str,
        subject: str,
        body: str,
        priority: int,
        message_type: Optional[str],
        thread_id: Optional[str],
        reply_to: Optional[str],
    ) -> StoredMessage: ...

    def list(self, identity: str) -> list[Message]: ...

    def list_unread(self, identity: str) -> list[Message]: ...

    def list_by_thread(self, identity: str, thread_id: str) -> list[Message]: ...

    def get(self, identity: str, message_id: str) -> Message: ...

    def mark_read(self, identity: str, message_id: str) -> None: ...

    def delete(self, identity: str, message_id: str) -> None: ...

    def count(self, identity: str) -> tuple[int, int]: ...


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _generate_message_id() -> str:
    return f"msg-{secrets.token_hex(6)}"


# ---------------------------------------------------------------------------
# SQLite
# ---------------------------------------------------------------------------


@contextmanager
def _sql_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        _logger.warning("store.sql_error", extra={"operation": operation, "error": str(exc)})
        raise PersistenceError(f"{operation} failed: {exc}", data={"operation": operation}) from exc


def _record_to_message(record: MailRecord) -> Message:
    return Message(
        id=record.id,
        from_=identity_to_address(record.sender),
        to=identity_to_address(record.recipient),
        subject=record.subject,
        body=record.body,
        priority=priority_from_store(record.priority),
        type=parse_message_type(record.message_type),
        thread_id=record.thread_id or "",
        reply_to=record.reply_to or "",
        timestamp=_aware(record.created_ts),
        read=record.read_ts is not None,
    )


class SqlMailStore:
    """Mail store on the SQLModel engine configured by ``DATABASE_URL``."""

    def create(
        self,
        *,
        to_identity: str,
        from_identity: str,
        subject: str,
        body: str,
        priority: int,
        message_type: Optional[str],
        thread_id: Optional[str],
        reply_to: Optional[str],
    ) -> StoredMessage:
        record = MailRecord(
            id=_generate_message_id(),
            recipient=to_identity,
            sender=from_identity,
            subject=subject,
            body=body,
            priority=priority,
            message_type=message_type,
            thread_id=thread_id,
            reply_to=reply_to,
        )
        with _sql_errors("create"), get_session() as session:
            session.add(record)
            session.commit()
            session.refresh(record)
        _logger.debug("store.created", extra={"id": record.id, "recipient": to_identity})
        return StoredMessage(id=record.id, timestamp=_aware(record.created_ts) or datetime.now(timezone.utc))

    def _query(self, identity: str, *, unread_only: bool = False, thread_id: str | None = None) -> list[Message]:
        stmt = select(MailRecord).where(MailRecord.recipient == identity)
        if unread_only:
            stmt = stmt.where(MailRecord.read_ts.is_(None))  # type: ignore[union-attr]
        if thread_id is not None:
            stmt = stmt.where(MailRecord.thread_id == thread_id).order_by(
                asc(MailRecord.created_ts), asc(MailRecord.seq)
            )
        else:
            stmt = stmt.order_by(desc(MailRecord.created_ts), desc(MailRecord.seq))
        with _sql_errors("list"), get_session() as session:
            rows = session.exec(stmt).all()
        return [_record_to_message(row) for row in rows]

    def list(self, identity: str) -> list[Message]:
        return self._query(identity)

    def list_unread(self, identity: str) -> list[Message]:
        return self._query(identity, unread_only=True)

    def list_by_thread(self, identity: str, thread_id: str) -> list[Message]:
        return self._query(identity, thread_id=thread_id)

    def _find(self, session: Any, identity: str, message_id: str) -> MailRecord:
        stmt = select(MailRecord).where(MailRecord.recipient == identity, MailRecord.id == message_id)
        record = session.exec(stmt).first()
        if record is None:
            raise MessageNotFoundError(message_id, identity)
        return record

    def get(self, identity: str, message_id: str) -> Message:
        with _sql_errors("get"), get_session() as session:
            record = self._find(session, identity, message_id)
        return _record_to_message(record)

    def mark_read(self, identity: str, message_id: str) -> None:
        with _sql_errors("mark_read"), get_session() as session:
            record = self._find(session, identity, message_id)
            if record.read_ts is not None:
                return
            record.read_ts = datetime.now(timezone.utc).replace(tzinfo=None)
            session.add(record)
            session.commit()

    def delete(self, identity: str, message_id: str) -> None:
        with _sql_errors("delete"), get_session() as session:
            record = self._find(session, identity, message_id)
            session.delete(record)
            session.commit()

    def count(self, identity: str) -> tuple[int, int]:
        stmt = select(MailRecord.read_ts).where(MailRecord.recipient == identity)
        with _sql_errors("count"), get_session() as session:
            read_marks = session.exec(stmt).all()
        unread = sum(1 for mark in read_marks if mark is None)
        return len(read_marks), unread


# ---------------------------------------------------------------------------
# Beads (bd CLI)
# ---------------------------------------------------------------------------

Runner = Callable[..., "subprocess.CompletedProcess[str]"]

_READ_STATUSES = {"read", "closed"}


def _decode_issue(raw: dict[str, Any]) -> Message:
    labels = raw.get("labels") or []
    status = str(raw.get("status") or "").lower()
    read = bool(raw.get("read")) or status in _READ_STATUSES or "read" in labels
    return Message(
        id=str(raw.get("id") or ""),
        from_=identity_to_address(str(raw.get("sender") or raw.get("from") or "")),
        to=identity_to_address(str(raw.get("assignee") or raw.get("to") or "")),
        subject=str(raw.get("title") or raw.get("subject") or "(no subject)"),
        body=str(raw.get("description") or raw.get("body") or ""),
        priority=priority_from_store(raw.get("priority", 2)),
        type=parse_message_type(raw.get("type") or raw.get("message_type")),
        thread_id=str(raw.get("thread_id") or ""),
        reply_to=str(raw.get("reply_to") or ""),
        timestamp=_aware(_parse_bd_time(raw.get("created_at") or raw.get("timestamp"))),
        read=read,
    )


def _parse_bd_time(value: Any) -> Optional[datetime]:
    if not value:
        return None
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def _sort_key(msg: Message) -> datetime:
    return msg.timestamp or datetime.min.replace(tzinfo=timezone.utc)


class BeadsMailStore:
    """Mail store backed by ``bd mail`` commands run inside a beads workspace."""

    def __init__(self, workdir: str | Path, *, bin: str = "bd", runner: Runner | None = None):
        self.workdir = Path(workdir)
        self.bin = bin
        self._runner: Runner = runner or subprocess.run

    def _run(self, args: Sequence[str], *, actor: str) -> str:
        env = {**os.environ, "BEADS_AGENT_NAME": actor}
        cmd = [self.bin, *args]
        try:
            cp = self._runner(cmd, cwd=str(self.workdir), env=env, capture_output=True, text=True, check=False)
        except OSError as exc:
            raise PersistenceError(f"running {self.bin}: {exc}", data={"command": list(args)}) from exc
        if cp.returncode != 0:
            err = (cp.stderr or "").strip()
            _logger.warning("store.bd_failed", extra={"command": list(args), "stderr": err})
            raise PersistenceError(err or f"{self.bin} {args[0]} exited with {cp.returncode}", data={"command": list(args)})
        return cp.stdout or ""

    @staticmethod
    def _json(output: str) -> Any:
        try:
            return json.loads(output)
        except json.JSONDecodeError as exc:
            raise PersistenceError(f"malformed store output: {exc}") from exc

    def create(
        self,
        *,
        to_identity: str,
        from_identity: str,
        subject: str,
        body: str,
        priority: int,
        message_type: Optional[str],
        thread_id: Optional[str],
        reply_to: Optional[str],
    ) -> StoredMessage:
        args = ["mail", "send", to_identity, "-s", subject, "-m", body, "--priority", str(priority)]
        if message_type:
            args += ["--type", message_type]
        if thread_id:
            args += ["--thread-id", thread_id]
        if reply_to:
            args += ["--reply-to", reply_to]
        args.append("--json")
        data = self._json(self._run(args, actor=from_identity))
        if not isinstance(data, dict) or not data.get("id"):
            raise PersistenceError("store did not return a message id")
        created = _aware(_parse_bd_time(data.get("created_at"))) or datetime.now(timezone.utc)
        return StoredMessage(id=str(data["id"]), timestamp=created)

    def list(self, identity: str) -> list[Message]:
        data = self._json(self._run(["mail", "inbox", "--json"], actor=identity))
        if data is None:
            return []
        if not isinstance(data, list):
            raise PersistenceError("malformed store output: expected a list of messages")
        messages = [_decode_issue(item) for item in data if isinstance(item, dict)]
        messages.sort(key=_sort_key, reverse=True)
        return messages

    def list_unread(self, identity: str) -> list[Message]:
        return [msg for msg in self.list(identity) if not msg.read]

    def list_by_thread(self, identity: str, thread_id: str) -> list[Message]:
        thread = [msg for msg in self.list(identity) if msg.thread_id == thread_id]
        thread.sort(key=_sort_key)
        return thread

    def get(self, identity: str, message_id: str) -> Message:
        for msg in self.list(identity):
            if msg.id == message_id:
                return msg
        raise MessageNotFoundError(message_id, identity)

    def _run_on_message(self, args: Sequence[str], *, identity: str, message_id: str) -> None:
        # The message can vanish between the lookup and the command.
        try:
            self._run(args, actor=identity)
        except PersistenceError as exc:
            if "not found" in str(exc).lower():
                raise MessageNotFoundError(message_id, identity) from exc
            raise

    def mark_read(self, identity: str, message_id: str) -> None:
        if self.get(identity, message_id).read:
            return
        self._run_on_message(["mail", "read", message_id], identity=identity, message_id=message_id)

    def delete(self, identity: str, message_id: str) -> None:
        self.get(identity, message_id)
        self._run_on_message(["mail", "ack", message_id], identity=identity, message_id=message_id)

    def count(self, identity: str) -> tuple[int, int]:
        messages = self.list(identity)
        return len(messages), sum(1 for msg in messages if not msg.read)


def build_store(settings: Settings | None = None) -> MailStore:
    """Return the store adapter selected by ``MAIL_STORE_BACKEND``."""
    resolved = settings or get_settings()
    if resolved.store_backend == "beads":
        workdir = resolved.beads.workdir or find_beads_workdir()
        if workdir is None:
            raise PersistenceError("no .beads directory found (set BEADS_WORKDIR)")
        return BeadsMailStore(workdir, bin=resolved.beads.bin)
    return SqlMailStore()


__all__ = [
    "BeadsMailStore",
    "MailStore",
    "SqlMailStore",
    "StoredMessage",
    "build_store",
]
