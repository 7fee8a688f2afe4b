"""SQLModel table backing the local SQLite mail store."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Index
from sqlmodel import Field, SQLModel


def _utcnow_naive() -> datetime:
    """Return current UTC time as a naive datetime for SQLite compatibility.

    SQLite stores datetimes without timezone info; keeping every stored value
    naive UTC avoids mixed naive/aware comparisons.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


class MailRecord(SQLModel, table=True):
    __tablename__ = "mail_messages"
    __table_args__ = (
        Index("idx_mail_recipient_created", "recipient", "created_ts"),
        Index("idx_mail_recipient_thread", "recipient", "thread_id"),
    )

    # Surrogate key keeps insertion order stable for messages created in the same tick.
    seq: Optional[int] = Field(default=None, primary_key=True)
    id: str = Field(index=True, unique=True, max_length=64)
    recipient: str = Field(index=True, max_length=255)
    sender: str = Field(max_length=255)
    subject: str = Field(max_length=512)
    body: str = Field(default="")
    priority: int = Field(default=2)
    message_type: Optional[str] = Field(default=None, max_length=16)
    thread_id: Optional[str] = Field(default=None, max_length=128)
    reply_to: Optional[str] = Field(default=None, max_length=64)
    created_ts: datetime = Field(default_factory=_utcnow_naive)
    read_ts: Optional[datetime] = Field(default=None)
