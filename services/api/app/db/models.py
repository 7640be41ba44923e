from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class KvListEntry(Base):
    """One entry of a capped list. `seq` is the entry's position in the list's history."""

    __tablename__ = "kv_list_entries"

    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key: Mapped[str] = mapped_column(String, nullable=False)
    value: Mapped[str] = mapped_column(Text, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    # Sequence numbers are never reused, even after the newest entry is trimmed.
    __table_args__ = (
        Index("ix_kv_list_entries_key_seq", "key", "seq"),
        {"sqlite_autoincrement": True},
    )


class KvCounter(Base):
    __tablename__ = "kv_counters"

    key: Mapped[str] = mapped_column(String, primary_key=True)
    value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class KvSetMember(Base):
    __tablename__ = "kv_set_members"

    key: Mapped[str] = mapped_column(String, primary_key=True)
    member: Mapped[str] = mapped_column(String, primary_key=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
