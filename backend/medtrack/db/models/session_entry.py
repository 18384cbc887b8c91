"""Module: session_entry."""

from datetime import UTC, datetime

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from medtrack.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(UTC)


# One row per (browser session, key). The authority always writes and clears
# every key of a session inside a single transaction.
class SessionEntry(Base):
    __tablename__ = "session_entries"

    sid: Mapped[str] = mapped_column(String(64), primary_key=True)
    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
        nullable=False,
    )
