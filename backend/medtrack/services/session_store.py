"""Module: session_store.

Server-side key-value store for one browser session. The authority is its
only writer; every write replaces the full key set and every clear removes
it, each in a single transaction, so a session is never half-present.
"""

import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from medtrack.db.models.session_entry import SessionEntry

logger = logging.getLogger(__name__)

TOKEN_KEY = "medtrack_token"
ROLE_KEY = "medtrack_user_role"
USER_ID_KEY = "medtrack_user_id"
NAME_KEY = "medtrack_user_name"
EMAIL_KEY = "medtrack_user_email"

REQUIRED_KEYS = (TOKEN_KEY, ROLE_KEY, USER_ID_KEY)
ALL_KEYS = REQUIRED_KEYS + (NAME_KEY, EMAIL_KEY)


class SessionStore:
    def __init__(self, db: Session, sid: str | None):
        self.db = db
        self.sid = sid

    def read(self) -> dict[str, str]:
        if not self.sid:
            return {}
        rows = self.db.execute(
            select(SessionEntry.key, SessionEntry.value).where(SessionEntry.sid == self.sid)
        ).all()
        return {key: value for key, value in rows if key in ALL_KEYS}

    def write(self, values: dict[str, str | None]) -> None:
        if not self.sid:
            raise RuntimeError("Cannot persist a session without a session id")
        missing = [k for k in REQUIRED_KEYS if not values.get(k)]
        if missing:
            raise ValueError(f"Session write is missing required keys: {', '.join(missing)}")

        try:
            self.db.execute(delete(SessionEntry).where(SessionEntry.sid == self.sid))
            for key in ALL_KEYS:
                value = values.get(key)
                if value is not None:
                    self.db.add(SessionEntry(sid=self.sid, key=key, value=str(value)))
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def clear(self) -> None:
        if not self.sid:
            return
        try:
            self.db.execute(delete(SessionEntry).where(SessionEntry.sid == self.sid))
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise


def purge_stale_sessions(db: Session, max_age: timedelta) -> int:
    """Delete every session whose oldest row predates ``now - max_age``.

    Whole sessions go at once, so a purge never leaves one half-present.
    """
    cutoff = datetime.now(UTC) - max_age
    stale_sids = select(SessionEntry.sid).where(SessionEntry.updated_at < cutoff).distinct()
    try:
        result = db.execute(delete(SessionEntry).where(SessionEntry.sid.in_(stale_sids)))
        db.commit()
    except Exception:
        db.rollback()
        raise
    if result.rowcount:
        logger.info("Purged %s stale session rows", result.rowcount)
    return result.rowcount
