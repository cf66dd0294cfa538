"""Server-issued pseudo-identities for visitors who edit without signing in."""

from __future__ import annotations

from datetime import timedelta

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from dong_chinese.db import utcnow
from dong_chinese.schema import AnonymousSession

COOKIE_NAME = "anonymous_session_id"
MAX_AGE_DAYS = 30
MAX_AGE_SECONDS = MAX_AGE_DAYS * 24 * 60 * 60


def create_anonymous_session(db: Session) -> str:
    row = AnonymousSession()
    db.add(row)
    db.commit()
    return row.id


def validate_anonymous_session(db: Session, session_id: str) -> bool:
    if not session_id:
        return False
    found = db.scalar(select(AnonymousSession.id).where(AnonymousSession.id == session_id).limit(1))
    return found is not None


def delete_anonymous_session(db: Session, session_id: str) -> None:
    db.execute(delete(AnonymousSession).where(AnonymousSession.id == session_id))
    db.commit()


def delete_expired_sessions(db: Session, max_age_days: int = MAX_AGE_DAYS) -> int:
    """Delete sessions created more than max_age_days ago. Returns how many were removed."""
    cutoff = utcnow() - timedelta(days=max_age_days)
    result = db.execute(delete(AnonymousSession).where(AnonymousSession.created_at < cutoff))
    db.commit()
    return result.rowcount or 0
