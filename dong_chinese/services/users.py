from __future__ import annotations

from typing import Dict, Iterable, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from dong_chinese.schema import User


def resolve_user_names(db: Session, user_ids: Iterable[Optional[str]]) -> Dict[str, str]:
    """Batch-resolve user ids to display names. Unknown ids are left out."""
    unique = list(dict.fromkeys(uid for uid in user_ids if uid))
    if not unique:
        return {}
    rows = db.execute(select(User.id, User.name).where(User.id.in_(unique)))
    return {r.id: r.name for r in rows}


def editor_label(user_id: Optional[str], names: Mapping[str, str]) -> str:
    # No user id means the edit came from an anonymous session.
    if not user_id:
        return "Anonymous"
    return names.get(user_id, "Unknown")
