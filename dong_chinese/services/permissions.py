from __future__ import annotations

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from dong_chinese.schema import UserPermission

WIKI_EDIT = "wikiEdit"


def has_permission(db: Session, user_id: Optional[str], permission: str) -> bool:
    if not user_id:
        return False
    found = db.scalar(
        select(UserPermission.id)
        .where(UserPermission.user_id == user_id, UserPermission.permission == permission)
        .limit(1)
    )
    return found is not None


def get_user_permissions(db: Session, user_id: str) -> List[str]:
    return list(db.scalars(select(UserPermission.permission).where(UserPermission.user_id == user_id)))


def grant_permission(db: Session, user_id: str, permission: str) -> bool:
    """Returns False if the user already had the permission."""
    if has_permission(db, user_id, permission):
        return False
    db.add(UserPermission(user_id=user_id, permission=permission))
    db.commit()
    return True
