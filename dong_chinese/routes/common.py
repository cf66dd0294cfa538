"""Request helpers shared by the route modules."""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from dong_chinese.schema import User
from dong_chinese.services.char_edit import EditedBy
from dong_chinese.services.permissions import WIKI_EDIT, has_permission


def current_user(request: Request) -> Optional[User]:
    return getattr(request.state, "user", None)


def edited_by(request: Request) -> EditedBy:
    user = current_user(request)
    return EditedBy(
        user_id=user.id if user is not None else None,
        anonymous_session_id=getattr(request.state, "anonymous_session_id", None),
    )


def can_review(db: Session, request: Request) -> bool:
    user = current_user(request)
    return user is not None and has_permission(db, user.id, WIKI_EDIT)


def fail(status: int, **body: Any) -> JSONResponse:
    return JSONResponse(status_code=status, content=body)


def require_reviewer(db: Session, request: Request) -> Optional[JSONResponse]:
    """The error response for a caller who may not moderate, or None if they may."""
    user = current_user(request)
    if user is None:
        return fail(401, error="Login required")
    if not has_permission(db, user.id, WIKI_EDIT):
        return fail(403, error="wikiEdit permission required")
    return None


def user_payload(user: Optional[User]) -> Optional[Dict[str, Any]]:
    if user is None:
        return None
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "email_verified": user.email_verified,
        "username": user.display_username or user.username,
        "image": user.image,
    }


def client_info(request: Request) -> Dict[str, Optional[str]]:
    return {
        "ip_address": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
    }
