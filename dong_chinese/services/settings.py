"""
Display settings.

The source of truth for every visitor is a small JSON cookie holding only the
non-default values, so pages render correctly without a database round trip.
Signed-in users also get a user_settings row, which follows them across
browsers: it wins on login, and is seeded from the cookie on signup.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Mapping, Optional

from fastapi import Request, Response
from sqlalchemy import select
from sqlalchemy.orm import Session

from dong_chinese.db import utcnow
from dong_chinese.schema import UserSettingsRow

logger = logging.getLogger(__name__)

SETTINGS_COOKIE = "settings"
SETTINGS_DEFAULTS: Dict[str, Any] = {"theme": None}
THEMES = ("light", "dark")
MAX_AGE = 400 * 24 * 60 * 60


def parse_settings_cookie(raw: Optional[str]) -> Dict[str, Any]:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except ValueError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


def read_settings_cookie(request: Request) -> Dict[str, Any]:
    return parse_settings_cookie(request.cookies.get(SETTINGS_COOKIE))


def write_settings_cookie(response: Response, settings: Mapping[str, Any], secure: bool) -> None:
    """Store non-default values, or drop the cookie when everything is default."""
    non_default = {k: v for k, v in settings.items() if v != SETTINGS_DEFAULTS.get(k)}
    if not non_default:
        response.delete_cookie(SETTINGS_COOKIE, path="/")
        return
    response.set_cookie(
        SETTINGS_COOKIE,
        json.dumps(non_default, ensure_ascii=False, separators=(",", ":")),
        max_age=MAX_AGE,
        path="/",
        httponly=False,
        samesite="lax",
        secure=secure,
    )


def read_user_settings(db: Session, user_id: str) -> Dict[str, Any]:
    row = db.scalar(select(UserSettingsRow).where(UserSettingsRow.user_id == user_id))
    if row is None:
        return {}
    out: Dict[str, Any] = {}
    if row.theme in THEMES:
        out["theme"] = row.theme
    return out


def write_user_settings(db: Session, user_id: str, settings: Mapping[str, Any]) -> None:
    theme = settings.get("theme")
    row = db.get(UserSettingsRow, user_id)
    if row is None:
        db.add(UserSettingsRow(user_id=user_id, theme=theme))
    else:
        row.theme = theme
        row.updated_at = utcnow()
    db.commit()


def apply_settings(
    response: Response,
    settings: Mapping[str, Any],
    secure: bool,
    db: Optional[Session] = None,
    user_id: Optional[str] = None,
) -> None:
    write_settings_cookie(response, settings, secure)
    if user_id and db is not None:
        write_user_settings(db, user_id, settings)


def _valid_cookie_settings(request: Request) -> Dict[str, Any]:
    """Recognised values from the settings cookie; anything else is left out."""
    theme = parse_theme(read_settings_cookie(request).get("theme"))
    return {"theme": theme} if theme else {}


def sync_settings_on_login(db: Session, user_id: str, request: Request, response: Response, secure: bool) -> None:
    stored = read_user_settings(db, user_id)
    if stored:
        write_settings_cookie(response, stored, secure)
        return
    from_cookie = _valid_cookie_settings(request)
    if from_cookie:
        logger.debug("saving cookie settings for user %s", user_id)
        write_user_settings(db, user_id, from_cookie)


def sync_settings_on_signup(db: Session, user_id: str, request: Request) -> None:
    from_cookie = _valid_cookie_settings(request)
    if from_cookie:
        write_user_settings(db, user_id, from_cookie)


def parse_theme(value: Optional[str]) -> Optional[str]:
    return value if value in THEMES else None
