"""
Request pipeline.

Runs, outermost first: legacy wiki URL redirects, session auth, anonymous
sessions for signed-out visitors, then the settings cookie. Later stages rely
on request.state set by earlier ones.
"""

from __future__ import annotations

import logging
import re
from typing import Optional, Tuple

from fastapi import FastAPI, Request
from fastapi.responses import RedirectResponse
from starlette.concurrency import run_in_threadpool

from dong_chinese import config
from dong_chinese.services import anonymous_session, auth
from dong_chinese.services.settings import SETTINGS_COOKIE, parse_settings_cookie

logger = logging.getLogger(__name__)

# Only a lowercase letter followed by an uppercase one is camelCase; this
# leaves percent-encoded bytes such as %E6 alone.
_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z])[A-Z]")


def camel_to_kebab(segment: str) -> str:
    return _CAMEL_BOUNDARY.sub(lambda m: "-" + m.group(0).lower(), segment)


def is_secure(request: Request) -> bool:
    return request.url.scheme == "https"


async def wiki_redirect(request: Request, call_next):
    """The old site used camelCase wiki paths (/wiki/recentChanges); 301 them to kebab-case."""
    path = request.url.path
    if path.startswith("/wiki/"):
        new_path = "/".join(camel_to_kebab(seg) for seg in path.split("/"))
        if new_path != path:
            query = request.url.query
            return RedirectResponse(new_path + (f"?{query}" if query else ""), status_code=301)
    return await call_next(request)


def _lookup_session(session_factory, token: str):
    db = session_factory()
    try:
        return auth.get_session(db, token)
    finally:
        db.close()


async def session_auth(request: Request, call_next):
    request.state.user = None
    request.state.session = None

    token = request.cookies.get(config.SESSION_COOKIE)
    if token:
        found = await run_in_threadpool(_lookup_session, request.app.state.session_factory, token)
        if found is not None:
            request.state.session, request.state.user = found

    return await call_next(request)


def _resolve_anonymous_session(session_factory, existing: Optional[str]) -> Tuple[str, bool]:
    """The visitor's anonymous session id, and whether it was just created."""
    db = session_factory()
    try:
        if existing and anonymous_session.validate_anonymous_session(db, existing):
            return existing, False
        return anonymous_session.create_anonymous_session(db), True
    finally:
        db.close()


async def anonymous_sessions(request: Request, call_next):
    request.state.anonymous_session_id = None

    # Signed-in users keep any old anonymous cookie untouched.
    if request.state.user is not None:
        return await call_next(request)

    session_id, created = await run_in_threadpool(
        _resolve_anonymous_session,
        request.app.state.session_factory,
        request.cookies.get(anonymous_session.COOKIE_NAME),
    )
    request.state.anonymous_session_id = session_id

    response = await call_next(request)
    if created:
        response.set_cookie(
            anonymous_session.COOKIE_NAME,
            session_id,
            max_age=anonymous_session.MAX_AGE_SECONDS,
            path="/",
            httponly=True,
            samesite="lax",
            secure=is_secure(request),
        )
    return response


async def settings_cookie(request: Request, call_next):
    request.state.settings = parse_settings_cookie(request.cookies.get(SETTINGS_COOKIE))
    return await call_next(request)


def install(app: FastAPI) -> None:
    # Starlette runs the most recently added middleware first.
    for handler in (settings_cookie, anonymous_sessions, session_auth, wiki_redirect):
        app.middleware("http")(handler)
