"""Sign-in, registration, magic links, password reset and social login."""

from __future__ import annotations

import json
import logging
import secrets
from typing import Optional

from fastapi import APIRouter, Depends, Form, HTTPException, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.orm import Session

from dong_chinese import config
from dong_chinese.db import get_db
from dong_chinese.middleware import is_secure
from dong_chinese.routes.common import client_info, current_user, fail
from dong_chinese.schema import User
from dong_chinese.services import auth
from dong_chinese.services.auth import AuthError
from dong_chinese.services.redirects import sanitize_redirect_to
from dong_chinese.services.settings import sync_settings_on_login, sync_settings_on_signup

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])

OAUTH_STATE_COOKIE = "oauth_state"
OAUTH_STATE_MAX_AGE = 10 * 60


def _redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url, status_code=302)


def _signed_in_redirect(request: Request) -> Optional[RedirectResponse]:
    # Pages for signed-out visitors send everyone else home.
    return _redirect("/") if current_user(request) is not None else None


def _start_session(request: Request, response, db: Session, user: User) -> None:
    session = auth.create_session(db, user.id, **client_info(request))
    response.set_cookie(
        config.SESSION_COOKIE,
        session.token,
        max_age=config.SESSION_MAX_AGE_DAYS * 24 * 60 * 60,
        path="/",
        httponly=True,
        samesite="lax",
        secure=is_secure(request),
    )


def _auth_page(request: Request, redirect_to: Optional[str]):
    return _signed_in_redirect(request) or {
        "social_providers": auth.get_configured_social_providers(),
        "redirect_to": sanitize_redirect_to(redirect_to),
    }


# --- login / logout ---------------------------------------------------------


@router.get("/login")
def login_page(request: Request, redirectTo: Optional[str] = Query(None)):
    return _auth_page(request, redirectTo)


@router.post("/login")
def sign_in(
    request: Request,
    identifier: str = Form(""),
    password: str = Form(""),
    redirectTo: Optional[str] = Form(None),
    db: Session = Depends(get_db),
):
    identifier = identifier.strip()
    if not identifier or not password:
        return fail(400, message="Email or username and password are required.", identifier=identifier)

    try:
        if "@" in identifier:
            user = auth.sign_in_email(db, identifier, password)
        else:
            user = auth.sign_in_username(db, identifier, password)
    except AuthError:
        return fail(400, message="Invalid credentials.", identifier=identifier)

    response = _redirect(sanitize_redirect_to(redirectTo))
    _start_session(request, response, db, user)
    sync_settings_on_login(db, user.id, request, response, is_secure(request))
    logger.info("user %s signed in", user.id)
    return response


@router.post("/login/social")
@router.post("/register/social")
def sign_in_social(
    request: Request,
    provider: str = Form(""),
    redirectTo: Optional[str] = Form(None),
):
    if not auth.is_social_provider_configured(provider):
        return fail(400, message="Invalid provider.")

    state = secrets.token_urlsafe(24)
    response = _redirect(auth.social_authorization_url(provider, state))
    response.set_cookie(
        OAUTH_STATE_COOKIE,
        json.dumps(
            {"state": state, "provider": provider, "redirect_to": sanitize_redirect_to(redirectTo)},
            separators=(",", ":"),
        ),
        max_age=OAUTH_STATE_MAX_AGE,
        path="/",
        httponly=True,
        samesite="lax",
        secure=is_secure(request),
    )
    return response


@router.get("/auth/{provider}/callback")
def social_callback(
    provider: str,
    request: Request,
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    try:
        saved = json.loads(request.cookies.get(OAUTH_STATE_COOKIE) or "{}")
    except ValueError:
        saved = {}
    if (
        not code
        or not state
        or not auth.is_social_provider_configured(provider)
        or saved.get("provider") != provider
        or not secrets.compare_digest(str(saved.get("state", "")), state)
    ):
        raise HTTPException(400, detail="Invalid OAuth callback")

    try:
        profile = auth.exchange_social_code(provider, code)
        user = auth.sign_in_social(db, provider, profile)
    except AuthError as e:
        logger.warning("social sign-in with %s failed: %s", provider, e)
        return _redirect("/login?error=social")

    response = _redirect(sanitize_redirect_to(saved.get("redirect_to")))
    response.delete_cookie(OAUTH_STATE_COOKIE, path="/")
    _start_session(request, response, db, user)
    sync_settings_on_login(db, user.id, request, response, is_secure(request))
    return response


@router.post("/logout")
def sign_out(request: Request, db: Session = Depends(get_db)):
    token = request.cookies.get(config.SESSION_COOKIE)
    if token:
        auth.revoke_session(db, token)
    response = _redirect("/")
    response.delete_cookie(config.SESSION_COOKIE, path="/")
    return response


# --- registration -----------------------------------------------------------


@router.get("/register")
def register_page(request: Request, redirectTo: Optional[str] = Query(None)):
    return _auth_page(request, redirectTo)


@router.post("/register")
def sign_up(
    request: Request,
    name: str = Form(""),
    email: str = Form(""),
    username: str = Form(""),
    password: str = Form(""),
    confirmPassword: str = Form(""),
    redirectTo: Optional[str] = Form(None),
    db: Session = Depends(get_db),
):
    name, email, username = name.strip(), email.strip().lower(), username.strip()
    echo = {"name": name, "email": email, "username": username}

    if not email or not password:
        return fail(400, message="Email and password are required.", **echo)
    if password != confirmPassword:
        return fail(400, message="Passwords do not match.", **echo)

    try:
        user = auth.sign_up_email(db, name, email, password, username=username or None)
    except AuthError as e:
        if e.code == "USER_ALREADY_EXISTS":
            return fail(400, message="An account with this email already exists.", **echo)
        if e.code == "USERNAME_TAKEN":
            return fail(400, message="This username is already taken.", **echo)
        return fail(400, message=str(e), **echo)

    sync_settings_on_signup(db, user.id, request)
    response = _redirect(sanitize_redirect_to(redirectTo))
    _start_session(request, response, db, user)
    return response


# --- magic links ------------------------------------------------------------


def _send_magic_link(email: str, redirect_to: Optional[str], db: Session) -> JSONResponse:
    result = auth.handle_send_magic_link(db, email, sanitize_redirect_to(redirect_to))
    body = {"magic_link_message": result.message}
    if not result.ok:
        body["magic_link_error"] = True
    return JSONResponse(status_code=result.status, content=body)


@router.post("/login/magic-link")
def login_magic_link(email: str = Form(""), redirectTo: Optional[str] = Form(None), db: Session = Depends(get_db)):
    return _send_magic_link(email, redirectTo, db)


@router.post("/register/magic-link")
def register_magic_link(email: str = Form(""), redirectTo: Optional[str] = Form(None), db: Session = Depends(get_db)):
    return _send_magic_link(email, redirectTo, db)


@router.get("/magic-link/verify")
def verify_magic_link(
    request: Request,
    token: str = Query(""),
    callbackURL: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    try:
        user = auth.verify_magic_link(db, token)
    except AuthError:
        return _redirect("/login?error=magic-link")

    response = _redirect(sanitize_redirect_to(callbackURL))
    _start_session(request, response, db, user)
    sync_settings_on_login(db, user.id, request, response, is_secure(request))
    return response


# --- password reset and email verification ----------------------------------


@router.get("/forgot-password")
def forgot_password_page(request: Request):
    return _signed_in_redirect(request) or {}


@router.post("/forgot-password")
def request_reset(email: str = Form(""), db: Session = Depends(get_db)):
    email = email.strip().lower()
    if not email:
        return fail(400, message="Email is required.", email=email)
    # Same answer whether or not the address has an account.
    auth.request_password_reset(db, email)
    return {"success": True}


@router.get("/reset-password")
def reset_password_page(token: Optional[str] = Query(None)):
    if not token:
        return _redirect("/forgot-password")
    return {"token": token}


@router.post("/reset-password")
def reset_password(
    token: str = Form(""),
    newPassword: str = Form(""),
    confirmPassword: str = Form(""),
    db: Session = Depends(get_db),
):
    if not token:
        return fail(400, message="Invalid or missing reset token.")
    if not newPassword:
        return fail(400, message="Password is required.")
    if newPassword != confirmPassword:
        return fail(400, message="Passwords do not match.")

    try:
        auth.reset_password(db, token, newPassword)
    except AuthError as e:
        if e.code == "INVALID_TOKEN":
            return fail(400, message="This reset link has expired or is invalid. Please request a new one.")
        return fail(400, message=str(e))

    return _redirect("/login?reset=success")


@router.get("/verify-email")
def verify_email(token: str = Query(""), db: Session = Depends(get_db)):
    try:
        auth.verify_email(db, token)
    except AuthError:
        raise HTTPException(400, detail="This verification link has expired or is invalid.")
    return _redirect("/?verified=1")
