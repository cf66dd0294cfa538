"""
Accounts and sign-in.

Passwords are stored as bcrypt(sha256_hex(password)), the scheme used by the
Meteor accounts package, so hashes imported from the previous site keep
working. Sessions are opaque random tokens in the session table, handed to the
browser in the ``session_token`` cookie. One-time tokens (magic links,
password resets, email verification) live in the verification table with a
purpose prefix on the identifier.
"""

from __future__ import annotations

import hashlib
import html
import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlencode

import bcrypt
import requests
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from dong_chinese import config
from dong_chinese.db import as_utc, utcnow
from dong_chinese.models import SocialProvider
from dong_chinese.schema import Account, AuthSession, User, UserEmail, Verification
from dong_chinese.services.mailer import send_email

logger = logging.getLogger(__name__)

BCRYPT_ROUNDS = 10
MAGIC_LINK_TTL = timedelta(minutes=5)
RESET_PASSWORD_TTL = timedelta(hours=1)
EMAIL_VERIFICATION_TTL = timedelta(days=1)

CREDENTIAL_PROVIDER = "credential"


class AuthError(Exception):
    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code


# --- passwords --------------------------------------------------------------


def _prehash(password: str) -> bytes:
    return hashlib.sha256(password.encode("utf-8")).hexdigest().encode("ascii")


def hash_password(password: str) -> str:
    return bcrypt.hashpw(_prehash(password), bcrypt.gensalt(BCRYPT_ROUNDS)).decode("ascii")


def verify_password(password: str, hashed: Optional[str]) -> bool:
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(_prehash(password), hashed.encode("ascii"))
    except ValueError:
        # malformed hash
        return False


# --- users ------------------------------------------------------------------


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def find_user_by_email(db: Session, email: str) -> Optional[User]:
    """Look a user up by primary or secondary address."""
    email = normalize_email(email)
    if not email:
        return None
    found = db.scalar(select(User).where(User.email == email))
    if found is not None:
        return found
    return db.scalar(
        select(User).join(UserEmail, UserEmail.user_id == User.id).where(UserEmail.email == email)
    )


def resolve_primary_email(db: Session, email: str) -> Tuple[str, bool]:
    """
    Map a typed address to the account's primary one.
    Returns (email to authenticate with, whether an account exists).
    """
    found = find_user_by_email(db, email)
    if found is None:
        return normalize_email(email), False
    return found.email, True


def find_user_by_username(db: Session, username: str) -> Optional[User]:
    username = (username or "").strip().lower()
    if not username:
        return None
    return db.scalar(select(User).where(User.username == username))


def _credential_account(db: Session, user_id: str) -> Optional[Account]:
    return db.scalar(
        select(Account).where(Account.user_id == user_id, Account.provider_id == CREDENTIAL_PROVIDER)
    )


def create_user(
    db: Session,
    name: str,
    email: str,
    username: Optional[str] = None,
    email_verified: bool = False,
    image: Optional[str] = None,
) -> User:
    user = User(
        name=name,
        email=normalize_email(email),
        email_verified=email_verified,
        username=username.strip().lower() if username else None,
        display_username=username.strip() if username else None,
        image=image,
    )
    db.add(user)
    db.flush()
    return user


def sign_up_email(
    db: Session,
    name: str,
    email: str,
    password: str,
    username: Optional[str] = None,
) -> User:
    email = normalize_email(email)
    if not email or not password:
        raise AuthError("INVALID_INPUT", "Email and password are required")
    if find_user_by_email(db, email) is not None:
        raise AuthError("USER_ALREADY_EXISTS", "User already exists")
    if username and find_user_by_username(db, username) is not None:
        raise AuthError("USERNAME_TAKEN", "Username is already taken")

    user = create_user(db, name or email.split("@")[0], email, username=username)
    db.add(Account(
        user_id=user.id,
        provider_id=CREDENTIAL_PROVIDER,
        account_id=user.id,
        password=hash_password(password),
    ))
    db.commit()
    logger.info("user %s signed up", user.id)

    send_verification_email(db, user)
    return user


def _check_password(db: Session, user: Optional[User], password: str) -> User:
    account = _credential_account(db, user.id) if user is not None else None
    if account is None or not verify_password(password, account.password):
        raise AuthError("INVALID_CREDENTIALS", "Invalid credentials")
    return user


def sign_in_email(db: Session, email: str, password: str) -> User:
    return _check_password(db, find_user_by_email(db, email), password)


def sign_in_username(db: Session, username: str, password: str) -> User:
    return _check_password(db, find_user_by_username(db, username), password)


# --- sessions ---------------------------------------------------------------


def create_session(
    db: Session,
    user_id: str,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> AuthSession:
    session = AuthSession(
        token=secrets.token_urlsafe(32),
        user_id=user_id,
        expires_at=utcnow() + timedelta(days=config.SESSION_MAX_AGE_DAYS),
        ip_address=ip_address,
        user_agent=user_agent,
    )
    db.add(session)
    db.commit()
    return session


def get_session(db: Session, token: Optional[str]) -> Optional[Tuple[AuthSession, User]]:
    """The live session for a cookie token and its user. Expired sessions are deleted."""
    if not token:
        return None
    row = db.execute(
        select(AuthSession, User).join(User, User.id == AuthSession.user_id).where(AuthSession.token == token)
    ).first()
    if row is None:
        return None
    session, user = row
    if as_utc(session.expires_at) <= utcnow():
        db.delete(session)
        db.commit()
        return None
    return session, user


def revoke_session(db: Session, token: str) -> None:
    db.execute(delete(AuthSession).where(AuthSession.token == token))
    db.commit()


def revoke_user_sessions(db: Session, user_id: str) -> int:
    result = db.execute(delete(AuthSession).where(AuthSession.user_id == user_id))
    db.commit()
    return result.rowcount or 0


# --- one-time tokens ---------------------------------------------------------


def _create_verification(db: Session, identifier: str, ttl: timedelta) -> str:
    token = secrets.token_urlsafe(32)
    db.add(Verification(identifier=identifier, value=token, expires_at=utcnow() + ttl))
    db.commit()
    return token


def _consume_verification(db: Session, purpose: str, token: str) -> Optional[str]:
    """Delete a token and return the subject it was issued for, if it is valid."""
    if not token:
        return None
    row = db.scalar(select(Verification).where(Verification.value == token))
    if row is None or not row.identifier.startswith(purpose + ":"):
        return None
    db.delete(row)
    db.commit()
    if as_utc(row.expires_at) <= utcnow():
        return None
    return row.identifier[len(purpose) + 1:]


def _link(path: str, **params: str) -> str:
    return f"{config.ORIGIN}{path}?{urlencode(params)}"


# --- magic links ------------------------------------------------------------


def create_magic_link(db: Session, email: str, callback_url: str = "/") -> str:
    token = _create_verification(db, f"magic-link:{normalize_email(email)}", MAGIC_LINK_TTL)
    return _link("/magic-link/verify", token=token, callbackURL=callback_url)


def verify_magic_link(db: Session, token: str) -> User:
    """Sign-in side of a magic link. Creates the account on first use."""
    email = _consume_verification(db, "magic-link", token)
    if email is None:
        raise AuthError("INVALID_TOKEN", "Invalid or expired link")

    user = find_user_by_email(db, email)
    if user is None:
        user = create_user(db, email.split("@")[0], email, email_verified=True)
        logger.info("user %s created from magic link", user.id)
    elif not user.email_verified and user.email == email:
        user.email_verified = True
    db.commit()
    return user


@dataclass
class MagicLinkResult:
    ok: bool
    message: str
    status: int = 200


def handle_send_magic_link(db: Session, email: str, redirect_to: str = "/") -> MagicLinkResult:
    """
    Email a sign-in link. The link signs into the account owning the address
    (secondary addresses resolve to their primary), but the email goes to the
    address that was typed.
    """
    email = normalize_email(email)
    if not email:
        return MagicLinkResult(False, "Email is required.", 400)

    auth_email, exists = resolve_primary_email(db, email)
    url = create_magic_link(db, auth_email, redirect_to)

    subject = "Sign in to Dong Chinese" if exists else "Create your Dong Chinese account"
    action = "sign in" if exists else "create your account"
    button = "Sign in" if exists else "Create account"
    footer = "This link expires in 5 minutes. If you didn't request this, you can safely ignore this email."
    sent = send_email(
        email,
        subject,
        f'<p>Click the link below to {action}:</p>\n'
        f'<p><a href="{html.escape(url)}">{button}</a></p>\n'
        f"<p>{footer}</p>",
        f"{subject}:\n\n{url}\n\n{footer}",
    )
    if not sent:
        return MagicLinkResult(False, "Failed to send email. Please try again.", 500)

    if exists:
        return MagicLinkResult(True, "Check your email for a sign-in link.")
    return MagicLinkResult(True, "Check your email for a link to create your account.")


# --- password reset ---------------------------------------------------------


def request_password_reset(db: Session, email: str) -> bool:
    """
    Email a reset link to the typed address if it belongs to an account.
    Returns whether a link was sent; callers should not reveal it.
    """
    typed = normalize_email(email)
    user = find_user_by_email(db, typed)
    if user is None:
        return False

    token = _create_verification(db, f"reset-password:{user.id}", RESET_PASSWORD_TTL)
    url = _link("/reset-password", token=token)
    footer = "This link expires in 1 hour. If you didn't request this, you can safely ignore this email."
    return send_email(
        typed,
        "Reset your Dong Chinese password",
        "<p>Click the link below to reset your password:</p>\n"
        f'<p><a href="{html.escape(url)}">Reset password</a></p>\n'
        f"<p>{footer}</p>",
        f"Reset your password:\n\n{url}\n\n{footer}",
    )


def reset_password(db: Session, token: str, new_password: str) -> User:
    if not new_password:
        raise AuthError("INVALID_INPUT", "Password is required")
    user_id = _consume_verification(db, "reset-password", token)
    user = db.get(User, user_id) if user_id else None
    if user is None:
        raise AuthError("INVALID_TOKEN", "Invalid or expired token")

    account = _credential_account(db, user.id)
    if account is None:
        # Accounts made by magic link or social login get a password this way.
        db.add(Account(
            user_id=user.id,
            provider_id=CREDENTIAL_PROVIDER,
            account_id=user.id,
            password=hash_password(new_password),
        ))
    else:
        account.password = hash_password(new_password)
    db.commit()

    revoked = revoke_user_sessions(db, user.id)
    logger.info("password reset for user %s (%d sessions revoked)", user.id, revoked)
    return user


# --- email verification -----------------------------------------------------


def send_verification_email(db: Session, user: User) -> bool:
    token = _create_verification(db, f"email-verification:{user.email}", EMAIL_VERIFICATION_TTL)
    url = _link("/verify-email", token=token)
    return send_email(
        user.email,
        "Verify your Dong Chinese email address",
        "<p>Click the link below to verify your email address:</p>\n"
        f'<p><a href="{html.escape(url)}">Verify email</a></p>',
        f"Verify your email address:\n\n{url}",
    )


def verify_email(db: Session, token: str) -> User:
    email = _consume_verification(db, "email-verification", token)
    user = db.scalar(select(User).where(User.email == email)) if email else None
    if user is None:
        raise AuthError("INVALID_TOKEN", "Invalid or expired token")
    user.email_verified = True
    db.commit()
    return user


# --- social sign-in ---------------------------------------------------------

SOCIAL_PROVIDERS: Dict[str, Dict[str, Any]] = {
    "google": {
        "label": "Google",
        "order": 1,
        "authorize_url": "https://accounts.google.com/o/oauth2/v2/auth",
        "token_url": "https://oauth2.googleapis.com/token",
        "profile_url": "https://openidconnect.googleapis.com/v1/userinfo",
        "scope": "openid email profile",
    },
    "facebook": {
        "label": "Facebook",
        "order": 2,
        "authorize_url": "https://www.facebook.com/v19.0/dialog/oauth",
        "token_url": "https://graph.facebook.com/v19.0/oauth/access_token",
        "profile_url": "https://graph.facebook.com/me?fields=id,name,email,picture",
        "scope": "email public_profile",
    },
    "github": {
        "label": "GitHub",
        "order": 3,
        "authorize_url": "https://github.com/login/oauth/authorize",
        "token_url": "https://github.com/login/oauth/access_token",
        "profile_url": "https://api.github.com/user",
        "scope": "read:user user:email",
    },
}


def _client_credentials(provider: str) -> Tuple[Optional[str], Optional[str]]:
    prefix = provider.upper()
    return config.env(f"{prefix}_CLIENT_ID"), config.env(f"{prefix}_CLIENT_SECRET")


def get_configured_social_providers() -> List[SocialProvider]:
    """Providers with both a client id and secret set, in display order."""
    out = []
    for name, info in SOCIAL_PROVIDERS.items():
        client_id, client_secret = _client_credentials(name)
        if client_id and client_secret:
            out.append(SocialProvider(name=name, label=info["label"], order=info["order"]))
    return sorted(out, key=lambda p: p.order)


def is_social_provider_configured(provider: str) -> bool:
    return any(p.name == provider for p in get_configured_social_providers())


def social_redirect_uri(provider: str) -> str:
    return f"{config.ORIGIN}/auth/{provider}/callback"


def social_authorization_url(provider: str, state: str) -> str:
    info = SOCIAL_PROVIDERS[provider]
    client_id, _ = _client_credentials(provider)
    params = {
        "client_id": client_id,
        "redirect_uri": social_redirect_uri(provider),
        "response_type": "code",
        "scope": info["scope"],
        "state": state,
    }
    return f"{info['authorize_url']}?{urlencode(params)}"


@dataclass
class SocialProfile:
    account_id: str
    email: Optional[str]
    name: Optional[str]
    image: Optional[str]
    access_token: str


def _normalize_profile(provider: str, data: Dict[str, Any], access_token: str) -> SocialProfile:
    if provider == "google":
        return SocialProfile(str(data["sub"]), data.get("email"), data.get("name"), data.get("picture"), access_token)
    if provider == "facebook":
        picture = ((data.get("picture") or {}).get("data") or {}).get("url")
        return SocialProfile(str(data["id"]), data.get("email"), data.get("name"), picture, access_token)
    return SocialProfile(
        str(data["id"]), data.get("email"), data.get("name") or data.get("login"), data.get("avatar_url"), access_token
    )


def _github_primary_email(access_token: str) -> Optional[str]:
    resp = requests.get(
        "https://api.github.com/user/emails",
        headers={"Authorization": f"Bearer {access_token}", "Accept": "application/json"},
        timeout=15,
    )
    if not resp.ok:
        return None
    for item in resp.json():
        if item.get("primary") and item.get("verified"):
            return item.get("email")
    return None


def exchange_social_code(provider: str, code: str) -> SocialProfile:
    """Trade an OAuth authorization code for the provider's user profile."""
    info = SOCIAL_PROVIDERS[provider]
    client_id, client_secret = _client_credentials(provider)
    try:
        resp = requests.post(
            info["token_url"],
            data={
                "client_id": client_id,
                "client_secret": client_secret,
                "code": code,
                "redirect_uri": social_redirect_uri(provider),
                "grant_type": "authorization_code",
            },
            headers={"Accept": "application/json"},
            timeout=15,
        )
        resp.raise_for_status()
        access_token = resp.json().get("access_token")
        if not access_token:
            raise AuthError("OAUTH_FAILED", f"{provider} returned no access token")

        resp = requests.get(
            info["profile_url"],
            headers={"Authorization": f"Bearer {access_token}", "Accept": "application/json"},
            timeout=15,
        )
        resp.raise_for_status()
        profile = _normalize_profile(provider, resp.json(), access_token)
        if provider == "github" and not profile.email:
            profile.email = _github_primary_email(access_token)
    except requests.RequestException as e:
        logger.warning("%s OAuth exchange failed: %s", provider, e)
        raise AuthError("OAUTH_FAILED", f"Could not sign in with {provider}") from e
    return profile


def sign_in_social(db: Session, provider: str, profile: SocialProfile) -> User:
    """
    Sign in through a linked provider account. An unlinked account is linked
    to the user owning its email address, or a new user is created.
    """
    account = db.scalar(
        select(Account).where(Account.provider_id == provider, Account.account_id == profile.account_id)
    )
    if account is not None:
        account.access_token = profile.access_token
        db.commit()
        return db.get(User, account.user_id)

    if not profile.email:
        raise AuthError("OAUTH_FAILED", f"{provider} did not share an email address")

    user = find_user_by_email(db, profile.email)
    if user is None:
        user = create_user(
            db,
            profile.name or profile.email.split("@")[0],
            profile.email,
            email_verified=True,
            image=profile.image,
        )
        logger.info("user %s created from %s sign-in", user.id, provider)
    db.add(Account(
        user_id=user.id,
        provider_id=provider,
        account_id=profile.account_id,
        access_token=profile.access_token,
    ))
    db.commit()
    return user
