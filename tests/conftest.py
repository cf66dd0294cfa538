from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Iterable, List

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

from dong_chinese import config
from dong_chinese.db import init_db, make_engine, make_session_factory
from dong_chinese.main import create_app
from dong_chinese.schema import Account, CharBase, CharManual, User, UserPermission
from dong_chinese.services import auth

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)

EDIT_META = {
    "edit_comment",
    "edited_by",
    "anonymous_session_id",
    "reviewed_by",
    "reviewed_at",
    "review_comment",
}


def at(minutes: int) -> datetime:
    return T0 + timedelta(minutes=minutes)


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    for name in ("MAIL_URL", "TTS_SUBSCRIPTION_KEY", "TTS_TOKEN_ENDPOINT"):
        monkeypatch.delenv(name, raising=False)
    for provider in ("GITHUB", "GOOGLE", "FACEBOOK"):
        monkeypatch.delenv(f"{provider}_CLIENT_ID", raising=False)
        monkeypatch.delenv(f"{provider}_CLIENT_SECRET", raising=False)


@pytest.fixture
def session_factory():
    # One in-memory database shared by every connection of the test.
    engine = make_engine("sqlite://", poolclass=StaticPool)
    init_db(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    with TestClient(create_app(session_factory)) as c:
        yield c


@pytest.fixture
def sent_emails(monkeypatch) -> List[dict]:
    """Capture outgoing mail instead of logging it."""
    sent: List[dict] = []

    def fake_send(to, subject, html, text=None):
        sent.append({"to": to, "subject": subject, "html": html, "text": text})
        return True

    monkeypatch.setattr(auth, "send_email", fake_send)
    return sent


def make_char(db, character: str, **fields) -> CharBase:
    row = CharBase(character=character, created_at=T0, updated_at=T0, **fields)
    db.add(row)
    db.commit()
    return row


def make_edit(db, character: str, minutes: int, status: str = "approved", **fields) -> CharManual:
    fields.setdefault("changed_fields", [f for f in fields if f not in EDIT_META])
    fields.setdefault("edit_comment", f"edit at {minutes}")
    row = CharManual(character=character, status=status, created_at=at(minutes), **fields)
    db.add(row)
    db.commit()
    return row


def make_user(
    db,
    name: str = "Alice",
    email: str = "alice@example.com",
    password: str = "hunter22",
    username: str | None = None,
    permissions: Iterable[str] = (),
) -> User:
    user = auth.create_user(db, name, email, username=username)
    db.add(Account(
        user_id=user.id,
        provider_id=auth.CREDENTIAL_PROVIDER,
        account_id=user.id,
        password=auth.hash_password(password),
    ))
    for perm in permissions:
        db.add(UserPermission(user_id=user.id, permission=perm))
    db.commit()
    return user


def sign_in(client: TestClient, db, user: User) -> str:
    session = auth.create_session(db, user.id)
    client.cookies.set(config.SESSION_COOKIE, session.token)
    return session.token
