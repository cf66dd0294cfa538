from datetime import timedelta

import pytest
from conftest import make_user
from starlette.requests import Request
from starlette.responses import Response

from dong_chinese.db import utcnow
from dong_chinese.schema import AnonymousSession, UserSettingsRow
from dong_chinese.services import anonymous_session, permissions, settings
from dong_chinese.services.redirects import sanitize_redirect_to
from dong_chinese.services.users import editor_label, resolve_user_names


def request_with_cookie(value=None) -> Request:
    headers = []
    if value is not None:
        headers.append((b"cookie", f"{settings.SETTINGS_COOKIE}={value}".encode()))
    return Request({"type": "http", "method": "GET", "path": "/", "headers": headers})


class TestAnonymousSessions:
    def test_create_and_validate(self, db):
        sid = anonymous_session.create_anonymous_session(db)
        assert anonymous_session.validate_anonymous_session(db, sid)
        assert not anonymous_session.validate_anonymous_session(db, "nope")
        assert not anonymous_session.validate_anonymous_session(db, "")

    def test_delete(self, db):
        sid = anonymous_session.create_anonymous_session(db)
        anonymous_session.delete_anonymous_session(db, sid)
        assert not anonymous_session.validate_anonymous_session(db, sid)

    def test_delete_expired(self, db):
        fresh = anonymous_session.create_anonymous_session(db)
        db.add(AnonymousSession(id="old", created_at=utcnow() - timedelta(days=31)))
        db.commit()
        assert anonymous_session.delete_expired_sessions(db) == 1
        assert anonymous_session.validate_anonymous_session(db, fresh)
        assert not anonymous_session.validate_anonymous_session(db, "old")


class TestPermissions:
    def test_grant_and_check(self, db):
        user = make_user(db)
        assert not permissions.has_permission(db, user.id, permissions.WIKI_EDIT)
        assert permissions.grant_permission(db, user.id, permissions.WIKI_EDIT)
        assert not permissions.grant_permission(db, user.id, permissions.WIKI_EDIT)
        assert permissions.has_permission(db, user.id, permissions.WIKI_EDIT)
        assert permissions.get_user_permissions(db, user.id) == ["wikiEdit"]

    def test_no_user(self, db):
        assert not permissions.has_permission(db, None, permissions.WIKI_EDIT)


class TestUsers:
    def test_resolve_names(self, db):
        alice = make_user(db)
        bob = make_user(db, name="Bob", email="bob@example.com")
        names = resolve_user_names(db, [alice.id, None, bob.id, alice.id, "ghost"])
        assert names == {alice.id: "Alice", bob.id: "Bob"}
        assert resolve_user_names(db, [None]) == {}

    def test_editor_label(self):
        names = {"u1": "Alice"}
        assert editor_label("u1", names) == "Alice"
        assert editor_label(None, names) == "Anonymous"
        assert editor_label("u2", names) == "Unknown"


@pytest.mark.parametrize(
    "value, expected",
    [
        (None, "/"),
        ("", "/"),
        ("/wiki/水", "/wiki/水"),
        ("/settings?tab=1", "/settings?tab=1"),
        ("//evil.example", "/"),
        ("/\\evil.example", "/"),
        ("https://evil.example", "/"),
        ("wiki", "/"),
    ],
)
def test_sanitize_redirect_to(value, expected):
    assert sanitize_redirect_to(value) == expected


class TestSettings:
    def test_parse_cookie(self):
        assert settings.parse_settings_cookie('{"theme":"dark"}') == {"theme": "dark"}
        assert settings.parse_settings_cookie("not json") == {}
        assert settings.parse_settings_cookie("[1]") == {}
        assert settings.parse_settings_cookie(None) == {}

    def test_cookie_holds_only_non_defaults(self):
        response = Response()
        settings.write_settings_cookie(response, {"theme": "dark"}, secure=False)
        header = response.headers["set-cookie"]
        assert "dark" in header
        assert "Max-Age=34560000" in header
        assert "HttpOnly" not in header

    def test_default_settings_delete_the_cookie(self):
        response = Response()
        settings.write_settings_cookie(response, {"theme": None}, secure=False)
        assert "Max-Age=0" in response.headers["set-cookie"]

    def test_user_settings_upsert(self, db):
        user = make_user(db)
        assert settings.read_user_settings(db, user.id) == {}
        settings.write_user_settings(db, user.id, {"theme": "dark"})
        settings.write_user_settings(db, user.id, {"theme": "light"})
        assert settings.read_user_settings(db, user.id) == {"theme": "light"}

    def test_login_prefers_stored_settings(self, db):
        user = make_user(db)
        settings.write_user_settings(db, user.id, {"theme": "dark"})
        response = Response()
        settings.sync_settings_on_login(db, user.id, request_with_cookie('{"theme":"light"}'), response, False)
        assert "dark" in response.headers["set-cookie"]
        assert settings.read_user_settings(db, user.id) == {"theme": "dark"}

    def test_login_saves_cookie_settings_when_none_stored(self, db):
        user = make_user(db)
        response = Response()
        settings.sync_settings_on_login(db, user.id, request_with_cookie('{"theme":"light"}'), response, False)
        assert settings.read_user_settings(db, user.id) == {"theme": "light"}
        assert "set-cookie" not in response.headers

    def test_signup_seeds_from_cookie(self, db):
        user = make_user(db)
        settings.sync_settings_on_signup(db, user.id, request_with_cookie('{"theme":"dark"}'))
        assert settings.read_user_settings(db, user.id) == {"theme": "dark"}

    def test_unknown_cookie_theme_is_not_saved(self, db):
        user = make_user(db)
        settings.sync_settings_on_login(db, user.id, request_with_cookie('{"theme":"purple"}'), Response(), False)
        settings.sync_settings_on_signup(db, user.id, request_with_cookie('{"theme":"purple"}'))
        assert db.get(UserSettingsRow, user.id) is None

    def test_parse_theme(self):
        assert settings.parse_theme("dark") == "dark"
        assert settings.parse_theme("system") is None
        assert settings.parse_theme(None) is None
