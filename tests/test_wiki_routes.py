import pytest
from conftest import make_char, make_edit, make_user, sign_in
from sqlalchemy import select

from dong_chinese.routes.wiki import parse_json_field
from dong_chinese.schema import CharManual
from dong_chinese.services import char_edit
from dong_chinese.services.char_edit import get_char_view_row, reject_char_edit
from dong_chinese.services.permissions import WIKI_EDIT

WATER_URL = "/wiki/%E6%B0%B4"


def reload(db, edit_id):
    return db.get(CharManual, edit_id, populate_existing=True)


def edit_statuses(db, character="水"):
    db.expire_all()
    edits = db.scalars(select(CharManual).where(CharManual.character == character).order_by(CharManual.created_at))
    return [(e.gloss, e.status) for e in edits]


@pytest.fixture
def water(db):
    return make_char(db, "水", gloss="water", pinyin=["shuǐ"], jun_da_rank=202)


@pytest.fixture
def reviewer(client, db):
    user = make_user(db, name="Rita", email="rita@example.com", permissions=[WIKI_EDIT])
    sign_in(client, db, user)
    return user


@pytest.fixture
def editor(client, db):
    user = make_user(db, name="Eddie", email="eddie@example.com")
    sign_in(client, db, user)
    return user


def submit(client, **form):
    form.setdefault("editComment", "improve")
    return client.post("/wiki/水/edit", data=form, follow_redirects=False)


class TestCharacterPage:
    def test_shows_effective_data(self, client, water):
        body = client.get("/wiki/水").json()
        assert body["character"]["gloss"] == "water"
        assert body["component_uses"] == []
        assert body["pending_count"] == 0
        assert body["user_pending_edit"] is None
        assert body["can_review"] is False
        assert body["show_draft"] is False

    def test_unknown_and_multi_character_entries(self, client, water):
        assert client.get("/wiki/火").status_code == 404
        assert client.get("/wiki/水水").status_code == 404

    def test_draft_view_flag(self, client, water):
        assert client.get("/wiki/水", params={"view": "draft"}).json()["show_draft"] is True


class TestSubmitEdit:
    def test_anonymous_edit_is_pending_and_updates_the_draft(self, client, water):
        response = submit(client, gloss="river")
        assert response.status_code == 303
        assert response.headers["location"] == WATER_URL + "?edited=pending"

        body = client.get("/wiki/水").json()
        assert body["pending_count"] == 1
        assert body["user_pending_edit"]["gloss"] == "river"
        assert body["character"]["gloss"] == "water"

        submit(client, gloss="sea", editComment="second try")
        body = client.get("/wiki/水").json()
        assert body["pending_count"] == 1
        assert body["user_pending_edit"]["gloss"] == "sea"
        assert body["user_pending_edit"]["edit_comment"] == "second try"

    def test_comment_is_required(self, client, water):
        response = submit(client, gloss="river", editComment="  ")
        assert response.status_code == 400
        assert response.json() == {"error": "Edit comment is required"}

    def test_unchanged_submission(self, client, water):
        response = submit(client, gloss="water", pinyin='["shuǐ"]')
        assert response.status_code == 400
        assert response.json() == {"error": "No fields were changed"}

    def test_reviewer_edits_are_applied_immediately(self, client, db, water, reviewer):
        response = submit(client, gloss="river", strokeCountSimp="4")
        assert response.headers["location"] == WATER_URL + "?edited=approved"
        row = get_char_view_row(db, "水")
        assert row["gloss"] == "river"
        assert row["stroke_count_simp"] == 4

    def test_json_fields_and_sources(self, client, db, water, reviewer):
        submit(
            client,
            components='[{"character": "氵", "type": ["meaning"]}]',
            customSources='["Book", "Site|https://example.com", "Bad|javascript:alert(1)"]',
        )
        row = get_char_view_row(db, "水")
        assert row["components"] == [{"character": "氵", "type": ["meaning"]}]
        assert row["custom_sources"] == ["Book", "Site|https://example.com"]

    def test_json_fields_of_the_wrong_shape_are_dropped(self, client, db, water, reviewer):
        response = submit(client, gloss="river", pinyin='"shui"', components="5", fragmentsSimp="[[0, 1], 2]")
        assert response.headers["location"] == WATER_URL + "?edited=approved"
        row = get_char_view_row(db, "水")
        assert row["gloss"] == "river"
        assert row["pinyin"] == ["shuǐ"]
        assert row["components"] is None
        assert row["fragments_simp"] is None

        assert client.get("/wiki/水").json()["character"]["pinyin"] == ["shuǐ"]
        assert client.get("/wiki/lists/components/0/100").status_code == 200
        assert client.get("/wiki/lists/component-types").status_code == 200

    def test_rejected_draft_is_not_updated(self, client, db, water, reviewer):
        draft = make_edit(db, "水", 10, status="pending", gloss="river", edited_by=reviewer.id)
        reject_char_edit(db, draft.id, reviewer.id, "not yet")

        response = submit(client, gloss="stream")
        assert response.headers["location"] == WATER_URL + "?edited=approved"
        assert edit_statuses(db) == [("river", "rejected"), ("stream", "approved")]

    def test_draft_reviewed_after_the_form_loaded(self, client, db, water, editor, monkeypatch):
        draft = make_edit(db, "水", 10, status="pending", gloss="river", edited_by=editor.id)
        # The draft is still found, but is rejected before it can be rewritten.
        monkeypatch.setattr(char_edit, "get_user_pending_edit", lambda *args: draft)
        reject_char_edit(db, draft.id, editor.id, "not yet")

        response = submit(client, gloss="stream")
        assert response.headers["location"] == WATER_URL + "?edited=pending"
        assert edit_statuses(db) == [("river", "rejected"), ("stream", "pending")]


def test_parse_json_field_shapes():
    assert parse_json_field("pinyin", '["shuǐ", "shuì"]') == ["shuǐ", "shuì"]
    assert parse_json_field("pinyin", "[1]") is None
    assert parse_json_field("components", '[{"character": "氵"}]') == [{"character": "氵"}]
    assert parse_json_field("components", '["氵"]') is None
    assert parse_json_field("stroke_data_simp", '{"strokes": []}') == {"strokes": []}
    assert parse_json_field("stroke_data_simp", "[]") is None
    assert parse_json_field("fragments_simp", "[[0, 1], [2]]") == [[0, 1], [2]]
    assert parse_json_field("fragments_simp", "[[true]]") is None
    assert parse_json_field("historical_images", '{"url": "/a.png"}') is None
    assert parse_json_field("historical_images", "not json") is None


class TestModeration:
    @pytest.fixture
    def draft(self, db, water):
        return make_edit(db, "水", 10, status="pending", gloss="river", anonymous_session_id="anon-1")

    def test_requires_login(self, client, draft):
        response = client.post("/wiki/pending/approve", data={"editId": draft.id})
        assert response.status_code == 401
        assert response.json() == {"error": "Login required"}

    def test_requires_permission(self, client, draft, editor):
        response = client.post("/wiki/pending/approve", data={"editId": draft.id})
        assert response.status_code == 403

    def test_approve(self, client, db, draft, reviewer):
        assert client.post("/wiki/pending/approve", data={}).json() == {"error": "Missing editId"}

        response = client.post("/wiki/pending/approve", data={"editId": draft.id, "reviewComment": "ok"})
        assert response.json() == {"approved": True, "edit_id": draft.id}
        row = reload(db, draft.id)
        assert row.reviewed_by == reviewer.id
        assert row.review_comment == "ok"
        assert get_char_view_row(db, "水")["gloss"] == "river"

        again = client.post("/wiki/pending/approve", data={"editId": draft.id})
        assert again.status_code == 404

    def test_reject_requires_comment(self, client, db, draft, reviewer):
        response = client.post("/wiki/pending/reject", data={"editId": draft.id})
        assert response.status_code == 400
        assert response.json() == {"error": "Rejection comment is required"}

        response = client.post("/wiki/pending/reject", data={"editId": draft.id, "rejectComment": "no source"})
        assert response.json() == {"rejected": True, "edit_id": draft.id}
        assert reload(db, draft.id).status == "rejected"

    def test_approve_from_edit_page(self, client, db, draft, reviewer):
        response = client.post("/wiki/水/edit/approve", data={"editId": draft.id})
        assert response.json()["approved"] is True

    def test_pending_queue(self, client, db, draft, reviewer):
        body = client.get("/wiki/pending").json()
        assert body["can_review"] is True
        item, = body["items"]
        assert item["id"] == draft.id
        assert item["editor_name"] == "Anonymous"
        assert item["fields"]["gloss"] == "river"
        assert body["char_data"]["水"]["gloss"] == "water"

    def test_pending_queue_shows_only_own_edits(self, client, draft):
        body = client.get("/wiki/pending").json()
        assert body["can_review"] is False
        assert body["items"] == []

        submit(client, gloss="sea")
        items = client.get("/wiki/pending").json()["items"]
        assert [i["fields"]["gloss"] for i in items] == ["sea"]


class TestHistory:
    @pytest.fixture
    def edits(self, db, water):
        alice = make_user(db)
        first = make_edit(db, "水", 10, gloss="river", edited_by=alice.id)
        second = make_edit(db, "水", 20, gloss="sea", edited_by=alice.id, reviewed_by=alice.id)
        return first, second

    def test_history(self, client, edits):
        first, second = edits
        body = client.get("/wiki/水/history").json()
        assert body["total"] == 2
        assert body["total_pages"] == 1
        assert [e["id"] for e in body["edits"]] == [second.id, first.id]
        assert body["edits"][0]["editor_name"] == "Alice"
        assert body["edits"][0]["reviewer_name"] == "Alice"
        assert body["baselines"][first.id]["gloss"] == "water"
        assert body["baselines"][second.id]["gloss"] == "river"

    def test_history_page_parameter(self, client, edits):
        assert client.get("/wiki/水/history", params={"page": "x"}).json()["page_num"] == 1
        body = client.get("/wiki/水/history", params={"page": "2"}).json()
        assert body["page_num"] == 2
        assert body["edits"] == []

    def test_snapshot(self, client, edits):
        first, _ = edits
        body = client.get(f"/wiki/水/history/{first.id}").json()
        assert body["snapshot"]["gloss"] == "river"
        assert body["snapshot"]["pinyin"] == ["shuǐ"]
        assert body["edit"]["id"] == first.id
        assert body["edit"]["fields"] is None

    def test_snapshot_of_other_character(self, client, db, edits):
        make_char(db, "火")
        first, _ = edits
        assert client.get(f"/wiki/火/history/{first.id}").status_code == 404
        assert client.get("/wiki/水/history/missing").status_code == 404
        assert client.get(f"/wiki/水水/history/{first.id}").status_code == 404

    def test_rollback(self, client, db, edits, reviewer):
        first, _ = edits
        response = client.post(
            "/wiki/水/history/rollback",
            data={"editId": first.id, "rollbackComment": "vandalism"},
            follow_redirects=False,
        )
        assert response.status_code == 303
        assert response.headers["location"] == WATER_URL + "/history"
        assert get_char_view_row(db, "水")["gloss"] == "river"
        newest = db.scalars(select(CharManual).order_by(CharManual.created_at.desc())).first()
        assert newest.edit_comment == "[Rollback] vandalism"
        assert newest.status == "approved"

    def test_rollback_to_current_state(self, client, edits, reviewer):
        _, second = edits
        response = client.post("/wiki/水/history/rollback", data={"editId": second.id, "rollbackComment": "noop"})
        assert response.status_code == 400

    def test_rollback_validation(self, client, db, edits, reviewer):
        first, _ = edits
        assert client.post("/wiki/水/history/rollback", data={"editId": first.id}).status_code == 400
        make_char(db, "火")
        response = client.post("/wiki/火/history/rollback", data={"editId": first.id, "rollbackComment": "x"})
        assert response.status_code == 404

    def test_rollback_requires_permission(self, client, edits, editor):
        first, _ = edits
        response = client.post("/wiki/水/history/rollback", data={"editId": first.id, "rollbackComment": "x"})
        assert response.status_code == 403


class TestListingPages:
    def test_recent_changes(self, client, db, water):
        edit = make_edit(db, "水", 10, gloss="river")
        body = client.get("/wiki/recent-changes").json()
        assert body["total"] == 1
        assert body["page_size"] == 50
        assert body["items"][0]["id"] == edit.id
        assert body["items"][0]["editor_name"] == "Anonymous"
        assert body["baselines"][edit.id]["gloss"] == "water"

    def test_search(self, client, water):
        body = client.get("/wiki/search", params={"q": "water"}).json()
        assert body["results"] == [{"character": "水", "pinyin": "shuǐ", "gloss": "water"}]
        assert client.get("/wiki/search").json() == {"q": "", "results": []}

    def test_lists(self, client, water):
        response = client.get("/wiki/lists", follow_redirects=False)
        assert response.status_code == 302
        assert response.headers["location"] == "/wiki/lists/movie-contexts/0/100"

        body = client.get("/wiki/lists/book-count/0/10").json()
        assert body["total"] == 1
        assert body["items"][0]["character"] == "水"
        assert body["list_label"] == "Characters by book frequency"
        assert body["all_lists"][-1]["slug"] == "component-types"

    @pytest.mark.parametrize(
        "path, status",
        [
            ("/wiki/lists/hsk/0/10", 404),
            ("/wiki/lists/book-count/x/10", 400),
            ("/wiki/lists/book-count/0/0", 400),
            ("/wiki/lists/book-count/0/501", 400),
        ],
    )
    def test_list_validation(self, client, path, status):
        assert client.get(path).status_code == status

    def test_component_types(self, client, db):
        make_char(db, "河", components=[{"character": "氵", "type": ["meaning"]}, {"character": "可", "type": ["sound"]}])
        body = client.get("/wiki/lists/component-types").json()
        assert body["total_characters"] == 1
        assert body["combinations"][0]["key"] == "meaning,sound"
        assert body["current_slug"] == "component-types"

    def test_layout(self, client, reviewer):
        body = client.get("/wiki").json()
        assert body["user"]["name"] == "Rita"
        assert body["can_review"] is True
