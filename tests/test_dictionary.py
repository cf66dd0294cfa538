import pytest
from conftest import make_char, make_edit

from dong_chinese.services.dictionary import (
    LIST_NAV_ITEMS,
    get_character_data,
    get_character_list,
    get_component_type_combinations,
    get_component_uses,
    get_deleted_component_glyphs,
    search_characters,
)


def meaning(ch):
    return {"character": ch, "type": ["meaning"]}


def sound(ch):
    return {"character": ch, "type": ["sound"]}


@pytest.fixture
def dictionary(db):
    make_char(db, "氵", pinyin=["shuǐ"], gloss="water radical")
    make_char(db, "水", pinyin=["shuǐ"], gloss="water", jun_da_rank=202, subtlex_rank=150,
              subtlex_context_diversity=5000)
    make_char(db, "河", pinyin=["hé"], gloss="river", jun_da_rank=500, subtlex_rank=400,
              subtlex_context_diversity=3000, is_verified=True, components=[meaning("氵"), sound("可")])
    make_char(db, "湖", pinyin=["hú"], gloss="lake", jun_da_rank=900, components=[meaning("氵"), sound("胡")])
    make_char(db, "可", pinyin=["kě"], gloss="can", jun_da_rank=20, subtlex_rank=30,
              subtlex_context_diversity=6000)
    make_char(db, "睡", pinyin=["shuì"], gloss="sleep", jun_da_rank=800, subtlex_rank=200,
              subtlex_context_diversity=4000)
    make_char(db, "開", stroke_data_trad={"strokes": ["M1"]})
    make_char(db, "开", components=[
        {"character": "開", "type": ["deleted"]},
        {"character": "干", "type": ["remnant"]},
    ])
    make_char(db, "林", components=[
        {"character": "木", "type": ["iconic"]},
        {"character": "木", "type": ["iconic"]},
    ])


class TestCharacterData:
    def test_missing_character(self, db, dictionary):
        assert get_character_data(db, "火") is None

    def test_components_are_decorated(self, db, dictionary):
        data = get_character_data(db, "河")
        assert data.gloss == "river"
        radical, phonetic = data.components
        assert radical["pinyin"] == ["shuǐ"]
        assert radical["gloss"] == "water radical"
        assert radical["type"] == ["meaning"]
        assert phonetic["gloss"] == "can"

    def test_components_without_entry_are_kept_bare(self, db, dictionary):
        _, phonetic = get_character_data(db, "湖").components
        assert phonetic == sound("胡")

    def test_reads_through_approved_edits(self, db, dictionary):
        make_edit(db, "河", 10, gloss="river; stream")
        assert get_character_data(db, "河").gloss == "river; stream"


class TestSearch:
    def test_empty_query(self, db, dictionary):
        assert search_characters(db, "  ") == []

    def test_characters_keep_typed_order(self, db, dictionary):
        assert [r.character for r in search_characters(db, "河水")] == ["河", "水"]

    def test_pinyin_ignores_tones_and_orders_by_frequency(self, db, dictionary):
        for q in ("shui", "shui3", "shuǐ"):
            assert [r.character for r in search_characters(db, q)] == ["水", "睡", "氵"]

    def test_pinyin_is_joined_for_display(self, db, dictionary):
        result = search_characters(db, "he")[0]
        assert result.character == "河"
        assert result.pinyin == "hé"

    def test_gloss_substring(self, db, dictionary):
        assert [r.character for r in search_characters(db, "Water")] == ["水", "氵"]

    def test_limit(self, db, dictionary):
        assert len(search_characters(db, "shui", limit=1)) == 1


class TestLists:
    def test_book_count(self, db, dictionary):
        items, total = get_character_list(db, "book-count", 0, 2)
        assert total == 5
        assert [i.character for i in items] == ["可", "水"]

    def test_movie_count_paging(self, db, dictionary):
        items, total = get_character_list(db, "movie-count", 2, 10)
        assert total == 4
        assert [i.character for i in items] == ["睡", "河"]

    def test_movie_contexts(self, db, dictionary):
        items, _ = get_character_list(db, "movie-contexts", 0, 10)
        assert [i.character for i in items] == ["可", "水", "睡", "河"]
        assert items[0].subtlex_context_diversity == 6000

    def test_components(self, db, dictionary):
        items, total = get_character_list(db, "components", 0, 3)
        assert total == 6
        assert [(i.character, i.component_uses) for i in items] == [("氵", 2), ("可", 1), ("干", 1)]
        assert items[0].gloss == "water radical"
        assert items[2].gloss is None

    def test_unknown_list(self, db, dictionary):
        with pytest.raises(KeyError):
            get_character_list(db, "hsk", 0, 10)

    def test_nav_items(self):
        assert LIST_NAV_ITEMS[0]["href"] == "/wiki/lists/movie-contexts/0/100"
        assert LIST_NAV_ITEMS[-1]["slug"] == "component-types"


class TestComponents:
    def test_uses_grouped_by_role(self, db, dictionary):
        groups = get_component_uses(db, "氵")
        assert [g.type for g in groups] == ["meaning"]
        assert [u.character for u in groups[0].characters] == ["河", "湖"]
        assert groups[0].verified_count == 1

    def test_sound_role(self, db, dictionary):
        groups = get_component_uses(db, "可")
        assert [(g.type, [u.character for u in g.characters]) for g in groups] == [("sound", ["河"])]

    def test_unused_character(self, db, dictionary):
        assert get_component_uses(db, "水") == []

    def test_deleted_component_glyphs(self, db, dictionary):
        data = get_character_data(db, "开")
        assert get_deleted_component_glyphs(db, data) == {"開": {"strokes": ["M1"]}}
        assert get_deleted_component_glyphs(db, get_character_data(db, "河")) == {}

    def test_type_combinations(self, db, dictionary):
        combos, total = get_component_type_combinations(db)
        assert total == 4
        assert combos[0]["key"] == "meaning,sound"
        assert combos[0]["characters"] == ["河", "湖"]
        assert combos[0]["label"] == [
            {"count": 1, "types": ["meaning"]},
            {"count": 1, "types": ["sound"]},
        ]
        by_key = {c["key"]: c for c in combos}
        assert by_key["iconicx2"]["characters"] == ["林"]
        assert by_key["iconicx2"]["label"] == [{"count": 2, "types": ["iconic"]}]
        assert by_key["deleted,remnant"]["characters"] == ["开"]

    def test_malformed_components_are_skipped(self, db, dictionary):
        make_edit(db, "睡", 5, components=5)
        make_edit(db, "可", 5, components={"character": "口"})
        assert get_character_list(db, "components", 0, 3)[1] == 6
        assert get_component_type_combinations(db)[1] == 4
        assert [g.type for g in get_component_uses(db, "氵")] == ["meaning"]
