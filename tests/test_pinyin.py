import pytest

from dong_chinese.cedict import (
    clean_sense,
    gloss_for,
    index_by_headword,
    iter_entries,
    readings_for,
    short_gloss,
)
from dong_chinese.pinyin import (
    convert_tone_to_number,
    is_toned_pinyin,
    normalize_pinyin,
    number_to_tone_mark,
    strip_tones,
)


@pytest.mark.parametrize(
    "syllable, expected",
    [("nǐ", "ni3"), ("lǜ", "lv4"), ("ma", "ma5"), ("hao3", "hao3"), ("Shuǐ", "shui3")],
)
def test_convert_tone_to_number(syllable, expected):
    assert convert_tone_to_number(syllable) == expected


@pytest.mark.parametrize(
    "syllable, expected",
    [("shui3", "shuǐ"), ("lv4", "lǜ"), ("lu:4", "lǜ"), ("hao3", "hǎo"), ("gou3", "gǒu"), ("de5", "de"), ("Li3", "lǐ")],
)
def test_number_to_tone_mark(syllable, expected):
    assert number_to_tone_mark(syllable) == expected


def test_normalize_pinyin():
    assert normalize_pinyin("yí  xiàr") == "yi2 xiar4"
    assert normalize_pinyin("de") == "de"


def test_strip_tones_makes_styles_comparable():
    assert strip_tones("shuǐ") == strip_tones("shui3") == strip_tones("shui") == "shui"


def test_is_toned_pinyin():
    assert is_toned_pinyin("nǐ")
    assert not is_toned_pinyin("ni")
    assert not is_toned_pinyin("你")


CEDICT_SAMPLE = """\
# CC-CEDICT
水 水 [shui3] /water/river/liquid; beverage/CL:杯[bei1]/
水 水 [Shui3] /surname Shui/
長 长 [chang2] /length/long/forever/
長 长 [zhang3] /chief/head/elder/
水果 水果 [shui3 guo3] /fruit/
not a cedict line
"""


class TestCedict:
    @pytest.fixture
    def index(self):
        return index_by_headword(iter_entries(CEDICT_SAMPLE.splitlines()))

    def test_entries_are_filed_under_both_forms(self, index):
        assert len(index["水"]) == 2
        assert index["长"] == index["長"]
        assert index["水果"][0].senses == ("fruit",)

    def test_readings_are_tone_marked_and_unique(self, index):
        assert readings_for(index["水"]) == ["shuǐ"]
        assert readings_for(index["长"]) == ["cháng", "zhǎng"]

    def test_gloss_prefers_common_entries(self, index):
        assert gloss_for(index["水"]) == "water; river"
        assert gloss_for([]) is None

    def test_clean_sense(self):
        assert clean_sense("to wash (clothes)") == "to wash"
        assert clean_sense("see also 水果[shui3 guo3]") is None
        assert clean_sense("old variant of 水") is None
        assert clean_sense("CL:個|个[ge4]") is None

    def test_short_gloss_drops_classifiers_and_surnames(self):
        assert short_gloss(["surname Li", "plum; CL:個|个[ge4]", "x"]) == "plum"

    def test_short_gloss_is_capped(self):
        assert short_gloss(["a" * 40, "b" * 40]) == "a" * 40
        result = short_gloss(["a" * 80])
        assert len(result) == 60
        assert result.endswith("…")
