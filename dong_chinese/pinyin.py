"""Pinyin conversions between tone marks and tone numbers ("shuǐ" <-> "shui3")."""

from __future__ import annotations

import re
from typing import Tuple

# ü is spelled "v" in numbered pinyin.
_VOWEL_TONES = {
    "a": "āáǎà",
    "e": "ēéěè",
    "i": "īíǐì",
    "o": "ōóǒò",
    "u": "ūúǔù",
    "v": "ǖǘǚǜ",
}

# marked vowel -> (plain vowel, tone digit)
TONE_MARK_MAP = {
    marked: (vowel, str(tone))
    for vowel, marks in _VOWEL_TONES.items()
    for tone, marked in enumerate(marks, start=1)
}
TONE_MARK_MAP["ü"] = ("v", "")

# "a3" -> "ǎ"
_MARKED = {vowel + tone: marked for marked, (vowel, tone) in TONE_MARK_MAP.items() if tone}

PINYIN_SYLLABLE_RE = re.compile(r"^[a-züāáǎàēéěèīíǐìōóǒòūúǔùǖǘǚǜ]+$", re.IGNORECASE)


def _split_tone(syllable: str) -> Tuple[str, str]:
    """("nǐ") -> ("ni", "3"). The tone is "" when no vowel carries a mark."""
    letters = []
    tone = ""
    for ch in syllable:
        plain, mark = TONE_MARK_MAP.get(ch, (ch, ""))
        letters.append(plain)
        tone = mark or tone
    return "".join(letters), tone


def is_toned_pinyin(text: str) -> bool:
    """True for a single pinyin syllable carrying a tone mark."""
    return bool(PINYIN_SYLLABLE_RE.match(text)) and bool(_split_tone(text.lower())[1])


def convert_tone_to_number(syllable: str) -> str:
    """
    "nǐ" -> "ni3", "lǜ" -> "lv4", "ma" -> "ma5" (neutral tone).
    Already-numbered input passes through (with ü -> v).
    """
    s = syllable.strip().lower()
    if s[-1:] in ("1", "2", "3", "4", "5"):
        return s.replace("ü", "v")
    letters, tone = _split_tone(s)
    return letters + (tone or "5")


def normalize_pinyin(p: str) -> str:
    """
    Comparable form of a pinyin string: lower case, single spaces, tone marks
    turned into numbers, ü as v and apostrophes dropped. A syllable without a
    mark gets no number.
      "yí xiàr" -> "yi2 xiar4"
      "de"      -> "de"
    """
    out = []
    for syl in p.lower().split():
        if syl[-1] in "12345":
            out.append(syl.replace("ü", "v"))
            continue
        letters, tone = _split_tone(syl)
        out.append(letters.replace("'", "") + tone)
    return " ".join(out)


def strip_tones(p: str) -> str:
    """Tone-insensitive key: "shuǐ", "shui3" and "shui" all become "shui"."""
    return re.sub(r"[1-5]", "", normalize_pinyin(p))


def number_to_tone_mark(syllable: str) -> str:
    """
    CC-CEDICT style "lv4" / "lu:4" / "shui3" -> "lǜ" / "lǜ" / "shuǐ".
    The mark goes on a or e if present, on the o of "ou", else on the last vowel.
    """
    s = syllable.strip().lower().replace("u:", "v")
    m = re.match(r"^([a-z]+)([1-5])$", s)
    if not m:
        return s.replace("v", "ü")
    letters, tone = m.groups()
    if tone == "5":
        return letters.replace("v", "ü")

    if "a" in letters:
        i = letters.index("a")
    elif "e" in letters:
        i = letters.index("e")
    elif "ou" in letters:
        i = letters.index("o")
    else:
        vowels = [j for j, ch in enumerate(letters) if ch in "aeiouv"]
        if not vowels:
            return letters
        i = vowels[-1]

    marked = letters[:i] + _MARKED[letters[i] + tone] + letters[i + 1:]
    return marked.replace("v", "ü")
