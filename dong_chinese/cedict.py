"""CC-CEDICT parsing, and the short English glosses the dictionary shows for a character."""

from __future__ import annotations

import re
from dataclasses import dataclass
from itertools import islice
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from dong_chinese.pinyin import number_to_tone_mark

GLOSS_MAX_CHARS = 60
GLOSS_MAX_SENSES = 2

_ENTRY_RE = re.compile(r"(?P<trad>\S+) (?P<simp>\S+) \[(?P<reading>[^]]+)\] /(?P<senses>.*)/")

# Senses that point at another word instead of saying what this one means.
_UNHELPFUL_SENSE_RE = re.compile(
    r"^(?:surname|archaic|abbr\.|see\s+also|(?:old\s+)?variant\s+(?:reading\s+)?of"
    r"|erhua\s+(?:form|variant|version)\s+of)(?:\s|$)",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class CedictEntry:
    traditional: str
    simplified: str
    reading: str  # numbered pinyin as written, e.g. "shui3" or "Li3"
    senses: Tuple[str, ...]

    @property
    def is_proper_noun(self) -> bool:
        return self.reading[:1].isupper()


def iter_entries(lines: Iterable[str]) -> Iterator[CedictEntry]:
    """Entries of a cedict_ts.u8 file; comments and malformed lines are skipped."""
    for line in lines:
        if line.startswith("#"):
            continue
        m = _ENTRY_RE.fullmatch(line.strip())
        if m is None:
            continue
        senses = tuple(s.strip() for s in m["senses"].split("/") if s.strip())
        yield CedictEntry(m["trad"], m["simp"], m["reading"].strip(), senses)


def index_by_headword(entries: Iterable[CedictEntry]) -> Dict[str, List[CedictEntry]]:
    """Entries filed under both headwords, so either character form finds them."""
    index: Dict[str, List[CedictEntry]] = {}
    for entry in entries:
        for headword in {entry.simplified, entry.traditional}:
            index.setdefault(headword, []).append(entry)
    return index


def clean_sense(sense: str) -> Optional[str]:
    """
    A sense with parentheticals, classifier notes, Chinese text and [pin1 yin1]
    removed. None when nothing useful is left.
    """
    text = re.sub(r"\(.*?\)", " ", sense).split("CL:", 1)[0]
    text = re.sub(r"\[[^]]*\]|[一-鿿]+", "", text).replace("|", " ")
    text = " ".join(text.split())
    if len(text) < 2 or _UNHELPFUL_SENSE_RE.search(text):
        return None
    return text


def short_gloss(
    senses: Iterable[str],
    max_senses: int = GLOSS_MAX_SENSES,
    max_chars: int = GLOSS_MAX_CHARS,
) -> str:
    """
    The first useful senses joined with "; ". A sense that packs several
    meanings ("morning; CL:個|个[ge4]") is split on ";" first. When the result
    is too long only the first sense is kept, truncated if need be.
    """
    parts = (clean_sense(part) for sense in senses for part in sense.split(";"))
    kept = list(islice(filter(None, parts), max_senses))
    if not kept:
        return ""
    for candidate in ("; ".join(kept), kept[0]):
        if len(candidate) <= max_chars:
            return candidate
    return kept[0][: max_chars - 1] + "…"


def readings_for(entries: Iterable[CedictEntry]) -> List[str]:
    """Unique tone-marked readings of a single character, in dictionary order."""
    out: List[str] = []
    for entry in entries:
        marked = number_to_tone_mark(entry.reading)
        if " " not in marked and marked not in out:
            out.append(marked)
    return out


def gloss_for(entries: Iterable[CedictEntry]) -> Optional[str]:
    # Common-word entries before proper nouns ("Shui3 /surname Shui/").
    for entry in sorted(entries, key=lambda e: e.is_proper_noun):
        gloss = short_gloss(entry.senses)
        if gloss:
            return gloss
    return None
