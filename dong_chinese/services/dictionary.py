"""Read-side dictionary queries. Everything reads through the char view."""

from __future__ import annotations

import json
import re
from collections import Counter
from typing import Any, Dict, List, Mapping, Optional, Tuple

from sqlalchemy import Text, cast, func, or_, select
from sqlalchemy.orm import Session

from dong_chinese.char_view import char_view, char_view_select
from dong_chinese.formatting import COMPONENT_TITLES
from dong_chinese.models import CharacterData, ComponentUse, ComponentUseGroup, ListItem, SearchResult
from dong_chinese.pinyin import strip_tones
from dong_chinese.schema import CharBase

# A run of CJK ideographs (basic block, extension A and the compatibility block)
HAN_RE = re.compile(r"[㐀-䶿一-鿿豈-﫿]")
PINYIN_QUERY_RE = re.compile(r"^[a-zA-Züāáǎàēéěèīíǐìōóǒòūúǔùǖǘǚǜ1-5' ]+$")

LIST_TYPES: Dict[str, Dict[str, str]] = {
    "movie-contexts": {
        "label": "Characters by share of movies they appear in",
        "nav_label": "% Movies",
        "description": "Ordered by the number of film subtitles (SUBTLEX-CH) that contain the character.",
    },
    "movie-count": {
        "label": "Characters by movie frequency",
        "nav_label": "Movie Freq.",
        "description": "Ordered by how often the character occurs in film subtitles (SUBTLEX-CH).",
    },
    "book-count": {
        "label": "Characters by book frequency",
        "nav_label": "Book Freq.",
        "description": "Ordered by Jun Da's modern Chinese character frequency list.",
    },
    "components": {
        "label": "Characters by use as a component",
        "nav_label": "Components",
        "description": "Ordered by how many characters list the character as one of their components.",
    },
}

LIST_NAV_ITEMS: List[Dict[str, str]] = [
    {"slug": slug, "nav_label": info["nav_label"], "href": f"/wiki/lists/{slug}/0/100"}
    for slug, info in LIST_TYPES.items()
] + [{"slug": "component-types", "nav_label": "Component Types", "href": "/wiki/lists/component-types"}]

# Groups on the component-uses panel follow the order of the color legend.
_TYPE_ORDER = {t: i for i, t in enumerate(COMPONENT_TITLES)}


def _nulls_last(col):
    return (col.is_(None), col)


def _frequency_order(c) -> List[Any]:
    return [*_nulls_last(c.jun_da_rank), *_nulls_last(c.subtlex_rank), c.character]


def _character_data(row: Mapping[str, Any]) -> CharacterData:
    return CharacterData(**{k: v for k, v in row.items() if k in CharacterData.model_fields})


def get_character_data(db: Session, character: str) -> Optional[CharacterData]:
    """
    Effective data for one character, or None if it is not in the dictionary.
    Components are decorated with the component's own pinyin and gloss.
    """
    row = db.execute(char_view_select().where(CharBase.character == character)).mappings().first()
    if row is None:
        return None

    data = _character_data(row)
    if data.components:
        data.components = _decorate_components(db, data.components)
    return data


def _decorate_components(db: Session, components: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    chars = {c.get("character") for c in components if isinstance(c, dict) and c.get("character")}
    if not chars:
        return components

    view = char_view()
    info = {
        r.character: r
        for r in db.execute(
            select(view.c.character, view.c.pinyin, view.c.gloss, view.c.historical_pronunciations)
            .where(view.c.character.in_(chars))
        )
    }
    out = []
    for comp in components:
        if not isinstance(comp, dict):
            continue
        found = info.get(comp.get("character"))
        extra = {}
        if found is not None:
            extra = {
                "pinyin": found.pinyin,
                "gloss": found.gloss,
                "historical_pronunciations": found.historical_pronunciations,
            }
        out.append({**comp, **extra})
    return out


def search_characters(db: Session, q: str, limit: int = 100) -> List[SearchResult]:
    """
    Characters matching a query: exact characters first, then pinyin readings
    (tone marks and tone numbers are ignored), then English gloss substrings.
    Within each group results are ordered by frequency.
    """
    q = (q or "").strip()
    if not q:
        return []

    view = char_view()
    cols = [view.c.character, view.c.pinyin, view.c.gloss]
    seen: set[str] = set()
    results: List[SearchResult] = []

    def collect(rows) -> None:
        for r in rows:
            if len(results) >= limit or r.character in seen:
                continue
            seen.add(r.character)
            results.append(SearchResult(
                character=r.character,
                pinyin=", ".join(r.pinyin) if r.pinyin else None,
                gloss=r.gloss,
            ))

    han = list(dict.fromkeys(HAN_RE.findall(q)))
    if han:
        rows = db.execute(select(*cols).where(view.c.character.in_(han))).all()
        by_char = {r.character: r for r in rows}
        # Characters keep the order they were typed in.
        collect(by_char[ch] for ch in han if ch in by_char)

    if len(results) < limit and PINYIN_QUERY_RE.match(q):
        key = strip_tones(q).replace(" ", "")
        stmt = select(*cols).where(view.c.pinyin.is_not(None))
        # Tone marks sit on vowels, so the leading consonants can narrow the scan in SQL.
        initial = re.match(r"^[^aeiouv]+", key)
        if initial:
            stmt = stmt.where(cast(view.c.pinyin, Text).contains(f'"{initial.group(0)}', autoescape=True))
        stmt = stmt.order_by(*_frequency_order(view.c))
        collect(
            r for r in db.execute(stmt)
            if any(strip_tones(p).replace(" ", "") == key for p in r.pinyin or [])
        )

    if len(results) < limit:
        stmt = (
            select(*cols)
            .where(func.lower(view.c.gloss).contains(q.lower(), autoescape=True))
            .order_by(*_frequency_order(view.c))
            .limit(limit + len(seen))
        )
        collect(db.execute(stmt))

    return results


def _list_item(row: Mapping[str, Any], component_uses: Optional[int] = None) -> ListItem:
    return ListItem(
        character=row["character"],
        pinyin=row["pinyin"],
        gloss=row["gloss"],
        is_verified=row["is_verified"],
        subtlex_rank=row["subtlex_rank"],
        subtlex_context_diversity=row["subtlex_context_diversity"],
        jun_da_rank=row["jun_da_rank"],
        component_uses=component_uses,
    )


def _component_use_counts(db: Session) -> Counter:
    view = char_view()
    counts: Counter = Counter()
    for components in db.scalars(select(view.c.components).where(view.c.components.is_not(None))):
        if not isinstance(components, list):
            continue
        used = {
            c["character"] for c in components
            if isinstance(c, dict) and isinstance(c.get("character"), str) and c["character"]
        }
        counts.update(used)
    return counts


def get_character_list(db: Session, list_type: str, offset: int, limit: int) -> Tuple[List[ListItem], int]:
    """One page of a ranked character list, with the list's total length."""
    if list_type not in LIST_TYPES:
        raise KeyError(list_type)

    view = char_view()
    cols = [
        view.c.character,
        view.c.pinyin,
        view.c.gloss,
        view.c.is_verified,
        view.c.subtlex_rank,
        view.c.subtlex_context_diversity,
        view.c.jun_da_rank,
    ]

    if list_type == "components":
        counts = _component_use_counts(db)
        ranked = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
        page = ranked[offset:offset + limit]
        rows = {
            r["character"]: r
            for r in db.execute(select(*cols).where(view.c.character.in_([ch for ch, _ in page]))).mappings()
        }
        # Components without their own dictionary entry still get listed.
        items = []
        for ch, n in page:
            row = rows.get(ch)
            if row is None:
                items.append(ListItem(character=ch, component_uses=n))
            else:
                items.append(_list_item(row, n))
        return items, len(ranked)

    if list_type == "movie-contexts":
        cond = view.c.subtlex_context_diversity.is_not(None)
        order = [view.c.subtlex_context_diversity.desc(), view.c.character]
    elif list_type == "movie-count":
        cond = view.c.subtlex_rank.is_not(None)
        order = [view.c.subtlex_rank, view.c.character]
    else:
        cond = view.c.jun_da_rank.is_not(None)
        order = [view.c.jun_da_rank, view.c.character]

    total = db.scalar(select(func.count()).select_from(view).where(cond)) or 0
    rows = db.execute(select(*cols).where(cond).order_by(*order).offset(offset).limit(limit)).mappings()
    return [_list_item(r) for r in rows], total


def _component_types(component: Mapping[str, Any]) -> List[str]:
    types = component.get("type") or ["unknown"]
    if not isinstance(types, list):
        types = [types]
    return [t for t in types if isinstance(t, str)] or ["unknown"]


def get_component_uses(db: Session, character: str) -> List[ComponentUseGroup]:
    """Characters that use `character` as a component, grouped by the role it plays."""
    view = char_view()
    needle = json.dumps(character, ensure_ascii=False)
    stmt = (
        select(view.c.character, view.c.components, view.c.is_verified)
        .where(
            view.c.components.is_not(None),
            view.c.character != character,
            # JSON text pre-filter; the exact match is done below
            or_(
                cast(view.c.components, Text).contains(needle, autoescape=True),
                cast(view.c.components, Text).contains(needle.encode("unicode_escape").decode(), autoescape=True),
            ),
        )
        .order_by(*_frequency_order(view.c))
    )

    groups: Dict[str, List[ComponentUse]] = {}
    for row in db.execute(stmt):
        if not isinstance(row.components, list):
            continue
        types: List[str] = []
        for comp in row.components:
            if isinstance(comp, dict) and comp.get("character") == character:
                types.extend(t for t in _component_types(comp) if t not in types)
        for t in types:
            groups.setdefault(t, []).append(ComponentUse(character=row.character, is_verified=bool(row.is_verified)))

    ordered = sorted(groups, key=lambda t: (_TYPE_ORDER.get(t, len(_TYPE_ORDER)), t))
    return [
        ComponentUseGroup(
            type=t,
            characters=groups[t],
            verified_count=sum(1 for u in groups[t] if u.is_verified),
        )
        for t in ordered
    ]


def get_deleted_component_glyphs(db: Session, data: CharacterData) -> Dict[str, Any]:
    """
    Stroke data for components whose type includes "deleted". These no longer
    appear in the modern glyph, so the page draws them from their own entry.
    """
    deleted = [
        c["character"]
        for c in data.components or []
        if isinstance(c, dict) and c.get("character") and "deleted" in _component_types(c)
    ]
    if not deleted:
        return {}

    view = char_view()
    rows = db.execute(
        select(view.c.character, view.c.stroke_data_simp, view.c.stroke_data_trad)
        .where(view.c.character.in_(deleted))
    )
    return {
        r.character: r.stroke_data_trad or r.stroke_data_simp
        for r in rows
        if r.stroke_data_trad or r.stroke_data_simp
    }


def get_component_type_combinations(db: Session) -> Tuple[List[Dict[str, Any]], int]:
    """
    Group characters by the multiset of their component types, e.g. every
    character made of one meaning and one sound component. Returns the groups,
    largest first, and how many characters have a decomposition at all.
    """
    view = char_view()
    rows = db.execute(
        select(view.c.character, view.c.components)
        .where(view.c.components.is_not(None))
        .order_by(*_frequency_order(view.c))
    )

    combos: Dict[str, Dict[str, Any]] = {}
    total = 0
    for row in rows:
        if not isinstance(row.components, list):
            continue
        comps = [c for c in row.components if isinstance(c, dict)]
        if not comps:
            continue
        total += 1
        counts = Counter(tuple(sorted(_component_types(c))) for c in comps)
        parts = sorted(counts.items(), key=lambda kv: (_TYPE_ORDER.get(kv[0][0], len(_TYPE_ORDER)), kv[0]))
        key = ",".join("+".join(types) if n == 1 else f"{'+'.join(types)}x{n}" for types, n in parts)
        combo = combos.setdefault(key, {
            "key": key,
            "label": [{"count": n, "types": list(types)} for types, n in parts],
            "characters": [],
        })
        combo["characters"].append(row.character)

    ordered = sorted(combos.values(), key=lambda c: (-len(c["characters"]), c["key"]))
    return ordered, total
