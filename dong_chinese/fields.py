"""Form-editable character fields and the change detection used by the edit workflow."""

from __future__ import annotations

from typing import Any, Iterable, Mapping

EDITABLE_FIELDS = (
    "gloss",
    "hint",
    "original_meaning",
    "is_verified",
    "pinyin",
    "simplified_variants",
    "traditional_variants",
    "components",
    "stroke_count_simp",
    "stroke_count_trad",
    "stroke_data_simp",
    "stroke_data_trad",
    "fragments_simp",
    "fragments_trad",
    "historical_images",
    "historical_pronunciations",
    "custom_sources",
)

# Imported data that edits carry along but never change: frequencies, shuowen, etc.
NON_EDITABLE_DATA_FIELDS = (
    "codepoint",
    "jun_da_rank",
    "jun_da_frequency",
    "jun_da_per_million",
    "subtlex_rank",
    "subtlex_count",
    "subtlex_per_million",
    "subtlex_context_diversity",
    "shuowen_explanation",
    "shuowen_pronunciation",
    "shuowen_pinyin",
    "pinyin_frequencies",
)


def _get(row: Any, field: str) -> Any:
    if isinstance(row, Mapping):
        return row.get(field)
    return getattr(row, field, None)


def pick_editable_fields(row: Any) -> dict[str, Any]:
    """Editable fields of a row (mapping or ORM object); missing ones come back as None."""
    return {field: _get(row, field) for field in EDITABLE_FIELDS}


def normalize(value: Any) -> Any:
    """Treat None, False, "" and [] as the same empty value."""
    if value is None or value is False or value == "" or value == []:
        return None
    return value


def deep_equal(a: Any, b: Any) -> bool:
    na = normalize(a)
    nb = normalize(b)
    if na is None and nb is None:
        return True
    if na is None or nb is None:
        return False
    # bool is an int subclass; True must not equal 1
    if type(na) is not type(nb) and not (
        isinstance(na, (int, float)) and isinstance(nb, (int, float))
        and not isinstance(na, bool) and not isinstance(nb, bool)
    ):
        return False
    if isinstance(na, list):
        if len(na) != len(nb):
            return False
        return all(deep_equal(x, y) for x, y in zip(na, nb))
    if isinstance(na, dict):
        keys = set(na) | set(nb)
        return all(deep_equal(na.get(k), nb.get(k)) for k in keys)
    return na == nb


def compute_changed_fields(
    current: Mapping[str, Any],
    submitted: Mapping[str, Any],
    fields: Iterable[str] = EDITABLE_FIELDS,
) -> list[str]:
    """Fields (in `fields` order) whose submitted value differs from the current one."""
    return [f for f in fields if not deep_equal(current.get(f), submitted.get(f))]
