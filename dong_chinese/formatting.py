"""Small display helpers shared by the dictionary and wiki pages."""

from __future__ import annotations

import re
from typing import Iterable, List, Optional


def format_fragment_range(indices: Iterable[int]) -> str:
    """
    Convert 0-based stroke indices to a 1-based compact range string.
      [0, 1, 2]    -> "1-3"
      [0, 2, 3, 5] -> "1,3-4,6"
      []           -> ""
    """
    ordered = sorted(set(indices or []))
    if not ordered:
        return ""

    ranges: List[str] = []
    start = end = ordered[0]

    def emit() -> None:
        ranges.append(f"{start + 1}" if start == end else f"{start + 1}-{end + 1}")

    for i in ordered[1:]:
        if i == end + 1:
            end = i
        else:
            emit()
            start = end = i
    emit()
    return ",".join(ranges)


_INT_PREFIX = re.compile(r"^\s*([+-]?\d+)")


def _parse_int(s: str) -> Optional[int]:
    # Leading-digits parse: "3a" -> 3, "abc" -> None
    m = _INT_PREFIX.match(s)
    return int(m.group(1)) if m else None


def parse_fragment_range(text: str, stroke_count: int) -> List[int]:
    """
    Parse a 1-based range string into sorted, unique 0-based stroke indices.
    Supports "3", "2-6" and open-ended "7-" (through the last stroke).
      "1-3,6"           -> [0, 1, 2, 5]
      "7-" (10 strokes) -> [6, 7, 8, 9]
    Out-of-range numbers are dropped and unparseable tokens ignored.
    """
    if not text or not text.strip():
        return []

    indices: set[int] = set()
    for token in text.split(","):
        token = token.strip()
        if not token:
            continue

        if "-" in token:
            start_str, end_str = token.split("-", 2)[:2]
            start = _parse_int(start_str)
            if start is None:
                continue
            end = stroke_count if end_str.strip() == "" else _parse_int(end_str)
            if end is None:
                continue
            lo = max(1, min(start, end))
            hi = min(stroke_count, max(start, end))
            indices.update(i - 1 for i in range(lo, hi + 1))
        else:
            n = _parse_int(token)
            if n is not None and 1 <= n <= stroke_count:
                indices.add(n - 1)

    return sorted(indices)


def ordinal_suffix(n: int) -> str:
    if 11 <= n % 100 <= 13:
        return "th"
    return {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")


def format_per_million(n: Optional[float]) -> str:
    if n is None:
        return "—"
    if n >= 10:
        return f"{n:.1f}"
    if n >= 1:
        return f"{n:.2f}"
    return f"{n:.3f}"


# Component type -> CSS custom property (defined in the site stylesheet)
COMPONENT_COLORS = {
    "meaning": "var(--comp-meaning)",
    "sound": "var(--comp-sound)",
    "iconic": "var(--comp-iconic)",
    "simplified": "var(--comp-simplified)",
    "unknown": "var(--comp-unknown)",
    "remnant": "var(--comp-remnant)",
    "distinguishing": "var(--comp-distinguishing)",
    "deleted": "var(--comp-deleted)",
}

COMPONENT_TITLES = {
    "meaning": "Meaning",
    "sound": "Sound",
    "iconic": "Iconic",
    "unknown": "Unknown",
    "simplified": "Simplified",
    "deleted": "Deleted",
    "remnant": "Remnant",
    "distinguishing": "Distinguishing",
}


def component_color(component_type: Optional[str]) -> str:
    return COMPONENT_COLORS.get(component_type or "unknown", COMPONENT_COLORS["unknown"])


def adjusted_component_color(component_type: Optional[str], same_type_index: int) -> str:
    """
    Color for the Nth component of the same type in one character.
    Later duplicates get a small OKLCH hue rotation and darkening; deleted
    components always keep the base color.
    """
    base = component_color(component_type)
    if same_type_index == 0 or (component_type or "unknown") == "deleted":
        return base
    hue_shift = same_type_index * 6
    darken = round(same_type_index * 0.05, 2)
    return f"oklch(from {base} calc(l - {darken}) c calc(h + {hue_shift}))"


def component_title(component_type: str) -> str:
    return COMPONENT_TITLES.get(component_type, component_type)
