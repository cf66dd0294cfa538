"""Reference data for the component-type explainer pages."""

COLOR_NAMES = {
    "meaning": "red",
    "sound": "blue",
    "iconic": "green",
    "simplified": "teal",
    "unknown": "gray",
    "remnant": "orange",
    "distinguishing": "purple",
    "deleted": "light gray",
}

# Characters shown as worked examples on each explainer page.
EXAMPLE_CHARS = {
    "meaning": ["妈", "媽", "女", "问", "問", "口", "想", "心", "错", "錯", "金"],
    "sound": ["妈", "媽", "马", "馬", "问", "問", "门", "門", "想", "相", "他", "也"],
    "iconic": ["林", "木", "旦", "日", "有", "又"],
    "unknown": ["是", "止"],
    "simplified": ["难", "難", "点", "點", "还", "還"],
    "deleted": ["开", "開"],
    "remnant": ["孝", "老"],
    "distinguishing": ["王", "玉"],
}

VALID_TYPES = frozenset(EXAMPLE_CHARS)


def example_chars(component_type: str) -> list[str]:
    """Unique example characters for a type, in display order."""
    return list(dict.fromkeys(EXAMPLE_CHARS[component_type]))
