from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class CharacterData(BaseModel):
    character: str
    codepoint: Optional[str] = None

    gloss: Optional[str] = None
    hint: Optional[str] = None
    original_meaning: Optional[str] = None
    stroke_count_simp: Optional[int] = None
    stroke_count_trad: Optional[int] = None
    is_verified: Optional[bool] = None
    # JSON columns are passed through as stored; imported data is not always strict.
    components: Optional[List[Dict[str, Any]]] = None
    custom_sources: Optional[List[str]] = None

    simplified_variants: Optional[List[str]] = None
    traditional_variants: Optional[List[str]] = None
    variant_of: Optional[str] = None

    jun_da_rank: Optional[int] = None
    jun_da_frequency: Optional[int] = None
    jun_da_per_million: Optional[float] = None

    subtlex_rank: Optional[int] = None
    subtlex_count: Optional[int] = None
    subtlex_per_million: Optional[float] = None
    subtlex_context_diversity: Optional[int] = None

    stroke_data_simp: Optional[Dict[str, Any]] = None
    stroke_data_trad: Optional[Dict[str, Any]] = None
    fragments_simp: Optional[List[List[int]]] = None
    fragments_trad: Optional[List[List[int]]] = None

    historical_images: Optional[List[Dict[str, Any]]] = None
    historical_pronunciations: Optional[List[Dict[str, Any]]] = None

    shuowen_explanation: Optional[str] = None
    shuowen_pronunciation: Optional[str] = None
    shuowen_pinyin: Optional[str] = None

    pinyin_frequencies: Optional[List[Dict[str, Any]]] = None
    pinyin: Optional[List[str]] = None


class SearchResult(BaseModel):
    character: str
    pinyin: Optional[str] = None
    gloss: Optional[str] = None


class ListItem(BaseModel):
    character: str
    pinyin: Optional[List[str]] = None
    gloss: Optional[str] = None
    is_verified: Optional[bool] = None
    subtlex_rank: Optional[int] = None
    subtlex_context_diversity: Optional[int] = None
    jun_da_rank: Optional[int] = None
    component_uses: Optional[int] = None


class ComponentUse(BaseModel):
    character: str
    is_verified: bool


class ComponentUseGroup(BaseModel):
    type: str
    characters: List[ComponentUse]
    verified_count: int


class EditSummary(BaseModel):
    """One char_manual row as shown in history, recent changes and the review queue."""

    id: str
    character: str
    status: str
    edit_comment: str
    editor_name: str
    reviewer_name: Optional[str] = None
    review_comment: Optional[str] = None
    created_at: str
    reviewed_at: Optional[str] = None
    changed_fields: Optional[List[str]] = None
    fields: Optional[Dict[str, Any]] = None


class SocialProvider(BaseModel):
    name: str
    label: str
    order: int
