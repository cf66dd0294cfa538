from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from dong_chinese.component_types import COLOR_NAMES, VALID_TYPES, example_chars
from dong_chinese.db import get_db
from dong_chinese.formatting import component_color, component_title
from dong_chinese.models import CharacterData
from dong_chinese.services.dictionary import get_character_data

router = APIRouter(tags=["dictionary"])


def _explain(component_type: str) -> dict:
    if component_type not in VALID_TYPES:
        raise HTTPException(404, detail=f'Unknown component type: "{component_type}"')
    return {
        "type": component_type,
        "title": component_title(component_type),
        "color": component_color(component_type),
        "color_name": COLOR_NAMES.get(component_type),
        "example_chars": example_chars(component_type),
    }


@router.get("/dictionary/explain/{component_type}")
def explain(component_type: str):
    return _explain(component_type)


@router.get("/api/dictionary/explain/{component_type}")
def explain_api(component_type: str):
    # Static reference data; safe for browsers and CDNs to cache.
    return JSONResponse(
        _explain(component_type),
        headers={"Cache-Control": "public, max-age=3600"},
    )


@router.get("/dictionary/{entry}", response_model=CharacterData)
def dictionary_entry(entry: str, db: Session = Depends(get_db)):
    if len(entry) != 1:
        raise HTTPException(404, detail="Only single-character entries are supported")
    data = get_character_data(db, entry)
    if data is None:
        raise HTTPException(404, detail=f'Character "{entry}" not found in dictionary')
    return data
