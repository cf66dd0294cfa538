"""Wiki pages: character entries, editing, moderation, history, search and lists."""

from __future__ import annotations

import json
import logging
import math
import re
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, Form, HTTPException, Query, Request
from fastapi.responses import RedirectResponse
from sqlalchemy import select
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from dong_chinese.char_view import char_view
from dong_chinese.db import get_db, isoformat
from dong_chinese.fields import pick_editable_fields
from dong_chinese.models import EditSummary
from dong_chinese.routes.common import can_review, current_user, edited_by, fail, require_reviewer, user_payload
from dong_chinese.schema import CharManual
from dong_chinese.services import char_edit, dictionary
from dong_chinese.services.char_edit import CharEditError
from dong_chinese.services.users import editor_label, resolve_user_names

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/wiki", tags=["wiki"])

PAGE_SIZE = 50
SEARCH_LIMIT = 100
MAX_LIST_LIMIT = 500

# Form field names used by the edit page
TEXT_FIELDS = {"gloss": "gloss", "hint": "hint", "original_meaning": "originalMeaning"}
JSON_FIELDS = {
    "pinyin": "pinyin",
    "simplified_variants": "simplifiedVariants",
    "traditional_variants": "traditionalVariants",
    "components": "components",
    "stroke_data_simp": "strokeDataSimp",
    "stroke_data_trad": "strokeDataTrad",
    "fragments_simp": "fragmentsSimp",
    "fragments_trad": "fragmentsTrad",
    "historical_images": "historicalImages",
    "historical_pronunciations": "historicalPronunciations",
}
INT_FIELDS = {"stroke_count_simp": "strokeCountSimp", "stroke_count_trad": "strokeCountTrad"}


def _single_character(character: str) -> str:
    if len(character) != 1:
        raise HTTPException(404, detail="Wiki entries are for single characters only")
    return character


def _page_number(raw: Optional[str]) -> int:
    m = re.match(r"^\s*(\d+)", raw or "")
    return max(1, int(m.group(1))) if m else 1


def _summary(edit: CharManual, names: Dict[str, str], with_fields: bool = True) -> EditSummary:
    return EditSummary(
        id=edit.id,
        character=edit.character,
        status=edit.status,
        edit_comment=edit.edit_comment,
        editor_name=editor_label(edit.edited_by, names),
        reviewer_name=editor_label(edit.reviewed_by, names) if edit.reviewed_by else None,
        review_comment=edit.review_comment,
        created_at=isoformat(edit.created_at),
        reviewed_at=isoformat(edit.reviewed_at),
        changed_fields=edit.changed_fields,
        fields=pick_editable_fields(edit) if with_fields else None,
    )


def _names_for(db: Session, edits: List[CharManual]) -> Dict[str, str]:
    return resolve_user_names(db, [e.edited_by for e in edits] + [e.reviewed_by for e in edits])


# --- form parsing -----------------------------------------------------------


def safe_json_parse(value: Optional[str]) -> Any:
    if not value or value in ("null", "undefined"):
        return None
    try:
        return json.loads(value)
    except ValueError:
        return None


def is_safe_url(url: str) -> bool:
    """http(s) or a same-site path; rejects javascript:, data: and the like."""
    return bool(re.match(r"^https?://", url)) or (url.startswith("/") and not url.startswith("//"))


def sanitize_custom_sources(raw: Any) -> Optional[List[str]]:
    """Entries are "name" or "name|url"; drop any whose url is unsafe."""
    if not isinstance(raw, list):
        return None
    safe = []
    for entry in raw:
        if not isinstance(entry, str):
            continue
        _, sep, url = entry.partition("|")
        if not sep or is_safe_url(url):
            safe.append(entry)
    return safe or None


def _is_list_of(value: Any, kind: type) -> bool:
    return isinstance(value, list) and all(isinstance(v, kind) and not isinstance(v, bool) for v in value)


def _is_fragment_list(value: Any) -> bool:
    return isinstance(value, list) and all(_is_list_of(v, int) for v in value)


# Shape each JSON field must have to be stored; anything else is dropped.
JSON_SHAPES = {
    "pinyin": lambda v: _is_list_of(v, str),
    "simplified_variants": lambda v: _is_list_of(v, str),
    "traditional_variants": lambda v: _is_list_of(v, str),
    "components": lambda v: _is_list_of(v, dict),
    "stroke_data_simp": lambda v: isinstance(v, dict),
    "stroke_data_trad": lambda v: isinstance(v, dict),
    "fragments_simp": _is_fragment_list,
    "fragments_trad": _is_fragment_list,
    "historical_images": lambda v: _is_list_of(v, dict),
    "historical_pronunciations": lambda v: _is_list_of(v, dict),
}


def parse_json_field(field: str, raw: Optional[str]) -> Any:
    value = safe_json_parse(raw)
    if value is None or not JSON_SHAPES[field](value):
        return None
    return value


def _parse_int(value: Optional[str]) -> Optional[int]:
    m = re.match(r"^\s*([+-]?\d+)", value or "")
    # 0 is not a valid stroke count
    return (int(m.group(1)) or None) if m else None


def parse_edit_form(form) -> Dict[str, Any]:
    """Character data from the edit form. Fields missing from the form are left out."""
    data: Dict[str, Any] = {}
    for field, name in TEXT_FIELDS.items():
        if name in form:
            data[field] = str(form[name]).strip()
    if "variantOf" in form:
        data["variant_of"] = str(form["variantOf"]).strip() or None
    # Unchecked checkboxes are not submitted at all.
    data["is_verified"] = "isVerified" in form
    for field, name in JSON_FIELDS.items():
        if name in form:
            data[field] = parse_json_field(field, str(form[name]))
    for field, name in INT_FIELDS.items():
        if name in form:
            data[field] = _parse_int(str(form[name]))
    if "customSources" in form:
        data["custom_sources"] = sanitize_custom_sources(safe_json_parse(str(form["customSources"])))
    return data


# --- layout and listing pages -----------------------------------------------


@router.get("")
def wiki_layout(request: Request, db: Session = Depends(get_db)):
    return {
        "user": user_payload(current_user(request)),
        "settings": getattr(request.state, "settings", {}),
        "can_review": can_review(db, request),
    }


@router.get("/pending")
def pending_edits(request: Request, db: Session = Depends(get_db)):
    reviewer = can_review(db, request)
    if reviewer:
        edits = char_edit.get_pending_edits(db)
    else:
        edits = char_edit.get_user_pending_edits(db, edited_by(request))

    names = resolve_user_names(db, [e.edited_by for e in edits])

    chars = list(dict.fromkeys(e.character for e in edits))
    char_data: Dict[str, Dict[str, Any]] = {}
    if chars:
        view = char_view()
        for row in db.execute(select(view).where(view.c.character.in_(chars))).mappings():
            char_data[row["character"]] = pick_editable_fields(row)

    return {
        "items": [_summary(e, names) for e in edits],
        "char_data": char_data,
        "can_review": reviewer,
    }


def _approve(request: Request, db: Session, edit_id: Optional[str], review_comment: Optional[str]):
    denied = require_reviewer(db, request)
    if denied is not None:
        return denied
    if not edit_id:
        return fail(400, error="Missing editId")

    comment = (review_comment or "").strip() or None
    if not char_edit.approve_char_edit(db, edit_id, current_user(request).id, comment):
        return fail(404, error="Edit not found or already reviewed")
    return {"approved": True, "edit_id": edit_id}


def _reject(request: Request, db: Session, edit_id: Optional[str], reject_comment: Optional[str]):
    denied = require_reviewer(db, request)
    if denied is not None:
        return denied
    if not edit_id:
        return fail(400, error="Missing editId")
    comment = (reject_comment or "").strip()
    if not comment:
        return fail(400, error="Rejection comment is required")

    if not char_edit.reject_char_edit(db, edit_id, current_user(request).id, comment):
        return fail(404, error="Edit not found or already reviewed")
    return {"rejected": True, "edit_id": edit_id}


@router.post("/pending/approve")
def pending_approve(
    request: Request,
    editId: Optional[str] = Form(None),
    reviewComment: Optional[str] = Form(None),
    db: Session = Depends(get_db),
):
    return _approve(request, db, editId, reviewComment)


@router.post("/pending/reject")
def pending_reject(
    request: Request,
    editId: Optional[str] = Form(None),
    rejectComment: Optional[str] = Form(None),
    db: Session = Depends(get_db),
):
    return _reject(request, db, editId, rejectComment)


@router.get("/recent-changes")
def recent_changes(page: Optional[str] = Query(None), db: Session = Depends(get_db)):
    page_num = _page_number(page)
    edits, total = char_edit.get_recent_edits(db, limit=PAGE_SIZE, offset=(page_num - 1) * PAGE_SIZE)
    names = _names_for(db, edits)
    baselines = char_edit.resolve_baselines(db, edits)
    return {
        "items": [_summary(e, names) for e in edits],
        "baselines": baselines,
        "total": total,
        "page_num": page_num,
        "page_size": PAGE_SIZE,
        "total_pages": math.ceil(total / PAGE_SIZE),
    }


@router.get("/search")
def search(q: Optional[str] = Query(None), db: Session = Depends(get_db)):
    q = (q or "").strip()
    if not q:
        return {"q": q, "results": []}
    return {"q": q, "results": dictionary.search_characters(db, q, SEARCH_LIMIT)}


@router.get("/lists")
def lists_index():
    return RedirectResponse("/wiki/lists/movie-contexts/0/100", status_code=302)


@router.get("/lists/component-types")
def component_types_list(db: Session = Depends(get_db)):
    combinations, total = dictionary.get_component_type_combinations(db)
    return {
        "combinations": combinations,
        "total_characters": total,
        "all_lists": dictionary.LIST_NAV_ITEMS,
        "current_slug": "component-types",
    }


@router.get("/lists/{list_type}/{offset}/{limit}")
def character_list(list_type: str, offset: str, limit: str, db: Session = Depends(get_db)):
    if list_type not in dictionary.LIST_TYPES:
        raise HTTPException(404, detail=f'Unknown list type: "{list_type}"')
    if not offset.isdigit():
        raise HTTPException(400, detail="Invalid offset")
    if not limit.isdigit() or not 1 <= int(limit) <= MAX_LIST_LIMIT:
        raise HTTPException(400, detail=f"Invalid limit (must be 1-{MAX_LIST_LIMIT})")

    items, total = dictionary.get_character_list(db, list_type, int(offset), int(limit))
    info = dictionary.LIST_TYPES[list_type]
    return {
        "list_type": list_type,
        "list_label": info["label"],
        "description": info["description"],
        "items": items,
        "total": total,
        "offset": int(offset),
        "limit": int(limit),
        "all_lists": dictionary.LIST_NAV_ITEMS,
    }


# --- character pages --------------------------------------------------------


@router.get("/{character}")
def character_page(
    character: str,
    request: Request,
    view: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    char = _single_character(character)
    data = dictionary.get_character_data(db, char)
    if data is None:
        raise HTTPException(404, detail=f'Character "{char}" not found in dictionary')

    reviewer = can_review(db, request)
    identity = edited_by(request)

    if reviewer:
        pending_count = char_edit.count_pending_edits(db, char)
    elif identity:
        pending_count = char_edit.count_pending_edits(db, char, identity)
    else:
        pending_count = 0

    pending = char_edit.get_user_pending_edit(db, char, identity) if identity else None
    user_pending_edit = None
    if pending is not None:
        user_pending_edit = {
            "id": pending.id,
            "edit_comment": pending.edit_comment,
            "changed_fields": pending.changed_fields,
            **pick_editable_fields(pending),
        }

    return {
        "character": data,
        "component_uses": dictionary.get_component_uses(db, char),
        "deleted_component_glyphs": dictionary.get_deleted_component_glyphs(db, data),
        "pending_count": pending_count,
        "user_pending_edit": user_pending_edit,
        "show_draft": view == "draft",
        "can_review": reviewer,
    }


def _save_edit(
    db: Session,
    request: Request,
    char: str,
    data: Dict[str, Any],
    identity: char_edit.EditedBy,
    comment: str,
) -> char_edit.EditResult:
    """Update the caller's draft in place, or submit a new edit."""
    existing = char_edit.get_user_pending_edit(db, char, identity)
    if existing is not None:
        result = char_edit.update_char_edit(db, existing.id, char, data, comment)
        if result is not None:
            return result
        # Reviewed after the form was loaded.
    return char_edit.submit_char_edit(db, char, data, identity, comment, auto_approve=can_review(db, request))


@router.post("/{character}/edit")
async def submit_edit(character: str, request: Request, db: Session = Depends(get_db)):
    char = _single_character(character)
    form = await request.form()

    comment = str(form.get("editComment") or "").strip()
    if not comment:
        return fail(400, error="Edit comment is required")

    identity = edited_by(request)
    if not identity:
        return fail(400, error="You must be logged in or have an anonymous session")

    data = parse_edit_form(form)
    try:
        result = await run_in_threadpool(_save_edit, db, request, char, data, identity, comment)
    except CharEditError as e:
        status = 400 if e.code == "NO_FIELDS_CHANGED" else 500
        return fail(status, error=str(e))

    return RedirectResponse(f"/wiki/{quote(char)}?edited={result.status}", status_code=303)


@router.post("/{character}/edit/approve")
def edit_page_approve(
    character: str,
    request: Request,
    editId: Optional[str] = Form(None),
    reviewComment: Optional[str] = Form(None),
    db: Session = Depends(get_db),
):
    _single_character(character)
    return _approve(request, db, editId, reviewComment)


@router.post("/{character}/edit/reject")
def edit_page_reject(
    character: str,
    request: Request,
    editId: Optional[str] = Form(None),
    rejectComment: Optional[str] = Form(None),
    db: Session = Depends(get_db),
):
    _single_character(character)
    return _reject(request, db, editId, rejectComment)


@router.get("/{character}/history")
def history(
    character: str,
    request: Request,
    page: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    char = _single_character(character)
    page_num = _page_number(page)
    edits, total = char_edit.get_char_edit_history(
        db, char, limit=PAGE_SIZE, offset=(page_num - 1) * PAGE_SIZE
    )
    names = _names_for(db, edits)
    return {
        "edits": [_summary(e, names) for e in edits],
        "baselines": char_edit.resolve_baselines(db, edits),
        "total": total,
        "page_num": page_num,
        "page_size": PAGE_SIZE,
        "total_pages": math.ceil(total / PAGE_SIZE),
        "can_review": can_review(db, request),
    }


@router.post("/{character}/history/rollback")
def rollback(
    character: str,
    request: Request,
    editId: Optional[str] = Form(None),
    rollbackComment: Optional[str] = Form(None),
    db: Session = Depends(get_db),
):
    char = _single_character(character)
    denied = require_reviewer(db, request)
    if denied is not None:
        return denied

    comment = (rollbackComment or "").strip()
    if not editId:
        return fail(400, error="Missing editId")
    if not comment:
        return fail(400, error="Rollback comment is required")

    target = char_edit.get_char_manual_by_id(db, editId)
    if target is None or target.character != char:
        return fail(404, error="Edit not found")

    user = current_user(request)
    try:
        char_edit.submit_char_edit(
            db,
            char,
            char_edit.edit_data_columns(target),
            char_edit.EditedBy(user_id=user.id),
            f"[Rollback] {comment}",
            auto_approve=True,
        )
    except CharEditError as e:
        status = 400 if e.code == "NO_FIELDS_CHANGED" else 500
        return fail(status, error=str(e))

    logger.info("user %s rolled %s back to edit %s", user.id, char, editId)
    return RedirectResponse(f"/wiki/{quote(char)}/history", status_code=303)


@router.get("/{character}/history/{edit_id}")
def history_snapshot(character: str, edit_id: str, db: Session = Depends(get_db)):
    char = _single_character(character)
    edit = char_edit.get_char_manual_by_id(db, edit_id)
    if edit is None or edit.character != char:
        raise HTTPException(404, detail="Edit not found")

    current = dictionary.get_character_data(db, char)
    if current is None:
        raise HTTPException(404, detail=f'Character "{char}" not found in dictionary')

    snapshot = char_edit.build_edit_snapshot(current.model_dump(), edit)
    names = resolve_user_names(db, [edit.edited_by, edit.reviewed_by])
    return {"snapshot": snapshot, "edit": _summary(edit, names, with_fields=False)}
