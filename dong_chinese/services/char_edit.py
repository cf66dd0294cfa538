"""Wiki edits to character data: submission, moderation, history and diff baselines.

Every edit is a char_manual row. Pending edits wait for a reviewer with the
``wikiEdit`` permission; approved edits become visible through the char view,
where the latest approved edit of a character is layered over char_base.
"""

from __future__ import annotations

import logging
import re
from bisect import bisect_left
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Sequence, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from dong_chinese.char_view import char_view_select
from dong_chinese.db import as_utc, utcnow
from dong_chinese.fields import (
    EDITABLE_FIELDS,
    NON_EDITABLE_DATA_FIELDS,
    compute_changed_fields,
    pick_editable_fields,
)
from dong_chinese.schema import CHAR_DATA_COLUMNS, CharBase, CharManual

logger = logging.getLogger(__name__)

IMPORT_TAG_RE = re.compile(r"^\[mongo:[A-Za-z0-9]{17,24}\]\s*")


class CharEditError(Exception):
    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code


@dataclass
class EditedBy:
    user_id: Optional[str] = None
    anonymous_session_id: Optional[str] = None

    def __bool__(self) -> bool:
        return bool(self.user_id or self.anonymous_session_id)


class EditResult(NamedTuple):
    id: str
    status: str


def strip_import_tag(comment: str) -> str:
    """Drop the "[mongo:<id>] " prefix left on comments imported from the legacy site."""
    return IMPORT_TAG_RE.sub("", comment or "")


def _for_display(db: Session, rows: Sequence[CharManual]) -> List[CharManual]:
    # Detach before rewriting comments so the cleaned text is never flushed back.
    out = []
    for row in rows:
        db.expunge(row)
        row.edit_comment = strip_import_tag(row.edit_comment)
        out.append(row)
    return out


def _data_only(data: Mapping[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in data.items() if k in CHAR_DATA_COLUMNS}


def get_char_view_row(db: Session, character: str) -> Optional[Mapping[str, Any]]:
    stmt = char_view_select().where(CharBase.character == character)
    return db.execute(stmt).mappings().first()


def _changed_fields(db: Session, character: str, data: Mapping[str, Any]) -> List[str]:
    base = db.get(CharBase, character)
    if base is None:
        raise CharEditError("UNKNOWN_CHARACTER", f"Character '{character}' does not exist in char_base")

    current = get_char_view_row(db, character)

    # The view shows COALESCE(manual, base): submitting None for a field that
    # has a base value just exposes the base value, so diff against that.
    submitted_fields = [f for f in EDITABLE_FIELDS if f in data]
    effective = {
        f: data[f] if data[f] is not None else getattr(base, f)
        for f in submitted_fields
    }
    reference = current if current is not None else pick_editable_fields(base)
    return compute_changed_fields(reference, effective, submitted_fields)


def submit_char_edit(
    db: Session,
    character: str,
    data: Mapping[str, Any],
    edited_by: EditedBy,
    edit_comment: str,
    auto_approve: bool = False,
) -> EditResult:
    """
    Record an edit. With auto_approve (caller holds wikiEdit) and a signed-in
    editor the edit is approved immediately; otherwise it waits for review.
    Anonymous editors can never auto-approve.
    """
    if not edited_by:
        raise CharEditError("NO_IDENTITY", "At least one of user_id or anonymous_session_id is required")

    data = _data_only(data)
    changed = _changed_fields(db, character, data)
    if not changed:
        raise CharEditError("NO_FIELDS_CHANGED", "No fields were changed")

    approved = auto_approve and edited_by.user_id is not None
    row = CharManual(
        character=character,
        **data,
        changed_fields=changed,
        status="approved" if approved else "pending",
        reviewed_by=edited_by.user_id if approved else None,
        reviewed_at=utcnow() if approved else None,
        edited_by=edited_by.user_id,
        anonymous_session_id=edited_by.anonymous_session_id,
        edit_comment=edit_comment,
    )
    db.add(row)
    db.commit()

    logger.info("char edit %s on %s: %s (fields: %s)", row.id, character, row.status, ",".join(changed))
    return EditResult(row.id, row.status)


def update_char_edit(
    db: Session,
    edit_id: str,
    character: str,
    data: Mapping[str, Any],
    edit_comment: str,
) -> Optional[EditResult]:
    """
    Rewrite a still-pending edit in place. Returns None when the edit has been
    reviewed in the meantime, so the caller can submit a fresh one instead.
    """
    data = _data_only(data)
    changed = _changed_fields(db, character, data)
    if not changed:
        raise CharEditError("NO_FIELDS_CHANGED", "No fields were changed")

    # Fields absent from the new submission are cleared, not kept from the old draft.
    values = {col: data.get(col) for col in CHAR_DATA_COLUMNS}
    result = db.execute(
        update(CharManual)
        .where(
            CharManual.id == edit_id,
            CharManual.character == character,
            CharManual.status == "pending",
        )
        .values(**values, changed_fields=changed, edit_comment=edit_comment, created_at=utcnow())
    )
    db.commit()

    if result.rowcount == 0:
        return None
    return EditResult(edit_id, "pending")


def approve_char_edit(
    db: Session,
    edit_id: str,
    reviewed_by: str,
    review_comment: Optional[str] = None,
) -> bool:
    """
    Approve a pending edit, applying only the fields it intentionally changed.

    The stored row is rewritten so that, once it becomes the latest approved
    edit, the view shows the current values for every field the editor did not
    touch. Legacy rows without changed_fields are approved as they are.
    Returns False if the edit does not exist or was already reviewed.
    """
    edit = get_char_manual_by_id(db, edit_id)
    if edit is None or edit.status != "pending":
        return False

    values: Dict[str, Any] = {
        "status": "approved",
        "reviewed_by": reviewed_by,
        "reviewed_at": utcnow(),
        "review_comment": review_comment,
    }

    if edit.changed_fields is not None:
        current = get_char_view_row(db, edit.character)
        changed = set(edit.changed_fields)
        for field in EDITABLE_FIELDS:
            if field in changed or current is None:
                values[field] = getattr(edit, field)
            else:
                # Prefer the current value even when it is None, so fields
                # cleared since this edit was drafted stay cleared.
                values[field] = current[field]
        for field in NON_EDITABLE_DATA_FIELDS:
            values[field] = current[field] if current is not None else getattr(edit, field)

    # status = 'pending' in the WHERE clause guards against a concurrent review.
    result = db.execute(
        update(CharManual)
        .where(CharManual.id == edit_id, CharManual.status == "pending")
        .values(**values)
    )
    db.commit()

    if result.rowcount:
        logger.info("char edit %s approved by %s", edit_id, reviewed_by)
    return result.rowcount > 0


def reject_char_edit(db: Session, edit_id: str, reviewed_by: str, review_comment: str) -> bool:
    """Reject a pending edit. Returns False if it does not exist or was already reviewed."""
    result = db.execute(
        update(CharManual)
        .where(CharManual.id == edit_id, CharManual.status == "pending")
        .values(
            status="rejected",
            reviewed_by=reviewed_by,
            reviewed_at=utcnow(),
            review_comment=review_comment,
        )
    )
    db.commit()

    if result.rowcount:
        logger.info("char edit %s rejected by %s", edit_id, reviewed_by)
    return result.rowcount > 0


def _editor_filter(edited_by: EditedBy):
    # A signed-in user's drafts are theirs regardless of any anonymous cookie.
    if edited_by.user_id:
        return CharManual.edited_by == edited_by.user_id
    if edited_by.anonymous_session_id:
        return CharManual.anonymous_session_id == edited_by.anonymous_session_id
    return None


def get_pending_edits(db: Session, character: Optional[str] = None) -> List[CharManual]:
    stmt = select(CharManual).where(CharManual.status == "pending")
    if character:
        stmt = stmt.where(CharManual.character == character)
    rows = db.scalars(stmt.order_by(CharManual.created_at.desc())).all()
    return _for_display(db, rows)


def get_user_pending_edits(db: Session, edited_by: EditedBy) -> List[CharManual]:
    cond = _editor_filter(edited_by)
    if cond is None:
        return []
    stmt = (
        select(CharManual)
        .where(CharManual.status == "pending", cond)
        .order_by(CharManual.created_at.desc())
    )
    return _for_display(db, db.scalars(stmt).all())


def get_user_pending_edit(db: Session, character: str, edited_by: EditedBy) -> Optional[CharManual]:
    """The caller's most recent pending edit for a character, if any."""
    cond = _editor_filter(edited_by)
    if cond is None:
        return None
    stmt = (
        select(CharManual)
        .where(CharManual.status == "pending", CharManual.character == character, cond)
        .order_by(CharManual.created_at.desc())
        .limit(1)
    )
    rows = _for_display(db, db.scalars(stmt).all())
    return rows[0] if rows else None


def count_pending_edits(db: Session, character: str, edited_by: Optional[EditedBy] = None) -> int:
    stmt = select(func.count()).select_from(CharManual).where(
        CharManual.character == character, CharManual.status == "pending"
    )
    if edited_by is not None:
        cond = _editor_filter(edited_by)
        if cond is None:
            return 0
        stmt = stmt.where(cond)
    return db.scalar(stmt) or 0


def get_char_edit_history(
    db: Session, character: str, limit: int = 50, offset: int = 0
) -> Tuple[List[CharManual], int]:
    """All edits of a character (any status), newest first, with the total count."""
    rows = db.scalars(
        select(CharManual)
        .where(CharManual.character == character)
        .order_by(CharManual.created_at.desc())
        .limit(limit)
        .offset(offset)
    ).all()
    total = db.scalar(
        select(func.count()).select_from(CharManual).where(CharManual.character == character)
    )
    return _for_display(db, rows), total or 0


def get_char_manual_by_id(db: Session, edit_id: str) -> Optional[CharManual]:
    row = db.get(CharManual, edit_id)
    if row is None:
        return None
    return _for_display(db, [row])[0]


def get_recent_edits(db: Session, limit: int = 50, offset: int = 0) -> Tuple[List[CharManual], int]:
    """Edits across all characters (any status), newest first, with the total count."""
    rows = db.scalars(
        select(CharManual).order_by(CharManual.created_at.desc()).limit(limit).offset(offset)
    ).all()
    total = db.scalar(select(func.count()).select_from(CharManual))
    return _for_display(db, rows), total or 0


def resolve_baselines(db: Session, edits: Sequence[CharManual]) -> Dict[str, Dict[str, Any]]:
    """
    For each edit, the editable-field values in effect just before it was made.

    That is char_base with the latest approved edit of the same character
    created strictly earlier layered on top, the same COALESCE the char view
    applies. Pending and rejected edits never change what readers saw, so
    they are skipped. Characters without a char_base row get no baseline.
    """
    if not edits:
        return {}

    characters = {e.character for e in edits}
    bases = {
        b.character: b
        for b in db.scalars(select(CharBase).where(CharBase.character.in_(characters)))
    }
    if not bases:
        return {}

    newest = max(as_utc(e.created_at) for e in edits)
    approved = db.scalars(
        select(CharManual)
        .where(
            CharManual.character.in_(list(bases)),
            CharManual.status == "approved",
            CharManual.created_at < newest,
        )
        .order_by(CharManual.character, CharManual.created_at)
    ).all()

    timeline: Dict[str, Tuple[List[Any], List[CharManual]]] = {}
    for row in approved:
        stamps, rows = timeline.setdefault(row.character, ([], []))
        stamps.append(as_utc(row.created_at))
        rows.append(row)

    baselines: Dict[str, Dict[str, Any]] = {}
    for edit in edits:
        base = bases.get(edit.character)
        if base is None:
            continue
        baseline = pick_editable_fields(base)
        stamps, rows = timeline.get(edit.character, ([], []))
        i = bisect_left(stamps, as_utc(edit.created_at))
        if i > 0:
            prev = rows[i - 1]
            for field in EDITABLE_FIELDS:
                value = getattr(prev, field)
                if value is not None:
                    baseline[field] = value
        baselines[edit.id] = baseline
    return baselines


def build_edit_snapshot(base: Mapping[str, Any], edit: CharManual) -> Dict[str, Any]:
    """Current character data with one edit's changed fields laid over it."""
    snapshot = dict(base)
    changed = set(edit.changed_fields if edit.changed_fields is not None else EDITABLE_FIELDS)
    for field in EDITABLE_FIELDS:
        if field in changed:
            snapshot[field] = getattr(edit, field)
    return snapshot


def edit_data_columns(edit: CharManual) -> Dict[str, Any]:
    """The character data carried by an edit, e.g. to resubmit it as a rollback."""
    return {col: getattr(edit, col) for col in CHAR_DATA_COLUMNS}
