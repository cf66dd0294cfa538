"""The effective character row: char_base with the latest approved manual edit on top.

Every data column is ``COALESCE(manual, base)``, so a NULL in an approved edit
falls through to the base value. The view is driven by char_base: approved
edits for characters missing from char_base never show up.
"""

from __future__ import annotations

from sqlalchemy import Select, case, func, select
from sqlalchemy.sql.selectable import Subquery

from dong_chinese.schema import CHAR_DATA_COLUMNS, CharBase, CharManual


def latest_approved_edits() -> Subquery:
    ranked = (
        select(
            CharManual,
            func.row_number()
            .over(partition_by=CharManual.character, order_by=CharManual.created_at.desc())
            .label("rn"),
        )
        .where(CharManual.status == "approved")
        .subquery("ranked_approved")
    )
    return select(ranked).where(ranked.c.rn == 1).subquery("latest_approved")


def char_view_select() -> Select:
    m = latest_approved_edits()
    b = CharBase.__table__.c
    columns = [b.character]
    for name in CHAR_DATA_COLUMNS:
        columns.append(func.coalesce(m.c[name], b[name]).label(name))
    columns.append(b.created_at)
    columns.append(
        case(
            (m.c.created_at > b.updated_at, m.c.created_at),
            else_=b.updated_at,
        ).label("updated_at")
    )
    return select(*columns).select_from(
        CharBase.__table__.outerjoin(m, m.c.character == b.character)
    )


def char_view() -> Subquery:
    """The overlay as a subquery, for filtering and ordering like a table."""
    return char_view_select().subquery("char")
