from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from dong_chinese.db import get_db
from dong_chinese.middleware import is_secure
from dong_chinese.routes.common import current_user
from dong_chinese.services.settings import apply_settings, parse_theme

router = APIRouter(tags=["settings"])


@router.get("/settings")
def settings_page(request: Request):
    return {"settings": getattr(request.state, "settings", {})}


@router.post("/settings")
def update_settings(
    request: Request,
    theme: Optional[str] = Form(None),
    db: Session = Depends(get_db),
):
    settings = {"theme": parse_theme(theme)}
    user = current_user(request)
    response = JSONResponse({"success": True, "settings": settings})
    apply_settings(response, settings, is_secure(request), db=db, user_id=user.id if user else None)
    return response
