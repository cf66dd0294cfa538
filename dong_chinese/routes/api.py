from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dong_chinese.db import get_db
from dong_chinese.services import tts

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["api"])


@router.get("/health")
def health(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("health check failed")
        return JSONResponse(status_code=503, content={"status": "error", "detail": "database unreachable"})
    return {"status": "ok"}


@router.get("/tts/token")
def tts_token():
    try:
        return {"token": tts.get_token()}
    except tts.TTSNotConfigured as e:
        raise HTTPException(503, detail=str(e))
    except tts.TTSUpstreamError as e:
        raise HTTPException(502, detail=str(e))
