from __future__ import annotations

import logging
import os
from pathlib import Path

APP_DIR = Path(__file__).resolve().parent

DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{APP_DIR.parent / 'dong_chinese.db'}")

# Public origin of the site, used to build links in emails and OAuth callbacks.
ORIGIN = os.getenv("ORIGIN", "http://localhost:8000").rstrip("/")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

SESSION_COOKIE = "session_token"
SESSION_MAX_AGE_DAYS = 7


def _parse_csv_env(name: str) -> list[str]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return []
    return [x.strip() for x in raw.split(",") if x.strip()]


# CORS:
# - Default to local dev origins. For production, set CORS_ORIGINS to your site origins.
#   Example:
#     CORS_ORIGINS=https://www.dong-chinese.com,https://dong-chinese.com
DEFAULT_CORS_ORIGINS = [
    "http://localhost",
    "http://localhost:5173",
    "http://localhost:8000",
    "http://127.0.0.1",
    "http://127.0.0.1:8000",
]
CORS_ORIGINS = _parse_csv_env("CORS_ORIGINS") or DEFAULT_CORS_ORIGINS


# Secrets below are read on every call so rotated credentials apply without a restart.

def env(name: str) -> str | None:
    value = os.getenv(name, "").strip()
    return value or None


def mail_from() -> str:
    return env("MAIL_FROM") or "Dong Chinese <noreply@dong-chinese.com>"


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
