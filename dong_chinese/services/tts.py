"""Short-lived Azure Speech tokens for in-browser text to speech."""

from __future__ import annotations

import logging
import threading
import time
from typing import Optional

import requests

from dong_chinese import config

logger = logging.getLogger(__name__)

# Azure tokens are valid for 10 minutes.
CACHE_SECONDS = 9 * 60


class TTSNotConfigured(Exception):
    pass


class TTSUpstreamError(Exception):
    pass


_lock = threading.Lock()
_cached_token: Optional[str] = None
_cached_at = 0.0


def get_token() -> str:
    global _cached_token, _cached_at

    key = config.env("TTS_SUBSCRIPTION_KEY")
    endpoint = config.env("TTS_TOKEN_ENDPOINT")
    if not key or not endpoint:
        raise TTSNotConfigured("TTS service not configured")

    with _lock:
        now = time.monotonic()
        if _cached_token and now - _cached_at < CACHE_SECONDS:
            return _cached_token

        try:
            resp = requests.post(
                endpoint,
                headers={"Ocp-Apim-Subscription-Key": key, "Content-Length": "0"},
                timeout=10,
            )
        except requests.RequestException as e:
            logger.warning("TTS token request failed: %s", e)
            raise TTSUpstreamError("Failed to reach Azure token service") from e

        if not resp.ok:
            raise TTSUpstreamError(f"Azure token service returned {resp.status_code}")

        _cached_token = resp.text
        _cached_at = now
        return _cached_token


def clear_cache() -> None:
    global _cached_token, _cached_at
    with _lock:
        _cached_token = None
        _cached_at = 0.0
