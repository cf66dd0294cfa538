from __future__ import annotations

from typing import Optional


def sanitize_redirect_to(value: Optional[str]) -> str:
    """
    Only same-site paths are allowed as post-login destinations.
    "//evil.example" (and "/\\evil.example", which browsers read the same way)
    is protocol-relative, so it is rejected along with
    absolute URLs; anything unsafe falls back to "/".
    """
    if not value:
        return "/"
    if value.startswith("/") and not value.startswith(("//", "/\\")):
        return value
    return "/"
