"""Storage locator helpers."""

from typing import Optional
from urllib.parse import urlparse


def to_absolute_url(url: Optional[str], base_url: str = "") -> str:
    """Resolve a relative storage locator against ``base_url``.

    Absolute http(s) locators and locators with no base to resolve against are
    returned unchanged (stripped).
    """
    value = (url or "").strip()
    if not value or value.startswith(("http://", "https://")):
        return value
    if not base_url:
        return value
    path = value if value.startswith("/") else f"/{value}"
    return f"{base_url.rstrip('/')}{path}"


def is_valid_locator(url: Optional[str]) -> bool:
    """True for absolute http(s) URLs with a host."""
    value = (url or "").strip()
    if not value or any(ch.isspace() for ch in value):
        return False
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)
