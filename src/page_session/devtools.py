"""Pairing of DevTools windows with the pages they inspect."""

import re
from typing import Optional
from urllib.parse import urlsplit

DEVTOOLS_SCHEME = "devtools://"

_TITLE_RE = re.compile(r"^DevTools\s*-\s*(?P<url>\S.*?)\s*$")


def is_devtools_url(url: str) -> bool:
    return url.startswith(DEVTOOLS_SCHEME)


def extract_url_like_from_devtools_title(title: str) -> Optional[str]:
    """'DevTools - example.com/path' -> 'example.com/path'"""
    match = _TITLE_RE.match(title or "")
    if not match:
        return None
    return match.group("url")


def _normalize(url: str) -> str:
    if "://" not in url:
        url = "//" + url
    parts = urlsplit(url)
    path = parts.path.rstrip("/")
    query = f"?{parts.query}" if parts.query else ""
    return f"{parts.netloc.lower()}{path}{query}"


def urls_equal(a: str, b: str) -> bool:
    """Compare URLs ignoring scheme, fragment and a trailing slash"""
    return _normalize(a) == _normalize(b)
