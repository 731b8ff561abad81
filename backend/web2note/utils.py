from __future__ import annotations

import logging
import re
from urllib.parse import urljoin, urlparse


logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg")
WHITESPACE_RE = re.compile(r"\s+")


def compact_text(value: str) -> str:
    return WHITESPACE_RE.sub(" ", value or "").strip()


def short_url(url: str, max_len: int = 140) -> str:
    if len(url) <= max_len:
        return url
    return f"{url[:max_len]}..."


def to_absolute_url(src: str, base_url: str) -> str | None:
    """Resolve ``src`` against ``base_url``; ``None`` when the result is not a fetchable http(s) URL."""
    src = (src or "").strip()
    if not src:
        return None
    try:
        absolute = urljoin(base_url, src)
        parsed = urlparse(absolute)
    except ValueError as e:
        logger.debug("dropping malformed url src=%s error=%s", short_url(src), e)
        return None
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        return None
    return absolute


def is_image_url(url: str) -> bool:
    path = urlparse(url).path.lower()
    return path.endswith(IMAGE_EXTENSIONS) or "image" in url
