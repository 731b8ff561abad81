"""Readable-content extraction from raw HTML.

Pure and synchronous: a page is parsed once with BeautifulSoup (lxml) and the
title, body text, images and metadata are pulled out with selector
heuristics. Malformed markup never raises; every field degrades to a sentinel
or empty value.
"""
from __future__ import annotations

import logging

from bs4 import BeautifulSoup, Tag

from .models import DocumentMetadata, ImageRef, ScrapedDocument
from .utils import compact_text, is_image_url, short_url, to_absolute_url


logger = logging.getLogger(__name__)

UNTITLED = "Untitled"

TITLE_META_SELECTORS = [
    'meta[property="og:title"]',
    'meta[name="twitter:title"]',
]

BOILERPLATE_TAGS = ["script", "style", "noscript", "nav", "header", "footer", "aside"]

CONTENT_SELECTORS = [
    "article",
    "main",
    ".content",
    ".post-content",
    ".entry-content",
    "#content",
    "body",
]

AUTHOR_META_SELECTORS = [
    'meta[name="author"]',
    'meta[property="article:author"]',
]

PUBLISH_DATE_META_SELECTORS = [
    'meta[property="article:published_time"]',
    'meta[name="publish_date"]',
]


def _meta_content(soup: BeautifulSoup, selector: str) -> str | None:
    node = soup.select_one(selector)
    if node is None:
        return None
    value = (node.get("content") or "").strip()
    return value or None


def _node_text(node: Tag | None) -> str:
    if node is None:
        return ""
    return compact_text(node.get_text(" "))


def extract_title(soup: BeautifulSoup) -> str:
    for selector in TITLE_META_SELECTORS:
        value = _meta_content(soup, selector)
        if value:
            return value
    for candidate in (soup.find("h1"), soup.find("title")):
        text = _node_text(candidate)
        if text:
            return text
    return UNTITLED


def extract_body(soup: BeautifulSoup) -> str:
    """Strip boilerplate elements in place, then read the first matching content container."""
    for node in soup.find_all(BOILERPLATE_TAGS):
        node.decompose()

    for selector in CONTENT_SELECTORS:
        matches = soup.select(selector)
        if matches:
            return compact_text(" ".join(m.get_text(" ") for m in matches))
    return compact_text(soup.get_text(" "))


def extract_images(soup: BeautifulSoup, base_url: str) -> list[ImageRef]:
    seen: set[str] = set()
    images: list[ImageRef] = []
    for img in soup.find_all("img"):
        src = img.get("src")
        if not src:
            continue
        absolute = to_absolute_url(src, base_url)
        if not absolute or absolute in seen:
            continue
        seen.add(absolute)
        if not is_image_url(absolute):
            continue
        images.append(ImageRef(url=absolute, alt_text=(img.get("alt") or "").strip()))
    return images


def extract_metadata(soup: BeautifulSoup) -> DocumentMetadata:
    author = None
    for selector in AUTHOR_META_SELECTORS:
        author = _meta_content(soup, selector)
        if author:
            break
    if not author:
        author = _node_text(soup.select_one(".author")) or None

    publish_date = None
    for selector in PUBLISH_DATE_META_SELECTORS:
        publish_date = _meta_content(soup, selector)
        if publish_date:
            break
    if not publish_date:
        time_node = soup.find("time")
        if time_node is not None:
            publish_date = (time_node.get("datetime") or "").strip() or None

    tags = [
        value
        for value in dict.fromkeys(
            (node.get("content") or "").strip()
            for node in soup.select('meta[property="article:tag"]')
        )
        if value
    ]
    return DocumentMetadata(author=author, publish_date=publish_date, tags=tags or None)


def extract(html: str, base_url: str) -> ScrapedDocument:
    html = html or ""
    try:
        soup = BeautifulSoup(html, "lxml")
        title = extract_title(soup)
        body = extract_body(soup)
        images = extract_images(soup, base_url)
        metadata = extract_metadata(soup)
    except Exception as e:  # noqa: BLE001
        logger.warning("extraction degraded url=%s error=%s", short_url(base_url), e)
        return ScrapedDocument(source_url=base_url, title=UNTITLED, body_text="", raw_html=html)

    logger.info(
        "extracted url=%s title_len=%d body_len=%d images=%d",
        short_url(base_url),
        len(title),
        len(body),
        len(images),
    )
    return ScrapedDocument(
        source_url=base_url,
        title=title,
        body_text=body,
        raw_html=html,
        images=images,
        metadata=metadata,
    )
