"""Page fetch strategies.

``StaticFetcher`` issues a single ``requests`` GET; ``RenderedFetcher`` drives
a headless Chromium through Playwright and returns the rendered DOM plus the
browser-reported title. Both raise :class:`~web2note.errors.FetchError`.
"""
from __future__ import annotations

import logging
from typing import Protocol

import requests
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import sync_playwright

from .errors import FetchError
from .models import FetchResult
from .settings import FETCH_TIMEOUT, USER_AGENT
from .utils import short_url


logger = logging.getLogger(__name__)


class Fetcher(Protocol):
    name: str

    def fetch(self, url: str) -> FetchResult: ...


class StaticFetcher:
    name = "static"

    def __init__(self, timeout: int = FETCH_TIMEOUT, session: requests.Session | None = None) -> None:
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "User-Agent": USER_AGENT,
                "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
                "Accept-Language": "ja,en-US;q=0.9,en;q=0.8",
            }
        )

    def fetch(self, url: str) -> FetchResult:
        logger.info("static fetch url=%s", short_url(url))
        try:
            resp = self.session.get(url, timeout=self.timeout, allow_redirects=True)
            resp.raise_for_status()
            if "charset" not in resp.headers.get("Content-Type", "").lower():
                # requests assumes ISO-8859-1 for text/* without a charset
                resp.encoding = resp.apparent_encoding
        except requests.Timeout as e:
            raise FetchError(f"timeout after {self.timeout}s: {url}") from e
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            raise FetchError(f"http {status} for {url}", status_code=status) from e
        except requests.RequestException as e:
            raise FetchError(f"request failed for {url}: {e}") from e

        final_url = resp.url or url
        logger.info("fetched html final_url=%s size=%d", short_url(final_url), len(resp.text or ""))
        return FetchResult(html=resp.text or "", final_url=final_url)


class RenderedFetcher:
    name = "rendered"

    def __init__(self, timeout: int = FETCH_TIMEOUT, headless: bool = True) -> None:
        self.timeout = timeout
        self.headless = headless

    def fetch(self, url: str) -> FetchResult:
        logger.info("rendered fetch url=%s", short_url(url))
        try:
            with sync_playwright() as p:
                browser = p.chromium.launch(
                    headless=self.headless,
                    args=["--no-sandbox", "--disable-setuid-sandbox"],
                )
                try:
                    context = browser.new_context(user_agent=USER_AGENT)
                    page = context.new_page()
                    page.goto(url, wait_until="networkidle", timeout=self.timeout * 1000)
                    html = page.content()
                    title = (page.title() or "").strip() or None
                    final_url = page.url or url
                finally:
                    browser.close()
        except PlaywrightError as e:
            raise FetchError(f"navigation failed for {url}: {e}") from e

        logger.info("rendered html final_url=%s size=%d", short_url(final_url), len(html))
        return FetchResult(html=html, final_url=final_url, rendered_title=title)


def build_fetcher(rendered: bool, timeout: int = FETCH_TIMEOUT) -> Fetcher:
    return RenderedFetcher(timeout=timeout) if rendered else StaticFetcher(timeout=timeout)
