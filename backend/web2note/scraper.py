from __future__ import annotations

import logging
from typing import Protocol

import requests

from .errors import FetchError, ScrapeError
from .extractor import extract
from .fetchers import Fetcher, build_fetcher
from .models import ScrapedDocument
from .settings import IMAGE_TIMEOUT, USER_AGENT
from .utils import short_url


logger = logging.getLogger(__name__)


class ScraperLike(Protocol):
    def scrape(self, url: str) -> ScrapedDocument: ...

    def download_image(self, url: str) -> bytes: ...


class WebScraper:
    """Fetch a page, extract it, then pull image bytes best-effort.

    The fetch strategy is fixed for the lifetime of the instance.
    """

    def __init__(
        self,
        fetcher: Fetcher | None = None,
        *,
        rendered: bool = False,
        image_timeout: int = IMAGE_TIMEOUT,
        session: requests.Session | None = None,
    ) -> None:
        self.fetcher = fetcher or build_fetcher(rendered)
        self.image_timeout = image_timeout
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": USER_AGENT})

    def scrape(self, url: str) -> ScrapedDocument:
        logger.info("scrape start url=%s fetcher=%s", short_url(url), self.fetcher.name)
        try:
            fetched = self.fetcher.fetch(url)
        except FetchError as e:
            raise ScrapeError(f"Failed to scrape {url}: {e}", status_code=e.status_code) from e

        document = extract(fetched.html, fetched.final_url or url)
        document.source_url = url
        if fetched.rendered_title:
            document.title = fetched.rendered_title

        downloaded = 0
        for image in document.images:
            try:
                image.data = self.download_image(image.url)
                downloaded += 1
            except FetchError as e:
                logger.warning("image download skipped url=%s error=%s", short_url(image.url), e)

        logger.info(
            "scrape done url=%s images=%d downloaded=%d",
            short_url(url),
            len(document.images),
            downloaded,
        )
        return document

    def download_image(self, url: str) -> bytes:
        try:
            resp = self.session.get(url, timeout=self.image_timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            raise FetchError(f"Failed to download image {url}: {e}") from e
        return resp.content
