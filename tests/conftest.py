"""Shared pytest fixtures for web2note tests.

Fixture summary
---------------
temp_db       : points the sqlite task store at a fresh file under tmp_path.
make_document : factory for ScrapedDocument instances.
fake_scraper  : ScraperLike stub returning a fixed document (or raising).
fake_client   : NoteClient stand-in recording uploads and article posts.

Nothing here touches the network.
"""
from __future__ import annotations

from typing import Any, Callable

import pytest

from web2note import db
from web2note.errors import PublishError
from web2note.models import (
    Article,
    DocumentMetadata,
    ImageRef,
    PublishResult,
    ScrapedDocument,
)


@pytest.fixture
def temp_db(tmp_path, monkeypatch):
    monkeypatch.setattr(db, "DB_PATH", tmp_path / "app.db")
    db.init_db()
    return db


@pytest.fixture
def make_document() -> Callable[..., ScrapedDocument]:
    def _make(**overrides: Any) -> ScrapedDocument:
        fields: dict[str, Any] = {
            "source_url": "https://ex.com/post",
            "title": "Example post",
            "body_text": "Body of the example post.",
            "raw_html": "<html></html>",
            "images": [],
            "metadata": DocumentMetadata(),
        }
        fields.update(overrides)
        return ScrapedDocument(**fields)

    return _make


class FakeScraper:
    def __init__(self, document: ScrapedDocument | None = None, error: Exception | None = None) -> None:
        self.document = document
        self.error = error
        self.calls: list[str] = []

    def scrape(self, url: str) -> ScrapedDocument:
        self.calls.append(url)
        if self.error is not None:
            raise self.error
        assert self.document is not None
        return self.document

    def download_image(self, url: str) -> bytes:
        return b"\x89PNG"


class FakeNoteClient:
    def __init__(
        self,
        available: bool = True,
        fail_create: bool = False,
        fail_uploads: set[int] | None = None,
    ) -> None:
        self.available = available
        self.fail_create = fail_create
        self.fail_uploads = fail_uploads or set()
        self.uploads: list[str] = []
        self.articles: list[Article] = []

    def is_available(self) -> bool:
        return self.available

    def upload_image(self, image: bytes, filename: str) -> str:
        attempt = len(self.uploads)
        self.uploads.append(filename)
        if attempt in self.fail_uploads:
            raise PublishError(f"upload rejected: {filename}")
        return f"https://assets.note.test/{attempt}.png"

    def create_article(self, article: Article) -> PublishResult:
        self.articles.append(article)
        if self.fail_create:
            raise PublishError("create article: http 500 body=boom", status_code=500)
        return PublishResult(
            success=True,
            url="https://note.com/u/n/n123",
            remote_id="n123",
            title=article.title,
        )


@pytest.fixture
def fake_scraper(make_document) -> Callable[..., FakeScraper]:
    def _make(document: ScrapedDocument | None = None, error: Exception | None = None) -> FakeScraper:
        if document is None and error is None:
            document = make_document()
        return FakeScraper(document=document, error=error)

    return _make


@pytest.fixture
def fake_client() -> Callable[..., FakeNoteClient]:
    return FakeNoteClient


@pytest.fixture
def image_refs() -> Callable[[int], list[ImageRef]]:
    def _make(count: int, with_data: bool = True) -> list[ImageRef]:
        return [
            ImageRef(
                url=f"https://ex.com/img/{i}.png",
                alt_text=f"alt {i}",
                data=b"img" if with_data else None,
            )
            for i in range(count)
        ]

    return _make
