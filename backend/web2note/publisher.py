"""Turn a scraped document into a note article and deliver it.

Delivery goes to the note API when the remote channel is configured. Any
remote failure falls back to a local markdown export, so only a failing
export (or an unexpected error) is reported as ``success=False``.
"""
from __future__ import annotations

import logging
from pathlib import PurePosixPath
from urllib.parse import urlparse

from .errors import PublishError
from .exporter import MarkdownExporter
from .models import Article, PublishResult, ScrapedDocument
from .note_client import NoteClient
from .settings import MAX_ARTICLE_IMAGES
from .utils import IMAGE_EXTENSIONS, short_url


logger = logging.getLogger(__name__)


def provenance_footer(document: ScrapedDocument) -> str:
    lines = ["", "", "---", "", f"元記事: {document.source_url}"]
    if document.metadata.author:
        lines.append(f"著者: {document.metadata.author}")
    if document.metadata.publish_date:
        lines.append(f"公開日: {document.metadata.publish_date}")
    return "\n".join(lines)


def _upload_filename(index: int, url: str) -> str:
    suffix = PurePosixPath(urlparse(url).path).suffix.lower()
    if suffix not in IMAGE_EXTENSIONS:
        suffix = ".jpg"
    return f"image_{index}{suffix}"


class Publisher:
    def __init__(self, client: NoteClient, exporter: MarkdownExporter, mode: str = "remote") -> None:
        self.client = client
        self.exporter = exporter
        self.mode = mode

    def remote_available(self) -> bool:
        return self.mode == "remote" and self.client.is_available()

    def convert_to_article(self, document: ScrapedDocument, auto_publish: bool = False) -> Article:
        body = document.body_text
        uploaded: list[str] = []

        if self.remote_available():
            candidates = [img for img in document.images if img.data][:MAX_ARTICLE_IMAGES]
            if candidates:
                logger.info("uploading %d images", len(candidates))
            for i, image in enumerate(candidates):
                try:
                    hosted_url = self.client.upload_image(image.data, _upload_filename(i, image.url))
                except PublishError as e:
                    logger.warning("image upload skipped url=%s error=%s", short_url(image.url), e)
                    continue
                uploaded.append(hosted_url)
                body += f"\n\n![{image.alt_text}]({hosted_url})"

        body += provenance_footer(document)
        return Article(
            title=document.title,
            body=body,
            status="publish" if auto_publish else "draft",
            eyecatch=uploaded[0] if uploaded else None,
            hashtags=document.metadata.tags,
        )

    def publish(self, document: ScrapedDocument, auto_publish: bool = False) -> PublishResult:
        try:
            article = self.convert_to_article(document, auto_publish)
            if self.remote_available():
                try:
                    return self.client.create_article(article)
                except PublishError as e:
                    logger.warning("remote publish failed, exporting instead: %s", e)
            else:
                logger.info("remote channel unavailable (mode=%s); exporting", self.mode)
            return self.exporter.export(document)
        except Exception as e:  # noqa: BLE001
            logger.exception("publish failed url=%s", short_url(document.source_url))
            return PublishResult(success=False, error=str(e), title=document.title)
