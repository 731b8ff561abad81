from __future__ import annotations

import logging
import time
from pathlib import Path

from .errors import ExportError
from .models import PublishResult, ScrapedDocument
from .settings import MAX_ARTICLE_IMAGES


logger = logging.getLogger(__name__)

EXPORT_URL_PREFIX = "/exports"

DISCLAIMER = (
    "> This article was generated automatically from a scraped web page and has not "
    "been posted to note. Review the content and the rights of the original author "
    "before publishing it."
)


def render_markdown(document: ScrapedDocument) -> str:
    lines = [f"# {document.title}", "", document.body_text.strip(), ""]

    images = document.images[:MAX_ARTICLE_IMAGES]
    if images:
        lines.extend(["## Images", ""])
        for i, image in enumerate(images, start=1):
            lines.append(f"{i}. ![{image.alt_text}]({image.url})")
        lines.append("")

    meta = document.metadata
    lines.extend(["---", "", f"- Source: {document.source_url}"])
    if meta.author:
        lines.append(f"- Author: {meta.author}")
    if meta.publish_date:
        lines.append(f"- Published: {meta.publish_date}")
    if meta.tags:
        lines.append(f"- Tags: {', '.join(meta.tags)}")
    lines.append(f"- Scraped at: {document.scraped_at.isoformat()}")
    lines.extend(["", DISCLAIMER, ""])
    return "\n".join(lines)


class MarkdownExporter:
    """Writes ``note_<epoch-millis>.md`` files into ``export_dir``."""

    def __init__(self, export_dir: Path) -> None:
        self.export_dir = Path(export_dir)

    def export(self, document: ScrapedDocument) -> PublishResult:
        content = render_markdown(document)
        millis = int(time.time() * 1000)
        try:
            self.export_dir.mkdir(parents=True, exist_ok=True)
            while True:
                path = self.export_dir / f"note_{millis}.md"
                try:
                    with path.open("x", encoding="utf-8") as f:
                        f.write(content)
                    break
                except FileExistsError:
                    millis += 1
        except OSError as e:
            raise ExportError(f"failed to write export to {self.export_dir}: {e}") from e

        logger.info("exported markdown path=%s", path)
        return PublishResult(
            success=True,
            url=f"{EXPORT_URL_PREFIX}/{path.name}",
            remote_id=f"export_{millis}",
            title=document.title,
            exported=True,
        )
