from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal


TaskStatus = Literal["pending", "processing", "completed", "failed"]
ArticleStatus = Literal["draft", "publish"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "failed"})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ImageRef:
    url: str
    alt_text: str = ""
    data: bytes | None = None


@dataclass
class DocumentMetadata:
    author: str | None = None
    publish_date: str | None = None
    tags: list[str] | None = None


@dataclass
class ScrapedDocument:
    source_url: str
    title: str
    body_text: str
    raw_html: str
    images: list[ImageRef] = field(default_factory=list)
    metadata: DocumentMetadata = field(default_factory=DocumentMetadata)
    scraped_at: datetime = field(default_factory=_utcnow)


@dataclass
class FetchResult:
    html: str
    final_url: str
    rendered_title: str | None = None


@dataclass
class Article:
    title: str
    body: str
    status: ArticleStatus = "draft"
    publish_at: str | None = None
    eyecatch: str | None = None
    hashtags: list[str] | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "name": self.title,
            "body": self.body,
            "status": self.status,
            "publish_at": self.publish_at,
            "eyecatch": self.eyecatch,
            "hashtags": self.hashtags,
        }


@dataclass
class PublishResult:
    success: bool
    url: str | None = None
    remote_id: str | None = None
    error: str | None = None
    title: str | None = None
    exported: bool = False


@dataclass
class ScrapingTask:
    id: int
    url: str
    status: TaskStatus
    created_at: str
    completed_at: str | None = None
    error_message: str | None = None


@dataclass
class PostHistory:
    id: int
    task_id: int
    note_url: str
    note_id: str
    title: str
    posted_at: str


@dataclass
class ScheduledTrigger:
    name: str
    cron_expression: str
    url: str
    auto_publish: bool = False
    handle: Any = None

    def as_config(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "cronExpression": self.cron_expression,
            "url": self.url,
            "autoPublish": self.auto_publish,
        }
