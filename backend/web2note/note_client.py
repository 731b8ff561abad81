from __future__ import annotations

import logging
from typing import Any, Callable

import requests

from .errors import PublishError
from .models import Article, PublishResult
from .settings import DEFAULT_NOTE_BASE_URL


logger = logging.getLogger(__name__)

TokenProvider = Callable[[], str | None]


class NoteClient:
    """note.com API client.

    The bearer token is resolved through ``token_provider`` on every request so
    a credential changed at runtime is used by the next call.
    """

    def __init__(
        self,
        token_provider: TokenProvider,
        base_url: str = DEFAULT_NOTE_BASE_URL,
        timeout: int = 30,
    ) -> None:
        self.token_provider = token_provider
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    @property
    def token(self) -> str | None:
        token = self.token_provider()
        return token.strip() if token and token.strip() else None

    def is_available(self) -> bool:
        return self.token is not None

    def _headers(self) -> dict[str, str]:
        token = self.token
        if not token:
            raise PublishError("NOTE_API_TOKEN is not set")
        return {"Authorization": f"Bearer {token}"}

    def _raise_api_error(self, resp: requests.Response, context: str) -> None:
        if resp.status_code == 401:
            raise PublishError(f"{context}: unauthorized (401). Check NOTE_API_TOKEN.", status_code=401)
        if resp.status_code == 403:
            raise PublishError(f"{context}: forbidden (403).", status_code=403)
        if resp.status_code == 404:
            raise PublishError(f"{context}: not found (404).", status_code=404)
        if resp.status_code == 429:
            raise PublishError(f"{context}: rate limited (429).", status_code=429)
        if resp.status_code >= 400:
            body = (resp.text or "")[:500]
            raise PublishError(f"{context}: http {resp.status_code} body={body}", status_code=resp.status_code)

    def _request(self, method: str, path: str, context: str, **kwargs: Any) -> dict[str, Any]:
        headers = {**self._headers(), **kwargs.pop("headers", {})}
        try:
            resp = requests.request(
                method,
                f"{self.base_url}{path}",
                headers=headers,
                timeout=self.timeout,
                **kwargs,
            )
        except requests.RequestException as e:
            raise PublishError(f"{context}: {e}") from e
        self._raise_api_error(resp, context)
        try:
            payload = resp.json() or {}
        except ValueError as e:
            raise PublishError(f"{context}: invalid JSON response", status_code=resp.status_code) from e
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            raise PublishError(f"{context}: response missing data", status_code=resp.status_code)
        return data

    def upload_image(self, image: bytes, filename: str) -> str:
        data = self._request("POST", "/images", "upload image", files={"image": (filename, image)})
        url = data.get("url")
        if not url:
            raise PublishError("upload image: response missing url")
        return str(url)

    def _to_result(self, data: dict[str, Any], article: Article) -> PublishResult:
        return PublishResult(
            success=True,
            url=data.get("note_url"),
            remote_id=str(data.get("key") or data.get("id") or ""),
            title=article.title,
        )

    def create_article(self, article: Article) -> PublishResult:
        data = self._request("POST", "/notes", "create article", json=article.to_payload())
        logger.info("note created key=%s url=%s", data.get("key"), data.get("note_url"))
        return self._to_result(data, article)

    def update_article(self, note_id: str, article: Article) -> PublishResult:
        data = self._request("PUT", f"/notes/{note_id}", f"update article {note_id}", json=article.to_payload())
        logger.info("note updated key=%s", note_id)
        return self._to_result(data, article)
