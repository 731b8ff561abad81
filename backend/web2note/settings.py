from __future__ import annotations

import os
from pathlib import Path

from dotenv import dotenv_values


BACKEND_DIR = Path(__file__).resolve().parents[1]
ENV_PATH = BACKEND_DIR / ".env"

DEFAULT_NOTE_BASE_URL = "https://note.com/api/v2"
DEFAULT_DB_PATH = BACKEND_DIR / "data" / "app.db"
DEFAULT_EXPORT_DIR = BACKEND_DIR / "exports"

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

#: Page fetch timeout (seconds), static and rendered.
FETCH_TIMEOUT = 30
#: Per-image download timeout (seconds).
IMAGE_TIMEOUT = 15
#: Upper bound on images uploaded into an article or listed in an export.
MAX_ARTICLE_IMAGES = 10

PUBLISH_MODES = {"remote", "export"}


def env_optional(name: str, default: str | None = None) -> str | None:
    env_values = dotenv_values(ENV_PATH)
    value = env_values.get(name)
    if value is None or not str(value).strip():
        value = os.getenv(name, default)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def env_bool(name: str, default: bool = False) -> bool:
    value = env_optional(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "on"}


def env_int(name: str, default: int) -> int:
    value = env_optional(name)
    try:
        return int(value) if value is not None else default
    except ValueError:
        return default


def note_base_url() -> str:
    return env_optional("NOTE_BASE_URL", DEFAULT_NOTE_BASE_URL) or DEFAULT_NOTE_BASE_URL


def publish_mode() -> str:
    mode = (env_optional("PUBLISH_MODE", "remote") or "remote").lower()
    return mode if mode in PUBLISH_MODES else "remote"


def use_rendered_fetch() -> bool:
    return env_bool("USE_RENDERED_FETCH", False)


def fetch_timeout() -> int:
    return env_int("FETCH_TIMEOUT", FETCH_TIMEOUT)


def image_timeout() -> int:
    return env_int("IMAGE_TIMEOUT", IMAGE_TIMEOUT)


def db_path() -> Path:
    value = env_optional("DB_PATH")
    return Path(value) if value else DEFAULT_DB_PATH


def export_dir() -> Path:
    value = env_optional("EXPORT_DIR")
    return Path(value) if value else DEFAULT_EXPORT_DIR


def scheduler_timezone() -> str:
    return env_optional("SCHEDULER_TIMEZONE", "UTC") or "UTC"


def port() -> int:
    return env_int("PORT", 3000)


def cors_origins() -> list[str]:
    value = env_optional("CORS_ORIGINS", "http://localhost:5173") or ""
    return [origin.strip() for origin in value.split(",") if origin.strip()]
