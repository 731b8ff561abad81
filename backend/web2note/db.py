from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator

from .models import TERMINAL_STATUSES, PostHistory, ScrapingTask
from .settings import db_path


DB_PATH = db_path()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@contextmanager
def get_conn() -> Iterator[sqlite3.Connection]:
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(DB_PATH, timeout=30)
    conn.row_factory = sqlite3.Row
    try:
        with conn:
            yield conn
    finally:
        conn.close()


def init_db() -> None:
    with get_conn() as conn:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS scraping_tasks (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                url TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'pending',
                created_at TEXT NOT NULL,
                completed_at TEXT,
                error_message TEXT
            );

            CREATE TABLE IF NOT EXISTS post_history (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                task_id INTEGER NOT NULL,
                note_url TEXT NOT NULL,
                note_id TEXT NOT NULL,
                title TEXT NOT NULL,
                posted_at TEXT NOT NULL,
                FOREIGN KEY (task_id) REFERENCES scraping_tasks(id)
            );

            CREATE TABLE IF NOT EXISTS app_config (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_task_status ON scraping_tasks(status);
            CREATE INDEX IF NOT EXISTS idx_task_created ON scraping_tasks(created_at);
            """
        )


def _row_to_task(row: sqlite3.Row) -> ScrapingTask:
    return ScrapingTask(
        id=row["id"],
        url=row["url"],
        status=row["status"],
        created_at=row["created_at"],
        completed_at=row["completed_at"],
        error_message=row["error_message"],
    )


def create_task(url: str) -> int:
    with get_conn() as conn:
        cur = conn.execute(
            "INSERT INTO scraping_tasks (url, status, created_at) VALUES (?, 'pending', ?)",
            (url, _now()),
        )
        return int(cur.lastrowid)


def get_task(task_id: int) -> ScrapingTask | None:
    with get_conn() as conn:
        row = conn.execute("SELECT * FROM scraping_tasks WHERE id = ?", (task_id,)).fetchone()
        return _row_to_task(row) if row else None


def get_all_tasks(status: str | None = None) -> list[ScrapingTask]:
    with get_conn() as conn:
        if status:
            rows = conn.execute(
                "SELECT * FROM scraping_tasks WHERE status = ? ORDER BY created_at DESC, id DESC",
                (status,),
            ).fetchall()
        else:
            rows = conn.execute("SELECT * FROM scraping_tasks ORDER BY created_at DESC, id DESC").fetchall()
        return [_row_to_task(r) for r in rows]


def update_task_status(task_id: int, status: str, error_message: str | None = None) -> bool:
    """Move a task to ``status``. Terminal tasks are never re-opened; returns ``False`` if nothing changed."""
    completed_at = _now() if status in TERMINAL_STATUSES else None
    with get_conn() as conn:
        cur = conn.execute(
            """
            UPDATE scraping_tasks
            SET status = ?, completed_at = ?, error_message = ?
            WHERE id = ? AND status NOT IN ('completed', 'failed')
            """,
            (status, completed_at, error_message, task_id),
        )
        return cur.rowcount > 0


def create_post_history(task_id: int, note_url: str, note_id: str, title: str) -> int:
    with get_conn() as conn:
        cur = conn.execute(
            """
            INSERT INTO post_history (task_id, note_url, note_id, title, posted_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (task_id, note_url, note_id, title, _now()),
        )
        return int(cur.lastrowid)


def get_post_history(limit: int = 50) -> list[PostHistory]:
    with get_conn() as conn:
        rows = conn.execute(
            "SELECT * FROM post_history ORDER BY posted_at DESC, id DESC LIMIT ?",
            (limit,),
        ).fetchall()
        return [
            PostHistory(
                id=r["id"],
                task_id=r["task_id"],
                note_url=r["note_url"],
                note_id=r["note_id"],
                title=r["title"],
                posted_at=r["posted_at"],
            )
            for r in rows
        ]


def set_config(key: str, value: str) -> None:
    with get_conn() as conn:
        conn.execute(
            """
            INSERT INTO app_config (key, value) VALUES (?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value
            """,
            (key, value),
        )


def get_config(key: str) -> str | None:
    with get_conn() as conn:
        row = conn.execute("SELECT value FROM app_config WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None


def get_all_config() -> dict[str, str]:
    with get_conn() as conn:
        rows = conn.execute("SELECT key, value FROM app_config").fetchall()
        return {r["key"]: r["value"] for r in rows}
