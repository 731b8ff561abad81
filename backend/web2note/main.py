from __future__ import annotations

import logging
from dataclasses import asdict

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel

from . import db, settings
from .errors import ScheduleError
from .exporter import EXPORT_URL_PREFIX, MarkdownExporter
from .fetchers import build_fetcher
from .note_client import NoteClient
from .publisher import Publisher
from .scheduler import Scheduler
from .scraper import WebScraper


load_dotenv(dotenv_path=settings.ENV_PATH)
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

NOTE_TOKEN_KEY = "NOTE_API_TOKEN"

EXPORT_DIR = settings.export_dir()
EXPORT_DIR.mkdir(parents=True, exist_ok=True)


def note_api_token() -> str | None:
    return db.get_config(NOTE_TOKEN_KEY) or settings.env_optional(NOTE_TOKEN_KEY)


scraper = WebScraper(
    build_fetcher(settings.use_rendered_fetch(), timeout=settings.fetch_timeout()),
    image_timeout=settings.image_timeout(),
)
note_client = NoteClient(note_api_token, base_url=settings.note_base_url())
publisher = Publisher(note_client, MarkdownExporter(EXPORT_DIR), mode=settings.publish_mode())
scheduler = Scheduler(scraper, publisher, timezone=settings.scheduler_timezone())

app = FastAPI(title="web2note API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.mount(EXPORT_URL_PREFIX, StaticFiles(directory=str(EXPORT_DIR)), name="exports")


class ScrapeRequest(BaseModel):
    url: str
    autoPublish: bool = False


class ScheduleRequest(BaseModel):
    name: str
    cronExpression: str
    url: str
    autoPublish: bool = False


class ConfigRequest(BaseModel):
    key: str
    value: str


@app.on_event("startup")
def startup() -> None:
    db.init_db()
    if not note_api_token():
        logger.warning("NOTE_API_TOKEN not set; articles will be exported as markdown")
    scheduler.restore()
    scheduler.start()
    logger.info(
        "web2note ready fetcher=%s publish_mode=%s db=%s",
        scraper.fetcher.name,
        publisher.mode,
        db.DB_PATH,
    )


@app.on_event("shutdown")
def shutdown() -> None:
    logger.info("shutting down scheduler")
    scheduler.shutdown()


@app.get("/")
def root() -> RedirectResponse:
    return RedirectResponse(url="/docs")


@app.post("/api/scrape")
def scrape(req: ScrapeRequest) -> dict:
    if not req.url.strip():
        raise HTTPException(status_code=400, detail="URL is required")
    task_id = scheduler.execute_scrape_and_post(req.url.strip(), req.autoPublish)
    if task_id is None:
        raise HTTPException(status_code=500, detail="failed to create task")
    task = db.get_task(task_id)
    return {"success": True, "data": asdict(task) if task else {"id": task_id}}


@app.get("/api/tasks")
def list_tasks(status: str | None = Query(default=None)) -> dict:
    return {"success": True, "data": [asdict(t) for t in db.get_all_tasks(status)]}


@app.get("/api/tasks/{task_id}")
def get_task(task_id: int) -> dict:
    task = db.get_task(task_id)
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return {"success": True, "data": asdict(task)}


@app.get("/api/history")
def history(limit: int = Query(default=50, ge=1, le=500)) -> dict:
    return {"success": True, "data": [asdict(h) for h in db.get_post_history(limit)]}


@app.post("/api/schedule")
def create_schedule(req: ScheduleRequest) -> dict:
    if not (req.name.strip() and req.cronExpression.strip() and req.url.strip()):
        raise HTTPException(status_code=400, detail="name, cronExpression, and url are required")
    try:
        scheduler.schedule(req.name, req.cronExpression, req.url, req.autoPublish)
    except ScheduleError as e:
        raise HTTPException(status_code=e.status_code or 400, detail=str(e)) from e
    return {"success": True, "message": f"Task {req.name} scheduled"}


@app.get("/api/schedule")
def list_schedules() -> dict:
    return {"success": True, "data": scheduler.get_active_tasks()}


@app.delete("/api/schedule/{name}")
def delete_schedule(name: str) -> dict:
    scheduler.stop(name)
    return {"success": True, "message": f"Task {name} stopped"}


@app.get("/api/config")
def get_config() -> dict:
    config = db.get_all_config()
    if NOTE_TOKEN_KEY in config:
        config[NOTE_TOKEN_KEY] = "********"
    return {"success": True, "data": config}


@app.post("/api/config")
def set_config(req: ConfigRequest) -> dict:
    if not (req.key.strip() and req.value.strip()):
        raise HTTPException(status_code=400, detail="key and value are required")
    db.set_config(req.key, req.value)
    if req.key == NOTE_TOKEN_KEY:
        logger.info("note API token updated")
    return {"success": True, "message": "Config updated"}


if __name__ == "__main__":  # pragma: no cover
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.port())
