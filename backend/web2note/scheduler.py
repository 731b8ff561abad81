from __future__ import annotations

import json
import logging
import threading
import traceback
from typing import Any

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from . import db
from .errors import ScheduleError
from .models import PublishResult, ScheduledTrigger
from .publisher import Publisher
from .scraper import ScraperLike
from .utils import short_url


logger = logging.getLogger(__name__)

SCHEDULES_CONFIG_KEY = "schedules"

# crontab counts weekdays from Sunday (0 or 7); APScheduler counts from Monday,
# so numeric weekday fields are expanded to explicit day names.
CRONTAB_WEEKDAYS = ["sun", "mon", "tue", "wed", "thu", "fri", "sat"]


def _weekday_number(value: str) -> int:
    value = value.strip().lower()
    if value in CRONTAB_WEEKDAYS:
        return CRONTAB_WEEKDAYS.index(value)
    number = int(value)
    if not 0 <= number <= 7:
        raise ValueError(f"day of week out of range: {value}")
    return number


def _crontab_day_of_week(field: str) -> str:
    if field in {"*", "?"}:
        return "*"
    days: set[int] = set()
    for token in field.split(","):
        base, _, step_raw = token.partition("/")
        step = int(step_raw) if step_raw else 1
        if step < 1:
            raise ValueError(f"invalid step in day of week: {token}")
        if base == "*":
            first, last = 0, 6
        elif "-" in base:
            start, _, end = base.partition("-")
            first, last = _weekday_number(start), _weekday_number(end)
        else:
            first = _weekday_number(base)
            last = 6 if step_raw else first
        if last < first:
            raise ValueError(f"invalid day of week range: {token}")
        days.update(day % 7 for day in range(first, last + 1, step))
    return ",".join(CRONTAB_WEEKDAYS[day] for day in sorted(days))


def parse_cron(expression: str, timezone: str = "UTC") -> CronTrigger:
    """Build a trigger from a 5-field crontab line, or 6 fields with leading seconds."""
    fields = (expression or "").split()
    if len(fields) == 5:
        second = "0"
        minute, hour, day, month, day_of_week = fields
    elif len(fields) == 6:
        second, minute, hour, day, month, day_of_week = fields
    else:
        raise ScheduleError(f"invalid cron expression {expression!r}: expected 5 or 6 fields", status_code=400)
    try:
        return CronTrigger(
            second=second,
            minute=minute,
            hour=hour,
            day=day,
            month=month,
            day_of_week=_crontab_day_of_week(day_of_week),
            timezone=timezone,
        )
    except ValueError as e:
        raise ScheduleError(f"invalid cron expression {expression!r}: {e}", status_code=400) from e


class Scheduler:
    """Named recurring scrape-and-post triggers plus the task lifecycle they drive.

    Only methods of this class mutate the trigger registry and task status.
    """

    def __init__(
        self,
        scraper: ScraperLike,
        publisher: Publisher,
        timezone: str = "UTC",
        persist: bool = True,
    ) -> None:
        self.scraper = scraper
        self.publisher = publisher
        self.timezone = timezone
        self.persist = persist
        self._scheduler = BackgroundScheduler(timezone=timezone)
        self._triggers: dict[str, ScheduledTrigger] = {}
        self._lock = threading.RLock()

    def start(self) -> None:
        if not self._scheduler.running:
            self._scheduler.start()

    def shutdown(self) -> None:
        self.stop_all()
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)

    def schedule(
        self,
        name: str,
        cron_expression: str,
        url: str,
        auto_publish: bool = False,
    ) -> ScheduledTrigger:
        trigger = parse_cron(cron_expression, self.timezone)
        with self._lock:
            if name in self._triggers:
                logger.info("trigger %s already scheduled, stopping old trigger", name)
                self._remove(name)
            job = self._scheduler.add_job(
                self.execute_scrape_and_post,
                trigger=trigger,
                args=[url, auto_publish],
                id=name,
                name=name,
                replace_existing=True,
                coalesce=True,
                misfire_grace_time=60,
            )
            scheduled = ScheduledTrigger(
                name=name,
                cron_expression=cron_expression,
                url=url,
                auto_publish=auto_publish,
                handle=job,
            )
            self._triggers[name] = scheduled
            self._save()
        logger.info("trigger %s scheduled cron=%r url=%s", name, cron_expression, short_url(url))
        return scheduled

    def _remove(self, name: str) -> ScheduledTrigger | None:
        trigger = self._triggers.pop(name, None)
        if trigger is None:
            return None
        try:
            self._scheduler.remove_job(name)
        except JobLookupError:
            logger.debug("job for trigger %s was already gone", name)
        return trigger

    def stop(self, name: str) -> None:
        with self._lock:
            if self._remove(name) is None:
                return
            self._save()
        logger.info("trigger %s stopped", name)

    def stop_all(self) -> None:
        # Persisted schedules are kept so they can be restored on the next start.
        with self._lock:
            for name in list(self._triggers):
                self._remove(name)
                logger.info("trigger %s stopped", name)

    def get_active_tasks(self) -> list[str]:
        with self._lock:
            return list(self._triggers)

    def get_trigger(self, name: str) -> ScheduledTrigger | None:
        with self._lock:
            return self._triggers.get(name)

    def _save(self) -> None:
        if not self.persist:
            return
        payload = [t.as_config() for t in self._triggers.values()]
        try:
            db.set_config(SCHEDULES_CONFIG_KEY, json.dumps(payload, ensure_ascii=False))
        except Exception:  # noqa: BLE001
            logger.exception("failed to persist schedules")

    def restore(self) -> int:
        raw = db.get_config(SCHEDULES_CONFIG_KEY)
        if not raw:
            return 0
        try:
            entries: list[dict[str, Any]] = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error("saved schedules are not valid JSON: %s", e)
            return 0

        restored = 0
        for entry in entries:
            try:
                self.schedule(
                    entry["name"],
                    entry["cronExpression"],
                    entry["url"],
                    bool(entry.get("autoPublish", False)),
                )
                restored += 1
            except (KeyError, TypeError, ScheduleError) as e:
                logger.warning("skipping saved schedule %r: %s", entry, e)
        logger.info("restored %d saved schedules", restored)
        return restored

    def execute_scrape_and_post(self, url: str, auto_publish: bool = False) -> int | None:
        """Run one scrape + publish attempt as a new task; never raises."""
        try:
            task_id = db.create_task(url)
        except Exception:  # noqa: BLE001
            logger.exception("could not create task url=%s", short_url(url))
            return None

        try:
            db.update_task_status(task_id, "processing")
            logger.info("task %s scraping url=%s", task_id, short_url(url))
            document = self.scraper.scrape(url)

            logger.info("task %s publishing title=%r", task_id, document.title)
            result = self.publisher.publish(document, auto_publish)
            if result.success:
                db.update_task_status(task_id, "completed")
                self._record_history(task_id, result, document.title)
                logger.info("task %s completed url=%s exported=%s", task_id, result.url, result.exported)
            else:
                logger.error("task %s publish failed: %s", task_id, result.error)
                self._mark_failed(task_id, result.error or "publish failed")
        except Exception as e:  # noqa: BLE001
            logger.error("task %s failed: %s", task_id, e)
            logger.debug(traceback.format_exc())
            self._mark_failed(task_id, str(e) or e.__class__.__name__)
        return task_id

    def _record_history(self, task_id: int, result: PublishResult, fallback_title: str) -> None:
        # The task is already terminal here, so a failed write cannot demote it.
        try:
            db.create_post_history(
                task_id,
                result.url or "",
                result.remote_id or "",
                result.title or fallback_title,
            )
        except Exception:  # noqa: BLE001
            logger.exception("task %s completed but post history was not recorded url=%s", task_id, result.url)

    def _mark_failed(self, task_id: int, message: str) -> None:
        try:
            db.update_task_status(task_id, "failed", message)
        except Exception:  # noqa: BLE001
            logger.exception("could not mark task %s failed", task_id)
