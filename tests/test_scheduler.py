"""Tests for trigger management and the scrape-and-post task lifecycle."""
from __future__ import annotations

import json
import logging
import sqlite3

import pytest
from apscheduler.triggers.cron import CronTrigger

from web2note.errors import ScrapeError, ScheduleError
from web2note.exporter import MarkdownExporter
from web2note.models import PublishResult
from web2note.publisher import Publisher
from web2note.scheduler import (
    SCHEDULES_CONFIG_KEY,
    Scheduler,
    _crontab_day_of_week,
    parse_cron,
)


class StubPublisher:
    def __init__(self, result: PublishResult | None = None, error: Exception | None = None) -> None:
        self.result = result or PublishResult(success=True, url="https://note.com/n/1", remote_id="n1", title="Example post")
        self.error = error
        self.calls: list[bool] = []

    def publish(self, document, auto_publish: bool = False) -> PublishResult:
        self.calls.append(auto_publish)
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def scheduler(temp_db, fake_scraper):
    sched = Scheduler(fake_scraper(), StubPublisher())
    yield sched
    sched.shutdown()


# ---------------------------------------------------------------------------
# Cron parsing
# ---------------------------------------------------------------------------


class TestParseCron:
    def test_five_and_six_field_expressions(self) -> None:
        assert isinstance(parse_cron("*/15 * * * *"), CronTrigger)
        assert isinstance(parse_cron("30 0 9 * * 1-5"), CronTrigger)

    @pytest.mark.parametrize("expression", ["", "* * *", "61 * * * *", "0 25 * * *", "0 9 * * 8", "nonsense here a b c"])
    def test_invalid_expressions(self, expression: str) -> None:
        with pytest.raises(ScheduleError):
            parse_cron(expression)

    def test_crontab_weekdays_start_on_sunday(self) -> None:
        assert _crontab_day_of_week("*") == "*"
        assert _crontab_day_of_week("0") == "sun"
        assert _crontab_day_of_week("7") == "sun"
        assert _crontab_day_of_week("1-5") == "mon,tue,wed,thu,fri"
        assert _crontab_day_of_week("0-6") == "sun,mon,tue,wed,thu,fri,sat"
        assert _crontab_day_of_week("*/2") == "sun,tue,thu,sat"
        assert _crontab_day_of_week("sat,sun") == "sun,sat"


# ---------------------------------------------------------------------------
# Trigger registry
# ---------------------------------------------------------------------------


class TestTriggers:
    def test_rescheduling_same_name_replaces_trigger(self, scheduler) -> None:
        scheduler.schedule("daily", "0 9 * * *", "https://ex.com/old")
        second = scheduler.schedule("daily", "0 10 * * *", "https://ex.com/new", auto_publish=True)

        assert scheduler.get_active_tasks() == ["daily"]
        jobs = scheduler._scheduler.get_jobs()
        assert len(jobs) == 1
        assert jobs[0] is second.handle
        assert tuple(jobs[0].args) == ("https://ex.com/new", True)

    def test_replacement_on_running_scheduler(self, scheduler) -> None:
        scheduler.start()
        scheduler.schedule("hourly", "0 * * * *", "https://ex.com/a")
        scheduler.schedule("hourly", "30 * * * *", "https://ex.com/b")

        jobs = scheduler._scheduler.get_jobs()
        assert [j.id for j in jobs] == ["hourly"]
        assert jobs[0].args[0] == "https://ex.com/b"

    def test_invalid_expression_keeps_existing_trigger(self, scheduler) -> None:
        existing = scheduler.schedule("daily", "0 9 * * *", "https://ex.com/a")

        with pytest.raises(ScheduleError):
            scheduler.schedule("daily", "not a cron", "https://ex.com/b")

        assert scheduler.get_trigger("daily") is existing
        assert len(scheduler._scheduler.get_jobs()) == 1

    def test_stop_unknown_name_is_noop(self, scheduler) -> None:
        scheduler.schedule("a", "0 9 * * *", "https://ex.com/a")
        scheduler.stop("x")
        assert scheduler.get_active_tasks() == ["a"]

    def test_stop_removes_trigger_and_job(self, scheduler, temp_db) -> None:
        scheduler.schedule("a", "0 9 * * *", "https://ex.com/a")
        scheduler.schedule("b", "0 10 * * *", "https://ex.com/b")
        scheduler.stop("a")

        assert scheduler.get_active_tasks() == ["b"]
        assert [j.id for j in scheduler._scheduler.get_jobs()] == ["b"]
        saved = json.loads(temp_db.get_config(SCHEDULES_CONFIG_KEY))
        assert [s["name"] for s in saved] == ["b"]

    def test_stop_all_keeps_persisted_schedules(self, scheduler, temp_db) -> None:
        scheduler.schedule("a", "0 9 * * *", "https://ex.com/a")
        scheduler.schedule("b", "0 10 * * *", "https://ex.com/b", auto_publish=True)
        scheduler.stop_all()

        assert scheduler.get_active_tasks() == []
        assert scheduler._scheduler.get_jobs() == []
        saved = json.loads(temp_db.get_config(SCHEDULES_CONFIG_KEY))
        assert saved == [
            {"name": "a", "cronExpression": "0 9 * * *", "url": "https://ex.com/a", "autoPublish": False},
            {"name": "b", "cronExpression": "0 10 * * *", "url": "https://ex.com/b", "autoPublish": True},
        ]

    def test_restore_skips_invalid_entries(self, temp_db, fake_scraper) -> None:
        temp_db.set_config(
            SCHEDULES_CONFIG_KEY,
            json.dumps(
                [
                    {"name": "good", "cronExpression": "0 8 * * 1", "url": "https://ex.com/g", "autoPublish": True},
                    {"name": "bad", "cronExpression": "every day", "url": "https://ex.com/b"},
                    {"cronExpression": "0 8 * * *"},
                ]
            ),
        )
        sched = Scheduler(fake_scraper(), StubPublisher())
        try:
            assert sched.restore() == 1
            trigger = sched.get_trigger("good")
            assert trigger.auto_publish is True
            assert sched.get_active_tasks() == ["good"]
        finally:
            sched.shutdown()


# ---------------------------------------------------------------------------
# execute_scrape_and_post
# ---------------------------------------------------------------------------


class TestExecuteScrapeAndPost:
    def test_success_completes_task_and_records_history(self, temp_db, fake_scraper) -> None:
        scraper = fake_scraper()
        publisher = StubPublisher()
        sched = Scheduler(scraper, publisher, persist=False)

        task_id = sched.execute_scrape_and_post("https://ex.com/post", auto_publish=True)

        task = temp_db.get_task(task_id)
        assert task.status == "completed"
        assert task.completed_at is not None
        assert scraper.calls == ["https://ex.com/post"]
        assert publisher.calls == [True]
        history = temp_db.get_post_history()
        assert len(history) == 1
        assert (history[0].task_id, history[0].note_url, history[0].note_id, history[0].title) == (
            task_id,
            "https://note.com/n/1",
            "n1",
            "Example post",
        )

    def test_scrape_failure_marks_failed(self, temp_db, fake_scraper) -> None:
        scraper = fake_scraper(error=ScrapeError("Failed to scrape https://ex.com/x: http 500"))
        publisher = StubPublisher()
        sched = Scheduler(scraper, publisher, persist=False)

        task_id = sched.execute_scrape_and_post("https://ex.com/x")

        task = temp_db.get_task(task_id)
        assert task.status == "failed"
        assert task.error_message == "Failed to scrape https://ex.com/x: http 500"
        assert task.completed_at is not None
        assert publisher.calls == []
        assert temp_db.get_post_history() == []

    def test_unsuccessful_publish_marks_failed(self, temp_db, fake_scraper) -> None:
        publisher = StubPublisher(PublishResult(success=False, error="disk full"))
        task_id = Scheduler(fake_scraper(), publisher, persist=False).execute_scrape_and_post("https://ex.com/p")

        task = temp_db.get_task(task_id)
        assert (task.status, task.error_message) == ("failed", "disk full")
        assert temp_db.get_post_history() == []

    def test_unexpected_error_is_contained(self, temp_db, fake_scraper) -> None:
        publisher = StubPublisher(error=RuntimeError("unexpected"))
        task_id = Scheduler(fake_scraper(), publisher, persist=False).execute_scrape_and_post("https://ex.com/p")

        assert temp_db.get_task(task_id).status == "failed"
        assert temp_db.get_task(task_id).error_message == "unexpected"

    def test_export_fallback_counts_as_completed(self, temp_db, tmp_path, fake_scraper, fake_client) -> None:
        publisher = Publisher(fake_client(fail_create=True), MarkdownExporter(tmp_path / "exports"))
        task_id = Scheduler(fake_scraper(), publisher, persist=False).execute_scrape_and_post("https://ex.com/p")

        assert temp_db.get_task(task_id).status == "completed"
        history = temp_db.get_post_history()
        assert history[0].note_url.startswith("/exports/note_")
        assert history[0].note_id.startswith("export_")

    def test_each_run_creates_new_task(self, temp_db, fake_scraper) -> None:
        sched = Scheduler(fake_scraper(error=ScrapeError("down")), StubPublisher(), persist=False)
        first = sched.execute_scrape_and_post("https://ex.com/p")
        second = sched.execute_scrape_and_post("https://ex.com/p")

        assert first != second
        assert {t.status for t in temp_db.get_all_tasks()} == {"failed"}

    def test_history_write_failure_keeps_task_completed(self, temp_db, fake_scraper, monkeypatch, caplog) -> None:
        def fail_history(*args, **kwargs):
            raise sqlite3.OperationalError("database is locked")

        monkeypatch.setattr(temp_db, "create_post_history", fail_history)
        sched = Scheduler(fake_scraper(), StubPublisher(), persist=False)

        with caplog.at_level(logging.ERROR, logger="web2note.scheduler"):
            task_id = sched.execute_scrape_and_post("https://ex.com/p")

        task = temp_db.get_task(task_id)
        assert (task.status, task.error_message) == ("completed", None)
        messages = [r.getMessage() for r in caplog.records]
        assert any("post history was not recorded" in m for m in messages)
        assert not any(m.startswith(f"task {task_id} failed") for m in messages)
