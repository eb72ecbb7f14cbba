from __future__ import annotations

import threading
from collections.abc import Callable

import allure
import pytest
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from news_harvest.config import SchedulerSettings
from news_harvest.ingestion.errors import CycleAlreadyRunning, FeedUnavailable
from news_harvest.ingestion.models import CycleCounters, RunStatus
from news_harvest.ingestion.pipeline import CycleSummary
from news_harvest.ingestion.scheduler import CYCLE_JOB_ID, CycleScheduler

pytestmark = [
    allure.epic("Harvest Cycle"),
    allure.feature("Scheduling"),
]


def _summary(*, should_stop: Callable[[], bool] | None = None) -> CycleSummary:  # noqa: ARG001
    return CycleSummary(run_id="run-1", status=RunStatus.SUCCEEDED, counters=CycleCounters())


def _scheduler(run_cycle, *, run_on_startup: bool = False) -> CycleScheduler:
    return CycleScheduler(
        run_cycle=run_cycle,
        settings=SchedulerSettings(cron="*/15 * * * *", run_on_startup=run_on_startup),
        scheduler=BackgroundScheduler(timezone="UTC"),
    )


def test_install_job_registers_single_instance_cron_job() -> None:
    cycle_scheduler = _scheduler(_summary)

    cycle_scheduler.install_job()

    job = cycle_scheduler.scheduler.get_job(CYCLE_JOB_ID)
    assert job is not None
    assert isinstance(job.trigger, CronTrigger)
    assert "minute='*/15'" in str(job.trigger)
    assert job.max_instances == 1
    assert job.coalesce is True


def test_install_job_with_run_on_startup_schedules_immediate_run() -> None:
    cycle_scheduler = _scheduler(_summary, run_on_startup=True)

    cycle_scheduler.install_job()

    job = cycle_scheduler.scheduler.get_job(CYCLE_JOB_ID)
    assert job is not None
    assert job.next_run_time is not None


def test_fire_returns_cycle_summary() -> None:
    summary = _summary()
    cycle_scheduler = _scheduler(lambda **_: summary)

    assert cycle_scheduler.fire() is summary


@pytest.mark.parametrize(
    "error",
    [
        FeedUnavailable(message="Feed request failed", code="503"),
        CycleAlreadyRunning("Another ingestion cycle is already running: run-0"),
    ],
)
def test_fire_swallows_feed_outage_and_overlap(error: Exception) -> None:
    def _run_cycle(**_: object) -> CycleSummary:
        raise error

    cycle_scheduler = _scheduler(_run_cycle)

    assert cycle_scheduler.fire() is None
    assert cycle_scheduler.wait_for_idle(0) is True


def test_fire_propagates_unexpected_errors() -> None:
    def _run_cycle(**_: object) -> CycleSummary:
        raise RuntimeError("database is gone")

    cycle_scheduler = _scheduler(_run_cycle)

    with pytest.raises(RuntimeError, match="database is gone"):
        cycle_scheduler.fire()
    assert cycle_scheduler.wait_for_idle(0) is True


def test_fire_after_stop_skips_cycle() -> None:
    calls: list[str] = []

    def _run_cycle(**_: object) -> CycleSummary:
        calls.append("run")
        return _summary()

    cycle_scheduler = _scheduler(_run_cycle)
    cycle_scheduler.stop()

    assert cycle_scheduler.fire() is None
    assert calls == []


def test_stop_during_cycle_signals_cycle_and_waits_for_it() -> None:
    started = threading.Event()
    release = threading.Event()
    stop_seen: list[bool] = []

    def _run_cycle(*, should_stop: Callable[[], bool]) -> CycleSummary:
        stop_seen.append(should_stop())
        started.set()
        assert release.wait(timeout=5)
        stop_seen.append(should_stop())
        return _summary()

    cycle_scheduler = _scheduler(_run_cycle)
    worker = threading.Thread(target=cycle_scheduler.fire)
    worker.start()
    assert started.wait(timeout=5)

    cycle_scheduler._request_stop(signal_name="SIGTERM")

    assert cycle_scheduler.wait_for_idle(0.05) is False
    release.set()
    assert cycle_scheduler.wait_for_idle(5) is True
    worker.join(timeout=5)
    assert stop_seen == [False, True]


def test_run_forever_starts_scheduler_until_stop() -> None:
    cycle_scheduler = _scheduler(_summary)

    cycle_scheduler.run_forever()
    try:
        assert cycle_scheduler.scheduler.running
        assert cycle_scheduler.scheduler.get_job(CYCLE_JOB_ID) is not None
    finally:
        cycle_scheduler._request_stop(signal_name="SIGTERM")

    assert not cycle_scheduler.scheduler.running
