"""Periodic cycle trigger built on APScheduler."""

from __future__ import annotations

import logging
import signal
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime

from apscheduler.schedulers.base import BaseScheduler
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from news_harvest.config import SchedulerSettings
from news_harvest.ingestion.errors import CycleAlreadyRunning, FeedUnavailable
from news_harvest.ingestion.pipeline import CycleSummary

CYCLE_JOB_ID = "ingestion_cycle"
logger = logging.getLogger(__name__)


class CycleScheduler:
    """Fires the ingestion cycle on a crontab schedule, one firing at a time."""

    def __init__(
        self,
        *,
        run_cycle: Callable[..., CycleSummary],
        settings: SchedulerSettings,
        scheduler: BaseScheduler | None = None,
    ) -> None:
        self._run_cycle = run_cycle
        self.settings = settings
        self.scheduler = scheduler or BlockingScheduler(timezone=settings.timezone)
        self._stop_requested = False
        self._idle = threading.Event()
        self._idle.set()

    def install_job(self) -> None:
        trigger = CronTrigger.from_crontab(self.settings.cron, timezone=self.settings.timezone)
        options: dict[str, object] = {}
        if self.settings.run_on_startup:
            options["next_run_time"] = datetime.now(tz=UTC)
        self.scheduler.add_job(
            self.fire,
            trigger=trigger,
            id=CYCLE_JOB_ID,
            name="news harvest cycle",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
            **options,
        )
        logger.info(
            "Scheduled ingestion cycle with cron %r (run_on_startup=%s)",
            self.settings.cron,
            self.settings.run_on_startup,
        )

    def fire(self) -> CycleSummary | None:
        """Run one cycle; feed outages and overlapping cycles end the firing quietly."""

        if self._stop_requested:
            logger.info("Stop requested, skipping scheduled cycle")
            return None
        self._idle.clear()
        try:
            return self._run_cycle(should_stop=self.stop_requested)
        except FeedUnavailable as exc:
            logger.warning("Feed unavailable, cycle aborted: %s", exc)
        except CycleAlreadyRunning as exc:
            logger.warning("Skipping firing: %s", exc)
        finally:
            self._idle.set()
        return None

    def run_forever(self) -> None:
        """Block until SIGINT/SIGTERM, then let an in-flight cycle wind down."""

        self.install_job()
        with self._signal_handlers():
            self.scheduler.start()
        self.wait_for_idle(self.settings.graceful_shutdown_seconds)

    def stop_requested(self) -> bool:
        return self._stop_requested

    def wait_for_idle(self, timeout: float) -> bool:
        """Wait for the running firing, if any; False when it outlived the timeout."""

        if self._idle.wait(timeout=timeout):
            return True
        logger.warning("Cycle still running after %.0fs grace period", timeout)
        return False

    def stop(self) -> None:
        self._stop_requested = True
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)

    def _request_stop(self, *, signal_name: str) -> None:
        if self._stop_requested:
            return
        logger.info("Received %s, stopping scheduler", signal_name)
        self.stop()

    @contextmanager
    def _signal_handlers(self) -> Iterator[None]:
        original_sigint = signal.getsignal(signal.SIGINT)
        original_sigterm = signal.getsignal(signal.SIGTERM)

        def _handler(signum: int, _: object | None) -> None:
            try:
                name = signal.Signals(signum).name
            except ValueError:
                name = str(signum)
            self._request_stop(signal_name=name)

        installed = True
        try:
            signal.signal(signal.SIGINT, _handler)
            signal.signal(signal.SIGTERM, _handler)
        except ValueError:
            # Only the main thread may install handlers.
            installed = False
        try:
            yield
        finally:
            if installed:
                signal.signal(signal.SIGINT, original_sigint)
                signal.signal(signal.SIGTERM, original_sigterm)
