# This module triggers the monitor jobs inside the long-lived service process.
# Watermarks are in-memory, so jobs must run in this process rather than in per-run workers.
# Every job is single-flight: a trigger that fires while the previous run is still going is skipped, never queued.
# Shutdown sets the shared cancellation event, drops queued runs and waits for running jobs to finish.

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta, tzinfo

LOGGER = logging.getLogger(__name__)

JobFunc = Callable[[threading.Event], object]


@dataclass(frozen=True)
class DailyTrigger:
    """Fires at fixed wall-clock times every day in `tz`."""

    times: tuple[time, ...]
    tz: tzinfo

    def next_fire(self, after: datetime) -> datetime:
        if not self.times:
            raise ValueError("DailyTrigger needs at least one time of day")
        local_after = after.astimezone(self.tz)
        for day_offset in range(2):
            day = local_after.date() + timedelta(days=day_offset)
            for at in sorted(self.times):
                candidate = datetime.combine(day, at, tzinfo=self.tz)
                if candidate > local_after:
                    return candidate
        raise AssertionError("unreachable: a later time always exists within two days")


@dataclass(frozen=True)
class IntervalTrigger:
    minutes: int

    def next_fire(self, after: datetime) -> datetime:
        return after + timedelta(minutes=self.minutes)


Trigger = DailyTrigger | IntervalTrigger


@dataclass
class ScheduledJob:
    name: str
    trigger: Trigger
    func: JobFunc
    next_run: datetime
    running: threading.Lock = field(default_factory=threading.Lock)
    last_status: str | None = None


def _aware_now() -> datetime:
    return datetime.now().astimezone()


class JobScheduler:
    def __init__(
        self,
        *,
        max_workers: int = 4,
        clock: Callable[[], datetime] = _aware_now,
    ) -> None:
        self._clock = clock
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="monitor-job")
        self._jobs: dict[str, ScheduledJob] = {}
        self.stop_event = threading.Event()

    @property
    def jobs(self) -> dict[str, ScheduledJob]:
        return dict(self._jobs)

    def add_job(self, name: str, trigger: Trigger, func: JobFunc, *, run_immediately: bool = False) -> ScheduledJob:
        if name in self._jobs:
            raise ValueError(f"Job already registered: {name}")
        now = self._clock()
        job = ScheduledJob(
            name=name,
            trigger=trigger,
            func=func,
            next_run=now if run_immediately else trigger.next_fire(now),
        )
        self._jobs[name] = job
        LOGGER.info("job registered name=%s next_run=%s", name, job.next_run.isoformat())
        return job

    def run_pending(self) -> list[Future[None]]:
        """Submit every due job; returns the futures of the runs actually started."""

        now = self._clock()
        started: list[Future[None]] = []
        for job in self._jobs.values():
            if job.next_run > now:
                continue
            job.next_run = job.trigger.next_fire(now)
            future = self.trigger_now(job.name)
            if future is not None:
                started.append(future)
        return started

    def trigger_now(self, name: str) -> Future[None] | None:
        job = self._jobs[name]
        if self.stop_event.is_set():
            return None
        if not job.running.acquire(blocking=False):
            job.last_status = "skipped_overlap"
            LOGGER.warning("job skipped name=%s reason=previous run still active", name)
            return None
        try:
            future = self._executor.submit(self._run_job, job)
        except RuntimeError:
            job.running.release()
            raise
        future.add_done_callback(lambda done: self._release_if_cancelled(job, done))
        return future

    @staticmethod
    def _release_if_cancelled(job: ScheduledJob, future: Future[None]) -> None:
        if future.cancelled():
            job.last_status = "cancelled"
            job.running.release()

    def _run_job(self, job: ScheduledJob) -> None:
        if self.stop_event.is_set():
            job.last_status = "cancelled"
            job.running.release()
            LOGGER.info("job dropped name=%s reason=shutdown requested before start", job.name)
            return
        started_at = self._clock()
        LOGGER.info("job started name=%s at=%s", job.name, started_at.isoformat())
        try:
            job.func(self.stop_event)
            job.last_status = "succeeded"
        except Exception:
            job.last_status = "failed"
            LOGGER.exception("job failed name=%s", job.name)
        finally:
            job.running.release()
            LOGGER.info("job finished name=%s status=%s next_run=%s", job.name, job.last_status, job.next_run.isoformat())

    def run_forever(self, *, poll_seconds: float = 1.0) -> None:
        LOGGER.info("scheduler started jobs=%s", ",".join(sorted(self._jobs)))
        while not self.stop_event.wait(poll_seconds):
            self.run_pending()
        LOGGER.info("scheduler loop stopped")

    def shutdown(self, *, wait: bool = True) -> None:
        self.stop_event.set()
        self._executor.shutdown(wait=wait, cancel_futures=True)
        LOGGER.info("scheduler shut down wait=%s", wait)
