#!/usr/bin/env python3
"""
Refresh Scheduler

Cooperative, single-threaded scheduler for the refresh jobs. Fire times are
round multiples of each job's interval on the epoch clock (a 5-minute job
fires at :00, :05, :10, ...), so restarts and slow runs never accumulate
drift and separate processes land on the same schedule.

Jobs never overlap: a fire that arrives while another job is still running
(for example a manual trigger from another thread) is skipped.
"""

import logging
import math
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


def next_fire_time(now: float, interval: float) -> float:
    """
    Next round multiple of interval strictly after now (epoch seconds).

    Args:
        now: Current epoch time in seconds
        interval: Interval in seconds

    Returns:
        Epoch seconds of the next fire
    """
    if interval <= 0:
        raise ValueError(f"interval must be positive, got {interval}")
    return (math.floor(now / interval) + 1) * interval


@dataclass
class ScheduledJob:
    name: str
    interval: float
    func: Callable[[datetime], bool]
    next_run: float = 0.0
    failures: int = 0


class RefreshScheduler:
    """Runs ScheduledJobs on aligned boundaries until stopped."""

    def __init__(self, jobs: List[ScheduledJob], failure_backoff_intervals: int = 1,
                 clock: Callable[[], float] = time.time):
        """
        Args:
            jobs: Jobs to run; the first one is also run once at start-up
            failure_backoff_intervals: Extra intervals to wait after a failed run
            clock: Epoch-seconds clock
        """
        self.jobs = jobs
        self.failure_backoff_intervals = failure_backoff_intervals
        self.clock = clock
        self._running = threading.Lock()
        self._stop = threading.Event()

    def schedule(self, now: Optional[float] = None) -> None:
        now = self.clock() if now is None else now
        for job in self.jobs:
            job.next_run = next_fire_time(now, job.interval)

    def fire(self, job: ScheduledJob, now: Optional[float] = None) -> Optional[bool]:
        """
        Run one job unless another one is in flight.

        Returns:
            The job's result, or None when the fire was skipped
        """
        now = self.clock() if now is None else now
        if not self._running.acquire(blocking=False):
            logger.debug(f"Skipping {job.name}: another job is still running")
            return None

        try:
            ok = bool(job.func(datetime.fromtimestamp(now, tz=timezone.utc)))
        except Exception:
            logger.exception(f"Job {job.name} raised an unexpected error")
            ok = False
        finally:
            self._running.release()

        job.next_run = next_fire_time(now, job.interval)
        if ok:
            job.failures = 0
        else:
            job.failures += 1
            job.next_run += job.interval * self.failure_backoff_intervals
            logger.warning(f"⚠️ {job.name} failed; next attempt at "
                           f"{datetime.fromtimestamp(job.next_run, tz=timezone.utc):%H:%M:%S} UTC")
        return ok

    def run_pending(self, now: Optional[float] = None) -> List[str]:
        """Run every job that is due, earliest first. Returns the names that ran."""
        now = self.clock() if now is None else now
        ran = []
        for job in sorted(self.jobs, key=lambda j: j.next_run):
            if job.next_run <= now and self.fire(job, now) is not None:
                ran.append(job.name)
        return ran

    def trigger(self, name: str) -> Optional[bool]:
        """Run the named job right now (no-op if something is in flight)."""
        for job in self.jobs:
            if job.name == name:
                return self.fire(job)
        raise KeyError(f"Unknown job: {name}")

    def run_forever(self, run_immediately: bool = True) -> None:
        """Block and run jobs until stop() is called."""
        self.schedule()
        if run_immediately and self.jobs:
            self.fire(self.jobs[0])

        logger.info(f"⏱️ Scheduler started with {len(self.jobs)} job(s)")
        while not self._stop.is_set():
            self.run_pending()
            wake = min(job.next_run for job in self.jobs) if self.jobs else self.clock() + 60
            self._stop.wait(max(wake - self.clock(), 0))
        logger.info("Scheduler stopped")

    def stop(self) -> None:
        self._stop.set()
