"""
Fixed-interval background tasks.

Each registered task gets a timer thread that fires on the grid
``start, start + interval, start + 2 * interval, ...``.  A tick hands the
action to a worker thread and returns immediately, so a slow action never
shifts the grid.  A tick that fires while the previous run of the same task
is still in flight is skipped.  A failing action is logged and the schedule
carries on.

All timers of a scheduler wait on one ``threading.Event``; setting it (or
calling :meth:`TaskScheduler.stop`) cancels them as a unit.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Dict, List, Optional

from pcr_app.core.telemetry import get_meter

logger = logging.getLogger(__name__)

# OpenTelemetry Metrics
meter = get_meter()
task_run_counter = meter.create_counter(
    "pcr.task.runs",
    description="Number of scheduled task runs",
)
task_failure_counter = meter.create_counter(
    "pcr.task.failures",
    description="Number of scheduled task runs that raised",
)
task_skip_counter = meter.create_counter(
    "pcr.task.skipped",
    description="Number of ticks skipped because the previous run was still in flight",
)


class PeriodicTask:
    def __init__(
        self,
        name: str,
        interval: float,
        action: Callable[[], object],
        stop_event: threading.Event,
        *,
        run_immediately: bool = True,
    ) -> None:
        self.name = name
        self.interval = interval
        self.action = action
        self.run_immediately = run_immediately

        self.runs = 0
        self.failures = 0
        self.skipped = 0
        self.last_error: Optional[BaseException] = None

        self._stop = stop_event
        self._in_flight = threading.Lock()
        self._timer: Optional[threading.Thread] = None
        self._worker: Optional[threading.Thread] = None

    def __repr__(self) -> str:
        return f"<PeriodicTask {self.name!r} every {self.interval}s>"

    @property
    def in_flight(self) -> bool:
        return self._in_flight.locked()

    # ------------------------------------------------------------------
    # Ticks
    # ------------------------------------------------------------------

    def tick(self) -> bool:
        """Fire once.  Returns False if the tick was skipped."""
        if not self._in_flight.acquire(blocking=False):
            self.skipped += 1
            task_skip_counter.add(1, {"task": self.name})
            logger.warning(f"Skipping tick of task '{self.name}': previous run still in flight")
            return False

        self._worker = threading.Thread(target=self._run, name=f"task-{self.name}", daemon=True)
        self._worker.start()
        return True

    def _run(self) -> None:
        started = time.monotonic()
        try:
            self.action()
        except Exception as exc:
            self.failures += 1
            self.last_error = exc
            task_failure_counter.add(1, {"task": self.name})
            logger.critical(
                f"Scheduled task '{self.name}' failed",
                exc_info=True,
                extra={"task": self.name, "error": repr(exc)},
            )
        else:
            logger.debug(f"Task '{self.name}' finished in {time.monotonic() - started:.3f}s")
        finally:
            self.runs += 1
            task_run_counter.add(1, {"task": self.name})
            self._in_flight.release()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the current run (if any) finishes.  True if idle."""
        worker = self._worker
        if worker is not None:
            worker.join(timeout)
        return not self.in_flight

    # ------------------------------------------------------------------
    # Timer
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self._timer is not None:
            return
        self._timer = threading.Thread(target=self._loop, name=f"timer-{self.name}", daemon=True)
        self._timer.start()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._timer is not None and self._timer is not threading.current_thread():
            self._timer.join(timeout)

    def _loop(self) -> None:
        now = time.monotonic()
        next_tick = now if self.run_immediately else now + self.interval

        while not self._stop.wait(max(0.0, next_tick - time.monotonic())):
            self.tick()
            next_tick += self.interval

            # Realign after a stall (suspended host, long GC) instead of
            # firing a burst of catch-up ticks.
            now = time.monotonic()
            if next_tick <= now:
                missed = int((now - next_tick) // self.interval) + 1
                next_tick += missed * self.interval

        logger.debug(f"Timer for task '{self.name}' cancelled")


class TaskScheduler:
    """Registry of periodic tasks sharing one cancellation signal."""

    def __init__(self, stop_event: Optional[threading.Event] = None, name: str = "scheduler") -> None:
        self.name = name
        self._stop = stop_event if stop_event is not None else threading.Event()
        self._tasks: Dict[str, PeriodicTask] = {}
        self._lock = threading.Lock()
        self._started = False

    def __contains__(self, name: str) -> bool:
        return name in self._tasks

    @property
    def tasks(self) -> List[PeriodicTask]:
        return list(self._tasks.values())

    @property
    def running(self) -> bool:
        return self._started and not self._stop.is_set()

    def get(self, name: str) -> Optional[PeriodicTask]:
        return self._tasks.get(name)

    def schedule(
        self,
        name: str,
        interval: float,
        action: Callable[[], object],
        *,
        run_immediately: bool = True,
    ) -> PeriodicTask:
        """Register *action* to run every *interval* seconds under *name*."""
        if not name:
            raise ValueError("Task name is required")
        if interval <= 0:
            raise ValueError(f"Task interval must be positive, got {interval!r}")

        with self._lock:
            if name in self._tasks:
                raise ValueError(f"A task named '{name}' is already scheduled")
            task = PeriodicTask(name, interval, action, self._stop, run_immediately=run_immediately)
            self._tasks[name] = task
            started = self._started

        logger.info(f"Scheduled task '{name}' every {interval}s")
        if started:
            task.start()
        return task

    def start(self) -> None:
        with self._lock:
            if self._started:
                return
            self._started = True
            tasks = list(self._tasks.values())
        for task in tasks:
            task.start()
        logger.info(f"{self.name} started with {len(tasks)} task(s)")

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """Cancel every timer.  Runs already in flight are left to finish."""
        self._stop.set()
        for task in self.tasks:
            task.join(timeout)
        if self._started:
            logger.info(f"{self.name} stopped")
