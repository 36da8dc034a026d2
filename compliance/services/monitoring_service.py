"""
Monitoring Scheduler.

Drives a compute/apply job on a fixed interval while running.

States:
=======
STOPPED (initial) -> RUNNING (start) -> STOPPED (stop)

Guarantees:
- At most one job in flight; a tick that arrives while the previous one is
  still computing is skipped, not queued
- stop() cancels the next scheduled tick; a computation already in flight
  finishes but its result is discarded (generation check)
- start() while running and stop() while stopped are no-ops
- Background ticks run on timer threads; with manage_db_connections the
  thread's Django DB connection is checked before and closed after each tick
"""

import logging
import threading
from enum import Enum
from typing import Any, Callable, Optional

from django.db import close_old_connections, connection

logger = logging.getLogger(__name__)


class SchedulerState(Enum):
    STOPPED = 'stopped'
    RUNNING = 'running'


class MonitoringScheduler:
    """
    Cancellable fixed-interval scheduler built on ``threading.Timer``.

    ``compute`` runs outside any lock and may be slow; ``apply`` receives its
    result and runs under the scheduler lock, only if the scheduler has not
    been stopped or restarted in the meantime.
    """

    def __init__(
        self,
        compute: Callable[[], Any],
        apply: Callable[[Any], None],
        interval_seconds: float = 30.0,
        name: str = 'compliance-monitor',
        timer_factory: Callable[..., threading.Timer] = threading.Timer,
        manage_db_connections: bool = False
    ):
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")
        self.compute = compute
        self.apply = apply
        self.interval_seconds = interval_seconds
        self.name = name
        self._timer_factory = timer_factory
        self.manage_db_connections = manage_db_connections

        self._lock = threading.Lock()
        self._in_flight = threading.Lock()
        self._state = SchedulerState.STOPPED
        self._generation = 0
        self._timer: Optional[threading.Timer] = None

        self.ticks_run = 0
        self.ticks_skipped = 0
        self.results_discarded = 0

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state == SchedulerState.RUNNING

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> bool:
        """Start ticking. Returns False if already running."""
        with self._lock:
            if self._state == SchedulerState.RUNNING:
                return False
            self._state = SchedulerState.RUNNING
            self._generation += 1
            self._schedule(self._generation)
        logger.info(f"{self.name} started (every {self.interval_seconds:g}s)")
        return True

    def stop(self) -> bool:
        """Stop ticking and cancel the next tick. Returns False if already stopped."""
        with self._lock:
            if self._state == SchedulerState.STOPPED:
                return False
            self._state = SchedulerState.STOPPED
            self._generation += 1
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        logger.info(f"{self.name} stopped")
        return True

    # ------------------------------------------------------------------
    # Ticks
    # ------------------------------------------------------------------

    def tick(self) -> bool:
        """
        Run one compute/apply cycle now.

        Returns:
            True if the result was applied; False if the tick was skipped
            because another one was in flight, or its result went stale
        """
        if not self._in_flight.acquire(blocking=False):
            self.ticks_skipped += 1
            logger.debug(f"{self.name} tick skipped: previous evaluation still in flight")
            return False

        try:
            with self._lock:
                generation = self._generation

            result = self.compute()

            with self._lock:
                if generation != self._generation:
                    self.results_discarded += 1
                    logger.info(f"{self.name} discarded stale result after stop")
                    return False
                self.apply(result)
                self.ticks_run += 1
            return True
        finally:
            self._in_flight.release()

    def run_exclusive(self, job: Callable[[], Any]) -> Any:
        """
        Run an out-of-band job once no tick is in flight.

        Unlike a tick this waits instead of skipping, and its result is
        never discarded. Ticks arriving meanwhile are skipped.
        """
        with self._in_flight:
            return job()

    def _schedule(self, generation: int) -> None:
        timer = self._timer_factory(self.interval_seconds, self._run, args=(generation,))
        timer.daemon = True
        timer.name = f"{self.name}-timer"
        self._timer = timer
        timer.start()

    def _run(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation or self._state != SchedulerState.RUNNING:
                return
            # Fixed rate: the next tick is scheduled before this one computes
            self._schedule(generation)

        if self.manage_db_connections:
            close_old_connections()
        try:
            self.tick()
        except Exception as e:
            logger.exception(f"{self.name} cycle failed: {e}")
        finally:
            if self.manage_db_connections:
                connection.close()
