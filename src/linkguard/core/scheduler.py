"""
Background sweeps.

Each sweep is a ``PeriodicTask``: an asyncio loop with its own stop event
that runs a synchronous job in a worker thread. Stopping never cancels a
job mid-batch; it waits for the current tick to finish.
"""

import asyncio
from typing import Any, Callable, Dict, List, Optional

import structlog

from .anonymizer import AnonymizationScheduler
from .metrics import MetricsCollector
from .rate_limiter import SlidingWindowLimiter

logger = structlog.get_logger(__name__)


class PeriodicTask:
    """Run ``func`` after ``initial_delay`` seconds, then every ``interval`` seconds."""

    def __init__(
        self,
        name: str,
        interval: float,
        func: Callable[[], Any],
        initial_delay: float = 0.0,
    ) -> None:
        self.name = name
        self.interval = interval
        self.func = func
        self.initial_delay = initial_delay
        self.runs = 0
        self.failures = 0
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name=f"sweep:{self.name}")
        logger.info(
            "Periodic task started",
            task=self.name,
            interval_seconds=self.interval,
            initial_delay_seconds=self.initial_delay,
        )

    async def stop(self) -> None:
        """Signal the loop and wait for the in-flight tick, if any."""
        if self._task is None:
            return
        self._stop_event.set()
        await self._task
        self._task = None
        logger.info("Periodic task stopped", task=self.name, runs=self.runs, failures=self.failures)

    async def run_once(self) -> Any:
        """Run one tick now. Errors are logged, never raised."""
        try:
            result = await asyncio.to_thread(self.func)
        except Exception as e:
            self.failures += 1
            logger.error("Periodic sweep failed", task=self.name, error=str(e), exc_info=True)
            return None
        finally:
            self.runs += 1
        return result

    async def _run(self) -> None:
        if await self._wait(self.initial_delay):
            return
        while True:
            await self.run_once()
            if await self._wait(self.interval):
                return

    async def _wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; True if stop was requested meanwhile."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True


class BackgroundSweeps:
    """
    The two independent maintenance loops: rate limit cleanup and
    anonymization. They share nothing but the store.
    """

    def __init__(
        self,
        limiter: SlidingWindowLimiter,
        anonymizer: AnonymizationScheduler,
        retention_days: int = 30,
        cleanup_interval_seconds: float = 300,
        cleanup_initial_delay_seconds: float = 2.0,
        anonymize_interval_hours: float = 24,
        anonymize_initial_delay_seconds: float = 3.0,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        self.limiter = limiter
        self.anonymizer = anonymizer
        self.retention_days = retention_days
        self.metrics = metrics

        self.cleanup_task = PeriodicTask(
            "rate_limit_cleanup",
            cleanup_interval_seconds,
            self.run_cleanup,
            initial_delay=cleanup_initial_delay_seconds,
        )
        self.anonymize_task = PeriodicTask(
            "anonymization",
            anonymize_interval_hours * 3600,
            self.run_anonymization,
            initial_delay=anonymize_initial_delay_seconds,
        )

    @property
    def tasks(self) -> List[PeriodicTask]:
        return [self.cleanup_task, self.anonymize_task]

    def run_cleanup(self) -> int:
        samples_deleted, blocks_deleted = self.limiter.cleanup()
        if self.metrics:
            self.metrics.record_sweep("rate_limit_cleanup", samples_deleted + blocks_deleted)
            self.metrics.set_active_blocks(self.limiter.blocklist.count_active())
        return samples_deleted + blocks_deleted

    def run_anonymization(self) -> int:
        anonymized = self.anonymizer.sweep(self.retention_days)
        if self.metrics:
            self.metrics.record_sweep("anonymization", anonymized)
        return anonymized

    async def start(self) -> None:
        for task in self.tasks:
            task.start()

    async def stop(self) -> None:
        for task in self.tasks:
            await task.stop()

    def is_healthy(self) -> bool:
        return all(task.running for task in self.tasks)

    def status(self) -> Dict[str, Any]:
        return {
            task.name: {"running": task.running, "runs": task.runs, "failures": task.failures}
            for task in self.tasks
        }
