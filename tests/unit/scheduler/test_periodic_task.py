"""
Tests for PeriodicTask and BackgroundSweeps.
"""

import asyncio
import threading
from typing import List

import pytest

from src.linkguard.core.anonymizer import AnonymizationScheduler
from src.linkguard.core.metrics import MetricsCollector
from src.linkguard.core.rate_limiter import SlidingWindowLimiter
from src.linkguard.core.scheduler import BackgroundSweeps, PeriodicTask
from src.linkguard.core.store import Store


async def _wait_for(condition, timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not condition():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


class TestPeriodicTask:
    """Loop lifecycle and error isolation."""

    @pytest.mark.asyncio
    async def test_runs_after_initial_delay_then_repeats(self) -> None:
        calls: List[int] = []
        task = PeriodicTask("counter", interval=0.02, func=lambda: calls.append(1), initial_delay=0.01)

        task.start()
        await _wait_for(lambda: len(calls) >= 3)
        await task.stop()

        assert task.runs >= 3
        assert not task.running

    @pytest.mark.asyncio
    async def test_failing_tick_does_not_kill_loop(self) -> None:
        calls: List[int] = []

        def flaky() -> None:
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("database is locked")

        task = PeriodicTask("flaky", interval=0.01, func=flaky)
        task.start()
        await _wait_for(lambda: len(calls) >= 3)
        await task.stop()

        assert task.failures == 1
        assert task.runs >= 3

    @pytest.mark.asyncio
    async def test_stop_during_initial_delay_never_runs(self) -> None:
        calls: List[int] = []
        task = PeriodicTask("late", interval=60, func=lambda: calls.append(1), initial_delay=60)

        task.start()
        assert task.running
        await task.stop()

        assert calls == []
        assert not task.running

    @pytest.mark.asyncio
    async def test_stop_waits_for_in_flight_tick(self) -> None:
        started = threading.Event()
        release = threading.Event()
        finished: List[bool] = []

        def slow() -> None:
            started.set()
            release.wait(timeout=2)
            finished.append(True)

        task = PeriodicTask("slow", interval=60, func=slow)
        task.start()
        await _wait_for(started.is_set)

        stopper = asyncio.create_task(task.stop())
        await asyncio.sleep(0.05)
        assert not stopper.done()

        release.set()
        await stopper
        assert finished == [True]

    @pytest.mark.asyncio
    async def test_run_once_returns_result(self) -> None:
        task = PeriodicTask("once", interval=60, func=lambda: 7)
        assert await task.run_once() == 7
        assert task.runs == 1

    @pytest.mark.asyncio
    async def test_stop_without_start_is_noop(self) -> None:
        task = PeriodicTask("idle", interval=60, func=lambda: None)
        await task.stop()
        assert not task.running


class TestBackgroundSweeps:
    """The two maintenance loops."""

    @pytest.mark.asyncio
    async def test_start_stop_and_health(self, limiter: SlidingWindowLimiter, store: Store, clock) -> None:
        sweeps = BackgroundSweeps(
            limiter,
            AnonymizationScheduler(store, clock=clock),
            cleanup_interval_seconds=60,
            cleanup_initial_delay_seconds=0,
            anonymize_interval_hours=24,
            anonymize_initial_delay_seconds=0,
            metrics=MetricsCollector(),
        )
        assert not sweeps.is_healthy()

        await sweeps.start()
        assert sweeps.is_healthy()
        await _wait_for(lambda: all(task.runs >= 1 for task in sweeps.tasks))

        status = sweeps.status()
        assert status["rate_limit_cleanup"]["failures"] == 0
        assert status["anonymization"]["failures"] == 0

        await sweeps.stop()
        assert not sweeps.is_healthy()

    def test_sweeps_callable_synchronously(self, limiter: SlidingWindowLimiter, store: Store, clock) -> None:
        metrics = MetricsCollector()
        sweeps = BackgroundSweeps(limiter, AnonymizationScheduler(store, clock=clock), metrics=metrics)

        limiter.admit("198.51.100.7")
        clock.advance(minutes=10)

        assert sweeps.run_cleanup() == 1
        assert sweeps.run_anonymization() == 0
        assert metrics.registry.get_sample_value(
            "sweep_runs_total", {"sweep": "rate_limit_cleanup"}
        ) == 1.0
