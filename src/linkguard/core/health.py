"""
Readiness checks: the record store answers, and the background sweeps
are running when they are configured.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import structlog

from .scheduler import BackgroundSweeps
from .store import Store

logger = structlog.get_logger(__name__)


@dataclass
class HealthCheck:
    name: str
    healthy: bool
    message: str
    details: Dict[str, Any] = field(default_factory=dict)
    checked_at: float = field(default_factory=time.time)

    @property
    def status(self) -> str:
        return "healthy" if self.healthy else "unhealthy"

    def as_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "message": self.message,
            "details": self.details,
            "checked_at": self.checked_at,
        }


@dataclass
class HealthStatus:
    checks: Dict[str, HealthCheck]

    @property
    def is_healthy(self) -> bool:
        return all(check.healthy for check in self.checks.values())

    @property
    def failed_checks(self) -> List[str]:
        return [name for name, check in self.checks.items() if not check.healthy]


class HealthChecker:
    """
    Runs every check off the event loop and collects the results.

    A check that raises is reported as unhealthy rather than failing the
    probe. Sweeps disabled by configuration (``sweeps`` is None) count as
    healthy; configured sweeps that are not running do not.
    """

    def __init__(self, store: Store, sweeps: Optional[BackgroundSweeps] = None):
        self.store = store
        self.sweeps = sweeps

    async def check_all(self) -> HealthStatus:
        probes: Dict[str, Callable[[], HealthCheck]] = {
            "store": self._check_store,
            "sweeps": self._check_sweeps,
        }
        results = await asyncio.gather(
            *(asyncio.to_thread(probe) for probe in probes.values()),
            return_exceptions=True,
        )

        checks: Dict[str, HealthCheck] = {}
        for name, result in zip(probes, results):
            if isinstance(result, BaseException):
                logger.warning("Health check raised", check=name, error=str(result))
                result = HealthCheck(
                    name,
                    healthy=False,
                    message=f"{name} check failed: {result}",
                    details={"error_type": type(result).__name__},
                )
            checks[name] = result
        return HealthStatus(checks=checks)

    def _check_store(self) -> HealthCheck:
        self.store.ping()
        return HealthCheck("store", healthy=True, message="Store is reachable",
                           details={"dialect": self.store.dialect_name})

    def _check_sweeps(self) -> HealthCheck:
        if self.sweeps is None:
            return HealthCheck("sweeps", healthy=True, message="Background sweeps disabled",
                               details={"enabled": False})

        running = self.sweeps.is_healthy()
        return HealthCheck(
            "sweeps",
            healthy=running,
            message="Background sweeps are running" if running else "Background sweeps are not running",
            details=self.sweeps.status(),
        )
