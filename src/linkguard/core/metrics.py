"""
Prometheus metrics collection.

In-memory counters on a per-app registry; Prometheus handles storage.
"""

import time
from typing import Optional

import structlog
from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, Info

from .. import __version__

logger = structlog.get_logger(__name__)


class MetricsCollector:
    """
    Centralized metrics collection for LinkGuard.

    Every collector owns its registry, so several apps (one per test) can
    live in one process without duplicate-registration errors.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        self.registry = registry or CollectorRegistry()

        # Service info
        self.service_info = Info(
            "linkguard_service",
            "LinkGuard service information",
            registry=self.registry,
        )
        self.service_info.info({
            "version": __version__,
            "service": "linkguard",
        })

        # Request metrics
        self.requests_total = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "endpoint", "status_code"],
            registry=self.registry,
        )

        self.request_duration = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
            registry=self.registry,
        )

        # Admission metrics
        self.admissions_total = Counter(
            "rate_limit_admissions_total",
            "Admission decisions by outcome",
            ["outcome"],
            registry=self.registry,
        )

        self.csrf_rejections_total = Counter(
            "csrf_rejections_total",
            "Requests rejected for a missing or invalid CSRF token",
            registry=self.registry,
        )

        self.active_blocks = Gauge(
            "blocked_ips_active",
            "Currently active IP blocks",
            registry=self.registry,
        )

        # Record metrics
        self.links_generated_total = Counter(
            "links_generated_total",
            "WhatsApp links generated",
            registry=self.registry,
        )

        self.decrypt_failures_total = Counter(
            "record_decrypt_failures_total",
            "Stored records that could not be opened",
            registry=self.registry,
        )

        # Sweep metrics
        self.sweep_runs_total = Counter(
            "sweep_runs_total",
            "Background sweep runs",
            ["sweep"],
            registry=self.registry,
        )

        self.sweep_rows_total = Counter(
            "sweep_rows_affected_total",
            "Rows deleted or rewritten by background sweeps",
            ["sweep"],
            registry=self.registry,
        )

        self.uptime_seconds = Gauge(
            "uptime_seconds",
            "Service uptime in seconds",
            registry=self.registry,
        )

        self._start_time = time.time()

    def record_request(
        self,
        method: str,
        endpoint: str,
        status_code: int,
        duration_seconds: float
    ) -> None:
        """Record HTTP request metrics."""
        self.requests_total.labels(
            method=method,
            endpoint=endpoint,
            status_code=str(status_code)
        ).inc()

        self.request_duration.labels(
            method=method,
            endpoint=endpoint
        ).observe(duration_seconds)

    def record_admission(self, outcome: str) -> None:
        """Outcome is ``allowed``, ``blocked`` or ``rate_limited``."""
        self.admissions_total.labels(outcome=outcome).inc()

    def record_csrf_rejection(self) -> None:
        self.csrf_rejections_total.inc()

    def record_link_generated(self) -> None:
        self.links_generated_total.inc()

    def record_decrypt_failure(self) -> None:
        self.decrypt_failures_total.inc()

    def record_sweep(self, sweep: str, rows_affected: int) -> None:
        self.sweep_runs_total.labels(sweep=sweep).inc()
        if rows_affected:
            self.sweep_rows_total.labels(sweep=sweep).inc(rows_affected)

    def set_active_blocks(self, count: int) -> None:
        self.active_blocks.set(count)

    def update_system_metrics(self) -> None:
        self.uptime_seconds.set(time.time() - self._start_time)
