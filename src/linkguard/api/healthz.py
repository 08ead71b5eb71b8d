"""
Health check endpoints.

- /healthz: liveness, 200 whenever the process can answer
- /readyz: readiness, 503 until the store answers and configured sweeps run
"""

from datetime import datetime, timezone
from typing import Any, Dict

import structlog
from fastapi import APIRouter, Request, Response, status

from .. import __version__

logger = structlog.get_logger(__name__)

router = APIRouter()


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/healthz", summary="Liveness probe")
async def liveness_check() -> Dict[str, Any]:
    return {
        "status": "alive",
        "service": "linkguard",
        "version": __version__,
        "timestamp": _timestamp(),
    }


@router.get(
    "/readyz",
    summary="Readiness probe",
    description="""
    Returns 200 only if:
    - the record store answers a trivial query
    - the background sweeps are running (or disabled by configuration)

    Returns 503 Service Unavailable otherwise, listing the failed checks.
    """,
)
async def readiness_check(request: Request, response: Response) -> Dict[str, Any]:
    health_checker = getattr(request.app.state, "health_checker", None)
    if health_checker is None:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "not_ready", "reason": "starting", "timestamp": _timestamp()}

    health = await health_checker.check_all()
    body: Dict[str, Any] = {
        "status": "ready" if health.is_healthy else "not_ready",
        "timestamp": _timestamp(),
        "checks": {name: check.as_dict() for name, check in health.checks.items()},
    }

    if not health.is_healthy:
        logger.warning("Readiness check failed", failed_checks=health.failed_checks)
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        body["failed_checks"] = health.failed_checks
    return body
