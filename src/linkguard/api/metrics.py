"""
Prometheus scrape endpoint.

Serves the collector's own registry, so only LinkGuard series appear.
"""

import structlog
from fastapi import APIRouter, Request, Response, status
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="""
    **Key Metrics:**
    - rate_limit_admissions_total{outcome} - Admission decisions
    - csrf_rejections_total - Rejected state-changing requests
    - blocked_ips_active - Active IP blocks
    - links_generated_total - Links generated
    - record_decrypt_failures_total - Records shown as placeholders
    - sweep_runs_total{sweep}, sweep_rows_affected_total{sweep} - Background sweeps
    """,
)
async def get_metrics(request: Request) -> Response:
    collector = getattr(request.app.state, "metrics", None)
    if collector is None:
        return Response(
            content="# metrics collector not initialized\n",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            media_type=CONTENT_TYPE_LATEST,
        )

    collector.update_system_metrics()
    payload = generate_latest(collector.registry)
    logger.debug("Metrics scraped", size_bytes=len(payload))
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)
