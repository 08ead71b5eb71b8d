"""
API endpoints package.

Contains FastAPI routers for all service endpoints:
- /api/csrf-token, /api/generate - Public link generation
- /api/admin/* - Admin dashboard
- /metrics - Prometheus metrics
- /healthz, /readyz - Health checks
"""
from .admin import router as admin_router
from .healthz import router as healthz_router
from .links import router as links_router
from .metrics import router as metrics_router

__all__ = ["admin_router", "healthz_router", "links_router", "metrics_router"]
