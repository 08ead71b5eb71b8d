"""
Public link generation endpoints.

- GET  /api/csrf-token: issue the session's CSRF token
- POST /api/generate: build a wa.me link and record the sealed request
"""

import structlog
from fastapi import APIRouter, Depends, Request, Response

from ..core.links import build_whatsapp_link
from ..core.rate_limiter import Admission
from ..models.link_request import CsrfTokenResponse, ErrorResponse, GenerateRequest, GenerateResponse
from .dependencies import ensure_session, get_client_ip, guard_link_request

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get(
    "/csrf-token",
    response_model=CsrfTokenResponse,
    summary="Get CSRF token",
    description="""
    Returns the CSRF token bound to the caller's session, creating the
    session (and its ``sid`` cookie) on first use.

    Echo the token in the ``X-CSRF-Token`` header on every state-changing
    request.
    """,
)
def get_csrf_token(request: Request, response: Response) -> CsrfTokenResponse:
    session_id = ensure_session(request, response)
    token = request.app.state.csrf.issue(session_id)
    return CsrfTokenResponse(csrf_token=token)


@router.post(
    "/generate",
    response_model=GenerateResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid phone number or message"},
        403: {"model": ErrorResponse, "description": "IP blocked or CSRF token rejected"},
        429: {"model": ErrorResponse, "description": "Rate limit exceeded"},
        500: {"model": ErrorResponse, "description": "Internal server error"},
    },
    summary="Generate WhatsApp link",
    description="""
    Build a ``https://wa.me/`` click-to-chat link.

    **Protection Pipeline:**
    1. Block list check
    2. Sliding window rate limit (auto-blocks abusive IPs)
    3. CSRF verification

    The phone number and message are sealed before they are stored.
    """,
)
def generate_link(
    payload: GenerateRequest,
    request: Request,
    admission: Admission = Depends(guard_link_request),
) -> GenerateResponse:
    link = build_whatsapp_link(payload.phone, payload.message or "")

    request.app.state.records.record(
        phone=payload.phone,
        message=payload.message or "",
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("user-agent", ""),
        whatsapp_link=link,
    )

    metrics = request.app.state.metrics
    if metrics:
        metrics.record_link_generated()

    return GenerateResponse(link=link)
