"""
Request-scoped dependencies shared by the routers.

Components live on ``app.state`` (built in the lifespan handler); these
helpers pull them out, resolve the client IP and manage the session
cookie.
"""

from typing import Optional

import structlog
from fastapi import Request, Response

from ..config import Settings
from ..core.auth import AdminIdentity
from ..core.csrf import CSRF_HEADER
from ..core.exceptions import AuthenticationError
from ..core.pipeline import RequestPipeline
from ..core.rate_limiter import Admission
from ..core.sessions import SessionStore

logger = structlog.get_logger(__name__)

ADMIN_ID_KEY = "admin_id"
ADMIN_USERNAME_KEY = "admin_username"


def get_settings_from_state(request: Request) -> Settings:
    return request.app.state.settings


def get_pipeline(request: Request) -> RequestPipeline:
    return request.app.state.pipeline


def get_sessions(request: Request) -> SessionStore:
    return request.app.state.sessions


def get_client_ip(request: Request) -> str:
    """
    Resolve the caller's IP.

    Behind a trusted proxy the left-most ``X-Forwarded-For`` hop is the
    client; otherwise the socket peer is.
    """
    settings = get_settings_from_state(request)
    if settings.security.trust_proxy:
        forwarded = request.headers.get("x-forwarded-for", "")
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop

    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def get_session_id(request: Request) -> Optional[str]:
    """Session id from the cookie, only if the session is still alive."""
    settings = get_settings_from_state(request)
    session_id = request.cookies.get(settings.security.session_cookie_name)
    if not session_id:
        return None
    if get_sessions(request).get(session_id) is None:
        return None
    return session_id


def set_session_cookie(response: Response, settings: Settings, session_id: str) -> None:
    response.set_cookie(
        key=settings.security.session_cookie_name,
        value=session_id,
        max_age=settings.security.session_ttl_seconds,
        httponly=True,
        samesite="strict",
        secure=settings.security.cookie_secure or settings.is_production,
    )


def clear_session_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(
        key=settings.security.session_cookie_name,
        httponly=True,
        samesite="strict",
        secure=settings.security.cookie_secure or settings.is_production,
    )


def ensure_session(request: Request, response: Response) -> str:
    """Return the live session id, creating a session and cookie if needed."""
    session_id = get_session_id(request)
    if session_id is not None:
        return session_id

    session_id = get_sessions(request).create()
    set_session_cookie(response, get_settings_from_state(request), session_id)
    return session_id


def require_csrf(request: Request) -> None:
    """Reject state-changing requests that do not echo the session's CSRF token."""
    get_pipeline(request).verify_csrf(
        request.method,
        request.url.path,
        get_session_id(request),
        request.headers.get(CSRF_HEADER),
    )


def require_admin(request: Request) -> AdminIdentity:
    session_id = get_session_id(request)
    data = get_sessions(request).get(session_id) if session_id else None
    if not data or ADMIN_ID_KEY not in data:
        raise AuthenticationError()
    return AdminIdentity(id=data[ADMIN_ID_KEY], username=data.get(ADMIN_USERNAME_KEY, ""))


def guard_link_request(request: Request, response: Response) -> Admission:
    """
    Full protection pipeline for link generation: block list, rate limit,
    then CSRF. Allowed requests get quota headers.
    """
    admission = get_pipeline(request).guard(
        get_client_ip(request),
        request.method,
        request.url.path,
        get_session_id(request),
        request.headers.get(CSRF_HEADER),
    )

    response.headers["X-RateLimit-Limit"] = str(admission.limit)
    if admission.remaining is not None:
        response.headers["X-RateLimit-Remaining"] = str(admission.remaining)
    return admission
