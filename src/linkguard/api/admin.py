"""
Admin dashboard API endpoints.

Session-authenticated. Every state-changing route also requires the
session's CSRF token, except login, which runs before a session exists.
"""

import math
from typing import List

import structlog
from fastapi import APIRouter, Depends, Request, Response

from ..core.auth import AdminIdentity, verify_admin_credentials
from ..models import (
    AnalyticsResponse,
    BlockedIpView,
    BlockIpRequest,
    ErrorResponse,
    LoginRequest,
    LoginResponse,
    LogEntryView,
    LogsPage,
    MessageResponse,
    Pagination,
    UnblockIpRequest,
)
from .dependencies import (
    ADMIN_ID_KEY,
    ADMIN_USERNAME_KEY,
    clear_session_cookie,
    get_session_id,
    get_sessions,
    get_settings_from_state,
    require_admin,
    require_csrf,
    set_session_cookie,
)

logger = structlog.get_logger(__name__)

router = APIRouter()

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


@router.post(
    "/login",
    response_model=LoginResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Username and password required"},
        401: {"model": ErrorResponse, "description": "Invalid credentials"},
    },
    summary="Admin login",
    description="""
    Check admin credentials and start a fresh session.

    The previous session, if any, is discarded and a new CSRF token is
    issued with the new one.
    """,
)
def login(credentials: LoginRequest, request: Request, response: Response) -> LoginResponse:
    admin = verify_admin_credentials(request.app.state.store, credentials.username, credentials.password)

    sessions = get_sessions(request)
    old_session_id = get_session_id(request)
    if old_session_id:
        sessions.destroy(old_session_id)

    session_id = sessions.create()
    sessions.save(session_id, {ADMIN_ID_KEY: admin.id, ADMIN_USERNAME_KEY: admin.username})
    token = request.app.state.csrf.rotate(session_id)
    set_session_cookie(response, get_settings_from_state(request), session_id)

    return LoginResponse(message="Login successful", csrf_token=token)


@router.post(
    "/logout",
    response_model=MessageResponse,
    dependencies=[Depends(require_csrf)],
    summary="Admin logout",
)
def logout(request: Request, response: Response) -> MessageResponse:
    session_id = get_session_id(request)
    if session_id:
        get_sessions(request).destroy(session_id)
    clear_session_cookie(response, get_settings_from_state(request))
    logger.info("Admin logged out")
    return MessageResponse(message="Logged out")


@router.get(
    "/analytics",
    response_model=AnalyticsResponse,
    summary="Dashboard counters",
)
def analytics(request: Request, admin: AdminIdentity = Depends(require_admin)) -> AnalyticsResponse:
    stats = request.app.state.records.stats()
    active_blocks = request.app.state.blocklist.count_active()

    metrics = request.app.state.metrics
    if metrics:
        metrics.set_active_blocks(active_blocks)

    return AnalyticsResponse(
        total_requests=stats.total_requests,
        today_requests=stats.today_requests,
        week_requests=stats.week_requests,
        active_blocks=active_blocks,
    )


@router.get(
    "/logs",
    response_model=LogsPage,
    summary="Decrypted request log",
    description="""
    Newest-first page of link requests with the phone number and message
    opened. Records that cannot be opened (anonymized or corrupted) show
    ``[encrypted]`` instead.

    ``page`` is at least 1; ``limit`` is clamped to 1..100 (default 20).
    """,
)
def list_logs(
    request: Request,
    page: str = "1",
    limit: str = str(DEFAULT_PAGE_SIZE),
    admin: AdminIdentity = Depends(require_admin),
) -> LogsPage:
    page_number = max(1, _parse_int(page, 1))
    page_size = min(MAX_PAGE_SIZE, max(1, _parse_int(limit, DEFAULT_PAGE_SIZE)))

    views, total = request.app.state.records.page(page_number, page_size)

    return LogsPage(
        logs=[LogEntryView(**view.__dict__) for view in views],
        pagination=Pagination(
            page=page_number,
            limit=page_size,
            total=total,
            total_pages=math.ceil(total / page_size),
        ),
    )


@router.get(
    "/blocked-ips",
    response_model=List[BlockedIpView],
    summary="Active IP blocks",
)
def blocked_ips(request: Request, admin: AdminIdentity = Depends(require_admin)) -> List[BlockedIpView]:
    entries = request.app.state.blocklist.list_active()
    return [
        BlockedIpView(
            ip_address=entry.ip,
            reason=entry.reason,
            blocked_at=entry.blocked_at,
            expires_at=entry.expires_at,
            is_manual=entry.is_manual,
        )
        for entry in entries
    ]


@router.post(
    "/block-ip",
    response_model=MessageResponse,
    dependencies=[Depends(require_csrf)],
    summary="Block an IP",
    description="Adds a permanent manual block, replacing any existing entry for the IP.",
)
def block_ip(
    payload: BlockIpRequest,
    request: Request,
    admin: AdminIdentity = Depends(require_admin),
) -> MessageResponse:
    request.app.state.blocklist.block_manual(payload.ip, payload.reason)
    logger.info("IP blocked by admin", ip=payload.ip, admin=admin.username)
    return MessageResponse(message=f"IP {payload.ip} blocked")


@router.post(
    "/unblock-ip",
    response_model=MessageResponse,
    dependencies=[Depends(require_csrf)],
    summary="Unblock an IP",
)
def unblock_ip(
    payload: UnblockIpRequest,
    request: Request,
    admin: AdminIdentity = Depends(require_admin),
) -> MessageResponse:
    request.app.state.blocklist.unblock(payload.ip)
    logger.info("IP unblocked by admin", ip=payload.ip, admin=admin.username)
    return MessageResponse(message=f"IP {payload.ip} unblocked")


@router.delete(
    "/logs/purge",
    response_model=MessageResponse,
    dependencies=[Depends(require_csrf)],
    summary="Anonymize old records",
    description="Runs the anonymization sweep now instead of waiting for the schedule.",
)
def purge_logs(request: Request, admin: AdminIdentity = Depends(require_admin)) -> MessageResponse:
    retention_days = get_settings_from_state(request).retention.retention_days
    changes = request.app.state.anonymizer.sweep(retention_days)

    metrics = request.app.state.metrics
    if metrics:
        metrics.record_sweep("anonymization", changes)

    logger.info("Manual anonymization completed", records_anonymized=changes, admin=admin.username)
    return MessageResponse(message=f"Anonymized {changes} records older than {retention_days} days")


def _parse_int(value: str, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default
