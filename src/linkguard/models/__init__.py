"""
Pydantic data models package.

Contains the validation models for:
- Public link generation requests and responses
- Admin dashboard requests and responses
"""

from .admin import (
    AnalyticsResponse,
    BlockedIpView,
    BlockIpRequest,
    LoginRequest,
    LoginResponse,
    LogEntryView,
    LogsPage,
    Pagination,
    UnblockIpRequest,
)
from .link_request import (
    CsrfTokenResponse,
    ErrorResponse,
    GenerateRequest,
    GenerateResponse,
    MessageResponse,
)

__all__ = [
    # Link generation models
    "GenerateRequest",
    "GenerateResponse",
    "CsrfTokenResponse",
    "MessageResponse",
    "ErrorResponse",

    # Admin models
    "LoginRequest",
    "LoginResponse",
    "BlockIpRequest",
    "UnblockIpRequest",
    "AnalyticsResponse",
    "LogEntryView",
    "LogsPage",
    "Pagination",
    "BlockedIpView",
]
