"""
Admin API data models.

Contains Pydantic models for the dashboard: login, analytics, decrypted
request logs and block list management.
"""

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ..core.sanitize import sanitize_json


class LoginRequest(BaseModel):
    """Credentials are checked verbatim; they are not HTML-escaped."""

    username: str = Field(..., min_length=1, max_length=128, description="Admin username")
    password: str = Field(..., min_length=1, max_length=1024, description="Admin password")


class LoginResponse(BaseModel):
    message: str = Field(..., description="Success message")
    csrf_token: str = Field(..., description="Fresh CSRF token for this session")


class BlockIpRequest(BaseModel):
    """Request model for a manual block."""

    ip: str = Field(..., min_length=1, max_length=64, description="IP address to block")
    reason: Optional[str] = Field(
        default=None,
        max_length=500,
        description="Why the IP is blocked (defaults to a manual-block note)"
    )

    @model_validator(mode="before")
    @classmethod
    def sanitize_strings(cls, data: Any) -> Any:
        if isinstance(data, (dict, list)):
            return sanitize_json(data)
        return data

    @field_validator("ip")
    def strip_ip(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("IP address required")
        return v


class UnblockIpRequest(BaseModel):
    ip: str = Field(..., min_length=1, max_length=64, description="IP address to unblock")

    @field_validator("ip")
    def strip_ip(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("IP address required")
        return v


class AnalyticsResponse(BaseModel):
    """Dashboard counters."""

    total_requests: int
    today_requests: int
    week_requests: int
    active_blocks: int


class LogEntryView(BaseModel):
    """One link request with its PII opened, or ``[encrypted]`` if it cannot be."""

    id: int
    phone: str
    message: str
    ip_address: str
    user_agent: Optional[str]
    whatsapp_link: str
    created_at: datetime


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class LogsPage(BaseModel):
    logs: List[LogEntryView]
    pagination: Pagination


class BlockedIpView(BaseModel):
    ip_address: str
    reason: str
    blocked_at: datetime
    expires_at: Optional[datetime]
    is_manual: bool
