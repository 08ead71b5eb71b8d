"""
Public link generation models.

- phone: E.164 (``+`` followed by up to 15 digits, no leading zero)
- message: optional, at most 65,536 characters
- String fields are HTML-escaped before validation
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ..core.links import MAX_MESSAGE_LENGTH, is_valid_phone
from ..core.sanitize import sanitize_json


class GenerateRequest(BaseModel):
    """Request body for ``POST /api/generate``."""

    phone: str = Field(description="Destination number in E.164 format, e.g. +1234567890")
    message: Optional[str] = Field(
        default="",
        description=f"Prefilled chat text (max {MAX_MESSAGE_LENGTH} characters)"
    )

    @model_validator(mode="before")
    @classmethod
    def sanitize_strings(cls, data: Any) -> Any:
        if isinstance(data, (dict, list)):
            return sanitize_json(data)
        return data

    @field_validator("phone")
    def validate_phone(cls, v: str) -> str:
        if not is_valid_phone(v):
            raise ValueError("Invalid phone number. Must be in E.164 format (e.g., +1234567890).")
        return v

    @field_validator("message")
    def validate_message(cls, v: Optional[str]) -> str:
        if v is None:
            return ""
        if len(v) > MAX_MESSAGE_LENGTH:
            raise ValueError(f"Message too long. Maximum {MAX_MESSAGE_LENGTH} characters.")
        return v


class GenerateResponse(BaseModel):
    link: str = Field(description="wa.me click-to-chat link")


class CsrfTokenResponse(BaseModel):
    csrf_token: str = Field(description="Token to echo back in the X-CSRF-Token header")


class MessageResponse(BaseModel):
    message: str = Field(description="Human-readable result")


class ErrorResponse(BaseModel):
    """
    Standard error response model.
    """

    error: str = Field(description="Error code")
    message: str = Field(description="Human-readable error message")
    details: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Additional error details"
    )
