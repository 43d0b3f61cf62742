"""Pydantic schemas for API validation."""

from .message import (
    ErrorResponse,
    MessageCreate,
    MessageListResponse,
    MessageResponse,
    MessageSubmitResponse,
)

__all__ = [
    "ErrorResponse",
    "MessageCreate",
    "MessageListResponse",
    "MessageResponse",
    "MessageSubmitResponse",
]
