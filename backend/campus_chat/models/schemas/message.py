"""Message schemas for API validation."""

from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field


class MessageCreate(BaseModel):
    """Schema for submitting a message."""
    sender_id: int
    recipient_id: int
    body: str


class MessageResponse(BaseModel):
    """Schema for a persisted message."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    sender_id: int
    recipient_id: int
    body: str
    created_at: datetime


class MessageSubmitResponse(BaseModel):
    """Schema for the result of a message submission."""
    message: MessageResponse
    delivered: int = Field(..., description="Live connections that received the push")


class MessageListResponse(BaseModel):
    """Schema for message history."""
    messages: list[MessageResponse]
    total: int


class ErrorResponse(BaseModel):
    """Structured error body."""
    kind: str
    message: str
