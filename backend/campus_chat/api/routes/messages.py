"""Message API routes."""

from fastapi import APIRouter, Depends, status

from campus_chat.api.dependencies import get_ingest_service
from campus_chat.models.schemas import (
    ErrorResponse,
    MessageCreate,
    MessageListResponse,
    MessageResponse,
    MessageSubmitResponse,
)
from campus_chat.services import MessageIngestService

router = APIRouter(prefix="/messages", tags=["messages"])

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


@router.post(
    "",
    response_model=MessageSubmitResponse,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
)
async def submit_message(
    message_data: MessageCreate,
    ingest: MessageIngestService = Depends(get_ingest_service),
):
    """
    Store a message and push it live to the recipient.

    The response is sent once the message is stored; `delivered` is the
    number of the recipient's open connections that received it.
    """
    result = await ingest.submit(
        message_data.sender_id,
        message_data.recipient_id,
        message_data.body,
    )

    return MessageSubmitResponse(
        message=MessageResponse.model_validate(result.record),
        delivered=result.delivered,
    )


@router.get(
    "/conversation/{user_a}/{user_b}",
    response_model=MessageListResponse,
    responses=ERROR_RESPONSES,
)
async def get_conversation(
    user_a: int,
    user_b: int,
    ingest: MessageIngestService = Depends(get_ingest_service),
):
    """List messages exchanged between two users, oldest first."""
    records = await ingest.conversation(user_a, user_b)
    return MessageListResponse(
        messages=[MessageResponse.model_validate(r) for r in records],
        total=len(records),
    )


@router.get(
    "/{conversation_key}",
    response_model=MessageListResponse,
    responses=ERROR_RESPONSES,
)
async def get_history(
    conversation_key: str,
    ingest: MessageIngestService = Depends(get_ingest_service),
):
    """List messages addressed to a room (`user_2`) or user id, oldest first."""
    records = await ingest.history(conversation_key)
    return MessageListResponse(
        messages=[MessageResponse.model_validate(r) for r in records],
        total=len(records),
    )
