"""Conversation endpoints: inbound messages, status, outbox and stop."""

from typing import Annotated

from fastapi import APIRouter, Path, Query, Request, status

from agentbridge.adapters.outbox import OutboundMessage
from agentbridge.api.deps import OrchestratorDep, OutboxDep
from agentbridge.core.exceptions import MessageNotFoundError, TaskNotFoundError
from agentbridge.models.requests import PostMessageRequest
from agentbridge.models.responses import (
    ImageUploadResponse,
    MessageOutcomeResponse,
    OutboundMessageResponse,
    OutboxResponse,
    StopTaskResponse,
)
from agentbridge.models.session import InboundMessage, SessionInfo

router = APIRouter(prefix="/conversations", tags=["Conversations"])

ConversationId = Annotated[str, Path(description="Conversation ID", max_length=200)]

MAX_IMAGE_UPLOAD_BYTES = 10 * 1024 * 1024


@router.post(
    "/{conversation_id}/messages",
    response_model=MessageOutcomeResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def post_message(
    conversation_id: ConversationId,
    request: PostMessageRequest,
    orchestrator: OrchestratorDep,
) -> MessageOutcomeResponse:
    """Deliver a user message; tasks run in the background."""
    msg = InboundMessage(
        conversation_id=conversation_id,
        text=request.text,
        user_id=request.user_id,
        message_id=request.message_id,
        image_key=request.image_key,
    )
    outcome = await orchestrator.handle_message(msg)
    return MessageOutcomeResponse(conversation_id=conversation_id, outcome=outcome.value)


@router.get("/{conversation_id}", response_model=SessionInfo)
async def get_conversation(
    conversation_id: ConversationId,
    orchestrator: OrchestratorDep,
) -> SessionInfo:
    """Get session and task state for a conversation."""
    session = orchestrator.sessions.get_or_create(conversation_id)
    task = orchestrator.tasks.get(conversation_id)
    return SessionInfo(
        conversation_id=conversation_id,
        working_directory=session.working_directory,
        resumption_token=session.resumption_token,
        system_prompt=session.system_prompt,
        model=session.model,
        created_at=session.created_at,
        last_activity=session.last_activity,
        task_state=orchestrator.tasks.state_of(conversation_id).value,
        task_started_at=task.started_at if task else None,
    )


@router.get("/{conversation_id}/outbox", response_model=OutboxResponse)
async def get_outbox(
    conversation_id: ConversationId,
    outbox: OutboxDep,
    since: int = Query(default=0, ge=0, description="Revision cursor from the previous call"),
    limit: int = Query(default=100, ge=1, le=1000),
) -> OutboxResponse:
    """Get messages sent or updated since a cursor."""
    page = outbox.get_since(conversation_id, cursor=since, limit=limit)
    return OutboxResponse(
        messages=[_to_response(m) for m in page.messages],
        total=page.total,
        has_more=page.has_more,
        truncated=page.truncated,
        cursor=page.cursor,
    )


@router.get("/{conversation_id}/outbox/{handle}", response_model=OutboundMessageResponse)
async def get_outbound_message(
    conversation_id: ConversationId,
    handle: str,
    outbox: OutboxDep,
) -> OutboundMessageResponse:
    """Get the current content of one outbound message."""
    message = outbox.get_message(handle)
    if message is None or message.conversation_id != conversation_id:
        raise MessageNotFoundError(handle)
    return _to_response(message)


def _to_response(message: OutboundMessage) -> OutboundMessageResponse:
    return OutboundMessageResponse(
        handle=message.handle,
        sequence=message.sequence,
        kind=message.kind,
        version=message.version,
        content=message.content,
        created_at=message.created_at,
        updated_at=message.updated_at,
    )


@router.post(
    "/{conversation_id}/images/{image_key}",
    response_model=ImageUploadResponse,
    status_code=status.HTTP_201_CREATED,
)
async def upload_image(
    conversation_id: ConversationId,
    image_key: Annotated[str, Path(max_length=200)],
    request: Request,
    outbox: OutboxDep,
) -> ImageUploadResponse:
    """Upload raw image bytes for a later message to reference by key."""
    data = await request.body()
    if not data:
        raise ValueError("Image body is empty")
    if len(data) > MAX_IMAGE_UPLOAD_BYTES:
        raise ValueError(f"Image exceeds {MAX_IMAGE_UPLOAD_BYTES} bytes")
    outbox.put_image(image_key, data)
    return ImageUploadResponse(image_key=image_key, size=len(data))


@router.delete("/{conversation_id}/task", response_model=StopTaskResponse)
async def stop_task(
    conversation_id: ConversationId,
    orchestrator: OrchestratorDep,
) -> StopTaskResponse:
    """Cancel the conversation's running or suspended task."""
    if not orchestrator.stop_task(conversation_id):
        raise TaskNotFoundError(conversation_id)
    return StopTaskResponse(conversation_id=conversation_id, stopped=True)
