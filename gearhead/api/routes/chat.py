"""
Chat Routes for Gearhead Assistant

API endpoints for the chat UI: the streaming endpoint plus thread and
message management.
"""

from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from gearhead.api.dependencies import (
    get_chat_service,
    get_chat_stream_service,
    get_current_user_id,
    get_optional_user_id,
    require_user,
)
from gearhead.domain.chat import ChatMessage, ThreadDetail, ThreadSummary
from gearhead.infrastructure.exceptions import ValidationError
from gearhead.infrastructure.services.chat_service import ChatService
from gearhead.infrastructure.services.chat_stream_service import (
    ChatStreamService,
    StreamRequest,
    parse_uuid,
)


router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================

class StreamChatRequest(BaseModel):
    """Body of POST /chat/stream. Required fields are checked in the handler."""
    message: Optional[str] = None
    assistant_id: Optional[str] = Field(None, alias="assistantId")
    thread_id: Optional[str] = None
    filename: Optional[str] = None
    hidden_message: bool = Field(False, alias="hiddenMessage")
    context: Any = None

    model_config = ConfigDict(populate_by_name=True)


class ChatInitResponse(BaseModel):
    threads: List[ThreadSummary]
    messages: List[ChatMessage]


class WelcomeRequest(BaseModel):
    assistant_id: UUID = Field(..., alias="assistantId")

    model_config = ConfigDict(populate_by_name=True)


class WelcomeResponse(BaseModel):
    thread: ThreadDetail
    message: ChatMessage


class MessageListResponse(BaseModel):
    messages: List[ChatMessage]


class CreateMessageRequest(BaseModel):
    """Request to add a user message to a thread."""
    content: str = Field(..., min_length=1)
    thread_id: UUID
    metadata: Optional[Dict[str, Any]] = None


class RenameThreadRequest(BaseModel):
    title: Optional[str] = None


class RenameThreadResponse(BaseModel):
    id: UUID
    title: str
    updated_at: Any


class SummarizeRequest(BaseModel):
    text: Optional[str] = None


class SummarizeResponse(BaseModel):
    summary: str


class DraftResponseRequest(BaseModel):
    message: str = Field(..., min_length=1)
    context: Any = None
    assistant_id: UUID = Field(..., alias="assistantId")

    model_config = ConfigDict(populate_by_name=True)


class DraftResponseResponse(BaseModel):
    draft: str


# ============================================================================
# Streaming
# ============================================================================

@router.post("/chat/stream")
async def stream_chat(
    body: StreamChatRequest,
    user_id: Optional[str] = Depends(get_optional_user_id),
    stream_service: ChatStreamService = Depends(get_chat_stream_service),
):
    """
    Stream an assistant reply as chunked plain text.

    X-Thread-ID is set when this request created the thread.
    """
    if not body.message or not body.assistant_id:
        raise ValidationError("Message and assistantId are required")
    assistant_id = parse_uuid(body.assistant_id, "assistantId")
    thread_id = parse_uuid(body.thread_id, "thread_id")
    file_id = parse_uuid(body.filename, "filename")

    user_id = require_user(user_id)

    start = await stream_service.start(
        user_id,
        StreamRequest(
            message=body.message,
            assistant_id=assistant_id,
            thread_id=thread_id,
            file_id=file_id,
            hidden_message=body.hidden_message,
            context=body.context,
        ),
    )

    return StreamingResponse(
        start.writer.iter_bytes(),
        media_type="text/plain; charset=utf-8",
        headers=start.headers,
    )


# ============================================================================
# Thread Endpoints
# ============================================================================

@router.get("/chat/init", response_model=ChatInitResponse)
async def init_chat(
    assistant_id: UUID = Query(..., alias="assistantId"),
    user_id: str = Depends(get_current_user_id),
    chat_service: ChatService = Depends(get_chat_service),
):
    """
    Threads for an assistant, newest first, plus the latest thread's messages.
    """
    threads, messages = await chat_service.load_chat(user_id, str(assistant_id))
    return ChatInitResponse(
        threads=[ThreadSummary.model_validate(t) for t in threads],
        messages=[ChatMessage.model_validate(m) for m in messages],
    )


@router.post("/chat/welcome", response_model=WelcomeResponse, status_code=201)
async def create_welcome_thread(
    request: WelcomeRequest,
    user_id: str = Depends(get_current_user_id),
    chat_service: ChatService = Depends(get_chat_service),
):
    thread, message = await chat_service.create_welcome_thread(user_id, str(request.assistant_id))
    return WelcomeResponse(
        thread=ThreadDetail.model_validate(thread),
        message=ChatMessage.model_validate(message),
    )


@router.patch("/chat/threads/{thread_id}", response_model=RenameThreadResponse)
async def rename_thread(
    thread_id: UUID,
    request: RenameThreadRequest,
    user_id: str = Depends(get_current_user_id),
    chat_service: ChatService = Depends(get_chat_service),
):
    thread = await chat_service.rename_thread(user_id, str(thread_id), request.title)
    return RenameThreadResponse(id=thread.id, title=thread.title, updated_at=thread.updated_at)


# ============================================================================
# Message Endpoints
# ============================================================================

@router.get("/chat/messages", response_model=MessageListResponse)
async def get_messages(
    thread_id: UUID,
    user_id: str = Depends(get_current_user_id),
    chat_service: ChatService = Depends(get_chat_service),
):
    """
    Get all messages in a thread in creation order.
    """
    messages = await chat_service.get_messages(user_id, str(thread_id))
    return MessageListResponse(messages=[ChatMessage.model_validate(m) for m in messages])


@router.post("/chat/messages", response_model=ChatMessage, status_code=201)
async def add_message(
    request: CreateMessageRequest,
    user_id: str = Depends(get_current_user_id),
    chat_service: ChatService = Depends(get_chat_service),
):
    message = await chat_service.add_user_message(
        user_id=user_id,
        thread_id=str(request.thread_id),
        content=request.content,
        metadata=request.metadata,
    )
    return ChatMessage.model_validate(message)


# ============================================================================
# AI helpers
# ============================================================================

@router.post("/chat/summarize", response_model=SummarizeResponse)
async def summarize(
    request: SummarizeRequest,
    user_id: str = Depends(get_current_user_id),
    chat_service: ChatService = Depends(get_chat_service),
):
    """Short title for a chat, generated from its opening text."""
    summary = await chat_service.summarize_title(request.text or "")
    return SummarizeResponse(summary=summary)


@router.post("/chat/draft-response", response_model=DraftResponseResponse)
async def draft_response(
    request: DraftResponseRequest,
    user_id: str = Depends(get_current_user_id),
    chat_service: ChatService = Depends(get_chat_service),
):
    draft = await chat_service.draft_response(str(request.assistant_id), request.message, request.context)
    return DraftResponseResponse(draft=draft)
