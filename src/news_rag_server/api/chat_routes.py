"""
Chat Routes

Conversational endpoints used by the web client:

1. ``POST /api/chat``: store the user message, generate a RAG answer, store
   and return the assistant message with its citations.
2. ``GET /api/chat/stream``: same flow delivered as server-sent events
   (``status``, ``chunk``, ``complete``, ``error``).
3. ``GET /api/chat/history/{session_id}``: paginated history, counted back
   from the newest message.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Annotated, Any, AsyncIterator, Dict

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import StreamingResponse

from .dependencies import get_chat_service, get_session_store
from .models import ChatRequest, ChatResponse, HistoryResponse, MAX_MESSAGE_LENGTH
from ..config import settings
from ..core.logging_setup import short_id
from ..rag.chat_service import ChatService
from ..sessions.models import Message
from ..sessions.store import SessionStore

logger = logging.getLogger("news_rag.api.chat")

router = APIRouter(prefix="/api/chat", tags=["chat"])


def _sse(event: str, data: Dict[str, Any]) -> str:
    return f"event: {event}\ndata: {json.dumps(data, default=str)}\n\n"


# ---------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------

@router.post(
    "",
    response_model=ChatResponse,
    summary="Ask a question about the news",
    status_code=status.HTTP_200_OK,
)
async def chat(
    req: ChatRequest,
    sessions: Annotated[SessionStore, Depends(get_session_store)],
    chat_service: Annotated[ChatService, Depends(get_chat_service)],
) -> ChatResponse:
    logger.info(
        "Processing chat message (session=%s, length=%d)",
        short_id(req.session_id),
        len(req.message),
    )

    await sessions.add_message(
        req.session_id,
        Message(role="user", content=req.message),
    )

    answer = await chat_service.generate_response(req.session_id, req.message)

    assistant_message = Message(
        role="assistant",
        content=answer.content,
        sources=answer.sources,
    )
    await sessions.add_message(req.session_id, assistant_message)

    return ChatResponse(message=assistant_message, session_id=req.session_id)


@router.get(
    "/stream",
    summary="Ask a question and stream the answer as server-sent events",
)
async def chat_stream(
    sessions: Annotated[SessionStore, Depends(get_session_store)],
    chat_service: Annotated[ChatService, Depends(get_chat_service)],
    session_id: Annotated[str, Query(alias="sessionId", min_length=1)],
    message: Annotated[str, Query(min_length=1, max_length=MAX_MESSAGE_LENGTH)],
) -> StreamingResponse:
    logger.info(
        "Starting streaming chat (session=%s, length=%d)",
        short_id(session_id),
        len(message),
    )

    async def events() -> AsyncIterator[str]:
        yield _sse("status", {"status": "processing", "message": "Processing your message..."})

        message_id = str(uuid.uuid4())
        full_content = ""

        try:
            await sessions.add_message(session_id, Message(role="user", content=message))

            answer = await chat_service.generate_streaming_response(session_id, message)
            async for text in answer.chunks:
                full_content += text
                yield _sse(
                    "chunk",
                    {"messageId": message_id, "content": full_content, "isChunk": True},
                )

            await sessions.add_message(
                session_id,
                Message(
                    id=message_id,
                    role="assistant",
                    content=full_content,
                    sources=answer.sources,
                ),
            )

            yield _sse(
                "complete",
                {
                    "messageId": message_id,
                    "content": full_content,
                    "sources": [s.model_dump(by_alias=True) for s in answer.sources],
                    "done": True,
                },
            )
        except Exception as exc:
            logger.exception("Streaming chat error (session=%s)", short_id(session_id))
            payload: Dict[str, Any] = {"error": "Failed to process streaming message"}
            if not settings.is_production:
                payload["details"] = str(exc)
            yield _sse("error", payload)

    return StreamingResponse(
        events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


# ---------------------------------------------------------------------
# History
# ---------------------------------------------------------------------

@router.get(
    "/history/{session_id}",
    response_model=HistoryResponse,
    summary="Get chat history, newest page first",
)
async def history(
    session_id: str,
    sessions: Annotated[SessionStore, Depends(get_session_store)],
    limit: Annotated[int, Query(ge=1, le=100)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> HistoryResponse:
    messages = await sessions.get_messages(session_id, limit=limit, offset=offset)
    return HistoryResponse(messages=messages, session_id=session_id, total=len(messages))
