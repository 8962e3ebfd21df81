from datetime import datetime, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, Response

from .dependencies import get_chat_service, get_embedder, get_session_store, get_vector_index
from .models import DetailedHealthResponse
from ..db.vector_store import VectorIndex
from ..embeddings.embedder import Embedder
from ..rag.chat_service import ChatService
from ..sessions.store import SessionStore

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
def health():
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


@router.get("/detailed", response_model=DetailedHealthResponse)
async def detailed_health(
    response: Response,
    sessions: Annotated[SessionStore, Depends(get_session_store)],
    vector_index: Annotated[VectorIndex, Depends(get_vector_index)],
    embedder: Annotated[Embedder, Depends(get_embedder)],
    chat_service: Annotated[ChatService, Depends(get_chat_service)],
) -> DetailedHealthResponse:
    services = {
        "sessions": await sessions.health_check(),
        "vectorIndex": await vector_index.health_check(),
        "embeddings": await embedder.health_check(),
        "llm": await chat_service.health_check(),
    }

    statuses = {s["status"] for s in services.values()}
    if "unhealthy" in statuses:
        overall = "unhealthy"
        response.status_code = 503
    elif "degraded" in statuses:
        overall = "degraded"
    else:
        overall = "healthy"

    return DetailedHealthResponse(
        status=overall,
        timestamp=datetime.now(timezone.utc),
        services=services,
    )
