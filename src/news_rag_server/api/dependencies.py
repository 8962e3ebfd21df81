"""
Route dependencies.

Every long-lived component is built once in the application lifespan and kept
on ``app.state``; routes receive them through these providers so tests can
swap them with ``app.dependency_overrides``.
"""

from fastapi import Request

from ..db.vector_store import VectorIndex
from ..embeddings.embedder import Embedder
from ..rag.chat_service import ChatService
from ..sessions.store import SessionStore


def get_session_store(request: Request) -> SessionStore:
    return request.app.state.session_store


def get_chat_service(request: Request) -> ChatService:
    return request.app.state.chat_service


def get_vector_index(request: Request) -> VectorIndex:
    return request.app.state.vector_index


def get_embedder(request: Request) -> Embedder:
    return request.app.state.embedder
