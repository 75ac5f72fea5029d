"""Pydantic models shared by the client components.

Models:
    - Message, MessageRole, Citation: chat messages and retrieval context
    - SessionInfo, StoredSession, ChatHistory: session records
    - ChatRequest, GenerationOptions: stream request payload
    - DocumentRecord, DocumentListResponse, DocumentUploadResponse, CacheEntry:
      document metadata and the per-session cache snapshot
    - HealthStatus: backend health report
"""

from ragchat.models.schemas import (
    CacheEntry,
    ChatHistory,
    ChatRequest,
    Citation,
    DocumentListResponse,
    DocumentRecord,
    DocumentUploadResponse,
    GenerationOptions,
    HealthStatus,
    Message,
    MessageRole,
    SessionInfo,
    StoredSession,
    average_score,
    best_score,
)

__all__ = [
    "CacheEntry",
    "ChatHistory",
    "ChatRequest",
    "Citation",
    "DocumentListResponse",
    "DocumentRecord",
    "DocumentUploadResponse",
    "GenerationOptions",
    "HealthStatus",
    "Message",
    "MessageRole",
    "SessionInfo",
    "StoredSession",
    "average_score",
    "best_score",
]
