from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


def utc_now_iso() -> str:
    return datetime.now(UTC).isoformat()


class MessageRole(str, Enum):
    """Speaker of a chat message."""

    USER = "user"
    ASSISTANT = "assistant"


class Citation(BaseModel):
    """A retrieved document chunk that backed an answer.

    Accepts both the current field names and the legacy short ones
    (title, content/text, score).

    Attributes:
        document_id: Identifier of the source document.
        document_title: Display title of the source document.
        chunk_content: Text of the retrieved chunk.
        similarity_score: Retrieval similarity, clamped to [0, 1].
        chunk_id: Optional chunk identifier.
        chunk_index: Optional position of the chunk within the document.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    document_id: str = ""
    document_title: str = Field(
        default="",
        validation_alias=AliasChoices("document_title", "title"),
    )
    chunk_content: str = Field(
        default="",
        validation_alias=AliasChoices("chunk_content", "content", "text"),
    )
    similarity_score: float = Field(
        default=0.0,
        validation_alias=AliasChoices("similarity_score", "score"),
    )
    chunk_id: str | None = None
    chunk_index: int | None = None

    @field_validator("document_id", mode="before")
    @classmethod
    def coerce_document_id(cls, v: Any) -> str:
        """Backends send numeric ids for some deployments."""
        if v is None:
            return ""
        return str(v)

    @field_validator("similarity_score")
    @classmethod
    def clamp_score(cls, v: float) -> float:
        return min(1.0, max(0.0, v))


class Message(BaseModel):
    """A single chat message.

    Assistant messages are created empty and filled in by a
    ConversationAccumulator while the answer streams in.

    Attributes:
        message_id: Client or server assigned identifier.
        session_id: Session the message belongs to.
        role: user or assistant.
        content: Message text.
        created_at: ISO timestamp.
        citations: Retrieval context attached to an assistant answer.
        error: Server-declared error that ended the answer, if any.
        token_usage: Usage figures reported by the backend.
    """

    message_id: str
    session_id: str
    role: MessageRole
    content: str = ""
    created_at: str = Field(default_factory=utc_now_iso)
    citations: list[Citation] = Field(
        default_factory=list,
        validation_alias=AliasChoices("citations", "rag_context"),
    )
    error: str | None = None
    token_usage: dict[str, Any] | None = None


class SessionInfo(BaseModel):
    """Session record returned by the backend on creation."""

    session_id: str
    created_at: str | None = None
    last_accessed: str | None = None
    metadata: dict[str, Any] | None = None


class StoredSession(BaseModel):
    """The active session as persisted in local storage.

    Serialized with camelCase keys and epoch milliseconds.
    """

    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(..., alias="sessionId", min_length=1)
    timestamp: int
    expires_at: int = Field(..., alias="expiresAt")


class ChatHistory(BaseModel):
    """Message history of a session as returned by the backend."""

    session_id: str
    messages: list[Message] = Field(default_factory=list)
    total_count: int = 0


class GenerationOptions(BaseModel):
    """Caller-tunable generation parameters for one chat request.

    Attributes:
        max_new_tokens: Upper bound on generated tokens.
        temperature: Sampling temperature.
        do_sample: Whether the backend samples or decodes greedily.
        use_rag: Whether retrieval over session documents is enabled.
        top_k: Number of chunks to retrieve when use_rag is set.
    """

    max_new_tokens: int = Field(default=10000, ge=1)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    do_sample: bool = True
    use_rag: bool = False
    top_k: int = Field(default=5, ge=1)


class ChatRequest(GenerationOptions):
    """JSON body that opens a chat stream."""

    session_id: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)

    @field_validator("message", mode="before")
    @classmethod
    def strip_message(cls, v: str) -> str:
        """Strip whitespace from message before validation."""
        if isinstance(v, str):
            return v.strip()
        return v


class DocumentRecord(BaseModel):
    """Metadata of a document uploaded to a session."""

    document_id: str
    title: str
    file_type: str = ""
    created_at: str | None = None
    metadata: dict[str, Any] | None = None


class DocumentListResponse(BaseModel):
    session_id: str
    documents: list[DocumentRecord] = Field(default_factory=list)
    total_count: int = 0


class DocumentUploadResponse(BaseModel):
    """Backend acknowledgement of an upload.

    Attributes:
        document_id: Identifier assigned to the new document.
        filename: Name the file was stored under.
        chunks_count: Number of chunks indexed for retrieval.
        embedding_ids: Identifiers of the stored embeddings.
    """

    document_id: str
    filename: str
    chunks_count: int = Field(default=0, ge=0)
    embedding_ids: list[str] = Field(default_factory=list)


class HealthStatus(BaseModel):
    status: str
    timestamp: str | None = None
    llm_server_available: bool = False
    database_connected: bool = False


class CacheEntry(BaseModel):
    """Snapshot of one session's document list.

    Attributes:
        session_id: Session the list belongs to.
        documents: Documents in server order.
        fetched_at: Clock reading when the list was fetched.
    """

    session_id: str
    documents: list[DocumentRecord] = Field(default_factory=list)
    fetched_at: float

    def age(self, now: float) -> float:
        return now - self.fetched_at

    def is_expired(self, now: float, ttl: float) -> bool:
        return self.age(now) >= ttl


def average_score(citations: list[Citation]) -> float | None:
    """Mean similarity of a citation set, None when empty."""
    if not citations:
        return None
    return sum(c.similarity_score for c in citations) / len(citations)


def best_score(citations: list[Citation]) -> float | None:
    if not citations:
        return None
    return max(c.similarity_score for c in citations)
