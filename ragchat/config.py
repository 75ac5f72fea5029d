"""Client configuration with environment variable loading.

Pydantic-based configuration for the backend connection, local state
and default generation parameters.
"""

import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from ragchat.models import GenerationOptions

# Load environment variables from .env file
load_dotenv()


def _env_float(name: str, default: float | None) -> float | None:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return float(value)


class ClientConfig(BaseModel):
    """Configuration for the chat client.

    Attributes:
        api_base_url: Base URL of the backend API (no trailing slash).
        storage_path: JSON file holding the persisted session record.
        document_cache_ttl: Seconds a cached document list stays fresh.
        session_hours: Sliding expiry window of the active session.
        max_new_tokens: Default generation length.
        temperature: Default sampling temperature (0.0 - 2.0).
        top_k: Default retrieval breadth when RAG is enabled.
        connect_timeout: Seconds to wait for a connection.
        read_timeout: Seconds to wait between stream reads (None waits forever).
    """

    api_base_url: str = Field(
        default_factory=lambda: os.getenv("RAGCHAT_API_BASE_URL", "http://localhost:8000/api"),
        description="Backend API base URL",
    )
    storage_path: str = Field(
        default_factory=lambda: os.getenv("RAGCHAT_STORAGE_PATH", ".ragchat/storage.json"),
        description="Local storage file for the active session",
    )
    document_cache_ttl: float = Field(
        default_factory=lambda: _env_float("RAGCHAT_DOCUMENT_CACHE_TTL", 300.0),
        gt=0,
        description="Document list cache TTL in seconds",
    )
    session_hours: float = Field(
        default_factory=lambda: _env_float("RAGCHAT_SESSION_HOURS", 24.0),
        gt=0,
        description="Session sliding expiry window in hours",
    )
    max_new_tokens: int = Field(
        default_factory=lambda: int(os.getenv("RAGCHAT_MAX_NEW_TOKENS", "10000")),
        ge=1,
        description="Maximum tokens in generated response",
    )
    temperature: float = Field(
        default_factory=lambda: _env_float("RAGCHAT_TEMPERATURE", 0.7),
        ge=0.0,
        le=2.0,
        description="Sampling temperature for response generation",
    )
    top_k: int = Field(
        default_factory=lambda: int(os.getenv("RAGCHAT_TOP_K", "5")),
        ge=1,
        description="Number of chunks retrieved per RAG query",
    )
    connect_timeout: float = Field(
        default_factory=lambda: _env_float("RAGCHAT_CONNECT_TIMEOUT", 10.0),
        gt=0,
    )
    read_timeout: float | None = Field(
        default_factory=lambda: _env_float("RAGCHAT_READ_TIMEOUT", None),
    )

    @field_validator("api_base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Validate that a base URL is provided and drop trailing slashes."""
        if not v or not v.strip():
            raise ValueError("API base URL required. Set RAGCHAT_API_BASE_URL in .env")
        return v.strip().rstrip("/")

    def generation_defaults(self, use_rag: bool = False) -> GenerationOptions:
        """Build generation options from the configured defaults."""
        return GenerationOptions(
            max_new_tokens=self.max_new_tokens,
            temperature=self.temperature,
            use_rag=use_rag,
            top_k=self.top_k,
        )


def get_client_config() -> ClientConfig:
    """Create client configuration from environment.

    Returns:
        Configured ClientConfig instance.

    Raises:
        ValueError: If the base URL is empty or a numeric variable is invalid.
    """
    return ClientConfig()
