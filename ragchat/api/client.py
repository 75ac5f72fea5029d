"""HTTP client for the chat backend.

Wraps httpx.AsyncClient. Every non-2xx response and every network failure
is raised as TransportError; the chat stream is handed out as raw byte
chunks for the streaming pipeline to decode.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel

from ragchat.config import ClientConfig
from ragchat.errors import TransportError
from ragchat.models import (
    ChatHistory,
    ChatRequest,
    DocumentListResponse,
    DocumentRecord,
    DocumentUploadResponse,
    HealthStatus,
    SessionInfo,
)

logger = logging.getLogger(__name__)

STREAM_HEADERS = {"Accept": "text/event-stream", "Cache-Control": "no-cache"}

ModelT = TypeVar("ModelT", bound=BaseModel)


class ApiClient:
    """Async client for the session, chat and document endpoints.

    Args:
        base_url: Backend API base URL, e.g. ``http://localhost:8000/api``.
        http_client: Pre-built httpx client (tests pass one with a
            MockTransport). Created and owned by ApiClient when omitted.
        connect_timeout: Seconds to wait for a connection.
        read_timeout: Seconds to wait between reads; None waits forever,
            so a stalled stream hangs until the caller abandons it.
    """

    def __init__(
        self,
        base_url: str,
        http_client: httpx.AsyncClient | None = None,
        connect_timeout: float = 10.0,
        read_timeout: float | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(read_timeout, connect=connect_timeout),
        )

    @classmethod
    def from_config(cls, config: ClientConfig) -> "ApiClient":
        return cls(
            config.api_base_url,
            connect_timeout=config.connect_timeout,
            read_timeout=config.read_timeout,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    async def _request(self, method: str, path: str, action: str, **kwargs: Any) -> httpx.Response:
        """Send a request and map failures to TransportError.

        Args:
            method: HTTP method.
            path: Path below the base URL.
            action: Human readable operation name used in error messages.
        """
        try:
            response = await self._client.request(method, self._url(path), **kwargs)
        except httpx.RequestError as e:
            logger.error(f"{action} failed: {e}")
            raise TransportError(f"Failed to {action}: connection failed ({e})") from e

        if response.is_error:
            logger.error(f"{action} failed with HTTP {response.status_code}")
            raise TransportError(
                f"Failed to {action}: {response.status_code}",
                status_code=response.status_code,
            )
        return response

    def _parse(self, response: httpx.Response, model: type[ModelT], action: str) -> ModelT:
        """Validate a 2xx response body, mapping unreadable bodies to TransportError.

        A proxy or gateway can answer 200 with an HTML page.
        """
        try:
            return model.model_validate(response.json())
        except ValueError as e:
            # Covers json.JSONDecodeError and pydantic.ValidationError
            logger.error(f"{action} returned an unreadable body: {e}")
            raise TransportError(
                f"Failed to {action}: unexpected response body",
                status_code=response.status_code,
            ) from e

    async def create_session(self, metadata: dict[str, Any] | None = None) -> SessionInfo:
        response = await self._request(
            "POST", "/sessions", "create session", json=metadata or {}
        )
        return self._parse(response, SessionInfo, "create session")

    async def get_messages(self, session_id: str) -> ChatHistory:
        """Fetch the stored message history of a session."""
        response = await self._request(
            "GET", f"/sessions/{session_id}/messages", "get messages"
        )
        return self._parse(response, ChatHistory, "get messages")

    @asynccontextmanager
    async def stream_chat(self, request: ChatRequest) -> AsyncIterator[AsyncIterator[bytes]]:
        """Open a chat stream.

        Usage:
            async with client.stream_chat(request) as chunks:
                async for line in iter_lines(chunks):
                    ...

        Leaving the block closes the response, which is how a consumer
        cancels a stream.

        Raises:
            TransportError: On a non-2xx status (before any chunk is
                yielded) or a network failure at any point.
        """
        try:
            async with self._client.stream(
                "POST",
                self._url("/chat/stream"),
                json=request.model_dump(),
                headers=STREAM_HEADERS,
            ) as response:
                if response.is_error:
                    await response.aread()
                    logger.error(f"send message failed with HTTP {response.status_code}")
                    raise TransportError(
                        f"Failed to send message: {response.status_code}",
                        status_code=response.status_code,
                    )
                logger.debug(f"Chat stream opened for session {request.session_id}")
                yield response.aiter_bytes()
        except httpx.RequestError as e:
            logger.error(f"Chat stream failed: {e}")
            raise TransportError(f"Connection failed: {e}") from e

    async def list_documents(self, session_id: str) -> list[DocumentRecord]:
        response = await self._request(
            "GET", f"/documents/sessions/{session_id}", "load documents"
        )
        return self._parse(response, DocumentListResponse, "load documents").documents

    async def upload_document(
        self, filename: str, content: bytes, session_id: str, content_type: str | None = None
    ) -> DocumentUploadResponse:
        """Upload a file into a session's knowledge base (multipart/form-data)."""
        file_field = (filename, content, content_type) if content_type else (filename, content)
        response = await self._request(
            "POST",
            "/documents/upload",
            "upload document",
            files={"file": file_field},
            data={"session_id": session_id},
        )
        return self._parse(response, DocumentUploadResponse, "upload document")

    async def delete_document(self, document_id: str) -> None:
        await self._request("DELETE", f"/documents/{document_id}", "delete document")

    async def check_health(self) -> HealthStatus:
        response = await self._request("GET", "/health", "check health")
        return self._parse(response, HealthStatus, "check health")
