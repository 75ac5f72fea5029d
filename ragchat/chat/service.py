"""Chat orchestration: session, request, stream pipeline and history.

ChatService is the single client instance per UI context. It owns the
message list of the active session and allows one streaming answer at a
time.
"""

import logging
import time
import uuid
from collections.abc import Callable
from datetime import timedelta

from ragchat.api import ApiClient
from ragchat.config import ClientConfig
from ragchat.errors import StreamBusyError, TransportError
from ragchat.models import ChatRequest, GenerationOptions, Message, MessageRole
from ragchat.session import JsonFileStorage, SessionLifecycleManager, Storage
from ragchat.session.lifecycle import SESSION_DURATION
from ragchat.streaming import ConversationAccumulator, interpret_stream, iter_lines

logger = logging.getLogger(__name__)


def _message_id(role: MessageRole) -> str:
    return f"{role.value}_{uuid.uuid4().hex[:12]}"


class ChatService:
    """Sends messages and folds streamed answers into the message history.

    Args:
        api: Backend client.
        storage: Local storage for the active session record.
        session_duration: Sliding expiry window of a session.
        clock: Epoch time source for session expiry.
    """

    def __init__(
        self,
        api: ApiClient,
        storage: Storage,
        session_duration: timedelta = SESSION_DURATION,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._api = api
        self.messages: list[Message] = []
        self._streaming = False
        self.sessions = SessionLifecycleManager(
            api,
            storage,
            on_reset=self.clear_messages,
            duration=session_duration,
            clock=clock,
        )

    @classmethod
    def from_config(cls, config: ClientConfig, api: ApiClient | None = None) -> "ChatService":
        """Build a service that persists its session in config.storage_path."""
        return cls(
            api or ApiClient.from_config(config),
            JsonFileStorage(config.storage_path),
            session_duration=timedelta(hours=config.session_hours),
        )

    @property
    def is_streaming(self) -> bool:
        return self._streaming

    def clear_messages(self) -> None:
        self.messages.clear()

    async def new_chat(self) -> str:
        """Start a new backend session, discarding the current history."""
        return await self.sessions.create()

    async def load_history(self) -> list[Message]:
        """Replace local messages with the backend history of the active session."""
        session_id = self.sessions.get()
        if session_id is None:
            return []
        history = await self._api.get_messages(session_id)
        self.messages = list(history.messages)
        logger.info(f"Loaded {history.total_count} messages for session {session_id}")
        return self.messages

    async def send(
        self,
        text: str,
        options: GenerationOptions | None = None,
        on_update: Callable[[Message], None] | None = None,
    ) -> Message:
        """Send a user message and stream the assistant answer.

        The user message and an empty assistant message are appended to
        the history before the request goes out. The assistant message is
        then updated in place, with on_update called after every event.

        Args:
            text: The user's message.
            options: Generation parameters; backend defaults when omitted.
            on_update: Called with the assistant message after each update.

        Returns:
            The finished assistant message.

        Raises:
            StreamBusyError: If another answer is still streaming.
            ValueError: If the message is empty.
            SessionCreationError: If no session exists and none can be created.
            TransportError: If the request or stream fails at the HTTP level.
            ProtocolError: If the server ends the stream with an error record.
        """
        if self._streaming:
            raise StreamBusyError("An answer is already streaming; wait for it to finish")

        message = text.strip()
        if not message:
            raise ValueError("Message must not be empty")

        self._streaming = True
        try:
            session_id = await self.sessions.ensure()
            self.sessions.extend()

            request = ChatRequest(
                session_id=session_id,
                message=message,
                **(options or GenerationOptions()).model_dump(),
            )
            self.messages.append(
                Message(
                    message_id=_message_id(MessageRole.USER),
                    session_id=session_id,
                    role=MessageRole.USER,
                    content=message,
                )
            )
            answer = Message(
                message_id=_message_id(MessageRole.ASSISTANT),
                session_id=session_id,
                role=MessageRole.ASSISTANT,
            )
            self.messages.append(answer)
            accumulator = ConversationAccumulator(answer, on_update)

            try:
                async with self._api.stream_chat(request) as chunks:
                    await accumulator.consume(interpret_stream(iter_lines(chunks)))
            except TransportError as e:
                answer.error = str(e)
                if on_update is not None:
                    on_update(answer)
                raise

            logger.info(
                f"Answer {answer.message_id} finished: {len(answer.content)} chars, "
                f"{len(answer.citations)} citations"
            )
            return answer
        finally:
            self._streaming = False
