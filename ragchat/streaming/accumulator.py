"""Folds stream events into the live state of one assistant message."""

import logging
from collections.abc import AsyncIterable, Callable

from ragchat.errors import AccumulatorClosedError, ProtocolError
from ragchat.models import Message, MessageRole
from ragchat.streaming.events import (
    ContentEvent,
    ContextEvent,
    DoneEvent,
    ErrorEvent,
    StreamEvent,
)

logger = logging.getLogger(__name__)

UpdateCallback = Callable[[Message], None]


class ConversationAccumulator:
    """Builds one assistant answer from its event stream.

    Content is replaced by cumulative snapshots and extended by deltas,
    citations are replaced wholesale. Every applied event triggers the
    update callback once, synchronously.

    Attributes:
        message: The assistant message being filled in.
    """

    def __init__(self, message: Message, on_update: UpdateCallback | None = None) -> None:
        if message.role != MessageRole.ASSISTANT:
            raise ValueError("ConversationAccumulator only fills assistant messages")
        self.message = message
        self._on_update = on_update
        self._frozen = False
        self._events_applied = 0

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def events_applied(self) -> int:
        return self._events_applied

    def _notify(self) -> None:
        self._events_applied += 1
        if self._on_update is not None:
            self._on_update(self.message)

    def apply(self, event: StreamEvent) -> None:
        """Apply one event to the message.

        Raises:
            AccumulatorClosedError: If the answer already finished.
            ProtocolError: For an error event, after recording it on the message.
        """
        if self._frozen:
            raise AccumulatorClosedError(
                f"Answer {self.message.message_id} already finished; got {event.kind} event"
            )

        if isinstance(event, ContentEvent):
            if event.cumulative:
                self.message.content = event.text
            else:
                self.message.content += event.text
            self._notify()
        elif isinstance(event, ContextEvent):
            self.message.citations = list(event.citations)
            self._notify()
        elif isinstance(event, DoneEvent):
            self._frozen = True
            self._notify()
        elif isinstance(event, ErrorEvent):
            self.message.error = event.message
            self._frozen = True
            self._notify()
            raise ProtocolError(event.message)

    async def consume(self, events: AsyncIterable[StreamEvent]) -> Message:
        """Apply every event of a stream and return the finished message.

        Raises:
            ProtocolError: If the stream ends with a server-declared error.
                Content received before the error stays on the message.
        """
        async for event in events:
            self.apply(event)
            if self._frozen:
                break

        if not self._frozen:
            logger.warning(
                f"Stream for {self.message.message_id} ended without a completion signal"
            )
            self._frozen = True
        return self.message
