"""Unit tests for ConversationAccumulator."""

import pytest

from ragchat.errors import AccumulatorClosedError, ProtocolError
from ragchat.models import Citation, Message, MessageRole
from ragchat.streaming import (
    ContentEvent,
    ContextEvent,
    ConversationAccumulator,
    DoneEvent,
    ErrorEvent,
)


def assistant_message(session_id: str = "s1") -> Message:
    return Message(message_id="assistant_1", session_id=session_id, role=MessageRole.ASSISTANT)


def citation(title: str, score: float = 0.5) -> Citation:
    return Citation(document_id=title.lower(), document_title=title, similarity_score=score)


async def agen(events: list):
    for event in events:
        yield event


class TestContent:
    """Tests for delta vs cumulative content."""

    def test_deltas_concatenate(self) -> None:
        acc = ConversationAccumulator(assistant_message())

        acc.apply(ContentEvent(text="Hel"))
        acc.apply(ContentEvent(text="lo"))

        assert acc.message.content == "Hello"

    def test_cumulative_replaces(self) -> None:
        acc = ConversationAccumulator(assistant_message())

        acc.apply(ContentEvent(text="Hel"))
        acc.apply(ContentEvent(text="Hello", cumulative=True))

        assert acc.message.content == "Hello"

    def test_delta_after_cumulative_extends_snapshot(self) -> None:
        """A snapshot is never double-applied with the deltas it covers."""
        acc = ConversationAccumulator(assistant_message())

        for event in [
            ContentEvent(text="A"),
            ContentEvent(text="B"),
            ContentEvent(text="AB", cumulative=True),
            ContentEvent(text="C"),
        ]:
            acc.apply(event)

        assert acc.message.content == "ABC"

    def test_final_content_equals_last_snapshot(self) -> None:
        acc = ConversationAccumulator(assistant_message())

        acc.apply(ContentEvent(text="draft"))
        acc.apply(ContentEvent(text="First answer", cumulative=True))
        acc.apply(ContentEvent(text="Final answer", cumulative=True))
        acc.apply(DoneEvent())

        assert acc.message.content == "Final answer"


class TestCitations:
    """Tests for citation replacement."""

    def test_later_context_replaces_earlier(self) -> None:
        """Citation sets are replaced, never merged."""
        acc = ConversationAccumulator(assistant_message())
        first = [citation("A"), citation("B")]
        second = [citation("C")]

        acc.apply(ContextEvent(citations=first))
        acc.apply(ContextEvent(citations=second))

        assert acc.message.citations == second

    def test_content_keeps_citations(self) -> None:
        acc = ConversationAccumulator(assistant_message())

        acc.apply(ContextEvent(citations=[citation("A", 0.9)]))
        acc.apply(ContentEvent(text="x"))

        assert [c.similarity_score for c in acc.message.citations] == [0.9]


class TestTermination:
    """Tests for done / error handling."""

    def test_done_freezes(self) -> None:
        acc = ConversationAccumulator(assistant_message())
        acc.apply(ContentEvent(text="x"))
        acc.apply(DoneEvent())

        assert acc.frozen is True
        with pytest.raises(AccumulatorClosedError):
            acc.apply(ContentEvent(text="y"))
        assert acc.message.content == "x"

    def test_error_raises_and_keeps_partial_content(self) -> None:
        acc = ConversationAccumulator(assistant_message())
        acc.apply(ContentEvent(text="partial answer"))

        with pytest.raises(ProtocolError, match="model overloaded"):
            acc.apply(ErrorEvent(message="model overloaded"))

        assert acc.message.content == "partial answer"
        assert acc.message.error == "model overloaded"
        assert acc.frozen is True

    def test_only_assistant_messages(self) -> None:
        user = Message(message_id="u1", session_id="s1", role=MessageRole.USER, content="hi")

        with pytest.raises(ValueError):
            ConversationAccumulator(user)


class TestUpdates:
    """Tests for the synchronous update callback."""

    def test_callback_once_per_event(self) -> None:
        snapshots: list[tuple[str, int]] = []
        acc = ConversationAccumulator(
            assistant_message(),
            on_update=lambda m: snapshots.append((m.content, len(m.citations))),
        )

        acc.apply(ContentEvent(text="a"))
        acc.apply(ContextEvent(citations=[citation("A")]))
        acc.apply(ContentEvent(text="b"))
        acc.apply(DoneEvent())

        assert snapshots == [("a", 0), ("a", 1), ("ab", 1), ("ab", 1)]
        assert acc.events_applied == 4

    def test_callback_sees_error_before_raise(self) -> None:
        seen: list[str | None] = []
        acc = ConversationAccumulator(assistant_message(), on_update=lambda m: seen.append(m.error))

        with pytest.raises(ProtocolError):
            acc.apply(ErrorEvent(message="boom"))

        assert seen == ["boom"]


class TestConsume:
    """Tests for consuming an async event stream."""

    async def test_consume_returns_finished_message(self) -> None:
        acc = ConversationAccumulator(assistant_message())

        message = await acc.consume(agen([
            ContentEvent(text="Hel"),
            ContentEvent(text="lo"),
            DoneEvent(),
        ]))

        assert message.content == "Hello"
        assert acc.frozen is True

    async def test_consume_stops_at_done(self) -> None:
        acc = ConversationAccumulator(assistant_message())

        message = await acc.consume(agen([ContentEvent(text="a"), DoneEvent(), ContentEvent(text="b")]))

        assert message.content == "a"

    async def test_consume_propagates_protocol_error(self) -> None:
        acc = ConversationAccumulator(assistant_message())

        with pytest.raises(ProtocolError):
            await acc.consume(agen([ContentEvent(text="so far"), ErrorEvent(message="x")]))

        assert acc.message.content == "so far"

    async def test_stream_end_without_terminal_freezes(self) -> None:
        acc = ConversationAccumulator(assistant_message())

        message = await acc.consume(agen([ContentEvent(text="cut")]))

        assert message.content == "cut"
        assert acc.frozen is True
