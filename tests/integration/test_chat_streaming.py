"""Integration tests for ChatService over the full streaming pipeline.

Each test sends a message through ApiClient, FrameDecoder, the event
interpreter and ConversationAccumulator, with the fake backend serving
the event stream.
"""

import asyncio
from pathlib import Path

import pytest
import pytest_check as check

from ragchat.api import ApiClient
from ragchat.chat import ChatService
from ragchat.config import ClientConfig
from ragchat.errors import ProtocolError, SessionCreationError, StreamBusyError, TransportError
from ragchat.models import GenerationOptions, Message, MessageRole
from ragchat.session import SESSION_STORAGE_KEY, MemoryStorage
from tests.fakes import FakeBackend, FakeClock, split_every, sse

DAY = 24 * 60 * 60


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def service(api: ApiClient, storage: MemoryStorage, clock: FakeClock) -> ChatService:
    return ChatService(api, storage, clock=clock)


class TestStreamedAnswers:
    """Tests for answer assembly."""

    async def test_hello_scenario(self, service: ChatService, backend: FakeBackend) -> None:
        backend.stream_chunks = [
            b'data: {"type":"token","content":"Hel"}\n',
            b'data: {"type":"token","content":"lo"}\n',
            b"data: [DONE]\n",
        ]

        answer = await service.send("Say hello")

        check.equal(answer.content, "Hello")
        check.equal(answer.role, MessageRole.ASSISTANT)
        check.is_none(answer.error)

    async def test_citation_scenario(self, service: ChatService, backend: FakeBackend) -> None:
        backend.stream_chunks = [
            sse(
                {"type": "complete", "rag_context": [{
                    "document_id": "d1",
                    "document_title": "A",
                    "chunk_content": "Revenue grew 12%",
                    "similarity_score": 0.9,
                }]},
                "[DONE]",
            )
        ]

        answer = await service.send("What grew?")

        assert len(answer.citations) == 1
        assert answer.citations[0].similarity_score == 0.9
        assert answer.citations[0].document_title == "A"

    async def test_malformed_frame_is_skipped(self, service: ChatService, backend: FakeBackend) -> None:
        backend.stream_chunks = [
            b'data: {"type":"token","content":"a"}\n',
            b"data: {not json\n",
            b'data: {"type":"token","content":"b"}\n',
            b"data: [DONE]\n",
        ]

        answer = await service.send("hi")

        assert answer.content == "ab"
        check.is_none(answer.error)

    @pytest.mark.parametrize("size", [1, 3, 10])
    async def test_byte_level_fragmentation(
        self, service: ChatService, backend: FakeBackend, size: int
    ) -> None:
        """The answer does not depend on how the transport splits bytes."""
        body = sse(
            {"type": "start"},
            {"type": "token", "content": "안녕"},
            {"type": "context", "context_info": [{"title": "B", "score": 0.5}]},
            {"type": "token", "content": "하세요"},
            {"type": "complete", "full_content": "안녕하세요!"},
        )
        backend.stream_chunks = split_every(body, size)

        answer = await service.send("greet me")

        assert answer.content == "안녕하세요!"
        assert [c.document_title for c in answer.citations] == ["B"]

    async def test_final_text_on_complete_is_not_doubled(
        self, service: ChatService, backend: FakeBackend
    ) -> None:
        backend.stream_chunks = [sse(
            {"type": "token", "content": "Hel"},
            {"type": "token", "content": "lo"},
            {"type": "complete", "content": "Hello"},
        )]

        answer = await service.send("hi")

        assert answer.content == "Hello"

    async def test_second_context_replaces_first(
        self, service: ChatService, backend: FakeBackend
    ) -> None:
        backend.stream_chunks = [sse(
            {"type": "context", "rag_context": [{"document_title": "A"}, {"document_title": "B"}]},
            {"type": "token", "content": "x"},
            {"type": "context", "rag_context": [{"document_title": "C"}]},
            "[DONE]",
        )]

        answer = await service.send("hi")

        assert [c.document_title for c in answer.citations] == ["C"]

    async def test_update_callback_sees_every_step(
        self, service: ChatService, backend: FakeBackend
    ) -> None:
        backend.stream_chunks = [sse(
            {"type": "token", "content": "a"},
            {"type": "token", "content": "b"},
            "[DONE]",
        )]
        seen: list[str] = []

        await service.send("hi", on_update=lambda m: seen.append(m.content))

        assert seen == ["a", "ab", "ab"]

    async def test_stream_without_done_finishes(
        self, service: ChatService, backend: FakeBackend
    ) -> None:
        backend.stream_chunks = [b'data: {"type":"token","content":"cut off"}']

        answer = await service.send("hi")

        assert answer.content == "cut off"


class TestFailures:
    """Tests for error propagation."""

    async def test_protocol_error_keeps_partial_answer(
        self, service: ChatService, backend: FakeBackend
    ) -> None:
        backend.stream_chunks = [sse(
            {"type": "token", "content": "The answer is"},
            {"type": "error", "message": "generation failed"},
            {"type": "token", "content": " never shown"},
        )]

        with pytest.raises(ProtocolError, match="generation failed"):
            await service.send("hi")

        answer = service.messages[-1]
        assert answer.content == "The answer is"
        assert answer.error == "generation failed"
        assert service.is_streaming is False

    async def test_transport_error_is_recorded_and_raised(
        self, service: ChatService, backend: FakeBackend
    ) -> None:
        backend.failures[("POST", "/chat/stream")] = 502

        with pytest.raises(TransportError):
            await service.send("hi")

        assert "502" in service.messages[-1].error
        assert service.is_streaming is False

    async def test_session_creation_failure(
        self, service: ChatService, backend: FakeBackend
    ) -> None:
        backend.failures[("POST", "/sessions")] = 500

        with pytest.raises(SessionCreationError):
            await service.send("hi")

        assert service.messages == []
        assert backend.count("POST", "/chat/stream") == 0

    async def test_empty_message_rejected(self, service: ChatService, backend: FakeBackend) -> None:
        with pytest.raises(ValueError):
            await service.send("   ")

        assert backend.calls == []


class TestSingleFlight:
    """Tests for the one-stream-at-a-time rule."""

    async def test_second_send_while_streaming_is_rejected(
        self, service: ChatService, backend: FakeBackend
    ) -> None:
        backend.stream_gate = asyncio.Event()
        first = asyncio.create_task(service.send("first"))
        while not backend.chat_requests:
            await asyncio.sleep(0)

        assert service.is_streaming is True
        with pytest.raises(StreamBusyError):
            await service.send("second")

        backend.stream_gate.set()
        answer = await first
        assert answer.content == "ok"
        assert len(service.messages) == 2

    async def test_sequential_sends_are_allowed(
        self, service: ChatService, backend: FakeBackend
    ) -> None:
        await service.send("one")
        await service.send("two")

        assert [m.role for m in service.messages] == [
            MessageRole.USER, MessageRole.ASSISTANT, MessageRole.USER, MessageRole.ASSISTANT,
        ]
        assert backend.count("POST", "/sessions") == 1


class TestSessionIntegration:
    """Tests for session handling around sends."""

    async def test_first_send_creates_session_and_request_uses_it(
        self, service: ChatService, backend: FakeBackend
    ) -> None:
        await service.send("hi", GenerationOptions(use_rag=True, top_k=7, temperature=0.1))

        sent = backend.chat_requests[0]
        check.equal(sent["session_id"], "session-1")
        check.is_true(sent["use_rag"])
        check.equal(sent["top_k"], 7)
        check.equal(sent["temperature"], 0.1)

    async def test_send_extends_session(
        self, service: ChatService, clock: FakeClock
    ) -> None:
        await service.send("hi")
        clock.advance(DAY - 10)
        await service.send("still here")
        clock.advance(DAY - 10)

        assert service.sessions.get() == "session-1"

    async def test_expired_session_drops_history_and_renews(
        self, service: ChatService, clock: FakeClock, backend: FakeBackend
    ) -> None:
        await service.send("hi")
        clock.advance(DAY + 1)

        await service.send("back again")

        assert backend.chat_requests[-1]["session_id"] == "session-2"
        assert [m.content for m in service.messages if m.role == MessageRole.USER] == ["back again"]

    async def test_new_chat_clears_messages(
        self, service: ChatService, storage: MemoryStorage
    ) -> None:
        await service.send("hi")

        session_id = await service.new_chat()

        assert session_id == "session-2"
        assert service.messages == []
        assert "session-2" in storage.get(SESSION_STORAGE_KEY)

    async def test_load_history(self, service: ChatService, backend: FakeBackend) -> None:
        await service.sessions.create()
        backend.history = [
            Message(message_id="m1", session_id="session-1", role=MessageRole.USER,
                    content="earlier").model_dump(mode="json"),
        ]

        messages = await service.load_history()

        assert [m.content for m in messages] == ["earlier"]
        assert service.messages == messages

    async def test_load_history_without_session(self, service: ChatService, backend: FakeBackend) -> None:
        assert await service.load_history() == []
        assert backend.calls == []

    async def test_from_config_persists_to_file(
        self, api: ApiClient, tmp_path: Path
    ) -> None:
        config = ClientConfig(storage_path=str(tmp_path / "storage.json"), session_hours=1)
        service = ChatService.from_config(config, api=api)

        await service.send("hi")

        assert (tmp_path / "storage.json").exists()
        assert ChatService.from_config(config, api=api).sessions.get() == "session-1"
