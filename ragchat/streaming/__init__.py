"""Streaming response protocol: framing, event interpretation, accumulation.

Pipeline:
    transport chunks -> iter_lines -> interpret_stream -> ConversationAccumulator
"""

from ragchat.streaming.accumulator import ConversationAccumulator
from ragchat.streaming.events import (
    ContentEvent,
    ContextEvent,
    DoneEvent,
    ErrorEvent,
    StreamEvent,
    interpret_line,
    interpret_stream,
    parse_payload,
)
from ragchat.streaming.frames import FrameDecoder, iter_lines

__all__ = [
    "ContentEvent",
    "ContextEvent",
    "ConversationAccumulator",
    "DoneEvent",
    "ErrorEvent",
    "FrameDecoder",
    "StreamEvent",
    "interpret_line",
    "interpret_stream",
    "iter_lines",
    "parse_payload",
]
