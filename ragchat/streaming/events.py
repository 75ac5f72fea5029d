"""Interpretation of decoded stream lines into semantic events.

Wire format, one frame per line:

    data: {"type": "token", "content": "Hel"}
    data: {"type": "complete", "rag_context": [...]}
    data: [DONE]

Two historical payload shapes are accepted for content (a ``content`` delta
or a cumulative ``full_content``) and for citations (``rag_context`` or
``context_info``). Records without a ``type`` use the legacy flat shape
``{"content": ..., "done": ..., "error": ...}``, whose ``content`` is
always a delta.
"""

import json
import logging
import re
from collections.abc import AsyncIterable, AsyncIterator
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError

from ragchat.errors import FrameParseError
from ragchat.models import Citation

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"

CONTENT_TYPES = frozenset({"token", "content"})
TERMINAL_TYPES = frozenset({"complete", "done"})
IGNORED_TYPES = frozenset({"start", "status", "ping"})

CUMULATIVE_FIELD = "full_content"
DELTA_FIELD = "content"
CITATION_FIELDS = ("rag_context", "context_info")

# Used only when a payload is not valid JSON but still declares itself an error
_ERROR_TYPE_RE = re.compile(r'"type"\s*:\s*"error"')
_ERROR_MESSAGE_RE = re.compile(r'"(?:message|error)"\s*:\s*"((?:[^"\\]|\\.)*)"')


class ContentEvent(BaseModel):
    """Answer text.

    Attributes:
        text: A delta, or the full answer so far when cumulative is set.
        cumulative: True when text replaces the accumulated answer.
    """

    kind: Literal["content"] = "content"
    text: str
    cumulative: bool = False


class ContextEvent(BaseModel):
    """A citation set that replaces any earlier one for the same answer."""

    kind: Literal["context"] = "context"
    citations: list[Citation] = Field(default_factory=list)


class DoneEvent(BaseModel):
    kind: Literal["done"] = "done"


class ErrorEvent(BaseModel):
    """Server-declared failure; always the last event of a stream."""

    kind: Literal["error"] = "error"
    message: str


StreamEvent = ContentEvent | ContextEvent | DoneEvent | ErrorEvent


def is_terminal(event: StreamEvent) -> bool:
    return isinstance(event, (DoneEvent, ErrorEvent))


def extract_payload(line: str) -> str | None:
    """Return the payload of a ``data:`` line, or None for any other line."""
    if not line.startswith(DATA_PREFIX):
        return None
    payload = line[len(DATA_PREFIX):]
    if payload.startswith(" "):
        payload = payload[1:]
    return payload.strip()


def _parse_citations(record: dict[str, Any]) -> list[Citation] | None:
    """Pick the first non-empty citation field of a record.

    Returns None when the record carries no citation field at all.
    """
    found = False
    for field in CITATION_FIELDS:
        raw = record.get(field)
        if raw is None:
            continue
        found = True
        if not isinstance(raw, list):
            logger.warning(f"Ignoring non-list {field} in stream payload")
            continue
        if not raw:
            continue

        citations: list[Citation] = []
        for item in raw:
            try:
                citations.append(Citation.model_validate(item))
            except ValidationError as e:
                logger.warning(f"Dropping malformed citation: {e}")
        return citations
    return [] if found else None


def _parse_content(record: dict[str, Any], terminal: bool = False) -> ContentEvent | None:
    """Read the answer text of a record.

    ``full_content`` always replaces the answer so far. ``content`` is a
    delta, except on a typed complete/done record, where it carries the
    final full text.
    """
    cumulative = record.get(CUMULATIVE_FIELD)
    if isinstance(cumulative, str):
        return ContentEvent(text=cumulative, cumulative=True)

    delta = record.get(DELTA_FIELD)
    if isinstance(delta, str) and delta:
        return ContentEvent(text=delta, cumulative=terminal)
    return None


def _error_message(record: dict[str, Any]) -> str:
    for key in ("message", "error", "detail"):
        value = record.get(key)
        if isinstance(value, str) and value:
            return value
    return "Unknown stream error"


def _salvage_error(payload: str) -> ErrorEvent | None:
    """Recover an error declaration from a payload that is not valid JSON."""
    if not _ERROR_TYPE_RE.search(payload):
        return None
    match = _ERROR_MESSAGE_RE.search(payload)
    if match:
        try:
            return ErrorEvent(message=json.loads(f'"{match.group(1)}"'))
        except json.JSONDecodeError:
            return ErrorEvent(message=match.group(1))
    return ErrorEvent(message="Unknown stream error")


def _decode(payload: str) -> dict[str, Any]:
    try:
        record = json.loads(payload)
    except json.JSONDecodeError as e:
        raise FrameParseError(f"Invalid JSON payload: {e.msg}") from e
    if not isinstance(record, dict):
        raise FrameParseError(f"Expected a JSON object, got {type(record).__name__}")
    return record


def _interpret_typed(kind: str, record: dict[str, Any]) -> list[StreamEvent]:
    if kind == "error":
        return [ErrorEvent(message=_error_message(record))]

    events: list[StreamEvent] = []
    if kind in CONTENT_TYPES or kind in TERMINAL_TYPES or kind == "context":
        citations = _parse_citations(record)
        if citations is not None:
            events.append(ContextEvent(citations=citations))
        content = _parse_content(record, terminal=kind in TERMINAL_TYPES)
        if content is not None:
            events.append(content)
        if kind in TERMINAL_TYPES:
            events.append(DoneEvent())
        return events

    if kind not in IGNORED_TYPES:
        logger.debug(f"Skipping stream record of unknown type: {kind!r}")
    return events


def _interpret_legacy(record: dict[str, Any]) -> list[StreamEvent]:
    error = record.get("error")
    if error:
        return [ErrorEvent(message=str(error))]

    events: list[StreamEvent] = []
    citations = _parse_citations(record)
    if citations is not None:
        events.append(ContextEvent(citations=citations))
    content = _parse_content(record)
    if content is not None:
        events.append(content)
    if record.get("done") is True:
        events.append(DoneEvent())
    return events


def parse_payload(payload: str) -> list[StreamEvent]:
    """Interpret one payload into zero or more events.

    A terminal event, when present, is always last in the returned list.

    Raises:
        FrameParseError: If the payload is not a JSON object and does not
            declare an error.
    """
    if payload == DONE_SENTINEL:
        return [DoneEvent()]

    try:
        record = _decode(payload)
    except FrameParseError:
        salvaged = _salvage_error(payload)
        if salvaged is not None:
            return [salvaged]
        raise

    kind = record.get("type")
    if isinstance(kind, str):
        return _interpret_typed(kind.lower(), record)
    return _interpret_legacy(record)


def interpret_line(line: str) -> list[StreamEvent]:
    """Interpret one decoded line, skipping noise and malformed payloads."""
    payload = extract_payload(line)
    if payload is None or not payload:
        return []
    try:
        return parse_payload(payload)
    except FrameParseError as e:
        logger.warning(f"Skipping malformed stream payload: {e}")
        return []


async def interpret_stream(lines: AsyncIterable[str]) -> AsyncIterator[StreamEvent]:
    """Yield semantic events for a stream of decoded lines.

    Stops right after the first done or error event, even if the
    transport has more data.
    """
    async for line in lines:
        for event in interpret_line(line):
            yield event
            if is_terminal(event):
                return
