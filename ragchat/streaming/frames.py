"""Line framing for chunked event-stream responses.

Transport chunks arrive at arbitrary boundaries. FrameDecoder buffers the
trailing fragment of each chunk until its line terminator shows up.
Lines end in "\r\n", "\n" or a bare "\r", as in the event-stream format.
"""

import codecs
import logging
import re
from collections.abc import AsyncIterable, AsyncIterator

logger = logging.getLogger(__name__)

LINE_TERMINATOR = re.compile(r"\r\n|\r|\n")


class FrameDecoder:
    """Turns a sequence of byte or text chunks into complete lines.

    One decoder serves exactly one stream. Once flushed it cannot be fed
    again.
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._pending = ""
        # Last chunk ended on "\r"; a "\n" opening the next one belongs to it
        self._after_cr = False
        self._finished = False

    @property
    def pending(self) -> str:
        """Buffered text that has not been terminated yet."""
        return self._pending

    @property
    def finished(self) -> bool:
        return self._finished

    def feed(self, chunk: bytes | str) -> list[str]:
        """Add a chunk and return every line it completed.

        Args:
            chunk: Raw bytes or already-decoded text from the transport.

        Returns:
            Complete lines in arrival order, without terminators.

        Raises:
            RuntimeError: If the decoder was already flushed.
        """
        if self._finished:
            raise RuntimeError("FrameDecoder already flushed; use a new decoder per stream")

        text = self._decoder.decode(chunk) if isinstance(chunk, bytes) else chunk
        if not text:
            return []

        buffer = self._pending + text
        if self._after_cr and buffer.startswith("\n"):
            buffer = buffer[1:]
        self._after_cr = buffer.endswith("\r")

        parts = LINE_TERMINATOR.split(buffer)
        # Last part is either "" (chunk ended on a terminator) or a fragment
        self._pending = parts.pop()
        return parts

    def flush(self) -> list[str]:
        """Finish the stream and return the trailing unterminated line, if any."""
        if self._finished:
            return []
        self._finished = True

        tail = self._pending + self._decoder.decode(b"", final=True)
        self._pending = ""
        if not tail:
            return []
        return [tail]


async def iter_lines(chunks: AsyncIterable[bytes | str]) -> AsyncIterator[str]:
    """Yield complete lines from an async chunk source.

    Args:
        chunks: Transport chunks, e.g. httpx ``Response.aiter_bytes()``.

    Yields:
        Lines in arrival order; the final unterminated fragment is yielded
        once the source is exhausted.
    """
    decoder = FrameDecoder()
    async for chunk in chunks:
        for line in decoder.feed(chunk):
            yield line
    for line in decoder.flush():
        logger.debug("Stream ended without trailing newline")
        yield line
