"""
Converts raw event-stream lines into ``ResponseChunk`` events.

Each SSE event has the form::

    data: <payload>\\n\\n

The payload ``[DONE]`` terminates the stream.  Everything else is handed to
the dialect's frame parser.  Decoding is a one-pass transform over a live
stream; a decoder cannot be restarted.
"""

from __future__ import annotations

import codecs
import logging
from typing import AsyncIterator

from parley.errors import MalformedStreamError
from parley.llm.chunks import Done, ResponseChunk
from parley.llm.dialects import Dialect

logger = logging.getLogger(__name__)

DONE_TOKEN = "[DONE]"
_DATA_PREFIX = "data:"
_IGNORED_FIELDS = ("event:", "id:", "retry:")


async def iter_sse_lines(byte_stream: AsyncIterator[bytes]) -> AsyncIterator[str]:
    """
    Split a byte stream into text lines.

    UTF-8 is decoded strictly; an invalid sequence aborts the stream with
    ``MalformedStreamError`` instead of being replaced.
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="strict")
    buffer = ""
    try:
        async for raw_bytes in byte_stream:
            buffer += decoder.decode(raw_bytes)
            while "\n" in buffer:
                line, buffer = buffer.split("\n", 1)
                yield line.rstrip("\r")
        buffer += decoder.decode(b"", final=True)
    except UnicodeDecodeError as e:
        raise MalformedStreamError(f"Stream is not valid UTF-8: {e}") from e
    if buffer:
        yield buffer.rstrip("\r")


class FrameDecoder:
    """
    Turns raw SSE lines into ``ResponseChunk`` events for one stream.

    ``feed`` is the per-line step and is usable on its own; ``decode`` wraps
    it over an async line iterator and enforces that the stream ends with
    the ``[DONE]`` terminator.
    """

    def __init__(self, dialect: Dialect) -> None:
        self.dialect = dialect
        self._parser = dialect.new_frame_parser()
        self._done = False
        self._started = False

    @property
    def done(self) -> bool:
        return self._done

    def feed(self, line: str) -> list[ResponseChunk]:
        if self._done:
            raise MalformedStreamError("Frame received after stream terminator")

        stripped = line.strip()
        if not stripped or stripped.startswith(":"):
            return []
        if stripped.startswith(_IGNORED_FIELDS):
            return []

        payload = line
        if line.startswith(_DATA_PREFIX):
            payload = line[len(_DATA_PREFIX):]
            if payload.startswith(" "):
                payload = payload[1:]

        if payload.strip() == DONE_TOKEN:
            self._done = True
            return [self._parser.finish()]
        return self._parser.feed(payload)

    async def decode(self, lines: AsyncIterator[str]) -> AsyncIterator[ResponseChunk]:
        if self._started:
            raise RuntimeError("FrameDecoder streams cannot be restarted")
        self._started = True

        async for line in lines:
            for chunk in self.feed(line):
                yield chunk
                if isinstance(chunk, Done):
                    return

        logger.warning("Stream closed before %s terminator", DONE_TOKEN)
        raise MalformedStreamError("Stream closed abruptly before the [DONE] terminator")
