from __future__ import annotations

import codecs
from collections import deque
from collections.abc import AsyncIterator, Awaitable, Callable

import anyio
from anyio.abc import ByteReceiveStream

from ..logging import get_logger

logger = get_logger(__name__)

STDERR_TAIL_LINES = 200
STDERR_ERROR_MARKERS = ("error", "failed")


class LineFramer:
    """Split a byte stream into newline-terminated records.

    A trailing partial record is kept until the next chunk completes it or
    `flush` drains it. The buffer is unbounded: a producer that never writes
    a newline grows it without limit.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    @property
    def pending(self) -> str:
        return self._buffer

    def feed(self, chunk: bytes) -> list[str]:
        self._buffer += self._decoder.decode(chunk)
        records: list[str] = []
        while True:
            split_at = self._buffer.find("\n")
            if split_at < 0:
                break
            record = self._buffer[:split_at]
            self._buffer = self._buffer[split_at + 1 :]
            records.append(record.removesuffix("\r"))
        return records

    def flush(self) -> str | None:
        self._buffer += self._decoder.decode(b"", final=True)
        record, self._buffer = self._buffer, ""
        if not record:
            return None
        return record.removesuffix("\r")


async def iter_records(stream: ByteReceiveStream) -> AsyncIterator[str]:
    framer = LineFramer()
    while True:
        try:
            chunk = await stream.receive()
        except (anyio.EndOfStream, anyio.ClosedResourceError):
            tail = framer.flush()
            if tail is not None:
                yield tail
            return
        for record in framer.feed(chunk):
            yield record


def looks_like_error(text: str) -> bool:
    lowered = text.lower()
    return any(marker in lowered for marker in STDERR_ERROR_MARKERS)


async def drain_stderr(
    stream: ByteReceiveStream,
    tail: deque[str],
    on_signal: Callable[[str], Awaitable[None] | None] | None = None,
    *,
    tag: str = "claude",
) -> None:
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    try:
        while True:
            try:
                chunk = await stream.receive()
            except (anyio.EndOfStream, anyio.ClosedResourceError):
                return
            text = decoder.decode(chunk)
            logger.debug("stderr", tag=tag, text=text.rstrip())
            tail.extend(text.splitlines(keepends=True))
            stripped = text.strip()
            if on_signal is not None and stripped and looks_like_error(stripped):
                res = on_signal(stripped)
                if res is not None:
                    await res
    except OSError as e:
        logger.debug("stderr.drain_error", tag=tag, error=str(e))
