"""Split a P1 byte stream into telegram frames."""

import asyncio
import logging
import re
from collections.abc import AsyncIterator
from typing import Protocol

from p1_exporter.dsmr.errors import FramingError
from p1_exporter.dsmr.models import TRAILER_LENGTH, RawFrame

logger = logging.getLogger(__name__)

FRAME_START = b"/"
FRAME_END = b"!"
DEFAULT_MAX_FRAME_SIZE = 8192

_TRAILER_RE = re.compile(rb"![0-9A-Fa-f]{4}\r\n")


class ByteStream(Protocol):
    """What the transport has to offer: ``read`` returning ``b""`` at end of stream."""

    async def read(self, n: int = -1) -> bytes: ...


class FrameReader:
    """Incremental framer.

    Bytes are pushed in with :meth:`feed`, complete frames are pulled out with
    :meth:`next_frame`. Partial frames stay buffered across feeds. Anything in
    front of a ``/`` is thrown away, which lets the reader pick up a stream
    that was joined in the middle of a telegram.
    """

    def __init__(self, max_frame_size: int = DEFAULT_MAX_FRAME_SIZE) -> None:
        self._max_frame_size = max_frame_size
        self._buffer = bytearray()

    @property
    def buffered(self) -> int:
        return len(self._buffer)

    def reset(self) -> None:
        self._buffer.clear()

    def feed(self, data: bytes) -> None:
        self._buffer += data

    def next_frame(self) -> RawFrame | None:
        """Return the next complete frame, or None when more bytes are needed.

        Raises:
            FramingError: the frame at the head of the buffer is unusable. The
                offending bytes have been dropped, so calling again continues
                with whatever follows.
        """
        buf = self._buffer
        start = buf.find(FRAME_START)
        if start == -1:
            buf.clear()
            return None
        if start > 0:
            logger.debug("Discarding %d bytes before frame start", start)
            del buf[:start]

        end = buf.find(FRAME_END)
        # A start marker before the end marker: this frame was cut short,
        # possibly mid-line
        restart = buf.find(FRAME_START, 1)
        if restart != -1 and (end == -1 or restart < end):
            del buf[:restart]
            raise FramingError("frame ended without checksum trailer")

        if end == -1:
            if len(buf) > self._max_frame_size:
                self._drop_head()
                raise FramingError(f"frame exceeds {self._max_frame_size} bytes")
            return None

        frame_size = end + TRAILER_LENGTH
        if frame_size > self._max_frame_size:
            self._drop_head()
            raise FramingError(f"frame exceeds {self._max_frame_size} bytes")
        if len(buf) < frame_size:
            return None

        if not _TRAILER_RE.fullmatch(buf, end, frame_size):
            del buf[: end + 1]
            raise FramingError("malformed checksum trailer")

        frame = RawFrame(bytes(buf[:frame_size]))
        del buf[:frame_size]
        return frame

    def _drop_head(self) -> None:
        """Drop the frame at the head of the buffer up to the next start marker."""
        nxt = self._buffer.find(FRAME_START, 1)
        if nxt == -1:
            self._buffer.clear()
        else:
            del self._buffer[:nxt]


async def read_frames(
    stream: ByteStream,
    reader: FrameReader | None = None,
    chunk_size: int = 1024,
    read_timeout: float | None = None,
) -> AsyncIterator[RawFrame | FramingError]:
    """Lazily yield frames from ``stream`` until it reaches end of stream.

    Framing errors are yielded rather than raised so the consumer can skip the
    frame and keep going. Transport errors (including a read timeout) propagate.
    """
    if reader is None:
        reader = FrameReader()
    while True:
        if read_timeout:
            data = await asyncio.wait_for(stream.read(chunk_size), timeout=read_timeout)
        else:
            data = await stream.read(chunk_size)
        if not data:
            return
        reader.feed(data)
        while True:
            try:
                frame = reader.next_frame()
            except FramingError as exc:
                yield exc
                continue
            if frame is None:
                break
            yield frame
