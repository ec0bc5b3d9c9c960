"""
Byte Ingestion
==============

Turns arbitrary network chunks into complete SSE frame texts.

Chunks are buffered as raw bytes and only decoded once the buffer is safe to
decode: it contains a frame terminator, or it has grown past a threshold and
does not end on the leading byte of a multi-byte UTF-8 sequence. A trailing
incomplete sequence that survives that check is withheld and prepended to the
next chunk, so a character split across two reads is never replaced.
"""

from dataclasses import dataclass
from typing import Any, List, Optional

from answerstream.config.logging import get_logger
from answerstream.config.settings import get_settings

logger = get_logger(__name__)

FRAME_TERMINATOR_BYTES = b"\n\n"
FRAME_TERMINATOR_TEXT = "\n\n"


def is_utf8_sequence_start(byte: int) -> bool:
    """True for the leading byte of a multi-byte UTF-8 sequence (11xxxxxx)."""
    return (byte & 0xC0) == 0xC0


@dataclass
class IngestionStats:
    """Counters for one connection."""

    bytes_received: int = 0
    bytes_decoded: int = 0
    frames_emitted: int = 0
    decode_errors: int = 0


class ByteIngestionLayer:
    """Boundary-safe chunk-to-frame splitter for one connection."""

    def __init__(
        self,
        threshold_bytes: Optional[int] = None,
        recovery_budget: Optional[int] = None,
        answer_id: Optional[str] = None,
    ) -> None:
        settings = get_settings()
        self.threshold_bytes = (
            threshold_bytes if threshold_bytes is not None else settings.ingest_chunk_threshold_bytes
        )
        self.recovery_budget = (
            recovery_budget
            if recovery_budget is not None
            else settings.ingest_partial_sequence_budget
        )
        self.stats = IngestionStats()
        self.logger: Any = logger.bind(component="byte_ingestion", answer_id=answer_id)

        self._bytes = bytearray()
        self._withheld = b""
        self._text = ""

    def feed(self, chunk: bytes) -> List[str]:
        """Accept one network chunk and return every frame it completes."""
        if not chunk:
            return []
        self.stats.bytes_received += len(chunk)
        self._bytes.extend(chunk)

        ready = self._take_ready_bytes()
        if ready:
            self._text += self._decode(ready)
        return self._drain_frames(final=False)

    def finish(self) -> List[str]:
        """Decode whatever is left and return the remaining frames.

        Called once the transport has closed. An unterminated trailing frame
        is returned as well.
        """
        remaining = self._withheld + bytes(self._bytes)
        self._withheld = b""
        self._bytes.clear()
        if remaining:
            self.stats.bytes_decoded += len(remaining)
            try:
                self._text += remaining.decode("utf-8")
            except UnicodeDecodeError as e:
                self._record_decode_error(remaining, e)
                self._text += remaining.decode("utf-8", errors="replace")
        return self._drain_frames(final=True)

    @property
    def buffered_bytes(self) -> int:
        """Bytes received but not yet decoded."""
        return len(self._bytes) + len(self._withheld)

    def _take_ready_bytes(self) -> bytes:
        buffer = self._bytes
        if buffer.endswith(FRAME_TERMINATOR_BYTES):
            ready = bytes(buffer)
            buffer.clear()
            return ready

        if len(buffer) >= self.threshold_bytes and not is_utf8_sequence_start(buffer[-1]):
            ready = bytes(buffer)
            buffer.clear()
            return ready

        # A terminator is ASCII, so the prefix through it never splits a character
        cut = buffer.rfind(FRAME_TERMINATOR_BYTES)
        if cut >= 0:
            end = cut + len(FRAME_TERMINATOR_BYTES)
            ready = bytes(buffer[:end])
            del buffer[:end]
            return ready

        return b""

    def _decode(self, data: bytes) -> str:
        data = self._withheld + data
        self._withheld = b""
        self.stats.bytes_decoded += len(data)

        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as e:
            tail = len(data) - e.start
            if e.reason == "unexpected end of data" and tail <= self.recovery_budget:
                self._withheld = data[e.start :]
                self.stats.bytes_decoded -= tail
                return data[: e.start].decode("utf-8")

            self._record_decode_error(data, e)
            return data.decode("utf-8", errors="replace")

    def _record_decode_error(self, data: bytes, error: UnicodeDecodeError) -> None:
        self.stats.decode_errors += 1
        self.logger.warning(
            "Invalid UTF-8 in stream, decoding with replacement",
            position=error.start,
            reason=error.reason,
            chunk_size=len(data),
        )

    def _drain_frames(self, final: bool) -> List[str]:
        parts = self._text.split(FRAME_TERMINATOR_TEXT)
        self._text = "" if final else parts.pop()

        frames = [part for part in parts if part.strip()]
        self.stats.frames_emitted += len(frames)
        return frames
