"""Incremental decoder for newline-delimited JSON from the device link."""

from __future__ import annotations

import json
import logging
from typing import Iterator

from . import constants
from .events import TelemetryRecord

LOGGER = logging.getLogger(__name__)


class FrameDecoder:
    """Turns an unbounded byte stream into telemetry records.

    Bytes are buffered until a newline. Each line is trimmed and kept only
    when it starts with ``{`` and parses as a JSON object; everything else
    (boot banners, partial writes, line noise) is dropped without raising.

    The buffer is bounded by ``max_line_bytes``. When a line grows past the
    bound it is discarded and input is skipped up to the next newline, so
    the tail of an oversize line is never mistaken for a record.
    """

    def __init__(self, max_line_bytes: int = constants.DEFAULT_MAX_LINE_BYTES) -> None:
        if max_line_bytes <= 0:
            raise ValueError("max_line_bytes must be positive")
        self.max_line_bytes = max_line_bytes
        self._buffer = bytearray()
        self._skipping = False
        self.lines_discarded = 0
        self.overflows = 0

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet terminated by a newline."""
        return len(self._buffer)

    def reset(self) -> None:
        """Drop any partial line, e.g. after the link was reopened."""
        self._buffer.clear()
        self._skipping = False

    def feed(self, data: bytes) -> Iterator[TelemetryRecord]:
        """Consume ``data`` and yield every record completed by it.

        The returned iterator is lazy; the chunk is fully buffered before the
        first record is produced, so abandoning the iterator early loses no
        input for the next call.
        """

        lines = self._split(data)
        return self._decode_lines(lines)

    def _split(self, data: bytes) -> list[bytes]:
        lines: list[bytes] = []
        start = 0
        while True:
            newline = data.find(b"\n", start)
            if newline < 0:
                break
            segment = data[start:newline]
            start = newline + 1
            if self._skipping:
                self._skipping = False
                self._buffer.clear()
                continue
            self._buffer.extend(segment)
            if len(self._buffer) > self.max_line_bytes:
                self._overflow()
                self._skipping = False
                continue
            lines.append(bytes(self._buffer))
            self._buffer.clear()

        if not self._skipping:
            self._buffer.extend(data[start:])
            if len(self._buffer) > self.max_line_bytes:
                self._overflow()
                self._skipping = True
        return lines

    def _overflow(self) -> None:
        self.overflows += 1
        LOGGER.debug(
            "Dropping %d buffered bytes without a line terminator", len(self._buffer)
        )
        self._buffer.clear()

    def _decode_lines(self, lines: list[bytes]) -> Iterator[TelemetryRecord]:
        for raw_line in lines:
            record = self.decode_line(raw_line)
            if record is not None:
                yield record

    def decode_line(self, raw_line: bytes) -> TelemetryRecord | None:
        """Decode a single line, returning ``None`` when it is not a record."""

        text = raw_line.decode("utf-8", errors="replace").strip()
        if not text.startswith("{"):
            if text:
                self.lines_discarded += 1
            return None

        try:
            payload = json.loads(text)
        except json.JSONDecodeError:
            self.lines_discarded += 1
            LOGGER.debug("Discarding malformed line: %r", text[:80])
            return None

        return TelemetryRecord.from_line(text, payload)
