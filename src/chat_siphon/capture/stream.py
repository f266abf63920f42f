"""Reassembly of event-stream response bodies into one structured payload."""

import codecs
import json
from collections.abc import Iterable
from typing import Any

from chat_siphon.logging import get_logger

logger = get_logger("stream")

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"


class StreamReconstructor:
    """Incrementally parses `data:` lines out of a chunked event stream.

    Chunks may split lines (and multi-byte characters) anywhere; the
    trailing partial line is held back until the next chunk or finish().
    Records that are not valid JSON are dropped.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self.records: list[Any] = []

    def feed(self, chunk: bytes) -> None:
        """Consume one body chunk."""
        self._buffer += self._decoder.decode(chunk)
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        for line in lines:
            self._parse_line(line)

    def finish(self) -> dict[str, Any] | None:
        """Flush the buffer and return the aggregated payload.

        Returns:
            {"streaming": True, "records": [...]} or None if nothing parsed
        """
        self._buffer += self._decoder.decode(b"", final=True)
        if self._buffer:
            self._parse_line(self._buffer)
            self._buffer = ""

        if not self.records:
            return None
        return {"streaming": True, "records": self.records}

    def _parse_line(self, line: str) -> None:
        line = line.rstrip("\r")
        if not line.startswith(DATA_PREFIX):
            return
        data = line[len(DATA_PREFIX):]
        if data == DONE_SENTINEL:
            return
        try:
            self.records.append(json.loads(data))
        except ValueError:
            logger.debug("Dropping malformed stream record: length=%d", len(data))


def reconstruct_stream(chunks: Iterable[bytes]) -> dict[str, Any] | None:
    """Read an event-stream body to the end and aggregate its records.

    A failure while reading the body abandons this reconstruction and
    returns None; it never propagates to the caller.

    Args:
        chunks: Iterable of raw body chunks

    Returns:
        Aggregated payload, or None if the read failed or no record parsed
    """
    reconstructor = StreamReconstructor()
    try:
        for chunk in chunks:
            reconstructor.feed(chunk)
    except Exception:
        logger.debug("Stream read error, abandoning capture", exc_info=True)
        return None
    return reconstructor.finish()
