"""
Line demultiplexer for JSONL agent output.

Backends write one JSON event per line, but the process pipe hands us
arbitrary fragments: a record may be split across reads, and several records
may arrive in one read.  ``LineDemultiplexer`` keeps exactly one pending
partial line and yields every complete, parseable record.

Blank lines and lines that are not a JSON object are dropped.  Agent CLIs
mix diagnostic noise into their output and that must never end a session.
"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterable, AsyncIterator, Iterable

logger = logging.getLogger(__name__)


class LineDemultiplexer:
    """Turns text fragments into parsed JSON records."""

    def __init__(self) -> None:
        self._buffer = ""
        self.dropped = 0

    @property
    def pending(self) -> str:
        """The incomplete trailing line, if any."""
        return self._buffer

    def feed(self, fragment: str) -> list[dict[str, Any]]:
        """
        Append *fragment* and return the records it completed.

        The last substring after the final newline is held back because it
        may be the first half of a record.
        """
        if not fragment:
            return []
        self._buffer += fragment
        if "\n" not in self._buffer:
            return []

        *complete, self._buffer = self._buffer.split("\n")
        records: list[dict[str, Any]] = []
        for line in complete:
            record = self._parse(line)
            if record is not None:
                records.append(record)
        return records

    def close(self) -> list[dict[str, Any]]:
        """Flush the pending buffer as one final record (if it parses)."""
        line, self._buffer = self._buffer, ""
        record = self._parse(line)
        return [record] if record is not None else []

    def _parse(self, line: str) -> dict[str, Any] | None:
        line = line.strip()
        if not line:
            return None
        try:
            record = json.loads(line)
        except (json.JSONDecodeError, ValueError):
            self.dropped += 1
            logger.debug("Dropping non-JSON line: %s", line[:200])
            return None
        if not isinstance(record, dict):
            self.dropped += 1
            logger.debug("Dropping non-object JSON line: %s", line[:200])
            return None
        return record


def split_records(fragments: Iterable[str]) -> list[dict[str, Any]]:
    """Demultiplex a finite sequence of fragments in one go."""
    demux = LineDemultiplexer()
    records: list[dict[str, Any]] = []
    for fragment in fragments:
        records.extend(demux.feed(fragment))
    records.extend(demux.close())
    return records


async def iter_records(
    fragments: AsyncIterable[str],
) -> AsyncIterator[dict[str, Any]]:
    """
    Async counterpart of ``split_records``.

    Records are yielded as soon as their terminating newline arrives, so the
    consumer controls the pace of reads.
    """
    demux = LineDemultiplexer()
    async for fragment in fragments:
        for record in demux.feed(fragment):
            yield record
    for record in demux.close():
        yield record
