"""NDJSON encoding of the unified chunk stream."""

from __future__ import annotations

import json
import logging
from typing import AsyncIterable, AsyncIterator, Iterable

from conduit.stream.lines import iter_records, split_records
from conduit.stream.types import UnifiedChunk, chunk_from_dict

logger = logging.getLogger(__name__)


def encode_chunk(chunk: UnifiedChunk) -> str:
    """One chunk as a single newline-terminated JSON line."""
    return json.dumps(chunk.to_dict(), ensure_ascii=False, separators=(",", ":")) + "\n"


def encode_ndjson(chunks: Iterable[UnifiedChunk]) -> str:
    return "".join(encode_chunk(c) for c in chunks)


def decode_ndjson(text: str) -> list[UnifiedChunk]:
    """Decode a complete NDJSON document, skipping unrecognised records."""
    chunks: list[UnifiedChunk] = []
    for record in split_records([text]):
        try:
            chunks.append(chunk_from_dict(record))
        except ValueError as e:
            logger.debug("Skipping invalid chunk record: %s", e)
    return chunks


async def read_chunks(fragments: AsyncIterable[str]) -> AsyncIterator[UnifiedChunk]:
    """Decode chunks from a fragmented NDJSON text stream."""
    async for record in iter_records(fragments):
        try:
            yield chunk_from_dict(record)
        except ValueError as e:
            logger.debug("Skipping invalid chunk record: %s", e)
