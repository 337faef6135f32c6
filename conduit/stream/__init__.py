"""Stream subsystem -- line demultiplexing, unified chunks, accumulation, transport."""

from conduit.stream.accumulator import (
    AccumulatedMessage,
    MessageAccumulator,
    extract_preview_url,
    extract_sandbox_id,
    extract_written_files,
    user_message,
)
from conduit.stream.lines import LineDemultiplexer, iter_records, split_records
from conduit.stream.tool_tracker import ToolCallTracker
from conduit.stream.transport import Frame, FrameEncoder, adapt, encode_frames
from conduit.stream.types import (
    DataChunk,
    ErrorChunk,
    MessageEnd,
    MessageStart,
    ReasoningDelta,
    TextDelta,
    ToolInputDelta,
    ToolResult,
    ToolStart,
    UnifiedChunk,
    Usage,
    chunk_from_dict,
)
from conduit.stream.wire import decode_ndjson, encode_chunk, encode_ndjson, read_chunks

__all__ = [
    "AccumulatedMessage",
    "DataChunk",
    "ErrorChunk",
    "Frame",
    "FrameEncoder",
    "LineDemultiplexer",
    "MessageAccumulator",
    "MessageEnd",
    "MessageStart",
    "ReasoningDelta",
    "TextDelta",
    "ToolCallTracker",
    "ToolInputDelta",
    "ToolResult",
    "ToolStart",
    "UnifiedChunk",
    "Usage",
    "adapt",
    "chunk_from_dict",
    "decode_ndjson",
    "encode_chunk",
    "encode_frames",
    "encode_ndjson",
    "extract_preview_url",
    "extract_sandbox_id",
    "extract_written_files",
    "iter_records",
    "read_chunks",
    "split_records",
    "user_message",
]
