"""LLM subsystem -- wire dialects, frame decoding, and chunk assembly."""

from parley.llm.assembler import ChunkAssembler
from parley.llm.chunks import (
    BeginResponse,
    CloseResponse,
    Content,
    Done,
    FunctionCallDelta,
    PartialData,
    ResponseChunk,
)
from parley.llm.dialects import CurrentDialect, Dialect, LegacyDialect, get_dialect
from parley.llm.frame_decoder import FrameDecoder, iter_sse_lines
from parley.llm.types import (
    ChatMessage,
    CompletionResult,
    FunctionCall,
    Role,
    TokenUsage,
)

__all__ = [
    "BeginResponse",
    "ChatMessage",
    "ChunkAssembler",
    "CloseResponse",
    "CompletionResult",
    "Content",
    "CurrentDialect",
    "Dialect",
    "Done",
    "FrameDecoder",
    "FunctionCall",
    "FunctionCallDelta",
    "LegacyDialect",
    "PartialData",
    "ResponseChunk",
    "Role",
    "TokenUsage",
    "get_dialect",
    "iter_sse_lines",
]
