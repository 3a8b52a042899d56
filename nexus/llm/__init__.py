"""LLM subsystem -- SSE framing, chunk decoding, tool-call assembly and the stream transport."""

from nexus.llm.types import (
    ChoiceDelta,
    ChunkDelta,
    ConversationTurn,
    ImageDelta,
    Role,
    StreamHandlers,
    StreamState,
    StreamStatus,
    ToolCall,
    ToolCallFragment,
    Usage,
)
from nexus.llm.errors import ProviderHTTPError, ResumeError, StreamError
from nexus.llm.resume import ResumeStrategy, decide_resume
from nexus.llm.tool_call_assembler import ToolCallAccumulator
from nexus.llm.transport import StreamTransport

__all__ = [
    "ChoiceDelta",
    "ChunkDelta",
    "ConversationTurn",
    "ImageDelta",
    "ProviderHTTPError",
    "ResumeError",
    "ResumeStrategy",
    "Role",
    "StreamError",
    "StreamHandlers",
    "StreamState",
    "StreamStatus",
    "StreamTransport",
    "ToolCall",
    "ToolCallAccumulator",
    "ToolCallFragment",
    "Usage",
    "decide_resume",
]
