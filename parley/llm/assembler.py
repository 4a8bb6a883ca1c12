"""
Assembles streamed ``ResponseChunk`` events into complete ``ChatMessage``
objects.

Design goals:
  - One message per ``response_index``, allocated by ``BeginResponse``.
  - ``Content`` and ``FunctionCallDelta`` append to the message for their
    index.  An index that was never announced is a precondition violation
    and raises ``InvalidChunkSequence`` -- reordering is the caller's job.
  - ``CloseResponse``, ``PartialData`` and ``Done`` only signal liveness.
  - Output order is the discovery order of response indices.
"""

from __future__ import annotations

from typing import Iterable

from parley.errors import InvalidChunkSequence
from parley.llm.chunks import (
    BeginResponse,
    CloseResponse,
    Content,
    Done,
    FunctionCallDelta,
    PartialData,
    ResponseChunk,
)
from parley.llm.types import ChatMessage, FunctionCall, Role


class ChunkAssembler:
    """Left-fold over an ordered chunk sequence."""

    def __init__(self) -> None:
        self._buf: dict[int, dict] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def feed(self, chunk: ResponseChunk) -> None:
        if isinstance(chunk, BeginResponse):
            self._buf.setdefault(
                chunk.response_index,
                {"role": chunk.role, "content": [], "fn_name": None, "fn_args": []},
            )
        elif isinstance(chunk, Content):
            self._require(chunk.response_index)["content"].append(chunk.delta)
        elif isinstance(chunk, FunctionCallDelta):
            buf = self._require(chunk.response_index)
            if buf["role"] is not Role.ASSISTANT:
                raise InvalidChunkSequence(
                    f"Function call streamed for {buf['role'].value} response {chunk.response_index}"
                )
            buf["fn_name"] = (buf["fn_name"] or "") + chunk.name_delta
            buf["fn_args"].append(chunk.arguments_delta)
        elif isinstance(chunk, CloseResponse):
            self._require(chunk.response_index)
        elif isinstance(chunk, (Done, PartialData)):
            pass
        else:
            raise TypeError(f"Not a response chunk: {chunk!r}")

    def finalize(self) -> list[ChatMessage]:
        """Return the assembled messages in discovery order."""
        messages: list[ChatMessage] = []
        for buf in self._buf.values():
            content: str | None = "".join(buf["content"])
            function_call = None
            if buf["fn_name"] is not None:
                function_call = FunctionCall(name=buf["fn_name"], arguments="".join(buf["fn_args"]))
                if not content:
                    content = None
            messages.append(ChatMessage(role=buf["role"], content=content, function_call=function_call))
        return messages

    def reset(self) -> None:
        self._buf.clear()

    @classmethod
    def assemble(cls, chunks: Iterable[ResponseChunk]) -> list[ChatMessage]:
        assembler = cls()
        for chunk in chunks:
            assembler.feed(chunk)
        return assembler.finalize()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require(self, idx: int) -> dict:
        buf = self._buf.get(idx)
        if buf is None:
            raise InvalidChunkSequence(
                f"Chunk for response {idx} arrived before its BeginResponse"
            )
        return buf
