"""
Exception taxonomy.

Transport and backend failures propagate to the caller of a send.
Function validation failures are recovered inside the dispatcher according
to the configured ``ValidationStrategy``.
"""

from __future__ import annotations

from parley.types import ErrorCode


class ParleyError(Exception):
    """Base class for every error raised by parley."""

    error_code: str = ""


class TransportError(ParleyError):
    """Network or HTTP-layer failure.  Not retried by the core."""

    error_code = ErrorCode.TRANSPORT_ERROR


class BackendError(ParleyError):
    """The service reported an application-level failure (e.g. overload)."""

    error_code = ErrorCode.BACKEND_ERROR

    def __init__(self, message: str, error_type: str | None = None) -> None:
        super().__init__(f"Server returned error: {message}")
        self.message = message
        self.error_type = error_type


class MalformedStreamError(ParleyError):
    """Protocol violation in the event stream.  The stream is aborted."""

    error_code = ErrorCode.MALFORMED_STREAM


class InvalidChunkSequence(ParleyError):
    """A chunk referenced a response index that was never announced."""

    error_code = ErrorCode.INVALID_CHUNK_SEQUENCE


class DuplicateFunction(ParleyError, ValueError):
    error_code = ErrorCode.DUPLICATE_FUNCTION

    def __init__(self, name: str) -> None:
        super().__init__(f"Function already registered: {name}")
        self.name = name


class FunctionLoopLimitExceeded(ParleyError):
    error_code = ErrorCode.FUNCTION_LOOP_LIMIT

    def __init__(self, rounds: int) -> None:
        super().__init__(f"Function loop exceeded {rounds} rounds")
        self.rounds = rounds


# ---------------------------------------------------------------------------
# Function validation
# ---------------------------------------------------------------------------


class FunctionValidationError(ParleyError):
    """A model-requested function call could not be carried out."""

    def __init__(self, function_name: str, detail: str) -> None:
        super().__init__(detail)
        self.function_name = function_name
        self.detail = detail


class InvalidFunction(FunctionValidationError):
    error_code = ErrorCode.INVALID_FUNCTION

    def __init__(self, function_name: str) -> None:
        super().__init__(function_name, f"Unknown function: {function_name}")


class InvalidArguments(FunctionValidationError):
    error_code = ErrorCode.INVALID_ARGUMENTS


class InnerError(FunctionValidationError):
    """The invoker itself raised.  ``text`` is the invoker's own error text."""

    error_code = ErrorCode.INNER_ERROR

    def __init__(self, function_name: str, text: str) -> None:
        super().__init__(function_name, text)
        self.text = text
