from dataclasses import dataclass


class ErrorCode:
    INVALID_FUNCTION = "invalid_function"
    INVALID_ARGUMENTS = "invalid_arguments"
    INNER_ERROR = "inner_error"
    DUPLICATE_FUNCTION = "duplicate_function"
    BACKEND_ERROR = "backend_error"
    TRANSPORT_ERROR = "transport_error"
    MALFORMED_STREAM = "malformed_stream"
    INVALID_CHUNK_SEQUENCE = "invalid_chunk_sequence"
    FUNCTION_LOOP_LIMIT = "function_loop_limit"


@dataclass
class FunctionOutcome:
    name: str
    success: bool
    content: str
    error: str | None = None
    error_code: str | None = None
