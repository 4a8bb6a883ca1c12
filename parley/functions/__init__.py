"""Function calling -- descriptors, registry, and argument validation."""

from parley.functions.base import (
    CallingMode,
    FunctionDescriptor,
    ValidationStrategy,
    gpt_function,
)
from parley.functions.registry import FunctionRegistry, RegisteredFunction

__all__ = [
    "CallingMode",
    "FunctionDescriptor",
    "FunctionRegistry",
    "RegisteredFunction",
    "ValidationStrategy",
    "gpt_function",
]
