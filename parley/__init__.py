"""parley -- conversations with chat-completion services."""

from parley.client import Client
from parley.config import ModelConfiguration, ParleyConfig, load_config
from parley.conversation import Conversation, ConversationState, Dispatcher
from parley.functions import (
    CallingMode,
    FunctionDescriptor,
    FunctionRegistry,
    ValidationStrategy,
    gpt_function,
)
from parley.llm import ChatMessage, ChunkAssembler, CompletionResult, FrameDecoder, Role

__version__ = "0.1.0"

__all__ = [
    "CallingMode",
    "ChatMessage",
    "ChunkAssembler",
    "Client",
    "CompletionResult",
    "Conversation",
    "ConversationState",
    "Dispatcher",
    "FrameDecoder",
    "FunctionDescriptor",
    "FunctionRegistry",
    "ModelConfiguration",
    "ParleyConfig",
    "Role",
    "ValidationStrategy",
    "gpt_function",
    "load_config",
]
