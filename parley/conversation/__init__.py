"""Conversation management: history, dispatch, and persistence."""

from parley.conversation.conversation import Conversation
from parley.conversation.dispatcher import DispatchState, Dispatcher
from parley.conversation.persistence import load_history_json, save_history_json
from parley.conversation.state import ConversationState
from parley.conversation.store import HistoryStore

__all__ = [
    "Conversation",
    "ConversationState",
    "DispatchState",
    "Dispatcher",
    "HistoryStore",
    "load_history_json",
    "save_history_json",
]
