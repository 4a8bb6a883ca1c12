"""Chat-completion transports."""

from parley.llm.providers.base import Transport
from parley.llm.providers.http import HttpTransport

__all__ = ["HttpTransport", "Transport"]
