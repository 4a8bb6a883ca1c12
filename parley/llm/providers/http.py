"""
HTTP transport for chat-completion endpoints.

Works with any endpoint that speaks one of the supported dialects over
HTTP POST -- OpenAI itself, Azure OpenAI, vLLM, LM Studio, LocalAI, etc.

Dependencies: ``httpx`` (async HTTP client).  No ``openai`` SDK needed.
"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator

import httpx

from parley.config import DEFAULT_API_URL, ModelConfiguration
from parley.errors import BackendError, TransportError
from parley.llm.dialects import Dialect
from parley.llm.frame_decoder import iter_sse_lines
from parley.llm.providers.base import Transport
from parley.llm.types import ChatMessage

logger = logging.getLogger(__name__)


def _is_retryable(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


class HttpTransport(Transport):
    """
    Transport over a shared ``httpx.AsyncClient``.

    Parameters
    ----------
    dialect:
        Wire dialect used to build request bodies.
    config:
        Model parameters carried into every request.
    api_key:
        Bearer token.  Pass ``""`` for unauthenticated local endpoints.
    url:
        Full endpoint URL, e.g.
        ``"https://api.openai.com/v1/chat/completions"``.
    timeout:
        HTTP request timeout in seconds.
    max_retries:
        Number of automatic retries on transient HTTP errors (5xx, 429) and
        connection failures.  Streams are only retried before the first
        line has been delivered.
    client:
        Optional pre-built ``httpx.AsyncClient`` (proxies, custom
        transports).  Owned by the caller when given.
    """

    def __init__(
        self,
        dialect: Dialect,
        config: ModelConfiguration,
        api_key: str = "",
        url: str = DEFAULT_API_URL,
        timeout: float = 120.0,
        max_retries: int = 2,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(dialect, config)
        self._url = url
        self._api_key = api_key
        self._max_retries = max_retries
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    # ------------------------------------------------------------------
    # Transport interface
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return "http"

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def complete(
        self,
        messages: list[ChatMessage],
        functions: list[dict] | None = None,
    ) -> Any:
        body = self._build_body(messages, functions, stream=False)
        headers = self._build_headers(stream=False)

        last_error: Exception | None = None
        for attempt in range(1 + self._max_retries):
            try:
                resp = await self._client.post(self._url, json=body, headers=headers)
            except httpx.TransportError as exc:
                last_error = exc
                logger.warning("Request failed (attempt %d): %s", attempt + 1, exc)
                continue

            if _is_retryable(resp.status_code) and attempt < self._max_retries:
                logger.warning("HTTP %d, retrying (attempt %d)", resp.status_code, attempt + 1)
                last_error = None
                continue

            self._check_status(resp.status_code, resp.content)
            try:
                return resp.json()
            except json.JSONDecodeError as exc:
                raise BackendError(f"Response body is not JSON: {exc}") from exc

        raise TransportError(f"Request failed after {1 + self._max_retries} attempts: {last_error}") from last_error

    async def stream(
        self,
        messages: list[ChatMessage],
        functions: list[dict] | None = None,
    ) -> AsyncIterator[str]:
        body = self._build_body(messages, functions, stream=True)
        headers = self._build_headers(stream=True)

        last_error: Exception | None = None
        for attempt in range(1 + self._max_retries):
            delivered = False
            try:
                async with self._client.stream(
                    "POST", self._url, json=body, headers=headers
                ) as response:
                    if _is_retryable(response.status_code) and attempt < self._max_retries:
                        # Read body so the connection is released.
                        await response.aread()
                        logger.warning(
                            "HTTP %d, retrying (attempt %d)", response.status_code, attempt + 1
                        )
                        last_error = None
                        continue

                    if response.status_code >= 400:
                        self._check_status(response.status_code, await response.aread())

                    async for line in iter_sse_lines(response.aiter_bytes()):
                        delivered = True
                        yield line
                    return  # success
            except httpx.TransportError as exc:
                if delivered:
                    raise TransportError(f"Stream interrupted: {exc}") from exc
                last_error = exc
                logger.warning("Stream request failed (attempt %d): %s", attempt + 1, exc)

        raise TransportError(f"Stream request failed after {1 + self._max_retries} attempts: {last_error}") from last_error

    # ------------------------------------------------------------------
    # Request building
    # ------------------------------------------------------------------

    def _build_headers(self, stream: bool) -> dict[str, str]:
        headers: dict[str, str] = {
            "Content-Type": "application/json",
            "Accept": "text/event-stream" if stream else "application/json",
        }
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _build_body(
        self,
        messages: list[ChatMessage],
        functions: list[dict] | None,
        stream: bool,
    ) -> dict:
        body = self.dialect.build_body(messages, self.config, stream=stream, functions=functions)
        logger.info(
            "REQUEST: dialect=%s model=%s functions=%d messages=%d stream=%s api_key=%s...",
            self.dialect.name,
            self.config.model,
            len(functions) if functions else 0,
            len(messages),
            stream,
            self._api_key[:12] if self._api_key else "(none)",
        )
        return body

    # ------------------------------------------------------------------
    # Error mapping
    # ------------------------------------------------------------------

    @staticmethod
    def _check_status(status_code: int, content: bytes) -> None:
        """Map error statuses to ``BackendError`` or ``TransportError``."""
        if status_code < 400:
            return
        try:
            data = json.loads(content)
        except (json.JSONDecodeError, UnicodeDecodeError):
            data = None
        error = data.get("error") if isinstance(data, dict) else None
        if isinstance(error, dict):
            raise BackendError(str(error.get("message", "")), error.get("type"))
        if isinstance(error, str):
            raise BackendError(error)
        raise TransportError(f"HTTP {status_code}")
