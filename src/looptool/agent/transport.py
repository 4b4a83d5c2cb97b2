"""
Chat transport for looptool.

This module is the only place that *directly* talks to an LLM.  Everything else (agent loop, tools)
stays model-agnostic: the loop hands over a :class:`ChatRequest` and gets back a
:class:`ChatResponse` carrying either a final message or tool calls.

Out of the box we speak the Ollama ``/api/chat`` protocol over httpx.  Additional providers can be
added by subclassing :class:`ChatTransport` and registering via :func:`register_transport`.

There is no retry: any failure is raised as :class:`TransportError` and ends the current run.
"""

import json
import logging
import sys
from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    Any,
    Callable,
    Optional,
    TextIO,
    Type,
)

import httpx
from pydantic import ValidationError

from looptool.config import settings
from looptool.core.schema import (
    ChatRequest,
    ChatResponse,
    Message,
)

logger = logging.getLogger(__name__)

DEBUG_RENDER_REPLY = "this is a debug message"


class TransportError(RuntimeError):
    """
    Raised when a chat request fails: network error, non-2xx status or an undecodable body.

    Attributes:
        status_code: HTTP status of the response, or None if no response was received.
        body: Response body (or error text) for diagnostics.
    """

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = "") -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(message)


# ---------------------------------------------------------------------------
# Registry helpers
# ---------------------------------------------------------------------------
_TRANSPORT_REGISTRY: dict[str, Type["ChatTransport"]] = {}


def register_transport(name: str) -> Callable:
    """Decorator to register a transport class under *name*."""

    def wrapper(cls: Type["ChatTransport"]) -> Type["ChatTransport"]:
        _TRANSPORT_REGISTRY[name] = cls
        return cls

    return wrapper


def load_transport(name: str | None = None, **kwargs: Any) -> "ChatTransport":
    """
    Factory that returns an instantiated transport.

    Fallback order:
    1. *name* arg
    2. ``settings.TRANSPORT`` env option
    3. default: ``"ollama"``

    Extra keyword arguments go to the transport constructor.
    """
    target = name or getattr(settings, "TRANSPORT", "ollama")
    cls = _TRANSPORT_REGISTRY.get(target.lower())
    if cls is None:
        raise ValueError(f"Transport '{target}' is not registered.")
    return cls(**kwargs)


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------
class ChatTransport(ABC):
    """Sends a conversation plus tool definitions and returns the model's reply."""

    @abstractmethod
    def chat(self, request: ChatRequest) -> ChatResponse:
        """Return the assistant message for *request* or raise :class:`TransportError`."""

    def close(self) -> None:
        """Release any held connections."""


# ---------------------------------------------------------------------------
# Concrete transports
# ---------------------------------------------------------------------------
@register_transport("ollama")
class OllamaTransport(ChatTransport):
    """Ollama ``/api/chat`` transport with httpx and Pydantic validation."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        client: httpx.Client | None = None,
        debug_stream: TextIO | None = None,
    ) -> None:
        self.base_url = (base_url or settings.OLLAMA_HOST).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.REQUEST_TIMEOUT
        self._client = client or httpx.Client(timeout=self.timeout)
        self._debug_stream = debug_stream or sys.stdout

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/api/chat"

    def chat(self, request: ChatRequest) -> ChatResponse:
        """POST *request* to the chat endpoint and validate the reply."""
        payload = self._client_payload(request)
        try:
            resp = self._client.post(
                self.endpoint, content=payload, headers={"Content-Type": "application/json"}
            )
        except httpx.HTTPError as e:
            logger.error("Chat request error: %s", str(e))
            raise TransportError(f"post request: {e}", body=str(e)) from e

        if not resp.is_success:
            raise TransportError(
                f"unexpected status {resp.status_code}: {resp.text}",
                status_code=resp.status_code,
                body=resp.text,
            )

        if request.debug_render_only:
            self._debug_stream.write(resp.text)
            self._debug_stream.flush()
            return ChatResponse(message=Message(role="assistant", content=DEBUG_RENDER_REPLY))

        try:
            chat_resp = ChatResponse.model_validate_json(resp.content)
        except ValidationError as e:
            logger.error("Failed to parse chat response: %s", e)
            raise TransportError(
                f"decode response: {e}", status_code=resp.status_code, body=resp.text
            ) from e

        logger.debug("Chat response: %s", chat_resp.message.model_dump(exclude_none=True))
        return chat_resp

    def close(self) -> None:
        self._client.close()

    @staticmethod
    def _client_payload(request: ChatRequest) -> bytes:
        body = json.dumps(request.to_payload(), ensure_ascii=False).encode("utf-8")
        logger.info("context length: %d", len(body))
        return body
