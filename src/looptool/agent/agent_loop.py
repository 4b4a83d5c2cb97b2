"""Main orchestration loop for looptool."""

from __future__ import annotations

import json
import logging
from typing import List

from pydantic import (
    BaseModel,
    Field,
)

from looptool.agent.tool_executor import (
    ToolExecutionError,
    ToolRegistry,
)
from looptool.agent.transport import ChatTransport
from looptool.config import DEFAULT_SYSTEM_PROMPT
from looptool.core.schema import (
    ChatRequest,
    Message,
    ToolCall,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 10


class IterationBudgetExceeded(RuntimeError):
    """Raised when the model keeps calling tools past the iteration budget."""

    def __init__(self, iterations: int, messages: List[Message]) -> None:
        self.iterations = iterations
        self.messages = messages
        super().__init__(f"max iterations reached ({iterations}) without a final answer")


class AgentResult(BaseModel):
    """Outcome of a successful run."""

    answer: str
    iterations: int = Field(..., description="Number of tool-calling rounds before the answer")
    messages: List[Message] = Field(default_factory=list)


def error_payload(exc: ToolExecutionError) -> str:
    """JSON text fed back to the model when a tool call fails."""
    return json.dumps({"error": str(exc), "kind": exc.kind}, ensure_ascii=False)


# ---------------------------------------------------------------------------
# Agent Loop
# ---------------------------------------------------------------------------
class AgentLoop:
    """
    Alternates between the model and the tools until the model answers.

    Each run owns its own conversation; the transport and the registry may be shared between
    loops, the registry being read-only once built.
    """

    def __init__(
        self,
        transport: ChatTransport,
        registry: ToolRegistry,
        model: str,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        debug_render_only: bool = False,
    ) -> None:
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self.transport = transport
        self.registry = registry
        self.model = model
        self.max_iterations = max_iterations
        self.system_prompt = system_prompt
        self.debug_render_only = debug_render_only

    def run(self, user_message: str) -> AgentResult:
        """
        Answer *user_message*, calling tools as the model requests.

        Raises
        ------
        TransportError
            If a chat request fails.  There is no retry.
        IterationBudgetExceeded
            If the model still asks for tools after ``max_iterations`` rounds.
        """
        messages: List[Message] = [
            Message(role="system", content=self.system_prompt),
            Message(role="user", content=user_message),
        ]

        for iteration in range(self.max_iterations):
            request = ChatRequest(
                model=self.model,
                messages=messages,
                tools=self.registry.schemas(),
                stream=False,
                debug_render_only=self.debug_render_only or None,
            )
            reply = self.transport.chat(request).message

            if not reply.has_tool_calls:
                logger.info("assistant: %s", reply.content)
                messages.append(reply)
                return AgentResult(answer=reply.content, iterations=iteration, messages=messages)

            logger.info("assistant wants to call %d tool(s)", len(reply.tool_calls or []))
            messages.append(reply)
            for call in reply.tool_calls or []:
                messages.append(self._dispatch(call))

        raise IterationBudgetExceeded(self.max_iterations, messages)

    def _dispatch(self, call: ToolCall) -> Message:
        name = call.function.name
        logger.info("calling tool: %s", name)
        logger.info("args: %s", json.dumps(call.function.arguments, ensure_ascii=False))
        try:
            result = self.registry.execute(name, call.function.arguments)
        except ToolExecutionError as exc:
            logger.warning("Tool '%s' failed: %s", name, exc)
            result = error_payload(exc)
        logger.info("    Result: %s", result)
        return Message(role="tool", content=result, tool_name=name)
