"""
Schema definitions for model <-> agent <-> tool messages.

These data models are the contract between the chat transport, the orchestration loop, and the
individual tools.  We keep them separate from runtime logic so they can be imported anywhere without
side-effects.  Field names follow the Ollama ``/api/chat`` wire format.
"""

import json
from typing import (
    Any,
    Dict,
    List,
    Literal,
    Optional,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)

Role = Literal["system", "user", "assistant", "tool"]


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------
class FunctionCall(BaseModel):
    """Name and arguments of a function the model wants to call."""

    model_config = ConfigDict(extra="allow")

    name: str = Field(..., description="Registered tool name")
    arguments: Dict[str, Any] = Field(default_factory=dict, description="Arguments for the tool")

    @field_validator("arguments", mode="before")
    @classmethod
    def _decode_arguments(cls, value: Any) -> Any:
        # OpenAI-style providers send the arguments as a JSON string.
        if value is None or value == "":
            return {}
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except json.JSONDecodeError as exc:
                raise ValueError(f"arguments are not valid JSON: {exc}") from exc
        return value


class ToolCall(BaseModel):
    """A call that the model wants the agent to execute."""

    model_config = ConfigDict(extra="allow")

    function: FunctionCall


class Message(BaseModel):
    """
    One entry of the conversation.

    ``tool_calls`` is only set on assistant messages that request tools, and ``tool_name`` only on
    tool-role messages.  Extra fields sent by the provider (``thinking``, ``images``...) are kept so
    an assistant message can be echoed back exactly as it was received.
    """

    model_config = ConfigDict(extra="allow")

    role: Role
    content: str = ""
    tool_calls: Optional[List[ToolCall]] = None
    tool_name: Optional[str] = None

    @field_validator("content", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @property
    def has_tool_calls(self) -> bool:
        """True when the message requests at least one tool call."""
        return bool(self.tool_calls)


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------
class ToolFunction(BaseModel):
    """Name, description and JSON-schema parameters of a tool."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    parameters: Dict[str, Any] = Field(default_factory=dict)


class ToolDefinition(BaseModel):
    """Tool schema as advertised to the model."""

    model_config = ConfigDict(frozen=True)

    type: Literal["function"] = "function"
    function: ToolFunction

    @property
    def name(self) -> str:
        return self.function.name


# ---------------------------------------------------------------------------
# Transport request / response
# ---------------------------------------------------------------------------
class ChatRequest(BaseModel):
    """Body of a non-streaming chat request."""

    model: str
    messages: List[Message]
    tools: List[ToolDefinition] = Field(default_factory=list)
    stream: bool = False
    debug_render_only: Optional[bool] = Field(None, serialization_alias="_debug_render_only")

    def to_payload(self) -> Dict[str, Any]:
        """Return the JSON-ready request body, omitting unset optional fields."""
        payload = self.model_dump(mode="json", by_alias=True, exclude_none=True)
        if not payload.get("tools"):
            payload.pop("tools", None)
        return payload


class ChatResponse(BaseModel):
    """Response of a non-streaming chat request."""

    model_config = ConfigDict(extra="ignore")

    message: Message
    done: bool = True


# ---------------------------------------------------------------------------
# Command execution
# ---------------------------------------------------------------------------
class CommandExecutionResult(BaseModel):
    """Outcome of one ``run_command`` invocation."""

    model_config = ConfigDict(frozen=True)

    command: str
    working_dir: str
    stdout: str
    stderr: str
    exit_code: int = Field(..., description="Process exit code, -1 when the command timed out")
    duration_ms: int
    success: bool
    error: Optional[str] = None

    @property
    def timed_out(self) -> bool:
        return self.exit_code == -1 and self.error is not None

    def to_json(self) -> str:
        """Compact JSON payload returned to the model."""
        return self.model_dump_json(exclude_none=True)
