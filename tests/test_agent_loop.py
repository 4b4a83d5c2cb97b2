"""Tests for the agent loop state machine, driven by a scripted transport."""

import json
from typing import (
    Any,
    Dict,
    List,
    Mapping,
)

import pytest

from looptool.agent.agent_loop import (
    AgentLoop,
    IterationBudgetExceeded,
)
from looptool.agent.tool_executor import (
    ToolExecutionError,
    ToolRegistry,
)
from looptool.agent.transport import (
    ChatTransport,
    TransportError,
)
from looptool.core.schema import (
    ChatRequest,
    ChatResponse,
    Message,
)
from looptool.tools import build_registry
from looptool.tools.command import (
    CommandExecutor,
    CommandPolicy,
    StaticConfirmer,
)


class ScriptedTransport(ChatTransport):
    """Replays canned assistant messages and records every request."""

    def __init__(self, replies: List[Message]) -> None:
        self.replies = list(replies)
        self.requests: List[ChatRequest] = []

    def chat(self, request: ChatRequest) -> ChatResponse:
        self.requests.append(request.model_copy(deep=True))
        if not self.replies:
            raise AssertionError("unexpected chat call")
        return ChatResponse(message=self.replies.pop(0))


class FailingTransport(ChatTransport):
    def __init__(self) -> None:
        self.calls = 0

    def chat(self, request: ChatRequest) -> ChatResponse:
        self.calls += 1
        raise TransportError("unexpected status 500: boom", status_code=500, body="boom")


def _tool_calls(*calls: tuple) -> Message:
    return Message.model_validate(
        {
            "role": "assistant",
            "content": "",
            "tool_calls": [{"function": {"name": name, "arguments": args}} for name, args in calls],
        }
    )


def _answer(text: str) -> Message:
    return Message(role="assistant", content=text)


def _registry() -> ToolRegistry:
    executor = CommandExecutor(
        policy=CommandPolicy(require_confirm=True), confirmer=StaticConfirmer(False)
    )
    return build_registry(executor)


def test_final_answer_without_tools() -> None:
    """A reply without tool calls ends the run after one request."""

    transport = ScriptedTransport([_answer("hello there")])
    result = AgentLoop(transport, _registry(), model="m").run("hi")

    assert result.answer == "hello there"
    assert result.iterations == 0
    assert len(transport.requests) == 1

    request = transport.requests[0]
    assert request.model == "m"
    assert request.stream is False
    assert [m.role for m in request.messages] == ["system", "user"]
    assert request.messages[1].content == "hi"
    assert [t.name for t in request.tools] == _registry().names()


def test_two_tool_calls_in_one_turn() -> None:
    """Tool results follow the assistant message in the order the calls were made."""

    transport = ScriptedTransport(
        [
            _tool_calls(("add_numbers", {"a": 2, "b": 2}), ("get_weather", {"city": "Rijeka"})),
            _answer("2+2 is 4 and it is 18°C in Rijeka"),
        ]
    )
    result = AgentLoop(transport, _registry(), model="m").run(
        "what is 2+2 and what is the weather in Rijeka"
    )

    assert [m.role for m in result.messages] == [
        "system", "user", "assistant", "tool", "tool", "assistant",
    ]  # fmt: skip
    assert len(result.messages[2].tool_calls) == 2
    assert json.loads(result.messages[3].content) == {"result": 4}
    assert result.messages[3].tool_name == "add_numbers"
    assert json.loads(result.messages[4].content)["city"] == "Rijeka"
    assert result.messages[4].tool_name == "get_weather"
    assert result.iterations == 1

    # the second request carries the whole conversation so far
    second = transport.requests[1]
    assert [m.role for m in second.messages] == ["system", "user", "assistant", "tool", "tool"]


def test_tool_messages_match_tool_calls_each_iteration() -> None:
    """Each round appends exactly one tool message per call."""

    transport = ScriptedTransport(
        [
            _tool_calls(("ping", {"hostname_or_ip": "a"})),
            _tool_calls(("ping", {"hostname_or_ip": "b"}), ("ping", {"hostname_or_ip": "c"}),
                        ("get_time", {"timezone": "UTC"})),
            _answer("done"),
        ]
    )  # fmt: skip
    result = AgentLoop(transport, _registry(), model="m").run("go")

    roles = [m.role for m in result.messages]
    assert roles == ["system", "user", "assistant", "tool", "assistant", "tool", "tool", "tool",
                     "assistant"]  # fmt: skip
    assert result.iterations == 2


def test_unknown_tool_is_fed_back() -> None:
    """An unregistered tool becomes an error payload; the loop carries on."""

    transport = ScriptedTransport([_tool_calls(("launch_rockets", {"count": 3})), _answer("sorry")])
    result = AgentLoop(transport, _registry(), model="m").run("launch")

    payload = json.loads(result.messages[3].content)
    assert payload == {"error": "unknown tool: launch_rockets", "kind": "unknown_tool"}
    assert result.answer == "sorry"


def test_denied_command_is_fed_back() -> None:
    """A refused command does not abort the loop."""

    transport = ScriptedTransport(
        [_tool_calls(("run_command", {"command": "rm -rf build"})), _answer("ok, not deleting")]
    )
    result = AgentLoop(transport, _registry(), model="m").run("clean up")

    payload = json.loads(result.messages[3].content)
    assert payload["kind"] == "permission_denied"
    assert payload["error"] == "command execution denied by user"
    assert result.answer == "ok, not deleting"


def test_handler_error_then_next_call_still_runs() -> None:
    """A failing call does not stop later calls in the same turn."""

    registry = ToolRegistry()
    seen: List[str] = []

    def failing(arguments: Mapping[str, Any]) -> str:
        seen.append("failing")
        raise ToolExecutionError("cannot open file")

    def working(arguments: Mapping[str, Any]) -> str:
        seen.append("working")
        return "fine"

    registry.register("failing", "fails", {"type": "object"}, failing)
    registry.register("working", "works", {"type": "object"}, working)

    transport = ScriptedTransport([_tool_calls(("failing", {}), ("working", {})), _answer("ok")])
    result = AgentLoop(transport, registry, model="m").run("go")

    assert seen == ["failing", "working"]
    assert json.loads(result.messages[3].content)["error"] == "cannot open file"
    assert result.messages[4].content == "fine"


def test_iteration_budget_exceeded() -> None:
    """Ten rounds of tool calls end the run without an eleventh request."""

    replies = [_tool_calls(("ping", {"hostname_or_ip": str(i)})) for i in range(20)]
    transport = ScriptedTransport(replies)

    with pytest.raises(IterationBudgetExceeded) as excinfo:
        AgentLoop(transport, _registry(), model="m").run("loop forever")

    assert len(transport.requests) == 10
    assert excinfo.value.iterations == 10
    # system + user + 10 * (assistant + tool)
    assert len(excinfo.value.messages) == 22


def test_custom_iteration_budget() -> None:
    """The budget is configurable."""

    transport = ScriptedTransport([_tool_calls(("ping", {"hostname_or_ip": "x"}))] * 5)
    with pytest.raises(IterationBudgetExceeded):
        AgentLoop(transport, _registry(), model="m", max_iterations=2).run("go")
    assert len(transport.requests) == 2


def test_invalid_iteration_budget() -> None:
    with pytest.raises(ValueError):
        AgentLoop(ScriptedTransport([]), _registry(), model="m", max_iterations=0)


def test_transport_error_aborts_immediately() -> None:
    """Transport errors propagate to the caller with no retry."""

    transport = FailingTransport()
    with pytest.raises(TransportError) as excinfo:
        AgentLoop(transport, _registry(), model="m").run("hi")

    assert excinfo.value.status_code == 500
    assert transport.calls == 1


def test_custom_system_prompt_and_debug_flag() -> None:
    """The system prompt and the debug-render flag reach the request."""

    transport = ScriptedTransport([_answer("x")])
    AgentLoop(
        transport, ToolRegistry(), model="m", system_prompt="be brief", debug_render_only=True
    ).run("hi")

    request = transport.requests[0]
    assert request.messages[0].content == "be brief"
    payload: Dict[str, Any] = request.to_payload()
    assert payload["_debug_render_only"] is True
    assert "tools" not in payload
