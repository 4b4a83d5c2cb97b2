"""Tests for the command-line entry point."""

import json
from typing import (
    Any,
    List,
)

import pytest

from looptool import main as main_module
from looptool.common import (
    RESET,
    AnsiColors,
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


class _StubTransport(ChatTransport):
    def __init__(self, replies: List[Message], **kwargs: Any) -> None:
        self.replies = replies
        self.kwargs = kwargs
        self.closed = False

    def chat(self, request: ChatRequest) -> ChatResponse:
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return ChatResponse(message=reply)

    def close(self) -> None:
        self.closed = True


def _install(monkeypatch: pytest.MonkeyPatch, replies: list) -> List[_StubTransport]:
    created: List[_StubTransport] = []

    def fake_load_transport(name=None, **kwargs):
        transport = _StubTransport(replies, **kwargs)
        created.append(transport)
        return transport

    monkeypatch.setattr(main_module, "load_transport", fake_load_transport)
    return created


def test_dump_tools(capsys: pytest.CaptureFixture) -> None:
    """-t prints the tool definitions as JSON and exits cleanly."""

    assert main_module.main(["-t", "--log-level", "warning"]) == 0

    tools = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
    assert tools[0]["type"] == "function"
    assert tools[-1]["function"]["name"] == "run_command"


def test_prints_final_answer(monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    """A final answer is printed and the exit status is 0."""

    created = _install(monkeypatch, [Message(role="assistant", content="four")])

    status = main_module.main(["-m", "2+2?", "--host", "http://h:1", "-T", "3"])

    assert status == 0
    assert f"{AnsiColors.YELLOW.value}four{RESET}" in capsys.readouterr().out
    assert created[0].kwargs == {"base_url": "http://h:1", "timeout": 3.0}
    assert created[0].closed


def test_transport_error_exits_with_1(monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    created = _install(monkeypatch, [TransportError("post request: refused")])

    assert main_module.main(["-m", "hi"]) == 1
    assert created[0].closed
    err = capsys.readouterr().err
    assert f"{AnsiColors.RED.value}chat error: post request: refused{RESET}" in err


def test_budget_exhausted_exits_with_1(monkeypatch: pytest.MonkeyPatch) -> None:
    call = Message.model_validate(
        {
            "role": "assistant",
            "tool_calls": [{"function": {"name": "ping", "arguments": {"hostname_or_ip": "x"}}}],
        }
    )
    _install(monkeypatch, [call, call])

    assert main_module.main(["-m", "hi", "--max-iterations", "2"]) == 1


def test_rejects_zero_iterations() -> None:
    with pytest.raises(SystemExit):
        main_module.main(["--max-iterations", "0"])
