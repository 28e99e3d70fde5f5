"""
Tests for the agent loop.

The reasoning service is a scripted fake; tools run either through a
recording backend or through the real DOM backend on an in-memory page.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest

from vyber_agent.config import AgentConfig
from vyber_agent.orchestrator import AGENT_SYSTEM_PROMPT, AgentCallbacks, Orchestrator, run_agent
from vyber_agent.reasoning import ReasoningResponse, ReasoningServiceError
from vyber_agent.server.definitions import list_tools
from vyber_agent.server.dispatch import ToolDispatcher
from vyber_agent.server.types import Message, RawBlock, TextBlock, ToolResult, ToolResultBlock, ToolUseBlock
from vyber_agent.tools.document import HtmlFrame
from vyber_agent.tools.dom_backend import DomBackend
from vyber_agent.tools.page_context import InMemoryPageContext


class ScriptedClient:
    """Returns queued responses; repeats the last one when the queue runs out."""

    def __init__(self, *turns: list | Exception) -> None:
        self.turns = list(turns)
        self.requests: list[dict[str, Any]] = []

    async def create_message(self, messages, *, tools=None, system=None) -> ReasoningResponse:
        self.requests.append(
            {"messages": [m.to_dict() for m in messages], "tools": tools, "system": system}
        )
        turn = self.turns.pop(0) if len(self.turns) > 1 else self.turns[0]
        if isinstance(turn, Exception):
            raise turn
        return ReasoningResponse(content=list(turn))


class RecordingBackend:
    name = "recording"

    def __init__(self) -> None:
        self.calls: list[str] = []

    async def execute(self, call, page, *, cancel=None) -> ToolResult:
        self.calls.append(call.name)
        if call.name == "click":
            return ToolResult.fail("Element not found")
        return ToolResult.ok({"tool": call.name})


class EventLog:
    def __init__(self) -> None:
        self.events: list[tuple] = []

    def callbacks(self) -> AgentCallbacks:
        return AgentCallbacks(
            on_thinking=lambda text: self.events.append(("thinking", text)),
            on_tool_call=lambda name, args: self.events.append(("tool_call", name)),
            on_tool_result=lambda name, result: self.events.append(("tool_result", name, result.success)),
            on_complete=lambda summary, data: self.events.append(("complete", summary, data)),
            on_error=lambda error: self.events.append(("error", error)),
        )


def _config(**overrides) -> AgentConfig:
    values = {"api_key": None, "max_iterations": 15, "post_action_delay": 0.0}
    values.update(overrides)
    return AgentConfig(**values)


def _use(tool_id: str, name: str, **tool_input) -> ToolUseBlock:
    return ToolUseBlock(id=tool_id, name=name, input=tool_input)


def _orchestrator(client: ScriptedClient, backend=None, **config) -> Orchestrator:
    return Orchestrator(_config(**config), ToolDispatcher(backend or RecordingBackend()), client=client)


# ═══════════════════════════════════════════════════════════════════════════════
# TERMINATION
# ═══════════════════════════════════════════════════════════════════════════════


def test_text_only_turn_finishes_after_one_iteration() -> None:
    client = ScriptedClient([TextBlock("Paris is the capital of France.")])
    result = asyncio.run(_orchestrator(client).run("capital of France?", None))
    assert result.success
    assert result.summary == "Paris is the capital of France."
    assert len(client.requests) == 1


def test_text_only_summary_is_last_text_block() -> None:
    client = ScriptedClient([TextBlock("first"), TextBlock("second")])
    result = asyncio.run(_orchestrator(client).run("task", None))
    assert result.summary == "second"


def test_empty_response_uses_default_summary() -> None:
    result = asyncio.run(_orchestrator(ScriptedClient([])).run("task", None))
    assert result.success
    assert result.summary == "Task completed"


def test_first_request_carries_task_catalog_and_prompt() -> None:
    client = ScriptedClient([TextBlock("ok")])
    asyncio.run(_orchestrator(client).run("find cats", None))
    request = client.requests[0]
    assert request["messages"] == [{"role": "user", "content": "find cats"}]
    assert request["tools"] == list_tools()
    assert request["system"] == AGENT_SYSTEM_PROMPT


def test_complete_preempts_sibling_calls() -> None:
    backend = RecordingBackend()
    log = EventLog()
    client = ScriptedClient(
        [
            _use("a", "navigate", url="https://example.com"),
            _use("b", "complete", summary="All done", data={"n": 3}),
        ]
    )
    orchestrator = Orchestrator(_config(), ToolDispatcher(backend), client=client, callbacks=log.callbacks())
    result = asyncio.run(orchestrator.run("task", None))

    assert result.to_dict() == {"success": True, "summary": "All done", "data": {"n": 3}}
    assert backend.calls == []
    assert log.events == [
        ("tool_call", "navigate"),
        ("tool_call", "complete"),
        ("complete", "All done", {"n": 3}),
    ]


def test_complete_without_summary() -> None:
    result = asyncio.run(_orchestrator(ScriptedClient([_use("c", "complete")])).run("task", None))
    assert result.summary == "Task completed"


def test_iteration_cap() -> None:
    client = ScriptedClient([_use("x", "get_page_info")])
    log = EventLog()
    orchestrator = Orchestrator(
        _config(max_iterations=3), ToolDispatcher(RecordingBackend()), client=client, callbacks=log.callbacks()
    )
    result = asyncio.run(orchestrator.run("loop forever", None))
    assert not result.success
    assert result.error == "Max iterations (3) reached without completion"
    assert len(client.requests) == 3
    assert log.events[-1] == ("error", "Max iterations (3) reached without completion")


def test_reasoning_error_aborts_run() -> None:
    log = EventLog()
    client = ScriptedClient(ReasoningServiceError.from_status(500, "upstream"))
    orchestrator = Orchestrator(
        _config(), ToolDispatcher(RecordingBackend()), client=client, callbacks=log.callbacks()
    )
    result = asyncio.run(orchestrator.run("task", None))
    assert result.to_dict() == {"success": False, "error": "Claude API error: 500 - upstream"}
    assert log.events == [("error", "Claude API error: 500 - upstream")]


def test_unexpected_client_error_is_a_failure() -> None:
    client = ScriptedClient(ValueError("bad block"))
    result = asyncio.run(_orchestrator(client).run("task", None))
    assert result.error == "bad block"


# ═══════════════════════════════════════════════════════════════════════════════
# TOOL TURNS
# ═══════════════════════════════════════════════════════════════════════════════


def test_each_tool_use_gets_one_result_in_order() -> None:
    backend = RecordingBackend()
    client = ScriptedClient(
        [TextBlock("reading"), _use("t1", "get_page_info"), _use("t2", "click", selector="#x"), _use("t3", "extract_text")],
        [TextBlock("done")],
    )
    result = asyncio.run(_orchestrator(client, backend).run("task", None))
    assert result.success
    assert backend.calls == ["get_page_info", "click", "extract_text"]

    messages = client.requests[1]["messages"]
    assert [m["role"] for m in messages] == ["user", "assistant", "user"]
    assert messages[1]["content"][0] == {"type": "text", "text": "reading"}
    results = messages[2]["content"]
    assert [block["tool_use_id"] for block in results] == ["t1", "t2", "t3"]
    assert [block["is_error"] for block in results] == [False, True, False]
    assert json.loads(results[1]["content"]) == {"success": False, "error": "Element not found"}


def test_invalid_tool_input_is_fed_back_as_error() -> None:
    client = ScriptedClient([_use("t1", "navigate")], [TextBlock("giving up")])
    asyncio.run(_orchestrator(client).run("task", None))
    block = client.requests[1]["messages"][2]["content"][0]
    assert block["is_error"] is True
    assert json.loads(block["content"])["error"] == "Missing required field 'url' for navigate"


def test_unknown_blocks_are_kept_in_conversation() -> None:
    client = ScriptedClient(
        [RawBlock({"type": "thinking_trace", "data": "x"}), _use("t1", "get_page_info")], [TextBlock("ok")]
    )
    asyncio.run(_orchestrator(client).run("task", None))
    assistant = client.requests[1]["messages"][1]["content"]
    assert assistant[0] == {"type": "thinking_trace", "data": "x"}


def test_page_mutating_tools_wait_after_execution(monkeypatch: pytest.MonkeyPatch) -> None:
    from vyber_agent.cancellation import CancellationToken

    delays: list[float] = []

    async def fake_sleep(self, seconds: float) -> None:
        delays.append(seconds)

    monkeypatch.setattr(CancellationToken, "sleep", fake_sleep)
    client = ScriptedClient(
        [
            _use("1", "navigate", url="https://example.com"),
            _use("2", "extract_text"),
            _use("3", "click", text="Go"),
            _use("4", "fill_form", selector="#q", value="x"),
        ],
        [TextBlock("done")],
    )
    asyncio.run(_orchestrator(client, post_action_delay=1.0).run("task", None))
    assert delays == [1.0, 1.0, 1.0]


def test_async_callbacks_are_awaited_and_errors_ignored() -> None:
    seen: list[str] = []

    async def on_thinking(text: str) -> None:
        seen.append(text)

    def on_tool_call(name: str, args: dict) -> None:
        raise RuntimeError("ui went away")

    client = ScriptedClient([TextBlock("hmm"), _use("1", "get_page_info")], [TextBlock("done")])
    orchestrator = Orchestrator(
        _config(),
        ToolDispatcher(RecordingBackend()),
        client=client,
        callbacks=AgentCallbacks(on_thinking=on_thinking, on_tool_call=on_tool_call),
    )
    result = asyncio.run(orchestrator.run("task", None))
    assert result.success
    assert seen == ["hmm", "done"]


# ═══════════════════════════════════════════════════════════════════════════════
# CANCELLATION
# ═══════════════════════════════════════════════════════════════════════════════


def test_stop_cancels_running_wait() -> None:
    page = InMemoryPageContext(HtmlFrame("<html><body></body></html>", "https://example.com/"))
    client = ScriptedClient([_use("w", "wait", selector=".never", timeout=10000)])
    log = EventLog()
    orchestrator = Orchestrator(_config(), ToolDispatcher(DomBackend()), client=client, callbacks=log.callbacks())

    async def scenario():
        task = asyncio.create_task(orchestrator.run("task", page))
        await asyncio.sleep(0.2)
        assert orchestrator.running
        assert orchestrator.stop()
        return await asyncio.wait_for(task, timeout=2.0)

    result = asyncio.run(scenario())
    assert result.to_dict() == {"success": False, "error": "Run cancelled"}
    assert log.events[-1] == ("error", "Run cancelled")
    assert not orchestrator.running
    assert len(client.requests) == 1


def test_stop_when_idle_returns_false() -> None:
    assert _orchestrator(ScriptedClient([TextBlock("x")])).stop() is False


# ═══════════════════════════════════════════════════════════════════════════════
# END TO END ON THE DOM BACKEND
# ═══════════════════════════════════════════════════════════════════════════════


def test_search_for_cats_scenario() -> None:
    page = InMemoryPageContext(HtmlFrame("<html><body></body></html>", "https://example.com/"))
    client = ScriptedClient(
        [_use("s1", "search_google", query="cats")],
        [_use("c1", "complete", summary="Searched for cats")],
    )
    orchestrator = Orchestrator(_config(), ToolDispatcher(DomBackend()), client=client)
    result = asyncio.run(orchestrator.run("search for cats", page))

    assert result.to_dict() == {"success": True, "summary": "Searched for cats"}
    tool_result = client.requests[1]["messages"][2]["content"][0]
    assert tool_result["tool_use_id"] == "s1"
    assert json.loads(tool_result["content"]) == {
        "success": True,
        "data": {"searched": "cats", "url": "https://www.google.com/search?q=cats"},
    }
    assert page.active_tab.url == "https://www.google.com/search?q=cats"


def test_run_agent_shuts_down_dispatcher(monkeypatch: pytest.MonkeyPatch) -> None:
    import vyber_agent.orchestrator as orchestrator_module

    client = ScriptedClient([TextBlock("ok")])
    shutdowns: list[bool] = []

    async def fake_shutdown(self) -> None:
        shutdowns.append(True)

    monkeypatch.setattr(orchestrator_module, "ReasoningClient", lambda config: client)
    monkeypatch.setattr(ToolDispatcher, "shutdown", fake_shutdown)
    result = asyncio.run(run_agent("task", None, _config(), backend=RecordingBackend()))
    assert result.success
    assert shutdowns == [True]


def test_tool_result_block_from_result() -> None:
    block = ToolResultBlock.from_result("id1", ToolResult.fail("nope"))
    assert block.to_dict() == {
        "type": "tool_result",
        "tool_use_id": "id1",
        "content": '{"success": false, "error": "nope"}',
        "is_error": True,
    }
    assert Message(role="user", content=[block]).to_dict()["content"][0]["is_error"] is True


def test_orchestrator_routes_by_configured_native_host(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("VYBER_NATIVE_HOST", raising=False)
    native = Orchestrator(_config(native_host=True), client=ScriptedClient([TextBlock("x")]))
    assert native.dispatcher.select_backend().name == "native"
    dom = Orchestrator(_config(), client=ScriptedClient([TextBlock("x")]))
    assert dom.dispatcher.select_backend().name == "dom"
