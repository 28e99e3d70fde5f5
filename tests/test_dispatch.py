"""Tests for ToolDispatcher routing, validation and error conversion."""

from __future__ import annotations

import asyncio
import logging

import pytest

from vyber_agent.cancellation import CancellationToken, RunCancelled
from vyber_agent.config import AgentConfig
from vyber_agent.server import dispatch as dispatch_module
from vyber_agent.server.dispatch import ToolDispatcher, detect_native_host, sanitize_args
from vyber_agent.server.inputs import NavigateInput
from vyber_agent.server.types import ToolCall, ToolResult
from vyber_agent.tools.document import HtmlFrame
from vyber_agent.tools.dom_backend import DomBackend
from vyber_agent.tools.native_backend import NativeBackend, SessionState
from vyber_agent.tools.page_context import InMemoryPageContext


class RecordingBackend:
    name = "recording"

    def __init__(self, result: ToolResult | None = None, error: BaseException | None = None) -> None:
        self.result = result or ToolResult.ok({"ok": True})
        self.error = error
        self.calls: list[object] = []

    async def execute(self, call, page, *, cancel=None) -> ToolResult:
        self.calls.append(call)
        if self.error is not None:
            raise self.error
        return self.result


class StoppableNative(NativeBackend):
    def __init__(self) -> None:
        self.stopped = 0
        self.session = type("S", (), {"state": SessionState.RUNNING})()

    async def execute(self, call, page, *, cancel=None) -> ToolResult:
        return ToolResult.ok({"native": True})

    async def stop(self) -> ToolResult:
        self.stopped += 1
        return ToolResult.ok()


def _dispatch(dispatcher: ToolDispatcher, name: str, args: object, page=None) -> ToolResult:
    return asyncio.run(dispatcher.dispatch(ToolCall(name=name, input=args), page))  # type: ignore[arg-type]


def test_injected_backend_receives_validated_input() -> None:
    backend = RecordingBackend()
    result = _dispatch(ToolDispatcher(backend), "navigate", {"url": "https://example.com"})
    assert result.success
    assert backend.calls == [NavigateInput(url="https://example.com")]


def test_validation_errors_become_failed_results() -> None:
    backend = RecordingBackend()
    dispatcher = ToolDispatcher(backend)
    assert _dispatch(dispatcher, "navigate", {}).error == "Missing required field 'url' for navigate"
    assert _dispatch(dispatcher, "teleport", {}).error == "Unknown tool: teleport"
    assert backend.calls == []


def test_backend_exceptions_become_failed_results() -> None:
    dispatcher = ToolDispatcher(RecordingBackend(error=RuntimeError("socket closed")))
    assert _dispatch(dispatcher, "get_page_info", {}) == ToolResult(success=False, error="socket closed")


def test_empty_exception_message_uses_class_name() -> None:
    dispatcher = ToolDispatcher(RecordingBackend(error=KeyError()))
    assert _dispatch(dispatcher, "get_page_info", {}).error == "KeyError"


def test_cancellation_propagates() -> None:
    dispatcher = ToolDispatcher(RecordingBackend(error=RunCancelled()))
    with pytest.raises(RunCancelled):
        _dispatch(dispatcher, "wait", {})


def test_environment_routes_each_call() -> None:
    native = StoppableNative()
    dom = RecordingBackend()
    in_native = [False]
    dispatcher = ToolDispatcher(dom_backend=dom, native_backend=native, environment=lambda: in_native[0])

    assert _dispatch(dispatcher, "get_page_info", {}).data == {"ok": True}
    in_native[0] = True
    assert _dispatch(dispatcher, "get_page_info", {}).data == {"native": True}
    in_native[0] = False
    assert _dispatch(dispatcher, "get_page_info", {}).data == {"ok": True}


def test_default_backend_is_dom_outside_native_host(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("VYBER_NATIVE_HOST", raising=False)
    dispatcher = ToolDispatcher()
    assert isinstance(dispatcher.select_backend(), DomBackend)

    page = InMemoryPageContext(HtmlFrame("<html><body></body></html>", "https://example.com/"))
    result = _dispatch(dispatcher, "search_google", {"query": "cats"}, page)
    assert result.data == {"searched": "cats", "url": "https://www.google.com/search?q=cats"}


def test_detect_native_host(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("VYBER_NATIVE_HOST", "1")
    assert detect_native_host()
    monkeypatch.setenv("VYBER_NATIVE_HOST", "0")
    assert not detect_native_host()


def test_shutdown_stops_started_native_session() -> None:
    native = StoppableNative()
    dispatcher = ToolDispatcher(native_backend=native, environment=lambda: True)
    asyncio.run(dispatcher.shutdown())
    assert native.stopped == 1


def test_shutdown_without_native_session_is_noop() -> None:
    dispatcher = ToolDispatcher(RecordingBackend())
    asyncio.run(dispatcher.shutdown())


def test_sanitize_args_strips_queries_and_masks_values() -> None:
    assert sanitize_args({"url": "https://example.com/path?token=abc#frag"}) == {"url": "https://example.com/path"}
    assert sanitize_args({"selector": "#pw", "value": "hunter2"}) == {"selector": "#pw", "value": "<7 chars>"}
    assert sanitize_args({"query": "a" * 300})["query"].endswith("...")
    assert sanitize_args(None) is None


def test_dispatch_logs_sanitized_call(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO, logger=dispatch_module.logger.name)
    _dispatch(ToolDispatcher(RecordingBackend()), "navigate", {"url": "https://example.com/?q=secret"})
    assert "tool=navigate" in caplog.text
    assert "secret" not in caplog.text


def test_dispatch_passes_cancel_token() -> None:
    seen = []

    class TokenBackend(RecordingBackend):
        async def execute(self, call, page, *, cancel=None) -> ToolResult:
            seen.append(cancel)
            return ToolResult.ok()

    token = CancellationToken()
    dispatcher = ToolDispatcher(TokenBackend())
    asyncio.run(dispatcher.dispatch(ToolCall(name="wait", input={}), None, cancel=token))
    assert seen == [token]


def test_config_native_host_routes_to_native(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("VYBER_NATIVE_HOST", raising=False)
    native = StoppableNative()
    dispatcher = ToolDispatcher(config=AgentConfig(native_host=True), native_backend=native)
    assert dispatcher.select_backend() is native
    assert _dispatch(dispatcher, "get_page_info", {}).data == {"native": True}

    assert isinstance(ToolDispatcher(config=AgentConfig()).select_backend(), DomBackend)
