"""
Chrome DevTools Protocol session for the native backend.

Architecture:
- CdpConnection: raw WebSocket request/response channel
- BrowserSession: page-level operations on one tab
- open_session(): create an isolated tab on a running browser and attach to it
"""

from __future__ import annotations

import json
import time
from contextlib import suppress
from typing import Any
from urllib.error import URLError
from urllib.request import urlopen

import websocket

from .config import BrowserConfig
from .http_client import HttpClientError


class CdpError(HttpClientError):
    """CDP protocol failure (error reply, timeout, missing target)."""


def _http_get_json(url: str, timeout: float = 2.0) -> Any:
    try:
        with urlopen(url, timeout=timeout) as resp:
            return json.loads(resp.read().decode())
    except (URLError, OSError, ValueError) as e:
        raise CdpError(str(e)) from e


class CdpConnection:
    """Low-level CDP WebSocket connection."""

    def __init__(self, ws_url: str, timeout: float = 10.0):
        self.ws = websocket.create_connection(ws_url, timeout=timeout)
        self.ws_url = ws_url
        self.timeout = timeout
        self._next_id = 1

    def send(self, method: str, params: dict[str, Any] | None = None, timeout: float | None = None) -> dict[str, Any]:
        """Send CDP command and wait for response."""
        msg_id = self._next_id
        self._next_id += 1

        msg: dict[str, Any] = {"id": msg_id, "method": method}
        if params:
            msg["params"] = params

        self.ws.send(json.dumps(msg))
        return self._recv_until(msg_id, timeout or self.timeout)

    def _recv_until(self, expected_id: int, timeout: float) -> dict[str, Any]:
        """Wait for response with specific ID."""
        deadline = time.time() + timeout
        while time.time() < deadline:
            self.ws.settimeout(max(0.05, deadline - time.time()))
            try:
                raw = self.ws.recv()
            except websocket.WebSocketTimeoutException:
                break
            data = json.loads(raw)
            if data.get("id") == expected_id:
                if "error" in data:
                    raise CdpError(str(data["error"]))
                return data.get("result", {})
        raise CdpError("CDP response timed out")

    def wait_for_event(self, event_name: str, timeout: float = 10.0) -> dict | None:
        """Wait for specific CDP event."""
        deadline = time.time() + timeout
        while time.time() < deadline:
            try:
                self.ws.settimeout(0.5)
                raw = self.ws.recv()
                data = json.loads(raw)
                if data.get("method") == event_name:
                    return data.get("params", {})
            except (json.JSONDecodeError, OSError, websocket.WebSocketTimeoutException):
                continue
        return None

    def close(self) -> None:
        with suppress(Exception):
            self.ws.close()


class BrowserSession:
    """
    Page-level browser session for one tab.

    Wraps CdpConnection with the operations the native driver needs.
    """

    def __init__(self, connection: CdpConnection, tab_id: str, browser_ws: str | None = None):
        self.conn = connection
        self.tab_id = tab_id
        self.browser_ws = browser_ws
        self._page_enabled = False
        self._runtime_enabled = False

    def close(self) -> None:
        self.conn.close()

    def enable_page(self) -> None:
        if not self._page_enabled:
            self.conn.send("Page.enable")
            self._page_enabled = True

    def enable_runtime(self) -> None:
        if not self._runtime_enabled:
            self.conn.send("Runtime.enable")
            self._runtime_enabled = True

    # ─────────────────────────────────────────────────────────────────────────
    # Navigation
    # ─────────────────────────────────────────────────────────────────────────

    def navigate(self, url: str, wait_load: bool = True, timeout: float = 15.0) -> str:
        """Navigate to URL, optionally waiting for load."""
        self.enable_page()
        result = self.conn.send("Page.navigate", {"url": url})
        if result.get("errorText"):
            raise CdpError(str(result["errorText"]))
        if wait_load:
            self.wait_load(timeout)
        return url

    def wait_load(self, timeout: float = 15.0) -> bool:
        return self.conn.wait_for_event("Page.loadEventFired", timeout) is not None

    # ─────────────────────────────────────────────────────────────────────────
    # JavaScript
    # ─────────────────────────────────────────────────────────────────────────

    def eval_js(self, expression: str, timeout: float | None = None) -> Any:
        """Evaluate JavaScript and return its JSON value."""
        self.enable_runtime()
        result = self.conn.send(
            "Runtime.evaluate",
            {"expression": expression, "returnByValue": True, "awaitPromise": True},
            timeout=timeout,
        )
        if "exceptionDetails" in result:
            details = result["exceptionDetails"]
            exc = details.get("exception") or {}
            raise CdpError(exc.get("description") or details.get("text") or "JavaScript evaluation failed")
        value = result.get("result") or {}
        return value.get("value")

    def get_url(self) -> str:
        return self.eval_js("window.location.href") or ""

    # ─────────────────────────────────────────────────────────────────────────
    # Input & capture
    # ─────────────────────────────────────────────────────────────────────────

    def press_key(self, key: str) -> None:
        key_codes = {"Enter": 13, "Tab": 9, "Escape": 27}
        key_code = key_codes.get(key, ord(key[0].upper()) if len(key) == 1 else 0)
        for event_type in ("keyDown", "keyUp"):
            params: dict[str, Any] = {
                "type": event_type,
                "key": key,
                "code": key,
                "windowsVirtualKeyCode": key_code,
            }
            if event_type == "keyDown" and key == "Enter":
                params["text"] = "\r"
            self.conn.send("Input.dispatchKeyEvent", params)

    def insert_text(self, text: str) -> None:
        self.conn.send("Input.insertText", {"text": text})

    def screenshot(self, full_page: bool = False) -> str:
        """Capture PNG screenshot, return base64 data."""
        self.enable_page()
        params: dict[str, Any] = {"format": "png", "fromSurface": True}
        if full_page:
            params["captureBeyondViewport"] = True
            metrics = self.conn.send("Page.getLayoutMetrics")
            size = metrics.get("cssContentSize") or metrics.get("contentSize") or {}
            if size:
                params["clip"] = {
                    "x": 0,
                    "y": 0,
                    "width": size.get("width", 0),
                    "height": size.get("height", 0),
                    "scale": 1,
                }
        result = self.conn.send("Page.captureScreenshot", params, timeout=30.0)
        return result.get("data", "")


def _get_browser_ws(config: BrowserConfig) -> str:
    version = _http_get_json(f"http://127.0.0.1:{config.cdp_port}/json/version")
    ws_url = version.get("webSocketDebuggerUrl") if isinstance(version, dict) else None
    if not ws_url:
        raise CdpError("CDP browser WebSocket URL not found")
    return ws_url


def _get_tab_ws_url(config: BrowserConfig, tab_id: str) -> str | None:
    targets = _http_get_json(f"http://127.0.0.1:{config.cdp_port}/json/list") or []
    for target in targets:
        if target.get("id") == tab_id:
            return target.get("webSocketDebuggerUrl")
    return None


def open_session(config: BrowserConfig, url: str = "about:blank", timeout: float = 10.0) -> BrowserSession:
    """Create a dedicated tab on the running browser and attach a session to it."""
    browser_ws = _get_browser_ws(config)
    conn = CdpConnection(browser_ws, timeout=5.0)
    try:
        result = conn.send("Target.createTarget", {"url": url})
    finally:
        conn.close()
    tab_id = result.get("targetId")
    if not tab_id:
        raise CdpError("Failed to create browser tab")
    ws_url = _get_tab_ws_url(config, tab_id)
    if not ws_url:
        raise CdpError("Failed to get session tab WebSocket URL")
    return BrowserSession(CdpConnection(ws_url, timeout=timeout), tab_id, browser_ws)


def close_target(session: BrowserSession) -> bool:
    """Close the session's tab (best-effort) and its connection."""
    session.close()
    if not session.browser_ws:
        return False
    try:
        conn = CdpConnection(session.browser_ws, timeout=3.0)
        try:
            conn.send("Target.closeTarget", {"targetId": session.tab_id})
        finally:
            conn.close()
        return True
    except (OSError, CdpError, websocket.WebSocketException):
        return False
