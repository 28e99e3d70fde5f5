"""
Native backend: routes tool calls to the NativeDriver procedures.

The driver is blocking, so every procedure runs in a worker thread. The
BackendSession lock serializes them, which keeps CDP traffic from concurrent
runs sharing one backend from interleaving.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from ..cancellation import CancellationToken, cancellable_sleep
from ..server.inputs import (
    ClickInput,
    CloseTabInput,
    CompleteInput,
    ExtractLinksInput,
    ExtractTextInput,
    FillFormInput,
    GetPageInfoInput,
    NavigateInput,
    OpenTabInput,
    ScreenshotInput,
    ScrollInput,
    SearchGoogleInput,
    ToolInput,
    WaitInput,
)
from ..server.types import ToolResult
from .base import PageContext
from .dom_backend import complete_payload, google_search_url
from .native_driver import NativeDriver

logger = logging.getLogger("vyber.agent.native")

DATA_URL_PREFIX = "data:image/png;base64,"


class SessionState(enum.Enum):
    NOT_STARTED = "not_started"
    STARTING = "starting"
    RUNNING = "running"
    STOPPED = "stopped"


class BackendSession:
    """Lifecycle of the native browser: NOT_STARTED -> STARTING -> RUNNING -> STOPPED.

    `start()` is idempotent while running and may be called again after a
    stop; `stop()` is legal in any state.
    """

    def __init__(self, driver: NativeDriver, *, headless: bool = False) -> None:
        self.driver = driver
        self.headless = headless
        self.state = SessionState.NOT_STARTED
        self.lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self.state is SessionState.RUNNING

    async def start(self) -> ToolResult:
        async with self.lock:
            if self.state is SessionState.RUNNING:
                return ToolResult.ok({"message": "Agent already running"})
            self.state = SessionState.STARTING
            reply = ToolResult.from_rpc(await asyncio.to_thread(self.driver.agent_start, self.headless))
            self.state = SessionState.RUNNING if reply.success else SessionState.NOT_STARTED
            if not reply.success:
                logger.warning("native_start_failed error=%s", reply.error)
            return reply

    async def stop(self) -> ToolResult:
        async with self.lock:
            reply = ToolResult.from_rpc(await asyncio.to_thread(self.driver.agent_stop))
            self.state = SessionState.STOPPED
            return reply

    async def call(self, procedure: Callable[..., dict[str, Any]], *args: Any) -> ToolResult:
        async with self.lock:
            return ToolResult.from_rpc(await asyncio.to_thread(procedure, *args))


class NativeBackend:
    name = "native"

    def __init__(self, driver: NativeDriver | None = None, *, headless: bool | None = None) -> None:
        driver = driver or NativeDriver()
        if headless is None:
            headless = driver.config.headless
        self.session = BackendSession(driver, headless=headless)
        self._handlers: dict[type, Callable[..., Awaitable[ToolResult]]] = {
            NavigateInput: self._navigate,
            ExtractTextInput: self._extract_text,
            ExtractLinksInput: self._extract_links,
            ClickInput: self._click,
            FillFormInput: self._fill_form,
            ScreenshotInput: self._screenshot,
            ScrollInput: self._scroll,
            WaitInput: self._wait,
            GetPageInfoInput: self._get_page_info,
            SearchGoogleInput: self._search_google,
            OpenTabInput: self._open_tab,
            CloseTabInput: self._close_tab,
            CompleteInput: self._complete,
        }

    @property
    def driver(self) -> NativeDriver:
        return self.session.driver

    async def execute(
        self,
        call: ToolInput,
        page: PageContext | None,
        *,
        cancel: CancellationToken | None = None,
    ) -> ToolResult:
        handler = self._handlers.get(type(call))
        if handler is None:
            return ToolResult.fail(f"Unknown tool: {getattr(call, 'name', type(call).__name__)}")
        if not isinstance(call, CompleteInput) and not self.session.running:
            started = await self.session.start()
            if not started.success:
                return ToolResult.fail(started.error or "Failed to start agent")
        return await handler(call, cancel)

    async def stop(self) -> ToolResult:
        return await self.session.stop()

    # ─────────────────────────────────────────────────────────────────────────
    # Procedures
    # ─────────────────────────────────────────────────────────────────────────

    async def _navigate(self, call: NavigateInput, cancel: CancellationToken | None) -> ToolResult:
        return await self.session.call(self.driver.agent_navigate, call.url)

    async def _extract_text(self, call: ExtractTextInput, cancel: CancellationToken | None) -> ToolResult:
        return await self.session.call(self.driver.agent_extract_text, call.selector, call.max_length)

    async def _extract_links(self, call: ExtractLinksInput, cancel: CancellationToken | None) -> ToolResult:
        return await self.session.call(self.driver.agent_extract_links, call.selector, call.max_links)

    async def _click(self, call: ClickInput, cancel: CancellationToken | None) -> ToolResult:
        return await self.session.call(self.driver.agent_click, call.selector, call.text)

    async def _fill_form(self, call: FillFormInput, cancel: CancellationToken | None) -> ToolResult:
        return await self.session.call(self.driver.agent_fill_form, call.selector, call.value, call.submit)

    async def _screenshot(self, call: ScreenshotInput, cancel: CancellationToken | None) -> ToolResult:
        result = await self.session.call(self.driver.agent_screenshot, call.full_page)
        if result.success and isinstance(result.data, dict):
            # The image rides in `screenshot`; data keeps only its dimensions.
            data = dict(result.data)
            image = str(data.pop("screenshot", "") or "")
            if image.startswith(DATA_URL_PREFIX):
                image = image[len(DATA_URL_PREFIX) :]
            result = ToolResult.ok(data, screenshot=image or None)
        return result

    async def _scroll(self, call: ScrollInput, cancel: CancellationToken | None) -> ToolResult:
        amount = int(call.amount) if call.amount else None
        return await self.session.call(self.driver.agent_scroll, call.direction or "down", amount)

    async def _wait(self, call: WaitInput, cancel: CancellationToken | None) -> ToolResult:
        if not call.selector:
            # A plain delay needs no browser round-trip and stays cancellable.
            await cancellable_sleep(call.timeout / 1000.0, cancel)
            return ToolResult.ok({"waited_ms": call.timeout})
        return await self.session.call(self.driver.agent_wait, call.selector, call.timeout)

    async def _get_page_info(self, call: GetPageInfoInput, cancel: CancellationToken | None) -> ToolResult:
        return await self.session.call(self.driver.agent_get_page_info)

    async def _search_google(self, call: SearchGoogleInput, cancel: CancellationToken | None) -> ToolResult:
        url = google_search_url(call.query)
        navigated = await self.session.call(self.driver.agent_navigate, url)
        data = {"searched": call.query, "url": url, "navigated": navigated.data}
        if not navigated.success:
            return ToolResult.fail(navigated.error or "Navigation failed", data=data)
        return ToolResult.ok(data)

    async def _open_tab(self, call: OpenTabInput, cancel: CancellationToken | None) -> ToolResult:
        # One tab per session: opening a tab navigates the current one.
        if not call.url:
            return ToolResult.ok({"note": "New tab opened"})
        navigated = await self.session.call(self.driver.agent_navigate, call.url)
        data = {"url": call.url, "navigated": navigated.data}
        if not navigated.success:
            return ToolResult.fail(navigated.error or "Navigation failed", data=data)
        return ToolResult.ok(data)

    async def _close_tab(self, call: CloseTabInput, cancel: CancellationToken | None) -> ToolResult:
        return await self.session.stop()

    async def _complete(self, call: CompleteInput, cancel: CancellationToken | None) -> ToolResult:
        return ToolResult.ok(complete_payload(call))
