"""
Native browser driver: the RPC surface of the out-of-process browser.

Every `agent_*` procedure is blocking and returns a plain
`{success, data?, error?}` dict, which the native backend adopts unchanged.
Page content is read as HTML over CDP and parsed with BeautifulSoup; page
actions run as JavaScript snippets in the agent's dedicated tab.
"""

from __future__ import annotations

import base64
import logging
import time
from collections.abc import Callable
from functools import wraps
from io import BytesIO
from typing import Any
from urllib.parse import urljoin

import websocket
from bs4 import BeautifulSoup
from PIL import Image
from soupsieve import SelectorSyntaxError

from ..config import BrowserConfig
from ..http_client import HttpClientError, HttpStatusError, http_get
from ..launcher import BrowserLauncher
from ..session import BrowserSession, close_target, open_session
from . import js_helpers
from .dom_backend import clean_text

logger = logging.getLogger("vyber.agent.native")

NOT_STARTED = "Agent not started. Call agent_start first."
DEFAULT_SCROLL_AMOUNT = 500
CLICK_SETTLE = 0.5
SUBMIT_SETTLE = 1.0
SCROLL_SETTLE = 0.3
WAIT_POLL_INTERVAL = 0.1
FETCH_MAX_WORDS = 2000
BODY_NOISE = "script, style, noscript"

NativeReply = dict[str, Any]
SessionFactory = Callable[[BrowserConfig], BrowserSession]


def _ok(data: Any = None) -> NativeReply:
    reply: NativeReply = {"success": True}
    if data is not None:
        reply["data"] = data
    return reply


def _fail(error: str) -> NativeReply:
    return {"success": False, "error": error}


def _native_call(failure_prefix: str, requires_session: bool = True) -> Callable:
    """Turn transport errors into `{success: False}` replies.

    Procedures that need a browser reply with the not-started error when no
    session is open.
    """

    def decorator(func: Callable[..., NativeReply]) -> Callable[..., NativeReply]:
        @wraps(func)
        def wrapper(self: NativeDriver, *args: Any, **kwargs: Any) -> NativeReply:
            if requires_session and self.session is None:
                return _fail(NOT_STARTED)
            try:
                return func(self, *args, **kwargs)
            except (HttpClientError, OSError, websocket.WebSocketException) as exc:
                logger.warning("native_call_failed procedure=%s error=%s", func.__name__, exc)
                return _fail(f"{failure_prefix}: {exc}")

        return wrapper

    return decorator


def downscale_png(data: bytes, max_width: int) -> tuple[bytes, int, int]:
    """Shrink a PNG to `max_width` keeping its aspect ratio. Returns (png, width, height)."""
    with Image.open(BytesIO(data)) as img:
        width, height = img.size
        if max_width <= 0 or width <= max_width:
            return data, width, height
        new_height = max(1, round(height * max_width / width))
        resized = img.resize((max_width, new_height), Image.Resampling.LANCZOS)
        buffer = BytesIO()
        resized.save(buffer, format="PNG")
        return buffer.getvalue(), max_width, new_height


class NativeDriver:
    """Drives one Chromium tab over CDP on behalf of the agent."""

    def __init__(
        self,
        config: BrowserConfig | None = None,
        launcher: BrowserLauncher | None = None,
        session_factory: SessionFactory = open_session,
        session_closer: Callable[[BrowserSession], Any] = close_target,
    ) -> None:
        self.config = config or BrowserConfig.from_env()
        self.launcher = launcher or BrowserLauncher(self.config)
        self._session_factory = session_factory
        self._session_closer = session_closer
        self.session: BrowserSession | None = None

    @property
    def running(self) -> bool:
        return self.session is not None

    def _html(self) -> BeautifulSoup:
        assert self.session is not None
        return BeautifulSoup(self.session.eval_js(js_helpers.OUTER_HTML) or "", "lxml")

    # ─────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────────

    @_native_call("Failed to launch browser", requires_session=False)
    def agent_start(self, headless: bool = True) -> NativeReply:
        if self.session is not None:
            return _ok({"message": "Agent already running"})
        launch = self.launcher.ensure_running(headless=headless)
        if not launch.ready:
            # A timed-out launch may still have left a process behind.
            self.launcher.terminate()
            return _fail(f"Failed to launch browser: {launch.message}")
        session: BrowserSession | None = None
        try:
            session = self._session_factory(self.config)
            session.enable_page()
        except Exception:
            if session is not None:
                self._session_closer(session)
            self.launcher.terminate()
            raise
        self.session = session
        logger.info("agent_started headless=%s tab=%s", headless, session.tab_id)
        return _ok({"message": "Agent started"})

    def agent_stop(self) -> NativeReply:
        session, self.session = self.session, None
        if session is not None:
            self._session_closer(session)
            logger.info("agent_stopped tab=%s", session.tab_id)
        self.launcher.terminate()
        return _ok({"message": "Agent stopped"})

    # ─────────────────────────────────────────────────────────────────────────
    # Navigation
    # ─────────────────────────────────────────────────────────────────────────

    @_native_call("Navigation failed")
    def agent_navigate(self, url: str) -> NativeReply:
        assert self.session is not None
        self.session.navigate(url)
        return _ok({"navigated_to": url})

    # ─────────────────────────────────────────────────────────────────────────
    # Reading
    # ─────────────────────────────────────────────────────────────────────────

    @_native_call("Failed to get page content")
    def agent_extract_text(self, selector: str | None = None, max_length: int = 8000) -> NativeReply:
        soup = self._html()
        if selector:
            try:
                matches = soup.select(selector)
            except SelectorSyntaxError:
                return _fail(f"Invalid selector: {selector}")
            text = " ".join(el.get_text() for el in matches)
        else:
            body = soup.body
            if body is None:
                text = ""
            else:
                for el in body.select(BODY_NOISE):
                    el.decompose()
                text = body.get_text(" ")
        text = clean_text(text, max_length)
        return _ok({"text": text, "length": len(text)})

    @_native_call("Failed to get page content")
    def agent_extract_links(self, selector: str | None = None, max_links: int = 50) -> NativeReply:
        assert self.session is not None
        soup = self._html()
        base_url = self.session.get_url()
        try:
            container = soup.select_one(selector) if selector else soup.body
        except SelectorSyntaxError:
            container = None

        links: list[dict[str, str]] = []
        if container is not None:
            for anchor in container.select("a[href]")[:max_links]:
                href = str(anchor.get("href") or "").strip()
                if not href or href.lower().startswith("javascript:"):
                    continue
                links.append({"text": anchor.get_text().strip(), "href": urljoin(base_url, href)})
        return _ok({"links": links, "count": len(links)})

    @_native_call("Failed to read page info")
    def agent_get_page_info(self) -> NativeReply:
        assert self.session is not None
        info = self.session.eval_js(js_helpers.PAGE_INFO) or {}
        return _ok(
            {
                "url": info.get("url") or "unknown",
                "title": info.get("title") or "Unknown",
                "description": info.get("description") or None,
                "viewport": info.get("viewport") or {"width": 0, "height": 0},
            }
        )

    @_native_call("JS evaluation failed")
    def agent_evaluate_js(self, script: str) -> NativeReply:
        assert self.session is not None
        return _ok({"result": self.session.eval_js(script)})

    @_native_call("Request failed", requires_session=False)
    def agent_fetch_page(self, url: str) -> NativeReply:
        """Fetch a page over plain HTTP (no browser) and return its title and text."""
        try:
            response = http_get(url, self.config)
        except HttpStatusError as exc:
            return _fail(f"HTTP error: {exc.status}")
        soup = BeautifulSoup(str(response.get("body") or ""), "lxml")
        title = soup.title.get_text().strip() if soup.title is not None else ""
        body = soup.body
        words = body.get_text(" ").split() if body is not None else []
        return _ok({"url": url, "title": title, "text": " ".join(words[:FETCH_MAX_WORDS])})

    # ─────────────────────────────────────────────────────────────────────────
    # Interaction
    # ─────────────────────────────────────────────────────────────────────────

    @_native_call("Click failed")
    def agent_click(self, selector: str | None = None, text: str | None = None) -> NativeReply:
        assert self.session is not None
        if selector:
            if not self.session.eval_js(js_helpers.click_selector(selector)):
                return _fail(f"Element not found: {selector}")
            time.sleep(CLICK_SETTLE)
            return _ok({"clicked": selector})
        if text:
            if not self.session.eval_js(js_helpers.click_text(text)):
                return _fail(f"Element with text '{text}' not found")
            time.sleep(CLICK_SETTLE)
            return _ok({"clicked_text": text})
        return _fail("Must provide selector or text")

    @_native_call("Failed to type")
    def agent_fill_form(self, selector: str, value: str, submit: bool = False) -> NativeReply:
        assert self.session is not None
        if not self.session.eval_js(js_helpers.focus_and_clear(selector)):
            return _fail(f"Input not found: {selector}")
        if value:
            self.session.insert_text(value)
        if submit:
            self.session.press_key("Enter")
            time.sleep(SUBMIT_SETTLE)
        return _ok({"filled": selector, "value": value})

    @_native_call("Screenshot failed")
    def agent_screenshot(self, full_page: bool = False) -> NativeReply:
        assert self.session is not None
        raw = base64.b64decode(self.session.screenshot(full_page=full_page))
        png, width, height = downscale_png(raw, self.config.screenshot_max_width)
        encoded = base64.b64encode(png).decode()
        return _ok(
            {
                "screenshot": f"data:image/png;base64,{encoded}",
                "size": len(png),
                "width": width,
                "height": height,
            }
        )

    @_native_call("Scroll failed")
    def agent_scroll(self, direction: str = "down", amount: int | None = None) -> NativeReply:
        assert self.session is not None
        script = js_helpers.scroll(direction, amount or DEFAULT_SCROLL_AMOUNT)
        if script is None:
            return _fail(f"Invalid direction: {direction}")
        self.session.eval_js(script)
        time.sleep(SCROLL_SETTLE)
        return _ok({"scrolled": direction})

    @_native_call("Wait failed")
    def agent_wait(self, selector: str | None = None, timeout: int = 5000) -> NativeReply:
        assert self.session is not None
        if not selector:
            time.sleep(timeout / 1000.0)
            return _ok({"waited_ms": timeout})

        deadline = time.monotonic() + timeout / 1000.0
        while True:
            if self.session.eval_js(js_helpers.element_exists(selector)):
                return _ok({"found": selector})
            if time.monotonic() >= deadline:
                return _fail(f"Timeout waiting for: {selector}")
            time.sleep(WAIT_POLL_INTERVAL)
