"""
DOM backend: executes tool calls against the caller's same-process document.

Everything goes through the page context's frame handle, so cross-origin
pages are reported as capability errors rather than raised.
"""

from __future__ import annotations

import asyncio
import re
import time
from collections.abc import Awaitable, Callable
from typing import Any
from urllib.parse import quote

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
from .base import CrossOriginError, DocumentLike, ElementLike, PageContext

INTERNAL_SCHEME = "vyber://"
NEW_TAB_URL = "vyber://newtab"
TRUNCATION_MARKER = "... [truncated]"
STRIPPED_SELECTORS = "script, style, nav, header, footer, aside"
WAIT_POLL_INTERVAL = 0.1
GOOGLE_SEARCH_URL = "https://www.google.com/search?q="
# Characters encodeURIComponent leaves alone.
URI_COMPONENT_SAFE = "-_.!~*'()"

_WHITESPACE_RE = re.compile(r"\s+")


def google_search_url(query: str) -> str:
    return GOOGLE_SEARCH_URL + quote(query, safe=URI_COMPONENT_SAFE)


def complete_payload(call: CompleteInput) -> dict[str, Any]:
    return {"summary": call.summary, "result": call.data, "completed": True}


def clean_text(text: str, max_length: int) -> str:
    """Collapse whitespace and cut to `max_length`, marking the cut."""
    text = _WHITESPACE_RE.sub(" ", text).strip()
    if len(text) > max_length:
        text = text[:max_length] + TRUNCATION_MARKER
    return text


class DomBackend:
    name = "dom"

    def __init__(self) -> None:
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
        if page is None and not isinstance(call, CompleteInput):
            return ToolResult.fail("No page context available")
        return await handler(call, page, cancel)

    # ─────────────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────────────

    @staticmethod
    def _document(page: PageContext) -> DocumentLike | None:
        frame = page.get_document_handle()
        if frame is None:
            return None
        return frame.content_document

    @staticmethod
    async def _load(page: PageContext, tab_id: str, url: str) -> None:
        """Navigate off the event loop; a page loader may block on the network."""
        await asyncio.to_thread(page.navigate, tab_id, url)

    # ─────────────────────────────────────────────────────────────────────────
    # Navigation & tabs
    # ─────────────────────────────────────────────────────────────────────────

    async def _navigate(self, call: NavigateInput, page: PageContext, cancel: CancellationToken | None) -> ToolResult:
        if call.url.lower().startswith(INTERNAL_SCHEME):
            # Internal pages cannot be shown in the frame; nothing to do.
            return ToolResult.ok({"navigated_to": call.url, "skipped": True})
        tab_id = page.active_tab_id
        if not tab_id:
            return ToolResult.fail("No active tab")
        await self._load(page, tab_id, call.url)
        return ToolResult.ok({"navigated_to": call.url})

    async def _search_google(
        self, call: SearchGoogleInput, page: PageContext, cancel: CancellationToken | None
    ) -> ToolResult:
        tab_id = page.active_tab_id
        if not tab_id:
            return ToolResult.fail("No active tab")
        url = google_search_url(call.query)
        await self._load(page, tab_id, url)
        return ToolResult.ok({"searched": call.query, "url": url})

    async def _open_tab(self, call: OpenTabInput, page: PageContext, cancel: CancellationToken | None) -> ToolResult:
        tab_id = page.add_tab()
        if call.url:
            await self._load(page, tab_id, call.url)
        return ToolResult.ok({"tab_id": tab_id, "url": call.url or NEW_TAB_URL})

    async def _close_tab(self, call: CloseTabInput, page: PageContext, cancel: CancellationToken | None) -> ToolResult:
        tab_id = page.active_tab_id
        if not tab_id:
            return ToolResult.fail("No active tab")
        page.close_tab(tab_id)
        return ToolResult.ok({"closed": tab_id})

    # ─────────────────────────────────────────────────────────────────────────
    # Reading
    # ─────────────────────────────────────────────────────────────────────────

    async def _extract_text(
        self, call: ExtractTextInput, page: PageContext, cancel: CancellationToken | None
    ) -> ToolResult:
        frame = page.get_document_handle()
        if frame is None:
            return ToolResult.fail("No iframe available (native mode or no page loaded)")
        doc = frame.content_document
        if doc is None:
            return ToolResult.fail("Cannot access iframe content (cross-origin)")

        if call.selector:
            element = doc.query_selector(call.selector)
            text = element.text_content if element is not None else ""
        else:
            body = doc.body
            if body is None:
                text = ""
            else:
                copy = body.clone()
                for el in copy.query_selector_all(STRIPPED_SELECTORS):
                    el.remove()
                text = copy.text_content

        text = clean_text(text, call.max_length)
        return ToolResult.ok({"text": text, "length": len(text)})

    async def _extract_links(
        self, call: ExtractLinksInput, page: PageContext, cancel: CancellationToken | None
    ) -> ToolResult:
        doc = self._document(page)
        if doc is None:
            return ToolResult.fail("Cannot access page content")

        container: Any = doc.query_selector(call.selector) if call.selector else doc.body
        if container is None:
            return ToolResult.fail(f"Selector not found: {call.selector}")

        links = []
        for anchor in container.query_selector_all("a[href]")[: call.max_links]:
            href = anchor.href or ""
            if not href or href.lower().startswith("javascript:"):
                continue
            links.append({"text": anchor.text_content.strip(), "href": href})
        return ToolResult.ok({"links": links, "count": len(links)})

    async def _get_page_info(
        self, call: GetPageInfoInput, page: PageContext, cancel: CancellationToken | None
    ) -> ToolResult:
        frame = page.get_document_handle()
        doc = frame.content_document if frame is not None else None
        win = frame.content_window if frame is not None else None
        try:
            description = None
            if doc is not None:
                meta = doc.query_selector('meta[name="description"]')
                description = meta.get_attribute("content") if meta is not None else None
            return ToolResult.ok(
                {
                    "url": (win.location_href if win is not None else None) or "unknown",
                    "title": (doc.title if doc is not None else None) or "unknown",
                    "description": description or None,
                    "viewport": {
                        "width": win.inner_width if win is not None else 0,
                        "height": win.inner_height if win is not None else 0,
                    },
                }
            )
        except CrossOriginError:
            return ToolResult.ok(
                {
                    "url": "cross-origin (restricted)",
                    "title": "cross-origin (restricted)",
                    "note": "Page is cross-origin, detailed info unavailable",
                }
            )

    # ─────────────────────────────────────────────────────────────────────────
    # Interaction
    # ─────────────────────────────────────────────────────────────────────────

    async def _click(self, call: ClickInput, page: PageContext, cancel: CancellationToken | None) -> ToolResult:
        doc = self._document(page)
        if doc is None:
            return ToolResult.fail("Cannot access page content")

        element: ElementLike | None = None
        if call.selector:
            element = doc.query_selector(call.selector)
        elif call.text and doc.body is not None:
            for node in doc.iter_text_nodes(doc.body):
                if call.text in node.text:
                    element = node.parent
                    break

        if element is None:
            return ToolResult.fail("Element not found")

        element.click()
        return ToolResult.ok({"clicked": call.selector or call.text})

    async def _fill_form(self, call: FillFormInput, page: PageContext, cancel: CancellationToken | None) -> ToolResult:
        doc = self._document(page)
        if doc is None:
            return ToolResult.fail("Cannot access page content")

        element = doc.query_selector(call.selector)
        if element is None:
            return ToolResult.fail(f"Input not found: {call.selector}")

        element.set_value(call.value)
        # Framework listeners only observe dispatched events, not a raw value write.
        element.dispatch_event("input", bubbles=True)
        element.dispatch_event("change", bubbles=True)

        if call.submit:
            form = element.closest("form")
            if form is not None:
                form.submit()
            else:
                element.dispatch_event("keydown", bubbles=True, key="Enter")

        return ToolResult.ok({"filled": call.selector, "value": call.value})

    async def _screenshot(
        self, call: ScreenshotInput, page: PageContext, cancel: CancellationToken | None
    ) -> ToolResult:
        if page.get_document_handle() is None:
            return ToolResult.fail("No iframe available")
        return ToolResult.fail("Screenshots require same-origin page or native mode")

    async def _scroll(self, call: ScrollInput, page: PageContext, cancel: CancellationToken | None) -> ToolResult:
        frame = page.get_document_handle()
        win = frame.content_window if frame is not None else None
        if frame is None or win is None:
            return ToolResult.fail("Cannot access page")

        try:
            doc = frame.content_document
            if call.selector and doc is not None:
                element = doc.query_selector(call.selector)
                if element is not None:
                    element.scroll_into_view(behavior="smooth", block="center")
                    return ToolResult.ok({"scrolled_to": call.selector})

            amount = call.amount or win.inner_height
            if call.direction == "up":
                win.scroll_by(-amount, behavior="smooth")
            elif call.direction == "down":
                win.scroll_by(amount, behavior="smooth")
            elif call.direction == "top":
                win.scroll_to(0, behavior="smooth")
            elif call.direction == "bottom":
                win.scroll_to(win.scroll_height, behavior="smooth")
        except CrossOriginError:
            return ToolResult.fail("Cannot access page (cross-origin)")

        return ToolResult.ok({"scrolled": call.direction or call.selector})

    async def _wait(self, call: WaitInput, page: PageContext, cancel: CancellationToken | None) -> ToolResult:
        timeout_s = call.timeout / 1000.0
        if not call.selector:
            await cancellable_sleep(timeout_s, cancel)
            return ToolResult.ok({"waited_ms": call.timeout})

        if self._document(page) is None:
            return ToolResult.fail("Cannot access page")

        start = time.monotonic()
        while time.monotonic() - start < timeout_s:
            # Re-read the document each poll: a navigation may have replaced it.
            doc = self._document(page)
            if doc is not None and doc.query_selector(call.selector) is not None:
                waited_ms = int((time.monotonic() - start) * 1000)
                return ToolResult.ok({"found": call.selector, "waited_ms": waited_ms})
            await cancellable_sleep(WAIT_POLL_INTERVAL, cancel)

        return ToolResult.fail(f"Timeout waiting for: {call.selector}")

    async def _complete(self, call: CompleteInput, page: PageContext | None, cancel: CancellationToken | None) -> ToolResult:
        return ToolResult.ok(complete_payload(call))

