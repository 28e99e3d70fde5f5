"""
Tests for the DOM backend.

Tests cover:
- Navigation, search and tab tools against an in-memory page context
- Reading tools (text, links, page info) including cross-origin frames
- Interaction tools (click, fill_form, scroll, wait)
"""

from __future__ import annotations

import asyncio
import time

import pytest

from vyber_agent.cancellation import CancellationToken, RunCancelled
from vyber_agent.server.inputs import parse_tool_input
from vyber_agent.server.types import ToolResult
from vyber_agent.tools.document import HtmlFrame
from vyber_agent.tools.dom_backend import TRUNCATION_MARKER, DomBackend, clean_text, google_search_url
from vyber_agent.tools.page_context import InMemoryPageContext

PAGE = """
<html>
  <head>
    <title>Shop</title>
    <meta name="description" content="A small shop">
  </head>
  <body>
    <header>Site header</header>
    <nav><a href="/home">Home</a></nav>
    <main id="content">
      <h1>Products</h1>
      <p>Fresh   apples
         and pears</p>
      <ul id="list">
        <li><a href="/apples">Apples</a></li>
        <li><a href="https://other.org/pears">Pears</a></li>
        <li><a href="javascript:void(0)">Nothing</a></li>
        <li><a href="">Empty</a></li>
      </ul>
      <button id="buy">Buy now</button>
      <form id="search"><input id="q" name="q"></form>
      <input id="loose">
    </main>
    <footer>Footer text</footer>
    <script>console.log("noise")</script>
  </body>
</html>
"""


def _page(html: str = PAGE, **frame_kwargs) -> InMemoryPageContext:
    return InMemoryPageContext(HtmlFrame(html, "https://shop.example/catalog", **frame_kwargs))


def _run(tool: str, args: dict, page, cancel: CancellationToken | None = None) -> ToolResult:
    backend = DomBackend()
    return asyncio.run(backend.execute(parse_tool_input(tool, args), page, cancel=cancel))


# ═══════════════════════════════════════════════════════════════════════════════
# NAVIGATION & TABS
# ═══════════════════════════════════════════════════════════════════════════════


def test_navigate_internal_url_is_noop() -> None:
    page = _page()
    before = list(page.active_tab.history)
    result = _run("navigate", {"url": "vyber://internal"}, page)
    assert result.success
    assert result.data == {"navigated_to": "vyber://internal", "skipped": True}
    assert page.active_tab.history == before


def test_navigate_records_history() -> None:
    page = _page()
    result = _run("navigate", {"url": "https://example.com"}, page)
    assert result == ToolResult.ok({"navigated_to": "https://example.com"})
    assert page.active_tab.url == "https://example.com"


def test_navigate_without_active_tab() -> None:
    page = _page()
    page.close_tab("tab-1")
    result = _run("navigate", {"url": "https://example.com"}, page)
    assert not result.success
    assert result.error == "No active tab"


def test_search_google_navigates_to_results() -> None:
    page = _page()
    result = _run("search_google", {"query": "cats"}, page)
    assert result.success
    assert result.data == {"searched": "cats", "url": "https://www.google.com/search?q=cats"}
    assert page.active_tab.url == "https://www.google.com/search?q=cats"


def test_slow_page_load_does_not_block_event_loop() -> None:
    def slow_loader(url: str) -> tuple[str, str, bool]:
        time.sleep(0.3)
        return "<html><body><p>Loaded</p></body></html>", url, False

    page = InMemoryPageContext(HtmlFrame("<html><body></body></html>", "https://shop.example/"), loader=slow_loader)
    backend = DomBackend()

    async def scenario() -> tuple[ToolResult, float]:
        gaps: list[float] = []
        done = asyncio.Event()

        async def ticker() -> None:
            last = time.monotonic()
            while not done.is_set():
                await asyncio.sleep(0.02)
                now = time.monotonic()
                gaps.append(now - last)
                last = now

        ticking = asyncio.create_task(ticker())
        await asyncio.sleep(0)
        result = await backend.execute(parse_tool_input("navigate", {"url": "https://shop.example/next"}), page)
        done.set()
        await ticking
        return result, max(gaps)

    result, worst_gap = asyncio.run(scenario())
    assert result.success
    assert worst_gap < 0.2
    assert page.get_document_handle().content_document.query_selector("p") is not None


def test_google_search_url_quotes_like_uri_component() -> None:
    assert google_search_url("cats & dogs") == "https://www.google.com/search?q=cats%20%26%20dogs"
    assert google_search_url("it's (fine)!") == "https://www.google.com/search?q=it's%20(fine)!"


def test_open_and_close_tab() -> None:
    page = _page()
    opened = _run("open_tab", {"url": "https://example.com"}, page)
    assert opened.data == {"tab_id": "tab-2", "url": "https://example.com"}
    assert page.active_tab.url == "https://example.com"

    blank = _run("open_tab", {}, page)
    assert blank.data == {"tab_id": "tab-3", "url": "vyber://newtab"}

    closed = _run("close_tab", {}, page)
    assert closed.data == {"closed": "tab-3"}
    assert "tab-3" not in page.tabs


def test_missing_page_context_fails() -> None:
    result = _run("get_page_info", {}, None)
    assert not result.success
    assert result.error == "No page context available"


def test_complete_passes_summary_through() -> None:
    result = _run("complete", {"summary": "Done", "data": {"n": 1}}, None)
    assert result.data == {"summary": "Done", "result": {"n": 1}, "completed": True}


# ═══════════════════════════════════════════════════════════════════════════════
# READING
# ═══════════════════════════════════════════════════════════════════════════════


def test_extract_text_strips_page_chrome() -> None:
    result = _run("extract_text", {}, _page())
    text = result.data["text"]
    assert "Products" in text
    assert "Fresh apples and pears" in text
    for noise in ("Site header", "Home", "Footer text", "noise"):
        assert noise not in text
    assert result.data["length"] == len(text)


def test_extract_text_does_not_mutate_live_document() -> None:
    page = _page()
    _run("extract_text", {}, page)
    doc = page.get_document_handle().content_document
    assert doc.query_selector("footer") is not None


def test_extract_text_with_selector() -> None:
    result = _run("extract_text", {"selector": "h1"}, _page())
    assert result.data == {"text": "Products", "length": 8}


def test_extract_text_truncates_to_max_length() -> None:
    page = _page(f"<html><body><p>{'a' * 100}</p></body></html>")
    result = _run("extract_text", {"max_length": 10}, page)
    assert result.data["text"] == "a" * 10 + TRUNCATION_MARKER
    assert len(result.data["text"]) <= 10 + len(TRUNCATION_MARKER)


def test_clean_text_collapses_whitespace() -> None:
    assert clean_text("  a \n\t b  ", 100) == "a b"


def test_extract_text_without_frame() -> None:
    result = _run("extract_text", {}, InMemoryPageContext())
    assert result.error == "No iframe available (native mode or no page loaded)"


def test_extract_text_cross_origin() -> None:
    result = _run("extract_text", {}, _page(cross_origin=True))
    assert result.error == "Cannot access iframe content (cross-origin)"


def test_extract_links_resolves_and_filters() -> None:
    result = _run("extract_links", {"selector": "#list"}, _page())
    assert result.data == {
        "links": [
            {"text": "Apples", "href": "https://shop.example/apples"},
            {"text": "Pears", "href": "https://other.org/pears"},
        ],
        "count": 2,
    }


def test_extract_links_respects_max_links() -> None:
    result = _run("extract_links", {"max_links": 1}, _page())
    assert result.data["count"] == 1
    assert result.data["links"][0]["href"] == "https://shop.example/home"


def test_extract_links_unknown_container() -> None:
    result = _run("extract_links", {"selector": "#nope"}, _page())
    assert result.error == "Selector not found: #nope"


def test_get_page_info() -> None:
    result = _run("get_page_info", {}, _page(inner_width=1024, inner_height=700))
    assert result.data == {
        "url": "https://shop.example/catalog",
        "title": "Shop",
        "description": "A small shop",
        "viewport": {"width": 1024, "height": 700},
    }


def test_get_page_info_cross_origin_is_restricted_success() -> None:
    result = _run("get_page_info", {}, _page(cross_origin=True))
    assert result.success
    assert result.data["url"] == "cross-origin (restricted)"


# ═══════════════════════════════════════════════════════════════════════════════
# INTERACTION
# ═══════════════════════════════════════════════════════════════════════════════


def test_click_by_selector() -> None:
    page = _page()
    result = _run("click", {"selector": "#buy"}, page)
    assert result.data == {"clicked": "#buy"}
    doc = page.get_document_handle().content_document
    assert doc.clicks == [doc.query_selector("#buy")]


def test_click_by_text_clicks_parent_of_first_match() -> None:
    page = _page()
    result = _run("click", {"text": "Buy"}, page)
    assert result.data == {"clicked": "Buy"}
    doc = page.get_document_handle().content_document
    assert [el.get_attribute("id") for el in doc.clicks] == ["buy"]


def test_click_missing_element() -> None:
    result = _run("click", {"selector": "#ghost"}, _page())
    assert result.error == "Element not found"


def test_fill_form_missing_input() -> None:
    result = _run("fill_form", {"selector": "#missing", "value": "x"}, _page())
    assert result == ToolResult(success=False, error="Input not found: #missing")


def test_fill_form_sets_value_and_dispatches_events() -> None:
    page = _page()
    result = _run("fill_form", {"selector": "#q", "value": "cats"}, page)
    assert result.data == {"filled": "#q", "value": "cats"}
    doc = page.get_document_handle().content_document
    assert doc.query_selector("#q").value == "cats"
    assert [(e.type, e.bubbles) for e in doc.events] == [("input", True), ("change", True)]
    assert doc.submitted == []


def test_fill_form_submit_uses_enclosing_form() -> None:
    page = _page()
    _run("fill_form", {"selector": "#q", "value": "cats", "submit": True}, page)
    doc = page.get_document_handle().content_document
    assert [el.get_attribute("id") for el in doc.submitted] == ["search"]


def test_fill_form_submit_without_form_presses_enter() -> None:
    page = _page()
    _run("fill_form", {"selector": "#loose", "value": "x", "submit": True}, page)
    doc = page.get_document_handle().content_document
    assert doc.submitted == []
    assert (doc.events[-1].type, doc.events[-1].key) == ("keydown", "Enter")


def test_screenshot_is_unsupported() -> None:
    assert _run("screenshot", {}, _page()).error == "Screenshots require same-origin page or native mode"
    assert _run("screenshot", {}, InMemoryPageContext()).error == "No iframe available"


def test_scroll_directions() -> None:
    page = _page(inner_height=500, scroll_height=3000)
    win = page.get_document_handle().content_window
    assert _run("scroll", {"direction": "down"}, page).data == {"scrolled": "down"}
    assert win.scroll_y == 500
    _run("scroll", {"direction": "down", "amount": 200}, page)
    assert win.scroll_y == 700
    _run("scroll", {"direction": "bottom"}, page)
    assert win.scroll_y == 2500
    _run("scroll", {"direction": "top"}, page)
    assert win.scroll_y == 0
    assert win.last_behavior == "smooth"


def test_scroll_to_selector_takes_priority() -> None:
    page = _page()
    result = _run("scroll", {"direction": "down", "selector": "#buy"}, page)
    assert result.data == {"scrolled_to": "#buy"}
    doc = page.get_document_handle().content_document
    element, behavior, block = doc.scrolled_into_view[0]
    assert (element.get_attribute("id"), behavior, block) == ("buy", "smooth", "center")


def test_scroll_cross_origin() -> None:
    result = _run("scroll", {"direction": "down"}, _page(cross_origin=True))
    assert result.error == "Cannot access page (cross-origin)"


def test_wait_without_selector_sleeps() -> None:
    result = _run("wait", {"timeout": 50}, _page())
    assert result.data == {"waited_ms": 50}


def test_wait_finds_existing_selector() -> None:
    result = _run("wait", {"selector": "#buy", "timeout": 500}, _page())
    assert result.success
    assert result.data["found"] == "#buy"


def test_wait_times_out_naming_selector() -> None:
    start = time.monotonic()
    result = _run("wait", {"selector": ".never", "timeout": 500}, _page())
    elapsed = time.monotonic() - start
    assert result.error == "Timeout waiting for: .never"
    assert 0.45 <= elapsed < 1.0


def test_wait_sees_element_added_by_navigation() -> None:
    page = InMemoryPageContext(
        HtmlFrame("<html><body></body></html>", "https://shop.example/"),
        loader=lambda url: ("<html><body><div class='ready'></div></body></html>", url, False),
    )

    async def scenario() -> ToolResult:
        backend = DomBackend()
        task = asyncio.create_task(
            backend.execute(parse_tool_input("wait", {"selector": ".ready", "timeout": 2000}), page)
        )
        await asyncio.sleep(0.25)
        page.navigate("tab-1", "https://shop.example/next")
        return await task

    result = asyncio.run(scenario())
    assert result.success
    assert result.data["found"] == ".ready"


def test_wait_honours_cancellation() -> None:
    async def scenario() -> None:
        token = CancellationToken()
        backend = DomBackend()
        task = asyncio.create_task(
            backend.execute(parse_tool_input("wait", {"selector": ".never", "timeout": 5000}), _page(), cancel=token)
        )
        await asyncio.sleep(0.15)
        token.cancel()
        await task

    start = time.monotonic()
    with pytest.raises(RunCancelled):
        asyncio.run(scenario())
    assert time.monotonic() - start < 1.0
