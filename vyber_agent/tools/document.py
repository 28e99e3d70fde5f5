"""
In-process HTML document model for the DOM backend.

HtmlFrame/HtmlDocument/HtmlElement implement the FrameHandle surface on top of
BeautifulSoup (lxml parser): CSS selection, text-node walks, clicks, value
changes, synthetic events with listeners, form submission and scroll state.
Pages loaded with `cross_origin=True` behave like a foreign iframe: no document,
and window properties raise CrossOriginError.
"""

from __future__ import annotations

import copy
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urljoin

from bs4 import BeautifulSoup, NavigableString, Tag

from .base import CrossOriginError


@dataclass(slots=True)
class DomEvent:
    type: str
    target: HtmlElement
    bubbles: bool = True
    key: str | None = None
    detail: dict[str, Any] = field(default_factory=dict)


EventListener = Callable[[DomEvent], None]


@dataclass(slots=True)
class TextNode:
    text: str
    parent: HtmlElement | None


class HtmlElement:
    """Element view bound to its owning document."""

    __slots__ = ("_tag", "_doc")

    def __init__(self, tag: Tag, document: HtmlDocument) -> None:
        self._tag = tag
        self._doc = document

    def __eq__(self, other: object) -> bool:
        return isinstance(other, HtmlElement) and other._tag is self._tag

    def __hash__(self) -> int:
        return id(self._tag)

    def __repr__(self) -> str:
        return f"<HtmlElement {self._tag.name}>"

    @property
    def tag(self) -> Tag:
        return self._tag

    @property
    def tag_name(self) -> str:
        return (self._tag.name or "").upper()

    @property
    def text_content(self) -> str:
        return self._tag.get_text()

    @property
    def href(self) -> str | None:
        raw = self.get_attribute("href")
        if raw is None:
            return None
        raw = raw.strip()
        if not raw or raw.lower().startswith("javascript:"):
            return raw
        return urljoin(self._doc.url, raw)

    @property
    def value(self) -> str:
        if self._tag.name == "textarea":
            return self._tag.get_text()
        return str(self._tag.get("value") or "")

    @property
    def parent(self) -> HtmlElement | None:
        parent = self._tag.parent
        if not isinstance(parent, Tag) or isinstance(parent, BeautifulSoup):
            return None
        return HtmlElement(parent, self._doc)

    def get_attribute(self, name: str) -> str | None:
        value = self._tag.get(name)
        if value is None:
            return None
        if isinstance(value, list):
            return " ".join(value)
        return str(value)

    def query_selector(self, selector: str) -> HtmlElement | None:
        found = self._tag.select_one(selector)
        return HtmlElement(found, self._doc) if found is not None else None

    def query_selector_all(self, selector: str) -> list[HtmlElement]:
        return [HtmlElement(tag, self._doc) for tag in self._tag.select(selector)]

    def clone(self) -> HtmlElement:
        """Detached deep copy; edits to it never touch the live document."""
        return HtmlElement(copy.copy(self._tag), self._doc)

    def remove(self) -> None:
        self._tag.decompose()

    def closest(self, selector: str) -> HtmlElement | None:
        node: Any = self._tag
        while isinstance(node, Tag) and not isinstance(node, BeautifulSoup):
            if node.css.match(selector):
                return HtmlElement(node, self._doc)
            node = node.parent
        return None

    # ─────────────────────────────────────────────────────────────────────────
    # Interaction
    # ─────────────────────────────────────────────────────────────────────────

    def click(self) -> None:
        self._doc.clicks.append(self)
        self.dispatch_event("click")
        href = self.href if self._tag.name == "a" else None
        if href and not href.lower().startswith("javascript:") and self._doc.on_navigate is not None:
            self._doc.on_navigate(href)

    def set_value(self, value: str) -> None:
        if self._tag.name == "textarea":
            self._tag.string = value
        else:
            self._tag["value"] = value

    def dispatch_event(self, event_type: str, *, bubbles: bool = True, key: str | None = None) -> None:
        self._doc.dispatch(DomEvent(type=event_type, target=self, bubbles=bubbles, key=key))

    def add_event_listener(self, event_type: str, listener: EventListener) -> None:
        self._doc.listeners.setdefault((id(self._tag), event_type), []).append(listener)

    def submit(self) -> None:
        if self._tag.name != "form":
            raise TypeError(f"submit() called on <{self._tag.name}>")
        self._doc.submitted.append(self)
        if self._doc.on_submit is not None:
            self._doc.on_submit(self)

    def form_data(self) -> dict[str, str]:
        data: dict[str, str] = {}
        for field_el in self.query_selector_all("input[name], textarea[name], select[name]"):
            name = field_el.get_attribute("name")
            if name:
                data[name] = field_el.value
        return data

    def scroll_into_view(self, *, behavior: str = "auto", block: str = "start") -> None:
        self._doc.scrolled_into_view.append((self, behavior, block))


class HtmlDocument:
    def __init__(
        self,
        html: str,
        url: str = "about:blank",
        *,
        on_navigate: Callable[[str], None] | None = None,
        on_submit: Callable[[HtmlElement], None] | None = None,
    ) -> None:
        self.soup = BeautifulSoup(html, "lxml")
        self._url = url
        self.on_navigate = on_navigate
        self.on_submit = on_submit
        self.listeners: dict[tuple[int, str], list[EventListener]] = {}
        self.events: list[DomEvent] = []
        self.clicks: list[HtmlElement] = []
        self.submitted: list[HtmlElement] = []
        self.scrolled_into_view: list[tuple[HtmlElement, str, str]] = []

    @property
    def url(self) -> str:
        return self._url

    @property
    def title(self) -> str:
        title = self.soup.title
        return title.get_text().strip() if title is not None else ""

    @property
    def body(self) -> HtmlElement | None:
        body = self.soup.body
        return HtmlElement(body, self) if body is not None else None

    def query_selector(self, selector: str) -> HtmlElement | None:
        found = self.soup.select_one(selector)
        return HtmlElement(found, self) if found is not None else None

    def query_selector_all(self, selector: str) -> list[HtmlElement]:
        return [HtmlElement(tag, self) for tag in self.soup.select(selector)]

    def iter_text_nodes(self, root: HtmlElement) -> Iterator[TextNode]:
        """Depth-first walk over plain text nodes (comments and script bodies excluded)."""
        for node in root.tag.descendants:
            if type(node) is NavigableString:
                parent = node.parent
                yield TextNode(text=str(node), parent=HtmlElement(parent, self) if isinstance(parent, Tag) else None)

    def dispatch(self, event: DomEvent) -> None:
        self.events.append(event)
        node: Any = event.target.tag
        while isinstance(node, Tag):
            for listener in list(self.listeners.get((id(node), event.type), [])):
                listener(event)
            if not event.bubbles:
                break
            node = node.parent


class HtmlWindow:
    def __init__(
        self,
        frame: HtmlFrame,
        *,
        inner_width: int = 1280,
        inner_height: int = 800,
        scroll_height: int | None = None,
    ) -> None:
        self._frame = frame
        self._inner_width = inner_width
        self._inner_height = inner_height
        self._scroll_height = scroll_height
        self.scroll_y = 0.0
        self.last_behavior: str | None = None

    def _check_access(self) -> None:
        if self._frame.cross_origin:
            raise CrossOriginError("Blocked a frame from accessing a cross-origin frame")

    @property
    def location_href(self) -> str:
        self._check_access()
        return self._frame.url

    @property
    def inner_width(self) -> int:
        self._check_access()
        return self._inner_width

    @property
    def inner_height(self) -> int:
        self._check_access()
        return self._inner_height

    @property
    def scroll_height(self) -> int:
        self._check_access()
        return self._scroll_height if self._scroll_height is not None else self._inner_height

    def _clamp(self, top: float) -> float:
        return max(0.0, min(float(top), float(max(0, self.scroll_height - self._inner_height))))

    def scroll_by(self, top: float, *, behavior: str = "auto") -> None:
        self.scroll_y = self._clamp(self.scroll_y + top)
        self.last_behavior = behavior

    def scroll_to(self, top: float, *, behavior: str = "auto") -> None:
        self.scroll_y = self._clamp(top)
        self.last_behavior = behavior


class HtmlFrame:
    """Embedded page holder; `load()` replaces the document like a navigation."""

    def __init__(
        self,
        html: str = "",
        url: str = "about:blank",
        *,
        cross_origin: bool = False,
        inner_width: int = 1280,
        inner_height: int = 800,
        scroll_height: int | None = None,
    ) -> None:
        self.url = url
        self.cross_origin = cross_origin
        self._document = HtmlDocument(html, url)
        self._window = HtmlWindow(
            self, inner_width=inner_width, inner_height=inner_height, scroll_height=scroll_height
        )

    @property
    def content_document(self) -> HtmlDocument | None:
        return None if self.cross_origin else self._document

    @property
    def content_window(self) -> HtmlWindow:
        return self._window

    def load(self, html: str, url: str, *, cross_origin: bool = False) -> HtmlDocument:
        previous = self._document
        self.url = url
        self.cross_origin = cross_origin
        self._document = HtmlDocument(html, url, on_navigate=previous.on_navigate, on_submit=previous.on_submit)
        self._window.scroll_y = 0.0
        return self._document
