"""
Interfaces between the dispatcher, the backends and the caller's page.

Provides:
- PageContext: capability supplied by the tab-management collaborator
- FrameHandle / DocumentLike / ElementLike / WindowLike: the same-process
  document surface the DOM backend works on
- ToolBackend: the one operation every backend implements
- CrossOriginError: raised by a frame when the embedded page is not reachable
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ..cancellation import CancellationToken
    from ..server.inputs import ToolInput
    from ..server.types import ToolResult


class CrossOriginError(PermissionError):
    """Access to a cross-origin document or window property was blocked."""


class ElementLike(Protocol):
    @property
    def tag_name(self) -> str: ...

    @property
    def text_content(self) -> str: ...

    @property
    def href(self) -> str | None: ...

    @property
    def parent(self) -> ElementLike | None: ...

    def get_attribute(self, name: str) -> str | None: ...

    def query_selector(self, selector: str) -> ElementLike | None: ...

    def query_selector_all(self, selector: str) -> list[ElementLike]: ...

    def clone(self) -> ElementLike: ...

    def remove(self) -> None: ...

    def click(self) -> None: ...

    def set_value(self, value: str) -> None: ...

    def dispatch_event(self, event_type: str, *, bubbles: bool = True, key: str | None = None) -> None: ...

    def closest(self, selector: str) -> ElementLike | None: ...

    def submit(self) -> None: ...

    def scroll_into_view(self, *, behavior: str = "auto", block: str = "start") -> None: ...


class TextNodeLike(Protocol):
    @property
    def text(self) -> str: ...

    @property
    def parent(self) -> ElementLike | None: ...


class DocumentLike(Protocol):
    @property
    def url(self) -> str: ...

    @property
    def title(self) -> str: ...

    @property
    def body(self) -> ElementLike | None: ...

    def query_selector(self, selector: str) -> ElementLike | None: ...

    def query_selector_all(self, selector: str) -> list[ElementLike]: ...

    def iter_text_nodes(self, root: ElementLike) -> Iterator[TextNodeLike]: ...


class WindowLike(Protocol):
    @property
    def location_href(self) -> str: ...

    @property
    def inner_width(self) -> int: ...

    @property
    def inner_height(self) -> int: ...

    @property
    def scroll_height(self) -> int: ...

    def scroll_by(self, top: float, *, behavior: str = "auto") -> None: ...

    def scroll_to(self, top: float, *, behavior: str = "auto") -> None: ...


class FrameHandle(Protocol):
    """An embedded page. `content_document` is None when the page is cross-origin."""

    @property
    def content_document(self) -> DocumentLike | None: ...

    @property
    def content_window(self) -> WindowLike | None: ...


@runtime_checkable
class PageContext(Protocol):
    """Tab capability owned by the caller; the core never stores tabs itself."""

    @property
    def active_tab_id(self) -> str | None: ...

    def navigate(self, tab_id: str, url: str) -> None: ...

    def add_tab(self) -> str: ...

    def close_tab(self, tab_id: str) -> None: ...

    def get_document_handle(self) -> FrameHandle | None: ...


class ToolBackend(Protocol):
    """Executes one validated tool call against a page."""

    name: str

    async def execute(
        self,
        call: ToolInput,
        page: PageContext | None,
        *,
        cancel: CancellationToken | None = None,
    ) -> ToolResult: ...
