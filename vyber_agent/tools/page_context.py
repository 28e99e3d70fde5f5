"""
Reference PageContext for embedding the DOM backend without a tab UI.

Tabs are plain ids with a URL history. When a `loader` is supplied, navigating
the active tab loads the returned HTML into the shared frame, so the DOM backend
sees the new page; `fetch_loader()` builds such a loader over HTTP.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from ..config import BrowserConfig
from ..http_client import HttpClientError, http_get
from .document import HtmlFrame

logger = logging.getLogger("vyber.agent.page")

# url -> (html, final_url, cross_origin)
PageLoader = Callable[[str], tuple[str, str, bool]]


@dataclass
class Tab:
    id: str
    history: list[str] = field(default_factory=list)

    @property
    def url(self) -> str:
        return self.history[-1] if self.history else "vyber://newtab"


class InMemoryPageContext:
    def __init__(self, frame: HtmlFrame | None = None, loader: PageLoader | None = None) -> None:
        self.frame = frame
        self.loader = loader
        self.tabs: dict[str, Tab] = {}
        self._ids = itertools.count(1)
        self._active: str | None = None
        self.add_tab()
        if frame is not None:
            self.tabs[self._active].history.append(frame.url)  # type: ignore[index]

    @property
    def active_tab_id(self) -> str | None:
        return self._active

    @property
    def active_tab(self) -> Tab | None:
        return self.tabs.get(self._active) if self._active else None

    def navigate(self, tab_id: str, url: str) -> None:
        tab = self.tabs.get(tab_id)
        if tab is None:
            raise KeyError(f"Unknown tab: {tab_id}")
        tab.history.append(url)
        if tab_id == self._active and self.loader is not None:
            if self.frame is None:
                self.frame = HtmlFrame()
            html, final_url, cross_origin = self.loader(url)
            self.frame.load(html, final_url, cross_origin=cross_origin)

    def add_tab(self) -> str:
        tab_id = f"tab-{next(self._ids)}"
        self.tabs[tab_id] = Tab(id=tab_id)
        self._active = tab_id
        return tab_id

    def close_tab(self, tab_id: str) -> None:
        self.tabs.pop(tab_id, None)
        if self._active == tab_id:
            self._active = next(reversed(self.tabs), None)

    def get_document_handle(self) -> HtmlFrame | None:
        return self.frame


def fetch_loader(config: BrowserConfig, origin: str | None = None) -> PageLoader:
    """Loader that fetches pages over HTTP.

    Pages whose URL does not start with `origin` are marked cross-origin, as an
    iframe embedding them would be. With no origin every page is readable.
    """

    def load(url: str) -> tuple[str, str, bool]:
        try:
            response = http_get(url, config)
        except HttpClientError as exc:
            logger.warning("page_load_failed url=%s error=%s", url.split("?")[0], exc)
            return f"<html><body><p>Failed to load page: {exc}</p></body></html>", url, False
        final_url = str(response.get("url") or url)
        cross_origin = bool(origin) and not final_url.startswith(origin or "")
        return str(response.get("body") or ""), final_url, cross_origin

    return load
