"""
Capability backends that execute validated tool calls.

- base: PageContext / FrameHandle protocols and the ToolBackend interface
- document: BeautifulSoup-backed frame and document model
- page_context: in-memory PageContext with optional HTTP page loading
- dom_backend: tools against the caller's same-process document
- native_driver: blocking CDP-driven procedures (`agent_*`)
- native_backend: async adapter over the driver with a serialized session
"""

from .base import CrossOriginError, FrameHandle, PageContext, ToolBackend
from .document import HtmlDocument, HtmlElement, HtmlFrame, HtmlWindow
from .dom_backend import DomBackend
from .native_backend import BackendSession, NativeBackend, SessionState
from .native_driver import NativeDriver
from .page_context import InMemoryPageContext, fetch_loader

__all__ = [
    "BackendSession",
    "CrossOriginError",
    "DomBackend",
    "FrameHandle",
    "HtmlDocument",
    "HtmlElement",
    "HtmlFrame",
    "HtmlWindow",
    "InMemoryPageContext",
    "NativeBackend",
    "NativeDriver",
    "PageContext",
    "SessionState",
    "ToolBackend",
    "fetch_loader",
]
