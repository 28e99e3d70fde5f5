"""
Tool dispatcher: validates a tool call and routes it to a capability backend.

Routing:
- an injected backend handles every call;
- otherwise each call asks whether the process runs inside the native host
  (`AgentConfig.native_host` or VYBER_NATIVE_HOST): native backend if so,
  DOM backend if not.

Every failure below the dispatcher comes back as a failed ToolResult; only
cancellation propagates.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any
from urllib.parse import urlsplit, urlunsplit

from ..cancellation import CancellationToken, RunCancelled
from ..config import AgentConfig, _env_flag
from ..tools.base import PageContext, ToolBackend
from ..tools.dom_backend import DomBackend
from ..tools.native_backend import NativeBackend, SessionState
from .inputs import parse_tool_input
from .types import ToolCall, ToolResult

logger = logging.getLogger("vyber.agent.dispatch")

MAX_LOGGED_VALUE = 200
_SECRET_FIELDS = {"value"}


def detect_native_host() -> bool:
    """True when running inside the native host (VYBER_NATIVE_HOST=1)."""
    return _env_flag("VYBER_NATIVE_HOST")


def _strip_query(url: str) -> str:
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https"):
        return url
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))


def sanitize_args(raw: Any) -> Any:
    """Loggable copy of tool arguments: URLs lose their query, typed values are masked."""
    if not isinstance(raw, dict):
        return raw
    clean: dict[str, Any] = {}
    for key, value in raw.items():
        if key in _SECRET_FIELDS and isinstance(value, str):
            clean[key] = f"<{len(value)} chars>"
        elif isinstance(value, str):
            value = _strip_query(value)
            if len(value) > MAX_LOGGED_VALUE:
                value = value[:MAX_LOGGED_VALUE] + "..."
            clean[key] = value
        else:
            clean[key] = value
    return clean


class ToolDispatcher:
    def __init__(
        self,
        backend: ToolBackend | None = None,
        *,
        config: AgentConfig | None = None,
        dom_backend: ToolBackend | None = None,
        native_backend: NativeBackend | None = None,
        environment: Callable[[], bool] | None = None,
    ) -> None:
        self._backend = backend
        self._dom_backend = dom_backend
        self._native_backend = native_backend
        self.config = config
        self._environment = environment or self._in_native_host

    def _in_native_host(self) -> bool:
        if self.config is not None and self.config.native_host:
            return True
        return detect_native_host()

    def select_backend(self) -> ToolBackend:
        if self._backend is not None:
            return self._backend
        # Not cached: the host may change between calls.
        if self._environment():
            if self._native_backend is None:
                self._native_backend = NativeBackend()
            return self._native_backend
        if self._dom_backend is None:
            self._dom_backend = DomBackend()
        return self._dom_backend

    async def dispatch(
        self,
        call: ToolCall,
        page: PageContext | None,
        *,
        cancel: CancellationToken | None = None,
    ) -> ToolResult:
        logger.info("tool=%s args=%s", call.name, sanitize_args(call.input))
        try:
            parsed = parse_tool_input(call.name, call.input)
            backend = self.select_backend()
            result = await backend.execute(parsed, page, cancel=cancel)
        except RunCancelled:
            raise
        except Exception as exc:
            message = str(exc) or type(exc).__name__
            logger.warning("tool_failed tool=%s error=%s", call.name, message)
            return ToolResult.fail(message)

        if result.success:
            logger.debug("tool_ok tool=%s backend=%s", call.name, backend.name)
        else:
            logger.info("tool_error tool=%s backend=%s error=%s", call.name, backend.name, result.error)
        return result

    async def shutdown(self) -> None:
        """Stop the native session if one was ever started."""
        backends = [self._backend, self._native_backend]
        for backend in backends:
            if isinstance(backend, NativeBackend) and backend.session.state is not SessionState.NOT_STARTED:
                await backend.stop()
                logger.info("native_session_stopped")
