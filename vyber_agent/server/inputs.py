"""
Validated tool inputs.

The reasoning service emits free-form JSON that only loosely follows the
catalog schemas. `parse_tool_input()` turns a raw `ToolCall.input` into one
frozen dataclass per tool, so backends never cast fields ad hoc.

Numeric fields follow the catalog defaults: a missing value or 0 selects the
default, a negative value is rejected.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, ClassVar, Union

from .definitions import TOOL_NAMES

SCROLL_DIRECTIONS = ("up", "down", "top", "bottom")

DEFAULT_MAX_LENGTH = 8000
DEFAULT_MAX_LINKS = 50
DEFAULT_WAIT_TIMEOUT_MS = 5000


class ToolInputError(ValueError):
    """Tool input does not match the tool's schema."""


@dataclass(frozen=True, slots=True)
class NavigateInput:
    name: ClassVar[str] = "navigate"
    url: str


@dataclass(frozen=True, slots=True)
class ExtractTextInput:
    name: ClassVar[str] = "extract_text"
    selector: str | None = None
    max_length: int = DEFAULT_MAX_LENGTH


@dataclass(frozen=True, slots=True)
class ExtractLinksInput:
    name: ClassVar[str] = "extract_links"
    selector: str | None = None
    max_links: int = DEFAULT_MAX_LINKS


@dataclass(frozen=True, slots=True)
class ClickInput:
    name: ClassVar[str] = "click"
    selector: str | None = None
    text: str | None = None


@dataclass(frozen=True, slots=True)
class FillFormInput:
    name: ClassVar[str] = "fill_form"
    selector: str
    value: str
    submit: bool = False


@dataclass(frozen=True, slots=True)
class ScreenshotInput:
    name: ClassVar[str] = "screenshot"
    selector: str | None = None
    full_page: bool = False


@dataclass(frozen=True, slots=True)
class ScrollInput:
    name: ClassVar[str] = "scroll"
    direction: str | None = None
    selector: str | None = None
    amount: float | None = None


@dataclass(frozen=True, slots=True)
class WaitInput:
    name: ClassVar[str] = "wait"
    selector: str | None = None
    timeout: int = DEFAULT_WAIT_TIMEOUT_MS


@dataclass(frozen=True, slots=True)
class GetPageInfoInput:
    name: ClassVar[str] = "get_page_info"


@dataclass(frozen=True, slots=True)
class SearchGoogleInput:
    name: ClassVar[str] = "search_google"
    query: str


@dataclass(frozen=True, slots=True)
class OpenTabInput:
    name: ClassVar[str] = "open_tab"
    url: str | None = None


@dataclass(frozen=True, slots=True)
class CloseTabInput:
    name: ClassVar[str] = "close_tab"


@dataclass(frozen=True, slots=True)
class CompleteInput:
    name: ClassVar[str] = "complete"
    summary: str | None = None
    data: Any = None


ToolInput = Union[
    NavigateInput,
    ExtractTextInput,
    ExtractLinksInput,
    ClickInput,
    FillFormInput,
    ScreenshotInput,
    ScrollInput,
    WaitInput,
    GetPageInfoInput,
    SearchGoogleInput,
    OpenTabInput,
    CloseTabInput,
    CompleteInput,
]


# ─────────────────────────────────────────────────────────────────────────────
# Field readers
# ─────────────────────────────────────────────────────────────────────────────


def _required_str(tool: str, raw: Mapping[str, Any], key: str, *, allow_empty: bool = False) -> str:
    value = raw.get(key)
    if value is None:
        raise ToolInputError(f"Missing required field '{key}' for {tool}")
    if not isinstance(value, str):
        raise ToolInputError(f"Field '{key}' for {tool} must be a string")
    if not allow_empty and not value.strip():
        raise ToolInputError(f"Field '{key}' for {tool} must not be empty")
    return value


def _optional_str(tool: str, raw: Mapping[str, Any], key: str) -> str | None:
    value = raw.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ToolInputError(f"Field '{key}' for {tool} must be a string")
    return value or None


def _optional_number(tool: str, raw: Mapping[str, Any], key: str) -> float | None:
    value = raw.get(key)
    if value is None:
        return None
    # bool is an int subclass; reject it explicitly.
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ToolInputError(f"Field '{key}' for {tool} must be a number")
    if value < 0:
        raise ToolInputError(f"Field '{key}' for {tool} must be positive")
    return value or None


def _count(tool: str, raw: Mapping[str, Any], key: str, default: int) -> int:
    value = _optional_number(tool, raw, key)
    if value is None:
        return default
    return max(1, int(value))


def _flag(tool: str, raw: Mapping[str, Any], key: str) -> bool:
    value = raw.get(key)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ToolInputError(f"Field '{key}' for {tool} must be a boolean")
    return value


# ─────────────────────────────────────────────────────────────────────────────
# Per-tool parsers
# ─────────────────────────────────────────────────────────────────────────────


def _parse_click(raw: Mapping[str, Any]) -> ClickInput:
    selector = _optional_str("click", raw, "selector")
    text = _optional_str("click", raw, "text")
    if selector is None and text is None:
        raise ToolInputError("Must provide selector or text")
    return ClickInput(selector=selector, text=text)


def _parse_scroll(raw: Mapping[str, Any]) -> ScrollInput:
    direction = _optional_str("scroll", raw, "direction")
    if direction is not None and direction not in SCROLL_DIRECTIONS:
        raise ToolInputError(f"Invalid direction: {direction} (use one of: {', '.join(SCROLL_DIRECTIONS)})")
    return ScrollInput(
        direction=direction,
        selector=_optional_str("scroll", raw, "selector"),
        amount=_optional_number("scroll", raw, "amount"),
    )


_PARSERS: dict[str, Callable[[Mapping[str, Any]], ToolInput]] = {
    "navigate": lambda raw: NavigateInput(url=_required_str("navigate", raw, "url")),
    "extract_text": lambda raw: ExtractTextInput(
        selector=_optional_str("extract_text", raw, "selector"),
        max_length=_count("extract_text", raw, "max_length", DEFAULT_MAX_LENGTH),
    ),
    "extract_links": lambda raw: ExtractLinksInput(
        selector=_optional_str("extract_links", raw, "selector"),
        max_links=_count("extract_links", raw, "max_links", DEFAULT_MAX_LINKS),
    ),
    "click": _parse_click,
    "fill_form": lambda raw: FillFormInput(
        selector=_required_str("fill_form", raw, "selector"),
        value=_required_str("fill_form", raw, "value", allow_empty=True),
        submit=_flag("fill_form", raw, "submit"),
    ),
    "screenshot": lambda raw: ScreenshotInput(
        selector=_optional_str("screenshot", raw, "selector"),
        full_page=_flag("screenshot", raw, "full_page"),
    ),
    "scroll": _parse_scroll,
    "wait": lambda raw: WaitInput(
        selector=_optional_str("wait", raw, "selector"),
        timeout=_count("wait", raw, "timeout", DEFAULT_WAIT_TIMEOUT_MS),
    ),
    "get_page_info": lambda raw: GetPageInfoInput(),
    "search_google": lambda raw: SearchGoogleInput(query=_required_str("search_google", raw, "query")),
    "open_tab": lambda raw: OpenTabInput(url=_optional_str("open_tab", raw, "url")),
    "close_tab": lambda raw: CloseTabInput(),
    "complete": lambda raw: CompleteInput(
        summary=_optional_str("complete", raw, "summary"),
        data=raw.get("data"),
    ),
}

assert set(_PARSERS) == set(TOOL_NAMES), "every catalog tool needs an input parser"


def parse_tool_input(name: str, raw: Any) -> ToolInput:
    """Validate raw tool input for `name`.

    Raises:
        ToolInputError: unknown tool, non-object input, or a field violating the schema.
    """
    parser = _PARSERS.get(name)
    if parser is None:
        raise ToolInputError(f"Unknown tool: {name}")
    if raw is None:
        raw = {}
    if not isinstance(raw, Mapping):
        raise ToolInputError(f"Input for {name} must be an object")
    return parser(raw)
