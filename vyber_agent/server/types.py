"""
Type definitions shared by the catalog, dispatcher, backends and orchestrator.

Content blocks mirror the reasoning service's "messages with tools" wire format;
`to_dict()` produces exactly what is sent, `content_block_from_dict()` parses
what comes back.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Literal, Union

Role = Literal["user", "assistant"]


@dataclass(slots=True)
class ToolResult:
    """Normalized outcome of one tool call, whichever backend ran it."""

    success: bool
    data: Any = None
    error: str | None = None
    screenshot: str | None = None  # base64 PNG

    def __post_init__(self) -> None:
        # A failed result always carries a message.
        if not self.success and not self.error:
            self.error = "Unknown error"

    @classmethod
    def ok(cls, data: Any = None, screenshot: str | None = None) -> ToolResult:
        return cls(success=True, data=data, screenshot=screenshot)

    @classmethod
    def fail(cls, error: str, data: Any = None) -> ToolResult:
        return cls(success=False, data=data, error=error)

    @classmethod
    def from_rpc(cls, payload: Any) -> ToolResult:
        """Adopt a `{success, data?, error?}` reply from the native driver unchanged."""
        if not isinstance(payload, dict):
            return cls.fail(f"Malformed native reply: {payload!r}")
        success = bool(payload.get("success"))
        error = payload.get("error")
        if not success:
            return cls.fail(str(error) if error else "Native call failed", data=payload.get("data"))
        return cls(success=True, data=payload.get("data"), error=str(error) if error else None)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"success": self.success}
        if self.data is not None:
            out["data"] = self.data
        if self.error is not None:
            out["error"] = self.error
        if self.screenshot is not None:
            out["screenshot"] = self.screenshot
        return out

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, default=str)


@dataclass(slots=True, frozen=True)
class ToolCall:
    """One tool invocation requested by the reasoning service."""

    name: str
    input: dict[str, Any] = field(default_factory=dict)
    id: str | None = None


@dataclass(slots=True)
class TextBlock:
    text: str
    type: Literal["text"] = "text"

    def to_dict(self) -> dict[str, Any]:
        return {"type": "text", "text": self.text}


@dataclass(slots=True)
class ToolUseBlock:
    id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict)
    type: Literal["tool_use"] = "tool_use"

    def to_dict(self) -> dict[str, Any]:
        return {"type": "tool_use", "id": self.id, "name": self.name, "input": self.input}

    def to_call(self) -> ToolCall:
        return ToolCall(name=self.name, input=self.input, id=self.id)


@dataclass(slots=True)
class ToolResultBlock:
    tool_use_id: str
    content: str
    is_error: bool = False
    type: Literal["tool_result"] = "tool_result"

    @classmethod
    def from_result(cls, tool_use_id: str, result: ToolResult) -> ToolResultBlock:
        return cls(tool_use_id=tool_use_id, content=result.to_json(), is_error=not result.success)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "tool_result",
            "tool_use_id": self.tool_use_id,
            "content": self.content,
            "is_error": self.is_error,
        }


@dataclass(slots=True)
class RawBlock:
    """Block type this package does not interpret; round-tripped verbatim."""

    payload: dict[str, Any]

    @property
    def type(self) -> str:
        return str(self.payload.get("type", ""))

    def to_dict(self) -> dict[str, Any]:
        return dict(self.payload)


ContentBlock = Union[TextBlock, ToolUseBlock, ToolResultBlock, RawBlock]


def content_block_from_dict(raw: Any) -> ContentBlock:
    if not isinstance(raw, dict):
        raise ValueError(f"Content block must be an object, got {type(raw).__name__}")
    kind = raw.get("type")
    if kind == "text":
        return TextBlock(text=str(raw.get("text") or ""))
    if kind == "tool_use":
        tool_input = raw.get("input")
        return ToolUseBlock(
            id=str(raw.get("id") or ""),
            name=str(raw.get("name") or ""),
            input=tool_input if isinstance(tool_input, dict) else {},
        )
    if kind == "tool_result":
        return ToolResultBlock(
            tool_use_id=str(raw.get("tool_use_id") or ""),
            content=raw.get("content") if isinstance(raw.get("content"), str) else json.dumps(raw.get("content")),
            is_error=bool(raw.get("is_error")),
        )
    return RawBlock(payload=dict(raw))


@dataclass(slots=True)
class Message:
    role: Role
    content: str | list[ContentBlock]

    def to_dict(self) -> dict[str, Any]:
        if isinstance(self.content, str):
            return {"role": self.role, "content": self.content}
        return {"role": self.role, "content": [block.to_dict() for block in self.content]}


@dataclass(slots=True)
class AgentRunResult:
    """Terminal output of one orchestration run."""

    success: bool
    summary: str | None = None
    data: Any = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"success": self.success}
        if self.summary is not None:
            out["summary"] = self.summary
        if self.data is not None:
            out["data"] = self.data
        if self.error is not None:
            out["error"] = self.error
        return out
