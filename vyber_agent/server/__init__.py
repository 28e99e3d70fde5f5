"""
Tool surface shared by the backends and the orchestrator.

- definitions: the static tool catalog sent to the reasoning service
- inputs: per-tool validated input dataclasses
- types: ToolResult, content blocks and messages
- dispatch: ToolDispatcher (import from `vyber_agent.server.dispatch`)
"""

from .definitions import AGENT_TOOL_DEFINITIONS, COMPLETE_TOOL, TOOL_NAMES, get_tool_definition, list_tools
from .inputs import ToolInput, ToolInputError, parse_tool_input
from .types import AgentRunResult, ContentBlock, Message, ToolCall, ToolResult

__all__ = [
    "AGENT_TOOL_DEFINITIONS",
    "COMPLETE_TOOL",
    "TOOL_NAMES",
    "AgentRunResult",
    "ContentBlock",
    "Message",
    "ToolCall",
    "ToolInput",
    "ToolInputError",
    "ToolResult",
    "get_tool_definition",
    "list_tools",
    "parse_tool_input",
]
