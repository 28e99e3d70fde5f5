"""
VybeR browsing agent: tool orchestration over a live web page.

Entry points:
- Orchestrator / run_agent(): run a task to completion
- query_agent(): one-shot question without tools
- AgentRunner: run store with step log
"""

from .cancellation import CancellationToken, RunCancelled
from .config import AgentConfig, BrowserConfig
from .orchestrator import AGENT_SYSTEM_PROMPT, AgentCallbacks, Orchestrator, query_agent, run_agent
from .reasoning import ReasoningClient, ReasoningResponse, ReasoningServiceError
from .server import AgentRunResult, ToolCall, ToolResult, list_tools
from .server.dispatch import ToolDispatcher
from .steps import AgentRunner, AgentStep, AgentStepLog
from .tools import DomBackend, InMemoryPageContext, NativeBackend, NativeDriver

__version__ = "0.1.0"

__all__ = [
    "AGENT_SYSTEM_PROMPT",
    "AgentCallbacks",
    "AgentConfig",
    "AgentRunResult",
    "AgentRunner",
    "AgentStep",
    "AgentStepLog",
    "BrowserConfig",
    "CancellationToken",
    "DomBackend",
    "InMemoryPageContext",
    "NativeBackend",
    "NativeDriver",
    "Orchestrator",
    "ReasoningClient",
    "ReasoningResponse",
    "ReasoningServiceError",
    "RunCancelled",
    "ToolCall",
    "ToolDispatcher",
    "ToolResult",
    "list_tools",
    "query_agent",
    "run_agent",
]
