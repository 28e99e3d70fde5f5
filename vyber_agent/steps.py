"""
Run store: records the lifecycle events of agent runs for display.

AgentStepLog turns orchestrator callbacks into a flat list of AgentStep
records; AgentRunner keeps the state of the latest run (running flag, task,
steps, result).
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Literal

from .orchestrator import AgentCallbacks, Orchestrator
from .server.types import AgentRunResult, ToolResult
from .tools.base import PageContext

logger = logging.getLogger("vyber.agent.steps")

StepType = Literal["thinking", "tool_call", "tool_result", "complete", "error"]


@dataclass(slots=True)
class AgentStep:
    type: StepType
    content: str
    timestamp: float = field(default_factory=time.time)
    tool: str | None = None
    input: Any = None
    result: ToolResult | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"type": self.type, "timestamp": self.timestamp, "content": self.content}
        if self.tool is not None:
            out["tool"] = self.tool
        if self.input is not None:
            out["input"] = self.input
        if self.result is not None:
            out["result"] = self.result.to_dict()
        return out


class AgentStepLog:
    def __init__(self) -> None:
        self.steps: list[AgentStep] = []

    def __len__(self) -> int:
        return len(self.steps)

    def clear(self) -> None:
        self.steps.clear()

    def add(self, step: AgentStep) -> None:
        self.steps.append(step)

    def on_thinking(self, thought: str) -> None:
        self.add(AgentStep(type="thinking", content=thought))

    def on_tool_call(self, tool: str, tool_input: Any) -> None:
        self.add(AgentStep(type="tool_call", content=f"Calling {tool}", tool=tool, input=tool_input))

    def on_tool_result(self, tool: str, result: ToolResult) -> None:
        content = f"{tool} succeeded" if result.success else f"{tool} failed: {result.error}"
        self.add(AgentStep(type="tool_result", content=content, tool=tool, result=result))

    def on_complete(self, summary: str, data: Any = None) -> None:
        self.add(AgentStep(type="complete", content=summary))

    def on_error(self, error: str) -> None:
        self.add(AgentStep(type="error", content=error))

    def callbacks(self) -> AgentCallbacks:
        return AgentCallbacks(
            on_thinking=self.on_thinking,
            on_tool_call=self.on_tool_call,
            on_tool_result=self.on_tool_result,
            on_complete=self.on_complete,
            on_error=self.on_error,
        )


class AgentRunner:
    """State of the latest run driven through one orchestrator."""

    def __init__(self, orchestrator: Orchestrator, page: PageContext | None = None) -> None:
        self.orchestrator = orchestrator
        self.page = page
        self.log = AgentStepLog()
        self.is_running = False
        self.current_task: str | None = None
        self.result: AgentRunResult | None = None

    @property
    def steps(self) -> list[AgentStep]:
        return self.log.steps

    async def run_task(self, task: str) -> AgentRunResult:
        self.is_running = True
        self.current_task = task
        self.result = None
        self.log.clear()
        try:
            result = await self.orchestrator.run(task, self.page, callbacks=self.log.callbacks())
        except Exception as exc:
            logger.exception("run_task_failed")
            result = AgentRunResult(success=False, error=str(exc) or type(exc).__name__)
        finally:
            self.is_running = False
        self.result = result
        return result

    def stop(self) -> bool:
        stopped = self.orchestrator.stop()
        self.is_running = False
        return stopped

    def clear(self) -> None:
        self.is_running = False
        self.current_task = None
        self.result = None
        self.log.clear()
