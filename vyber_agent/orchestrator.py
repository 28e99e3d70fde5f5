"""
Agent loop: turns a task into a bounded sequence of tool calls.

Each iteration sends the whole conversation to the reasoning service, reports
what came back through the callbacks, and either finishes (plain text answer
or a `complete` call) or executes the requested tools in order and feeds
their results back as the next user message.

Runs never raise: every outcome is an AgentRunResult.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from .cancellation import CancellationToken, RunCancelled
from .config import AgentConfig
from .reasoning import ReasoningClient, ReasoningServiceError
from .server.definitions import COMPLETE_TOOL, PAGE_MUTATING_TOOLS, list_tools
from .server.dispatch import ToolDispatcher
from .server.types import AgentRunResult, Message, TextBlock, ToolResult, ToolResultBlock, ToolUseBlock
from .tools.base import PageContext, ToolBackend

logger = logging.getLogger("vyber.agent.orchestrator")

AGENT_SYSTEM_PROMPT = """You are VybeR, an AI browsing agent that can control a web browser to accomplish tasks.

You have access to browser tools that let you navigate, extract content, click elements, fill forms, and more.

IMPORTANT GUIDELINES:
1. Always start by understanding what the user wants to accomplish
2. Break complex tasks into smaller steps
3. Use extract_text or get_page_info to understand the current page before taking actions
4. When navigating, wait for pages to load before extracting content
5. Be careful with forms - verify you're on the right page before filling
6. If something fails, try an alternative approach
7. Call the "complete" tool when you've finished the task

You are part of the Vybe ecosystem - a suite of AI-powered tools. Be helpful, concise, and proactive."""

QUERY_SYSTEM_PROMPT = (
    "You are VybeR, a helpful AI browser assistant. Answer questions concisely based on the provided context."
)

DEFAULT_SUMMARY = "Task completed"


@dataclass
class AgentCallbacks:
    """Lifecycle hooks for one run. Each may be a plain or an async callable."""

    on_thinking: Callable[[str], Any] | None = None
    on_tool_call: Callable[[str, dict[str, Any]], Any] | None = None
    on_tool_result: Callable[[str, ToolResult], Any] | None = None
    on_complete: Callable[[str, Any], Any] | None = None
    on_error: Callable[[str], Any] | None = None


async def _emit(callback: Callable[..., Any] | None, *args: Any) -> None:
    if callback is None:
        return
    try:
        outcome = callback(*args)
        if inspect.isawaitable(outcome):
            await outcome
    except Exception:
        logger.exception("callback_failed callback=%s", getattr(callback, "__name__", repr(callback)))


class Orchestrator:
    def __init__(
        self,
        config: AgentConfig | None = None,
        dispatcher: ToolDispatcher | None = None,
        *,
        backend: ToolBackend | None = None,
        client: ReasoningClient | None = None,
        callbacks: AgentCallbacks | None = None,
        tools: list[dict[str, Any]] | None = None,
        system_prompt: str = AGENT_SYSTEM_PROMPT,
    ) -> None:
        self.config = config or AgentConfig.from_env()
        self.dispatcher = dispatcher or ToolDispatcher(backend, config=self.config)
        self.client = client or ReasoningClient(self.config)
        self.callbacks = callbacks or AgentCallbacks()
        self.tools = tools if tools is not None else list_tools()
        self.system_prompt = system_prompt
        self._cancel: CancellationToken | None = None

    @property
    def running(self) -> bool:
        return self._cancel is not None

    def stop(self, reason: str | None = None) -> bool:
        """Cancel the current run. Returns False when nothing is running."""
        if self._cancel is None:
            return False
        self._cancel.cancel(reason)
        logger.info("run_stop_requested")
        return True

    async def run(
        self,
        task: str,
        page: PageContext | None,
        *,
        callbacks: AgentCallbacks | None = None,
    ) -> AgentRunResult:
        cancel = CancellationToken()
        self._cancel = cancel
        try:
            return await self._run(task, page, callbacks or self.callbacks, cancel)
        finally:
            if self._cancel is cancel:
                self._cancel = None

    async def _run(
        self,
        task: str,
        page: PageContext | None,
        callbacks: AgentCallbacks,
        cancel: CancellationToken,
    ) -> AgentRunResult:
        messages: list[Message] = [Message(role="user", content=task)]
        max_iterations = self.config.max_iterations
        logger.info("run_start max_iterations=%d", max_iterations)

        try:
            for iteration in range(1, max_iterations + 1):
                cancel.raise_if_cancelled()
                logger.debug("iteration=%d messages=%d", iteration, len(messages))

                try:
                    response = await self.client.create_message(
                        messages, tools=self.tools, system=self.system_prompt
                    )
                except ReasoningServiceError as exc:
                    logger.warning("run_failed iteration=%d error=%s", iteration, exc)
                    return await self._fail(str(exc), callbacks)
                except Exception as exc:
                    logger.exception("run_failed iteration=%d", iteration)
                    return await self._fail(str(exc) or type(exc).__name__, callbacks)
                cancel.raise_if_cancelled()

                tool_uses: list[ToolUseBlock] = []
                texts: list[str] = []
                complete_block: ToolUseBlock | None = None
                for block in response.content:
                    if isinstance(block, TextBlock):
                        texts.append(block.text)
                        await _emit(callbacks.on_thinking, block.text)
                    elif isinstance(block, ToolUseBlock):
                        tool_uses.append(block)
                        await _emit(callbacks.on_tool_call, block.name, block.input)
                        if block.name == COMPLETE_TOOL and complete_block is None:
                            complete_block = block

                messages.append(Message(role="assistant", content=list(response.content)))

                if not tool_uses:
                    summary = texts[-1] if texts else DEFAULT_SUMMARY
                    logger.info("run_complete iteration=%d reason=text", iteration)
                    return AgentRunResult(success=True, summary=summary or DEFAULT_SUMMARY)

                if complete_block is not None:
                    # Sibling calls in this turn are not executed.
                    summary = complete_block.input.get("summary") or DEFAULT_SUMMARY
                    data = complete_block.input.get("data")
                    await _emit(callbacks.on_complete, summary, data)
                    logger.info("run_complete iteration=%d reason=complete", iteration)
                    return AgentRunResult(success=True, summary=str(summary), data=data)

                results: list[ToolResultBlock] = []
                for block in tool_uses:
                    cancel.raise_if_cancelled()
                    result = await self.dispatcher.dispatch(block.to_call(), page, cancel=cancel)
                    await _emit(callbacks.on_tool_result, block.name, result)
                    results.append(ToolResultBlock.from_result(block.id, result))
                    if block.name in PAGE_MUTATING_TOOLS:
                        await cancel.sleep(self.config.post_action_delay)

                messages.append(Message(role="user", content=list(results)))
        except RunCancelled as exc:
            logger.info("run_cancelled")
            return await self._fail(exc.reason, callbacks)

        error = f"Max iterations ({max_iterations}) reached without completion"
        logger.warning("run_exhausted max_iterations=%d", max_iterations)
        return await self._fail(error, callbacks)

    async def _fail(self, error: str, callbacks: AgentCallbacks) -> AgentRunResult:
        await _emit(callbacks.on_error, error)
        return AgentRunResult(success=False, error=error)


async def run_agent(
    task: str,
    page: PageContext | None,
    config: AgentConfig | None = None,
    callbacks: AgentCallbacks | None = None,
    *,
    backend: ToolBackend | None = None,
) -> AgentRunResult:
    """Run one task with a fresh orchestrator; stops the native session afterwards."""
    orchestrator = Orchestrator(config, backend=backend, callbacks=callbacks)
    try:
        return await orchestrator.run(task, page)
    finally:
        await orchestrator.dispatcher.shutdown()


async def query_agent(
    question: str,
    page_context: str | None = None,
    config: AgentConfig | None = None,
    *,
    client: ReasoningClient | None = None,
) -> str:
    """One-shot question without tools, optionally grounded in page text.

    Raises:
        ReasoningServiceError: the service could not answer.
    """
    prompt = f"Page content:\n{page_context}\n\nUser question: {question}" if page_context else question
    client = client or ReasoningClient(config)
    response = await client.create_message(
        [Message(role="user", content=prompt)], tools=[], system=QUERY_SYSTEM_PROMPT
    )
    for block in response.text_blocks:
        if block.text:
            return block.text
    return "No response"
