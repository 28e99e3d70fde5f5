"""
Client for the reasoning service ("messages with tools" API).

Direct mode posts to the provider with the configured key; proxy mode posts
the same body to a relay that holds the key, with no auth headers.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from .config import ANTHROPIC_VERSION, AgentConfig
from .http_client import HttpClientError, HttpStatusError, http_post_json
from .server.types import ContentBlock, Message, TextBlock, content_block_from_dict

logger = logging.getLogger("vyber.agent.reasoning")


class ReasoningServiceError(HttpClientError):
    """The reasoning service could not be reached or answered with an error."""

    def __init__(self, message: str, status: int | None = None, body: str | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.body = body

    @classmethod
    def from_status(cls, status: int, body: str) -> ReasoningServiceError:
        return cls(f"Claude API error: {status} - {body}", status=status, body=body)


@dataclass(slots=True)
class ReasoningResponse:
    content: list[ContentBlock] = field(default_factory=list)
    stop_reason: str | None = None

    @property
    def text_blocks(self) -> list[TextBlock]:
        return [block for block in self.content if isinstance(block, TextBlock)]

    @classmethod
    def from_payload(cls, payload: Any) -> ReasoningResponse:
        if not isinstance(payload, dict) or not isinstance(payload.get("content"), list):
            raise ReasoningServiceError(f"Malformed reasoning response: {str(payload)[:200]}")
        return cls(
            content=[content_block_from_dict(raw) for raw in payload["content"]],
            stop_reason=payload.get("stop_reason"),
        )


class ReasoningClient:
    def __init__(self, config: AgentConfig | None = None) -> None:
        self.config = config or AgentConfig.from_env()

    def _headers(self) -> dict[str, str]:
        if not self.config.direct:
            return {}
        return {
            "x-api-key": str(self.config.api_key),
            "anthropic-version": ANTHROPIC_VERSION,
        }

    def build_request(
        self,
        messages: Sequence[Message],
        *,
        tools: list[dict[str, Any]] | None = None,
        system: str | None = None,
    ) -> dict[str, Any]:
        return {
            "model": self.config.model,
            "max_tokens": self.config.max_tokens,
            "system": system or "",
            "tools": list(tools or []),
            "messages": [message.to_dict() for message in messages],
        }

    async def create_message(
        self,
        messages: Sequence[Message],
        *,
        tools: list[dict[str, Any]] | None = None,
        system: str | None = None,
    ) -> ReasoningResponse:
        """Send one conversation turn and return the assistant's content blocks.

        Raises:
            ReasoningServiceError: non-2xx status (with status and body) or a
                transport failure (status None).
        """
        body = self.build_request(messages, tools=tools, system=system)
        endpoint = self.config.endpoint
        logger.debug("reasoning_request endpoint=%s messages=%d", endpoint.split("?")[0], len(messages))
        try:
            payload = await asyncio.to_thread(
                http_post_json, endpoint, body, self._headers(), self.config.request_timeout
            )
        except HttpStatusError as exc:
            logger.warning("reasoning_error status=%s", exc.status)
            raise ReasoningServiceError.from_status(exc.status, exc.body) from exc
        except HttpClientError as exc:
            logger.warning("reasoning_unreachable error=%s", exc)
            raise ReasoningServiceError(f"Claude API request failed: {exc}") from exc
        return ReasoningResponse.from_payload(payload)
