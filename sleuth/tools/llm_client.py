"""Async client for an OpenAI-compatible chat completions endpoint.

The only model contract the research core uses:

    reply = await llm.invoke(role, messages, tools=[...], config=worker_config)
    reply.text, reply.tool_calls

Provider, model, token and temperature settings come from WorkerConfig and
are passed through unchanged. Any provider that speaks
POST /v1/chat/completions (OpenAI, Ollama, vLLM, LiteLLM, Gemini's
OpenAI endpoint) works.
"""

from __future__ import annotations

import json
import re
from typing import Any, Protocol

import httpx
import structlog

from sleuth.config import settings
from sleuth.errors import LLMError
from sleuth.models.schemas import LLMReply, ToolCall, WorkerConfig
from sleuth.research.models import AgentRole

logger = structlog.get_logger().bind(component="llm_client")

_THINK_BLOCK = re.compile(r"<think>.*?</think>", flags=re.DOTALL)


def strip_think(text: str) -> str:
    """Drop <think>…</think> blocks emitted by reasoning models."""
    return _THINK_BLOCK.sub("", text).strip()


class LLMInvoker(Protocol):
    """What workers depend on. LLMClient and test doubles both satisfy it."""

    async def invoke(
        self,
        role: AgentRole,
        messages: list[dict[str, Any]],
        *,
        tools: list[dict[str, Any]] | None = None,
        config: WorkerConfig | None = None,
    ) -> LLMReply: ...


class LLMClient:
    """httpx-backed chat completions client with lazy connection setup."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.llm_base_url).rstrip("/")
        self.api_key = settings.llm_api_key if api_key is None else api_key
        self.model = model or settings.llm_model
        self.timeout = timeout or settings.llm_timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers=headers,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def invoke(
        self,
        role: AgentRole,
        messages: list[dict[str, Any]],
        *,
        tools: list[dict[str, Any]] | None = None,
        config: WorkerConfig | None = None,
    ) -> LLMReply:
        """One chat completion round-trip.

        Raises:
            LLMError: on transport errors, non-2xx responses, or a payload
                without choices.
        """
        payload: dict[str, Any] = {
            "model": config.model if config else self.model,
            "messages": messages,
        }
        if config is not None:
            payload["max_tokens"] = config.max_tokens
            payload["temperature"] = config.temperature
        if tools:
            payload["tools"] = tools

        client = await self._get_client()
        try:
            response = await client.post("/v1/chat/completions", json=payload)
            response.raise_for_status()
            result = response.json()
        except httpx.HTTPStatusError as exc:
            raise LLMError(
                f"LLM provider returned {exc.response.status_code} for role {role.value}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise LLMError(f"LLM request failed for role {role.value}: {exc}") from exc

        reply = self._parse(result)
        logger.debug(
            "chat_completion",
            role=role.value,
            model=payload["model"],
            messages_count=len(messages),
            tool_calls=len(reply.tool_calls),
            usage=result.get("usage"),
        )
        return reply

    @staticmethod
    def _parse(result: dict[str, Any]) -> LLMReply:
        choices = result.get("choices") or []
        if not choices:
            raise LLMError("No response from LLM (empty choices)")
        message = choices[0].get("message") or {}

        if reasoning := message.get("reasoning_content"):
            logger.debug("model_reasoning_content", trace=reasoning[:400])

        tool_calls: list[ToolCall] = []
        for call in message.get("tool_calls") or []:
            function = call.get("function") or {}
            arguments = function.get("arguments") or "{}"
            # Ollama sends arguments as an object rather than a JSON string
            if not isinstance(arguments, str):
                arguments = json.dumps(arguments)
            tool_calls.append(ToolCall(id=call.get("id", ""), name=function.get("name", ""), arguments=arguments))
        return LLMReply(
            text=strip_think(message.get("content") or ""),
            tool_calls=tool_calls,
            model=result.get("model", ""),
            usage=result.get("usage") or {},
        )
