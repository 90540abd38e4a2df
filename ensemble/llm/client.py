"""
Streaming completion client for Ensemble.

This module provides an async client for OpenAI-compatible chat completion
endpoints. Raw chunks are normalized into ``StreamEvent`` objects so the
orchestration core can tell reasoning ("thinking") deltas from answer text
and observe tool calls.
"""

import logging
from typing import Any, AsyncGenerator

from openai import AsyncOpenAI

from ensemble.config.schema import Configuration
from ensemble.exceptions import ConnectionError
from ensemble.llm.models import (
    StreamEvent,
    StreamEventType,
    TextDelta,
    TokenUsage,
    ToolCall,
    ToolCallDelta,
    parse_tool_call_arguments,
)
from ensemble.llm.retry import RetryStrategy
from ensemble.types import MessageDict, ToolDefinitions

logger = logging.getLogger(__name__)

# Providers expose streamed reasoning under different delta attributes.
_REASONING_ATTRIBUTES: tuple[str, ...] = ("reasoning_content", "reasoning")


class LLMClient:
    """
    Client for streaming chat completions.

    Parameters
    ----------
    config : Configuration
        Configuration object containing API settings and model parameters.

    Examples
    --------
    >>> client = LLMClient(config)
    >>> async for event in client.chat_completion([{"role": "user", "content": "Hello"}]):
    ...     if event.type == StreamEventType.TEXT_DELTA:
    ...         print(event.text_delta.content, end="")
    >>> await client.close()
    """

    def __init__(self, config: Configuration) -> None:
        self.config: Configuration = config
        self._client: AsyncOpenAI | None = None
        self._retry_strategy: RetryStrategy = RetryStrategy()

    def _get_client(self) -> AsyncOpenAI:
        """
        Get or create the OpenAI client instance.

        Raises
        ------
        ConnectionError
            If the API key is not configured.
        """
        if self._client is None:
            api_key: str | None = self.config.api_key
            if not api_key:
                raise ConnectionError(
                    "API key not configured. Set API_KEY environment variable.",
                )

            self._client = AsyncOpenAI(
                api_key=api_key,
                base_url=self.config.base_url,
                timeout=self.config.model.request_timeout,
            )
            logger.debug("LLM client initialized")

        return self._client

    async def close(self) -> None:
        """Close the client and release pooled connections."""
        if self._client:
            await self._client.close()
            self._client = None
            logger.debug("LLM client closed")

    def _build_tools(self, tools: ToolDefinitions) -> list[dict[str, Any]]:
        """Build tool definitions in OpenAI function format."""
        return [
            {
                "type": "function",
                "function": {
                    "name": tool["name"],
                    "description": tool.get("description", ""),
                    "parameters": tool.get(
                        "parameters",
                        {"type": "object", "properties": {}},
                    ),
                },
            }
            for tool in tools
        ]

    def _build_request(
        self,
        messages: list[MessageDict],
        tools: ToolDefinitions | None,
        tool_choice: str | dict[str, Any] | None,
        max_tokens: int | None,
        thinking_budget: int | None,
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self.config.model_name,
            "messages": messages,
            "stream": True,
            "stream_options": {"include_usage": True},
        }

        if self.config.model.temperature is not None:
            kwargs["temperature"] = self.config.model.temperature

        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens

        if tools:
            kwargs["tools"] = self._build_tools(tools)
            kwargs["tool_choice"] = tool_choice or "auto"

        if thinking_budget:
            kwargs["extra_body"] = {
                "thinking": {"type": "enabled", "budget_tokens": thinking_budget},
            }

        return kwargs

    async def chat_completion(
        self,
        messages: list[MessageDict],
        tools: ToolDefinitions | None = None,
        *,
        tool_choice: str | dict[str, Any] | None = None,
        max_tokens: int | None = None,
        thinking_budget: int | None = None,
    ) -> AsyncGenerator[StreamEvent, None]:
        """
        Stream a chat completion.

        Parameters
        ----------
        messages : list[MessageDict]
            Conversation messages, system prompt first.
        tools : ToolDefinitions | None, optional
            Tool definitions available to the model.
        tool_choice : str | dict[str, Any] | None, optional
            ``"auto"`` (default when tools are given) or a forced function.
        max_tokens : int | None, optional
            Completion token limit.
        thinking_budget : int | None, optional
            Extended thinking budget forwarded to the provider.

        Yields
        ------
        StreamEvent
            Thinking/text deltas, tool call events, one ``MESSAGE_COMPLETE``
            on success, or one ``ERROR`` event on failure.
        """
        kwargs: dict[str, Any] = self._build_request(
            messages,
            tools,
            tool_choice,
            max_tokens,
            thinking_budget,
        )

        try:
            client: AsyncOpenAI = self._get_client()
            async for event in self._stream_response(client, kwargs):
                yield event
        except Exception as e:
            logger.error(f"Error in chat completion: {e}", exc_info=True)
            yield StreamEvent(type=StreamEventType.ERROR, error=str(e))

    async def _stream_response(
        self,
        client: AsyncOpenAI,
        kwargs: dict[str, Any],
    ) -> AsyncGenerator[StreamEvent, None]:
        """
        Open the stream and translate its chunks.

        The HTTP stream is closed in all cases, including cancellation of
        the consuming task.
        """
        response = await self._retry_strategy.execute(
            lambda: client.chat.completions.create(**kwargs),
        )

        finish_reason: str | None = None
        usage: TokenUsage | None = None
        tool_calls: dict[int, dict[str, Any]] = {}

        try:
            async for chunk in response:
                if getattr(chunk, "usage", None):
                    usage = _usage_from_chunk(chunk.usage)

                if not chunk.choices:
                    continue

                choice = chunk.choices[0]
                delta = choice.delta

                if choice.finish_reason:
                    finish_reason = choice.finish_reason

                reasoning: str | None = _reasoning_from_delta(delta)
                if reasoning:
                    yield StreamEvent(
                        type=StreamEventType.THINKING_DELTA,
                        thinking_delta=TextDelta(content=reasoning),
                    )

                if delta.content:
                    yield StreamEvent(
                        type=StreamEventType.TEXT_DELTA,
                        text_delta=TextDelta(content=delta.content),
                    )

                for tool_call_delta in delta.tool_calls or []:
                    idx: int = tool_call_delta.index

                    if idx not in tool_calls:
                        tool_calls[idx] = {
                            "id": tool_call_delta.id or "",
                            "name": "",
                            "arguments": "",
                        }

                        if tool_call_delta.function and tool_call_delta.function.name:
                            tool_calls[idx]["name"] = tool_call_delta.function.name
                            yield StreamEvent(
                                type=StreamEventType.TOOL_CALL_START,
                                tool_call_delta=ToolCallDelta(
                                    call_id=tool_calls[idx]["id"],
                                    name=tool_call_delta.function.name,
                                ),
                            )

                    if tool_call_delta.function and tool_call_delta.function.arguments:
                        tool_calls[idx]["arguments"] += tool_call_delta.function.arguments
                        yield StreamEvent(
                            type=StreamEventType.TOOL_CALL_DELTA,
                            tool_call_delta=ToolCallDelta(
                                call_id=tool_calls[idx]["id"],
                                name=tool_calls[idx]["name"],
                                arguments_delta=tool_call_delta.function.arguments,
                            ),
                        )
        finally:
            await response.close()

        for tc in tool_calls.values():
            yield StreamEvent(
                type=StreamEventType.TOOL_CALL_COMPLETE,
                tool_call=ToolCall(
                    call_id=tc["id"],
                    name=tc["name"],
                    arguments=parse_tool_call_arguments(tc["arguments"]),
                ),
            )

        yield StreamEvent(
            type=StreamEventType.MESSAGE_COMPLETE,
            finish_reason=finish_reason,
            usage=usage,
        )


def _reasoning_from_delta(delta: Any) -> str | None:
    for attribute in _REASONING_ATTRIBUTES:
        value = getattr(delta, attribute, None)
        if isinstance(value, str) and value:
            return value
    return None


def _usage_from_chunk(raw: Any) -> TokenUsage:
    details = getattr(raw, "completion_tokens_details", None)
    return TokenUsage(
        prompt_tokens=raw.prompt_tokens or 0,
        completion_tokens=raw.completion_tokens or 0,
        total_tokens=raw.total_tokens or 0,
        reasoning_tokens=(getattr(details, "reasoning_tokens", None) or 0) if details else 0,
    )
