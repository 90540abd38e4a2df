"""
Data models for streamed completions.

This module defines Pydantic models for the normalized events a completion
client yields: thinking and text deltas, tool calls, token usage and
completion/error markers.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class StreamEventType(str, Enum):
    """Types of events in a streaming response."""

    THINKING_DELTA = "thinking_delta"
    TEXT_DELTA = "text_delta"
    MESSAGE_COMPLETE = "message_complete"
    ERROR = "error"
    TOOL_CALL_START = "tool_call_start"
    TOOL_CALL_DELTA = "tool_call_delta"
    TOOL_CALL_COMPLETE = "tool_call_complete"


class TextDelta(BaseModel):
    """
    An incremental piece of streamed text (answer or reasoning).

    Parameters
    ----------
    content : str
        The text content of this delta.
    """

    content: str = Field(description="Text content")

    def __str__(self) -> str:
        return self.content


class TokenUsage(BaseModel):
    """
    Token usage statistics for one completion.

    Examples
    --------
    >>> usage = TokenUsage(prompt_tokens=100, completion_tokens=50, total_tokens=150)
    >>> (usage + usage).total_tokens
    300
    """

    prompt_tokens: int = Field(default=0, ge=0, description="Prompt tokens")
    completion_tokens: int = Field(default=0, ge=0, description="Completion tokens")
    total_tokens: int = Field(default=0, ge=0, description="Total tokens")
    reasoning_tokens: int = Field(default=0, ge=0, description="Reasoning tokens")

    def __add__(self, other: TokenUsage) -> TokenUsage:
        return TokenUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
            reasoning_tokens=self.reasoning_tokens + other.reasoning_tokens,
        )


class ToolCallDelta(BaseModel):
    """A fragment of a tool call while it is being streamed."""

    call_id: str = Field(description="Tool call identifier")
    name: str | None = Field(default=None, description="Tool name")
    arguments_delta: str = Field(default="", description="Incremental arguments")


class ToolCall(BaseModel):
    """
    A complete tool call requested by the model.

    Parameters
    ----------
    call_id : str
        Unique identifier for this tool call.
    name : str | None, optional
        Name of the tool being called.
    arguments : dict[str, Any] | str, default=""
        Arguments for the tool call. JSON strings are decoded when valid.

    Examples
    --------
    >>> call = ToolCall(call_id="call_1", name="get_available_resources", arguments="{}")
    >>> call.arguments
    {}
    """

    call_id: str = Field(description="Tool call identifier")
    name: str | None = Field(default=None, description="Tool name")
    arguments: dict[str, Any] | str = Field(
        default="",
        description="Tool call arguments",
    )

    @field_validator("arguments", mode="before")
    @classmethod
    def parse_arguments(cls, v: Any) -> dict[str, Any] | str:
        if isinstance(v, str):
            try:
                return json.loads(v) if v else {}
            except json.JSONDecodeError:
                return v
        return v

    def arguments_json(self) -> str:
        """Return the arguments serialized the way the model sent them."""
        if isinstance(self.arguments, str):
            return self.arguments
        return json.dumps(self.arguments)

    def to_openai_tool_call(self) -> dict[str, Any]:
        """Convert to the ``tool_calls`` entry of an assistant message."""
        return {
            "id": self.call_id,
            "type": "function",
            "function": {
                "name": self.name,
                "arguments": self.arguments_json(),
            },
        }


class StreamEvent(BaseModel):
    """
    One normalized event of a streaming completion.

    Parameters
    ----------
    type : StreamEventType
        Type of the event.
    text_delta : TextDelta | None, optional
        Answer text for ``TEXT_DELTA`` events.
    thinking_delta : TextDelta | None, optional
        Reasoning text for ``THINKING_DELTA`` events.
    error : str | None, optional
        Error message for ``ERROR`` events.
    finish_reason : str | None, optional
        Reason for completion for ``MESSAGE_COMPLETE`` events.
    tool_call_delta : ToolCallDelta | None, optional
        Tool call fragment for ``TOOL_CALL_START``/``TOOL_CALL_DELTA``.
    tool_call : ToolCall | None, optional
        Complete tool call for ``TOOL_CALL_COMPLETE``.
    usage : TokenUsage | None, optional
        Token usage statistics if available.
    """

    type: StreamEventType = Field(description="Event type")
    text_delta: TextDelta | None = Field(default=None, description="Text delta")
    thinking_delta: TextDelta | None = Field(default=None, description="Thinking delta")
    error: str | None = Field(default=None, description="Error message")
    finish_reason: str | None = Field(default=None, description="Finish reason")
    tool_call_delta: ToolCallDelta | None = Field(
        default=None,
        description="Tool call delta",
    )
    tool_call: ToolCall | None = Field(default=None, description="Complete tool call")
    usage: TokenUsage | None = Field(default=None, description="Token usage")


class ToolResultMessage(BaseModel):
    """
    The result of a tool call, fed back to the model on the next turn.

    Examples
    --------
    >>> result = ToolResultMessage(tool_call_id="call_1", content="{}")
    >>> result.to_openai_message()["role"]
    'tool'
    """

    tool_call_id: str = Field(description="Tool call identifier")
    content: str = Field(description="Result content")
    is_error: bool = Field(default=False, description="Whether this is an error")

    def to_openai_message(self) -> dict[str, Any]:
        return {
            "role": "tool",
            "tool_call_id": self.tool_call_id,
            "content": self.content,
        }


def parse_tool_call_arguments(arguments_str: str) -> dict[str, Any]:
    """
    Parse tool call arguments from a JSON string.

    Returns an empty dict for an empty string and ``{"raw_arguments": ...}``
    when the string is not valid JSON.
    """
    if not arguments_str:
        return {}

    try:
        return json.loads(arguments_str)
    except json.JSONDecodeError:
        return {"raw_arguments": arguments_str}
