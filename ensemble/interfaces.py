"""
Protocol definitions for the collaborators of the orchestration core.

The core talks to the completion service only through this protocol, so it
can be swapped (or stubbed in tests).
"""

from typing import Any, AsyncGenerator, Protocol

from ensemble.llm.models import StreamEvent
from ensemble.types import MessageDict, ToolDefinitions


class LLMClientProtocol(Protocol):
    """
    Protocol for streaming completion clients.

    Implementations stream ``StreamEvent`` objects and report failures as
    ``StreamEventType.ERROR`` events rather than raising.
    """

    def chat_completion(
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
            Tool definitions the model may call.
        tool_choice : str | dict[str, Any] | None, optional
            ``"auto"`` or a forced function choice.
        max_tokens : int | None, optional
            Completion token limit.
        thinking_budget : int | None, optional
            Token budget for extended thinking, when the provider supports it.

        Yields
        ------
        StreamEvent
            Thinking/text deltas, tool calls, completion and error events.
        """
        ...

    async def close(self) -> None:
        """Release connections held by the client."""
        ...

