"""
Planner: tool-gated design and editing of agent teams.

The planner holds a short multi-turn conversation with the completion
service. A single tool, ``get_available_resources``, exposes the resource
bucket; the first turn forces a call to it so the model sees the allowed
labels before it writes a spec. The final text is parsed into an
``EnvironmentSpec`` and sanitized by the allowlist before it is published.
"""

import json
import logging
from typing import Any, AsyncGenerator

from pydantic import ValidationError as PydanticValidationError

from ensemble.agent.events import (
    AgentEvent,
    EnvCreatedEvent,
    ErrorEvent,
    PlannerOutputEvent,
    PlannerThinkingEvent,
)
from ensemble.config.schema import PlannerConfig
from ensemble.constants import RESOURCE_TOOL_NAME
from ensemble.exceptions import EnsembleError, PlanningError
from ensemble.interfaces import LLMClientProtocol
from ensemble.llm.models import StreamEventType, ToolCall, ToolResultMessage
from ensemble.prompts.builder import (
    DESIGN_PROMPT,
    EDIT_PROMPT,
    OPTIMIZE_INSTRUCTION,
    RESOURCE_TOOL,
    build_edit_content,
)
from ensemble.team.allowlist import enforce_allowlist, format_bucket_for_tool
from ensemble.team.models import BucketItem, EnvironmentSpec
from ensemble.types import MessageDict
from ensemble.utils.json_extract import iter_json_objects

logger = logging.getLogger(__name__)


class ToolUseConversation:
    """
    Bounded tool-use conversation that ends in free text.

    Each turn streams thinking and text deltas as planner events. A turn
    that calls the resource tool gets the bucket as tool result and the
    conversation continues; the first turn without a tool call ends it and
    its text becomes ``output``. If ``max_turns`` is reached first,
    ``output`` is the text of all turns concatenated, possibly empty.

    Parameters
    ----------
    client : LLMClientProtocol
        Completion service.
    config : PlannerConfig
        Turn budget and per-turn completion limits.
    bucket_items : list[BucketItem]
        Resource bucket served by the tool.

    Attributes
    ----------
    output : str
        Final text, available once ``run`` is exhausted.
    turns : int
        Number of completion turns issued.
    """

    def __init__(
        self,
        client: LLMClientProtocol,
        config: PlannerConfig,
        bucket_items: list[BucketItem],
    ) -> None:
        self.client: LLMClientProtocol = client
        self.config: PlannerConfig = config
        self.bucket_items: list[BucketItem] = bucket_items
        self.output: str = ""
        self.turns: int = 0

    def _tool_choice(self, turn: int) -> str | dict[str, Any]:
        if turn == 0 and self.config.force_resource_tool:
            return {"type": "function", "function": {"name": RESOURCE_TOOL_NAME}}
        return "auto"

    def _serve_tool_call(self, tool_call: ToolCall) -> ToolResultMessage:
        if tool_call.name != RESOURCE_TOOL_NAME:
            logger.warning(f"Planner called unknown tool: {tool_call.name}")
            return ToolResultMessage(
                tool_call_id=tool_call.call_id,
                content=json.dumps({"error": f"Unknown tool: {tool_call.name}"}),
                is_error=True,
            )

        resources: dict[str, Any] = format_bucket_for_tool(
            self.bucket_items,
            self.config.skill_preview_chars,
        )
        logger.debug(f"Served {RESOURCE_TOOL_NAME} with {len(self.bucket_items)} item(s)")
        return ToolResultMessage(
            tool_call_id=tool_call.call_id,
            content=json.dumps(resources, indent=2),
        )

    async def run(
        self,
        system_prompt: str,
        user_content: str,
    ) -> AsyncGenerator[AgentEvent, None]:
        """
        Drive the conversation.

        Yields
        ------
        AgentEvent
            ``planner_thinking`` and ``planner_output`` events, in arrival
            order.

        Raises
        ------
        PlanningError
            If the completion service reports an error.
        """
        messages: list[MessageDict] = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_content},
        ]
        turn_texts: list[str] = []

        for turn in range(self.config.max_turns):
            self.turns = turn + 1
            logger.debug(f"Planner turn {self.turns}/{self.config.max_turns}")

            text: str = ""
            tool_calls: list[ToolCall] = []

            async for event in self.client.chat_completion(
                messages,
                [RESOURCE_TOOL],
                tool_choice=self._tool_choice(turn),
                max_tokens=self.config.max_tokens,
                thinking_budget=self.config.thinking_budget,
            ):
                if event.type == StreamEventType.THINKING_DELTA and event.thinking_delta:
                    yield PlannerThinkingEvent(content=event.thinking_delta.content)
                elif event.type == StreamEventType.TEXT_DELTA and event.text_delta:
                    text += event.text_delta.content
                    yield PlannerOutputEvent(content=event.text_delta.content)
                elif event.type == StreamEventType.TOOL_CALL_COMPLETE and event.tool_call:
                    tool_calls.append(event.tool_call)
                elif event.type == StreamEventType.ERROR:
                    raise PlanningError(
                        f"Planner completion failed: {event.error or 'unknown error'}",
                        details={"turn": self.turns},
                    )

            turn_texts.append(text)

            if not tool_calls:
                self.output = text
                return

            messages.append(
                {
                    "role": "assistant",
                    "content": text or None,
                    "tool_calls": [tc.to_openai_tool_call() for tc in tool_calls],
                },
            )
            for tool_call in tool_calls:
                messages.append(self._serve_tool_call(tool_call).to_openai_message())

        logger.warning(
            f"Planner turn budget of {self.config.max_turns} exhausted without a final answer",
        )
        self.output = "".join(turn_texts)


def parse_environment_spec(text: str) -> EnvironmentSpec:
    """
    Parse planner output into an environment spec.

    Every JSON object in the text is tried in order of appearance; the
    first one that carries a non-empty ``agents`` list and validates as a
    spec wins. Stray objects in the prose around the spec are skipped.

    Parameters
    ----------
    text : str
        Final planner text, JSON possibly wrapped in prose.

    Returns
    -------
    EnvironmentSpec
        The parsed, not yet sanitized, spec.

    Raises
    ------
    PlanningError
        If the text is empty, holds no JSON object, or no object is a valid
        spec with at least one agent.
    """
    if not text.strip():
        raise PlanningError("Planner produced no output")

    found_json: bool = False
    last_error: PydanticValidationError | None = None
    for data in iter_json_objects(text):
        found_json = True
        if not data.get("agents"):
            continue
        try:
            return EnvironmentSpec.model_validate(data)
        except PydanticValidationError as e:
            last_error = e

    if not found_json:
        raise PlanningError("No JSON found in planner output")
    if last_error is not None:
        raise PlanningError(
            f"Planner output is not a valid environment spec: {last_error}",
            cause=last_error,
        ) from last_error
    raise PlanningError("Planner output holds no team with at least one agent")


class Planner:
    """
    Entry points that turn planner conversations into team specs.

    Every entry point yields planner events followed by exactly one
    ``env_created`` (with the allowlist applied) or exactly one ``error``.

    Parameters
    ----------
    client : LLMClientProtocol
        Completion service.
    config : PlannerConfig
        Planner limits.

    Examples
    --------
    >>> planner = Planner(client, PlannerConfig())
    >>> async for event in planner.design("Write a haiku about the sea", []):
    ...     print(event.type)
    """

    def __init__(self, client: LLMClientProtocol, config: PlannerConfig) -> None:
        self.client: LLMClientProtocol = client
        self.config: PlannerConfig = config

    async def design(
        self,
        task: str,
        bucket_items: list[BucketItem],
    ) -> AsyncGenerator[AgentEvent, None]:
        """Design a new team for ``task``."""
        async for event in self._plan(
            DESIGN_PROMPT,
            task,
            bucket_items,
            "Failed to parse spec",
            default_objective=task,
        ):
            yield event

    async def edit(
        self,
        spec: EnvironmentSpec,
        instruction: str,
        bucket_items: list[BucketItem],
    ) -> AsyncGenerator[AgentEvent, None]:
        """
        Revise ``spec`` following a free-text instruction.

        On failure the caller keeps ``spec``; no partial spec is emitted.
        """
        async for event in self._plan(
            EDIT_PROMPT,
            build_edit_content(spec, instruction),
            bucket_items,
            "Edit parse error",
            default_objective=spec.objective,
        ):
            yield event

    async def optimize(
        self,
        spec: EnvironmentSpec,
        bucket_items: list[BucketItem],
    ) -> AsyncGenerator[AgentEvent, None]:
        """Redistribute resources across agents; an edit with a fixed instruction."""
        async for event in self.edit(spec, OPTIMIZE_INSTRUCTION, bucket_items):
            yield event

    async def _plan(
        self,
        system_prompt: str,
        user_content: str,
        bucket_items: list[BucketItem],
        failure_prefix: str,
        default_objective: str = "",
    ) -> AsyncGenerator[AgentEvent, None]:
        conversation = ToolUseConversation(self.client, self.config, bucket_items)

        try:
            async for event in conversation.run(system_prompt, user_content):
                yield event
            spec: EnvironmentSpec = parse_environment_spec(conversation.output)
        except EnsembleError as e:
            logger.warning(f"{failure_prefix}: {e}")
            yield ErrorEvent(message=f"{failure_prefix}: {e.message}")
            return

        if not spec.objective and default_objective:
            spec = spec.model_copy(update={"objective": default_objective})

        yield EnvCreatedEvent(spec=enforce_allowlist(spec, bucket_items))
