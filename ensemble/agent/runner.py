"""
Execution of a single agent.

An agent run streams one completion and reports it as events: one
``agent_spawned``, any number of ``thinking``/``output``/``tool_call``
events, one ``message`` per dependent agent, then one ``agent_complete``.
"""

import logging
from typing import AsyncGenerator, Iterator

from ensemble.agent.events import (
    AgentCompleteEvent,
    AgentEvent,
    AgentSpawnedEvent,
    MessageEvent,
    OutputEvent,
    ThinkingEvent,
    ToolCallEvent,
)
from ensemble.config.schema import AgentRunConfig
from ensemble.exceptions import AgentExecutionError
from ensemble.interfaces import LLMClientProtocol
from ensemble.llm.models import StreamEventType
from ensemble.prompts.builder import (
    build_agent_prompt,
    build_agent_user_message,
    build_upstream_context,
)
from ensemble.team.models import AgentSpec, EnvironmentSpec
from ensemble.tools.catalog import ToolCatalog
from ensemble.types import MessageDict, SkillContentMap, ToolDefinitions
from ensemble.utils.text import truncate_preview

logger = logging.getLogger(__name__)


class CompletedOutputs:
    """
    Outputs of finished agents, keyed by agent id.

    Shared by the concurrent agents of a level. Each agent writes only its
    own key, exactly once; a second write to a key raises.

    Examples
    --------
    >>> outputs = CompletedOutputs()
    >>> outputs.record("a", "done")
    >>> outputs["a"]
    'done'
    """

    def __init__(self) -> None:
        self._outputs: dict[str, str] = {}

    def record(self, agent_id: str, output: str) -> None:
        """
        Store the output of ``agent_id``.

        Raises
        ------
        RuntimeError
            If ``agent_id`` already has an output.
        """
        if agent_id in self._outputs:
            raise RuntimeError(f"Output of agent '{agent_id}' was already recorded")
        self._outputs[agent_id] = output

    def get(self, agent_id: str) -> str | None:
        return self._outputs.get(agent_id)

    def __getitem__(self, agent_id: str) -> str:
        return self._outputs[agent_id]

    def __contains__(self, agent_id: object) -> bool:
        return agent_id in self._outputs

    def __iter__(self) -> Iterator[str]:
        return iter(self._outputs)

    def __len__(self) -> int:
        return len(self._outputs)

    def as_dict(self) -> dict[str, str]:
        """Return a snapshot copy of the recorded outputs."""
        return dict(self._outputs)


class AgentRunner:
    """
    Runs one agent against the completion service.

    Parameters
    ----------
    client : LLMClientProtocol
        Completion service.
    config : AgentRunConfig
        Per-agent completion limits.
    tool_catalog : ToolCatalog | None, optional
        Resolves tool labels to definitions attached to the completion.
        Defaults to the built-in catalog.
    """

    def __init__(
        self,
        client: LLMClientProtocol,
        config: AgentRunConfig,
        tool_catalog: ToolCatalog | None = None,
    ) -> None:
        self.client: LLMClientProtocol = client
        self.config: AgentRunConfig = config
        self.tool_catalog: ToolCatalog = tool_catalog or ToolCatalog()

    async def run_agent(
        self,
        agent: AgentSpec,
        spec: EnvironmentSpec,
        completed_outputs: CompletedOutputs,
        skill_content: SkillContentMap | None = None,
        user_prompt: str | None = None,
    ) -> AsyncGenerator[AgentEvent, None]:
        """
        Run ``agent`` and record its output.

        Parameters
        ----------
        agent : AgentSpec
            The agent to run.
        spec : EnvironmentSpec
            The whole team, for global rules and dependents.
        completed_outputs : CompletedOutputs
            Outputs of finished agents; upstream context is read from it and
            this agent's output is recorded into it before ``message`` and
            ``agent_complete`` are emitted.
        skill_content : SkillContentMap | None, optional
            Long-form skill text injected into the system prompt.
        user_prompt : str | None, optional
            Task text overriding the team spec objective.

        Yields
        ------
        AgentEvent
            The agent's events in emission order.

        Raises
        ------
        AgentExecutionError
            If the completion service reports an error, or stops on tool
            calls without any text. No output is recorded and no
            ``agent_complete`` is emitted.
        """
        yield AgentSpawnedEvent(agent=agent)
        logger.info(f"Agent '{agent.id}' started")

        upstream_context: str = build_upstream_context(
            agent,
            spec,
            completed_outputs.as_dict(),
        )
        messages: list[MessageDict] = [
            {
                "role": "system",
                "content": build_agent_prompt(agent, spec.rules, skill_content),
            },
            {
                "role": "user",
                "content": build_agent_user_message(agent, spec, upstream_context, user_prompt),
            },
        ]
        tools: ToolDefinitions = self.tool_catalog.resolve(agent.tools)

        output: str = ""
        finish_reason: str | None = None
        async for event in self.client.chat_completion(
            messages,
            tools or None,
            max_tokens=self.config.max_tokens,
            thinking_budget=self.config.thinking_budget,
        ):
            if event.type == StreamEventType.THINKING_DELTA and event.thinking_delta:
                yield ThinkingEvent(agent_id=agent.id, content=event.thinking_delta.content)
            elif event.type == StreamEventType.TEXT_DELTA and event.text_delta:
                output += event.text_delta.content
                yield OutputEvent(agent_id=agent.id, content=event.text_delta.content)
            elif event.type == StreamEventType.TOOL_CALL_COMPLETE and event.tool_call:
                yield ToolCallEvent(
                    agent_id=agent.id,
                    tool=event.tool_call.name or "",
                    input=event.tool_call.arguments_json(),
                )
            elif event.type == StreamEventType.ERROR:
                logger.error(f"Agent '{agent.id}' failed: {event.error}")
                raise AgentExecutionError(agent.id, event.error or "Completion failed")
            elif event.type == StreamEventType.MESSAGE_COMPLETE:
                finish_reason = event.finish_reason

        # Tools run on the completion service; a stream that stops on tool
        # calls carries no result.
        if finish_reason == "tool_calls" and not output.strip():
            logger.error(f"Agent '{agent.id}' stopped on tool calls without output")
            raise AgentExecutionError(agent.id, "Completion stopped on tool calls without producing output")

        completed_outputs.record(agent.id, output)

        summary: str = truncate_preview(output, self.config.message_preview_chars)
        for dependent in spec.dependents_of(agent.id):
            yield MessageEvent(from_agent=agent.id, to_agent=dependent.id, summary=summary)

        logger.debug(f"Agent '{agent.id}' finished with {len(output)} characters of output")
        yield AgentCompleteEvent(agent_id=agent.id, result=output)
