"""
Orchestrator: the public entry points of a run.

Each entry point returns an event stream. Failures never escape a stream as
exceptions: they end it with a single ``error`` event. Cancellation through
a ``CancellationToken`` ends a stream silently, with no terminal event.
"""

import logging
from contextlib import aclosing
from typing import AsyncGenerator, AsyncIterator

from ensemble.agent.events import (
    AgentEvent,
    EnvironmentCompleteEvent,
    ErrorEvent,
)
from ensemble.agent.fanout import ParallelFanout
from ensemble.agent.persistence import EventRecord, EventStore
from ensemble.agent.planner import Planner
from ensemble.agent.replay import ReplayEngine
from ensemble.agent.runner import AgentRunner, CompletedOutputs
from ensemble.agent.synthesis import Synthesizer
from ensemble.config.schema import Configuration
from ensemble.exceptions import (
    AgentExecutionError,
    ConfigurationError,
    DependencyGraphError,
    EnsembleError,
    SynthesisError,
)
from ensemble.interfaces import LLMClientProtocol
from ensemble.llm.client import LLMClient
from ensemble.team.allowlist import build_skill_content_map, enforce_allowlist
from ensemble.team.graph import compute_levels
from ensemble.team.models import AgentSpec, BucketItem, EnvironmentSpec
from ensemble.tools.catalog import ToolCatalog
from ensemble.types import SkillContentMap
from ensemble.utils.cancel import CancellationToken, until_cancelled

logger = logging.getLogger(__name__)


def _failure_event(failures: dict[str, AgentExecutionError]) -> ErrorEvent:
    if len(failures) == 1:
        agent_id, error = next(iter(failures.items()))
        return ErrorEvent(
            message=f"Agent '{agent_id}' failed: {error.message}",
            agent_id=agent_id,
        )

    details: str = "; ".join(f"{agent_id}: {error.message}" for agent_id, error in failures.items())
    return ErrorEvent(message=f"{len(failures)} agents failed: {details}")


class Orchestrator:
    """
    Designs, edits, executes and replays agent teams.

    Parameters
    ----------
    config : Configuration
        Configuration object.
    client : LLMClientProtocol | None, optional
        Completion service. Defaults to an ``LLMClient`` built from config.
    event_store : EventStore | None, optional
        Sink recording design and execute streams for replay.
    tool_catalog : ToolCatalog | None, optional
        External tools attachable to agents.

    Attributes
    ----------
    last_run_id : str | None
        Id of the most recently recorded run.

    Examples
    --------
    >>> async with Orchestrator(config) as orchestrator:
    ...     async for event in orchestrator.design("Write a haiku about the sea", []):
    ...         if event.type == AgentEventType.ENV_CREATED:
    ...             spec = event.spec
    ...     async for event in orchestrator.execute(spec):
    ...         print(event.type)
    """

    def __init__(
        self,
        config: Configuration,
        client: LLMClientProtocol | None = None,
        event_store: EventStore | None = None,
        tool_catalog: ToolCatalog | None = None,
    ) -> None:
        self.config: Configuration = config
        self.client: LLMClientProtocol = client or LLMClient(config)
        self.event_store: EventStore | None = event_store
        self.planner: Planner = Planner(self.client, config.planner)
        self.runner: AgentRunner = AgentRunner(self.client, config.agents, tool_catalog)
        self.last_run_id: str | None = None

    async def __aenter__(self) -> "Orchestrator":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.client.close()

    def design(
        self,
        task: str,
        bucket_items: list[BucketItem],
        token: CancellationToken | None = None,
    ) -> AsyncIterator[AgentEvent]:
        """
        Design a team for ``task``.

        Yields planner events then one ``env_created`` or one ``error``.
        """
        run_id: str | None = self._create_run(task)
        return self._guard(self.planner.design(task, bucket_items), token, run_id)

    def edit(
        self,
        spec: EnvironmentSpec,
        instruction: str,
        bucket_items: list[BucketItem],
        token: CancellationToken | None = None,
    ) -> AsyncIterator[AgentEvent]:
        """Revise ``spec``; same terminal contract as ``design``."""
        return self._guard(self.planner.edit(spec, instruction, bucket_items), token)

    def optimize(
        self,
        spec: EnvironmentSpec,
        bucket_items: list[BucketItem],
        token: CancellationToken | None = None,
    ) -> AsyncIterator[AgentEvent]:
        """Redistribute resources across the agents of ``spec``."""
        return self._guard(self.planner.optimize(spec, bucket_items), token)

    def execute(
        self,
        spec: EnvironmentSpec,
        bucket_items: list[BucketItem] | None = None,
        user_prompt: str | None = None,
        token: CancellationToken | None = None,
    ) -> AsyncIterator[AgentEvent]:
        """
        Run every agent of ``spec`` and synthesize their outputs.

        Parameters
        ----------
        spec : EnvironmentSpec
            The team to run.
        bucket_items : list[BucketItem] | None, optional
            Resource bucket. When given, the team spec is sanitized against it and
            skill content is injected into agent prompts.
        user_prompt : str | None, optional
            Task text that replaces the objective for agents and synthesis.
        token : CancellationToken | None, optional
            Stop signal for the whole run.

        Returns
        -------
        AsyncIterator[AgentEvent]
            Agent and synthesis events ending with exactly one
            ``environment_complete``, or with one ``error`` on failure.
        """
        run_id: str | None = self._create_run(user_prompt or spec.objective or spec.name)
        return self._guard(
            self._execute(spec, bucket_items or [], user_prompt),
            token,
            run_id,
        )

    def replay(
        self,
        records: list[EventRecord],
        token: CancellationToken | None = None,
        engine: ReplayEngine | None = None,
    ) -> AsyncIterator[AgentEvent]:
        """Re-emit a recorded event log with pacing."""
        engine = engine or ReplayEngine(self.config.replay)
        return until_cancelled(engine.replay(records, token), token)

    def replay_run(
        self,
        run_id: str,
        token: CancellationToken | None = None,
        engine: ReplayEngine | None = None,
    ) -> AsyncIterator[AgentEvent]:
        """
        Replay a run recorded by the event store.

        Raises
        ------
        ConfigurationError
            If no event store is configured.
        """
        if self.event_store is None:
            raise ConfigurationError(
                "No event store configured",
                config_key="persist_events",
            )
        return self.replay(self.event_store.load_events(run_id), token, engine)

    async def _execute(
        self,
        spec: EnvironmentSpec,
        bucket_items: list[BucketItem],
        user_prompt: str | None,
    ) -> AsyncGenerator[AgentEvent, None]:
        try:
            levels: list[list[AgentSpec]] = compute_levels(spec.agents)
        except DependencyGraphError as e:
            logger.warning(f"Refusing to execute: {e}")
            yield ErrorEvent(message=f"Invalid dependency graph: {e.message}", agent_id=e.agent_id)
            return

        spec = enforce_allowlist(spec, bucket_items)
        levels = [[spec.get_agent(agent.id) or agent for agent in level] for level in levels]
        skill_content: SkillContentMap = build_skill_content_map(bucket_items)

        completed = CompletedOutputs()
        fanout = ParallelFanout(self.runner)

        for depth, level in enumerate(levels):
            logger.info(f"Running level {depth} with {len(level)} agent(s)")
            async with aclosing(
                fanout.run_level(level, spec, completed, skill_content, user_prompt),
            ) as level_events:
                async for event in level_events:
                    yield event

            if fanout.failures:
                logger.error(f"Stopping run: {len(fanout.failures)} agent(s) failed in level {depth}")
                yield _failure_event(fanout.failures)
                return

        outputs: list[tuple[AgentSpec, str]] = [
            (agent, completed[agent.id]) for agent in spec.agents if agent.id in completed
        ]

        synthesizer = Synthesizer(self.client, self.config.synthesis)
        try:
            async with aclosing(synthesizer.synthesize(spec, outputs, user_prompt)) as synthesis:
                async for event in synthesis:
                    yield event
        except SynthesisError as e:
            logger.error(f"Synthesis failed: {e}")
            yield ErrorEvent(message=e.message)
            return

        yield EnvironmentCompleteEvent(
            summary=f"All {len(outputs)} agents completed their tasks.",
        )

    async def _guard(
        self,
        source: AsyncGenerator[AgentEvent, None],
        token: CancellationToken | None,
        run_id: str | None = None,
    ) -> AsyncGenerator[AgentEvent, None]:
        """Apply cancellation, persist events and turn failures into ``error`` events."""
        try:
            async for event in until_cancelled(source, token):
                self._persist(run_id, event)
                yield event
        except EnsembleError as e:
            logger.error(f"Run failed: {e}")
            event = ErrorEvent(message=e.message)
            self._persist(run_id, event)
            yield event
        except Exception as e:
            logger.error(f"Unexpected error during run: {e}", exc_info=True)
            event = ErrorEvent(message=f"Unexpected error: {e}")
            self._persist(run_id, event)
            yield event

    def _create_run(self, task: str) -> str | None:
        if self.event_store is None or not self.config.persist_events:
            return None

        try:
            self.last_run_id = self.event_store.create_run(task)
        except OSError as e:
            logger.warning(f"Failed to create run record: {e}")
            return None
        return self.last_run_id

    def _persist(self, run_id: str | None, event: AgentEvent) -> None:
        if run_id is not None and self.event_store is not None:
            self.event_store.append(run_id, event)
