"""
Concurrent execution of one scheduler level.

Each agent of the level is driven by its own task that pushes events onto a
shared unbounded queue; the merging generator drains the queue as events
arrive, so a fast agent is never held back by a slow sibling. Per-agent
event order is preserved; order across agents is not defined.
"""

import asyncio
import logging
from typing import AsyncGenerator

from ensemble.agent.events import AgentEvent
from ensemble.agent.runner import AgentRunner, CompletedOutputs
from ensemble.exceptions import AgentExecutionError
from ensemble.team.models import AgentSpec, EnvironmentSpec
from ensemble.types import SkillContentMap

logger = logging.getLogger(__name__)

# Pushed by an agent task when it has finished, successfully or not.
_DONE = object()


class ParallelFanout:
    """
    Runs the independent agents of one level concurrently.

    Parameters
    ----------
    runner : AgentRunner
        Runs individual agents.

    Attributes
    ----------
    failures : dict[str, AgentExecutionError]
        Agents of the last level that failed, keyed by id. A failed agent
        emits no ``agent_complete`` and records no output.

    Examples
    --------
    >>> fanout = ParallelFanout(runner)
    >>> async for event in fanout.run_level(level, spec, outputs):
    ...     forward(event)
    >>> if fanout.failures:
    ...     stop_run()
    """

    def __init__(self, runner: AgentRunner) -> None:
        self.runner: AgentRunner = runner
        self.failures: dict[str, AgentExecutionError] = {}

    async def run_level(
        self,
        agents: list[AgentSpec],
        spec: EnvironmentSpec,
        completed_outputs: CompletedOutputs,
        skill_content: SkillContentMap | None = None,
        user_prompt: str | None = None,
    ) -> AsyncGenerator[AgentEvent, None]:
        """
        Run ``agents`` concurrently and yield their merged events.

        The generator ends once every agent task has finished and the queue
        is drained. Closing it early cancels the agent tasks still running.

        Yields
        ------
        AgentEvent
            Events of all agents of the level, interleaved.
        """
        self.failures = {}
        queue: asyncio.Queue[object] = asyncio.Queue()

        async def drive(agent: AgentSpec) -> None:
            try:
                async for event in self.runner.run_agent(
                    agent,
                    spec,
                    completed_outputs,
                    skill_content,
                    user_prompt,
                ):
                    queue.put_nowait(event)
            except AgentExecutionError as e:
                self.failures[agent.id] = e
            except Exception as e:
                logger.error(f"Agent '{agent.id}' raised unexpectedly: {e}", exc_info=True)
                self.failures[agent.id] = AgentExecutionError(agent.id, str(e), cause=e)
            finally:
                queue.put_nowait(_DONE)

        tasks: list[asyncio.Task[None]] = [
            asyncio.create_task(drive(agent), name=f"agent-{agent.id}")
            for agent in agents
        ]
        remaining: int = len(tasks)

        try:
            while remaining:
                item: object = await queue.get()
                if item is _DONE:
                    remaining -= 1
                    continue
                yield item  # type: ignore[misc]
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
