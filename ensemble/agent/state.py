"""
Run-state projection.

``RunProjection`` folds an event stream into the state a consumer displays:
the planner transcript, each agent's status and text, the synthesis and the
terminal status. Live rendering and replay feed it the same events, so a
replayed run ends in the same state as the live one.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import assert_never

from ensemble.agent.events import (
    AgentCompleteEvent,
    AgentEvent,
    AgentSpawnedEvent,
    EnvCreatedEvent,
    EnvironmentCompleteEvent,
    ErrorEvent,
    MessageEvent,
    OutputEvent,
    PlannerOutputEvent,
    PlannerThinkingEvent,
    SynthesisEvent,
    ThinkingEvent,
    ToolCallEvent,
)
from ensemble.team.models import AgentSpec, EnvironmentSpec


class AgentStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass
class AgentState:
    """Display state of one agent."""

    agent: AgentSpec
    status: AgentStatus = AgentStatus.PENDING
    thinking: str = ""
    output: str = ""
    result: str | None = None
    tool_calls: list[tuple[str, str]] = field(default_factory=list)
    inbox: list[tuple[str, str]] = field(default_factory=list)


@dataclass
class RunProjection:
    """
    State accumulated from an event stream.

    Attributes
    ----------
    spec : EnvironmentSpec | None
        Latest spec seen in ``env_created``.
    agents : dict[str, AgentState]
        Agent states keyed by id, in spec order.
    planner_thinking, planner_output : str
        Accumulated planner deltas.
    synthesis : str
        Accumulated synthesis text.
    complete : bool
        Whether ``environment_complete`` was seen.
    summary : str
        Summary of the ``environment_complete`` event.
    errors : list[str]
        Messages of ``error`` events.

    Examples
    --------
    >>> projection = RunProjection()
    >>> projection.apply(OutputEvent(agent_id="poet", content="Waves"))
    >>> projection.agents["poet"].status
    <AgentStatus.ACTIVE: 'active'>
    """

    spec: EnvironmentSpec | None = None
    agents: dict[str, AgentState] = field(default_factory=dict)
    planner_thinking: str = ""
    planner_output: str = ""
    synthesis: str = ""
    complete: bool = False
    summary: str = ""
    errors: list[str] = field(default_factory=list)
    event_count: int = 0

    def _agent(self, agent_id: str) -> AgentState:
        state = self.agents.get(agent_id)
        if state is None:
            state = AgentState(agent=AgentSpec(id=agent_id))
            self.agents[agent_id] = state
        return state

    def _activate(self, agent_id: str) -> AgentState:
        state = self._agent(agent_id)
        if state.status == AgentStatus.PENDING:
            state.status = AgentStatus.ACTIVE
        return state

    def apply(self, event: AgentEvent) -> None:
        """Fold one event into the state."""
        self.event_count += 1

        match event:
            case EnvCreatedEvent(spec=spec):
                self.spec = spec
                self.agents = {agent.id: AgentState(agent=agent) for agent in spec.agents}
            case PlannerThinkingEvent(content=content):
                self.planner_thinking += content
            case PlannerOutputEvent(content=content):
                self.planner_output += content
            case AgentSpawnedEvent(agent=agent):
                state = self._agent(agent.id)
                state.agent = agent
                state.status = AgentStatus.ACTIVE
            case ThinkingEvent(agent_id=agent_id, content=content):
                self._activate(agent_id).thinking += content
            case OutputEvent(agent_id=agent_id, content=content):
                self._activate(agent_id).output += content
            case ToolCallEvent(agent_id=agent_id, tool=tool, input=tool_input):
                self._activate(agent_id).tool_calls.append((tool, tool_input))
            case MessageEvent(from_agent=from_agent, to_agent=to_agent, summary=summary):
                self._agent(to_agent).inbox.append((from_agent, summary))
            case AgentCompleteEvent(agent_id=agent_id, result=result):
                state = self._agent(agent_id)
                state.status = AgentStatus.COMPLETE
                state.result = result
            case SynthesisEvent(content=content):
                self.synthesis += content
            case EnvironmentCompleteEvent(summary=summary):
                self.complete = True
                self.summary = summary
            case ErrorEvent(message=message, agent_id=agent_id):
                self.errors.append(message)
                if agent_id is not None:
                    self._agent(agent_id).status = AgentStatus.FAILED
            case _:
                assert_never(event)

    def status_counts(self) -> dict[AgentStatus, int]:
        counts: dict[AgentStatus, int] = {status: 0 for status in AgentStatus}
        for state in self.agents.values():
            counts[state.status] += 1
        return counts
