"""
Event models for the orchestration stream.

Every stage of a run (planning, agent execution, synthesis) reports what it
does as an ``AgentEvent``. The events form a closed union discriminated on
``type``; the serialized form is the wire format forwarded to consumers and
the storage format of the run log, so field names and tags must stay stable.
"""

import time
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from ensemble.team.models import AgentSpec, EnvironmentSpec


def now_ms() -> int:
    """Return the current wall-clock time in milliseconds."""
    return time.time_ns() // 1_000_000


class AgentEventType(str, Enum):
    """
    Tags of the event union.

    Attributes
    ----------
    ENV_CREATED : str
        The planner produced a sanitized environment spec.
    PLANNER_THINKING : str
        Reasoning delta streamed by the planner.
    PLANNER_OUTPUT : str
        Text delta streamed by the planner.
    AGENT_SPAWNED : str
        An agent started running.
    THINKING : str
        Reasoning delta of one agent.
    OUTPUT : str
        Text delta of one agent.
    TOOL_CALL : str
        An agent's completion invoked an external tool.
    MESSAGE : str
        An agent handed a preview of its output to a dependent.
    AGENT_COMPLETE : str
        An agent finished; carries its full output.
    SYNTHESIS : str
        Text of the combined deliverable.
    ENVIRONMENT_COMPLETE : str
        Terminal event of a successful run.
    ERROR : str
        A failure ended the attempt.
    """

    ENV_CREATED = "env_created"
    PLANNER_THINKING = "planner_thinking"
    PLANNER_OUTPUT = "planner_output"
    AGENT_SPAWNED = "agent_spawned"
    THINKING = "thinking"
    OUTPUT = "output"
    TOOL_CALL = "tool_call"
    MESSAGE = "message"
    AGENT_COMPLETE = "agent_complete"
    SYNTHESIS = "synthesis"
    ENVIRONMENT_COMPLETE = "environment_complete"
    ERROR = "error"


class _EventBase(BaseModel):
    """Fields and serialization shared by every event."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    timestamp: int = Field(default_factory=now_ms, description="Wall-clock milliseconds")

    def to_wire(self) -> dict[str, Any]:
        """Serialize with the wire field names (``agentId``, ``from``, ``to``)."""
        return self.model_dump(mode="json", by_alias=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class EnvCreatedEvent(_EventBase):
    type: Literal["env_created"] = "env_created"
    spec: EnvironmentSpec


class PlannerThinkingEvent(_EventBase):
    type: Literal["planner_thinking"] = "planner_thinking"
    content: str


class PlannerOutputEvent(_EventBase):
    type: Literal["planner_output"] = "planner_output"
    content: str


class AgentSpawnedEvent(_EventBase):
    type: Literal["agent_spawned"] = "agent_spawned"
    agent: AgentSpec

    @property
    def agent_id(self) -> str:
        return self.agent.id


class ThinkingEvent(_EventBase):
    type: Literal["thinking"] = "thinking"
    agent_id: str = Field(alias="agentId")
    content: str


class OutputEvent(_EventBase):
    type: Literal["output"] = "output"
    agent_id: str = Field(alias="agentId")
    content: str


class ToolCallEvent(_EventBase):
    """
    An external tool invoked by an agent's completion.

    Emitted for observability only; the completion service executes the
    tool itself.
    """

    type: Literal["tool_call"] = "tool_call"
    agent_id: str = Field(alias="agentId")
    tool: str
    input: str = Field(default="", description="Tool arguments as JSON text")


class MessageEvent(_EventBase):
    """
    Hand-off of an agent's output to one dependent agent.

    ``summary`` is a truncated preview; the full output travels as upstream
    context when the dependent runs.
    """

    type: Literal["message"] = "message"
    from_agent: str = Field(alias="from")
    to_agent: str = Field(alias="to")
    summary: str


class AgentCompleteEvent(_EventBase):
    type: Literal["agent_complete"] = "agent_complete"
    agent_id: str = Field(alias="agentId")
    result: str


class SynthesisEvent(_EventBase):
    type: Literal["synthesis"] = "synthesis"
    content: str


class EnvironmentCompleteEvent(_EventBase):
    type: Literal["environment_complete"] = "environment_complete"
    summary: str = ""


class ErrorEvent(_EventBase):
    """
    A failure that ended the attempt.

    ``agent_id`` is set when the failure is scoped to one agent.
    """

    type: Literal["error"] = "error"
    message: str
    agent_id: str | None = Field(default=None, alias="agentId")


AgentEvent = Annotated[
    Union[
        EnvCreatedEvent,
        PlannerThinkingEvent,
        PlannerOutputEvent,
        AgentSpawnedEvent,
        ThinkingEvent,
        OutputEvent,
        ToolCallEvent,
        MessageEvent,
        AgentCompleteEvent,
        SynthesisEvent,
        EnvironmentCompleteEvent,
        ErrorEvent,
    ],
    Field(discriminator="type"),
]

_EVENT_ADAPTER: TypeAdapter[AgentEvent] = TypeAdapter(AgentEvent)

# Events that change the shape of a run rather than stream text into it.
STRUCTURAL_EVENT_TYPES: frozenset[str] = frozenset(
    {
        AgentEventType.ENV_CREATED.value,
        AgentEventType.AGENT_SPAWNED.value,
        AgentEventType.AGENT_COMPLETE.value,
        AgentEventType.ENVIRONMENT_COMPLETE.value,
        AgentEventType.MESSAGE.value,
    }
)


def parse_event(data: dict[str, Any] | str) -> AgentEvent:
    """
    Parse one serialized event.

    Parameters
    ----------
    data : dict[str, Any] | str
        Wire dictionary or its JSON text.

    Returns
    -------
    AgentEvent
        The concrete event variant selected by ``type``.

    Raises
    ------
    pydantic.ValidationError
        If ``type`` is unknown or the payload does not match the variant.

    Examples
    --------
    >>> parse_event({"type": "output", "agentId": "poet", "content": "Waves", "timestamp": 1})
    OutputEvent(timestamp=1, type='output', agent_id='poet', content='Waves')
    """
    if isinstance(data, str):
        return _EVENT_ADAPTER.validate_json(data)
    return _EVENT_ADAPTER.validate_python(data)
