from __future__ import annotations

import pytest
from pydantic import ValidationError

from ensemble.agent.events import (
    STRUCTURAL_EVENT_TYPES,
    AgentCompleteEvent,
    AgentEventType,
    AgentSpawnedEvent,
    EnvCreatedEvent,
    ErrorEvent,
    MessageEvent,
    OutputEvent,
    ToolCallEvent,
    parse_event,
)
from ensemble.agent.state import AgentStatus, RunProjection
from ensemble.team.models import AgentSpec, EnvironmentSpec


def test_agent_scoped_events_use_agent_id_wire_key() -> None:
    wire = OutputEvent(agent_id="poet", content="Waves", timestamp=5).to_wire()

    assert wire == {"type": "output", "agentId": "poet", "content": "Waves", "timestamp": 5}


def test_message_event_uses_from_and_to() -> None:
    wire = MessageEvent(from_agent="a", to_agent="b", summary="hi").to_wire()

    assert wire["from"] == "a"
    assert wire["to"] == "b"
    assert "from_agent" not in wire


def test_spec_inside_event_keeps_depends_on_wire_key() -> None:
    spec = EnvironmentSpec(agents=[AgentSpec(id="a"), AgentSpec(id="b", depends_on=["a"])])

    wire = EnvCreatedEvent(spec=spec).to_wire()

    assert wire["spec"]["agents"][1]["dependsOn"] == ["a"]


def test_parse_event_selects_variant_by_type() -> None:
    event = parse_event({"type": "tool_call", "agentId": "a", "tool": "web_search", "input": "{}"})

    assert isinstance(event, ToolCallEvent)
    assert event.agent_id == "a"


def test_parse_event_accepts_json_text() -> None:
    original = AgentCompleteEvent(agent_id="a", result="done")

    assert parse_event(original.to_json()) == original


def test_parse_event_rejects_unknown_type() -> None:
    with pytest.raises(ValidationError):
        parse_event({"type": "telepathy", "content": "?"})


def test_events_are_immutable() -> None:
    event = OutputEvent(agent_id="a", content="x")

    with pytest.raises(ValidationError):
        event.content = "y"  # type: ignore[misc]


def test_structural_types() -> None:
    assert AgentEventType.AGENT_SPAWNED.value in STRUCTURAL_EVENT_TYPES
    assert AgentEventType.MESSAGE.value in STRUCTURAL_EVENT_TYPES
    assert AgentEventType.OUTPUT.value not in STRUCTURAL_EVENT_TYPES
    assert AgentEventType.ERROR.value not in STRUCTURAL_EVENT_TYPES


def test_projection_follows_agent_lifecycle() -> None:
    agent = AgentSpec(id="poet", role="Poet")
    projection = RunProjection()

    for event in [
        EnvCreatedEvent(spec=EnvironmentSpec(agents=[agent, AgentSpec(id="critic")])),
        AgentSpawnedEvent(agent=agent),
        OutputEvent(agent_id="poet", content="Waves "),
        OutputEvent(agent_id="poet", content="crash"),
        MessageEvent(from_agent="poet", to_agent="critic", summary="Waves crash"),
        AgentCompleteEvent(agent_id="poet", result="Waves crash"),
    ]:
        projection.apply(event)

    poet = projection.agents["poet"]
    assert poet.status == AgentStatus.COMPLETE
    assert poet.output == "Waves crash"
    assert poet.result == "Waves crash"
    assert projection.agents["critic"].status == AgentStatus.PENDING
    assert projection.agents["critic"].inbox == [("poet", "Waves crash")]
    assert projection.event_count == 6


def test_projection_marks_failed_agent() -> None:
    projection = RunProjection()
    projection.apply(AgentSpawnedEvent(agent=AgentSpec(id="a")))
    projection.apply(ErrorEvent(message="Agent 'a' failed: boom", agent_id="a"))

    assert projection.agents["a"].status == AgentStatus.FAILED
    assert projection.errors == ["Agent 'a' failed: boom"]
    assert projection.status_counts()[AgentStatus.FAILED] == 1
