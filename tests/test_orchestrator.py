from __future__ import annotations

import asyncio
import json

import pytest

from ensemble.agent.events import (
    AgentCompleteEvent,
    AgentSpawnedEvent,
    EnvCreatedEvent,
    EnvironmentCompleteEvent,
    ErrorEvent,
    OutputEvent,
    SynthesisEvent,
    ToolCallEvent,
)
from ensemble.agent.orchestrator import Orchestrator
from ensemble.agent.persistence import EventStore
from ensemble.config.schema import Configuration
from ensemble.constants import RESOURCE_TOOL_NAME
from ensemble.team.models import AgentSpec, BucketItem, EnvironmentSpec
from ensemble.utils.cancel import CancellationToken
from tests.helpers.stubs import (
    BlockingLLMClient,
    ScriptedLLMClient,
    by_role,
    collect,
    complete,
    error,
    text,
    tool_call,
)

RESEARCHER = AgentSpec(id="researcher", role="Researcher")
WRITER = AgentSpec(id="writer", role="Writer", depends_on=["researcher"])
TEAM = EnvironmentSpec(name="Brief", objective="Brief on tides", agents=[RESEARCHER, WRITER])


@pytest.fixture
def config(tmp_path) -> Configuration:
    return Configuration(cwd=tmp_path, data_dir=tmp_path / "data")


def _team_client(**kwargs) -> ScriptedLLMClient:
    return ScriptedLLMClient(
        responder=by_role(
            {
                "Researcher": [text("Tides are driven by the moon."), complete()],
                "Writer": [text("A brief on tides."), complete()],
            },
            default=[text("Combined "), text("deliverable."), complete()],
        ),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_two_agents_are_synthesized(config: Configuration) -> None:
    client = _team_client()
    orchestrator = Orchestrator(config, client=client)

    events = await collect(orchestrator.execute(TEAM))

    assert len(client.calls) == 3
    assert "Tides are driven by the moon." in client.calls[2].user
    assert "A brief on tides." in client.calls[2].user

    completes = [e for e in events if isinstance(e, EnvironmentCompleteEvent)]
    assert len(completes) == 1
    assert events[-1] is completes[0]
    assert completes[0].summary == "All 2 agents completed their tasks."
    synthesis = "".join(e.content for e in events if isinstance(e, SynthesisEvent))
    assert synthesis == "Combined deliverable."
    assert not [e for e in events if isinstance(e, ErrorEvent)]


@pytest.mark.asyncio
async def test_dependency_runs_after_its_upstream(config: Configuration) -> None:
    client = _team_client()

    events = await collect(Orchestrator(config, client=client).execute(TEAM))

    order = [
        (type(e).__name__, e.agent_id)
        for e in events
        if isinstance(e, (AgentSpawnedEvent, AgentCompleteEvent))
    ]
    assert order == [
        ("AgentSpawnedEvent", "researcher"),
        ("AgentCompleteEvent", "researcher"),
        ("AgentSpawnedEvent", "writer"),
        ("AgentCompleteEvent", "writer"),
    ]
    assert "[Researcher]: Tides are driven by the moon." in client.calls[1].user


@pytest.mark.asyncio
async def test_single_agent_output_is_forwarded_verbatim(config: Configuration) -> None:
    client = ScriptedLLMClient(scripts=[[text("Waves "), text("crash."), complete()]])
    spec = EnvironmentSpec(objective="Haiku", agents=[AgentSpec(id="poet", role="Poet")])

    events = await collect(Orchestrator(config, client=client).execute(spec))

    assert len(client.calls) == 1
    synthesis = [e for e in events if isinstance(e, SynthesisEvent)]
    assert [e.content for e in synthesis] == ["Waves crash."]
    assert isinstance(events[-1], EnvironmentCompleteEvent)


@pytest.mark.asyncio
async def test_missing_dependency_yields_only_an_error(config: Configuration) -> None:
    client = ScriptedLLMClient()
    spec = EnvironmentSpec(agents=[AgentSpec(id="a", depends_on=["ghost"])])

    events = await collect(Orchestrator(config, client=client).execute(spec))

    assert len(events) == 1
    assert isinstance(events[0], ErrorEvent)
    assert "ghost" in events[0].message
    assert client.calls == []


@pytest.mark.asyncio
async def test_agent_failure_stops_the_run(config: Configuration) -> None:
    client = ScriptedLLMClient(
        responder=by_role({"Researcher": [text("half"), error("model overloaded")]}),
    )

    events = await collect(Orchestrator(config, client=client).execute(TEAM))

    assert isinstance(events[-1], ErrorEvent)
    assert events[-1].agent_id == "researcher"
    assert "model overloaded" in events[-1].message
    assert len([e for e in events if isinstance(e, ErrorEvent)]) == 1
    assert not [e for e in events if isinstance(e, EnvironmentCompleteEvent)]
    assert "writer" not in [e.agent_id for e in events if isinstance(e, AgentSpawnedEvent)]


@pytest.mark.asyncio
async def test_agent_stopping_on_tool_calls_fails_the_run(config: Configuration) -> None:
    spec = EnvironmentSpec(agents=[AgentSpec(id="searcher", role="Searcher", tools=["web_search"])])
    client = ScriptedLLMClient(
        scripts=[[tool_call("web_search", {"query": "tides"}), complete("tool_calls")]],
    )

    events = await collect(Orchestrator(config, client=client).execute(spec))

    assert [type(e) for e in events] == [AgentSpawnedEvent, ToolCallEvent, ErrorEvent]
    assert events[-1].agent_id == "searcher"
    assert len(client.calls) == 1


@pytest.mark.asyncio
async def test_several_failures_in_one_level_yield_one_error(config: Configuration) -> None:
    spec = EnvironmentSpec(agents=[AgentSpec(id="a", role="Alpha"), AgentSpec(id="b", role="Beta")])
    client = ScriptedLLMClient(responder=lambda call: [error("down")])

    events = await collect(Orchestrator(config, client=client).execute(spec))

    errors = [e for e in events if isinstance(e, ErrorEvent)]
    assert len(errors) == 1
    assert errors[0].agent_id is None
    assert errors[0].message.startswith("2 agents failed")


@pytest.mark.asyncio
async def test_synthesis_failure_yields_error(config: Configuration) -> None:
    client = ScriptedLLMClient(
        responder=by_role(
            {
                "Researcher": [text("facts"), complete()],
                "Writer": [text("brief"), complete()],
            },
            default=[error("context too long")],
        ),
    )

    events = await collect(Orchestrator(config, client=client).execute(TEAM))

    assert isinstance(events[-1], ErrorEvent)
    assert not [e for e in events if isinstance(e, EnvironmentCompleteEvent)]


@pytest.mark.asyncio
async def test_bucket_sanitizes_spec_and_injects_skills(config: Configuration) -> None:
    agent = AgentSpec(id="poet", role="Poet", skills=["haiku", "forbidden_skill"])
    bucket = [BucketItem(category="skill", label="haiku", content="Count 5-7-5.")]
    client = ScriptedLLMClient(scripts=[[text("ok"), complete()]])

    events = await collect(
        Orchestrator(config, client=client).execute(EnvironmentSpec(agents=[agent]), bucket),
    )

    spawned = next(e for e in events if isinstance(e, AgentSpawnedEvent))
    assert spawned.agent.skills == ["haiku"]
    assert "### haiku\nCount 5-7-5." in client.calls[0].system
    assert "forbidden_skill" not in client.calls[0].system


@pytest.mark.asyncio
async def test_cancellation_ends_stream_silently(config: Configuration) -> None:
    client = BlockingLLMClient([text("started")])
    token = CancellationToken()
    spec = EnvironmentSpec(agents=[AgentSpec(id="slow", role="Slowpoke")])

    asyncio.get_running_loop().call_later(0.05, token.cancel)
    events = await asyncio.wait_for(
        collect(Orchestrator(config, client=client).execute(spec, token=token)),
        timeout=2,
    )

    assert [type(e) for e in events] == [AgentSpawnedEvent, OutputEvent]
    assert client.cancelled


@pytest.mark.asyncio
async def test_cancelled_token_emits_nothing_further(config: Configuration) -> None:
    client = _team_client()
    token = CancellationToken()
    events = []

    async for event in Orchestrator(config, client=client).execute(TEAM, token=token):
        events.append(event)
        if isinstance(event, AgentCompleteEvent):
            token.cancel()

    assert isinstance(events[-1], AgentCompleteEvent)
    assert events[-1].agent_id == "researcher"


@pytest.mark.asyncio
async def test_design_and_execute_are_recorded(config: Configuration, tmp_path) -> None:
    spec_json = json.dumps(
        {"name": "Haiku", "agents": [{"id": "poet", "role": "Poet", "dependsOn": []}]},
    )
    client = ScriptedLLMClient(
        scripts=[
            [tool_call(RESOURCE_TOOL_NAME), complete()],
            [text(spec_json), complete()],
            [text("Waves crash."), complete()],
        ],
    )
    store = EventStore(tmp_path / "data")
    orchestrator = Orchestrator(config, client=client, event_store=store)

    design_events = await collect(orchestrator.design("Write a haiku", []))
    design_run = orchestrator.last_run_id
    spec = design_events[-1].spec
    run_events = await collect(orchestrator.execute(spec))
    execute_run = orchestrator.last_run_id

    assert isinstance(design_events[-1], EnvCreatedEvent)
    assert design_run != execute_run
    assert [r.event for r in store.load_events(execute_run)] == run_events
    assert store.get_run(design_run).spec == spec
    assert {run.run_id for run in store.list_runs()} == {design_run, execute_run}


@pytest.mark.asyncio
async def test_persistence_can_be_disabled(tmp_path) -> None:
    config = Configuration(cwd=tmp_path, persist_events=False)
    store = EventStore(tmp_path / "data")
    client = ScriptedLLMClient(scripts=[[text("ok"), complete()]])
    orchestrator = Orchestrator(config, client=client, event_store=store)

    await collect(orchestrator.execute(EnvironmentSpec(agents=[AgentSpec(id="a")])))

    assert orchestrator.last_run_id is None
    assert store.list_runs() == []


@pytest.mark.asyncio
async def test_context_manager_closes_client(config: Configuration) -> None:
    client = ScriptedLLMClient()

    async with Orchestrator(config, client=client):
        pass

    assert client.closed
