from __future__ import annotations

import asyncio

import pytest

from ensemble.agent.events import AgentCompleteEvent, AgentSpawnedEvent, OutputEvent
from ensemble.agent.fanout import ParallelFanout
from ensemble.agent.runner import AgentRunner, CompletedOutputs
from ensemble.config.schema import AgentRunConfig
from ensemble.exceptions import AgentExecutionError
from ensemble.team.models import AgentSpec, EnvironmentSpec
from tests.helpers.stubs import (
    BlockingLLMClient,
    ScriptedLLMClient,
    by_role,
    collect,
    complete,
    error,
    text,
)

X = AgentSpec(id="x", role="Explorer")
Y = AgentSpec(id="y", role="Yodeler")
Z = AgentSpec(id="z", role="Zoologist")
SPEC = EnvironmentSpec(objective="Go", agents=[X, Y, Z])


def _client(**kwargs) -> ScriptedLLMClient:
    return ScriptedLLMClient(
        responder=by_role(
            {
                "Explorer": [text("x1 "), text("x2 "), text("x3"), complete()],
                "Yodeler": [text("y1 "), text("y2 "), text("y3"), complete()],
                "Zoologist": [text("z1 "), text("z2 "), text("z3"), complete()],
            },
        ),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_every_agent_completes_once() -> None:
    outputs = CompletedOutputs()
    fanout = ParallelFanout(AgentRunner(_client(), AgentRunConfig()))

    events = await collect(fanout.run_level([X, Y, Z], SPEC, outputs))

    spawned = [e.agent_id for e in events if isinstance(e, AgentSpawnedEvent)]
    completed = [e.agent_id for e in events if isinstance(e, AgentCompleteEvent)]
    assert sorted(spawned) == ["x", "y", "z"]
    assert sorted(completed) == ["x", "y", "z"]
    assert outputs.as_dict() == {"x": "x1 x2 x3", "y": "y1 y2 y3", "z": "z1 z2 z3"}
    assert fanout.failures == {}


@pytest.mark.asyncio
async def test_agents_stream_concurrently() -> None:
    fanout = ParallelFanout(AgentRunner(_client(delay=0.01), AgentRunConfig()))

    events = await collect(fanout.run_level([X, Y, Z], SPEC, CompletedOutputs()))

    first_complete = next(i for i, e in enumerate(events) if isinstance(e, AgentCompleteEvent))
    agents_streaming_before = {
        e.agent_id for e in events[:first_complete] if isinstance(e, OutputEvent)
    }
    assert agents_streaming_before == {"x", "y", "z"}


@pytest.mark.asyncio
async def test_per_agent_order_is_preserved() -> None:
    fanout = ParallelFanout(AgentRunner(_client(delay=0.001), AgentRunConfig()))

    events = await collect(fanout.run_level([X, Y, Z], SPEC, CompletedOutputs()))

    for agent_id in ("x", "y", "z"):
        own = [e for e in events if getattr(e, "agent_id", None) == agent_id]
        assert isinstance(own[0], AgentSpawnedEvent)
        assert isinstance(own[-1], AgentCompleteEvent)
        assert "".join(e.content for e in own if isinstance(e, OutputEvent)) == own[-1].result


@pytest.mark.asyncio
async def test_failed_agent_is_reported_and_siblings_finish() -> None:
    client = ScriptedLLMClient(
        responder=by_role(
            {"Yodeler": [text("y"), error("rate limited")]},
            default=[text("fine"), complete()],
        ),
    )
    outputs = CompletedOutputs()
    fanout = ParallelFanout(AgentRunner(client, AgentRunConfig()))

    events = await collect(fanout.run_level([X, Y, Z], SPEC, outputs))

    assert list(fanout.failures) == ["y"]
    assert isinstance(fanout.failures["y"], AgentExecutionError)
    completed = sorted(e.agent_id for e in events if isinstance(e, AgentCompleteEvent))
    assert completed == ["x", "z"]
    assert "y" not in outputs


@pytest.mark.asyncio
async def test_closing_the_stream_cancels_running_agents() -> None:
    client = BlockingLLMClient([text("started")])
    fanout = ParallelFanout(AgentRunner(client, AgentRunConfig()))
    stream = fanout.run_level([X], SPEC, CompletedOutputs())

    first = await stream.__anext__()
    second = await stream.__anext__()
    await stream.aclose()
    await asyncio.sleep(0)

    assert isinstance(first, AgentSpawnedEvent)
    assert isinstance(second, OutputEvent)
    assert client.cancelled
