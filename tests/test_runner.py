from __future__ import annotations

import pytest

from ensemble.agent.events import (
    AgentCompleteEvent,
    AgentEventType,
    AgentSpawnedEvent,
    MessageEvent,
    OutputEvent,
    ThinkingEvent,
    ToolCallEvent,
)
from ensemble.agent.runner import AgentRunner, CompletedOutputs
from ensemble.config.schema import AgentRunConfig
from ensemble.exceptions import AgentExecutionError
from ensemble.prompts.builder import build_agent_prompt, build_upstream_context
from ensemble.team.models import AgentSpec, EnvironmentSpec
from tests.helpers.stubs import (
    ScriptedLLMClient,
    collect,
    complete,
    error,
    text,
    thinking,
    tool_call,
)

A = AgentSpec(id="a", role="Researcher")
B = AgentSpec(id="b", role="Analyst", depends_on=["a"])
C = AgentSpec(id="c", role="Writer", depends_on=["b"])
CHAIN = EnvironmentSpec(name="Chain", objective="Explain tides", agents=[A, B, C])


@pytest.mark.asyncio
async def test_event_order_for_one_agent() -> None:
    client = ScriptedLLMClient(
        scripts=[
            [
                thinking("hmm"),
                text("Tides "),
                tool_call("web_search", {"query": "tides"}),
                text("are lunar."),
                complete(),
            ],
        ],
    )
    outputs = CompletedOutputs()
    spec = EnvironmentSpec(agents=[A, B])

    events = await collect(AgentRunner(client, AgentRunConfig()).run_agent(A, spec, outputs))

    assert [type(e) for e in events] == [
        AgentSpawnedEvent,
        ThinkingEvent,
        OutputEvent,
        ToolCallEvent,
        OutputEvent,
        MessageEvent,
        AgentCompleteEvent,
    ]
    assert events[3].tool == "web_search"
    assert events[3].input == '{"query": "tides"}'
    assert events[-1].result == "Tides are lunar."
    assert outputs["a"] == "Tides are lunar."


@pytest.mark.asyncio
async def test_message_per_dependent_with_preview() -> None:
    spec = EnvironmentSpec(
        agents=[
            A,
            AgentSpec(id="x", depends_on=["a"]),
            AgentSpec(id="y", depends_on=["a"]),
        ],
    )
    client = ScriptedLLMClient(scripts=[[text("z" * 200), complete()]])
    runner = AgentRunner(client, AgentRunConfig(message_preview_chars=150))

    events = await collect(runner.run_agent(A, spec, CompletedOutputs()))

    messages = [e for e in events if isinstance(e, MessageEvent)]
    assert [(m.from_agent, m.to_agent) for m in messages] == [("a", "x"), ("a", "y")]
    assert messages[0].summary == "z" * 150 + "..."


@pytest.mark.asyncio
async def test_upstream_context_has_direct_dependencies_only() -> None:
    client = ScriptedLLMClient(scripts=[[text("Final piece."), complete()]])
    outputs = CompletedOutputs()
    outputs.record("a", "Raw facts from A.")
    outputs.record("b", "Analysis from B.")

    await collect(AgentRunner(client, AgentRunConfig()).run_agent(C, CHAIN, outputs))

    user_message = client.calls[0].user
    assert "Analysis from B." in user_message
    assert "[Analyst]: Analysis from B." in user_message
    assert "Raw facts from A." not in user_message
    assert user_message.startswith("Task: Explain tides")


@pytest.mark.asyncio
async def test_user_prompt_overrides_objective() -> None:
    client = ScriptedLLMClient(scripts=[[text("ok"), complete()]])

    await collect(
        AgentRunner(client, AgentRunConfig()).run_agent(
            A,
            CHAIN,
            CompletedOutputs(),
            user_prompt="Explain spring tides",
        ),
    )

    user_message = client.calls[0].user
    assert user_message.startswith("Task: Explain spring tides")
    assert "Team objective: Explain tides" in user_message


@pytest.mark.asyncio
async def test_catalog_tools_are_attached() -> None:
    agent = AgentSpec(id="a", tools=["web_search", "whiteboard"])
    client = ScriptedLLMClient(scripts=[[text("ok"), complete()], [text("ok"), complete()]])
    runner = AgentRunner(client, AgentRunConfig())

    await collect(runner.run_agent(agent, EnvironmentSpec(agents=[agent]), CompletedOutputs()))
    await collect(runner.run_agent(A, CHAIN, CompletedOutputs()))

    assert [tool["name"] for tool in client.calls[0].tools] == ["web_search"]
    assert client.calls[1].tools is None


@pytest.mark.asyncio
async def test_completion_error_raises_without_recording() -> None:
    client = ScriptedLLMClient(scripts=[[text("partial"), error("overloaded")]])
    outputs = CompletedOutputs()
    events = []

    with pytest.raises(AgentExecutionError) as exc_info:
        async for event in AgentRunner(client, AgentRunConfig()).run_agent(A, CHAIN, outputs):
            events.append(event)

    assert exc_info.value.agent_id == "a"
    assert "a" not in outputs
    assert AgentEventType.AGENT_COMPLETE.value not in [e.type for e in events]


@pytest.mark.asyncio
async def test_tool_call_stop_without_text_raises() -> None:
    agent = AgentSpec(id="searcher", tools=["web_search"])
    client = ScriptedLLMClient(
        scripts=[[tool_call("web_search", {"query": "tides"}), complete("tool_calls")]],
    )
    outputs = CompletedOutputs()
    events = []

    with pytest.raises(AgentExecutionError) as exc_info:
        async for event in AgentRunner(client, AgentRunConfig()).run_agent(
            agent,
            EnvironmentSpec(agents=[agent]),
            outputs,
        ):
            events.append(event)

    assert exc_info.value.agent_id == "searcher"
    assert [type(e) for e in events] == [AgentSpawnedEvent, ToolCallEvent]
    assert "searcher" not in outputs


@pytest.mark.asyncio
async def test_tool_call_stop_with_text_completes() -> None:
    client = ScriptedLLMClient(
        scripts=[[text("Tides follow the moon."), tool_call("web_search"), complete("tool_calls")]],
    )
    outputs = CompletedOutputs()

    events = await collect(AgentRunner(client, AgentRunConfig()).run_agent(A, CHAIN, outputs))

    assert isinstance(events[-1], AgentCompleteEvent)
    assert outputs.get("a") == "Tides follow the moon."


def test_completed_outputs_single_writer() -> None:
    outputs = CompletedOutputs()
    outputs.record("a", "first")

    with pytest.raises(RuntimeError):
        outputs.record("a", "second")
    assert outputs.get("a") == "first"
    assert len(outputs) == 1


def test_agent_prompt_sections() -> None:
    agent = AgentSpec(
        id="r",
        role="Researcher",
        personality="curious",
        skills=["research"],
        rules=["cite sources"],
        memory=["The user prefers metric units."],
    )

    prompt = build_agent_prompt(agent, ["cite sources", "be concise"], {"research": "Search first."})

    assert prompt.startswith("You are Researcher.")
    assert "Personality: curious" in prompt
    assert "Skills: research" in prompt
    assert "Rules you MUST follow:\n- cite sources\n- be concise" in prompt
    assert "### research\nSearch first." in prompt
    assert "Memory/Context:\nThe user prefers metric units." in prompt
    assert "Values:" not in prompt


def test_upstream_context_skips_missing_outputs() -> None:
    agent = AgentSpec(id="d", depends_on=["a", "b"])
    spec = EnvironmentSpec(agents=[A, B.model_copy(update={"depends_on": []}), agent])

    context = build_upstream_context(agent, spec, {"b": "only b"})

    assert context == "[Analyst]: only b"
