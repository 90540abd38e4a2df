from __future__ import annotations

import pytest

from ensemble.exceptions import (
    DependencyCycleError,
    DependencyGraphError,
    DuplicateAgentError,
    MissingDependencyError,
)
from ensemble.team.graph import compute_depths, compute_levels, validate_dependencies
from ensemble.team.models import AgentSpec


def _ids(levels: list[list[AgentSpec]]) -> list[list[str]]:
    return [[agent.id for agent in level] for level in levels]


def test_chain_is_layered_one_agent_per_level() -> None:
    agents = [
        AgentSpec(id="a"),
        AgentSpec(id="b", depends_on=["a"]),
        AgentSpec(id="c", depends_on=["b"]),
    ]

    assert _ids(compute_levels(agents)) == [["a"], ["b"], ["c"]]


def test_independent_agents_share_level_zero() -> None:
    agents = [AgentSpec(id="x"), AgentSpec(id="y"), AgentSpec(id="z")]

    assert _ids(compute_levels(agents)) == [["x", "y", "z"]]


def test_longest_path_decides_level() -> None:
    agents = [
        AgentSpec(id="final", depends_on=["a", "c"]),
        AgentSpec(id="a"),
        AgentSpec(id="b", depends_on=["a"]),
        AgentSpec(id="c", depends_on=["b"]),
    ]

    assert compute_depths(agents) == {"a": 0, "b": 1, "c": 2, "final": 3}
    assert _ids(compute_levels(agents)) == [["a"], ["b"], ["c"], ["final"]]


def test_level_keeps_spec_order() -> None:
    agents = [
        AgentSpec(id="root"),
        AgentSpec(id="second", depends_on=["root"]),
        AgentSpec(id="first", depends_on=["root"]),
    ]

    assert _ids(compute_levels(agents)) == [["root"], ["second", "first"]]


def test_every_dependency_lands_in_an_earlier_level() -> None:
    agents = [
        AgentSpec(id="d", depends_on=["b", "c"]),
        AgentSpec(id="b", depends_on=["a"]),
        AgentSpec(id="c", depends_on=["a"]),
        AgentSpec(id="a"),
        AgentSpec(id="e"),
    ]

    levels = compute_levels(agents)
    level_of = {agent.id: index for index, level in enumerate(levels) for agent in level}

    for agent in agents:
        for dep in agent.depends_on:
            assert level_of[dep] < level_of[agent.id]
    assert sum(len(level) for level in levels) == len(agents)


def test_empty_team_has_no_levels() -> None:
    assert compute_levels([]) == []


def test_missing_dependency_fails_fast() -> None:
    agents = [AgentSpec(id="a"), AgentSpec(id="b", depends_on=["ghost"])]

    with pytest.raises(MissingDependencyError) as exc_info:
        compute_levels(agents)

    assert exc_info.value.agent_id == "b"
    assert exc_info.value.missing_id == "ghost"
    assert "ghost" in exc_info.value.message


def test_cycle_is_rejected() -> None:
    agents = [
        AgentSpec(id="a", depends_on=["b"]),
        AgentSpec(id="b", depends_on=["a"]),
    ]

    with pytest.raises(DependencyCycleError) as exc_info:
        compute_levels(agents)

    assert exc_info.value.cycle == ["a", "b", "a"]


def test_self_dependency_is_a_cycle() -> None:
    with pytest.raises(DependencyCycleError):
        compute_levels([AgentSpec(id="a", depends_on=["a"])])


def test_duplicate_id_is_rejected() -> None:
    with pytest.raises(DuplicateAgentError):
        validate_dependencies([AgentSpec(id="a"), AgentSpec(id="a")])


def test_graph_errors_share_a_base_class() -> None:
    with pytest.raises(DependencyGraphError):
        compute_levels([AgentSpec(id="a", depends_on=["missing"])])
