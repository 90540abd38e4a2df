"""
Dependency graph scheduling.

Agents are grouped into execution levels by longest-path layering:
``depth(a) = 0`` without dependencies, otherwise ``1 + max(depth(dep))``.
Every dependency of an agent lands in a strictly earlier level, and agents
sharing a level are independent and run concurrently.

The graph is validated eagerly: an unknown dependency id, a duplicate agent
id or a cycle raises a ``DependencyGraphError`` subclass before anything is
scheduled.
"""

import logging
from collections import defaultdict

from ensemble.exceptions import (
    DependencyCycleError,
    DuplicateAgentError,
    MissingDependencyError,
)
from ensemble.team.models import AgentSpec

logger = logging.getLogger(__name__)


def validate_dependencies(agents: list[AgentSpec]) -> dict[str, AgentSpec]:
    """
    Check ids are unique and every dependency names an agent of the list.

    Parameters
    ----------
    agents : list[AgentSpec]
        Agents of one environment.

    Returns
    -------
    dict[str, AgentSpec]
        Agents keyed by id.

    Raises
    ------
    DuplicateAgentError
        If two agents share an id.
    MissingDependencyError
        If a ``depends_on`` entry names no agent of the list.
    """
    by_id: dict[str, AgentSpec] = {}
    for agent in agents:
        if agent.id in by_id:
            raise DuplicateAgentError(agent.id)
        by_id[agent.id] = agent

    for agent in agents:
        for dep in agent.depends_on:
            if dep not in by_id:
                raise MissingDependencyError(agent.id, dep)

    return by_id


def compute_depths(agents: list[AgentSpec]) -> dict[str, int]:
    """
    Compute the longest-path depth of every agent.

    Raises
    ------
    DependencyGraphError
        If the graph is malformed (see ``validate_dependencies``) or cyclic.
    """
    by_id: dict[str, AgentSpec] = validate_dependencies(agents)
    depths: dict[str, int] = {}
    # Ids whose depth is being resolved, in resolution order.
    in_progress: list[str] = []

    def depth(agent_id: str) -> int:
        if agent_id in depths:
            return depths[agent_id]
        if agent_id in in_progress:
            cycle: list[str] = in_progress[in_progress.index(agent_id):] + [agent_id]
            raise DependencyCycleError(cycle)

        in_progress.append(agent_id)
        deps: list[str] = by_id[agent_id].depends_on
        value: int = 1 + max(depth(dep) for dep in deps) if deps else 0
        in_progress.pop()

        depths[agent_id] = value
        return value

    for agent in agents:
        depth(agent.id)

    return depths


def compute_levels(agents: list[AgentSpec]) -> list[list[AgentSpec]]:
    """
    Group agents into execution levels, shallowest first.

    Parameters
    ----------
    agents : list[AgentSpec]
        Agents of one environment.

    Returns
    -------
    list[list[AgentSpec]]
        Levels ordered by depth 0, 1, 2, ...; within a level agents keep
        their spec order. No depth is skipped.

    Raises
    ------
    DuplicateAgentError, MissingDependencyError, DependencyCycleError
        If the graph is malformed.

    Examples
    --------
    >>> a = AgentSpec(id="a")
    >>> b = AgentSpec(id="b", depends_on=["a"])
    >>> [[agent.id for agent in level] for level in compute_levels([b, a])]
    [['a'], ['b']]
    """
    depths: dict[str, int] = compute_depths(agents)

    grouped: dict[int, list[AgentSpec]] = defaultdict(list)
    for agent in agents:
        grouped[depths[agent.id]].append(agent)

    levels: list[list[AgentSpec]] = [grouped[d] for d in sorted(grouped)]
    logger.debug(
        f"Computed {len(levels)} execution level(s): "
        f"{[[agent.id for agent in level] for level in levels]}",
    )
    return levels
