"""
Data models for agent teams and the resource bucket.

The models serialize with camelCase wire keys (``dependsOn``) so specs
round-trip through planner JSON, spec files and persisted events unchanged.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class BucketCategory(str, Enum):
    """Categories of resource bucket items."""

    RULE = "rule"
    SKILL = "skill"
    VALUE = "value"
    TOOL = "tool"


class BucketItem(BaseModel):
    """
    One curated resource an agent may be granted.

    Parameters
    ----------
    category : BucketCategory
        Which agent field the label may appear in.
    label : str
        Display name; the only field matched against agent fields.
    content : str | None, optional
        Long-form text. Used for skills, where it is injected into the
        agent prompt as a methodology block.
    id : str | None, optional
        Identifier assigned by the storage layer.

    Examples
    --------
    >>> item = BucketItem(category="skill", label="research")
    >>> item.category
    <BucketCategory.SKILL: 'skill'>
    """

    id: str | None = Field(default=None, description="Storage identifier")
    category: BucketCategory = Field(description="Resource category")
    label: str = Field(min_length=1, description="Resource label")
    content: str | None = Field(default=None, description="Long-form content")


class AgentSpec(BaseModel):
    """
    One designed role in a team.

    ``role`` and ``personality`` are free text authored by the planner and
    never validated. ``skills``, ``values``, ``tools`` and ``rules`` are
    labels constrained by the resource allowlist. ``memory`` is carried
    verbatim into the agent prompt. ``depends_on`` (``dependsOn`` on the
    wire) lists the agents whose output this agent consumes.

    Examples
    --------
    >>> agent = AgentSpec.model_validate({"id": "poet", "role": "Poet", "dependsOn": []})
    >>> agent.to_wire()["dependsOn"]
    []
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(min_length=1, description="Unique id within the team spec")
    role: str = Field(default="", description="Role title")
    personality: str = Field(default="", description="Personality traits")
    skills: list[str] = Field(default_factory=list)
    values: list[str] = Field(default_factory=list)
    tools: list[str] = Field(default_factory=list)
    rules: list[str] = Field(default_factory=list)
    memory: list[str] = Field(default_factory=list)
    depends_on: list[str] = Field(default_factory=list, alias="dependsOn")

    @field_validator("depends_on")
    @classmethod
    def dedupe_dependencies(cls, v: list[str]) -> list[str]:
        return list(dict.fromkeys(v))

    def to_wire(self) -> dict[str, Any]:
        """Serialize with camelCase wire keys."""
        return self.model_dump(mode="json", by_alias=True)


class EnvironmentSpec(BaseModel):
    """
    A whole designed team.

    Parameters
    ----------
    name : str
        Environment name.
    objective : str
        The goal the team works on.
    agents : list[AgentSpec]
        Team members; ids must be unique.
    rules : list[str]
        Global rule labels applied to every agent.

    Raises
    ------
    pydantic.ValidationError
        If two agents share an id.
    """

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(default="", description="Environment name")
    objective: str = Field(default="", description="Team objective")
    agents: list[AgentSpec] = Field(default_factory=list)
    rules: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_unique_ids(self) -> EnvironmentSpec:
        seen: set[str] = set()
        for agent in self.agents:
            if agent.id in seen:
                raise ValueError(f"Duplicate agent id '{agent.id}'")
            seen.add(agent.id)
        return self

    def get_agent(self, agent_id: str) -> AgentSpec | None:
        """Return the agent with ``agent_id``, or None."""
        for agent in self.agents:
            if agent.id == agent_id:
                return agent
        return None

    def dependents_of(self, agent_id: str) -> list[AgentSpec]:
        """Return the agents that list ``agent_id`` in their dependencies, in spec order."""
        return [agent for agent in self.agents if agent_id in agent.depends_on]

    def to_wire(self) -> dict[str, Any]:
        """Serialize with camelCase wire keys."""
        return self.model_dump(mode="json", by_alias=True)
