"""
Resource allowlist enforcement.

The planner is told to use only labels from the resource bucket but is not
trusted to comply. ``enforce_allowlist`` is the single place the invariant
is guaranteed: after it runs, every skill/value/tool/rule label in a spec is
present in the bucket under the matching category.
"""

from typing import Any, Iterable

from ensemble.team.models import BucketCategory, BucketItem, EnvironmentSpec
from ensemble.types import SkillContentMap
from ensemble.utils.text import truncate_preview


def _labels_by_category(bucket_items: Iterable[BucketItem]) -> dict[BucketCategory, list[str]]:
    labels: dict[BucketCategory, list[str]] = {category: [] for category in BucketCategory}
    for item in bucket_items:
        if item.label not in labels[item.category]:
            labels[item.category].append(item.label)
    return labels


def enforce_allowlist(
    spec: EnvironmentSpec,
    bucket_items: list[BucketItem],
) -> EnvironmentSpec:
    """
    Filter a spec down to the labels present in the resource bucket.

    An empty bucket means no restriction and returns ``spec`` unchanged.
    Otherwise a new spec is returned whose per-agent ``skills``, ``values``,
    ``tools`` and ``rules`` and global ``rules`` keep only labels found in
    the bucket for that category, in their original order. Never raises.

    Parameters
    ----------
    spec : EnvironmentSpec
        Spec to sanitize.
    bucket_items : list[BucketItem]
        The curated resource bucket.

    Returns
    -------
    EnvironmentSpec
        The sanitized spec.

    Examples
    --------
    >>> bucket = [BucketItem(category="skill", label="research")]
    >>> spec = EnvironmentSpec(agents=[AgentSpec(id="a", skills=["research", "forbidden_skill"])])
    >>> enforce_allowlist(spec, bucket).agents[0].skills
    ['research']
    """
    if not bucket_items:
        return spec

    allowed = {
        category: set(labels)
        for category, labels in _labels_by_category(bucket_items).items()
    }

    def keep(labels: list[str], category: BucketCategory) -> list[str]:
        return [label for label in labels if label in allowed[category]]

    agents = [
        agent.model_copy(
            update={
                "skills": keep(agent.skills, BucketCategory.SKILL),
                "values": keep(agent.values, BucketCategory.VALUE),
                "tools": keep(agent.tools, BucketCategory.TOOL),
                "rules": keep(agent.rules, BucketCategory.RULE),
            },
        )
        for agent in spec.agents
    ]

    return spec.model_copy(
        update={
            "agents": agents,
            "rules": keep(spec.rules, BucketCategory.RULE),
        },
    )


def format_bucket_for_tool(
    bucket_items: list[BucketItem],
    skill_preview_chars: int,
) -> dict[str, Any]:
    """
    Build the result payload of the ``get_available_resources`` tool.

    Skills are returned as ``{"name", "description"}`` where the description
    is a truncated preview of the skill content; the other categories are
    bare label lists.

    Examples
    --------
    >>> format_bucket_for_tool([BucketItem(category="rule", label="cite sources")], 200)
    {'rules': ['cite sources'], 'skills': [], 'values': [], 'tools': []}
    """
    labels = _labels_by_category(bucket_items)
    skill_content: SkillContentMap = build_skill_content_map(bucket_items)

    return {
        "rules": labels[BucketCategory.RULE],
        "skills": [
            {
                "name": label,
                "description": truncate_preview(skill_content.get(label, ""), skill_preview_chars),
            }
            for label in labels[BucketCategory.SKILL]
        ],
        "values": labels[BucketCategory.VALUE],
        "tools": labels[BucketCategory.TOOL],
    }


def build_skill_content_map(bucket_items: Iterable[BucketItem]) -> SkillContentMap:
    """Map each skill label with long-form content to that content."""
    return {
        item.label: item.content
        for item in bucket_items
        if item.category == BucketCategory.SKILL and item.content
    }
