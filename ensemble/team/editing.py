"""
Manual editing of an agent's resource labels.
"""

import logging
from typing import Literal

from ensemble.exceptions import ValidationError
from ensemble.team.allowlist import enforce_allowlist
from ensemble.team.models import BucketItem, EnvironmentSpec

logger = logging.getLogger(__name__)

LabelAction = Literal["add", "remove"]
LabelField = Literal["skills", "values", "tools", "rules"]

_LABEL_FIELDS: tuple[str, ...] = ("skills", "values", "tools", "rules")


def update_agent_labels(
    spec: EnvironmentSpec,
    agent_id: str,
    action: LabelAction,
    field: LabelField,
    label: str,
    bucket_items: list[BucketItem],
) -> EnvironmentSpec:
    """
    Add or remove one label on one agent.

    Adding a label the agent already has is a no-op. The result goes back
    through the allowlist, so adding a label absent from a non-empty bucket
    has no effect.

    Parameters
    ----------
    spec : EnvironmentSpec
        Current spec; left unchanged.
    agent_id : str
        Agent to edit.
    action : {"add", "remove"}
        Operation to apply.
    field : {"skills", "values", "tools", "rules"}
        Label list to edit.
    label : str
        The label.
    bucket_items : list[BucketItem]
        Resource bucket used to re-enforce the allowlist.

    Returns
    -------
    EnvironmentSpec
        The edited spec.

    Raises
    ------
    ValidationError
        If the agent, action or field is unknown.
    """
    if field not in _LABEL_FIELDS:
        raise ValidationError(f"Unknown label field '{field}'", field="field")
    if action not in ("add", "remove"):
        raise ValidationError(f"Unknown label action '{action}'", field="action")

    agent = spec.get_agent(agent_id)
    if agent is None:
        raise ValidationError(f"Unknown agent id '{agent_id}'", field="agent_id")

    labels: list[str] = list(getattr(agent, field))
    if action == "add" and label not in labels:
        labels.append(label)
    elif action == "remove":
        labels = [existing for existing in labels if existing != label]

    edited = agent.model_copy(update={field: labels})
    agents = [edited if a.id == agent_id else a for a in spec.agents]
    logger.debug(f"{action} {field} label '{label}' on agent '{agent_id}'")

    return enforce_allowlist(spec.model_copy(update={"agents": agents}), bucket_items)
