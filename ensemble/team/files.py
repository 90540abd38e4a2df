"""
Reading and writing resource buckets and team specs as JSON files.
"""

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from ensemble.constants import DEFAULT_ENCODING
from ensemble.exceptions import ValidationError
from ensemble.team.models import BucketItem, EnvironmentSpec
from ensemble.types import PathLike

logger = logging.getLogger(__name__)


def _read_json(path: Path) -> Any:
    try:
        with open(path, "r", encoding=DEFAULT_ENCODING) as fp:
            return json.load(fp)
    except json.JSONDecodeError as e:
        raise ValidationError(f"Invalid JSON in {path}: {e}", cause=e) from e


def load_bucket(path: PathLike) -> list[BucketItem]:
    """
    Load a resource bucket file.

    The file holds a JSON list of ``{"category", "label", "content"?}``
    objects.

    Raises
    ------
    ValidationError
        If the file is not valid JSON or an item is malformed.
    OSError
        If the file cannot be read.
    """
    file_path: Path = Path(path)
    data: Any = _read_json(file_path)
    if not isinstance(data, list):
        raise ValidationError(f"Bucket file {file_path} must contain a JSON list")

    try:
        items: list[BucketItem] = [BucketItem.model_validate(entry) for entry in data]
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid bucket item in {file_path}: {e}", cause=e) from e

    logger.debug(f"Loaded {len(items)} bucket item(s) from {file_path}")
    return items


def save_bucket(path: PathLike, items: list[BucketItem]) -> None:
    """Write a resource bucket file."""
    file_path: Path = Path(path)
    with open(file_path, "w", encoding=DEFAULT_ENCODING) as fp:
        json.dump(
            [item.model_dump(mode="json", exclude_none=True) for item in items],
            fp,
            indent=2,
        )


def load_spec(path: PathLike) -> EnvironmentSpec:
    """
    Load an environment spec file written by ``save_spec``.

    Raises
    ------
    ValidationError
        If the file is not valid JSON or not a valid spec.
    """
    file_path: Path = Path(path)
    data: Any = _read_json(file_path)
    try:
        return EnvironmentSpec.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid environment spec in {file_path}: {e}", cause=e) from e


def save_spec(path: PathLike, spec: EnvironmentSpec) -> None:
    """Write ``spec`` as JSON with camelCase wire keys."""
    file_path: Path = Path(path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    with open(file_path, "w", encoding=DEFAULT_ENCODING) as fp:
        json.dump(spec.to_wire(), fp, indent=2)
    logger.debug(f"Saved environment spec to {file_path}")
