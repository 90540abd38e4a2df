"""
Configuration loader for Ensemble.

This module loads and merges configuration from the system-wide
configuration file and the project-specific ``.ensemble/config.toml``.
"""

import logging
import tomllib
from pathlib import Path
from typing import Any

from platformdirs import user_config_dir, user_data_dir

from ensemble.config.schema import Configuration
from ensemble.constants import APP_NAME, CONFIG_DIR_NAME, CONFIG_FILE_NAME
from ensemble.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


def get_config_dir() -> Path:
    """Return the system-wide configuration directory."""
    return Path(user_config_dir(APP_NAME))


def get_data_dir(config: Configuration | None = None) -> Path:
    """
    Return the data directory holding run logs.

    Parameters
    ----------
    config : Configuration | None, optional
        When it sets ``data_dir``, that directory is used instead of the
        platform default.

    Returns
    -------
    Path
        Path to the data directory.
    """
    if config is not None and config.data_dir is not None:
        return config.data_dir
    return Path(user_data_dir(APP_NAME))


def get_system_config_path() -> Path:
    """Return the path of the system-wide configuration file."""
    return get_config_dir() / CONFIG_FILE_NAME


def _parse_toml(path: Path) -> dict[str, Any]:
    """
    Parse a TOML configuration file.

    Raises
    ------
    ConfigurationError
        If the file cannot be read or contains invalid TOML.
    """
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(
            f"Invalid TOML in {path}: {e}",
            config_file=str(path),
            cause=e,
        ) from e
    except OSError as e:
        raise ConfigurationError(
            f"Failed to read config file {path}: {e}",
            config_file=str(path),
            cause=e,
        ) from e


def _get_project_config(cwd: Path) -> Path | None:
    """Find ``.ensemble/config.toml`` in the working directory."""
    config_file: Path = cwd.resolve() / CONFIG_DIR_NAME / CONFIG_FILE_NAME
    if config_file.is_file():
        return config_file
    return None


def _merge_dicts(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Recursively merge two dictionaries, ``override`` taking precedence.

    Examples
    --------
    >>> _merge_dicts({"a": 1, "b": {"c": 2}}, {"b": {"d": 3}})
    {'a': 1, 'b': {'c': 2, 'd': 3}}
    """
    result: dict[str, Any] = base.copy()
    for key, value in override.items():
        if (
            key in result
            and isinstance(result[key], dict)
            and isinstance(value, dict)
        ):
            result[key] = _merge_dicts(result[key], value)
        else:
            result[key] = value

    return result


def load_configuration(cwd: Path | None = None) -> Configuration:
    """
    Load configuration from system and project sources.

    Sources are applied in order:
    1. System-wide configuration (if it exists)
    2. Project configuration ``.ensemble/config.toml`` (overrides system)
    3. Environment variables (API key, base URL) read lazily by the model

    Invalid files are skipped with a warning.

    Parameters
    ----------
    cwd : Path | None, optional
        Current working directory. If None, uses the current directory.

    Returns
    -------
    Configuration
        Loaded and validated configuration object.

    Raises
    ------
    ConfigurationError
        If the merged configuration does not validate.
    """
    cwd = cwd or Path.cwd()
    system_path: Path = get_system_config_path()

    config_dict: dict[str, Any] = {}

    if system_path.is_file():
        try:
            config_dict = _parse_toml(system_path)
            logger.debug(f"Loaded system config from {system_path}")
        except ConfigurationError as e:
            logger.warning(f"Skipping invalid system config {system_path}: {e}")

    project_path: Path | None = _get_project_config(cwd)
    if project_path:
        try:
            config_dict = _merge_dicts(config_dict, _parse_toml(project_path))
            logger.debug(f"Loaded project config from {project_path}")
        except ConfigurationError as e:
            logger.warning(f"Skipping invalid project config {project_path}: {e}")

    if "cwd" not in config_dict:
        config_dict["cwd"] = str(cwd)

    try:
        config: Configuration = Configuration(**config_dict)
    except Exception as e:
        raise ConfigurationError(f"Invalid configuration: {e}", cause=e) from e

    logger.info(f"Configuration loaded from {cwd}")
    return config
