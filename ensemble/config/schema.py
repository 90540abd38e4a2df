"""
Configuration schema definitions for Ensemble.

This module defines the Pydantic models for configuration validation:
model settings, planner conversation limits, per-agent completion limits,
synthesis limits and replay pacing.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator

from ensemble.constants import (
    DEFAULT_MESSAGE_PREVIEW_CHARS,
    DEFAULT_PLANNER_MAX_TURNS,
    DEFAULT_REPLAY_BATCH_PAUSE_MS,
    DEFAULT_REPLAY_BATCH_SIZE,
    DEFAULT_REPLAY_STRUCTURAL_PAUSE_MS,
    DEFAULT_SKILL_PREVIEW_CHARS,
)
from ensemble.exceptions import ValidationError


class ModelConfig(BaseModel):
    """
    Configuration for the completion model.

    Parameters
    ----------
    name : str, default="gpt-4o"
        The name of the model to use.
    temperature : float | None, default=None
        Sampling temperature between 0.0 and 2.0. ``None`` leaves the
        provider default, which reasoning models require.
    request_timeout : float, default=300.0
        Timeout in seconds for a single completion request.

    Examples
    --------
    >>> model = ModelConfig(name="gpt-4o", temperature=0.7)
    """

    name: str = Field(default="gpt-4o", description="Model name")
    temperature: float | None = Field(
        default=None,
        description="Sampling temperature (0.0-2.0)",
    )
    request_timeout: float = Field(
        default=300.0,
        gt=0.0,
        description="Request timeout in seconds",
    )

    @field_validator("temperature")
    @classmethod
    def validate_temperature(cls, v: float | None) -> float | None:
        if v is not None and not 0.0 <= v <= 2.0:
            raise ValidationError(
                f"Temperature must be between 0.0 and 2.0, got {v}",
                field="temperature",
            )
        return v


class PlannerConfig(BaseModel):
    """
    Limits for the tool-gated planner conversation.

    Parameters
    ----------
    max_turns : int, default=3
        Maximum number of completion turns before the planner gives up and
        returns whatever text it has.
    max_tokens : int, default=8000
        Completion token limit per planner turn.
    thinking_budget : int | None, default=4000
        Extended thinking budget per turn. ``None`` disables thinking.
    force_resource_tool : bool, default=True
        Force the first turn to call the resource tool through ``tool_choice``.
    skill_preview_chars : int, default=200
        Length of the skill content preview returned by the resource tool.
    """

    max_turns: int = Field(default=DEFAULT_PLANNER_MAX_TURNS, ge=1)
    max_tokens: int = Field(default=8000, ge=1)
    thinking_budget: int | None = Field(default=4000, ge=0)
    force_resource_tool: bool = Field(default=True)
    skill_preview_chars: int = Field(default=DEFAULT_SKILL_PREVIEW_CHARS, ge=0)


class AgentRunConfig(BaseModel):
    """
    Completion limits for a single agent run.

    Parameters
    ----------
    max_tokens : int, default=16000
        Completion token limit per agent.
    thinking_budget : int | None, default=8000
        Extended thinking budget per agent. ``None`` disables thinking.
    message_preview_chars : int, default=150
        Length of the output preview carried by ``message`` events.
    """

    max_tokens: int = Field(default=16000, ge=1)
    thinking_budget: int | None = Field(default=8000, ge=0)
    message_preview_chars: int = Field(default=DEFAULT_MESSAGE_PREVIEW_CHARS, ge=0)


class SynthesisConfig(BaseModel):
    """Completion limits for the synthesis stage."""

    max_tokens: int = Field(default=8000, ge=1)
    thinking_budget: int | None = Field(default=None, ge=0)


class ReplayConfig(BaseModel):
    """
    Pacing of event replay.

    Parameters
    ----------
    structural_pause_ms : int, default=150
        Pause after each structural event.
    batch_pause_ms : int, default=30
        Pause after each batch of streaming events.
    batch_size : int, default=20
        Maximum number of streaming events emitted per batch.
    """

    structural_pause_ms: int = Field(default=DEFAULT_REPLAY_STRUCTURAL_PAUSE_MS, ge=0)
    batch_pause_ms: int = Field(default=DEFAULT_REPLAY_BATCH_PAUSE_MS, ge=0)
    batch_size: int = Field(default=DEFAULT_REPLAY_BATCH_SIZE, ge=1)


class Configuration(BaseModel):
    """
    Main configuration model for Ensemble.

    Parameters
    ----------
    model : ModelConfig, optional
        Model configuration. Uses defaults if not provided.
    planner : PlannerConfig, optional
        Planner conversation limits.
    agents : AgentRunConfig, optional
        Per-agent completion limits.
    synthesis : SynthesisConfig, optional
        Synthesis completion limits.
    replay : ReplayConfig, optional
        Replay pacing.
    cwd : Path, optional
        Current working directory. Defaults to current directory.
    persist_events : bool, default=True
        Whether runs are recorded to the event store.
    data_dir : Path | None, optional
        Override for the directory holding run logs.
    debug : bool, default=False
        Enable debug mode.

    Examples
    --------
    >>> config = Configuration(model=ModelConfig(name="gpt-4o"), debug=True)
    >>> config.planner.max_turns
    3
    """

    model: ModelConfig = Field(default_factory=ModelConfig)
    planner: PlannerConfig = Field(default_factory=PlannerConfig)
    agents: AgentRunConfig = Field(default_factory=AgentRunConfig)
    synthesis: SynthesisConfig = Field(default_factory=SynthesisConfig)
    replay: ReplayConfig = Field(default_factory=ReplayConfig)
    cwd: Path = Field(default_factory=Path.cwd)
    persist_events: bool = Field(default=True)
    data_dir: Path | None = Field(default=None)
    debug: bool = Field(default=False)

    @property
    def api_key(self) -> str | None:
        """API key for the completion endpoint, read from ``API_KEY``."""
        return os.environ.get("API_KEY")

    @property
    def base_url(self) -> str | None:
        """Base URL of an OpenAI-compatible endpoint, read from ``BASE_URL``."""
        return os.environ.get("BASE_URL")

    @property
    def model_name(self) -> str:
        return self.model.name

    @model_name.setter
    def model_name(self, value: str) -> None:
        self.model.name = value

    def validate(self) -> list[str]:
        """
        Validate the configuration and return any errors.

        Returns
        -------
        list[str]
            List of error messages. Empty list if configuration is valid.
        """
        errors: list[str] = []

        if not self.api_key:
            errors.append("No API key found. Set API_KEY environment variable.")

        if not self.cwd.exists():
            errors.append(f"Working directory does not exist: {self.cwd}")

        if self.data_dir is not None and self.data_dir.exists() and not self.data_dir.is_dir():
            errors.append(f"Data directory is not a directory: {self.data_dir}")

        return errors

    def to_dict(self) -> dict[str, Any]:
        """Return the configuration as a plain dictionary."""
        return self.model_dump(mode="json")
