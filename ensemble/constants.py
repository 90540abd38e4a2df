"""
Application-wide constants for Ensemble.

This module defines constants used throughout the application to ensure
consistency and maintainability.
"""

# Configuration file names
CONFIG_FILE_NAME: str = "config.toml"

# Application directories
APP_NAME: str = "ensemble"
CONFIG_DIR_NAME: str = ".ensemble"
RUNS_DIR_NAME: str = "runs"

# Retry defaults for the completion client
DEFAULT_MAX_RETRIES: int = 3
DEFAULT_RETRY_BASE_DELAY: float = 1.0
DEFAULT_RETRY_MAX_DELAY: float = 60.0

# Planner
RESOURCE_TOOL_NAME: str = "get_available_resources"
DEFAULT_PLANNER_MAX_TURNS: int = 3
DEFAULT_SKILL_PREVIEW_CHARS: int = 200

# Agent execution
DEFAULT_MESSAGE_PREVIEW_CHARS: int = 150
PREVIEW_ELLIPSIS: str = "..."

# Replay pacing
DEFAULT_REPLAY_STRUCTURAL_PAUSE_MS: int = 150
DEFAULT_REPLAY_BATCH_PAUSE_MS: int = 30
DEFAULT_REPLAY_BATCH_SIZE: int = 20

DEFAULT_ENCODING: str = "utf-8"

# Token estimation fallback when no tokenizer encoding is available
DEFAULT_CHARS_PER_TOKEN: int = 4
MIN_TOKEN_COUNT: int = 1
