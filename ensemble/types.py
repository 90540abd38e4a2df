"""
Type aliases shared across Ensemble.
"""

from pathlib import Path
from typing import Any, Dict, List, Union

# Message types for LLM interactions
MessageDict = Dict[str, Any]

# Tool definitions in the provider-neutral {"name", "description", "parameters"} shape
ToolDefinition = Dict[str, Any]
ToolDefinitions = List[ToolDefinition]

# Skill label -> long-form methodology text
SkillContentMap = Dict[str, str]

PathLike = Union[str, Path]
