"""
Ensemble theme definition for rich console styling.

Colors are tuned for dark terminals.
"""

from rich.theme import Theme

ENSEMBLE_THEME = Theme(
    {
        # General styles
        "info": "cyan",
        "warning": "yellow",
        "error": "bright_red bold",
        "success": "green",
        "dim": "dim",
        "muted": "grey50",
        "border": "grey35",
        "highlight": "bold cyan",
        # Planner
        "planner": "bright_blue bold",
        "planner.thinking": "grey50 italic",
        # Agents
        "agent": "bright_magenta bold",
        "agent.thinking": "grey42 italic",
        "agent.output": "bright_white",
        "message": "cyan",
        "tool": "bright_magenta",
        # Status
        "status.pending": "grey50",
        "status.active": "yellow",
        "status.complete": "green",
        "status.failed": "bright_red",
        # Synthesis
        "synthesis": "bold green",
        "code": "white",
    },
)
