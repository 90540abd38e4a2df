"""
Console factory for rich console instances with the Ensemble theme.
"""

from rich.console import Console

from ensemble.ui.theme import ENSEMBLE_THEME

# Singleton console instance
_console: Console | None = None


def get_console() -> Console:
    """
    Get the shared rich Console configured with the Ensemble theme.

    Examples
    --------
    >>> console = get_console()
    >>> console.print("[highlight]Ensemble[/highlight]")
    """
    global _console
    if _console is None:
        _console = Console(theme=ENSEMBLE_THEME, highlight=False)
    return _console
