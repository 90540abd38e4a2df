"""
Extraction of a JSON object embedded in model free text.

Models wrap the JSON they were asked for in prose or Markdown fences. The
scanner here walks the balanced ``{...}`` spans that parse, ignoring braces
inside string literals, and only then falls back to the span between the
first ``{`` and the last ``}``.
"""

import json
import logging
from typing import Any, Iterator

logger = logging.getLogger(__name__)


def _balanced_object_end(text: str, start: int) -> int | None:
    """
    Return the index of the ``}`` closing the object opened at ``start``.

    Braces inside JSON string literals (including escaped quotes) are not
    counted. Returns None if the object is never closed.
    """
    depth: int = 0
    in_string: bool = False
    escaped: bool = False

    for index in range(start, len(text)):
        char: str = text[index]

        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return index

    return None


def _loads_object(candidate: str) -> dict[str, Any] | None:
    try:
        value = json.loads(candidate)
    except json.JSONDecodeError:
        return None
    return value if isinstance(value, dict) else None


def iter_json_objects(text: str) -> Iterator[dict[str, Any]]:
    """
    Yield every JSON object found in ``text``, in order of appearance.

    Balanced, string-aware ``{...}`` spans that parse come first; the span
    between the first ``{`` and the last ``}`` is yielded last when it
    parses. Callers that need a particular shape keep the first candidate
    that fits it.

    Parameters
    ----------
    text : str
        Model output, possibly with prose around the JSON.

    Yields
    ------
    dict[str, Any]
        Parsed candidate objects.
    """
    if not text:
        return

    start: int = text.find("{")
    while start != -1:
        end: int | None = _balanced_object_end(text, start)
        if end is None:
            break
        parsed = _loads_object(text[start : end + 1])
        if parsed is not None:
            yield parsed
            start = text.find("{", end + 1)
        else:
            start = text.find("{", start + 1)

    first: int = text.find("{")
    last: int = text.rfind("}")
    if first != -1 and last > first:
        parsed = _loads_object(text[first : last + 1])
        if parsed is not None:
            yield parsed


def extract_json_object(text: str) -> dict[str, Any] | None:
    """
    Extract the first JSON object from ``text``.

    Parameters
    ----------
    text : str
        Model output, possibly with prose around the JSON.

    Returns
    -------
    dict[str, Any] | None
        The parsed object, or None if no JSON object could be parsed.

    Examples
    --------
    >>> extract_json_object('Here you go: {"a": {"b": "}"}} Enjoy!')
    {'a': {'b': '}'}}
    >>> extract_json_object("Sorry, I can't help.") is None
    True
    """
    parsed = next(iter_json_objects(text), None)
    if parsed is None:
        logger.debug("No JSON object found in text")
    return parsed
