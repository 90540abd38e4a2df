"""
Text utilities: character previews and token counting.

Previews (``message`` summaries, skill descriptions) are cut by characters so
they are deterministic across models. Token counts are only used for display
of run statistics.
"""

import logging
from typing import Callable

import tiktoken

from ensemble.constants import (
    DEFAULT_CHARS_PER_TOKEN,
    MIN_TOKEN_COUNT,
    PREVIEW_ELLIPSIS,
)

logger = logging.getLogger(__name__)


def truncate_preview(text: str, limit: int, ellipsis: str = PREVIEW_ELLIPSIS) -> str:
    """
    Cut ``text`` to at most ``limit`` characters, marking the cut.

    Examples
    --------
    >>> truncate_preview("abcdef", 3)
    'abc...'
    >>> truncate_preview("abc", 3)
    'abc'
    """
    if len(text) <= limit:
        return text
    return text[:limit] + ellipsis


class Tokenizer:
    """
    Token counter for a model's encoding.

    The encoding is resolved lazily; when the model is unknown to tiktoken
    ``cl100k_base`` is used, and when no encoding can be loaded at all the
    count falls back to a character-based estimate.

    Parameters
    ----------
    model : str, default="gpt-4o"
        Model name used to pick the encoding.

    Examples
    --------
    >>> Tokenizer("gpt-4o").count_tokens("")
    0
    """

    def __init__(self, model: str = "gpt-4o") -> None:
        self.model: str = model
        self._encoder: Callable[[str], list[int]] | None = None

    def _get_encoder(self) -> Callable[[str], list[int]]:
        if self._encoder is None:
            try:
                encoding = tiktoken.encoding_for_model(self.model)
            except KeyError:
                logger.debug(f"No tiktoken encoding for {self.model}, using cl100k_base")
                encoding = tiktoken.get_encoding("cl100k_base")
            self._encoder = encoding.encode
        return self._encoder

    def count_tokens(self, text: str) -> int:
        """Count the tokens of ``text``."""
        if not text:
            return 0

        try:
            return len(self._get_encoder()(text))
        except Exception as e:
            logger.warning(f"Token counting failed, using estimation: {e}")
            return max(MIN_TOKEN_COUNT, len(text) // DEFAULT_CHARS_PER_TOKEN)


def count_tokens(text: str, model: str = "gpt-4o") -> int:
    """Count tokens in ``text`` for ``model``."""
    return Tokenizer(model=model).count_tokens(text)
