"""
Retry strategy for completion requests.

Retrying belongs to the completion client: the orchestration core never
retries an LLM call itself. Only opening a request is retried; once a stream
has started delivering deltas a failure is reported to the caller.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, TypeVar

from openai import APIConnectionError, APIError, RateLimitError as OpenAIRateLimitError

from ensemble.constants import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_BASE_DELAY,
    DEFAULT_RETRY_MAX_DELAY,
)
from ensemble.exceptions import ConnectionError, RateLimitError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryStrategy:
    """
    Retry failed request openings with exponential backoff.

    Rate-limit and connection errors are retried; other API errors are
    raised immediately.

    Parameters
    ----------
    max_retries : int, default=3
        Maximum number of retry attempts.
    base_delay : float, default=1.0
        Base delay in seconds for exponential backoff.
    max_delay : float, default=60.0
        Maximum delay in seconds between retries.
    sleep : Callable[[float], Awaitable[Any]], optional
        Sleep function, replaceable in tests.

    Examples
    --------
    >>> strategy = RetryStrategy(max_retries=3, base_delay=1.0)
    >>> result = await strategy.execute(lambda: client.chat.completions.create(**kwargs))
    """

    def __init__(
        self,
        max_retries: int = DEFAULT_MAX_RETRIES,
        base_delay: float = DEFAULT_RETRY_BASE_DELAY,
        max_delay: float = DEFAULT_RETRY_MAX_DELAY,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.max_retries: int = max_retries
        self.base_delay: float = base_delay
        self.max_delay: float = max_delay
        self._sleep = sleep

    def _calculate_delay(self, attempt: int) -> float:
        delay: float = self.base_delay * (2**attempt)
        return min(delay, self.max_delay)

    async def execute(self, func: Callable[[], Awaitable[T]]) -> T:
        """
        Execute ``func`` with retry logic.

        Parameters
        ----------
        func : Callable[[], Awaitable[T]]
            Zero-argument callable returning the awaitable to retry.

        Returns
        -------
        T
            Result of the first successful attempt.

        Raises
        ------
        RateLimitError
            If the rate limit persists after all retries.
        ConnectionError
            If the endpoint stays unreachable after all retries.
        openai.APIError
            For non-retryable API errors.
        """
        attempt: int = 0
        while True:
            try:
                return await func()
            except OpenAIRateLimitError as e:
                if attempt >= self.max_retries:
                    raise RateLimitError(
                        f"Rate limit exceeded after {self.max_retries} retries: {e}",
                        cause=e,
                    ) from e
                reason = "Rate limit exceeded"
            except APIConnectionError as e:
                if attempt >= self.max_retries:
                    raise ConnectionError(
                        f"Connection failed after {self.max_retries} retries: {e}",
                        cause=e,
                    ) from e
                reason = f"Connection error: {e}"
            except APIError as e:
                logger.error(f"API error: {e}")
                raise

            wait_time: float = self._calculate_delay(attempt)
            logger.warning(
                f"{reason} (attempt {attempt + 1}/{self.max_retries + 1}), "
                f"retrying in {wait_time:.2f}s",
            )
            await self._sleep(wait_time)
            attempt += 1
