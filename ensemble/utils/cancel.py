"""
Cooperative cancellation for event streams.

A ``CancellationToken`` is the single external stop signal of a run or a
replay. Consumers of a stream wrap it with ``until_cancelled`` so nothing is
yielded once the token fires, even if the producer is blocked waiting on a
completion chunk.
"""

import asyncio
from typing import AsyncIterator, TypeVar

T = TypeVar("T")


async def _close(source: AsyncIterator[T]) -> None:
    aclose = getattr(source, "aclose", None)
    if aclose is not None:
        await aclose()


class CancellationToken:
    """
    One-shot stop signal shared between a caller and a running stream.

    Examples
    --------
    >>> token = CancellationToken()
    >>> token.cancel()
    >>> token.cancelled
    True
    """

    def __init__(self) -> None:
        self._event: asyncio.Event = asyncio.Event()

    def cancel(self) -> None:
        """Fire the signal. Idempotent."""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        """Block until the signal fires."""
        await self._event.wait()

    async def sleep(self, delay: float) -> bool:
        """
        Sleep for ``delay`` seconds unless cancelled first.

        Returns
        -------
        bool
            True if the token fired before or during the sleep.
        """
        if self.cancelled:
            return True
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True


async def until_cancelled(
    source: AsyncIterator[T],
    token: CancellationToken | None,
) -> AsyncIterator[T]:
    """
    Re-yield ``source`` until ``token`` fires.

    Each pending ``__anext__`` of the source is raced against the token; when
    the token wins, the pending step is cancelled, the source is closed and
    iteration ends without yielding anything further.

    Parameters
    ----------
    source : AsyncIterator[T]
        The stream to guard.
    token : CancellationToken | None
        Stop signal. ``None`` passes the source through unchanged.

    Yields
    ------
    T
        Items of ``source`` produced before cancellation.
    """
    if token is None:
        try:
            async for item in source:
                yield item
        finally:
            await _close(source)
        return

    waiter: asyncio.Task[None] = asyncio.ensure_future(token.wait())
    try:
        while not token.cancelled:
            step: asyncio.Task[T] = asyncio.ensure_future(source.__anext__())
            done, _ = await asyncio.wait(
                {step, waiter},
                return_when=asyncio.FIRST_COMPLETED,
            )

            if step not in done:
                step.cancel()
                try:
                    await step
                except (asyncio.CancelledError, StopAsyncIteration):
                    pass
                break

            try:
                item: T = step.result()
            except StopAsyncIteration:
                break

            if token.cancelled:
                break
            yield item
    finally:
        waiter.cancel()
        await _close(source)
