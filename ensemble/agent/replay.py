"""
Paced replay of a persisted run.

Structural events are re-emitted one at a time with a short pause after
each; runs of other events (thinking/output deltas and the like) are
re-emitted in small batches with a shorter pause between batches. Every
event is folded into a ``RunProjection`` as it is emitted, so replay ends in
the state the live run produced.
"""

import logging
from typing import AsyncGenerator, Sequence

from ensemble.agent.events import STRUCTURAL_EVENT_TYPES, AgentEvent
from ensemble.agent.persistence import EventRecord
from ensemble.agent.state import RunProjection
from ensemble.config.schema import ReplayConfig
from ensemble.utils.cancel import CancellationToken

logger = logging.getLogger(__name__)


def _is_structural(event: AgentEvent) -> bool:
    return event.type in STRUCTURAL_EVENT_TYPES


class ReplayEngine:
    """
    Re-emits a recorded event log with human-watchable pacing.

    Parameters
    ----------
    config : ReplayConfig
        Pause lengths and batch size.
    projection : RunProjection | None, optional
        State to fold events into. A fresh projection by default.

    Attributes
    ----------
    projection : RunProjection
        State reconstructed so far.

    Examples
    --------
    >>> engine = ReplayEngine(ReplayConfig())
    >>> async for event in engine.replay(store.load_events(run_id), token):
    ...     render(event)
    >>> engine.projection.complete
    True
    """

    def __init__(
        self,
        config: ReplayConfig,
        projection: RunProjection | None = None,
    ) -> None:
        self.config: ReplayConfig = config
        self.projection: RunProjection = projection or RunProjection()

    async def replay(
        self,
        records: Sequence[EventRecord],
        token: CancellationToken | None = None,
    ) -> AsyncGenerator[AgentEvent, None]:
        """
        Replay ``records`` in timestamp order.

        Parameters
        ----------
        records : Sequence[EventRecord]
            The persisted log.
        token : CancellationToken | None, optional
            Stop signal. Once it fires no further event is emitted, including
            during a pause.

        Yields
        ------
        AgentEvent
            The recorded events, unchanged and in order.
        """
        token = token or CancellationToken()
        ordered: list[EventRecord] = sorted(records, key=lambda record: record.timestamp_ms)
        structural_pause: float = self.config.structural_pause_ms / 1000
        batch_pause: float = self.config.batch_pause_ms / 1000

        index: int = 0
        while index < len(ordered) and not token.cancelled:
            event: AgentEvent = ordered[index].event

            if _is_structural(event):
                self.projection.apply(event)
                yield event
                index += 1
                if await token.sleep(structural_pause):
                    break
                continue

            batch: list[AgentEvent] = []
            while (
                index < len(ordered)
                and not _is_structural(ordered[index].event)
                and len(batch) < self.config.batch_size
            ):
                batch.append(ordered[index].event)
                index += 1

            for batched in batch:
                if token.cancelled:
                    break
                self.projection.apply(batched)
                yield batched

            if token.cancelled or await token.sleep(batch_pause):
                break

        if token.cancelled:
            logger.info(f"Replay cancelled after {self.projection.event_count} event(s)")
