"""
Run persistence: an append-only event log per run.

Every event of a run can be appended to ``<data_dir>/runs/<run_id>/``
as one JSON line. The log is exactly what replay consumes, so lines hold
the full wire form of the event plus the run id and timestamp.
"""

import json
import logging
import os
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ensemble.agent.events import AgentEvent, EnvCreatedEvent
from ensemble.constants import DEFAULT_ENCODING, RUNS_DIR_NAME
from ensemble.team.models import EnvironmentSpec

logger = logging.getLogger(__name__)

EVENTS_FILE_NAME: str = "events.jsonl"
RUN_FILE_NAME: str = "run.json"


class EventRecord(BaseModel):
    """
    One persisted event.

    Parameters
    ----------
    event : AgentEvent
        The event (``payload`` in the log).
    timestamp_ms : int
        Milliseconds at which the event was produced.
    """

    model_config = ConfigDict(populate_by_name=True)

    event: AgentEvent = Field(alias="payload")
    timestamp_ms: int

    @classmethod
    def from_event(cls, event: AgentEvent) -> "EventRecord":
        return cls(event=event, timestamp_ms=event.timestamp)


class RunInfo(BaseModel):
    """Metadata of a recorded run."""

    run_id: str
    task: str
    created_at: datetime
    spec: EnvironmentSpec | None = None
    event_count: int = 0


class EventStore:
    """
    JSON Lines store of run event logs.

    Appends never raise: a failed write is logged and the run goes on.

    Parameters
    ----------
    data_dir : Path
        Root data directory; runs live under ``data_dir / "runs"``.

    Examples
    --------
    >>> store = EventStore(get_data_dir(config))
    >>> run_id = store.create_run("Write a haiku about the sea")
    >>> store.append(run_id, event)
    >>> records = store.load_events(run_id)
    """

    def __init__(self, data_dir: Path) -> None:
        self.runs_dir: Path = data_dir / RUNS_DIR_NAME
        self.runs_dir.mkdir(parents=True, exist_ok=True)
        os.chmod(self.runs_dir, 0o700)

    def _run_dir(self, run_id: str) -> Path:
        return self.runs_dir / run_id

    def _write_info(self, info: RunInfo) -> None:
        file_path: Path = self._run_dir(info.run_id) / RUN_FILE_NAME
        with open(file_path, "w", encoding=DEFAULT_ENCODING) as fp:
            fp.write(info.model_dump_json(indent=2, by_alias=True))
        os.chmod(file_path, 0o600)

    def get_run(self, run_id: str) -> RunInfo | None:
        """Return the metadata of ``run_id``, or None if unknown."""
        file_path: Path = self._run_dir(run_id) / RUN_FILE_NAME
        if not file_path.exists():
            return None

        try:
            with open(file_path, "r", encoding=DEFAULT_ENCODING) as fp:
                return RunInfo.model_validate_json(fp.read())
        except Exception as e:
            logger.warning(f"Failed to load run {run_id}: {e}")
            return None

    def create_run(self, task: str) -> str:
        """
        Register a new run.

        Returns
        -------
        str
            The new run id.
        """
        run_id: str = uuid.uuid4().hex
        self._run_dir(run_id).mkdir(parents=True, exist_ok=False)
        self._write_info(RunInfo(run_id=run_id, task=task, created_at=datetime.now()))
        logger.debug(f"Created run {run_id}")
        return run_id

    def append(self, run_id: str, event: AgentEvent) -> None:
        """
        Append ``event`` to the log of ``run_id``.

        An ``env_created`` event also attaches its spec to the run.
        """
        line: dict[str, Any] = {
            "run_id": run_id,
            "timestamp_ms": event.timestamp,
            "event_type": event.type,
            "agent_id": getattr(event, "agent_id", None),
            "payload": event.to_wire(),
        }
        file_path: Path = self._run_dir(run_id) / EVENTS_FILE_NAME

        try:
            with open(file_path, "a", encoding=DEFAULT_ENCODING) as fp:
                fp.write(json.dumps(line) + "\n")
        except OSError as e:
            logger.warning(f"Failed to persist {event.type} event of run {run_id}: {e}")
            return

        if isinstance(event, EnvCreatedEvent):
            self.attach_spec(run_id, event.spec)

    def attach_spec(self, run_id: str, spec: EnvironmentSpec) -> None:
        """Record ``spec`` as the environment of ``run_id``."""
        info: RunInfo | None = self.get_run(run_id)
        if info is None:
            logger.warning(f"Cannot attach spec to unknown run {run_id}")
            return

        try:
            self._write_info(info.model_copy(update={"spec": spec}))
        except OSError as e:
            logger.warning(f"Failed to attach spec to run {run_id}: {e}")

    def load_events(self, run_id: str) -> list[EventRecord]:
        """
        Load the event log of ``run_id`` ordered by timestamp.

        Malformed lines are skipped with a warning. Events with equal
        timestamps keep their append order.
        """
        file_path: Path = self._run_dir(run_id) / EVENTS_FILE_NAME
        if not file_path.exists():
            return []

        records: list[EventRecord] = []
        with open(file_path, "r", encoding=DEFAULT_ENCODING) as fp:
            for line_number, line in enumerate(fp, start=1):
                if not line.strip():
                    continue
                try:
                    records.append(EventRecord.model_validate_json(line))
                except Exception as e:
                    logger.warning(f"Skipping malformed event at {file_path}:{line_number}: {e}")

        records.sort(key=lambda record: record.timestamp_ms)
        return records

    def list_runs(self) -> list[RunInfo]:
        """List recorded runs, newest first."""
        runs: list[RunInfo] = []
        for run_dir in self.runs_dir.iterdir():
            if not run_dir.is_dir():
                continue
            info: RunInfo | None = self.get_run(run_dir.name)
            if info is None:
                continue

            events_path: Path = run_dir / EVENTS_FILE_NAME
            if events_path.exists():
                with open(events_path, "r", encoding=DEFAULT_ENCODING) as fp:
                    info.event_count = sum(1 for line in fp if line.strip())
            runs.append(info)

        runs.sort(key=lambda info: info.created_at, reverse=True)
        return runs
