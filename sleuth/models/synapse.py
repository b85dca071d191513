"""Synapse — run-level event trail for research runs.

Every phase transition, batch dispatch and worker execution produces a
SynapseEvent tagged with the run's correlation id (the run id).

    bus = SynapseEventBus()
    bus.emit(SynapseEvent(correlation_id=run_id, event_type="phase", source="coordinator"))
    bus.get_trace(run_id).phases

Events live in memory for the current process. With persistence on they are
also appended to <trace_dir>/<run_id>.jsonl, which is what lets
`sleuth trace` inspect a run started by another process.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import structlog
from pydantic import BaseModel, Field

from sleuth.config import settings

logger = structlog.get_logger().bind(component="synapse")

FAILURE_EVENT = "run_failed"


class SynapseEvent(BaseModel):
    """One thing that happened during a research run."""

    event_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    correlation_id: str = Field(description="Run id shared by every event of one research run")
    event_type: str = Field(
        description="ingress | phase | batch_dispatch | stale_findings | worker_start | "
        "worker_complete | worker_error | egress | run_failed"
    )
    source: str = Field(description="Emitter: 'coordinator' or a worker role")
    target: str = ""
    payload: dict[str, Any] = Field(default_factory=dict)
    error: str = ""
    duration_ms: float = 0.0
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class SynapseTrace(BaseModel):
    """Events of one run in time order, plus what the CLI shows about them."""

    correlation_id: str
    events: list[SynapseEvent] = Field(default_factory=list)
    phases: list[str] = Field(default_factory=list)
    workers_used: list[str] = Field(default_factory=list)
    total_duration_ms: float = 0.0
    success: bool = True
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @classmethod
    def from_events(cls, correlation_id: str, events: Iterable[SynapseEvent]) -> "SynapseTrace":
        ordered = sorted(events, key=lambda e: e.timestamp)
        trace = cls(correlation_id=correlation_id, events=ordered)
        for event in ordered:
            if event.event_type == "phase":
                trace.phases.append(event.payload.get("phase", ""))
            elif event.event_type == "worker_start" and event.source not in trace.workers_used:
                trace.workers_used.append(event.source)
            elif event.event_type == FAILURE_EVENT:
                trace.success = False
        if ordered:
            trace.started_at = ordered[0].timestamp
            trace.completed_at = ordered[-1].timestamp
            elapsed = trace.completed_at - trace.started_at
            trace.total_duration_ms = round(elapsed.total_seconds() * 1000, 2)
        return trace

    @property
    def last_phase(self) -> str | None:
        return self.phases[-1] if self.phases else None


class _TraceLog:
    """One JSONL file per run under *directory*."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory

    def _path(self, correlation_id: str) -> Path:
        return self.directory / f"{correlation_id}.jsonl"

    def append(self, event: SynapseEvent) -> None:
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with self._path(event.correlation_id).open("a", encoding="utf-8") as fh:
                fh.write(event.model_dump_json() + "\n")
        except OSError as exc:
            # Tracing never fails a run
            logger.warning("synapse_write_failed", path=str(self.directory), error=str(exc))

    def read(self, correlation_id: str) -> list[SynapseEvent]:
        path = self._path(correlation_id)
        if not path.exists():
            return []
        with path.open("r", encoding="utf-8") as fh:
            return [SynapseEvent.model_validate_json(line) for line in fh if line.strip()]

    def run_ids(self, limit: int) -> list[str]:
        if not self.directory.is_dir():
            return []
        files = sorted(self.directory.glob("*.jsonl"), key=lambda p: p.stat().st_mtime, reverse=True)
        return [p.stem for p in files[:limit]]


class SynapseEventBus:
    """In-memory event bus with optional JSONL persistence.

    Args:
        trace_dir: Where run files go (defaults to settings.trace_dir).
        persist:   Append every event to its run file as well.
    """

    def __init__(self, trace_dir: Path | None = None, persist: bool = True) -> None:
        self._events: list[SynapseEvent] = []
        self._log = _TraceLog(trace_dir or settings.trace_dir)
        self._persist = persist

    def emit(self, event: SynapseEvent) -> None:
        self._events.append(event)
        if self._persist:
            self._log.append(event)

    def events_for(self, correlation_id: str) -> list[SynapseEvent]:
        return [e for e in self._events if e.correlation_id == correlation_id]

    def get_trace(self, correlation_id: str) -> SynapseTrace:
        """Trace from this process's events, or from the run file if there are none."""
        events = self.events_for(correlation_id) or self._log.read(correlation_id)
        return SynapseTrace.from_events(correlation_id, events)

    def get_recent_traces(self, limit: int = 10) -> list[SynapseTrace]:
        """Traces of the runs seen most recently by this process (newest first)."""
        seen: dict[str, None] = {}
        for event in reversed(self._events):
            seen.setdefault(event.correlation_id)
            if len(seen) >= limit:
                break
        return [self.get_trace(cid) for cid in seen]

    def list_traces(self, limit: int = 20) -> list[str]:
        """Run ids of persisted trace files, newest first."""
        return self._log.run_ids(limit)

    def clear(self) -> None:
        """Forget in-memory events. Trace files are left alone."""
        self._events.clear()

    @property
    def event_count(self) -> int:
        return len(self._events)
