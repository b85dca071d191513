"""Unit tests for the Synapse event bus and trace assembly."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from sleuth.models.synapse import SynapseEvent, SynapseEventBus


def _event(cid: str, event_type: str, *, source: str = "coordinator", offset_ms: int = 0, **payload):
    return SynapseEvent(
        correlation_id=cid,
        event_type=event_type,
        source=source,
        payload=payload,
        timestamp=datetime(2026, 3, 1, tzinfo=timezone.utc) + timedelta(milliseconds=offset_ms),
    )


class TestTrace:
    def test_phases_and_workers_derived(self, synapse):
        synapse.emit(_event("r1", "ingress"))
        synapse.emit(_event("r1", "phase", offset_ms=1, phase="planning"))
        synapse.emit(_event("r1", "worker_start", source="orchestrator", offset_ms=2))
        synapse.emit(_event("r1", "phase", offset_ms=3, phase="searching"))
        synapse.emit(_event("r1", "worker_start", source="searcher", offset_ms=4))
        synapse.emit(_event("r1", "worker_start", source="searcher", offset_ms=5))
        synapse.emit(_event("r2", "ingress"))

        trace = synapse.get_trace("r1")

        assert len(trace.events) == 6
        assert trace.phases == ["planning", "searching"]
        assert trace.last_phase == "searching"
        assert trace.workers_used == ["orchestrator", "searcher"]
        assert trace.total_duration_ms == 5.0
        assert trace.success

    def test_run_failed_marks_failure(self, synapse):
        synapse.emit(_event("r1", "phase", phase="planning"))
        synapse.emit(_event("r1", "run_failed", offset_ms=1, phase="planning"))
        assert not synapse.get_trace("r1").success

    def test_unknown_run_is_empty(self, synapse):
        trace = synapse.get_trace("missing")
        assert trace.events == []
        assert trace.last_phase is None

    def test_recent_traces_newest_first(self, synapse):
        synapse.emit(_event("old", "ingress"))
        synapse.emit(_event("new", "ingress"))
        synapse.emit(_event("old", "egress"))
        synapse.emit(_event("newest", "ingress"))

        assert [t.correlation_id for t in synapse.get_recent_traces()] == ["newest", "old", "new"]
        assert [t.correlation_id for t in synapse.get_recent_traces(limit=1)] == ["newest"]


class TestPersistence:
    def test_events_written_and_reloaded(self, tmp_path):
        writer = SynapseEventBus(trace_dir=tmp_path, persist=True)
        writer.emit(_event("r1", "phase", phase="planning"))
        writer.emit(_event("r1", "phase", offset_ms=5, phase="searching"))

        assert (tmp_path / "r1.jsonl").exists()

        reader = SynapseEventBus(trace_dir=tmp_path, persist=False)
        assert reader.event_count == 0
        trace = reader.get_trace("r1")
        assert trace.phases == ["planning", "searching"]
        assert reader.list_traces() == ["r1"]

    def test_no_files_without_persistence(self, tmp_path):
        bus = SynapseEventBus(trace_dir=tmp_path, persist=False)
        bus.emit(_event("r1", "ingress"))
        assert list(tmp_path.iterdir()) == []
        assert bus.list_traces() == []

    def test_write_failure_does_not_raise(self, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("x")
        bus = SynapseEventBus(trace_dir=blocker, persist=True)
        bus.emit(_event("r1", "ingress"))
        assert bus.event_count == 1

    def test_clear_keeps_files(self, tmp_path):
        bus = SynapseEventBus(trace_dir=tmp_path, persist=True)
        bus.emit(_event("r1", "ingress"))
        bus.clear()
        assert bus.event_count == 0
        assert bus.get_trace("r1").events
