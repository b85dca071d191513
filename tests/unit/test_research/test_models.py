"""Unit tests for the research domain models."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from sleuth.errors import InvalidPhaseTransition, InvalidTaskTransition
from sleuth.research.models import (
    AgentRole,
    ArtifactKind,
    Citation,
    OrchestratorState,
    ResearchPhase,
    ResearchPlan,
    ResearchRequest,
    ResearchResult,
    ResearchSummary,
    ResearchTask,
    TaskStatus,
)


# ── ResearchTask ─────────────────────────────────────────────────────────────


class TestTaskTransitions:
    def test_new_task_is_idle(self, task_factory):
        task = task_factory()
        assert task.status is TaskStatus.IDLE
        assert task.result is None
        assert task.error is None

    def test_happy_path_through_executing(self, task_factory):
        task = task_factory()
        task.transition(TaskStatus.THINKING)
        task.transition(TaskStatus.EXECUTING)
        task.complete(["outcome"])
        assert task.status is TaskStatus.COMPLETED
        assert task.result == ["outcome"]
        assert task.is_terminal

    def test_thinking_can_complete_directly(self, task_factory):
        task = task_factory().transition(TaskStatus.THINKING)
        task.complete("answer")
        assert task.status is TaskStatus.COMPLETED

    def test_idle_can_wait_then_think(self, task_factory):
        task = task_factory()
        task.transition(TaskStatus.WAITING)
        task.transition(TaskStatus.THINKING)
        assert task.status is TaskStatus.THINKING

    def test_fail_records_error(self, task_factory):
        task = task_factory().transition(TaskStatus.THINKING)
        task.fail("model offline")
        assert task.status is TaskStatus.FAILED
        assert task.error == "model offline"

    @pytest.mark.parametrize("terminal", [TaskStatus.COMPLETED, TaskStatus.FAILED])
    def test_terminal_states_have_no_exits(self, task_factory, terminal):
        task = task_factory().transition(TaskStatus.THINKING)
        task.transition(terminal)
        for status in TaskStatus:
            with pytest.raises(InvalidTaskTransition):
                task.transition(status)

    def test_idle_cannot_skip_to_completed(self, task_factory):
        with pytest.raises(InvalidTaskTransition):
            task_factory().complete("too early")

    def test_executing_cannot_go_back_to_thinking(self, task_factory):
        task = task_factory().transition(TaskStatus.THINKING).transition(TaskStatus.EXECUTING)
        with pytest.raises(InvalidTaskTransition):
            task.transition(TaskStatus.THINKING)

    def test_transition_bumps_updated_at(self, task_factory):
        task = task_factory()
        before = task.updated_at
        task.transition(TaskStatus.THINKING)
        assert task.updated_at >= before


# ── ResearchArtifact ─────────────────────────────────────────────────────────


class TestArtifactPromotion:
    def test_promote_returns_new_artifact(self, artifact_factory):
        original = artifact_factory(source="web")
        promoted = original.promote(ArtifactKind.VERIFIED, metadata={"verification": "ok"})

        assert promoted.id != original.id
        assert promoted.kind is ArtifactKind.VERIFIED
        assert promoted.content == original.content
        assert promoted.metadata["verification"] == "ok"
        assert promoted.metadata["source"] == "web"
        assert promoted.metadata["source_artifact_id"] == original.id

    def test_promote_leaves_original_untouched(self, artifact_factory):
        original = artifact_factory(source="web")
        before = original.model_dump()
        original.promote(ArtifactKind.ANALYSIS, content="insights", metadata={"x": 1})
        assert original.model_dump() == before

    def test_promote_keeps_retrieved_at(self, artifact_factory):
        retrieved = datetime(2026, 1, 1, tzinfo=timezone.utc)
        original = artifact_factory(retrieved_at=retrieved)
        promoted = original.promote(ArtifactKind.ANALYSIS, task_id="task-9", content="insights")
        assert promoted.retrieved_at == retrieved
        assert promoted.task_id == "task-9"
        assert promoted.content == "insights"

    def test_age_hours(self, artifact_factory):
        now = datetime(2026, 1, 2, 12, tzinfo=timezone.utc)
        artifact = artifact_factory(retrieved_at=now - timedelta(hours=6))
        assert artifact.age_hours(now) == pytest.approx(6.0)

    def test_preview_is_first_100_chars(self, artifact_factory):
        artifact = artifact_factory("x" * 250)
        assert artifact.preview == "x" * 100


# ── Phases and state ─────────────────────────────────────────────────────────


class TestPhases:
    def test_progress_values(self):
        assert [p.progress for p in ResearchPhase.ordered()] == [10, 30, 60, 80, 90, 100]

    def test_ordered_sequence(self):
        assert [p.value for p in ResearchPhase.ordered()] == [
            "planning", "searching", "analyzing", "synthesizing", "finalizing", "done",
        ]

    def test_advance_sets_phase_and_progress(self):
        state = OrchestratorState(session_id="s")
        state.advance(ResearchPhase.PLANNING)
        state.advance(ResearchPhase.SEARCHING)
        assert state.current_phase is ResearchPhase.SEARCHING
        assert state.progress_percentage == 30

    def test_advance_may_skip_forward(self):
        state = OrchestratorState(session_id="s")
        state.advance(ResearchPhase.ANALYZING)
        assert state.progress_percentage == 60

    def test_backward_move_rejected(self):
        state = OrchestratorState(session_id="s")
        state.advance(ResearchPhase.ANALYZING)
        with pytest.raises(InvalidPhaseTransition):
            state.advance(ResearchPhase.SEARCHING)
        assert state.current_phase is ResearchPhase.ANALYZING
        assert state.progress_percentage == 60

    def test_repeated_phase_rejected(self):
        state = OrchestratorState(session_id="s")
        state.advance(ResearchPhase.PLANNING)
        with pytest.raises(InvalidPhaseTransition):
            state.advance(ResearchPhase.PLANNING)

    def test_progress_bounds_validated(self):
        with pytest.raises(ValidationError):
            OrchestratorState(session_id="s", progress_percentage=101)


class TestSnapshot:
    def test_snapshot_is_frozen_copy(self, artifact_factory):
        state = OrchestratorState(session_id="s")
        state.findings.append(artifact_factory())
        snapshot = state.snapshot()

        assert isinstance(snapshot.findings, tuple)
        with pytest.raises(ValidationError):
            snapshot.progress_percentage = 50

        state.findings.append(artifact_factory("later"))
        assert len(snapshot.findings) == 1

    def test_snapshot_carries_plan_and_counts(self):
        state = OrchestratorState(session_id="s")
        state.completed_tasks.append(ResearchTask(role=AgentRole.SEARCHER, description="d"))
        snapshot = state.snapshot()
        assert snapshot.plan_id == state.plan_id
        assert snapshot.completed_task_count == 1
        assert snapshot.current_phase is None


# ── Plan, request, result ────────────────────────────────────────────────────


class TestPlan:
    def test_plan_is_immutable(self):
        plan = ResearchPlan(session_id="s", user_id="u", query="q" * 12)
        with pytest.raises(ValidationError):
            plan.strategy = "changed"
        assert plan.estimated_steps == 3


class TestRequest:
    def test_query_is_stripped(self):
        request = ResearchRequest(session_id="s", query="   heat pump efficiency   ")
        assert request.query == "heat pump efficiency"

    def test_short_query_rejected(self):
        with pytest.raises(ValidationError, match="at least 10 characters"):
            ResearchRequest(session_id="s", query="too short")

    def test_whitespace_does_not_count(self):
        with pytest.raises(ValidationError):
            ResearchRequest(session_id="s", query="   short    ")

    def test_user_defaults_from_settings(self):
        request = ResearchRequest(session_id="s", query="a long enough query")
        assert request.user_id


class TestResultCounts:
    def test_counts_equal_list_lengths(self, artifact_factory):
        findings = [artifact_factory(), artifact_factory()]
        citations = [Citation(artifact_id=findings[0].id, source="Research Task")]
        result = ResearchResult(
            session_id="s", query="q", report="r", findings=findings, citations=citations,
        )
        assert result.findings_count == 2
        assert result.citations_count == 1

        summary = ResearchSummary.from_result(result)
        assert summary.findings_count == 2
        assert summary.citations_count == 1
        assert summary.report == "r"
