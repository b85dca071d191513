"""Domain models shared by the coordinator, orchestrator, workers and memory.

ResearchTask      — unit of work with a one-way status progression
ResearchArtifact  — a piece of evidence; promoted into new artifacts, never mutated
Citation          — source attached to an artifact
ResearchMemory    — per-session short/long-term text buffers
ResearchPlan      — immutable plan produced once per run
OrchestratorState — canonical run state, owned by the coordinator
StateSnapshot     — frozen read-only view handed to the orchestrator
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from sleuth.config import settings
from sleuth.errors import InvalidPhaseTransition, InvalidTaskTransition
from sleuth.utils import short_id
from sleuth.utils.clock import hours_between, now_utc


class AgentRole(str, enum.Enum):
    ORCHESTRATOR = "orchestrator"
    SEARCHER = "searcher"
    EXTRACTOR = "extractor"
    FACT_CHECKER = "fact_checker"
    SYNTHESIZER = "synthesizer"


class TaskStatus(str, enum.Enum):
    IDLE = "idle"
    THINKING = "thinking"
    EXECUTING = "executing"
    WAITING = "waiting"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED)


# status → statuses it may move to. Terminal states have no exits.
_TASK_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.IDLE: frozenset({TaskStatus.THINKING, TaskStatus.WAITING, TaskStatus.FAILED}),
    TaskStatus.WAITING: frozenset({TaskStatus.THINKING, TaskStatus.FAILED}),
    TaskStatus.THINKING: frozenset({TaskStatus.EXECUTING, TaskStatus.COMPLETED, TaskStatus.FAILED}),
    TaskStatus.EXECUTING: frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED}),
    TaskStatus.COMPLETED: frozenset(),
    TaskStatus.FAILED: frozenset(),
}


class ResearchTask(BaseModel):
    """A unit of work dispatched to one worker role."""

    id: str = Field(default_factory=short_id)
    parent_task_id: str | None = None
    role: AgentRole
    description: str
    context: dict[str, Any] = Field(default_factory=dict)
    status: TaskStatus = TaskStatus.IDLE
    created_at: datetime = Field(default_factory=now_utc)
    updated_at: datetime = Field(default_factory=now_utc)
    result: Any = None
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def transition(self, status: TaskStatus) -> "ResearchTask":
        """Move to *status*, enforcing idle → thinking → executing → completed|failed."""
        if status not in _TASK_TRANSITIONS[self.status]:
            raise InvalidTaskTransition(
                f"task {self.id}: cannot move from {self.status.value} to {status.value}"
            )
        self.status = status
        self.updated_at = now_utc()
        return self

    def complete(self, result: Any) -> "ResearchTask":
        self.result = result
        return self.transition(TaskStatus.COMPLETED)

    def fail(self, error: str) -> "ResearchTask":
        self.error = error
        return self.transition(TaskStatus.FAILED)


class ArtifactKind(str, enum.Enum):
    SOURCE = "source"
    FINDING = "finding"
    ANALYSIS = "analysis"
    CITATION = "citation"
    VERIFIED = "verified"


class ResearchArtifact(BaseModel):
    """A unit of evidence. ``retrieved_at`` is when the information was obtained."""

    id: str = Field(default_factory=short_id)
    task_id: str
    session_id: str
    kind: ArtifactKind
    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=now_utc)
    retrieved_at: datetime = Field(default_factory=now_utc)

    def promote(
        self,
        kind: ArtifactKind,
        *,
        task_id: str | None = None,
        content: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> "ResearchArtifact":
        """Return a new artifact derived from this one. This artifact is left untouched."""
        merged = {**self.metadata, **(metadata or {}), "source_artifact_id": self.id}
        return ResearchArtifact(
            task_id=task_id or self.task_id,
            session_id=self.session_id,
            kind=kind,
            content=self.content if content is None else content,
            metadata=merged,
            retrieved_at=self.retrieved_at,
        )

    def age_hours(self, now: datetime | None = None) -> float:
        return hours_between(self.retrieved_at, now or now_utc())

    @property
    def preview(self) -> str:
        """First 100 chars of content."""
        return self.content[:100]


class Citation(BaseModel):
    id: str = Field(default_factory=short_id)
    artifact_id: str
    source: str
    url: str = ""
    title: str | None = None
    accessed_at: datetime = Field(default_factory=now_utc)


class ResearchMemory(BaseModel):
    session_id: str
    short_term: str = ""
    long_term: str = ""
    last_updated: datetime = Field(default_factory=now_utc)


class ResearchPlan(BaseModel):
    """Created once per run. Re-runs get a fresh plan."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=short_id)
    session_id: str
    user_id: str
    query: str
    objectives: tuple[str, ...] = ()
    strategy: str = ""
    estimated_steps: int = 3
    ambiguous: bool = Field(
        default=False,
        description="True when objectives/steps were guessed from unstructured text",
    )
    created_at: datetime = Field(default_factory=now_utc)


class ResearchPhase(str, enum.Enum):
    PLANNING = "planning"
    SEARCHING = "searching"
    ANALYZING = "analyzing"
    SYNTHESIZING = "synthesizing"
    FINALIZING = "finalizing"
    DONE = "done"

    @property
    def progress(self) -> int:
        return _PHASE_PROGRESS[self]

    @classmethod
    def ordered(cls) -> list["ResearchPhase"]:
        return list(_PHASE_PROGRESS)


_PHASE_PROGRESS: dict[ResearchPhase, int] = {
    ResearchPhase.PLANNING: 10,
    ResearchPhase.SEARCHING: 30,
    ResearchPhase.ANALYZING: 60,
    ResearchPhase.SYNTHESIZING: 80,
    ResearchPhase.FINALIZING: 90,
    ResearchPhase.DONE: 100,
}


class StateSnapshot(BaseModel):
    """Frozen view of OrchestratorState handed to the orchestrator."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    plan_id: str
    current_phase: ResearchPhase | None
    progress_percentage: int
    findings: tuple[ResearchArtifact, ...] = ()
    citations: tuple[Citation, ...] = ()
    completed_task_count: int = 0


class OrchestratorState(BaseModel):
    """Canonical run state. Only the coordinator mutates it."""

    session_id: str
    plan_id: str = Field(default_factory=short_id)
    active_tasks: list[ResearchTask] = Field(default_factory=list)
    completed_tasks: list[ResearchTask] = Field(default_factory=list)
    findings: list[ResearchArtifact] = Field(default_factory=list)
    citations: list[Citation] = Field(default_factory=list)
    current_phase: ResearchPhase | None = None
    progress_percentage: int = Field(default=0, ge=0, le=100)
    stale_artifacts: list[str] = Field(default_factory=list)
    gaps: list[str] = Field(default_factory=list)

    def advance(self, phase: ResearchPhase) -> None:
        """Enter *phase*. Phases only move forward within a run."""
        order = ResearchPhase.ordered()
        if self.current_phase is not None and order.index(phase) <= order.index(self.current_phase):
            raise InvalidPhaseTransition(
                f"cannot move from {self.current_phase.value} to {phase.value}"
            )
        self.current_phase = phase
        self.progress_percentage = max(self.progress_percentage, phase.progress)

    def snapshot(self) -> StateSnapshot:
        return StateSnapshot(
            session_id=self.session_id,
            plan_id=self.plan_id,
            current_phase=self.current_phase,
            progress_percentage=self.progress_percentage,
            findings=tuple(a.model_copy(deep=True) for a in self.findings),
            citations=tuple(c.model_copy(deep=True) for c in self.citations),
            completed_task_count=len(self.completed_tasks),
        )


class ResearchRequest(BaseModel):
    session_id: str
    query: str
    user_id: str = Field(default_factory=lambda: settings.default_user_id)
    context: dict[str, Any] = Field(default_factory=dict)

    @field_validator("query")
    @classmethod
    def _query_long_enough(cls, value: str) -> str:
        value = value.strip()
        if len(value) < 10:
            raise ValueError("Query must be at least 10 characters")
        return value


class ResearchResult(BaseModel):
    session_id: str
    query: str
    report: str
    findings: list[ResearchArtifact] = Field(default_factory=list)
    citations: list[Citation] = Field(default_factory=list)
    plan: ResearchPlan | None = None
    tasks: list[ResearchTask] = Field(default_factory=list)
    execution_time_ms: float = 0.0
    phase: ResearchPhase = ResearchPhase.DONE

    @property
    def findings_count(self) -> int:
        return len(self.findings)

    @property
    def citations_count(self) -> int:
        return len(self.citations)


class ResearchSummary(BaseModel):
    """What start_research hands back to a presentation layer."""

    session_id: str
    report: str
    findings_count: int
    citations_count: int
    execution_time_ms: float

    @classmethod
    def from_result(cls, result: ResearchResult) -> "ResearchSummary":
        return cls(
            session_id=result.session_id,
            report=result.report,
            findings_count=result.findings_count,
            citations_count=result.citations_count,
            execution_time_ms=result.execution_time_ms,
        )
