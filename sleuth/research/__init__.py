"""Sleuth Research — the research orchestration pipeline.

Architecture:
    models        — tasks, artifacts, citations, plan, phases, run state
    memory        — bounded short/long-term memory per session
    orchestrator  — planning, decomposition, freshness, synthesis
    coordinator   — phase state machine and batched task execution
    store         — persistence boundary (in-memory or Redis)
    service       — start_research(), the entry point

Import the coordinator and service from their modules; this package only
re-exports the leaf types so that importing it stays cheap.
"""

from .memory import MemoryStore
from .models import (
    AgentRole,
    ArtifactKind,
    Citation,
    ResearchArtifact,
    ResearchPhase,
    ResearchPlan,
    ResearchResult,
    ResearchSummary,
    ResearchTask,
    TaskStatus,
)

__all__ = [
    "AgentRole",
    "ArtifactKind",
    "Citation",
    "MemoryStore",
    "ResearchArtifact",
    "ResearchPhase",
    "ResearchPlan",
    "ResearchResult",
    "ResearchSummary",
    "ResearchTask",
    "TaskStatus",
]
