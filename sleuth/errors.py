"""Exception taxonomy for the research pipeline.

Fatal to a run:       PlanningFailed, SynthesisFailed
Recovered in-phase:   TaskExecutionFailed, AnalysisFailed, VerificationFailed,
                      CompletenessCheckFailed
Programming errors:   MemoryNotInitialized, MemoryAlreadyInitialized,
                      InvalidTaskTransition, InvalidPhaseTransition
Collaborator errors:  LLMError, ToolUnavailable
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from sleuth.research.models import ResearchPhase


class ResearchError(Exception):
    """Base class. ``phase`` is filled in by the coordinator when a run aborts."""

    def __init__(self, message: str, *, phase: "ResearchPhase | None" = None) -> None:
        super().__init__(message)
        self.message = message
        self.phase = phase


class PlanningFailed(ResearchError):
    """The plan or decomposition call errored. Aborts the run."""


class TaskExecutionFailed(ResearchError):
    """A searcher task failed. Logged; the task contributes no artifact."""

    def __init__(self, message: str, *, task_id: str = "", **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.task_id = task_id


class AnalysisFailed(ResearchError):
    """An extractor task failed. Logged; no analysis artifact is produced."""


class VerificationFailed(ResearchError):
    """A fact-check task failed. Logged; the original artifact is kept."""


class CompletenessCheckFailed(ResearchError):
    """The completeness evaluation call errored."""


class SynthesisFailed(ResearchError):
    """The final report could not be produced. Aborts the run."""


class MemoryNotInitialized(ResearchError):
    """Memory was used for a session that was never initialized."""


class MemoryAlreadyInitialized(ResearchError):
    """initialize() called twice for the same session without clear()."""


class InvalidTaskTransition(ResearchError):
    """A task status change that breaks the one-way progression."""


class InvalidPhaseTransition(ResearchError):
    """A phase change that moves backwards or repeats a phase."""


class LLMError(ResearchError):
    """The language-model provider returned an error or an unusable payload."""


class ToolUnavailable(ResearchError):
    """A tool's backing service is not configured or not reachable."""
