"""ResearchCoordinator — drives one research run through its fixed phases.

    planning(10) → searching(30) → analyzing(60) → synthesizing(80)
                 → finalizing(90) → done(100)

Searching runs decomposed tasks in static batches of ``batch_size``: every
task in a batch is dispatched at once with asyncio.gather and the next batch
starts only when the whole batch has finished.

Only planning and synthesis failures abort a run. The aborting error gets
the phase it happened in (``error.phase``), ``state.current_phase`` stays
where it was, and the error is re-raised. Every other failure is recorded
in ``recovered`` and the run carries on with fewer artifacts.
"""

from __future__ import annotations

import asyncio
import json
import time
from collections.abc import Iterator, Sequence
from typing import Any, TypeVar

import structlog

from sleuth.agents.base import BaseWorker
from sleuth.agents.workers import WorkerPool
from sleuth.config import SleuthSettings, settings as default_settings
from sleuth.errors import (
    AnalysisFailed,
    CompletenessCheckFailed,
    ResearchError,
    TaskExecutionFailed,
    VerificationFailed,
)
from sleuth.models.schemas import ToolKind
from sleuth.models.synapse import SynapseEvent, SynapseEventBus
from sleuth.research.memory import MemoryStore
from sleuth.research.models import (
    AgentRole,
    ArtifactKind,
    Citation,
    OrchestratorState,
    ResearchArtifact,
    ResearchPhase,
    ResearchPlan,
    ResearchRequest,
    ResearchResult,
    ResearchTask,
    TaskStatus,
)
from sleuth.research.orchestrator import Orchestrator, verify_freshness
from sleuth.research.store import ResearchStore
from sleuth.utils import short_id
from sleuth.utils.clock import now_utc

logger = structlog.get_logger().bind(component="research.coordinator")

T = TypeVar("T")

DEFAULT_CITATION_SOURCE = "Research Task"


def batched(items: Sequence[T], size: int) -> Iterator[list[T]]:
    """Consecutive slices of *items* of length *size* (the last may be shorter)."""
    if size < 1:
        raise ValueError("batch size must be at least 1")
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


def _content_of(result: Any) -> str:
    if isinstance(result, str):
        return result
    return json.dumps(result, default=str, indent=2)


def _citation_for(task: ResearchTask, artifact: ResearchArtifact) -> Citation:
    """Cite the first search hit or fetched page in the task's tool results."""
    outcomes = task.result if isinstance(task.result, list) else []
    for outcome in outcomes:
        if not isinstance(outcome, dict) or not isinstance(outcome.get("result"), dict):
            continue
        payload = outcome["result"]
        if outcome.get("tool") == ToolKind.WEB_SEARCH.value:
            for hit in payload.get("results") or []:
                if hit.get("url"):
                    return Citation(
                        artifact_id=artifact.id,
                        source=hit.get("source") or "web_search",
                        url=hit["url"],
                        title=hit.get("title") or None,
                    )
        elif outcome.get("tool") == ToolKind.FETCH_URL.value and payload.get("url"):
            return Citation(
                artifact_id=artifact.id,
                source="fetch_url",
                url=payload["url"],
                title=payload.get("title") or None,
            )
    return Citation(artifact_id=artifact.id, source=DEFAULT_CITATION_SOURCE)


class ResearchCoordinator:
    """One coordinator per run. Owns the canonical OrchestratorState.

    Args:
        session_id:     Session the run belongs to.
        workers:        Per-run WorkerPool.
        memory:         Memory store; the session record is created if missing.
        store:          Optional persistence, read once for prior artifacts.
        synapse:        Event bus for phase / batch / run events.
        correlation_id: Run id stamped on events (generated when empty).
        config:         Settings (batch size, limits, budgets).
    """

    def __init__(
        self,
        session_id: str,
        workers: WorkerPool,
        *,
        memory: MemoryStore | None = None,
        store: ResearchStore | None = None,
        synapse: SynapseEventBus | None = None,
        correlation_id: str = "",
        config: SleuthSettings | None = None,
    ) -> None:
        self.config = config or default_settings
        self.session_id = session_id
        self.workers = workers
        self.store = store
        self.synapse = synapse or SynapseEventBus(persist=False)
        self.correlation_id = correlation_id or short_id()
        self.batch_size = self.config.batch_size

        self.memory = memory or MemoryStore(
            self.config.short_term_budget, self.config.long_term_budget
        )
        if not self.memory.has(session_id):
            self.memory.initialize(session_id)

        self.state = OrchestratorState(session_id=session_id)
        self.orchestrator = Orchestrator(workers.orchestrator, self.config.max_decomposed_tasks)
        self.plan: ResearchPlan | None = None
        self.tasks: list[ResearchTask] = []
        self.recovered: list[ResearchError] = []
        self.log = logger.bind(session_id=session_id, run_id=self.correlation_id)

    async def execute_research(self, request: ResearchRequest) -> ResearchResult:
        """Run every phase in order and return the result.

        Raises:
            PlanningFailed: plan or decomposition call failed.
            SynthesisFailed: the report call failed.
        """
        start = time.perf_counter()
        self._emit("ingress", payload={"query": request.query[:200], "user_id": request.user_id})
        self.log.info("research_started", query=request.query[:80])

        try:
            # ── planning ──
            self._enter(ResearchPhase.PLANNING)
            await self._check_prior_findings()
            plan = await self.orchestrator.plan_research(
                request.query,
                self._planning_context(request),
                self.state.snapshot(),
                request.user_id,
            )
            self.plan = plan
            tasks = await self.orchestrator.decompose_tasks(request.query, plan)
            self.state.active_tasks = list(tasks)

            # ── searching ──
            self._enter(ResearchPhase.SEARCHING)
            findings = await self.execute_tasks(tasks)
            self.state.findings.extend(findings)
            note = f"Found {len(findings)} initial findings"
            if findings:
                note = f"{note}\n{self.memory.summarize_artifacts(findings)}"
            self.memory.append_short_term(self.session_id, note)

            # ── analyzing ──
            self._enter(ResearchPhase.ANALYZING)
            analyses = await self.analyze_findings(findings)
            self.state.findings.extend(analyses)
            if self.config.evaluate_completeness:
                await self._evaluate_completeness(request.query, plan)

            # ── synthesizing (fact-check) ──
            self._enter(ResearchPhase.SYNTHESIZING)
            verified = await self.verify_findings(self.state.findings)

            # ── finalizing ──
            self._enter(ResearchPhase.FINALIZING)
            report = await self.orchestrator.synthesize_findings(
                request.query, verified, self.state.citations
            )
            self.memory.append_long_term(self.session_id, verified)

            self._enter(ResearchPhase.DONE)
        except Exception as exc:
            if isinstance(exc, ResearchError) and exc.phase is None:
                exc.phase = self.state.current_phase
            phase = self.state.current_phase.value if self.state.current_phase else None
            self._emit("run_failed", error=str(exc), payload={"phase": phase})
            self.log.error("research_failed", phase=phase, error=str(exc))
            raise

        execution_ms = round((time.perf_counter() - start) * 1000, 2)
        result = ResearchResult(
            session_id=self.session_id,
            query=request.query,
            report=report,
            findings=verified,
            citations=list(self.state.citations),
            plan=plan,
            tasks=list(self.tasks),
            execution_time_ms=execution_ms,
            phase=ResearchPhase.DONE,
        )
        self._emit(
            "egress",
            duration_ms=execution_ms,
            payload={
                "findings": result.findings_count,
                "citations": result.citations_count,
                "recovered_errors": len(self.recovered),
            },
        )
        self.log.info(
            "research_complete",
            findings=result.findings_count,
            citations=result.citations_count,
            recovered_errors=len(self.recovered),
            duration_ms=execution_ms,
        )
        return result

    # ── Phases ───────────────────────────────────────────────────────────

    async def execute_tasks(self, tasks: Sequence[ResearchTask]) -> list[ResearchArtifact]:
        """Searcher tasks in sequential batches; tasks within a batch run concurrently."""
        findings: list[ResearchArtifact] = []
        for index, batch in enumerate(batched(tasks, self.batch_size), 1):
            self._emit(
                "batch_dispatch",
                target=AgentRole.SEARCHER.value,
                payload={"batch": index, "size": len(batch), "task_ids": [t.id for t in batch]},
            )
            results = await asyncio.gather(
                *(self.workers.for_role(task.role).execute(task) for task in batch),
                return_exceptions=True,
            )
            for task, outcome in zip(batch, results):
                findings.extend(self._collect(task, outcome))
        self.state.active_tasks = []
        return findings

    async def analyze_findings(
        self, findings: Sequence[ResearchArtifact]
    ) -> list[ResearchArtifact]:
        """One extractor task per finding, sequentially. Failures produce nothing."""
        analyses: list[ResearchArtifact] = []
        for finding in list(findings)[: self.config.analysis_limit]:
            task = ResearchTask(
                role=AgentRole.EXTRACTOR,
                description=f"Analyze and extract key insights from: {finding.preview}",
                context={"finding": self._artifact_context(finding)},
            )
            done = await self._run_worker(self.workers.for_role(task.role), task)
            if done.status is TaskStatus.COMPLETED and done.result:
                analyses.append(
                    finding.promote(
                        ArtifactKind.ANALYSIS,
                        task_id=done.id,
                        content=_content_of(done.result),
                    )
                )
            else:
                self._recover(AnalysisFailed(
                    done.error or "extractor returned no result",
                    phase=ResearchPhase.ANALYZING,
                ), artifact_id=finding.id)
        return analyses

    async def verify_findings(
        self, artifacts: Sequence[ResearchArtifact]
    ) -> list[ResearchArtifact]:
        """Fact-check the first few artifacts, sequentially.

        A success adds a new ``verified`` artifact; a failure keeps the
        original. When nothing was verified the full input list comes back.
        """
        output: list[ResearchArtifact] = []
        verified_count = 0
        for artifact in list(artifacts)[: self.config.verification_limit]:
            task = ResearchTask(
                role=AgentRole.FACT_CHECKER,
                description=f"Verify the accuracy of: {artifact.preview}",
                context={"finding": self._artifact_context(artifact)},
            )
            done = await self._run_worker(self.workers.for_role(task.role), task)
            if done.status is TaskStatus.COMPLETED and done.result:
                output.append(
                    artifact.promote(
                        ArtifactKind.VERIFIED,
                        task_id=done.id,
                        metadata={"verification": done.result},
                    )
                )
                verified_count += 1
            else:
                self._recover(VerificationFailed(
                    done.error or "fact-checker returned no result",
                    phase=ResearchPhase.SYNTHESIZING,
                ), artifact_id=artifact.id)
                output.append(artifact)

        if verified_count == 0:
            self.log.warning("verification_fallback_unverified", artifacts=len(artifacts))
            return list(artifacts)
        return output

    # ── Internals ────────────────────────────────────────────────────────

    def _enter(self, phase: ResearchPhase) -> None:
        self.state.advance(phase)
        self.memory.append_short_term(
            self.session_id, f"Phase: {phase.value} ({self.state.progress_percentage}%)"
        )
        self._emit("phase", payload={"phase": phase.value, "progress": self.state.progress_percentage})
        self.log.info("phase_entered", phase=phase.value, progress=self.state.progress_percentage)

    async def _check_prior_findings(self) -> None:
        if self.store is None:
            return
        prior = await self.store.get_artifacts(self.session_id)
        stale = verify_freshness(prior, self.config.freshness_threshold_hours, now_utc())
        if stale:
            self.state.stale_artifacts = [a.id for a in stale]
            self._emit("stale_findings", payload={"count": len(stale), "artifact_ids": self.state.stale_artifacts})
            self.log.warning(
                "stale_findings",
                count=len(stale),
                prior=len(prior),
                threshold_hours=self.config.freshness_threshold_hours,
            )

    def _planning_context(self, request: ResearchRequest) -> dict[str, Any]:
        context = dict(request.context)
        memory = self.memory.get(self.session_id)
        if memory.long_term:
            context["memory"] = self.memory.context_for(self.session_id, request.query)
        return context

    async def _evaluate_completeness(self, query: str, plan: ResearchPlan) -> None:
        try:
            report = await self.orchestrator.evaluate_completeness(
                query, self.state.findings, plan
            )
        except CompletenessCheckFailed as exc:
            exc.phase = ResearchPhase.ANALYZING
            self._recover(exc)
            return
        self.state.gaps = list(report.gaps)

    async def _run_worker(self, worker: BaseWorker, task: ResearchTask) -> ResearchTask:
        """Execute and record the task. Errors escaping the worker become a failed task."""
        try:
            done = await worker.execute(task)
        except Exception as exc:
            done = task.model_copy(deep=True)
            done.fail(f"{type(exc).__name__}: {exc}")
        self.tasks.append(done)
        self.state.completed_tasks.append(done)
        return done

    def _collect(self, task: ResearchTask, outcome: ResearchTask | BaseException) -> list[ResearchArtifact]:
        """Turn one searcher outcome into a finding and its citation."""
        if isinstance(outcome, BaseException):
            done = task.model_copy(deep=True)
            done.fail(f"{type(outcome).__name__}: {outcome}")
        else:
            done = outcome
        self.tasks.append(done)
        self.state.completed_tasks.append(done)

        if done.status is not TaskStatus.COMPLETED or not done.result:
            self._recover(TaskExecutionFailed(
                done.error or "searcher returned no result",
                task_id=done.id,
                phase=ResearchPhase.SEARCHING,
            ))
            return []

        artifact = ResearchArtifact(
            task_id=done.id,
            session_id=self.session_id,
            kind=ArtifactKind.FINDING,
            content=_content_of(done.result),
            metadata={
                "task_description": done.description,
                "executed_at": now_utc().isoformat(),
            },
        )
        self.state.citations.append(_citation_for(done, artifact))
        return [artifact]

    def _recover(self, error: ResearchError, **fields: Any) -> None:
        self.recovered.append(error)
        self.log.warning(
            "phase_step_failed",
            error_type=type(error).__name__,
            phase=error.phase.value if error.phase else None,
            error=error.message,
            **fields,
        )

    @staticmethod
    def _artifact_context(artifact: ResearchArtifact) -> dict[str, Any]:
        return {"id": artifact.id, "kind": artifact.kind.value, "content": artifact.content}

    def _emit(
        self,
        event_type: str,
        *,
        target: str = "",
        error: str = "",
        duration_ms: float = 0.0,
        payload: dict[str, Any] | None = None,
    ) -> None:
        self.synapse.emit(SynapseEvent(
            correlation_id=self.correlation_id,
            event_type=event_type,
            source="coordinator",
            target=target,
            payload=payload or {},
            error=error,
            duration_ms=duration_ms,
        ))
