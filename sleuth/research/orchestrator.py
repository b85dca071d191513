"""Orchestrator — planning, decomposition, freshness, synthesis, completeness.

The Orchestrator holds no run state. It reads a frozen StateSnapshot from
the coordinator and hands values back; the coordinator decides what to do
with them.

Every model-backed operation is one orchestrator-role task executed through
the worker contract:

    plan_research          → ResearchPlan           (PlanningFailed)
    decompose_tasks        → list[ResearchTask]      (PlanningFailed)
    synthesize_findings    → report text             (SynthesisFailed)
    evaluate_completeness  → CompletenessReport      (CompletenessCheckFailed)

verify_freshness is pure and needs no model.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from datetime import datetime
from typing import Any

import structlog

from sleuth.agents.base import BaseWorker
from sleuth.config import settings
from sleuth.errors import CompletenessCheckFailed, PlanningFailed, ResearchError, SynthesisFailed
from sleuth.research.models import (
    AgentRole,
    Citation,
    ResearchArtifact,
    ResearchPlan,
    ResearchTask,
    StateSnapshot,
    TaskStatus,
)
from sleuth.research.parsing import CompletenessReport, parse_evaluation, parse_plan, parse_tasks
from sleuth.research.report import format_plain_report
from sleuth.utils.clock import hours_between, now_utc

logger = structlog.get_logger().bind(component="research.orchestrator")


def verify_freshness(
    artifacts: Sequence[ResearchArtifact],
    threshold_hours: float = 24.0,
    now: datetime | None = None,
) -> list[ResearchArtifact]:
    """Artifacts whose age is strictly greater than *threshold_hours*.

    Flags only: nothing is mutated or discarded.
    """
    now = now or now_utc()
    return [a for a in artifacts if hours_between(a.retrieved_at, now) > threshold_hours]


def _as_text(result: Any) -> str:
    """Flatten a worker result to text.

    Tool-call results become one line per outcome; a spawn_worker_agent hint
    becomes a bullet so decomposition can read it like a list item.
    """
    if result is None:
        return ""
    if isinstance(result, str):
        return result
    if isinstance(result, list):
        lines = []
        for outcome in result:
            payload = outcome.get("result") if isinstance(outcome, dict) else None
            if isinstance(payload, dict) and payload.get("task"):
                lines.append(f"- {payload['task']}")
            else:
                lines.append(json.dumps(outcome, default=str))
        return "\n".join(lines)
    return json.dumps(result, default=str)


class Orchestrator:
    """Model-facing planning and synthesis operations.

    Args:
        worker:     An orchestrator-role worker.
        max_tasks:  Cap on decomposed sub-tasks.
    """

    def __init__(self, worker: BaseWorker, max_tasks: int | None = None) -> None:
        self.worker = worker
        self.max_tasks = settings.max_decomposed_tasks if max_tasks is None else max_tasks

    verify_freshness = staticmethod(verify_freshness)

    async def plan_research(
        self,
        query: str,
        context: dict[str, Any],
        snapshot: StateSnapshot,
        user_id: str,
    ) -> ResearchPlan:
        task = self._task(
            f"Create a detailed research plan for: {query}",
            {
                **context,
                "query": query,
                "prior_findings": len(snapshot.findings),
            },
        )
        done = await self._run(task, PlanningFailed, "plan_failed")
        text = _as_text(done.result)
        outline = parse_plan(text)

        plan = ResearchPlan(
            id=snapshot.plan_id,
            session_id=snapshot.session_id,
            user_id=user_id,
            query=query,
            objectives=outline.objectives,
            strategy=text,
            estimated_steps=outline.estimated_steps,
            ambiguous=outline.ambiguous,
        )
        logger.info(
            "plan_created",
            plan_id=plan.id,
            objectives=len(plan.objectives),
            estimated_steps=plan.estimated_steps,
            ambiguous=plan.ambiguous,
        )
        return plan

    async def decompose_tasks(self, query: str, plan: ResearchPlan) -> list[ResearchTask]:
        """Searcher tasks parsed from the model's list. Zero tasks is a valid outcome."""
        parent = self._task(
            f"Decompose this research query into specific sub-tasks: {query}",
            {
                "query": query,
                "plan": plan.strategy,
                "objectives": list(plan.objectives),
            },
        )
        done = await self._run(parent, PlanningFailed, "decompose_failed")
        lines = parse_tasks(_as_text(done.result), self.max_tasks)

        tasks = [
            ResearchTask(
                parent_task_id=parent.id,
                role=AgentRole.SEARCHER,
                description=description,
                context={"query": query, "plan_id": plan.id},
            )
            for description in lines.descriptions
        ]
        if lines.ambiguous:
            logger.warning("decompose_unparsable", plan_id=plan.id)
        logger.info("tasks_decomposed", plan_id=plan.id, count=len(tasks))
        return tasks

    async def synthesize_findings(
        self,
        query: str,
        artifacts: Sequence[ResearchArtifact],
        citations: Sequence[Citation],
    ) -> str:
        """Final report text. Never empty: a blank reply becomes a plain markdown report."""
        task = self._task(
            "Synthesize all research findings into a comprehensive report",
            {
                "query": query,
                "artifacts": [
                    {"id": a.id, "kind": a.kind.value, "content": a.content} for a in artifacts
                ],
                "citation_count": len(citations),
                "sources": [c.url or c.source for c in citations],
            },
        )
        done = await self._run(task, SynthesisFailed, "synthesis_failed")
        report = done.result.strip() if isinstance(done.result, str) else ""
        if not report:
            logger.warning("synthesis_blank_using_plain_report", artifacts=len(artifacts))
            report = format_plain_report(query, artifacts, citations)
        return report

    async def evaluate_completeness(
        self,
        query: str,
        findings: Sequence[ResearchArtifact],
        plan: ResearchPlan,
    ) -> CompletenessReport:
        """Approximate: a keyword verdict, see parse_evaluation."""
        task = self._task(
            f"Evaluate if we have sufficient information to answer: {query}",
            {
                "query": query,
                "plan": plan.strategy,
                "objectives": list(plan.objectives),
                "findings_count": len(findings),
            },
        )
        done = await self._run(task, CompletenessCheckFailed, "completeness_check_failed")
        report = parse_evaluation(_as_text(done.result))
        logger.info(
            "completeness_evaluated",
            is_complete=report.is_complete,
            gaps=len(report.gaps),
            ambiguous=report.ambiguous,
        )
        return report

    # ── Internals ────────────────────────────────────────────────────────

    @staticmethod
    def _task(description: str, context: dict[str, Any]) -> ResearchTask:
        return ResearchTask(role=AgentRole.ORCHESTRATOR, description=description, context=context)

    async def _run(
        self,
        task: ResearchTask,
        error_cls: type[ResearchError],
        event: str,
    ) -> ResearchTask:
        done = await self.worker.execute(task)
        if done.status is not TaskStatus.COMPLETED:
            logger.error(event, task_id=task.id, error=done.error)
            raise error_cls(done.error or f"{event}: orchestrator task did not complete")
        return done
