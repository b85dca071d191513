"""start_research — the single entry point presentation layers call.

Builds everything a run needs (LLM client, toolbox, worker pool, memory,
coordinator), runs it, persists plan/tasks/artifacts/citations/memory
and returns a ResearchSummary.

    summary = await start_research("s-1", "How do heat pumps perform in cold climates?")
"""

from __future__ import annotations

from typing import Any

import structlog

from sleuth.agents.workers import WorkerPool
from sleuth.config import SleuthSettings, settings as default_settings
from sleuth.models.synapse import SynapseEventBus
from sleuth.research.coordinator import ResearchCoordinator
from sleuth.research.memory import MemoryStore
from sleuth.research.models import ArtifactKind, ResearchRequest, ResearchResult, ResearchSummary
from sleuth.research.store import ResearchStore, build_store
from sleuth.tools.llm_client import LLMClient, LLMInvoker
from sleuth.tools.toolbox import Toolbox
from sleuth.utils import short_id

logger = structlog.get_logger().bind(component="research.service")


async def run_research(
    request: ResearchRequest,
    *,
    store: ResearchStore | None = None,
    llm: LLMInvoker | None = None,
    toolbox: Toolbox | None = None,
    synapse: SynapseEventBus | None = None,
    config: SleuthSettings | None = None,
    run_id: str | None = None,
) -> ResearchResult:
    """Run one research request end to end and return the full result."""
    cfg = config or default_settings
    owned_store = build_store(cfg) if store is None else None
    store = store if store is not None else owned_store
    synapse = synapse or SynapseEventBus(persist=cfg.persist_traces)
    run_id = run_id or short_id()

    # Collaborators created here are closed here; injected ones belong to the caller.
    owned_llm = LLMClient() if llm is None else None
    owned_toolbox = Toolbox() if toolbox is None else None

    try:
        workers = WorkerPool.build(
            llm or owned_llm,
            toolbox or owned_toolbox,
            synapse,
            correlation_id=run_id,
            config=cfg,
        )

        memory = MemoryStore(cfg.short_term_budget, cfg.long_term_budget)
        previous = await store.get_memory(request.session_id)
        if previous is not None:
            memory.load(previous)

        coordinator = ResearchCoordinator(
            request.session_id,
            workers,
            memory=memory,
            store=store,
            synapse=synapse,
            correlation_id=run_id,
            config=cfg,
        )
        result = await coordinator.execute_research(request)

        if result.plan is not None:
            await store.save_plan(result.plan)
        await store.save_tasks(request.session_id, result.tasks)
        verified = [a for a in result.findings if a.kind is ArtifactKind.VERIFIED]
        await store.save_artifacts(request.session_id, [*coordinator.state.findings, *verified])
        await store.save_citations(request.session_id, result.citations)
        await store.save_memory(memory.get(request.session_id))
        logger.info("research_persisted", session_id=request.session_id, run_id=run_id)
        return result
    finally:
        if owned_llm is not None:
            await owned_llm.close()
        if owned_toolbox is not None:
            await owned_toolbox.close()
        if owned_store is not None:
            await owned_store.close()


async def start_research(
    session_id: str,
    query: str,
    context: dict[str, Any] | None = None,
    *,
    user_id: str | None = None,
    store: ResearchStore | None = None,
    llm: LLMInvoker | None = None,
    toolbox: Toolbox | None = None,
    synapse: SynapseEventBus | None = None,
    config: SleuthSettings | None = None,
) -> ResearchSummary:
    """Validate the request, run it, and return the summary.

    Raises:
        pydantic.ValidationError: query shorter than 10 characters.
        PlanningFailed / SynthesisFailed: the run aborted.
    """
    fields: dict[str, Any] = {"session_id": session_id, "query": query, "context": context or {}}
    if user_id is not None:
        fields["user_id"] = user_id
    request = ResearchRequest(**fields)

    result = await run_research(
        request, store=store, llm=llm, toolbox=toolbox, synapse=synapse, config=config
    )
    return ResearchSummary.from_result(result)
