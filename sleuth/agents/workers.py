"""Specialized workers — one class per role, plus the per-run WorkerPool.

    OrchestratorWorker  planning / decomposition / synthesis prompts
    SearchWorker        web_search, fetch_url
    ExtractionWorker    extract_entities, extract_table
    FactCheckWorker     verify_claim, check_bias

A WorkerPool is built for each research run so model settings never leak
between sessions.
"""

from __future__ import annotations

from dataclasses import dataclass

from sleuth.agents.base import BaseWorker
from sleuth.config import SleuthSettings, settings as default_settings
from sleuth.models.schemas import ToolKind, WorkerConfig
from sleuth.models.synapse import SynapseEventBus
from sleuth.research.models import AgentRole
from sleuth.tools.llm_client import LLMInvoker
from sleuth.tools.toolbox import Toolbox

_ORCHESTRATOR_SYSTEM = """\
You are an expert research orchestrator. Your role is to:
1. Call 'get_current_datetime' first if the query depends on the current date.
2. Analyze complex research queries.
3. Break them down into manageable sub-tasks.
4. Coordinate specialized agents to gather and synthesize information.
5. Ensure all findings are properly cited and verified.
6. Synthesize findings into comprehensive reports.

When planning research, consider:
- What information is needed to answer the query completely
- Which specialized agents are best suited for each task
- How to parallelize work for efficiency
- How to verify information through multiple sources
- How to synthesize findings into coherent insights

When asked for sub-tasks, answer with a numbered list, one task per line."""

_SEARCHER_SYSTEM = """\
You are an expert research searcher. Your role is to:
1. Formulate effective search queries
2. Identify the most relevant sources
3. Extract key information from search results
4. Identify gaps and formulate follow-up searches
5. Provide citations for all information found

When searching, prioritize:
- Academic and peer-reviewed sources
- Official and authoritative sources
- Recent and up-to-date information
- Diverse perspectives on the topic"""

_EXTRACTOR_SYSTEM = """\
You are an expert data extraction specialist. Your role is to:
1. Extract structured information from unstructured text
2. Identify key entities, relationships, and patterns
3. Convert text into structured formats (JSON, tables, etc.)
4. Handle ambiguity and missing information gracefully
5. Maintain data accuracy and consistency

Focus on accuracy over completeness, clear labels for extracted entities,
and confidence levels for uncertain extractions."""

_FACT_CHECKER_SYSTEM = """\
You are an expert fact-checker. Your role is to:
1. Evaluate claims for accuracy and verifiability
2. Identify potential misinformation or bias
3. Cross-reference information with multiple sources
4. Provide confidence scores for claims
5. Suggest corrections or clarifications

Consider source credibility and bias, temporal relevance, context and nuance,
and the distinction between facts, opinions, and interpretations."""


class OrchestratorWorker(BaseWorker):
    role = AgentRole.ORCHESTRATOR
    tools = (ToolKind.SPAWN_WORKER_AGENT, ToolKind.REQUEST_SYNTHESIS)

    @classmethod
    def default_config(cls) -> WorkerConfig:
        return WorkerConfig(
            role=cls.role,
            model=default_settings.llm_model,
            max_tokens=16384,
            temperature=0.5,
            system_prompt=_ORCHESTRATOR_SYSTEM,
        )


class SearchWorker(BaseWorker):
    role = AgentRole.SEARCHER
    tools = (ToolKind.WEB_SEARCH, ToolKind.FETCH_URL)

    @classmethod
    def default_config(cls) -> WorkerConfig:
        return WorkerConfig(
            role=cls.role,
            model=default_settings.llm_model,
            temperature=0.3,
            system_prompt=_SEARCHER_SYSTEM,
        )


class ExtractionWorker(BaseWorker):
    role = AgentRole.EXTRACTOR
    tools = (ToolKind.EXTRACT_ENTITIES, ToolKind.EXTRACT_TABLE)

    @classmethod
    def default_config(cls) -> WorkerConfig:
        return WorkerConfig(
            role=cls.role,
            model=default_settings.llm_model,
            temperature=0.2,
            system_prompt=_EXTRACTOR_SYSTEM,
        )


class FactCheckWorker(BaseWorker):
    role = AgentRole.FACT_CHECKER
    tools = (ToolKind.VERIFY_CLAIM, ToolKind.CHECK_BIAS)

    @classmethod
    def default_config(cls) -> WorkerConfig:
        return WorkerConfig(
            role=cls.role,
            model=default_settings.llm_model,
            temperature=0.2,
            system_prompt=_FACT_CHECKER_SYSTEM,
        )


@dataclass
class WorkerPool:
    """One worker per role, owned by a single research run."""

    orchestrator: BaseWorker
    searcher: BaseWorker
    extractor: BaseWorker
    fact_checker: BaseWorker

    @classmethod
    def build(
        cls,
        llm: LLMInvoker,
        toolbox: Toolbox,
        synapse: SynapseEventBus,
        *,
        correlation_id: str = "",
        config: SleuthSettings | None = None,
    ) -> "WorkerPool":
        """Fresh worker instances for one run, all pointing at *config*.llm_model."""
        cfg = config or default_settings

        def make(worker_cls: type[BaseWorker]) -> BaseWorker:
            worker_config = worker_cls.default_config().model_copy(update={"model": cfg.llm_model})
            return worker_cls(
                llm, toolbox, synapse, config=worker_config, correlation_id=correlation_id
            )

        return cls(
            orchestrator=make(OrchestratorWorker),
            searcher=make(SearchWorker),
            extractor=make(ExtractionWorker),
            fact_checker=make(FactCheckWorker),
        )

    def for_role(self, role: AgentRole) -> BaseWorker:
        return {
            AgentRole.ORCHESTRATOR: self.orchestrator,
            AgentRole.SYNTHESIZER: self.orchestrator,
            AgentRole.SEARCHER: self.searcher,
            AgentRole.EXTRACTOR: self.extractor,
            AgentRole.FACT_CHECKER: self.fact_checker,
        }[role]
