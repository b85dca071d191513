"""Unit-test conftest — MockLLM, StubToolbox, shared fixtures and builders.

All fixtures here are available to every test under tests/unit/ without import.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any

import pytest

from sleuth.agents.workers import WorkerPool
from sleuth.config import SleuthSettings
from sleuth.models.schemas import LLMReply, ToolCall, WorkerConfig
from sleuth.models.synapse import SynapseEventBus
from sleuth.research.memory import MemoryStore
from sleuth.research.models import AgentRole, ArtifactKind, ResearchArtifact, ResearchTask
from sleuth.tools.toolbox import Toolbox


# ─────────────────────────────────────────────────────────────────────────────
# MockLLM: drop-in replacement for LLMClient
# ─────────────────────────────────────────────────────────────────────────────

# Orchestrator prompts are told apart by the start of the task line.
_ORCHESTRATOR_ROUTES = (
    ("plan", "Task: Create a detailed research plan"),
    ("decompose", "Task: Decompose"),
    ("synthesize", "Task: Synthesize"),
    ("evaluate", "Task: Evaluate"),
)

DEFAULT_REPLIES: dict[str, Any] = {
    "plan": (
        "Objective: explain how the technology performs\n"
        "Goal: compare independent field studies\n"
        "Step 1: search recent sources\n"
        "Step 2: analyze the findings\n"
        "Step 3: verify the key claims"
    ),
    "decompose": (
        "1. Find field studies on efficiency\n"
        "2. Find manufacturer specifications\n"
        "3. Find installation cost data\n"
        "4. Find user satisfaction surveys\n"
        "5. Find government energy reports"
    ),
    "synthesize": "# Report\n\nThe evidence points in one direction.",
    "evaluate": "The research is complete.",
    "searcher": "Search result: efficiency drops below -15C but stays above resistive heating.",
    "extractor": "Entities: Heat pump (PRODUCT), -15C (TEMPERATURE)",
    "fact_checker": "Verified: consistent with two independent sources.",
}


def route_for(role: AgentRole, messages: list[dict[str, Any]]) -> str:
    if role is not AgentRole.ORCHESTRATOR:
        return role.value
    user_text = messages[-1]["content"]
    for route, marker in _ORCHESTRATOR_ROUTES:
        if user_text.startswith(marker):
            return route
    return role.value


class MockLLM:
    """Configurable fake LLMClient for unit tests.

    Args:
        replies:  route → reply. A route is the worker role value, or one of
                  plan / decompose / synthesize / evaluate for the orchestrator.
                  A reply is a string (text answer), an LLMReply, an exception
                  (raised), a callable taking the messages, or a list of those
                  consumed in order (the last one repeats).
        delay:    Seconds to sleep before every reply.
    """

    def __init__(self, replies: dict[str, Any] | None = None, *, delay: float = 0.0) -> None:
        self.replies = {**DEFAULT_REPLIES, **(replies or {})}
        self.delay = delay
        # Call log for assertions
        self.calls: list[dict[str, Any]] = []
        self.timeline: list[tuple[str, str]] = []
        self.active = 0
        self.max_active = 0

    def calls_for(self, route: str) -> list[dict[str, Any]]:
        return [c for c in self.calls if c["route"] == route]

    async def invoke(
        self,
        role: AgentRole,
        messages: list[dict[str, Any]],
        *,
        tools: list[dict[str, Any]] | None = None,
        config: WorkerConfig | None = None,
    ) -> LLMReply:
        route = route_for(role, messages)
        task_line = messages[-1]["content"].split("\n", 1)[0]
        self.calls.append(
            {"route": route, "role": role, "messages": messages, "tools": tools, "config": config}
        )
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        self.timeline.append(("start", task_line))
        try:
            if self.delay > 0:
                await asyncio.sleep(self.delay)
            return self._reply(route, messages)
        finally:
            self.active -= 1
            self.timeline.append(("end", task_line))

    def _reply(self, route: str, messages: list[dict[str, Any]]) -> LLMReply:
        reply = self.replies.get(route, "")
        if isinstance(reply, list):
            reply = reply.pop(0) if len(reply) > 1 else reply[0]
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            reply = reply(messages)
        if isinstance(reply, LLMReply):
            return reply
        return LLMReply(text=str(reply), model="mock-model")

    async def close(self) -> None:
        pass


def tool_reply(*calls: tuple[str, str]) -> LLMReply:
    """LLMReply that asks for the given (tool name, JSON arguments) calls."""
    return LLMReply(
        tool_calls=[
            ToolCall(id=f"call-{i}", name=name, arguments=arguments)
            for i, (name, arguments) in enumerate(calls, 1)
        ]
    )


# ─────────────────────────────────────────────────────────────────────────────
# StubToolbox: Toolbox with the network-backed tools replaced
# ─────────────────────────────────────────────────────────────────────────────

class StubToolbox(Toolbox):
    """Toolbox whose web_search and fetch_url return canned data.

    Args:
        search_results: Hits returned by web_search.
        raises:         If set, web_search and fetch_url raise this.
    """

    def __init__(
        self,
        *,
        search_results: list[dict[str, Any]] | None = None,
        raises: Exception | None = None,
    ) -> None:
        super().__init__(search_url="http://search.test")
        self.search_results = search_results if search_results is not None else [
            {
                "title": "Cold climate heat pump field study",
                "url": "https://example.org/study",
                "snippet": "Field data from 2023.",
                "source": "example",
            }
        ]
        self.raises = raises
        self.searches: list[str] = []
        self.fetches: list[str] = []

    async def web_search(self, query: str, numResults: int = 5) -> dict[str, Any]:
        self.searches.append(query)
        if self.raises:
            raise self.raises
        results = self.search_results[:numResults]
        return {"query": query, "results": results, "totalResults": len(results)}

    async def fetch_url(self, url: str) -> dict[str, Any]:
        self.fetches.append(url)
        if self.raises:
            raise self.raises
        return {"url": url, "title": "Fetched page", "content": "Page text.", "metadata": {}}


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

def make_settings(**overrides: Any) -> SleuthSettings:
    """Settings isolated from the developer's .env and environment."""
    values: dict[str, Any] = {"persist_traces": False, "llm_model": "mock-model"}
    values.update(overrides)
    return SleuthSettings(_env_file=None, **values)


def make_artifact(
    content: str = "Heat pumps keep working at -15C.",
    *,
    kind: ArtifactKind = ArtifactKind.FINDING,
    session_id: str = "session-1",
    retrieved_at: datetime | None = None,
    **metadata: Any,
) -> ResearchArtifact:
    return ResearchArtifact(
        task_id="task-1",
        session_id=session_id,
        kind=kind,
        content=content,
        metadata=metadata,
        retrieved_at=retrieved_at or datetime.now(timezone.utc),
    )


def make_task(description: str = "Find field studies", role: AgentRole = AgentRole.SEARCHER) -> ResearchTask:
    return ResearchTask(role=role, description=description)


# ─────────────────────────────────────────────────────────────────────────────
# Fixtures
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def synapse():
    """A fresh in-memory SynapseEventBus for each test."""
    return SynapseEventBus(persist=False)


@pytest.fixture
def test_settings():
    return make_settings()


@pytest.fixture
def settings_factory():
    """make_settings(**overrides) for tests that tune limits."""
    return make_settings


@pytest.fixture
def mock_llm():
    """A MockLLM with the default scripted replies."""
    return MockLLM()


@pytest.fixture
def llm_factory():
    """MockLLM(replies, delay=...) for tests that script their own replies."""
    return MockLLM


@pytest.fixture
def tool_reply_factory():
    return tool_reply


@pytest.fixture
def toolbox():
    return StubToolbox()


@pytest.fixture
def toolbox_factory():
    return StubToolbox


@pytest.fixture
def artifact_factory():
    return make_artifact


@pytest.fixture
def task_factory():
    return make_task


@pytest.fixture
def workers(mock_llm, toolbox, synapse, test_settings):
    return WorkerPool.build(mock_llm, toolbox, synapse, correlation_id="run-test", config=test_settings)


@pytest.fixture
def build_workers(synapse, test_settings):
    """WorkerPool builder taking a scripted LLM and optional toolbox."""

    def _build(llm, toolbox=None, config=None) -> WorkerPool:
        return WorkerPool.build(
            llm,
            toolbox or StubToolbox(),
            synapse,
            correlation_id="run-test",
            config=config or test_settings,
        )

    return _build


@pytest.fixture
def memory():
    return MemoryStore(short_term_budget=4000, long_term_budget=16000)
