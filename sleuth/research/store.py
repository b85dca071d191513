"""ResearchStore — persistence boundary for plans, tasks, artifacts, citations, memory.

Backends:
    InMemoryResearchStore  — dicts, process lifetime (default, tests)
    RedisResearchStore     — JSON lists/strings per session with a TTL

The coordinator reads only once per run (prior artifacts at planning start).
Everything else is written by start_research after the run finishes.

Dependency injection:
    Pass ``_redis`` to RedisResearchStore to inject a pre-built client in
    tests. In production leave it None — the store connects lazily.
"""

from __future__ import annotations

from typing import Protocol

import redis.asyncio as aioredis
import structlog

from sleuth.config import SleuthSettings, settings as default_settings
from sleuth.research.models import (
    Citation,
    ResearchArtifact,
    ResearchMemory,
    ResearchPlan,
    ResearchTask,
)

logger = structlog.get_logger().bind(component="research.store")


class ResearchStore(Protocol):
    async def get_artifacts(self, session_id: str) -> list[ResearchArtifact]: ...

    async def save_plan(self, plan: ResearchPlan) -> None: ...

    async def save_tasks(self, session_id: str, tasks: list[ResearchTask]) -> None: ...

    async def save_artifacts(self, session_id: str, artifacts: list[ResearchArtifact]) -> None: ...

    async def save_citations(self, session_id: str, citations: list[Citation]) -> None: ...

    async def save_memory(self, memory: ResearchMemory) -> None: ...

    async def get_memory(self, session_id: str) -> ResearchMemory | None: ...

    async def close(self) -> None: ...


class InMemoryResearchStore:
    """Dict-backed store. Artifacts and citations accumulate per session."""

    def __init__(self) -> None:
        self.plans: dict[str, list[ResearchPlan]] = {}
        self.tasks: dict[str, list[ResearchTask]] = {}
        self.artifacts: dict[str, list[ResearchArtifact]] = {}
        self.citations: dict[str, list[Citation]] = {}
        self.memories: dict[str, ResearchMemory] = {}

    async def get_artifacts(self, session_id: str) -> list[ResearchArtifact]:
        return [a.model_copy() for a in self.artifacts.get(session_id, [])]

    async def save_plan(self, plan: ResearchPlan) -> None:
        self.plans.setdefault(plan.session_id, []).append(plan)

    async def save_tasks(self, session_id: str, tasks: list[ResearchTask]) -> None:
        self.tasks.setdefault(session_id, []).extend(t.model_copy() for t in tasks)

    async def save_artifacts(self, session_id: str, artifacts: list[ResearchArtifact]) -> None:
        self.artifacts.setdefault(session_id, []).extend(a.model_copy() for a in artifacts)

    async def save_citations(self, session_id: str, citations: list[Citation]) -> None:
        self.citations.setdefault(session_id, []).extend(c.model_copy() for c in citations)

    async def save_memory(self, memory: ResearchMemory) -> None:
        self.memories[memory.session_id] = memory.model_copy()

    async def get_memory(self, session_id: str) -> ResearchMemory | None:
        memory = self.memories.get(session_id)
        return memory.model_copy() if memory is not None else None

    async def close(self) -> None:
        pass


class RedisResearchStore:
    """Redis-backed store.

    Keys (all expire after ``ttl_seconds``):
        sleuth:session:<sid>:plans      LIST of ResearchPlan JSON
        sleuth:session:<sid>:tasks      LIST of ResearchTask JSON
        sleuth:session:<sid>:artifacts  LIST of ResearchArtifact JSON
        sleuth:session:<sid>:citations  LIST of Citation JSON
        sleuth:session:<sid>:memory     STRING ResearchMemory JSON

    Args:
        redis_url:   Redis connection string (defaults to settings).
        ttl_seconds: Expiry applied on every write.
        _redis:      Pre-built ``redis.asyncio.Redis`` (inject for tests).
    """

    def __init__(
        self,
        redis_url: str | None = None,
        ttl_seconds: int | None = None,
        *,
        _redis=None,
    ) -> None:
        self._redis_url = redis_url or default_settings.redis_url
        self._ttl = ttl_seconds or default_settings.store_ttl_seconds
        self._redis_client = _redis

    async def _redis(self):
        """Return a redis.asyncio.Redis client (cached)."""
        if self._redis_client is None:
            self._redis_client = aioredis.from_url(self._redis_url, decode_responses=True)
        return self._redis_client

    async def close(self) -> None:
        if self._redis_client is not None:
            await self._redis_client.aclose()
            self._redis_client = None

    @staticmethod
    def _key(session_id: str, kind: str) -> str:
        return f"sleuth:session:{session_id}:{kind}"

    async def _push(self, session_id: str, kind: str, payloads: list[str]) -> None:
        if not payloads:
            return
        r = await self._redis()
        key = self._key(session_id, kind)
        await r.rpush(key, *payloads)
        await r.expire(key, self._ttl)
        logger.debug("research_store_saved", session_id=session_id, kind=kind, count=len(payloads))

    async def get_artifacts(self, session_id: str) -> list[ResearchArtifact]:
        r = await self._redis()
        raw = await r.lrange(self._key(session_id, "artifacts"), 0, -1)
        return [ResearchArtifact.model_validate_json(item) for item in raw]

    async def save_plan(self, plan: ResearchPlan) -> None:
        await self._push(plan.session_id, "plans", [plan.model_dump_json()])

    async def save_tasks(self, session_id: str, tasks: list[ResearchTask]) -> None:
        await self._push(session_id, "tasks", [t.model_dump_json() for t in tasks])

    async def save_artifacts(self, session_id: str, artifacts: list[ResearchArtifact]) -> None:
        await self._push(session_id, "artifacts", [a.model_dump_json() for a in artifacts])

    async def save_citations(self, session_id: str, citations: list[Citation]) -> None:
        await self._push(session_id, "citations", [c.model_dump_json() for c in citations])

    async def save_memory(self, memory: ResearchMemory) -> None:
        r = await self._redis()
        await r.set(self._key(memory.session_id, "memory"), memory.model_dump_json(), ex=self._ttl)

    async def get_memory(self, session_id: str) -> ResearchMemory | None:
        r = await self._redis()
        raw = await r.get(self._key(session_id, "memory"))
        if raw is None:
            return None
        return ResearchMemory.model_validate_json(raw)


def build_store(config: SleuthSettings | None = None) -> ResearchStore:
    """Store selected by ``store_backend`` ("memory" or "redis")."""
    cfg = config or default_settings
    backend = cfg.store_backend.lower()
    if backend == "redis":
        return RedisResearchStore(cfg.redis_url, cfg.store_ttl_seconds)
    if backend == "memory":
        return InMemoryResearchStore()
    raise ValueError(f"Unknown store backend: {cfg.store_backend!r} (expected memory|redis)")
