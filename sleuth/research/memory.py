"""MemoryStore — bounded short-term and long-term text memory per session.

Short-term memory holds notes about the current run (one per phase).
Long-term memory holds summaries of verified artifacts.

Both buffers are bounded by a token-equivalent budget. Size is estimated as
ceil(chars / 4), a cheap proxy rather than a tokenizer. When a buffer goes
over budget it is compressed by keeping the longest prefix of whole lines
that fits and appending a truncation marker.

The trigger measures the whole buffer, newlines included, while compression
sums per-line estimates without them. A buffer of many short lines can
therefore be a little over budget and still come back unchanged: the bound
holds on the sum of its lines, not on the joined text.

The prefix is kept and the tail dropped, so the newest text is what goes
first when the buffer is full.
"""

from __future__ import annotations

import math

import structlog

from sleuth.config import settings
from sleuth.errors import MemoryAlreadyInitialized, MemoryNotInitialized
from sleuth.research.models import ResearchArtifact, ResearchMemory
from sleuth.utils.clock import now_utc

logger = structlog.get_logger().bind(component="research.memory")

COMPRESSION_MARKER = "[... memory compressed ...]"

# Per-artifact characters kept in long-term memory / short-term summaries.
_LONG_TERM_SNIPPET = 200
_SUMMARY_SNIPPET = 150


def estimate_tokens(text: str) -> int:
    """Rough estimate: 1 token ≈ 4 characters."""
    return math.ceil(len(text) / 4)


def compress_text(text: str, budget: int) -> str:
    """Keep whole lines from the front while their estimated size stays within *budget*.

    The first line that would go over budget and everything after it are
    dropped. The marker is appended only when something was dropped.
    """
    lines = text.split("\n")
    kept: list[str] = []
    used = 0
    for line in lines:
        cost = estimate_tokens(line)
        if used + cost > budget:
            break
        kept.append(line)
        used += cost

    if len(kept) == len(lines):
        return text

    kept.append(COMPRESSION_MARKER)
    return "\n".join(kept)


def _join(buffer: str, text: str) -> str:
    return f"{buffer}\n{text}" if buffer else text


class MemoryStore:
    """In-process memory records keyed by session id.

    One record per session. A record must be initialized before use and
    cleared before it can be initialized again.
    """

    def __init__(
        self,
        short_term_budget: int | None = None,
        long_term_budget: int | None = None,
    ) -> None:
        self.short_term_budget = short_term_budget or settings.short_term_budget
        self.long_term_budget = long_term_budget or settings.long_term_budget
        self._memories: dict[str, ResearchMemory] = {}

    def initialize(self, session_id: str) -> ResearchMemory:
        if session_id in self._memories:
            raise MemoryAlreadyInitialized(
                f"memory for session {session_id!r} already exists; clear() it first"
            )
        memory = ResearchMemory(session_id=session_id)
        self._memories[session_id] = memory
        logger.debug("memory_initialized", session_id=session_id)
        return memory.model_copy()

    def load(self, memory: ResearchMemory) -> None:
        """Install a previously persisted record, replacing any in-process one."""
        self._memories[memory.session_id] = memory.model_copy()

    def has(self, session_id: str) -> bool:
        return session_id in self._memories

    def get(self, session_id: str) -> ResearchMemory:
        """Return a copy of the session's memory record."""
        return self._require(session_id).model_copy()

    def append_short_term(self, session_id: str, text: str) -> None:
        memory = self._require(session_id)
        memory.short_term = self._bounded(
            _join(memory.short_term, text), self.short_term_budget, session_id, "short_term"
        )
        memory.last_updated = now_utc()

    def append_long_term(self, session_id: str, artifacts: list[ResearchArtifact]) -> None:
        memory = self._require(session_id)
        if artifacts:
            summary = "\n".join(self._render(a, _LONG_TERM_SNIPPET, "") for a in artifacts)
            memory.long_term = self._bounded(
                _join(memory.long_term, summary), self.long_term_budget, session_id, "long_term"
            )
        memory.last_updated = now_utc()

    def context_for(self, session_id: str, query: str) -> str:
        """Both buffers formatted as LLM context. Read-only.

        *query* is accepted for interface symmetry; every stored line is
        returned regardless of relevance.
        """
        memory = self._require(session_id)
        return (
            f"Short-term context:\n{memory.short_term}\n\n"
            f"Long-term findings:\n{memory.long_term}"
        )

    def clear(self, session_id: str) -> None:
        self._memories.pop(session_id, None)

    @staticmethod
    def summarize_artifacts(artifacts: list[ResearchArtifact], limit: int = 10) -> str:
        return "\n".join(
            MemoryStore._render(a, _SUMMARY_SNIPPET, "- ") for a in artifacts[:limit]
        )

    # ── Internals ────────────────────────────────────────────────────────

    def _require(self, session_id: str) -> ResearchMemory:
        memory = self._memories.get(session_id)
        if memory is None:
            raise MemoryNotInitialized(f"memory for session {session_id!r} was never initialized")
        return memory

    @staticmethod
    def _render(artifact: ResearchArtifact, limit: int, prefix: str) -> str:
        content = artifact.content[:limit]
        if len(artifact.content) > limit:
            content += "..."
        return f"{prefix}[{artifact.kind.value}] {content}"

    @staticmethod
    def _bounded(text: str, budget: int, session_id: str, buffer: str) -> str:
        if estimate_tokens(text) <= budget:
            return text
        compressed = compress_text(text, budget)
        logger.info(
            "memory_compressed",
            session_id=session_id,
            buffer=buffer,
            before_tokens=estimate_tokens(text),
            after_tokens=estimate_tokens(compressed),
        )
        return compressed
