"""Toolbox — the information-producing tools workers can call.

Each public coroutine backs one ToolKind. Workers never look tools up by
string at call time: `Toolbox.handlers()` returns the ToolKind → coroutine
table once, and each worker keeps the slice it declares.

Backends:
    web_search       — SearXNG-compatible JSON endpoint via httpx
                       (raises ToolUnavailable when search_url is unset)
    fetch_url        — trafilatura download + extraction in a worker thread
    extract_entities — regex heuristics (capitalised spans, dates, numbers)
    extract_table    — markdown pipe tables and CSV-ish lines
    verify_claim     — absolute-language heuristic
    check_bias       — loaded/absolute/prescriptive/moral language patterns

The extraction and verification heuristics are deliberately shallow; the
pipeline only needs a well-formed payload back.
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
import structlog
import trafilatura

from sleuth.config import settings
from sleuth.errors import ToolUnavailable
from sleuth.models.schemas import ToolKind
from sleuth.utils.clock import datetime_payload, now_utc

logger = structlog.get_logger().bind(component="toolbox")

ToolHandler = Callable[..., Awaitable[Any]]

_ABSOLUTE_WORDS = ("always", "never", "all", "none", "100%", "impossible", "definitely")

_BIAS_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\b(obviously|clearly|undoubtedly)\b", re.IGNORECASE), "Loaded language"),
    (re.compile(r"\b(all|every|none|never)\b", re.IGNORECASE), "Absolute language"),
    (re.compile(r"\b(should|must|ought)\b", re.IGNORECASE), "Prescriptive language"),
    (re.compile(r"\b(good|bad|right|wrong)\b", re.IGNORECASE), "Moral language"),
]

_ENTITY_PATTERNS: dict[str, re.Pattern[str]] = {
    "DATE": re.compile(
        r"\b(?:\d{4}-\d{2}-\d{2}|(?:Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)[a-z]*\.? \d{1,2},? \d{4})\b"
    ),
    "NUMBER": re.compile(r"(?<![\w.])[$€£]?\d[\d,]*(?:\.\d+)?%?(?![\w.])"),
    "PROPER_NOUN": re.compile(r"\b[A-Z][a-zA-Z]+(?:\s+[A-Z][a-zA-Z]+)+\b"),
}


class Toolbox:
    """Default tool implementations.

    Args:
        search_url:  JSON search endpoint; empty disables web_search.
        http:        Shared httpx.AsyncClient (inject in tests).
        max_chars:   Cap on fetched page text.
    """

    def __init__(
        self,
        search_url: str | None = None,
        http: httpx.AsyncClient | None = None,
        max_chars: int | None = None,
    ) -> None:
        self.search_url = settings.search_url if search_url is None else search_url
        self._http = http
        self.max_chars = max_chars or settings.fetch_max_chars

    def handlers(self) -> dict[ToolKind, ToolHandler]:
        return {
            ToolKind.CURRENT_DATETIME: self.get_current_datetime,
            ToolKind.WEB_SEARCH: self.web_search,
            ToolKind.FETCH_URL: self.fetch_url,
            ToolKind.EXTRACT_ENTITIES: self.extract_entities,
            ToolKind.EXTRACT_TABLE: self.extract_table,
            ToolKind.VERIFY_CLAIM: self.verify_claim,
            ToolKind.CHECK_BIAS: self.check_bias,
            ToolKind.SPAWN_WORKER_AGENT: self.spawn_worker_agent,
            ToolKind.REQUEST_SYNTHESIS: self.request_synthesis,
        }

    async def close(self) -> None:
        if self._http is not None and not self._http.is_closed:
            await self._http.aclose()
            self._http = None

    async def _client(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(timeout=20.0, follow_redirects=True)
        return self._http

    # ── Base ─────────────────────────────────────────────────────────────

    async def get_current_datetime(self) -> dict[str, Any]:
        return datetime_payload()

    # ── Searcher ─────────────────────────────────────────────────────────

    async def web_search(self, query: str, numResults: int = 5) -> dict[str, Any]:
        if not self.search_url:
            raise ToolUnavailable("web_search is not configured (set SLEUTH_SEARCH_URL)")
        client = await self._client()
        response = await client.get(self.search_url, params={"q": query, "format": "json"})
        response.raise_for_status()
        raw = response.json().get("results") or []
        results = [
            {
                "title": item.get("title", ""),
                "url": item.get("url", ""),
                "snippet": item.get("content", "") or item.get("snippet", ""),
                "source": item.get("engine", ""),
            }
            for item in raw[: max(int(numResults), 1)]
        ]
        logger.debug("web_search", query=query[:80], results=len(results))
        return {"query": query, "results": results, "totalResults": len(raw)}

    async def fetch_url(self, url: str) -> dict[str, Any]:
        downloaded = await asyncio.to_thread(trafilatura.fetch_url, url)
        if not downloaded:
            raise ToolUnavailable(f"could not download {url}")
        text = await asyncio.to_thread(trafilatura.extract, downloaded) or ""
        metadata = await asyncio.to_thread(trafilatura.extract_metadata, downloaded)
        title = metadata.title if metadata is not None else None
        return {
            "url": url,
            "title": title,
            "content": text[: self.max_chars],
            "metadata": {"fetchedAt": now_utc().isoformat(), "chars": len(text)},
        }

    # ── Extractor ────────────────────────────────────────────────────────

    async def extract_entities(
        self, text: str, entityTypes: list[str] | None = None
    ) -> dict[str, Any]:
        wanted = {t.upper() for t in entityTypes} if entityTypes else set(_ENTITY_PATTERNS)
        entities: list[dict[str, Any]] = []
        for label, pattern in _ENTITY_PATTERNS.items():
            if label not in wanted:
                continue
            for match in pattern.finditer(text):
                entities.append({
                    "type": label,
                    "text": match.group(0),
                    "start": match.start(),
                    "end": match.end(),
                })
        entities.sort(key=lambda e: e["start"])
        return {"entities": entities, "confidence": 0.5}

    async def extract_table(self, text: str) -> dict[str, Any]:
        rows: list[list[str]] = []
        for line in text.splitlines():
            line = line.strip()
            if "|" in line:
                cells = [c.strip() for c in line.strip("|").split("|")]
                if all(re.fullmatch(r":?-{2,}:?", c) for c in cells if c):
                    continue  # markdown separator row
            elif line.count(",") >= 1:
                cells = [c.strip() for c in line.split(",")]
            else:
                continue
            rows.append(cells)
        columns = max((len(r) for r in rows), default=0)
        return {"table": rows, "rows": len(rows), "columns": columns}

    # ── Fact-checker ─────────────────────────────────────────────────────

    async def verify_claim(self, claim: str, sources: list[str] | None = None) -> dict[str, Any]:
        lowered = claim.lower()
        absolute = any(re.search(rf"(?<!\w){re.escape(w)}(?!\w)", lowered) for w in _ABSOLUTE_WORDS)
        verified = not absolute
        return {
            "claim": claim,
            "verified": verified,
            "confidence": 0.8 if verified else 0.6,
            "sources": sources or [],
            "explanation": (
                "Claim appears reasonable based on available information"
                if verified
                else "Claim contains absolute language that may indicate overgeneralization"
            ),
            "biasIndicators": [] if verified else ["Absolute language detected"],
        }

    async def check_bias(self, text: str) -> dict[str, Any]:
        indicators: list[str] = []
        bias_type: str | None = None
        for pattern, label in _BIAS_PATTERNS:
            if pattern.search(text):
                indicators.append(label)
                bias_type = bias_type or label
        has_bias = bool(indicators)
        return {
            "hasBias": has_bias,
            "biasType": bias_type,
            "indicators": indicators,
            "confidence": 0.7,
            "suggestions": (
                [
                    "Consider using more neutral language",
                    "Provide specific evidence for claims",
                    "Acknowledge alternative perspectives",
                ]
                if has_bias
                else ["Text appears relatively neutral"]
            ),
        }

    # ── Orchestrator hints ───────────────────────────────────────────────
    # The coordinator always runs the pipeline itself. These record what the
    # model asked for so it shows up in the task result.

    async def spawn_worker_agent(self, agentType: str, task: str) -> dict[str, Any]:
        return {"acknowledged": True, "agentType": agentType, "task": task}

    async def request_synthesis(self, findings: list[Any]) -> dict[str, Any]:
        return {"acknowledged": True, "findings": len(findings)}
