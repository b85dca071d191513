"""Tolerant parsers for free-text orchestrator replies.

The orchestrator model answers in prose. These helpers pull plan
objectives, a step estimate, sub-task lines and completeness verdicts out of
that prose with keyword and list-marker heuristics. Each returns an
``ambiguous`` flag when it had to guess, so callers can record the fact
instead of trusting the result blindly.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

MAX_OBJECTIVES = 5
MIN_STEPS = 3
MAX_GAPS = 3

_OBJECTIVE = re.compile(r"objective|goal", re.IGNORECASE)
_STEP = re.compile(r"step|task|phase", re.IGNORECASE)
_LIST_ITEM = re.compile(r"^\s*(?:\d+[.)]|[-*•])\s+(?P<body>.+?)\s*$")
_COMPLETE = re.compile(r"complete|sufficient", re.IGNORECASE)
_NEGATED = re.compile(r"incomplete|insufficient|not\s+complete|not\s+sufficient", re.IGNORECASE)
_GAP = re.compile(r"gap|missing", re.IGNORECASE)


@dataclass(frozen=True)
class PlanOutline:
    objectives: tuple[str, ...]
    estimated_steps: int
    ambiguous: bool


@dataclass(frozen=True)
class TaskLines:
    descriptions: tuple[str, ...]
    ambiguous: bool


@dataclass(frozen=True)
class CompletenessReport:
    is_complete: bool
    gaps: tuple[str, ...] = field(default_factory=tuple)
    ambiguous: bool = False


def extract_objectives(text: str, limit: int = MAX_OBJECTIVES) -> list[str]:
    """Stripped lines mentioning an objective or goal, in order, at most *limit*."""
    found = [line.strip() for line in text.splitlines() if _OBJECTIVE.search(line)]
    return [line for line in found if line][:limit]


def estimate_steps(text: str, floor: int = MIN_STEPS) -> int:
    """Count of lines mentioning a step, task or phase, never below *floor*."""
    return max(floor, sum(1 for line in text.splitlines() if _STEP.search(line)))


def parse_plan(text: str) -> PlanOutline:
    objectives = extract_objectives(text)
    step_lines = estimate_steps(text, floor=0)
    return PlanOutline(
        objectives=tuple(objectives),
        estimated_steps=max(MIN_STEPS, step_lines),
        # Nothing recognisable: the defaults were used, not read.
        ambiguous=not objectives or step_lines == 0,
    )


def parse_tasks(text: str, limit: int) -> TaskLines:
    """Enumerated (``1.``, ``1)``) or bulleted (``-``, ``*``, ``•``) lines, at most *limit*.

    Non-list lines are ignored. A reply with text but no list items is
    flagged ambiguous and yields no tasks.
    """
    items: list[str] = []
    for line in text.splitlines():
        match = _LIST_ITEM.match(line)
        if match:
            items.append(match.group("body"))
    return TaskLines(
        descriptions=tuple(items[:limit]),
        ambiguous=bool(text.strip()) and not items,
    )


def parse_evaluation(text: str, max_gaps: int = MAX_GAPS) -> CompletenessReport:
    """Keyword verdict: complete when "complete"/"sufficient" appears.

    Negated forms ("incomplete", "not sufficient", ...) also contain those
    words, so their presence makes the verdict ambiguous rather than false.
    """
    gaps = tuple(line.strip() for line in text.splitlines() if _GAP.search(line) and line.strip())
    return CompletenessReport(
        is_complete=bool(_COMPLETE.search(text)),
        gaps=gaps[:max_gaps],
        ambiguous=bool(_NEGATED.search(text)),
    )
