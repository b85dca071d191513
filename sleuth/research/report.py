"""Plain markdown report, used when the synthesis model returns nothing."""

from __future__ import annotations

from collections.abc import Sequence

from sleuth.research.models import Citation, ResearchArtifact

_CONTENT_LIMIT = 1_500


def format_plain_report(
    query: str,
    artifacts: Sequence[ResearchArtifact],
    citations: Sequence[Citation],
) -> str:
    """Format artifacts and citations as markdown without LLM synthesis."""
    lines = [
        f"## Research Report: {query}",
        "",
        f"**Findings:** {len(artifacts)}  ",
        f"**Citations:** {len(citations)}",
        "",
        "---",
        "",
    ]

    if not artifacts:
        lines.append("No findings were gathered for this query.")
        lines.append("")

    for i, artifact in enumerate(artifacts, 1):
        retrieved = artifact.retrieved_at.strftime("%Y-%m-%d %H:%M UTC")
        lines.append(f"### Finding {i} ({artifact.kind.value}) — {retrieved}")
        lines.append("")
        lines.append(artifact.content[:_CONTENT_LIMIT])
        lines.append("")

    if citations:
        lines.append("---")
        lines.append("")
        lines.append("### Sources")
        lines.append("")
        for i, citation in enumerate(citations, 1):
            label = citation.title or citation.source
            lines.append(f"{i}. {label} {citation.url}".rstrip())

    return "\n".join(lines).rstrip() + "\n"
