"""Worker wire schemas — tool kinds, LLM replies and per-role worker config.

Tools are a closed set (ToolKind). Each kind has one declared schema in
TOOL_SPECS; workers resolve their handler table from these once, at
construction time.
"""

from __future__ import annotations

import enum
from typing import Any

from pydantic import BaseModel, Field

from sleuth.research.models import AgentRole


class ToolKind(str, enum.Enum):
    CURRENT_DATETIME = "get_current_datetime"
    WEB_SEARCH = "web_search"
    FETCH_URL = "fetch_url"
    EXTRACT_ENTITIES = "extract_entities"
    EXTRACT_TABLE = "extract_table"
    VERIFY_CLAIM = "verify_claim"
    CHECK_BIAS = "check_bias"
    SPAWN_WORKER_AGENT = "spawn_worker_agent"
    REQUEST_SYNTHESIS = "request_synthesis"

    @classmethod
    def lookup(cls, name: str) -> "ToolKind | None":
        try:
            return cls(name)
        except ValueError:
            return None


class ToolSpec(BaseModel):
    """Declared schema for one tool, rendered in OpenAI function format."""

    kind: ToolKind
    description: str
    parameters: dict[str, Any] = Field(default_factory=dict)
    required: list[str] = Field(default_factory=list)

    def to_openai(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.kind.value,
                "description": self.description,
                "parameters": {
                    "type": "object",
                    "properties": self.parameters,
                    "required": self.required,
                },
            },
        }


def _string(description: str) -> dict[str, str]:
    return {"type": "string", "description": description}


TOOL_SPECS: dict[ToolKind, ToolSpec] = {
    ToolKind.CURRENT_DATETIME: ToolSpec(
        kind=ToolKind.CURRENT_DATETIME,
        description="Get the current date and time in ISO format, with date, time, timestamp and timezone.",
    ),
    ToolKind.WEB_SEARCH: ToolSpec(
        kind=ToolKind.WEB_SEARCH,
        description="Search the web for information",
        parameters={
            "query": _string("The search query"),
            "numResults": {"type": "number", "description": "Number of results to return (default: 5)"},
        },
        required=["query"],
    ),
    ToolKind.FETCH_URL: ToolSpec(
        kind=ToolKind.FETCH_URL,
        description="Fetch and extract content from a specific URL",
        parameters={"url": _string("The URL to fetch")},
        required=["url"],
    ),
    ToolKind.EXTRACT_ENTITIES: ToolSpec(
        kind=ToolKind.EXTRACT_ENTITIES,
        description="Extract named entities from text",
        parameters={
            "text": _string("The text to extract entities from"),
            "entityTypes": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Types of entities to extract (e.g., PERSON, ORGANIZATION, DATE)",
            },
        },
        required=["text"],
    ),
    ToolKind.EXTRACT_TABLE: ToolSpec(
        kind=ToolKind.EXTRACT_TABLE,
        description="Extract tabular data from text",
        parameters={"text": _string("The text containing table data")},
        required=["text"],
    ),
    ToolKind.VERIFY_CLAIM: ToolSpec(
        kind=ToolKind.VERIFY_CLAIM,
        description="Verify the accuracy of a specific claim",
        parameters={
            "claim": _string("The claim to verify"),
            "sources": {"type": "array", "items": {"type": "string"}, "description": "Sources to verify against"},
        },
        required=["claim"],
    ),
    ToolKind.CHECK_BIAS: ToolSpec(
        kind=ToolKind.CHECK_BIAS,
        description="Check for potential bias in a statement",
        parameters={"text": _string("The text to check for bias")},
        required=["text"],
    ),
    ToolKind.SPAWN_WORKER_AGENT: ToolSpec(
        kind=ToolKind.SPAWN_WORKER_AGENT,
        description="Spawn a specialized worker agent to execute a specific research task",
        parameters={
            "agentType": {
                "type": "string",
                "enum": ["searcher", "extractor", "fact_checker"],
                "description": "Type of worker agent to spawn",
            },
            "task": _string("The specific task for the worker agent"),
        },
        required=["agentType", "task"],
    ),
    ToolKind.REQUEST_SYNTHESIS: ToolSpec(
        kind=ToolKind.REQUEST_SYNTHESIS,
        description="Request synthesis of findings into a report",
        parameters={
            "findings": {"type": "array", "items": {"type": "string"}, "description": "List of findings to synthesize"},
        },
        required=["findings"],
    ),
}


class ToolCall(BaseModel):
    """One tool call requested by the model."""

    id: str = ""
    name: str
    arguments: str = Field(default="{}", description="Raw JSON arguments as sent by the model")


class LLMReply(BaseModel):
    """Result of one model round-trip: direct text, tool calls, or both."""

    text: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
    model: str = ""
    usage: dict[str, Any] = Field(default_factory=dict)


class WorkerConfig(BaseModel):
    """Per-role model settings, passed through to the provider unchanged."""

    role: AgentRole
    model: str
    max_tokens: int = 8192
    temperature: float = 0.7
    system_prompt: str = ""
