"""BaseWorker — the execute(task) → task contract every worker role implements.

Every worker (orchestrator, searcher, extractor, fact-checker) extends this.

Subclasses must:
    1. Set `role` and `tools` class attributes
    2. Provide `default_config()` with the role's prompt and sampling settings

`execute()` makes one model round-trip and, if the model asked for tools,
one tool-dispatch round. It always returns the task in a terminal state:
    completed  — result is the model's text, or the list of tool outcomes
    failed     — error explains why (LLM error, or neither text nor tool calls)

Tool failures are recorded per call inside the result and do not fail the task.
"""

from __future__ import annotations

import json
import time
from typing import Any, ClassVar

import structlog

from sleuth.errors import ResearchError
from sleuth.models.schemas import TOOL_SPECS, LLMReply, ToolCall, ToolKind, WorkerConfig
from sleuth.models.synapse import SynapseEvent, SynapseEventBus
from sleuth.research.models import AgentRole, ResearchTask, TaskStatus
from sleuth.tools.llm_client import LLMInvoker
from sleuth.tools.toolbox import Toolbox, ToolHandler

logger = structlog.get_logger()


class BaseWorker:
    """Base class for all worker roles.

    Args:
        llm:            Anything with an `invoke(role, messages, tools, config)` coroutine.
        toolbox:        Source of tool handlers, resolved once here.
        synapse:        Event bus for worker_start / worker_complete / worker_error.
        config:         Per-role model config; defaults to `default_config()`.
        correlation_id: Run id stamped on emitted events.
    """

    role: ClassVar[AgentRole]
    tools: ClassVar[tuple[ToolKind, ...]] = ()
    base_tools: ClassVar[tuple[ToolKind, ...]] = (ToolKind.CURRENT_DATETIME,)

    def __init__(
        self,
        llm: LLMInvoker,
        toolbox: Toolbox,
        synapse: SynapseEventBus,
        config: WorkerConfig | None = None,
        correlation_id: str = "",
    ) -> None:
        self.llm = llm
        self.synapse = synapse
        self.config = config or self.default_config()
        self.correlation_id = correlation_id
        self.log = logger.bind(component="worker", role=self.role.value)

        available = toolbox.handlers()
        declared = (*self.base_tools, *self.tools)
        missing = [kind.value for kind in declared if kind not in available]
        if missing:
            raise ValueError(f"{type(self).__name__}: toolbox has no handler for {missing}")
        self._handlers: dict[ToolKind, ToolHandler] = {kind: available[kind] for kind in declared}
        self._tool_schemas = [TOOL_SPECS[kind].to_openai() for kind in declared]

    @classmethod
    def default_config(cls) -> WorkerConfig:
        raise NotImplementedError

    @property
    def name(self) -> str:
        return self.role.value

    async def execute(self, task: ResearchTask) -> ResearchTask:
        """Run *task* to a terminal state and return the updated copy.

        The caller's task object is not modified.
        """
        task = task.model_copy(deep=True)
        start = time.perf_counter()
        self._emit("worker_start", task, payload={"description": task.description[:200]})

        try:
            task.transition(TaskStatus.THINKING)
            reply = await self.llm.invoke(
                self.role,
                self.build_messages(task),
                tools=self._tool_schemas or None,
                config=self.config,
            )
            if reply.tool_calls:
                task.transition(TaskStatus.EXECUTING)
                task.complete(await self.handle_tool_calls(reply))
            elif reply.text.strip():
                task.complete(reply.text)
            else:
                task.fail("No tool call and no answer in model response")
        except ResearchError as exc:
            if not task.is_terminal:
                task.fail(exc.message)
        except Exception as exc:
            if not task.is_terminal:
                task.fail(f"{type(exc).__name__}: {exc}")

        duration_ms = round((time.perf_counter() - start) * 1000, 2)
        if task.status is TaskStatus.COMPLETED:
            self._emit("worker_complete", task, duration_ms=duration_ms)
            self.log.info("worker_complete", task_id=task.id, duration_ms=duration_ms)
        else:
            self._emit("worker_error", task, duration_ms=duration_ms, error=task.error or "")
            self.log.warning("worker_failed", task_id=task.id, error=task.error, duration_ms=duration_ms)
        return task

    def build_messages(self, task: ResearchTask) -> list[dict[str, Any]]:
        messages: list[dict[str, Any]] = []
        if self.config.system_prompt:
            messages.append({"role": "system", "content": self.config.system_prompt})
        messages.append({"role": "user", "content": self.format_task(task)})
        return messages

    def format_task(self, task: ResearchTask) -> str:
        context = json.dumps(task.context, indent=2, default=str)
        return f"Task: {task.description}\n\nContext: {context}"

    async def handle_tool_calls(self, reply: LLMReply) -> list[dict[str, Any]]:
        """Dispatch each requested call once. Failures are captured per call."""
        outcomes: list[dict[str, Any]] = []
        for call in reply.tool_calls:
            outcome: dict[str, Any] = {"tool_call_id": call.id, "tool": call.name}
            try:
                outcome["result"] = await self._dispatch(call)
            except Exception as exc:
                outcome["error"] = str(exc) or type(exc).__name__
                self.log.warning("tool_call_failed", tool=call.name, error=outcome["error"])
            outcomes.append(outcome)
        return outcomes

    async def _dispatch(self, call: ToolCall) -> Any:
        kind = ToolKind.lookup(call.name)
        handler = self._handlers.get(kind) if kind is not None else None
        if handler is None:
            raise LookupError(f"Tool {call.name} not available to {self.role.value}")
        args = json.loads(call.arguments or "{}")
        if not isinstance(args, dict):
            raise ValueError(f"Tool {call.name} arguments must be a JSON object")
        return await handler(**args)

    def _emit(
        self,
        event_type: str,
        task: ResearchTask,
        *,
        duration_ms: float = 0.0,
        error: str = "",
        payload: dict[str, Any] | None = None,
    ) -> None:
        self.synapse.emit(SynapseEvent(
            correlation_id=self.correlation_id or task.id,
            event_type=event_type,
            source=self.name,
            payload={"task_id": task.id, "status": task.status.value, **(payload or {})},
            error=error,
            duration_ms=duration_ms,
        ))
