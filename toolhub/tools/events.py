"""Tool lifecycle events and the fire-and-forget dispatcher that carries them.

Listeners are the boundary to logging/metrics/persistence sinks. Emission
must never block or fail the execution path, so listener errors are logged
and dropped, and async listeners run as background tasks.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from toolhub.tools.context import ToolContext
    from toolhub.tools.planner import ChainPlan
    from toolhub.tools.result import ToolResult

logger = structlog.get_logger()


@dataclass(frozen=True)
class ToolExecuted:
    tool_name: str
    arguments: dict
    context: ToolContext
    result: ToolResult
    duration: float  # seconds
    memory_usage: int  # bytes
    trace_id: str | None = None
    retries: int = 0


@dataclass(frozen=True)
class ToolFailed:
    tool_name: str
    arguments: dict
    context: ToolContext
    error_message: str
    error_code: str
    error_type: str
    duration: float
    memory_usage: int
    trace_id: str | None = None
    retries: int = 0
    will_retry: bool = False


@dataclass(frozen=True)
class ToolChainStarted:
    main_tool_name: str
    arguments: dict
    context: ToolContext
    chain_plan: ChainPlan | None
    trace_id: str


@dataclass(frozen=True)
class ToolChainCompleted:
    main_tool_name: str
    arguments: dict
    context: ToolContext
    result: ToolResult
    executed_tools: tuple[str, ...]
    total_duration: float
    trace_id: str


ToolEvent = ToolExecuted | ToolFailed | ToolChainStarted | ToolChainCompleted

Listener = Callable[[Any], None] | Callable[[Any], Awaitable[None]]


class EventDispatcher:
    """Routes lifecycle events to listeners subscribed per event type."""

    def __init__(self) -> None:
        self._listeners: dict[type, list[Listener]] = {}
        self._pending: set[asyncio.Task[None]] = set()

    def subscribe(self, event_type: type, listener: Listener) -> None:
        self._listeners.setdefault(event_type, []).append(listener)

    def subscribe_all(self, listener: Listener) -> None:
        for event_type in (ToolExecuted, ToolFailed, ToolChainStarted, ToolChainCompleted):
            self.subscribe(event_type, listener)

    def emit(self, event: ToolEvent) -> None:
        for listener in self._listeners.get(type(event), ()):
            try:
                outcome = listener(event)
            except Exception:
                logger.exception(
                    "event_listener_failed",
                    event_type=type(event).__name__,
                    listener=_listener_name(listener),
                )
                continue
            if inspect.isawaitable(outcome):
                self._schedule(event, listener, outcome)

    def _schedule(self, event: ToolEvent, listener: Listener, awaitable: Awaitable[None]) -> None:
        async def _run() -> None:
            try:
                await awaitable
            except Exception:
                logger.exception(
                    "event_listener_failed",
                    event_type=type(event).__name__,
                    listener=_listener_name(listener),
                )

        try:
            task = asyncio.get_running_loop().create_task(_run())
        except RuntimeError:
            # No running loop: nothing can drive the coroutine.
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            logger.warning("event_listener_dropped", event_type=type(event).__name__)
            return
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for outstanding async listeners (shutdown and tests)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


def _listener_name(listener: Listener) -> str:
    return getattr(listener, "__qualname__", None) or type(listener).__name__


def log_tool_event(event: ToolEvent) -> None:
    """Listener writing one structured log line per lifecycle event."""
    if isinstance(event, ToolExecuted):
        logger.info(
            "tool_executed",
            tool=event.tool_name,
            success=event.result.success,
            duration_ms=int(event.duration * 1000),
            memory_kb=round(event.memory_usage / 1024, 1),
            trace_id=event.trace_id,
            **event.context.to_log_fields(),
        )
    elif isinstance(event, ToolFailed):
        logger.error(
            "tool_failed",
            tool=event.tool_name,
            error=event.error_message,
            error_code=event.error_code,
            error_type=event.error_type,
            duration_ms=int(event.duration * 1000),
            retries=event.retries,
            will_retry=event.will_retry,
            trace_id=event.trace_id,
            **event.context.to_log_fields(),
        )
    elif isinstance(event, ToolChainStarted):
        logger.info(
            "tool_chain_started",
            tool=event.main_tool_name,
            planned=list(event.chain_plan.order) if event.chain_plan else None,
            trace_id=event.trace_id,
        )
    elif isinstance(event, ToolChainCompleted):
        logger.info(
            "tool_chain_completed",
            tool=event.main_tool_name,
            success=event.result.success,
            error_code=event.result.error_code,
            executed=list(event.executed_tools),
            duration_ms=int(event.total_duration * 1000),
            trace_id=event.trace_id,
        )
