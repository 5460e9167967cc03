"""Single-tool executor.

Looks a tool up, validates arguments against its parameter schema, runs it
under a timeout, measures duration and memory, and emits ToolExecuted or
ToolFailed. Exceptions raised by tool bodies never leave execute().
"""

from __future__ import annotations

import asyncio
import secrets
import time
import tracemalloc
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import structlog

from toolhub.infra.errors import ExecutionError, ToolhubError, ToolNotFoundError
from toolhub.tools.events import ToolExecuted, ToolFailed
from toolhub.tools.result import ToolResult

if TYPE_CHECKING:
    from toolhub.config.settings import ToolSettings
    from toolhub.tools.base import BaseTool
    from toolhub.tools.context import ToolContext
    from toolhub.tools.events import EventDispatcher
    from toolhub.tools.registry import ToolRegistry

logger = structlog.get_logger()

# (tool_name, exception, retries so far) -> should an external policy retry?
RetryAdvisor = Callable[[str, BaseException, int], bool]

_JSON_TYPE_CHECKS: dict[str, Callable[[Any], bool]] = {
    "string": lambda v: isinstance(v, str),
    "integer": lambda v: isinstance(v, int) and not isinstance(v, bool),
    "number": lambda v: isinstance(v, int | float) and not isinstance(v, bool),
    "boolean": lambda v: isinstance(v, bool),
    "array": lambda v: isinstance(v, list | tuple),
    "object": lambda v: isinstance(v, dict),
}


def new_trace_id() -> str:
    return secrets.token_hex(8)


def validate_arguments(schema: dict, arguments: dict) -> list[str]:
    """Check required fields and basic JSON types. Unknown fields are ignored."""
    errors: list[str] = []
    properties = schema.get("properties", {})

    for field in schema.get("required", []):
        if arguments.get(field) is None:
            errors.append(f"field '{field}' is required")

    for key, value in arguments.items():
        prop = properties.get(key)
        if not prop or value is None:
            continue
        expected = prop.get("type")
        types = expected if isinstance(expected, list) else [expected]
        checks = [_JSON_TYPE_CHECKS[t] for t in types if t in _JSON_TYPE_CHECKS]
        if checks and not any(check(value) for check in checks):
            errors.append(f"field '{key}' has wrong type (expected {expected})")

    return errors


def error_code_for(exc: BaseException) -> str:
    if isinstance(exc, ToolhubError):
        return exc.code
    if isinstance(exc, TimeoutError):
        return "TIMEOUT"
    return "EXECUTION_ERROR"


def _memory_now() -> int:
    if not tracemalloc.is_tracing():
        return 0
    current, _peak = tracemalloc.get_traced_memory()
    return current


class ToolExecutor:
    """Runs one tool invocation and reports it to the event dispatcher."""

    def __init__(
        self,
        registry: ToolRegistry,
        events: EventDispatcher,
        settings: ToolSettings,
        *,
        retry_advisor: RetryAdvisor | None = None,
    ) -> None:
        self._registry = registry
        self._events = events
        self._settings = settings
        self._retry_advisor = retry_advisor

    async def execute(
        self,
        tool_name: str,
        arguments: dict,
        context: ToolContext,
        *,
        trace_id: str | None = None,
        retries: int = 0,
    ) -> ToolResult:
        trace_id = trace_id or new_trace_id()

        try:
            tool = self._registry.get(tool_name)
        except ToolNotFoundError as e:
            logger.warning("tool_not_found", tool=tool_name, trace_id=trace_id)
            return ToolResult.fail(str(e), e.code, {"trace_id": trace_id})

        errors = validate_arguments(tool.parameters, arguments)
        if errors:
            logger.warning(
                "tool_arguments_invalid", tool=tool_name, errors=errors, trace_id=trace_id
            )
            return ToolResult.fail(
                "Validation failed: " + ", ".join(errors),
                "VALIDATION_ERROR",
                {"trace_id": trace_id, "errors": errors},
            )

        start = time.perf_counter()
        mem_start = _memory_now()
        try:
            async with asyncio.timeout(self._timeout_for(tool)):
                result = await tool.execute(arguments, context)
            if not isinstance(result, ToolResult):
                raise ExecutionError(
                    f"Tool '{tool_name}' returned {type(result).__name__}, expected ToolResult"
                )
        except Exception as e:
            duration = time.perf_counter() - start
            memory = _memory_now() - mem_start
            return self._failed(
                tool_name, arguments, context, e, duration, memory, trace_id, retries
            )

        duration = time.perf_counter() - start
        memory = _memory_now() - mem_start
        result = result.with_metadata({"trace_id": trace_id})
        self._events.emit(
            ToolExecuted(
                tool_name=tool_name,
                arguments=arguments,
                context=context,
                result=result,
                duration=duration,
                memory_usage=memory,
                trace_id=trace_id,
                retries=retries,
            )
        )
        return result

    def _timeout_for(self, tool: BaseTool) -> float:
        if tool.timeout_seconds is not None:
            return tool.timeout_seconds
        return self._settings.timeout_for(tool.name)

    def _failed(
        self,
        tool_name: str,
        arguments: dict,
        context: ToolContext,
        exc: Exception,
        duration: float,
        memory: int,
        trace_id: str,
        retries: int,
    ) -> ToolResult:
        code = error_code_for(exc)
        message = str(exc) or type(exc).__name__
        if isinstance(exc, TimeoutError):
            message = f"Tool '{tool_name}' timed out"

        will_retry = False
        if self._retry_advisor is not None:
            try:
                will_retry = bool(self._retry_advisor(tool_name, exc, retries))
            except Exception:
                logger.exception("retry_advisor_failed", tool=tool_name)

        self._events.emit(
            ToolFailed(
                tool_name=tool_name,
                arguments=arguments,
                context=context,
                error_message=message,
                error_code=code,
                error_type=type(exc).__name__,
                duration=duration,
                memory_usage=memory,
                trace_id=trace_id,
                retries=retries,
                will_retry=will_retry,
            )
        )
        return ToolResult.fail(
            f"Tool execution failed: {message}",
            code,
            {"trace_id": trace_id, "will_retry": will_retry},
        )
