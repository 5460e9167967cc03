"""Dependency-aware execution of a tool and its prerequisites.

Every run is planned first (cycle and depth checks), then prerequisites
execute depth-first in declaration order through the ToolExecutor. Their
data flows forward into the dependent's arguments and into the context's
``chain_results`` namespace. The first failing prerequisite ends the chain.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import structlog

from toolhub.infra.errors import ChainDepthExceededError, ChainError, ToolhubError
from toolhub.infra.logging import chain_log_context
from toolhub.tools.events import ToolChainCompleted, ToolChainStarted
from toolhub.tools.executor import error_code_for, new_trace_id
from toolhub.tools.planner import ChainPlan, ChainPlanner
from toolhub.tools.result import ToolResult

if TYPE_CHECKING:
    from toolhub.config.settings import ToolSettings
    from toolhub.tools.context import ToolContext
    from toolhub.tools.events import EventDispatcher
    from toolhub.tools.executor import ToolExecutor
    from toolhub.tools.registry import ToolRegistry

logger = structlog.get_logger()

CHAIN_RESULTS_KEY = "chain_results"


class ChainState(StrEnum):
    planning = "planning"
    executing_prerequisites = "executing_prerequisites"
    executing_main = "executing_main"
    awaiting_input = "awaiting_input"
    completed = "completed"
    failed = "failed"


_TRANSITIONS: dict[ChainState, frozenset[ChainState]] = {
    ChainState.planning: frozenset({ChainState.executing_prerequisites, ChainState.failed}),
    ChainState.executing_prerequisites: frozenset(
        {ChainState.executing_main, ChainState.awaiting_input, ChainState.failed}
    ),
    ChainState.executing_main: frozenset({ChainState.completed, ChainState.failed}),
    ChainState.awaiting_input: frozenset(),
    ChainState.completed: frozenset(),
    ChainState.failed: frozenset(),
}


@dataclass
class ChainRun:
    """Mutable bookkeeping for one execute_with_dependencies call."""

    main_tool: str
    trace_id: str
    max_depth: int
    cancel_event: asyncio.Event | None = None
    state: ChainState = ChainState.planning
    plan: ChainPlan | None = None
    executed: list[str] = field(default_factory=list)

    @property
    def terminal(self) -> bool:
        return not _TRANSITIONS[self.state]

    def transition(self, target: ChainState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise ChainError(
                f"Illegal chain transition {self.state} -> {target}",
                code="CHAIN_STATE_INVALID",
            )
        logger.debug(
            "chain_state_changed",
            tool=self.main_tool,
            from_state=str(self.state),
            to_state=str(target),
            trace_id=self.trace_id,
        )
        self.state = target

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()


class _Halt(Exception):
    """Stops the chain early with a ready-made result."""

    def __init__(self, result: ToolResult, state: ChainState) -> None:
        super().__init__(result.error_message or "halt")
        self.result = result
        self.state = state


class ToolOrchestrator:
    def __init__(
        self,
        executor: ToolExecutor,
        registry: ToolRegistry,
        events: EventDispatcher,
        settings: ToolSettings | None = None,
    ) -> None:
        self._executor = executor
        self._registry = registry
        self._events = events
        self._settings = settings
        self._planner = ChainPlanner(registry)

    async def execute_with_dependencies(
        self,
        tool_name: str,
        arguments: dict,
        context: ToolContext,
        max_depth: int | None = None,
        plan_first: bool | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> ToolResult:
        """Run `tool_name` after its prerequisites.

        max_depth and plan_first default to ToolSettings (5 / False).
        Never raises for tool or chain failures; those come back as error
        results carrying the chain's trace_id.
        """
        if max_depth is None:
            max_depth = self._settings.max_chain_depth if self._settings else 5
        if plan_first is None:
            plan_first = self._settings.plan_first if self._settings else False

        run = ChainRun(
            main_tool=tool_name,
            trace_id=new_trace_id(),
            max_depth=max_depth,
            cancel_event=cancel_event,
        )
        start = time.perf_counter()

        with chain_log_context(run.trace_id, tool_name):
            result = self._plan(run, tool_name, arguments, context, plan_first)
            if result is None:
                self._events.emit(
                    ToolChainStarted(
                        main_tool_name=tool_name,
                        arguments=arguments,
                        context=context,
                        chain_plan=run.plan if plan_first else None,
                        trace_id=run.trace_id,
                    )
                )
                result = await self._execute(run, tool_name, arguments, context)

            self._events.emit(
                ToolChainCompleted(
                    main_tool_name=tool_name,
                    arguments=arguments,
                    context=context,
                    result=result,
                    executed_tools=tuple(run.executed),
                    total_duration=time.perf_counter() - start,
                    trace_id=run.trace_id,
                )
            )
        return result

    def _plan(
        self,
        run: ChainRun,
        tool_name: str,
        arguments: dict,
        context: ToolContext,
        plan_first: bool,
    ) -> ToolResult | None:
        """Returns an error result when planning rejects the chain, else None."""
        try:
            run.plan = self._planner.plan(tool_name, arguments, context, max_depth=run.max_depth)
        except Exception as e:
            run.transition(ChainState.failed)
            logger.warning(
                "chain_planning_failed", tool=tool_name, error=str(e), trace_id=run.trace_id
            )
            return ToolResult.fail(str(e), error_code_for(e), {"trace_id": run.trace_id})

        for warning in run.plan.warnings:
            logger.warning("chain_plan_warning", tool=tool_name, warning=warning)

        if plan_first and run.plan.missing:
            run.transition(ChainState.failed)
            return ToolResult.fail(
                "Tool chain references unregistered tools: " + ", ".join(run.plan.missing),
                "TOOL_NOT_FOUND",
                {"trace_id": run.trace_id, "missing": list(run.plan.missing)},
            )
        return None

    async def _execute(
        self, run: ChainRun, tool_name: str, arguments: dict, context: ToolContext
    ) -> ToolResult:
        run.transition(ChainState.executing_prerequisites)
        try:
            arguments, context = await self._prerequisites(run, tool_name, arguments, context, 1)
            self._check_cancelled(run)
            run.transition(ChainState.executing_main)
            result = await self._step(run, tool_name, arguments, context)
        except _Halt as halt:
            run.transition(halt.state)
            return halt.result

        run.transition(ChainState.completed if result.success else ChainState.failed)
        return result

    async def _prerequisites(
        self,
        run: ChainRun,
        tool_name: str,
        arguments: dict,
        context: ToolContext,
        depth: int,
    ) -> tuple[dict, ToolContext]:
        """Run every applicable prerequisite of `tool_name`, returning the
        dependent's updated arguments and context."""
        if depth > run.max_depth:
            error = ChainDepthExceededError(depth, run.max_depth)
            raise _Halt(
                ToolResult.fail(str(error), error.code, {"trace_id": run.trace_id}),
                ChainState.failed,
            )
        if not self._registry.has(tool_name):
            # The executor reports TOOL_NOT_FOUND when the step itself runs.
            return arguments, context

        for dep in self._registry.get(tool_name).dependencies:
            try:
                if not dep.applies(arguments, context):
                    continue
                dep_args = dep.arguments_for(arguments, context)
            except Exception as e:
                raise self._callback_failure(run, dep.tool_name, e) from e
            if dep_args is None:
                continue

            dep_args, dep_context = await self._prerequisites(
                run, dep.tool_name, dep_args, context, depth + 1
            )
            self._check_cancelled(run)
            dep_result = await self._step(run, dep.tool_name, dep_args, dep_context)

            if not dep_result.success:
                logger.warning(
                    "chain_prerequisite_failed",
                    tool=tool_name,
                    prerequisite=dep.tool_name,
                    error_code=dep_result.error_code,
                    trace_id=run.trace_id,
                )
                raise _Halt(dep_result, ChainState.failed)

            context = _with_chain_result(dep_context, dep.tool_name, dep_result.data)
            try:
                merged = dep.feed_forward(tool_name, dep_result, arguments)
            except Exception as e:
                raise self._callback_failure(run, dep.tool_name, e) from e

            if merged is None:
                logger.info(
                    "chain_awaiting_input",
                    tool=tool_name,
                    prerequisite=dep.tool_name,
                    trace_id=run.trace_id,
                )
                raise _Halt(
                    ToolResult.ok(
                        {
                            "requires_user_input": True,
                            "dependency_tool_result": dep_result.data,
                            "message": "Please choose one of the listed options.",
                            "next_tool": tool_name,
                            "next_tool_args": arguments,
                        },
                        {"trace_id": run.trace_id},
                    ),
                    ChainState.awaiting_input,
                )
            arguments = merged

        return arguments, context

    async def _step(
        self, run: ChainRun, tool_name: str, arguments: dict, context: ToolContext
    ) -> ToolResult:
        result = await self._executor.execute(
            tool_name, arguments, context, trace_id=run.trace_id
        )
        run.executed.append(tool_name)
        return result

    def _check_cancelled(self, run: ChainRun) -> None:
        if run.cancelled:
            logger.info("chain_cancelled", tool=run.main_tool, trace_id=run.trace_id)
            raise _Halt(
                ToolResult.fail(
                    "Tool chain cancelled", "CHAIN_CANCELLED", {"trace_id": run.trace_id}
                ),
                ChainState.failed,
            )

    def _callback_failure(self, run: ChainRun, dep_tool: str, exc: Exception) -> _Halt:
        if not isinstance(exc, ToolhubError):
            logger.exception("chain_dependency_callback_failed", prerequisite=dep_tool)
        return _Halt(
            ToolResult.fail(str(exc), error_code_for(exc), {"trace_id": run.trace_id}),
            ChainState.failed,
        )


def _with_chain_result(context: ToolContext, tool_name: str, data: Any) -> ToolContext:
    results = dict(context.metadata.get(CHAIN_RESULTS_KEY, {}))
    results[tool_name] = data
    return context.with_metadata({CHAIN_RESULTS_KEY: results})
