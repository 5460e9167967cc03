"""Pre-flight planning of a tool chain.

The planner walks the dependency graph depth-first from the main tool,
evaluating each declaration against plan-time arguments. It never runs a
tool. Cycles, then graphs deeper than the caller's bound, are rejected here,
before anything executes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from toolhub.infra.errors import ChainCycleDetectedError, ChainDepthExceededError

if TYPE_CHECKING:
    from toolhub.tools.context import ToolContext
    from toolhub.tools.registry import ToolRegistry

logger = structlog.get_logger()


@dataclass
class PlannedTool:
    name: str
    arguments: dict
    dependencies: list[str] = field(default_factory=list)


@dataclass
class ChainPlan:
    main_tool: str
    tools: dict[str, PlannedTool] = field(default_factory=dict)
    edges: list[tuple[str, str]] = field(default_factory=list)  # (dependent, prerequisite)
    order: list[str] = field(default_factory=list)  # prerequisites first, main tool last
    missing: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    depth: int = 0

    def to_dict(self) -> dict:
        return {
            "main_tool": self.main_tool,
            "tools": {
                name: {"arguments": t.arguments, "dependencies": list(t.dependencies)}
                for name, t in self.tools.items()
            },
            "order": list(self.order),
            "missing": list(self.missing),
            "warnings": list(self.warnings),
            "depth": self.depth,
        }


class ChainPlanner:
    def __init__(self, registry: ToolRegistry) -> None:
        self._registry = registry

    def plan(
        self, tool_name: str, arguments: dict, context: ToolContext, *, max_depth: int
    ) -> ChainPlan:
        """Build the plan for `tool_name`.

        The walk is not bounded by max_depth, so a cycle is always reported
        as ChainCycleDetectedError whatever its length. Only an acyclic graph
        whose longest path (main tool = depth 1) is longer than max_depth
        raises ChainDepthExceededError.
        """
        if max_depth <= 0:
            raise ChainDepthExceededError(1, max_depth)

        plan = ChainPlan(main_tool=tool_name)
        plan.depth = self._visit(tool_name, arguments, context, plan, [], {})
        if plan.depth > max_depth:
            raise ChainDepthExceededError(plan.depth, max_depth)
        plan.order = _topological_order(plan)

        if plan.missing:
            logger.warning("chain_plan_missing_tools", tool=tool_name, missing=plan.missing)
        return plan

    def _visit(
        self,
        tool_name: str,
        arguments: dict,
        context: ToolContext,
        plan: ChainPlan,
        stack: list[str],
        heights: dict[str, int],
    ) -> int:
        """Walk below `tool_name`; returns the longest path starting at it."""
        if tool_name in stack:
            cycle = stack[stack.index(tool_name):] + [tool_name]
            raise ChainCycleDetectedError(cycle)
        if not self._registry.has(tool_name):
            if tool_name not in plan.missing:
                plan.missing.append(tool_name)
            if stack:
                plan.warnings.append(f"{stack[-1]} depends on unregistered tool {tool_name}")
            return 1
        if tool_name in heights:
            return heights[tool_name]

        tool = self._registry.get(tool_name)
        planned = plan.tools.setdefault(tool_name, PlannedTool(tool_name, dict(arguments)))

        height = 1
        stack.append(tool_name)
        try:
            for dep in tool.dependencies:
                if not dep.applies(arguments, context):
                    continue
                dep_args = dep.arguments_for(arguments, context)
                if dep_args is None:
                    continue
                if dep.tool_name not in planned.dependencies:
                    planned.dependencies.append(dep.tool_name)
                    plan.edges.append((tool_name, dep.tool_name))
                below = self._visit(dep.tool_name, dep_args, context, plan, stack, heights)
                height = max(height, below + 1)
        finally:
            stack.pop()

        heights[tool_name] = height
        return height


def _topological_order(plan: ChainPlan) -> list[str]:
    order: list[str] = []
    seen: set[str] = set()

    def visit(name: str) -> None:
        if name in seen:
            return
        seen.add(name)
        planned = plan.tools.get(name)
        for dep in planned.dependencies if planned else ():
            visit(dep)
        if name in plan.tools:
            order.append(name)

    visit(plan.main_tool)
    return order
