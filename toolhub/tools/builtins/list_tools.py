from __future__ import annotations

from typing import TYPE_CHECKING

from toolhub.tools.base import BaseTool, RiskLevel, ToolCategory
from toolhub.tools.result import ToolResult

if TYPE_CHECKING:
    from toolhub.tools.context import ToolContext
    from toolhub.tools.registry import ToolRegistry


class ListToolsTool(BaseTool):
    """Lists registered tools, optionally narrowed by name prefix."""

    def __init__(self, registry: ToolRegistry) -> None:
        self._registry = registry

    @property
    def name(self) -> str:
        return "core.tools.list"

    @property
    def description(self) -> str:
        return "List the available tools with their descriptions and risk levels."

    @property
    def category(self) -> ToolCategory:
        return ToolCategory.query

    @property
    def risk_level(self) -> RiskLevel:
        return RiskLevel.low

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "prefix": {
                    "type": "string",
                    "description": "Only tools whose name starts with this, e.g. 'data.'",
                },
            },
            "required": [],
        }

    async def execute(self, arguments: dict, context: ToolContext) -> ToolResult:
        prefix = arguments.get("prefix") or ""
        tools = [
            {
                "name": tool.name,
                "description": tool.description,
                "category": str(tool.category),
                "risk_level": str(tool.risk_level),
                "dependencies": [d.tool_name for d in tool.dependencies],
            }
            for name, tool in sorted(self._registry.all().items())
            if name.startswith(prefix)
        ]
        return ToolResult.ok({"tools": tools, "count": len(tools)})
