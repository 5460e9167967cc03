from __future__ import annotations

from typing import TYPE_CHECKING

from toolhub.tools.base import BaseTool, RiskLevel, ToolCategory
from toolhub.tools.result import ToolResult

if TYPE_CHECKING:
    from toolhub.tools.context import ToolContext


class ContextInfoTool(BaseTool):
    """Reports the acting user/team and whatever enrichment added to the context."""

    @property
    def name(self) -> str:
        return "core.context.get"

    @property
    def description(self) -> str:
        return (
            "Get the acting user and team for this request, plus the context "
            "metadata gathered before the call (recent tool usage, team activity)."
        )

    @property
    def category(self) -> ToolCategory:
        return ToolCategory.query

    @property
    def risk_level(self) -> RiskLevel:
        return RiskLevel.low

    @property
    def parameters(self) -> dict:
        return {"type": "object", "properties": {}, "required": []}

    async def execute(self, arguments: dict, context: ToolContext) -> ToolResult:
        user = context.acting_user
        team = context.acting_team
        return ToolResult.ok({
            "user": {"id": user.id, "name": user.name} if user else None,
            "team": {"id": team.id, "name": team.name} if team else None,
            "metadata": dict(context.metadata),
        })
