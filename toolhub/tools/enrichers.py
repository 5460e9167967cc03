"""Built-in context enrichers backed by the tool execution history."""

from __future__ import annotations

from typing import TYPE_CHECKING

from toolhub.tools.enrichment import ContextEnricher

if TYPE_CHECKING:
    from toolhub.tools.context import ToolContext
    from toolhub.tracking.store import ExecutionHistory


class UserHistoryEnricher(ContextEnricher):
    """Adds the acting user's recent tool usage under 'user_history'."""

    def __init__(self, history: ExecutionHistory, *, limit: int = 10) -> None:
        self._history = history
        self._limit = limit

    @property
    def namespace(self) -> str:
        return "user_history"

    @property
    def priority(self) -> int:
        return 100

    async def enrich(self, context: ToolContext) -> ToolContext:
        if context.user_id is None:
            return context

        recent = await self._history.recent_for_user(context.user_id, limit=self._limit)
        total = await self._history.count_for_user(context.user_id)
        return context.with_metadata({
            self.namespace: {
                "recent_tools": [
                    {
                        "tool": e.tool_name,
                        "success": e.success,
                        "timestamp": e.created_at.isoformat(),
                    }
                    for e in recent
                ],
                "total_executions": total,
            }
        })


class TeamContextEnricher(ContextEnricher):
    """Adds team-wide tool statistics under 'team_context'."""

    def __init__(self, history: ExecutionHistory, *, limit: int = 5) -> None:
        self._history = history
        self._limit = limit

    @property
    def namespace(self) -> str:
        return "team_context"

    @property
    def priority(self) -> int:
        return 90

    async def enrich(self, context: ToolContext) -> ToolContext:
        if context.team_id is None:
            return context

        team_id = context.team_id
        recent = await self._history.recent_for_team(team_id, limit=self._limit)
        return context.with_metadata({
            self.namespace: {
                "total_executions": await self._history.count_for_team(team_id),
                "unique_tools": await self._history.unique_tools_for_team(team_id),
                "recent_activity": [
                    {"tool": e.tool_name, "timestamp": e.created_at.isoformat()}
                    for e in recent
                ],
            }
        })
