from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from toolhub.tools.base import BaseTool, RiskLevel, ToolCategory
from toolhub.tools.result import ToolResult

if TYPE_CHECKING:
    from toolhub.tools.context import ToolContext


class CurrentTimeTool(BaseTool):
    """Returns the current date and time."""

    @property
    def name(self) -> str:
        return "core.time.now"

    @property
    def description(self) -> str:
        return "Get the current date and time, optionally in a specific timezone."

    @property
    def category(self) -> ToolCategory:
        return ToolCategory.utility

    @property
    def risk_level(self) -> RiskLevel:
        return RiskLevel.low

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "timezone": {
                    "type": "string",
                    "description": (
                        "IANA timezone name, e.g. 'Europe/Berlin'. "
                        "Defaults to UTC."
                    ),
                },
            },
            "required": [],
        }

    async def execute(self, arguments: dict, context: ToolContext) -> ToolResult:
        tz_name = arguments.get("timezone") or "UTC"
        try:
            if tz_name == "UTC":
                tz = UTC
            else:
                tz = ZoneInfo(tz_name)
        except (ZoneInfoNotFoundError, ValueError):
            return ToolResult.fail(f"Unknown timezone: {tz_name}", "INVALID_TIMEZONE")

        now = datetime.now(tz)
        return ToolResult.ok({
            "time": now.strftime("%Y-%m-%d %H:%M:%S"),
            "timezone": tz_name,
            "iso": now.isoformat(),
        })
