from __future__ import annotations

from typing import TYPE_CHECKING

from toolhub.infra.errors import ValidationError
from toolhub.tools.base import BaseTool, RiskLevel, ToolCategory
from toolhub.tools.result import ToolResult

if TYPE_CHECKING:
    from toolhub.data.reader import EntityReader
    from toolhub.tools.context import ToolContext

_OPTION_KEYS = ("filters", "sort", "fields", "page", "per_page")


class DataReadTool(BaseTool):
    """Generic read access to every entity registered with a read provider.

    Filters, sorts and projections are checked against the entity's
    allowlists; results are scoped to the acting team and PII is masked.
    """

    def __init__(self, reader: EntityReader) -> None:
        self._reader = reader

    @property
    def name(self) -> str:
        return "data.read"

    @property
    def description(self) -> str:
        return (
            "Read entity records. action=describe returns the allowed fields, filters "
            "and sorts of an entity; list/search return paginated records; get returns "
            "one record by id. Call describe first when unsure which filters exist."
        )

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
                "action": {
                    "type": "string",
                    "enum": ["describe", "list", "get", "search"],
                    "description": "What to do with the entity.",
                },
                "entity": {
                    "type": "string",
                    "description": "Entity key, e.g. 'task'.",
                },
                "filters": {
                    "type": "array",
                    "description": "Filters: [{field, op, value}], op one of "
                    "eq, ne, in, like, gte, lte, between, is_null.",
                    "items": {"type": "object"},
                },
                "sort": {
                    "type": "array",
                    "description": "Sort entries: [{field, dir: asc|desc}].",
                    "items": {"type": "object"},
                },
                "fields": {
                    "type": "array",
                    "description": "Projection; defaults to the entity's default fields.",
                    "items": {"type": "string"},
                },
                "query": {
                    "type": "string",
                    "description": "Search text (action=search).",
                },
                "id": {
                    "type": ["integer", "string"],
                    "description": "Record id (action=get).",
                },
                "page": {"type": "integer", "description": "1-based page number."},
                "per_page": {"type": "integer", "description": "Page size (max 200)."},
            },
            "required": ["action", "entity"],
        }

    async def execute(self, arguments: dict, context: ToolContext) -> ToolResult:
        action = arguments["action"]
        entity = arguments["entity"]
        options = {k: arguments[k] for k in _OPTION_KEYS if arguments.get(k) is not None}

        if action == "describe":
            data = self._reader.describe(entity)
        elif action == "list":
            data = await self._reader.list(entity, options, context)
        elif action == "get":
            if arguments.get("id") is None:
                raise ValidationError("field 'id' is required for action 'get'")
            data = await self._reader.get(entity, arguments["id"], context)
        elif action == "search":
            text = (arguments.get("query") or "").strip()
            if not text:
                raise ValidationError("field 'query' is required for action 'search'")
            data = await self._reader.search(entity, text, options, context)
        else:
            raise ValidationError(f"Unknown action '{action}'")

        return ToolResult.ok(data)
