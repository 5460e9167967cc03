from __future__ import annotations

from typing import TYPE_CHECKING

from toolhub.data.provider import EntityReadProvider
from toolhub.data.query import Filter, FilterOp, ReadOptions

if TYPE_CHECKING:
    from sqlalchemy import Select

    from toolhub.tools.context import ToolContext

_ID_OPS = frozenset({FilterOp.eq, FilterOp.ne, FilterOp.in_})
_NULLABLE_ID_OPS = _ID_OPS | {FilterOp.is_null}
_DATE_OPS = frozenset(
    {FilterOp.eq, FilterOp.ne, FilterOp.gte, FilterOp.lte, FilterOp.between, FilterOp.is_null}
)
_TIMESTAMP_OPS = frozenset({FilterOp.gte, FilterOp.lte, FilterOp.between})


class PlannerTaskProvider(EntityReadProvider):
    """Planner tasks. Exposes a virtual 'status' filter over is_done."""

    KEY = "task"
    MODEL = "planner.task"

    @property
    def key(self) -> str:
        return self.KEY

    @property
    def model(self) -> str:
        return self.MODEL

    def readable_fields(self) -> list[str]:
        return [
            "id", "uuid", "title", "description", "due_date", "is_done", "is_frog",
            "story_points", "priority", "order", "created_at", "updated_at", "user_id",
            "user_in_charge_id", "team_id", "project_id", "task_group_id",
        ]

    def allowed_filters(self) -> dict[str, frozenset[FilterOp]]:
        return {
            "id": _ID_OPS,
            "title": frozenset({FilterOp.eq, FilterOp.ne, FilterOp.like}),
            "is_done": frozenset({FilterOp.eq}),
            "is_frog": frozenset({FilterOp.eq}),
            "due_date": _DATE_OPS,
            "user_id": _ID_OPS,
            "user_in_charge_id": _NULLABLE_ID_OPS,
            "team_id": _ID_OPS,
            "project_id": _NULLABLE_ID_OPS,
            "task_group_id": _NULLABLE_ID_OPS,
            "created_at": _TIMESTAMP_OPS,
            "updated_at": _TIMESTAMP_OPS,
        }

    def allowed_sorts(self) -> list[str]:
        return ["id", "title", "due_date", "created_at", "updated_at", "order"]

    def relations_whitelist(self) -> list[str]:
        return ["user", "team", "project", "task_group", "user_in_charge"]

    def search_fields(self) -> list[str]:
        return ["title", "description"]

    def default_projection(self) -> list[str]:
        return ["id", "title", "description", "due_date", "is_done", "is_frog"]

    def team_scoped_query(self, context: ToolContext) -> Select:
        return self.scope_to_team(self.base_query(), context)

    def apply_domain_defaults(
        self, query: Select, options: ReadOptions
    ) -> tuple[Select, ReadOptions]:
        # Open tasks only, unless the caller asked about is_done explicitly.
        if "is_done" not in options.filtered_fields():
            query = query.where(self.column("is_done").is_(False))
        if not options.sort:
            query = query.order_by(
                self.column("due_date").asc(), self.column("created_at").desc()
            )
        return query, options

    def map_filter(self, filter_: Filter) -> Filter | None:
        if filter_.field != "status":
            return filter_
        value = filter_.value
        if value is None:
            return None

        if filter_.op is FilterOp.in_ and isinstance(value, list | tuple):
            has_completed = any(str(v).lower() == "completed" for v in value)
            return Filter(field="is_done", op=FilterOp.eq, value=has_completed)

        completed = value.lower() == "completed" if isinstance(value, str) else bool(value)
        if filter_.op is FilterOp.eq:
            return Filter(field="is_done", op=FilterOp.eq, value=completed)
        if filter_.op is FilterOp.ne:
            return Filter(field="is_done", op=FilterOp.eq, value=not completed)
        return None
