from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any


@dataclass(frozen=True)
class UserRef:
    """Acting user as supplied by the authentication system."""

    id: int | str
    name: str = ""


@dataclass(frozen=True)
class TeamRef:
    """Acting team (tenant) as supplied by the authentication system."""

    id: int | str
    name: str = ""


@dataclass(frozen=True)
class ToolContext:
    """Immutable request context passed into every tool invocation.

    metadata is exposed read-only; enrichment and chaining derive a new
    context through with_metadata() instead of mutating this one.
    """

    acting_user: UserRef | None = None
    acting_team: TeamRef | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    @property
    def user_id(self) -> int | str | None:
        return self.acting_user.id if self.acting_user else None

    @property
    def team_id(self) -> int | str | None:
        return self.acting_team.id if self.acting_team else None

    def with_metadata(self, updates: Mapping[str, Any]) -> ToolContext:
        """Return a copy whose metadata is this one's updated with `updates`."""
        merged = dict(self.metadata)
        merged.update(updates)
        return ToolContext(
            acting_user=self.acting_user,
            acting_team=self.acting_team,
            metadata=merged,
        )

    def to_log_fields(self) -> dict[str, Any]:
        return {"user_id": self.user_id, "team_id": self.team_id}
