from __future__ import annotations

from abc import ABC, abstractmethod
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from toolhub.tools.context import ToolContext
    from toolhub.tools.dependencies import Dependency
    from toolhub.tools.result import ToolResult


class RiskLevel(StrEnum):
    """Tool-level risk classification.

    Undeclared tools default to 'high' (fail-closed).
    """

    low = "low"
    high = "high"


class ToolCategory(StrEnum):
    query = "query"
    action = "action"
    utility = "utility"


class BaseTool(ABC):
    """Abstract base class for tools.

    Subclasses are registered once at boot and shared across requests, so
    execute() must not keep per-request state on the instance.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique tool name (case-sensitive), e.g. 'core.teams.list'."""
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        """Human-readable description of what the tool does."""
        ...

    @property
    @abstractmethod
    def parameters(self) -> dict:
        """JSON Schema describing the tool's input parameters."""
        ...

    @property
    def category(self) -> ToolCategory:
        return ToolCategory.action

    @property
    def risk_level(self) -> RiskLevel:
        """Fail-closed default: high. Read-only tools should declare low."""
        return RiskLevel.high

    @property
    def timeout_seconds(self) -> float | None:
        """Per-tool timeout. None defers to ToolSettings."""
        return None

    @property
    def dependencies(self) -> tuple[Dependency, ...]:
        """Prerequisite tools the orchestrator runs before this one."""
        return ()

    @abstractmethod
    async def execute(self, arguments: dict, context: ToolContext) -> ToolResult:
        """Execute the tool with validated arguments and the request context.

        Raise a ToolhubError subclass (or any exception) to fail; the executor
        turns it into an error ToolResult.
        """
        ...

    def to_function_schema(self) -> dict:
        """OpenAI function calling format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }
