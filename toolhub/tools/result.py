from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any


@dataclass(frozen=True)
class ErrorInfo:
    code: str
    message: str


@dataclass(frozen=True)
class ToolResult:
    """Terminal outcome of a tool invocation.

    Exactly one of data/error is meaningful: success results carry data,
    failed results carry an ErrorInfo. A result is never fed back into
    the pipeline as input.
    """

    success: bool
    data: Any = None
    error: ErrorInfo | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    @classmethod
    def ok(cls, data: Any = None, metadata: Mapping[str, Any] | None = None) -> ToolResult:
        return cls(success=True, data=data, metadata=metadata or {})

    @classmethod
    def fail(
        cls,
        message: str,
        code: str = "EXECUTION_ERROR",
        metadata: Mapping[str, Any] | None = None,
    ) -> ToolResult:
        return cls(
            success=False,
            error=ErrorInfo(code=code, message=message),
            metadata=metadata or {},
        )

    @property
    def error_code(self) -> str | None:
        return self.error.code if self.error else None

    @property
    def error_message(self) -> str | None:
        return self.error.message if self.error else None

    def with_metadata(self, updates: Mapping[str, Any]) -> ToolResult:
        merged = dict(self.metadata)
        merged.update(updates)
        return ToolResult(
            success=self.success, data=self.data, error=self.error, metadata=merged
        )

    def to_dict(self) -> dict[str, Any]:
        """Render for a JSON response: {"ok": ..., "data"|"error": ...}."""
        if self.success:
            out: dict[str, Any] = {"ok": True, "data": self.data}
            if self.metadata:
                out["metadata"] = dict(self.metadata)
            return out
        error: dict[str, Any] = {"message": self.error_message, "code": self.error_code}
        error.update(self.metadata)
        return {"ok": False, "error": error}
