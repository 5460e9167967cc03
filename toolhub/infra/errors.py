"""Custom exception hierarchy for toolhub.

All application-specific exceptions inherit from ToolhubError,
which carries an error code that the executor copies into ToolResult errors.
"""

from __future__ import annotations


class ToolhubError(Exception):
    """Base exception for all toolhub errors."""

    def __init__(self, message: str, *, code: str = "INTERNAL_ERROR") -> None:
        super().__init__(message)
        self.code = code


class ToolNotFoundError(ToolhubError):
    """Lookup of a tool name that was never registered."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Tool '{name}' not found", code="TOOL_NOT_FOUND")
        self.name = name


class RegistryFrozenError(ToolhubError):
    """Mutation of a registry after the boot phase has ended."""

    def __init__(self, registry: str) -> None:
        super().__init__(
            f"{registry} is frozen; registration is only allowed during boot",
            code="REGISTRY_FROZEN",
        )


class ValidationError(ToolhubError):
    """Malformed registration or request data."""

    def __init__(self, message: str, *, code: str = "VALIDATION_ERROR") -> None:
        super().__init__(message, code=code)


class CommandValidationError(ValidationError):
    """Command declaration without a usable key or with an unknown impact."""

    def __init__(
        self, message: str = "Command requires key", *, code: str = "MISSING_KEY"
    ) -> None:
        super().__init__(message, code=code)


class ManifestValidationError(ValidationError):
    """Entity manifest missing mandatory entries (entity, model)."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="INVALID_MANIFEST")


class QueryValidationError(ValidationError):
    """Filter, sort or projection outside an entity's allowlist."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="VALIDATION_ERROR")


class AccessDeniedError(ToolhubError):
    """Tenant scoping refused the acting user.

    Raised from tool bodies and module-supplied providers that enforce their
    own tenant rules; the executor turns it into an ACCESS_DENIED result.
    The built-in readers never raise it: an out-of-scope row is ROW_NOT_FOUND.
    """

    def __init__(self, message: str = "Access denied") -> None:
        super().__init__(message, code="ACCESS_DENIED")


class ExecutionError(ToolhubError):
    """Generic tool-body failure."""

    def __init__(self, message: str, *, code: str = "EXECUTION_ERROR") -> None:
        super().__init__(message, code=code)


class ChainError(ToolhubError):
    """Fatal failure of a tool chain (never retried)."""

    def __init__(self, message: str, *, code: str = "CHAIN_ERROR") -> None:
        super().__init__(message, code=code)


class ChainDepthExceededError(ChainError):
    """Dependency chain deeper than the caller's max_depth."""

    def __init__(self, depth: int, max_depth: int) -> None:
        super().__init__(
            f"Tool chain depth {depth} exceeds max_depth {max_depth}",
            code="CHAIN_DEPTH_EXCEEDED",
        )
        self.depth = depth
        self.max_depth = max_depth


class ChainCycleDetectedError(ChainError):
    """Dependency graph contains a cycle (detected while planning)."""

    def __init__(self, cycle: list[str]) -> None:
        super().__init__(
            "Cyclic tool dependency: " + " -> ".join(cycle),
            code="CHAIN_CYCLE_DETECTED",
        )
        self.cycle = cycle


class DependencyResolutionError(ChainError):
    """A resolver dependency could not pick exactly one candidate."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="DEPENDENCY_UNRESOLVED")


class EntityNotFoundError(ToolhubError):
    """Data read against an entity key no provider is registered for."""

    def __init__(self, entity: str) -> None:
        super().__init__(f"Entity '{entity}' not found", code="ENTITY_NOT_FOUND")
        self.entity = entity


class RecordNotFoundError(ToolhubError):
    def __init__(self, entity: str, record_id: int | str) -> None:
        super().__init__(
            f"Record with ID {record_id} not found in '{entity}'", code="ROW_NOT_FOUND"
        )
