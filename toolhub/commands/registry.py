"""Per-module command catalog and its export as LLM function schemas.

Modules register their commands during boot; the registry is frozen once
boot completes. Exported schema names are sanitized command keys, and the
reverse mapping is rebuilt on every export so that names from an older
export never resolve.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from types import MappingProxyType
from typing import Any

import structlog

from toolhub.infra.errors import CommandValidationError, RegistryFrozenError

logger = structlog.get_logger()

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9_-]")

# Intent verbs that never need a confirmation round-trip.
_AUTO_ALLOWED_KEYWORDS = ("list", "show", "get", "open", "query")


class Impact(StrEnum):
    low = "low"
    medium = "medium"
    high = "high"


@dataclass(frozen=True)
class CommandParameter:
    name: str
    type: str = "string"
    description: str = ""
    required: bool = False

    @classmethod
    def from_value(cls, value: CommandParameter | Mapping[str, Any]) -> CommandParameter:
        if isinstance(value, CommandParameter):
            return value
        return cls(
            name=str(value["name"]),
            type=str(value.get("type") or "string"),
            description=str(value.get("description") or ""),
            required=bool(value.get("required", False)),
        )


@dataclass(frozen=True)
class Command:
    key: str
    description: str = ""
    parameters: tuple[CommandParameter, ...] = ()
    impact: Impact = Impact.low
    confirm_required: bool | None = None
    scope: str | None = None
    examples: tuple[str, ...] = ()
    auto_allowed: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.key, str) or not self.key.strip():
            raise CommandValidationError()
        try:
            impact = Impact(self.impact)
        except ValueError:
            raise CommandValidationError(
                f"Command '{self.key}' has unknown impact '{self.impact}'",
                code="INVALID_IMPACT",
            ) from None
        object.__setattr__(self, "impact", impact)
        object.__setattr__(
            self, "parameters", tuple(CommandParameter.from_value(p) for p in self.parameters)
        )
        object.__setattr__(self, "examples", tuple(self.examples))
        if self.confirm_required is None:
            object.__setattr__(
                self, "confirm_required", self.impact in (Impact.medium, Impact.high)
            )

    @classmethod
    def from_value(cls, value: Command | Mapping[str, Any]) -> Command:
        """Accept either a Command or a plain declaration mapping.

        Mappings may use camelCase 'confirmRequired'/'autoAllowed' as well.
        """
        if isinstance(value, Command):
            return value
        if not isinstance(value, Mapping) or not value.get("key"):
            raise CommandValidationError()

        confirm = value.get("confirm_required", value.get("confirmRequired"))
        return cls(
            key=value["key"],
            description=value.get("description") or "",
            parameters=tuple(value.get("parameters") or ()),
            impact=value.get("impact") or Impact.low,
            confirm_required=None if confirm is None else bool(confirm),
            scope=value.get("scope"),
            examples=tuple(value.get("examples") or ()),
            auto_allowed=bool(value.get("auto_allowed", value.get("autoAllowed", False))),
        )


def sanitize_tool_name(key: str) -> str:
    """Invocation-safe name: every char outside [A-Za-z0-9_-] becomes '_'."""
    return _UNSAFE_NAME_CHARS.sub("_", key)


class CommandRegistry:
    def __init__(self) -> None:
        self._modules: dict[str, tuple[Command, ...]] = {}
        self._name_to_key: dict[str, str] = {}
        self._frozen = False

    def register(
        self, module_key: str, commands: Iterable[Command | Mapping[str, Any]]
    ) -> None:
        """Replace the module's command set. Validation happens before any change."""
        if self._frozen:
            raise RegistryFrozenError("CommandRegistry")
        parsed = tuple(Command.from_value(c) for c in commands)
        if module_key in self._modules:
            logger.info("command_module_replaced", module=module_key, commands=len(parsed))
        self._modules[module_key] = parsed

    def unregister(self, module_key: str) -> None:
        if self._frozen:
            raise RegistryFrozenError("CommandRegistry")
        self._modules.pop(module_key, None)

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def all(self) -> Mapping[str, tuple[Command, ...]]:
        return MappingProxyType(self._modules)

    def get_by_module(self, module_key: str) -> tuple[Command, ...]:
        return self._modules.get(module_key, ())

    def find_command_by_key(self, key: str) -> Command | None:
        for commands in self._modules.values():
            for command in commands:
                if command.key == key:
                    return command
        return None

    def requires_confirm(self, command: Command | str) -> bool:
        """Explicit confirm_required wins; otherwise medium/high impact confirms.

        Unknown command keys confirm (fail-closed).
        """
        if isinstance(command, str):
            found = self.find_command_by_key(command)
            if found is None:
                return True
            command = found
        return bool(command.confirm_required)

    def is_auto_allowed(self, intent: str) -> bool:
        """Read-style intents, or commands flagged auto_allowed, skip confirmation."""
        lowered = intent.lower()
        if any(keyword in lowered for keyword in _AUTO_ALLOWED_KEYWORDS):
            return True
        command = self.find_command_by_key(intent)
        return command is not None and command.auto_allowed

    def export_function_schemas(self) -> list[dict[str, Any]]:
        schemas: list[dict[str, Any]] = []
        name_to_key: dict[str, str] = {}

        for module_key, commands in self._modules.items():
            for command in commands:
                name = sanitize_tool_name(command.key)
                if name in name_to_key and name_to_key[name] != command.key:
                    logger.warning(
                        "command_name_collision",
                        name=name,
                        key=command.key,
                        previous_key=name_to_key[name],
                    )
                name_to_key[name] = command.key

                properties = {
                    p.name: {"type": p.type, "description": p.description}
                    for p in command.parameters
                }
                required = [p.name for p in command.parameters if p.required]
                schemas.append({
                    "name": name,
                    "description": f"{command.description} (module: {module_key})",
                    "parameters": {
                        "type": "object",
                        "properties": properties,
                        "required": required,
                    },
                    "scope": command.scope,
                    "examples": list(command.examples),
                })

        self._name_to_key = name_to_key
        return schemas

    def resolve_key_from_tool_name(self, name: str) -> str | None:
        """Reverse lookup against the most recent export_function_schemas() call."""
        return self._name_to_key.get(name)

    def export_openai_tools(self) -> list[dict[str, Any]]:
        """Schemas in OpenAI tool format, without the internal hint fields."""
        return [
            {
                "type": "function",
                "function": {
                    "name": schema["name"],
                    "description": schema["description"],
                    "parameters": schema["parameters"],
                },
            }
            for schema in self.export_function_schemas()
        ]
