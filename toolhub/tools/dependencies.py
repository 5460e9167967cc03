"""Prerequisite declarations a tool exposes to the orchestrator.

Two forms are supported on the same dataclass:

* callback form: ``condition``/``args`` decide whether and how the
  prerequisite runs, ``merge_result`` folds its result into the dependent
  tool's arguments;
* resolver form: ``requires`` lists argument fields whose absence
  triggers the prerequisite, ``select_strategy`` picks one candidate from
  its result and ``map`` copies values out of it with a simple JSONPath.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from toolhub.infra.errors import DependencyResolutionError

if TYPE_CHECKING:
    from toolhub.tools.context import ToolContext
    from toolhub.tools.result import ToolResult

Condition = Callable[[dict, "ToolContext"], bool]
ArgsBuilder = Callable[[dict, "ToolContext"], dict | None]
# (dependent tool name, prerequisite result, dependent arguments) -> new arguments,
# or None when the user has to choose
MergeResult = Callable[[str, "ToolResult", dict], dict | None]

LIST_KEYS = ("teams", "data", "items", "results", "list")

_PATH_SPLIT = re.compile(r"[.\[\]]+")


class SelectStrategy(StrEnum):
    auto_if_single = "auto_if_single"
    ask_user = "ask_user"
    fail = "fail"


@dataclass(frozen=True)
class Dependency:
    tool_name: str
    condition: Condition | None = None
    args: ArgsBuilder | None = None
    merge_result: MergeResult | None = None
    requires: tuple[str, ...] = ()
    select_strategy: SelectStrategy = SelectStrategy.auto_if_single
    map: Mapping[str, str] = field(default_factory=dict)

    @property
    def is_resolver(self) -> bool:
        return bool(self.requires)

    def applies(self, arguments: dict, context: ToolContext) -> bool:
        """Whether the prerequisite should run for these arguments."""
        if self.is_resolver:
            return bool(missing_fields(self.requires, arguments))
        if self.condition is not None:
            return bool(self.condition(arguments, context))
        return True

    def arguments_for(self, arguments: dict, context: ToolContext) -> dict | None:
        """Arguments for the prerequisite itself. None skips it."""
        if self.is_resolver or self.args is None:
            return {}
        return self.args(arguments, context)

    def feed_forward(
        self, dependent: str, result: ToolResult, arguments: dict
    ) -> dict | None:
        """Fold a successful prerequisite result into the dependent's arguments.

        Returns None when a human has to pick among several candidates.
        """
        if self.merge_result is not None:
            return self.merge_result(dependent, result, dict(arguments))
        if not self.is_resolver:
            return arguments

        selected = select_candidate(self.select_strategy, result.data)
        if selected is None:
            return None
        return apply_mapping(self.map, selected, arguments)


def missing_fields(requires: tuple[str, ...], arguments: Mapping[str, Any]) -> list[str]:
    return [name for name in requires if arguments.get(name) is None]


def extract_list(data: Any) -> list:
    """Candidate list inside a result payload.

    Accepts a bare list of objects, a mapping with one of LIST_KEYS holding
    a list, or falls back to treating the payload as a single candidate.
    """
    if isinstance(data, list):
        return data
    if not isinstance(data, Mapping):
        return []
    for key in LIST_KEYS:
        value = data.get(key)
        if isinstance(value, list):
            return value
    return [data]


def select_candidate(strategy: SelectStrategy | str, data: Any) -> Any | None:
    strategy = SelectStrategy(strategy)
    if strategy is SelectStrategy.ask_user:
        return None

    candidates = extract_list(data)
    if strategy is SelectStrategy.fail:
        if len(candidates) != 1:
            raise DependencyResolutionError(
                f"Dependency resolution failed: expected one candidate, got {len(candidates)}"
            )
        return candidates[0]

    if len(candidates) == 1:
        return candidates[0]
    if len(candidates) > 1:
        return None
    return data if isinstance(data, Mapping) else {"data": data}


def json_path(path: str, data: Any) -> Any | None:
    """Resolve '$.teams[0].id' / '$.id' / '$[0].id' against data. None when absent."""
    remainder = path.lstrip("$").lstrip(".")
    if not remainder:
        return data

    current = data
    for segment in _PATH_SPLIT.split(remainder):
        if not segment:
            continue
        if isinstance(current, Mapping) and segment in current:
            current = current[segment]
        elif (
            isinstance(current, list | tuple)
            and segment.isdigit()
            and int(segment) < len(current)
        ):
            current = current[int(segment)]
        else:
            return None
    return current


def apply_mapping(mapping: Mapping[str, str], selected: Any, arguments: dict) -> dict:
    mapped = dict(arguments)
    for target, path in mapping.items():
        value = json_path(path, selected)
        if value is not None:
            mapped[target] = value
    return mapped
