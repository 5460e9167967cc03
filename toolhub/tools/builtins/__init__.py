from __future__ import annotations

from typing import TYPE_CHECKING

from toolhub.tools.builtins.context_info import ContextInfoTool
from toolhub.tools.builtins.current_time import CurrentTimeTool
from toolhub.tools.builtins.data_read import DataReadTool
from toolhub.tools.builtins.list_tools import ListToolsTool
from toolhub.tools.registry import ToolRegistry

if TYPE_CHECKING:
    from toolhub.data.reader import EntityReader


def register_builtins(
    registry: ToolRegistry,
    *,
    reader: EntityReader | None = None,
) -> None:
    """Register all built-in tools with the registry.

    DataReadTool is registered only when an EntityReader (database) is available.
    """
    registry.register(CurrentTimeTool())
    registry.register(ContextInfoTool())
    registry.register(ListToolsTool(registry))

    if reader is not None:
        registry.register(DataReadTool(reader))
