from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType

import structlog

from toolhub.infra.errors import RegistryFrozenError, ToolNotFoundError
from toolhub.tools.base import BaseTool

logger = structlog.get_logger()


class ToolRegistry:
    """Catalog of tools keyed by name.

    Populated during boot, then frozen. After freeze() the registry is
    read-only and safe to share between concurrent requests.
    """

    def __init__(self) -> None:
        self._tools: dict[str, BaseTool] = {}
        self._frozen = False

    def register(self, tool: BaseTool) -> None:
        """Register a tool. A second registration under the same name wins."""
        if self._frozen:
            raise RegistryFrozenError("ToolRegistry")
        if tool.name in self._tools:
            logger.warning("tool_overwritten", tool_name=tool.name)
        self._tools[tool.name] = tool
        logger.debug("tool_registered", tool_name=tool.name)

    def has(self, name: str) -> bool:
        return name in self._tools

    def get(self, name: str) -> BaseTool:
        """Get a tool by exact name. Raises ToolNotFoundError if absent."""
        tool = self._tools.get(name)
        if tool is None:
            raise ToolNotFoundError(name)
        return tool

    def all(self) -> Mapping[str, BaseTool]:
        return MappingProxyType(self._tools)

    def names(self) -> list[str]:
        return list(self._tools)

    def freeze(self) -> None:
        self._frozen = True
        logger.info("tool_registry_frozen", tools=len(self._tools))

    @property
    def frozen(self) -> bool:
        return self._frozen

    def get_tools_schema(self) -> list[dict]:
        """Return all tools in OpenAI function calling format."""
        return [tool.to_function_schema() for tool in self._tools.values()]
