"""Model catalog: which entity models this deployment can actually query.

Feature modules register their SQLAlchemy mapped classes under a model
identifier (e.g. 'planner.task'). Compiled providers are only activated
when the catalog knows their model.
"""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType

import structlog

from toolhub.data.provider import EntityReadProvider
from toolhub.data.providers.planner_task import PlannerTaskProvider
from toolhub.infra.errors import RegistryFrozenError

logger = structlog.get_logger()

COMPILED_PROVIDERS: tuple[type[EntityReadProvider], ...] = (PlannerTaskProvider,)


class ModelCatalog:
    def __init__(self, models: Mapping[str, type] | None = None) -> None:
        self._models: dict[str, type] = {}
        self._frozen = False
        for identifier, mapped_class in (models or {}).items():
            self.register(identifier, mapped_class)

    def register(self, identifier: str, mapped_class: type) -> None:
        if self._frozen:
            raise RegistryFrozenError("ModelCatalog")
        if not hasattr(mapped_class, "__table__"):
            raise TypeError(f"{mapped_class!r} is not a mapped class with a table")
        self._models[identifier] = mapped_class

    def resolve(self, identifier: str) -> type | None:
        return self._models.get(identifier)

    def has(self, identifier: str) -> bool:
        return identifier in self._models

    def identifiers(self) -> list[str]:
        return list(self._models)

    def all(self) -> Mapping[str, type]:
        return MappingProxyType(self._models)

    def freeze(self) -> None:
        self._frozen = True


def discover_optional_providers(
    catalog: ModelCatalog,
    candidates: tuple[type[EntityReadProvider], ...] = COMPILED_PROVIDERS,
) -> list[EntityReadProvider]:
    """Instantiate each compiled provider whose MODEL is present in the catalog."""
    found: list[EntityReadProvider] = []
    for provider_cls in candidates:
        identifier = provider_cls.MODEL
        mapped = catalog.resolve(identifier)
        if mapped is None:
            logger.debug("provider_unavailable", provider=provider_cls.__name__, model=identifier)
            continue
        found.append(provider_cls(mapped))
    return found
