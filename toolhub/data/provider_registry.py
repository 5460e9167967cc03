from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType
from typing import TYPE_CHECKING

import structlog

from toolhub.infra.errors import RegistryFrozenError

if TYPE_CHECKING:
    from toolhub.data.provider import EntityReadProvider

logger = structlog.get_logger()


class ProviderRegistry:
    """Entity key -> read provider. Later registrations replace earlier ones."""

    def __init__(self) -> None:
        self._providers: dict[str, EntityReadProvider] = {}
        self._frozen = False

    def register(self, provider: EntityReadProvider) -> None:
        if self._frozen:
            raise RegistryFrozenError("ProviderRegistry")
        if provider.key in self._providers:
            logger.warning(
                "provider_overwritten",
                entity=provider.key,
                previous=type(self._providers[provider.key]).__name__,
                current=type(provider).__name__,
            )
        self._providers[provider.key] = provider
        logger.debug("provider_registered", entity=provider.key, model=provider.model)

    def get(self, key: str) -> EntityReadProvider | None:
        return self._providers.get(key)

    def has(self, key: str) -> bool:
        return key in self._providers

    def keys(self) -> list[str]:
        return list(self._providers)

    def all(self) -> Mapping[str, EntityReadProvider]:
        return MappingProxyType(self._providers)

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen
