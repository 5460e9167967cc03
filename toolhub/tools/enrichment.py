"""Context enrichment pipeline.

Enrichers run sequentially in descending priority; each receives the
context produced by the previous one. An enricher owns exactly one
metadata namespace and may not touch any other key. Failures degrade
to a no-op for that enricher; they never abort the request.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

import structlog

from toolhub.infra.errors import RegistryFrozenError, ValidationError
from toolhub.tools.context import ToolContext

logger = structlog.get_logger()


class ContextEnricher(ABC):
    """Derives additional metadata for a ToolContext."""

    @property
    @abstractmethod
    def namespace(self) -> str:
        """Metadata key this enricher owns, e.g. 'team_context'."""
        ...

    @property
    def priority(self) -> int:
        """Higher runs first."""
        return 0

    @abstractmethod
    async def enrich(self, context: ToolContext) -> ToolContext:
        """Return a new context, or `context` itself when data is unavailable."""
        ...


class EnrichmentPipeline:
    def __init__(self) -> None:
        self._enrichers: list[ContextEnricher] = []
        self._frozen = False

    def register(self, enricher: ContextEnricher) -> None:
        if self._frozen:
            raise RegistryFrozenError("EnrichmentPipeline")
        namespaces = {e.namespace for e in self._enrichers}
        if enricher.namespace in namespaces:
            raise ValidationError(
                f"Enricher namespace already claimed: {enricher.namespace}",
                code="DUPLICATE_NAMESPACE",
            )
        self._enrichers.append(enricher)
        # sort is stable: equal priorities keep registration order
        self._enrichers.sort(key=lambda e: e.priority, reverse=True)

    def freeze(self) -> None:
        self._frozen = True

    @property
    def enrichers(self) -> tuple[ContextEnricher, ...]:
        return tuple(self._enrichers)

    async def enrich(self, context: ToolContext) -> ToolContext:
        current = context
        for enricher in self._enrichers:
            try:
                candidate = await enricher.enrich(current)
            except Exception:
                logger.warning(
                    "enrichment_degraded",
                    enricher=type(enricher).__name__,
                    namespace=enricher.namespace,
                    exc_info=True,
                )
                continue

            if not _only_touches(current, candidate, enricher.namespace):
                logger.warning(
                    "enrichment_rejected",
                    enricher=type(enricher).__name__,
                    namespace=enricher.namespace,
                )
                continue
            current = candidate
        return current


def _only_touches(before: ToolContext, after: ToolContext, namespace: str) -> bool:
    """True when `after` differs from `before` at most in metadata[namespace]."""
    if not isinstance(after, ToolContext):
        return False
    if after.acting_user != before.acting_user or after.acting_team != before.acting_team:
        return False
    keys = set(before.metadata) | set(after.metadata)
    for key in keys - {namespace}:
        if key not in before.metadata or key not in after.metadata:
            return False
        if before.metadata[key] != after.metadata[key]:
            return False
    return True
