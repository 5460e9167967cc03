from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from toolhub.data.manifest import EntityManifest, ManifestEntityProvider
from toolhub.infra.errors import ManifestValidationError

if TYPE_CHECKING:
    from toolhub.data.catalog import ModelCatalog
    from toolhub.data.provider_registry import ProviderRegistry

logger = structlog.get_logger()


class ManifestLoader:
    """Loads entity manifests (*.json) from one directory at boot.

    A bad file is logged and skipped; it never stops the remaining files
    from loading.
    """

    def __init__(self, directory: Path | str, catalog: ModelCatalog) -> None:
        self._directory = Path(directory)
        self._catalog = catalog

    def load(self) -> list[EntityManifest]:
        if not self._directory.is_dir():
            logger.info("manifest_dir_missing", path=str(self._directory))
            return []

        manifests: list[EntityManifest] = []
        for path in sorted(self._directory.glob("*.json")):
            try:
                document = json.loads(path.read_text(encoding="utf-8"))
                manifests.append(EntityManifest.from_dict(document))
            except (OSError, ValueError, ManifestValidationError) as e:
                logger.warning("manifest_skipped", path=str(path), error=str(e))
        return manifests

    def load_into(self, registry: ProviderRegistry) -> list[str]:
        """Register one ManifestEntityProvider per valid manifest; returns entity keys."""
        loaded: list[str] = []
        for manifest in self.load():
            if not self._catalog.has(manifest.model):
                logger.warning(
                    "manifest_model_unresolved", entity=manifest.entity, model=manifest.model
                )
            registry.register(ManifestEntityProvider(manifest, self._catalog))
            loaded.append(manifest.entity)
        logger.info("manifests_loaded", path=str(self._directory), entities=loaded)
        return loaded
