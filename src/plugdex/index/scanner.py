"""Reads plugin manifests from the local index copy."""

from __future__ import annotations

import json
from typing import List

from ..config import Paths
from ..errors import ManifestError, PluginNotFoundError
from ..logging_config import get_logger
from .manifest import Manifest, is_valid_name

logger = get_logger(__name__)


class IndexScanner:
    """Looks up manifests under ``<root>/index/plugins``."""

    def __init__(self, paths: Paths):
        self.paths = paths

    def load_manifest(self, name: str) -> Manifest:
        """Load and validate the manifest for ``name``.

        Raises PluginNotFoundError if the index has no such plugin and
        ManifestError if the file exists but cannot be used.
        """
        if not is_valid_name(name):
            raise PluginNotFoundError(name)

        path = self.paths.manifest_path(name)
        logger.debug("reading manifest %s", path)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise PluginNotFoundError(name)
        except (OSError, UnicodeDecodeError) as e:
            raise ManifestError(f"cannot read {path}: {e}") from e

        try:
            data = json.loads(raw)
        except ValueError as e:
            raise ManifestError(f"malformed manifest {path}: {e}") from e

        manifest = Manifest.from_dict(data)
        if manifest.name != name:
            raise ManifestError(
                f"manifest {path} declares name {manifest.name!r}, expected {name!r}"
            )
        manifest.validate()
        return manifest

    def list_manifests(self) -> List[Manifest]:
        """Load every valid manifest in the index, sorted by name."""
        directory = self.paths.index_plugins_path
        if not directory.is_dir():
            return []

        manifests = []
        for path in sorted(directory.glob("*.json")):
            try:
                manifests.append(self.load_manifest(path.stem))
            except (ManifestError, PluginNotFoundError) as e:
                logger.warning("skipping index entry %s: %s", path.name, e)
        return manifests
