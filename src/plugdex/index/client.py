"""Index Client for plugdex.

Fetches the published plugin index and mirrors it into the local index
directory that the scanner reads from.
"""

from __future__ import annotations

from typing import Dict, List, Optional

import requests

from ..config import Paths, Settings
from ..errors import IndexRefreshError, ManifestError
from ..fileio import write_json_atomic
from ..logging_config import get_logger
from .manifest import Manifest

logger = get_logger(__name__)


class IndexClient:
    """Client for a plugin index published as a single JSON document.

    The document is either ``{"plugins": [<manifest>, ...]}`` or a bare
    list of manifests.
    """

    def __init__(
        self,
        settings: Settings,
        paths: Optional[Paths] = None,
        session: Optional[requests.Session] = None,
    ):
        self.settings = settings
        self.paths = paths or settings.paths()
        self._session = session or requests.Session()
        self._session.headers["Accept"] = "application/json"

    def fetch(self) -> List[Manifest]:
        """Download the index and return its valid manifests."""
        url = self.settings.index_url
        if not url:
            raise IndexRefreshError(
                "no plugin index configured; set index_url in the config "
                "file or PLUGDEX_INDEX_URL"
            )

        logger.debug("fetching plugin index from %s", url)
        try:
            response = self._session.get(url, timeout=self.settings.timeout_s)
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.HTTPError as e:
            raise IndexRefreshError(f"index request failed: {e}") from e
        except requests.exceptions.ConnectionError as e:
            raise IndexRefreshError(f"cannot connect to plugin index at {url}") from e
        except requests.exceptions.RequestException as e:
            raise IndexRefreshError(f"index request failed: {e}") from e
        except ValueError as e:
            raise IndexRefreshError(f"plugin index at {url} is not valid JSON") from e

        # Handle both response formats
        if isinstance(data, dict):
            items = data.get("plugins", [])
        else:
            items = data
        if not isinstance(items, list):
            raise IndexRefreshError(f"plugin index at {url} has no plugin list")

        manifests = []
        for item in items:
            try:
                manifest = Manifest.from_dict(item)
                manifest.validate()
            except ManifestError as e:
                logger.warning("ignoring invalid index entry: %s", e)
                continue
            manifests.append(manifest)
        return manifests

    def refresh_index(self) -> Dict[str, int]:
        """Mirror the remote index into the local index directory.

        Returns dict with counts of added, updated and removed manifests.
        """
        manifests = self.fetch()
        directory = self.paths.index_plugins_path
        try:
            directory.mkdir(parents=True, exist_ok=True)
            existing = {p.stem for p in directory.glob("*.json")}

            added = 0
            updated = 0
            published = set()
            for manifest in manifests:
                published.add(manifest.name)
                if manifest.name in existing:
                    updated += 1
                else:
                    added += 1
                write_json_atomic(self.paths.manifest_path(manifest.name), manifest.to_dict())

            removed = 0
            for name in existing - published:
                self.paths.manifest_path(name).unlink()
                removed += 1
        except OSError as e:
            raise IndexRefreshError(f"cannot update local index at {directory}: {e}") from e

        logger.debug("index refreshed: %d added, %d updated, %d removed", added, updated, removed)
        return {"added": added, "updated": updated, "removed": removed}
