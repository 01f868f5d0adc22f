"""Install receipts.

A receipt records which version of a plugin is installed and the manifest
it was installed from. One JSON file per plugin under ``<root>/receipts``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional

from ..config import Paths
from ..errors import ManifestError, ReceiptError, ReceiptNotFoundError
from ..fileio import write_json_atomic
from ..index.manifest import Manifest, Platform


@dataclass
class Receipt:
    """Installed-version metadata for a single plugin."""
    name: str
    version: str
    manifest: Manifest
    platform: Optional[Platform] = None
    installed_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "version": self.version,
            "manifest": self.manifest.to_dict(),
            "platform": self.platform.to_dict() if self.platform else None,
            "installed_at": self.installed_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Receipt":
        platform = data.get("platform")
        return cls(
            name=data["name"],
            version=data["version"],
            manifest=Manifest.from_dict(data.get("manifest", {})),
            platform=Platform.from_dict(platform) if platform else None,
            installed_at=data.get("installed_at", ""),
        )

    @classmethod
    def for_manifest(cls, manifest: Manifest, platform: Optional[Platform] = None) -> "Receipt":
        return cls(
            name=manifest.name,
            version=manifest.version,
            manifest=manifest,
            platform=platform,
        )


class ReceiptStore:
    """Reads and writes receipts under ``<root>/receipts``."""

    def __init__(self, paths: Paths):
        self.paths = paths

    def _read(self, name: str) -> Receipt:
        path = self.paths.receipt_path(name)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            raise ReceiptNotFoundError(name)
        except (OSError, ValueError) as e:
            raise ReceiptError(f"cannot read receipt {path}: {e}") from e

        if not isinstance(data, dict):
            raise ReceiptError(f"corrupt receipt {path}: expected a JSON object")
        try:
            receipt = Receipt.from_dict(data)
        except (KeyError, TypeError, AttributeError, ManifestError) as e:
            raise ReceiptError(f"corrupt receipt {path}: {e}") from e
        if receipt.name != name:
            raise ReceiptError(
                f"receipt {path} is for plugin {receipt.name!r}, expected {name!r}"
            )
        return receipt

    def load(self, name: str) -> Receipt:
        """Load the receipt for ``name``; raises ReceiptNotFoundError if absent."""
        return self._read(name)

    def is_installed(self, name: str) -> bool:
        return self.paths.receipt_path(name).is_file()

    def list_installed(self) -> Dict[str, Receipt]:
        """Return all receipts keyed by plugin name.

        A missing receipts directory means nothing is installed. A receipt
        that cannot be read raises ReceiptError.
        """
        directory = self.paths.receipts_path
        if not directory.exists():
            return {}
        if not directory.is_dir():
            raise ReceiptError(f"receipts path {directory} is not a directory")

        installed: Dict[str, Receipt] = {}
        for path in sorted(directory.glob("*.json")):
            installed[path.stem] = self._read(path.stem)
        return installed

    def store(self, receipt: Receipt) -> None:
        """Create or replace the receipt for ``receipt.name``."""
        try:
            write_json_atomic(self.paths.receipt_path(receipt.name), receipt.to_dict())
        except OSError as e:
            raise ReceiptError(f"cannot write receipt for {receipt.name!r}: {e}") from e

    def remove(self, name: str) -> bool:
        """Delete the receipt for ``name``. Returns False if there was none."""
        path = self.paths.receipt_path(name)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise ReceiptError(f"cannot remove receipt {path}: {e}") from e
        return True
