"""Installed-plugin state for plugdex.

- Install receipts (what is installed, at which version)
- Installer (download, verify, unpack, upgrade, uninstall)
"""

from .installer import Installer, UpgradeStatus
from .receipts import Receipt, ReceiptStore

__all__ = [
    "Installer",
    "Receipt",
    "ReceiptStore",
    "UpgradeStatus",
]
