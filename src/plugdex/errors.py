"""Error types raised by plugdex."""

from __future__ import annotations

from typing import Optional


class PlugdexError(Exception):
    """Base type for plugdex failures."""


class PluginNotFoundError(PlugdexError):
    """Raised when a plugin has no manifest in the local index."""

    def __init__(self, name: str):
        super().__init__(f'plugin "{name}" does not exist in the plugin index')
        self.name = name


class ManifestError(PlugdexError):
    """Raised when a plugin manifest cannot be read or validated."""


class PlatformNotSupportedError(ManifestError):
    """Raised when a manifest has no artifact for the current platform."""


class ReceiptError(PlugdexError):
    """Raised when install receipts cannot be read or written."""


class ReceiptNotFoundError(ReceiptError):
    """Raised when a plugin has no install receipt."""

    def __init__(self, name: str):
        super().__init__(f'plugin "{name}" is not installed')
        self.name = name


class InstallError(PlugdexError):
    """Raised when downloading or installing a plugin fails."""


class ChecksumMismatchError(InstallError):
    """Raised when a downloaded artifact does not match its sha256."""


class IndexRefreshError(PlugdexError):
    """Raised when the local index copy cannot be refreshed."""


class BatchAbortedError(PlugdexError):
    """Raised when a batch operation stops on a fatal error.

    ``plugin`` names the plugin being processed when the batch stopped,
    or is None when the failure happened before any plugin was processed.
    """

    def __init__(self, message: str, plugin: Optional[str] = None):
        super().__init__(message)
        self.plugin = plugin
