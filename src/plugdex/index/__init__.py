"""Plugin index for plugdex.

- Manifest models and platform matching
- Local index lookups
- Refreshing the local copy from the published index
"""

from .client import IndexClient
from .manifest import Manifest, Platform, current_platform
from .scanner import IndexScanner

__all__ = [
    "IndexClient",
    "IndexScanner",
    "Manifest",
    "Platform",
    "current_platform",
]
