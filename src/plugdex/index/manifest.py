"""Plugin manifest models.

A manifest is the index's definition of the latest version of a plugin,
stored as one JSON document per plugin.
"""

from __future__ import annotations

import platform as _platform
import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from packaging.version import InvalidVersion, Version

from ..errors import ManifestError, PlatformNotSupportedError

_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")

_ARCH_ALIASES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "i386": "386",
    "i686": "386",
    "armv7l": "arm",
}


def current_platform() -> Tuple[str, str]:
    """Return the (os, arch) pair for the running interpreter."""
    os_name = _platform.system().lower()
    machine = _platform.machine().lower()
    return os_name, _ARCH_ALIASES.get(machine, machine)


def is_valid_name(name: str) -> bool:
    """Check a plugin name is safe to use as a file name."""
    return bool(name) and bool(_NAME_RE.match(name)) and ".." not in name


def parse_version(version: str) -> Version:
    """Parse a manifest version such as ``v1.2.3``."""
    try:
        return Version(version)
    except InvalidVersion:
        raise ManifestError(f"invalid version {version!r}")


@dataclass
class Platform:
    """A downloadable artifact for one os/arch combination."""
    uri: str
    sha256: str
    bin: str
    os: str = ""        # empty = any
    arch: str = ""      # empty = any

    def matches(self, os_name: str, arch: str) -> bool:
        if self.os and self.os.lower() != os_name:
            return False
        if self.arch and self.arch.lower() != arch:
            return False
        return True

    def to_dict(self) -> dict:
        return {
            "os": self.os,
            "arch": self.arch,
            "uri": self.uri,
            "sha256": self.sha256,
            "bin": self.bin,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Platform":
        return cls(
            uri=data.get("uri", ""),
            sha256=data.get("sha256", ""),
            bin=data.get("bin", ""),
            os=data.get("os", ""),
            arch=data.get("arch", ""),
        )


@dataclass
class Manifest:
    """Index entry describing the newest version of a plugin."""
    name: str
    version: str
    short_description: str = ""
    description: str = ""
    homepage: str = ""
    caveats: str = ""
    platforms: List[Platform] = field(default_factory=list)

    def to_dict(self) -> dict:
        data = {
            "name": self.name,
            "version": self.version,
            "shortDescription": self.short_description,
            "platforms": [p.to_dict() for p in self.platforms],
        }
        # Only include optional text fields if set
        if self.description:
            data["description"] = self.description
        if self.homepage:
            data["homepage"] = self.homepage
        if self.caveats:
            data["caveats"] = self.caveats
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Manifest":
        if not isinstance(data, dict):
            raise ManifestError("manifest must be a JSON object")
        platforms = data.get("platforms") or []
        if not isinstance(platforms, list):
            raise ManifestError("manifest platforms must be a list")
        return cls(
            name=str(data.get("name", "")),
            version=str(data.get("version", "")),
            short_description=data.get("shortDescription", ""),
            description=data.get("description", ""),
            homepage=data.get("homepage", ""),
            caveats=data.get("caveats", ""),
            platforms=[Platform.from_dict(p) for p in platforms if isinstance(p, dict)],
        )

    @property
    def parsed_version(self) -> Version:
        return parse_version(self.version)

    def validate(self) -> None:
        """Raise ManifestError if the manifest cannot be installed from."""
        if not is_valid_name(self.name):
            raise ManifestError(f"invalid plugin name {self.name!r}")
        if not self.version:
            raise ManifestError(f"plugin {self.name!r} has no version")
        parse_version(self.version)
        if not self.platforms:
            raise ManifestError(f"plugin {self.name!r} declares no platforms")
        for p in self.platforms:
            if not p.uri or not p.sha256 or not p.bin:
                raise ManifestError(
                    f"plugin {self.name!r} has a platform without uri, sha256 or bin"
                )

    def match_platform(
        self,
        os_name: Optional[str] = None,
        arch: Optional[str] = None,
    ) -> Platform:
        """Return the first platform entry matching os/arch (default: current)."""
        if os_name is None or arch is None:
            cur_os, cur_arch = current_platform()
            os_name = os_name or cur_os
            arch = arch or cur_arch
        for p in self.platforms:
            if p.matches(os_name, arch):
                return p
        raise PlatformNotSupportedError(
            f"plugin {self.name!r} does not offer an installation for {os_name}/{arch}"
        )
