from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

APP = "plugdex"


def config_dir() -> Path:
    """
    Cross-platform config directory:
      - Windows: %APPDATA%\\plugdex
      - macOS/Linux: $XDG_CONFIG_HOME/plugdex or ~/.config/plugdex
    """
    if os.name == "nt":
        base = os.environ.get("APPDATA") or str(Path.home())
        return Path(base) / APP
    return Path(os.environ.get("XDG_CONFIG_HOME", str(Path.home() / ".config"))) / APP


def config_path() -> Path:
    return config_dir() / "config.json"


def default_root() -> Path:
    return Path.home() / f".{APP}"


def _as_bool(value: object) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _as_int(value: object, default: int) -> int:
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass
class Settings:
    root: str = ""                 # empty = ~/.plugdex
    index_url: str = ""            # remote index document, empty = none
    timeout_s: int = 30
    update_index_on_upgrade: bool = True

    @staticmethod
    def load(path: Optional[Path] = None) -> "Settings":
        path = path or config_path()

        data: dict = {}

        if path.exists():
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, ValueError):
                data = {}
        if not isinstance(data, dict):
            data = {}

        s = Settings(
            root=str(data.get("root", Settings.root)),
            index_url=str(data.get("index_url", Settings.index_url)),
            timeout_s=_as_int(data.get("timeout_s"), Settings.timeout_s),
            update_index_on_upgrade=_as_bool(
                data.get("update_index_on_upgrade", Settings.update_index_on_upgrade)
            ),
        )

        # Environment overrides (highest priority)
        s.root = os.environ.get("PLUGDEX_ROOT", s.root)
        s.index_url = os.environ.get("PLUGDEX_INDEX_URL", s.index_url)
        timeout = os.environ.get("PLUGDEX_TIMEOUT")
        if timeout:
            s.timeout_s = _as_int(timeout, s.timeout_s)

        return s

    def save(self, path: Optional[Path] = None) -> Path:
        path = path or config_path()
        path.parent.mkdir(parents=True, exist_ok=True)

        payload = {
            "root": self.root,
            "index_url": self.index_url,
            "timeout_s": self.timeout_s,
            "update_index_on_upgrade": self.update_index_on_upgrade,
        }
        path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        return path

    def paths(self) -> "Paths":
        return Paths(Path(self.root).expanduser() if self.root else default_root())


@dataclass(frozen=True)
class Paths:
    """On-disk layout below the plugdex root directory."""
    root: Path

    @property
    def index_path(self) -> Path:
        return self.root / "index"

    @property
    def index_plugins_path(self) -> Path:
        return self.index_path / "plugins"

    @property
    def receipts_path(self) -> Path:
        return self.root / "receipts"

    @property
    def store_path(self) -> Path:
        return self.root / "store"

    @property
    def bin_path(self) -> Path:
        return self.root / "bin"

    @property
    def download_path(self) -> Path:
        return self.root / "downloads"

    def manifest_path(self, name: str) -> Path:
        return self.index_plugins_path / f"{name}.json"

    def receipt_path(self, name: str) -> Path:
        return self.receipts_path / f"{name}.json"

    def plugin_store_path(self, name: str) -> Path:
        return self.store_path / name

    def install_path(self, name: str, version: str) -> Path:
        return self.plugin_store_path(name) / version

    def ensure_dirs(self) -> None:
        for p in (
            self.index_plugins_path,
            self.receipts_path,
            self.store_path,
            self.bin_path,
            self.download_path,
        ):
            p.mkdir(parents=True, exist_ok=True)
