"""Installer.

Downloads plugin artifacts, verifies them, unpacks them into the store and
keeps the install receipts and ``bin`` links in step.
"""

from __future__ import annotations

import hashlib
import shutil
import stat
import tarfile
import tempfile
import zipfile
from enum import Enum
from pathlib import Path
from typing import Optional
from urllib.parse import unquote, urlparse

import requests

from ..config import Paths
from ..errors import (
    ChecksumMismatchError,
    InstallError,
    ManifestError,
    ReceiptNotFoundError,
)
from ..index.manifest import Manifest, Platform, parse_version
from ..logging_config import get_logger
from .receipts import Receipt, ReceiptStore

logger = get_logger(__name__)

_CHUNK_SIZE = 64 * 1024


class UpgradeStatus(str, Enum):
    """Result of asking the installer to upgrade a plugin."""
    UPGRADED = "upgraded"
    ALREADY_CURRENT = "already-current"


def _is_within(base: Path, target: Path) -> bool:
    base = base.resolve()
    target = target.resolve()
    return target == base or base in target.parents


def _extract(archive: Path, dest: Path) -> None:
    """Unpack a zip or tar archive into ``dest``, or copy a bare file."""
    if zipfile.is_zipfile(archive):
        with zipfile.ZipFile(archive) as zf:
            for member in zf.namelist():
                if not _is_within(dest, dest / member):
                    raise InstallError(f"archive entry {member!r} escapes the install directory")
            zf.extractall(dest)
        return

    if tarfile.is_tarfile(str(archive)):
        with tarfile.open(archive) as tf:
            members = tf.getmembers()
            for member in members:
                if member.issym() or member.islnk():
                    raise InstallError(f"archive entry {member.name!r} is a link")
                if not _is_within(dest, dest / member.name):
                    raise InstallError(f"archive entry {member.name!r} escapes the install directory")
            if hasattr(tarfile, "data_filter"):
                tf.extractall(dest, members=members, filter="data")
            else:
                tf.extractall(dest, members=members)
        return

    shutil.copy2(archive, dest / archive.name)


class Installer:
    """Installs and upgrades plugins described by index manifests."""

    def __init__(
        self,
        paths: Paths,
        receipts: Optional[ReceiptStore] = None,
        session: Optional[requests.Session] = None,
        timeout_s: float = 30.0,
    ):
        self.paths = paths
        self.receipts = receipts or ReceiptStore(paths)
        self._session = session or requests.Session()
        self.timeout_s = timeout_s

    # --- Downloads ---

    def _download(self, uri: str, target: Path) -> str:
        """Copy ``uri`` to ``target`` and return the sha256 of its content."""
        digest = hashlib.sha256()
        parsed = urlparse(uri)

        if parsed.scheme in ("http", "https"):
            logger.debug("downloading %s", uri)
            try:
                with self._session.get(uri, stream=True, timeout=self.timeout_s) as response:
                    response.raise_for_status()
                    with open(target, "wb") as f:
                        for chunk in response.iter_content(chunk_size=_CHUNK_SIZE):
                            if chunk:
                                digest.update(chunk)
                                f.write(chunk)
            except requests.exceptions.RequestException as e:
                raise InstallError(f"failed to download {uri}: {e}") from e
            return digest.hexdigest()

        if parsed.scheme in ("file", ""):
            source = Path(unquote(parsed.path) if parsed.scheme == "file" else uri)
            logger.debug("copying %s", source)
            try:
                with open(source, "rb") as src, open(target, "wb") as f:
                    for chunk in iter(lambda: src.read(_CHUNK_SIZE), b""):
                        digest.update(chunk)
                        f.write(chunk)
            except OSError as e:
                raise InstallError(f"failed to read {uri}: {e}") from e
            return digest.hexdigest()

        raise InstallError(f"unsupported artifact uri {uri!r}")

    # --- Installation steps ---

    def _link(self, name: str, binary: Path) -> Path:
        """Expose the plugin binary as ``<root>/bin/<name>``."""
        self.paths.bin_path.mkdir(parents=True, exist_ok=True)
        link = self.paths.bin_path / name
        if link.is_symlink() or link.exists():
            link.unlink()
        try:
            link.symlink_to(binary)
        except OSError:
            # Symlinks may be unavailable (e.g. unprivileged Windows)
            shutil.copy2(binary, link)
        return link

    def _install_files(self, manifest: Manifest, platform: Platform) -> Path:
        """Download, verify and unpack the artifact; return the binary path."""
        dest = self.paths.install_path(manifest.name, manifest.version)
        self.paths.ensure_dirs()
        self.paths.plugin_store_path(manifest.name).mkdir(parents=True, exist_ok=True)

        with tempfile.TemporaryDirectory(dir=str(self.paths.download_path)) as tmp:
            filename = Path(urlparse(platform.uri).path).name or manifest.name
            artifact = Path(tmp) / filename
            checksum = self._download(platform.uri, artifact)
            if checksum.lower() != platform.sha256.lower():
                raise ChecksumMismatchError(
                    f"checksum mismatch for {filename}: expected {platform.sha256}, got {checksum}"
                )

            staging = Path(tmp) / "staging"
            staging.mkdir()
            try:
                _extract(artifact, staging)
            except (OSError, zipfile.BadZipFile, tarfile.TarError) as e:
                raise InstallError(f"failed to unpack {filename}: {e}") from e

            binary = staging / platform.bin
            if not _is_within(staging, binary) or not binary.is_file():
                raise InstallError(
                    f"plugin {manifest.name!r} artifact does not contain {platform.bin!r}"
                )

            if dest.exists():
                shutil.rmtree(dest)
            shutil.move(str(staging), str(dest))

        binary = dest / platform.bin
        mode = binary.stat().st_mode
        binary.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return binary

    def _install(self, manifest: Manifest) -> None:
        platform = manifest.match_platform()
        try:
            binary = self._install_files(manifest, platform)
            self._link(manifest.name, binary)
        except OSError as e:
            raise InstallError(f"failed to install plugin {manifest.name!r}: {e}") from e
        self.receipts.store(Receipt.for_manifest(manifest, platform))
        logger.debug("installed %s %s to %s", manifest.name, manifest.version, binary)

    # --- Public API ---

    def install(self, manifest: Manifest) -> None:
        """Install a plugin that is not installed yet."""
        if self.receipts.is_installed(manifest.name):
            raise InstallError(
                f'plugin "{manifest.name}" is already installed, use upgrade instead'
            )
        self._install(manifest)

    def upgrade(self, manifest: Manifest) -> UpgradeStatus:
        """Bring an installed plugin to the manifest's version.

        Returns ALREADY_CURRENT when the installed version is not older
        than the manifest's. Any failure raises a PlugdexError.
        """
        try:
            receipt = self.receipts.load(manifest.name)
        except ReceiptNotFoundError as e:
            raise InstallError(
                f'failed to load install receipt for plugin "{manifest.name}": {e}'
            ) from e

        try:
            current = parse_version(receipt.version)
        except ManifestError as e:
            raise InstallError(
                f'failed to parse installed version of plugin "{manifest.name}": {e}'
            ) from e
        new = manifest.parsed_version

        if not current < new:
            logger.debug("%s: installed %s, index has %s", manifest.name, receipt.version, manifest.version)
            return UpgradeStatus.ALREADY_CURRENT

        self._install(manifest)

        old_dir = self.paths.install_path(manifest.name, receipt.version)
        if receipt.version != manifest.version and old_dir.exists():
            try:
                shutil.rmtree(old_dir)
            except OSError as e:
                raise InstallError(
                    f"failed to remove old version {receipt.version} of {manifest.name!r}: {e}"
                ) from e
        return UpgradeStatus.UPGRADED

    def uninstall(self, name: str) -> None:
        """Remove the plugin's files, bin link and receipt."""
        if not self.receipts.is_installed(name):
            raise ReceiptNotFoundError(name)

        link = self.paths.bin_path / name
        try:
            if link.is_symlink() or link.exists():
                link.unlink()
            store = self.paths.plugin_store_path(name)
            if store.exists():
                shutil.rmtree(store)
        except OSError as e:
            raise InstallError(f"failed to uninstall plugin {name!r}: {e}") from e
        self.receipts.remove(name)

