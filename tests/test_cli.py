"""Tests for the plugdex command line."""

import hashlib
import io
import json
import tarfile
from pathlib import Path

import pytest
from unittest.mock import patch

from plugdex.cli import build_parser, run
from plugdex.config import Paths
from plugdex.errors import IndexRefreshError
from plugdex.installation.receipts import ReceiptStore


@pytest.fixture
def env(tmp_path, monkeypatch):
    """Point plugdex at a throwaway root and config directory."""
    root = tmp_path / "root"
    monkeypatch.setenv("PLUGDEX_ROOT", str(root))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.delenv("PLUGDEX_INDEX_URL", raising=False)
    monkeypatch.delenv("PLUGDEX_TIMEOUT", raising=False)
    return Paths(root), tmp_path


def publish(paths, artifacts, name, version):
    """Build an artifact for name/version and write its manifest to the local index."""
    artifacts.mkdir(exist_ok=True)
    tarball = artifacts / f"{name}-{version}.tar.gz"
    data = f"#!/bin/sh\necho {version}\n".encode()
    with tarfile.open(tarball, "w:gz") as tf:
        info = tarfile.TarInfo(name)
        info.size = len(data)
        tf.addfile(info, io.BytesIO(data))

    manifest = {
        "name": name,
        "version": version,
        "shortDescription": f"The {name} plugin",
        "platforms": [{
            "uri": str(tarball),
            "sha256": hashlib.sha256(tarball.read_bytes()).hexdigest(),
            "bin": name,
        }],
    }
    paths.index_plugins_path.mkdir(parents=True, exist_ok=True)
    paths.manifest_path(name).write_text(json.dumps(manifest), encoding="utf-8")


class TestParser:
    """Tests for argument parsing."""

    def test_upgrade_without_names(self):
        """Test `upgrade` with no plugin names."""
        args = build_parser().parse_args(["upgrade"])
        assert args.subcmd == "upgrade"
        assert args.names == []
        assert args.no_update_index is False

    def test_upgrade_with_names_and_flag(self):
        """Test names keep their order and the flag is parsed."""
        args = build_parser().parse_args(["upgrade", "foo", "bar", "--no-update-index"])
        assert args.names == ["foo", "bar"]
        assert args.no_update_index is True

    def test_install_requires_names(self):
        """Test `install` needs at least one name."""
        with pytest.raises(SystemExit):
            build_parser().parse_args(["install"])

    def test_no_subcommand(self, env, capsys):
        """Test running without a subcommand prints help."""
        assert run([]) == 2
        assert "usage: plugdex" in capsys.readouterr().out


class TestUpgradeCommand:
    """Tests for `plugdex upgrade`."""

    def test_nothing_installed(self, env, capsys):
        """Test upgrading with nothing installed is silent and succeeds."""
        assert run(["upgrade", "--no-update-index"]) == 0
        assert capsys.readouterr().err == ""

    def test_missing_plugin_by_name(self, env, capsys):
        """Test upgrading an unknown plugin by name fails."""
        assert run(["upgrade", "foo", "--no-update-index"]) == 1
        err = capsys.readouterr().err
        assert 'Error: plugin "foo" does not exist in the plugin index' in err

    def test_upgrade_installed_plugin(self, env, capsys):
        """Test a full install then upgrade through the CLI."""
        paths, tmp = env
        publish(paths, tmp / "artifacts", "foo", "v1.0.0")
        assert run(["install", "foo", "--no-update-index"]) == 0
        capsys.readouterr()

        publish(paths, tmp / "artifacts", "foo", "v1.1.0")
        assert run(["upgrade", "--no-update-index"]) == 0

        err = capsys.readouterr().err
        assert "Upgrading plugin: foo\nUpgraded plugin: foo\n" in err
        assert 'You installed plugin "foo" from the plugdex plugin index.' in err
        assert "Some plugins failed" not in err
        assert ReceiptStore(paths).load("foo").version == "v1.1.0"

    def test_already_current_all_plugins(self, env, capsys):
        """Test up-to-date plugins are skipped when upgrading everything."""
        paths, tmp = env
        publish(paths, tmp / "artifacts", "bar", "v1.0.0")
        assert run(["install", "bar", "--no-update-index"]) == 0
        capsys.readouterr()

        assert run(["upgrade", "--no-update-index"]) == 0
        assert capsys.readouterr().err == (
            "Upgrading plugin: bar\n"
            "Skipping plugin bar, it is already on the newest version\n"
        )

    def test_already_current_by_name_fails(self, env, capsys):
        """Test naming an up-to-date plugin is an error."""
        paths, tmp = env
        publish(paths, tmp / "artifacts", "bar", "v1.0.0")
        assert run(["install", "bar", "--no-update-index"]) == 0
        capsys.readouterr()

        assert run(["upgrade", "bar", "--no-update-index"]) == 1
        err = capsys.readouterr().err
        assert "newest version is already installed" in err

    def test_tolerated_failure_exits_zero(self, env, capsys):
        """Test a failure while upgrading everything still exits 0."""
        paths, tmp = env
        publish(paths, tmp / "artifacts", "a", "v1.0.0")
        publish(paths, tmp / "artifacts", "b", "v1.0.0")
        assert run(["install", "a", "b", "--no-update-index"]) == 0
        capsys.readouterr()

        publish(paths, tmp / "artifacts", "a", "v2.0.0")
        publish(paths, tmp / "artifacts", "b", "v2.0.0")
        # break a's new artifact
        (tmp / "artifacts" / "a-v2.0.0.tar.gz").write_bytes(b"corrupt")

        assert run(["upgrade", "--no-update-index"]) == 0
        err = capsys.readouterr().err
        assert 'WARNING: failed to upgrade plugin "a", skipping (error: checksum mismatch' in err
        assert "Upgraded plugin: b" in err
        assert err.rstrip().endswith("WARNING: Some plugins failed to upgrade, check logs above.")

    def test_corrupt_receipt(self, env, capsys):
        """Test a corrupt receipt is reported as an error, not a crash."""
        paths, _ = env
        paths.receipts_path.mkdir(parents=True)
        paths.receipt_path("foo").write_text("[]", encoding="utf-8")

        assert run(["upgrade", "--no-update-index"]) == 1
        err = capsys.readouterr().err
        assert "Error: failed to find all installed versions: corrupt receipt" in err

    def test_index_refresh_failure(self, env, capsys):
        """Test a failed index refresh aborts the upgrade."""
        assert run(["upgrade"]) == 1
        err = capsys.readouterr().err
        assert "Error: failed to update the local index: no plugin index configured" in err

    def test_refresh_disabled_in_config(self, env, capsys):
        """Test update_index_on_upgrade=false skips the refresh."""
        _, tmp = env
        config = tmp / "config" / "plugdex" / "config.json"
        config.parent.mkdir(parents=True)
        config.write_text(json.dumps({"update_index_on_upgrade": False}), encoding="utf-8")

        assert run(["upgrade"]) == 0

    def test_refresh_runs_before_upgrade(self, env, capsys):
        """Test the index is refreshed unless disabled."""
        with patch("plugdex.cli.IndexClient") as mock_client:
            mock_client.return_value.refresh_index.return_value = {"added": 0, "updated": 0, "removed": 0}
            assert run(["upgrade"]) == 0
        mock_client.return_value.refresh_index.assert_called_once_with()
        assert "Updated the local copy of plugin index." in capsys.readouterr().err


class TestOtherCommands:
    """Tests for update, install, uninstall and list."""

    def test_update(self, env, capsys):
        """Test `plugdex update`."""
        with patch("plugdex.cli.IndexClient") as mock_client:
            mock_client.return_value.refresh_index.return_value = {"added": 1, "updated": 0, "removed": 0}
            assert run(["update"]) == 0
        assert "Updated the local copy of plugin index." in capsys.readouterr().err

    def test_update_failure(self, env, capsys):
        """Test `plugdex update` reports refresh errors."""
        with patch("plugdex.cli.IndexClient") as mock_client:
            mock_client.return_value.refresh_index.side_effect = IndexRefreshError("cannot connect")
            assert run(["update"]) == 1
        assert "Error: cannot connect" in capsys.readouterr().err

    def test_install_unknown_plugin(self, env, capsys):
        """Test installing something the index does not have."""
        assert run(["install", "nope", "--no-update-index"]) == 1
        assert 'plugin "nope" does not exist' in capsys.readouterr().err

    def test_install_and_list(self, env, capsys):
        """Test installed plugins show up in `plugdex list`."""
        paths, tmp = env
        publish(paths, tmp / "artifacts", "foo", "v1.0.0")
        assert run(["install", "foo", "--no-update-index"]) == 0
        err = capsys.readouterr().err
        assert "Installed plugin: foo" in err

        assert run(["list"]) == 0
        out = capsys.readouterr().out
        assert "foo" in out
        assert "v1.0.0" in out

    def test_list_empty(self, env, capsys):
        """Test `plugdex list` with nothing installed."""
        assert run(["list"]) == 0
        assert "No plugins installed." in capsys.readouterr().out

    def test_uninstall(self, env, capsys):
        """Test `plugdex uninstall`."""
        paths, tmp = env
        publish(paths, tmp / "artifacts", "foo", "v1.0.0")
        assert run(["install", "foo", "--no-update-index"]) == 0
        assert run(["uninstall", "foo"]) == 0
        assert ReceiptStore(paths).is_installed("foo") is False

    def test_uninstall_unknown(self, env, capsys):
        """Test uninstalling something that is not installed."""
        assert run(["uninstall", "foo"]) == 1
        assert 'plugin "foo" is not installed' in capsys.readouterr().err
