"""plugdex CLI - install and upgrade plugins from a plugin index.

Usage:
    plugdex update                      # Refresh the local copy of the index
    plugdex install <name>...           # Install plugins from the index
    plugdex upgrade [<name>...]         # Upgrade named plugins, or all installed
    plugdex uninstall <name>...         # Remove installed plugins
    plugdex list                        # List installed plugins
"""

from __future__ import annotations

import argparse
from typing import List, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .config import Paths, Settings
from .errors import PlugdexError
from .index import IndexClient, IndexScanner
from .installation import Installer, ReceiptStore
from .logging_config import get_logger, setup_logging
from .notices import print_security_notice
from .reporter import Reporter
from .upgrade import UpgradeOptions, UpgradeRunner

console = Console()
err_console = Console(stderr=True)

logger = get_logger(__name__)


def _print_error(e: Exception) -> None:
    err_console.print(f"[red]Error:[/red] {escape(str(e))}", emoji=False, soft_wrap=True)


def ensure_index_updated(settings: Settings, paths: Paths) -> None:
    """Refresh the local index copy from the configured index URL."""
    counts = IndexClient(settings, paths).refresh_index()
    logger.debug("index update: %s", counts)
    err_console.print("Updated the local copy of plugin index.", highlight=False)


# --- Commands ---

def cmd_update(args: argparse.Namespace, settings: Settings, paths: Paths) -> int:
    """Refresh the local copy of the plugin index."""
    try:
        ensure_index_updated(settings, paths)
    except PlugdexError as e:
        _print_error(e)
        return 1
    return 0


def cmd_install(args: argparse.Namespace, settings: Settings, paths: Paths) -> int:
    """Install one or more plugins from the index."""
    try:
        if not args.no_update_index:
            ensure_index_updated(settings, paths)

        scanner = IndexScanner(paths)
        # Resolve every manifest before installing anything
        manifests = [scanner.load_manifest(name) for name in args.names]

        installer = Installer(paths, timeout_s=settings.timeout_s)
        for manifest in manifests:
            err_console.print(f"Installing plugin: {manifest.name}", markup=False, highlight=False, emoji=False)
            installer.install(manifest)
            err_console.print(f"Installed plugin: {manifest.name}", markup=False, highlight=False, emoji=False)
            if manifest.caveats:
                err_console.print(manifest.caveats, markup=False, highlight=False, emoji=False)
            print_security_notice(manifest.name, err_console)
    except PlugdexError as e:
        _print_error(e)
        return 1
    return 0


def cmd_upgrade(args: argparse.Namespace, settings: Settings, paths: Paths) -> int:
    """Upgrade installed plugins to the newest indexed version."""
    options = UpgradeOptions(
        no_update_index=args.no_update_index or not settings.update_index_on_upgrade,
    )
    receipts = ReceiptStore(paths)
    runner = UpgradeRunner(
        receipts=receipts,
        index=IndexScanner(paths),
        installer=Installer(paths, receipts=receipts, timeout_s=settings.timeout_s),
        reporter=Reporter(err_console),
        notify_security=lambda name: print_security_notice(name, err_console),
        refresh_index=lambda: ensure_index_updated(settings, paths),
        options=options,
    )
    try:
        runner.run(args.names)
    except PlugdexError as e:
        _print_error(e)
        return 1
    return 0


def cmd_uninstall(args: argparse.Namespace, settings: Settings, paths: Paths) -> int:
    """Remove installed plugins."""
    installer = Installer(paths, timeout_s=settings.timeout_s)
    try:
        for name in args.names:
            installer.uninstall(name)
            err_console.print(f"Uninstalled plugin: {name}", markup=False, highlight=False, emoji=False)
    except PlugdexError as e:
        _print_error(e)
        return 1
    return 0


def cmd_list(args: argparse.Namespace, settings: Settings, paths: Paths) -> int:
    """List installed plugins."""
    try:
        installed = ReceiptStore(paths).list_installed()
    except PlugdexError as e:
        _print_error(e)
        return 1

    if not installed:
        console.print("[yellow]No plugins installed.[/yellow]")
        console.print("\nTo install a plugin, run:")
        console.print("  [bold]plugdex install <name>[/bold]")
        return 0

    table = Table(title="Installed Plugins")
    table.add_column("Plugin", style="cyan")
    table.add_column("Version")
    table.add_column("Installed")

    for name, receipt in installed.items():
        table.add_row(escape(name), escape(receipt.version), receipt.installed_at[:19])

    console.print(table)
    return 0


COMMANDS = {
    "update": cmd_update,
    "install": cmd_install,
    "upgrade": cmd_upgrade,
    "uninstall": cmd_uninstall,
    "list": cmd_list,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="plugdex",
        description="plugdex: install and upgrade plugins from a plugin index",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Show debug logging")
    parser.add_argument("--log-file", help="Also write debug logging to this file")

    sub = parser.add_subparsers(dest="subcmd")

    sub.add_parser("update", help="Update the local copy of the plugin index")

    p_install = sub.add_parser("install", help="Install plugins from the index")
    p_install.add_argument("names", nargs="+", metavar="plugin-name")
    p_install.add_argument(
        "--no-update-index",
        action="store_true",
        help="(Experimental) do not update local copy of plugin index before installing",
    )

    p_upgrade = sub.add_parser(
        "upgrade",
        help="Upgrade installed plugins to newer versions",
        description=(
            "Upgrade installed plugins to a newer version. Without arguments every "
            "installed plugin with a newer version in the local index is upgraded "
            "and failures are skipped. With plugin names only those plugins are "
            "upgraded and the first failure stops the upgrade."
        ),
    )
    p_upgrade.add_argument("names", nargs="*", metavar="plugin-name")
    p_upgrade.add_argument(
        "--no-update-index",
        action="store_true",
        help="(Experimental) do not update local copy of plugin index before upgrading",
    )

    p_uninstall = sub.add_parser("uninstall", help="Uninstall plugins")
    p_uninstall.add_argument("names", nargs="+", metavar="plugin-name")

    sub.add_parser("list", help="List installed plugins")

    return parser


def run(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(verbose=args.verbose, log_file=args.log_file)

    if not args.subcmd:
        parser.print_help()
        return 2

    settings = Settings.load()
    paths = settings.paths()
    logger.debug("using plugdex root %s", paths.root)
    return COMMANDS[args.subcmd](args, settings, paths)


def main() -> None:
    raise SystemExit(run())


if __name__ == "__main__":
    main()
