"""Batch plugin upgrades.

Upgrades either every installed plugin or an explicit list of plugins to
the newest version in the local index. The invocation decides how failures
are handled:

- no names given: every installed plugin is tried; missing manifests and
  failed upgrades are reported, counted and skipped, and plugins that are
  already current are skipped quietly.
- names given: the first missing manifest, failed upgrade or already
  current plugin stops the batch with an error.

Plugins are processed one at a time in order. Plugins upgraded before a
fatal error stay upgraded.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .errors import BatchAbortedError, PlugdexError, PluginNotFoundError
from .installation.installer import UpgradeStatus
from .logging_config import get_logger
from .reporter import Reporter

logger = get_logger(__name__)

ALREADY_UPGRADED_MESSAGE = "can't upgrade, the newest version is already installed"


class Outcome(str, Enum):
    """What happened to one plugin in a batch."""
    UPGRADED = "upgraded"
    ALREADY_SKIPPED = "already-skipped"
    MISSING_SKIPPED = "missing-skipped"
    FAILED = "failed"
    FAILED_FATAL = "failed-fatal"


@dataclass(frozen=True)
class Mode:
    """Error tolerance of a batch, derived from how it was invoked."""
    ignore_already_upgraded: bool
    tolerate_errors: bool


ALL_INSTALLED = Mode(ignore_already_upgraded=True, tolerate_errors=True)
EXPLICIT_NAMES = Mode(ignore_already_upgraded=False, tolerate_errors=False)


@dataclass
class UpgradeOptions:
    """Options for an upgrade run, filled in from the command line."""
    no_update_index: bool = False


@dataclass
class PluginResult:
    name: str
    outcome: Outcome
    error: Optional[str] = None


@dataclass
class BatchResult:
    """Aggregate of a batch that ran to completion."""
    results: List[PluginResult] = field(default_factory=list)
    failures: int = 0

    def names(self, outcome: Outcome) -> List[str]:
        return [r.name for r in self.results if r.outcome == outcome]


def resolve_targets(
    args: Sequence[str],
    list_installed: Callable[[], Dict[str, object]],
) -> Tuple[List[str], Mode]:
    """Pick the plugins to upgrade and the error policy.

    Explicit names are used verbatim (order and duplicates kept). Without
    names every installed plugin is upgraded, in name order.
    """
    if args:
        return list(args), EXPLICIT_NAMES

    try:
        installed = list_installed()
    except (PlugdexError, OSError) as e:
        raise BatchAbortedError(f"failed to find all installed versions: {e}") from e
    return sorted(installed), ALL_INSTALLED


def classify(
    mode: Mode,
    lookup_error: Optional[Exception] = None,
    status: Optional[UpgradeStatus] = None,
    upgrade_error: Optional[Exception] = None,
) -> Outcome:
    """Map a manifest lookup and upgrade attempt to an Outcome.

    Exactly one of ``lookup_error``, ``status`` and ``upgrade_error`` is
    expected to be set.
    """
    if lookup_error is not None:
        if isinstance(lookup_error, PluginNotFoundError) and mode.tolerate_errors:
            return Outcome.MISSING_SKIPPED
        return Outcome.FAILED_FATAL

    if status == UpgradeStatus.UPGRADED:
        return Outcome.UPGRADED
    if status == UpgradeStatus.ALREADY_CURRENT and mode.ignore_already_upgraded:
        return Outcome.ALREADY_SKIPPED

    # already current without ignore_already_upgraded, or a generic failure
    if mode.tolerate_errors:
        return Outcome.FAILED
    return Outcome.FAILED_FATAL


class UpgradeRunner:
    """Runs a batch upgrade against the index, receipts and installer.

    Collaborators are duck-typed so tests can pass fakes:

    - ``receipts.list_installed()`` returns a mapping keyed by plugin name
    - ``index.load_manifest(name)`` returns a manifest or raises
      PluginNotFoundError
    - ``installer.upgrade(manifest)`` returns an UpgradeStatus or raises
    - ``notify_security(name)`` is called after each successful upgrade
    - ``refresh_index()`` runs before the batch unless disabled
    """

    def __init__(
        self,
        receipts,
        index,
        installer,
        reporter: Optional[Reporter] = None,
        notify_security: Optional[Callable[[str], None]] = None,
        refresh_index: Optional[Callable[[], object]] = None,
        options: Optional[UpgradeOptions] = None,
    ):
        self.receipts = receipts
        self.index = index
        self.installer = installer
        self.reporter = reporter or Reporter()
        self.notify_security = notify_security
        self.refresh_index = refresh_index
        self.options = options or UpgradeOptions()

    def _preflight(self) -> None:
        if self.options.no_update_index:
            logger.debug("--no-update-index specified, skipping updating local copy of plugin index")
            return
        if self.refresh_index is None:
            return
        try:
            self.refresh_index()
        except PlugdexError as e:
            raise BatchAbortedError(f"failed to update the local index: {e}") from e

    def _upgrade_one(self, name: str, mode: Mode) -> PluginResult:
        try:
            manifest = self.index.load_manifest(name)
        except PlugdexError as e:
            outcome = classify(mode, lookup_error=e)
            if outcome == Outcome.MISSING_SKIPPED:
                self.reporter.skipped_failure(name, e)
                return PluginResult(name, outcome, str(e))
            if isinstance(e, PluginNotFoundError):
                raise BatchAbortedError(str(e), plugin=name) from e
            raise BatchAbortedError(
                f"failed to load the plugin manifest for plugin {name}: {e}", plugin=name
            ) from e

        self.reporter.upgrading(name)
        status: Optional[UpgradeStatus] = None
        error: Optional[Exception] = None
        try:
            status = self.installer.upgrade(manifest)
        except (PlugdexError, OSError) as e:
            error = e
        outcome = classify(mode, status=status, upgrade_error=error)

        if outcome == Outcome.UPGRADED:
            self.reporter.upgraded(name)
            if self.notify_security is not None:
                self.notify_security(manifest.name)
            return PluginResult(name, outcome)

        if outcome == Outcome.ALREADY_SKIPPED:
            self.reporter.already_current(name)
            return PluginResult(name, outcome)

        message = str(error) if error is not None else ALREADY_UPGRADED_MESSAGE
        if outcome == Outcome.FAILED:
            self.reporter.skipped_failure(name, message)
            return PluginResult(name, outcome, message)

        raise BatchAbortedError(
            f'failed to upgrade plugin "{name}": {message}', plugin=name
        ) from error

    def run(self, names: Sequence[str] = ()) -> BatchResult:
        """Upgrade ``names``, or every installed plugin when empty.

        Raises BatchAbortedError on the first fatal error.
        """
        self._preflight()
        targets, mode = resolve_targets(names, self.receipts.list_installed)
        logger.debug("upgrading %d plugin(s), mode=%s", len(targets), mode)

        batch = BatchResult()
        for name in targets:
            result = self._upgrade_one(name, mode)
            batch.results.append(result)
            if result.outcome in (Outcome.FAILED, Outcome.MISSING_SKIPPED):
                batch.failures += 1

        self.reporter.summary(batch.failures)
        return batch
