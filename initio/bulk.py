"""
Bulk install and removal runs with progress tracking.

Targets are processed strictly one at a time. The run checks the
cancellation token before each item, updates the ETA after each item and
keeps a running log. Run functions never raise; the outcome of a run is
always a RunSummary.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Sequence

from .bloatware import PowerShellClient
from .common import format_duration, vlog
from .config import Preferences
from .errors import OperationCancelled
from .eta import EtaEstimate, estimate
from .installer import install_item, remove_item
from .models import (
    BloatwareItem,
    ItemStatus,
    Operation,
    OperationOutcome,
    PackageItem,
    StatusKind,
)
from .package_managers import WingetClient
from .process import CancellationToken

logger = logging.getLogger(__name__)


@dataclass
class ProgressTracker:
    """
    Thread-safe progress tracking for bulk operations.

    Callbacks run on the thread that performs the run, after the tracker
    state has been updated, and outside the lock.

    Attributes:
        _lock: Threading lock for thread-safe updates
        _progress: Progress state for each item, keyed by external id
        _log: Running log lines
        _eta: Latest ETA estimate
        _callbacks: Called as callback(external_id, status_text, message)
        _log_callbacks: Called with each new log line
        _eta_callbacks: Called with each new ETA estimate
    """
    _lock: threading.Lock = field(default_factory=threading.Lock)
    _progress: dict[str, dict] = field(default_factory=dict)
    _log: list[str] = field(default_factory=list)
    _eta: EtaEstimate | None = None
    _callbacks: list[Callable[[str, str, str], None]] = field(default_factory=list)
    _log_callbacks: list[Callable[[str], None]] = field(default_factory=list)
    _eta_callbacks: list[Callable[[EtaEstimate], None]] = field(default_factory=list)

    def register_callback(self, callback: Callable[[str, str, str], None]) -> None:
        """Register a callback for item status updates."""
        with self._lock:
            self._callbacks.append(callback)

    def register_log_callback(self, callback: Callable[[str], None]) -> None:
        with self._lock:
            self._log_callbacks.append(callback)

    def register_eta_callback(self, callback: Callable[[EtaEstimate], None]) -> None:
        with self._lock:
            self._eta_callbacks.append(callback)

    def update(self, external_id: str, status: str, message: str = "") -> None:
        """
        Update progress for an item.

        Args:
            external_id: Item id
            status: Human-readable status label
            message: Optional status message
        """
        with self._lock:
            self._progress[external_id] = {
                "status": status,
                "message": message,
                "timestamp": time.time(),
            }
            callbacks = list(self._callbacks)
        for callback in callbacks:
            callback(external_id, status, message)

    def log(self, line: str) -> None:
        """Append a line to the running log and mirror it to the logger."""
        logger.info(line)
        with self._lock:
            self._log.append(line)
            callbacks = list(self._log_callbacks)
        for callback in callbacks:
            callback(line)

    def update_eta(self, eta: EtaEstimate) -> None:
        with self._lock:
            self._eta = eta
            callbacks = list(self._eta_callbacks)
        for callback in callbacks:
            callback(eta)

    def clear(self) -> None:
        """Forget progress, log and ETA from a previous run."""
        with self._lock:
            self._progress.clear()
            self._log.clear()
            self._eta = None

    def get_progress(self, external_id: str) -> dict | None:
        """Get progress for a specific item."""
        with self._lock:
            return self._progress.get(external_id)

    def get_all_progress(self) -> dict[str, dict]:
        """Get progress for all items."""
        with self._lock:
            return self._progress.copy()

    def get_log(self) -> list[str]:
        with self._lock:
            return list(self._log)

    def get_eta(self) -> EtaEstimate | None:
        with self._lock:
            return self._eta

    def get_summary(self) -> dict[str, int]:
        """Get counts by status label."""
        with self._lock:
            summary: dict[str, int] = {}
            for progress in self._progress.values():
                status = progress.get("status", "")
                summary[status] = summary.get(status, 0) + 1
            return summary


@dataclass(frozen=True)
class RunSummary:
    """
    Result of one bulk run.

    Attributes:
        operation: Install or removal
        total: Number of targets handed to the run
        succeeded: Targets that reached their target state
        failed: Targets that ended Failed
        skipped: Targets already in their target state or never reached
        cancelled: Whether the run was cancelled
        duration_seconds: Wall time of the run
        status_text: One-line summary for display
        outcomes: Per-item outcomes keyed by external id
    """
    operation: Operation
    total: int
    succeeded: int
    failed: int
    skipped: int
    cancelled: bool
    duration_seconds: float
    status_text: str
    outcomes: dict[str, OperationOutcome] = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "operation": self.operation.value,
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "cancelled": self.cancelled,
            "duration_seconds": self.duration_seconds,
            "status_text": self.status_text,
            "outcomes": {key: value.to_dict() for key, value in self.outcomes.items()},
        }


@dataclass(frozen=True)
class _RunWording:
    noun: str
    verb_ing: str
    verb_done: str
    empty_text: str


_WORDING = {
    Operation.INSTALL: _RunWording("installation", "Installing", "installed", "No apps selected for install."),
    Operation.REMOVE: _RunWording("removal", "Removing", "removed", "No packages selected for removal."),
}


def _run(
    operation: Operation,
    items: Sequence[PackageItem],
    execute: Callable[[PackageItem], OperationOutcome],
    already_done: Callable[[PackageItem], bool],
    on_success: Callable[[PackageItem], None],
    cancel: CancellationToken | None,
    tracker: ProgressTracker,
    clock: Callable[[], float],
    verbose: bool,
) -> RunSummary:
    wording = _WORDING[operation]
    targets = list(items)
    total = len(targets)
    start = clock()

    if total == 0:
        return RunSummary(operation, 0, 0, 0, 0, False, 0.0, wording.empty_text)

    tracker.log(f"Starting {wording.noun} of {total} package(s)...")
    tracker.update_eta(estimate(0.0, 0, total))
    for item in targets:
        if not already_done(item):
            item.status = ItemStatus.pending()
            tracker.update(item.external_id, item.status_text)

    outcomes: dict[str, OperationOutcome] = {}
    succeeded = failed = skipped = 0
    cancelled = False

    try:
        for index, item in enumerate(targets):
            if cancel is not None:
                cancel.raise_if_cancelled()
            position = index + 1

            if already_done(item):
                skipped += 1
                tracker.log(f"[{position}/{total}] Skipping {item.name}: already {wording.verb_done}.")
            else:
                tracker.log(f"[{position}/{total}] {wording.verb_ing} {item.name} ({item.external_id})...")
                try:
                    outcome = execute(item)
                except OperationCancelled:
                    raise
                except Exception as e:
                    vlog(f"Unexpected error on {item.name}: {str(e)}", verbose)
                    item.status = ItemStatus.failed(str(e))
                    tracker.update(item.external_id, item.status_text, str(e))
                    outcome = OperationOutcome(False, -1, 0, f"Unexpected error: {str(e)}")

                outcomes[item.external_id] = outcome
                if outcome.success:
                    succeeded += 1
                    on_success(item)
                    tracker.log(f"  ✓ {item.name} {wording.verb_done} successfully.")
                else:
                    failed += 1
                    reason = f": {outcome.error_message}" if outcome.error_message else "."
                    tracker.log(f"  ✗ {item.name} {wording.noun} failed{reason}")

            tracker.update_eta(estimate(clock() - start, position, total))
    except OperationCancelled:
        cancelled = True

    duration = clock() - start
    if cancelled:
        skipped = total - succeeded - failed
        status_text = f"{wording.noun.capitalize()} was cancelled."
        tracker.log(f"Cancelled after {succeeded} {wording.noun}s ({format_duration(duration)}).")
    else:
        status_text = f"Done: {succeeded} {wording.verb_done}, {failed} failed."
        tracker.log(
            f"{wording.noun.capitalize()} complete: {succeeded} succeeded, {failed} failed "
            f"({format_duration(duration)})."
        )

    return RunSummary(
        operation=operation,
        total=total,
        succeeded=succeeded,
        failed=failed,
        skipped=skipped,
        cancelled=cancelled,
        duration_seconds=duration,
        status_text=status_text,
        outcomes=outcomes,
    )


def _reporter(tracker: ProgressTracker) -> Callable[[PackageItem, str], None]:
    def report(item: PackageItem, message: str) -> None:
        tracker.update(item.external_id, item.status_text, message)
        if item.status.kind == StatusKind.RETRYING and message:
            tracker.log(f"  {message}...")
    return report


def run_installs(
    items: Sequence[PackageItem],
    client: WingetClient,
    preferences: Preferences | None = None,
    cancel: CancellationToken | None = None,
    tracker: ProgressTracker | None = None,
    installed_ids: set[str] | None = None,
    clock: Callable[[], float] = time.monotonic,
    verbose: bool = False,
) -> RunSummary:
    """
    Install packages one after another.

    Args:
        items: Install targets, in order
        client: winget client
        preferences: Retry and install preferences
        cancel: Run-level cancellation token
        tracker: Optional progress tracker
        installed_ids: Known-installed id set, updated on success
        clock: Monotonic clock used for duration and ETA
        verbose: Enable verbose logging

    Returns:
        RunSummary with per-item outcomes
    """
    preferences = preferences or Preferences()
    tracker = tracker or ProgressTracker()
    report = _reporter(tracker)

    def on_success(item: PackageItem) -> None:
        item.is_installed = True
        if installed_ids is not None:
            installed_ids.add(item.external_id)

    return _run(
        Operation.INSTALL,
        items,
        execute=lambda item: install_item(item, client, preferences, cancel, report, verbose),
        already_done=lambda item: item.is_installed,
        on_success=on_success,
        cancel=cancel,
        tracker=tracker,
        clock=clock,
        verbose=verbose,
    )


def run_removals(
    items: Sequence[BloatwareItem],
    shell: PowerShellClient,
    preferences: Preferences | None = None,
    cancel: CancellationToken | None = None,
    tracker: ProgressTracker | None = None,
    installed_ids: set[str] | None = None,
    clock: Callable[[], float] = time.monotonic,
    verbose: bool = False,
) -> RunSummary:
    """
    Remove AppX packages one after another.

    Items that detection reported as not present are skipped.

    Returns:
        RunSummary with per-item outcomes
    """
    preferences = preferences or Preferences()
    tracker = tracker or ProgressTracker()
    report = _reporter(tracker)

    def on_success(item: PackageItem) -> None:
        item.is_installed = False
        if installed_ids is not None:
            installed_ids.discard(item.external_id)

    return _run(
        Operation.REMOVE,
        items,
        execute=lambda item: remove_item(item, shell, preferences, cancel, report, verbose),  # type: ignore[arg-type]
        already_done=lambda item: item.status.kind == StatusKind.NOT_FOUND,
        on_success=on_success,
        cancel=cancel,
        tracker=tracker,
        clock=clock,
        verbose=verbose,
    )
