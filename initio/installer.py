"""
Per-item install and removal with verification and retry.

Each item runs through Pending -> Running -> Verifying -> Succeeded, or
through Retrying back to Running while transient failures leave attempts,
or ends Failed. Process-level errors become outcomes here; only
OperationCancelled escapes to the caller.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from .bloatware import PowerShellClient
from .common import vlog
from .config import Preferences
from .errors import (
    OperationCancelled,
    ProcessLaunchFailure,
    ProcessTimeout,
    TerminalExternalFailure,
    TransientExternalFailure,
    ValidationError,
)
from .models import BloatwareItem, ItemStatus, OperationOutcome, PackageItem, ProcessResult
from .package_managers import WingetClient, is_success_output
from .process import CancellationToken
from .validation import require_appx_name, require_package_id

logger = logging.getLogger(__name__)

# Lowercase substrings of tool output that mark a failure as transient
TRANSIENT_KEYWORDS = (
    "network",
    "timeout",
    "timed out",
    "connection",
    "try again",
    "download",
    "source",
    "internet",
    "temporar",
)

StatusReporter = Callable[[PackageItem, str], None]


def is_transient_failure(output: str | None) -> bool:
    """
    Determine if a failed invocation is worth retrying.

    Args:
        output: Combined stdout/stderr of the failed invocation

    Returns:
        True if the output mentions a network or availability problem
    """
    if not output:
        return False
    lowered = output.lower()
    return any(keyword in lowered for keyword in TRANSIENT_KEYWORDS)


def classify_failure(result: ProcessResult) -> TransientExternalFailure | TerminalExternalFailure:
    """Turn a failed invocation into the matching error type."""
    message = f"Exit code {result.exit_code}"
    detail = next((line.strip() for line in result.output.splitlines() if line.strip()), "")
    if detail:
        message += f": {detail[:200]}"
    if is_transient_failure(result.output):
        return TransientExternalFailure(message)
    return TerminalExternalFailure(message)


def _set_status(item: PackageItem, status: ItemStatus, report: StatusReporter | None, message: str = "") -> None:
    item.status = status
    if report is not None:
        report(item, message)


def _backoff(delay: float, cancel: CancellationToken | None) -> None:
    if delay <= 0:
        if cancel is not None:
            cancel.raise_if_cancelled()
        return
    if cancel is None:
        time.sleep(delay)
    elif cancel.wait(delay):
        raise OperationCancelled()


def _run_with_retry(
    item: PackageItem,
    invoke: Callable[[], ProcessResult],
    accept: Callable[[ProcessResult], bool],
    verify: Callable[[], bool],
    preferences: Preferences,
    cancel: CancellationToken | None,
    report: StatusReporter | None,
    verbose: bool,
) -> OperationOutcome:
    max_attempts = preferences.max_retries
    exit_code = -1
    error_message = ""

    for attempt in range(1, max_attempts + 1):
        if cancel is not None:
            cancel.raise_if_cancelled()
        vlog(f"Attempt {attempt}/{max_attempts} for: {item.name}", verbose)
        _set_status(item, ItemStatus.running(), report)

        result: ProcessResult | None = None
        retryable = False
        try:
            result = invoke()
        except ProcessLaunchFailure as e:
            logger.error(e.message)
            _set_status(item, ItemStatus.failed(e.message), report, e.message)
            return OperationOutcome(False, -1, attempt, e.message)
        except ProcessTimeout as e:
            exit_code = -1
            error_message = e.message
            retryable = e.retryable
            vlog(f"{item.name}: {e.message}", verbose)

        if result is not None:
            exit_code = result.exit_code
            if accept(result):
                _set_status(item, ItemStatus.succeeded(), report)
                return OperationOutcome(True, exit_code, attempt)

        _set_status(item, ItemStatus.verifying(), report)
        if verify():
            _set_status(item, ItemStatus.succeeded(), report)
            return OperationOutcome(True, exit_code, attempt)

        if result is not None:
            failure = classify_failure(result)
            error_message = failure.message
            retryable = failure.retryable

        if not retryable:
            vlog(f"Non-retryable error: {error_message}", verbose)
            break
        if attempt == max_attempts:
            vlog(f"Max retries reached: {error_message}", verbose)
            break

        _set_status(
            item, ItemStatus.retrying(attempt + 1, max_attempts), report,
            f"Retry ({attempt + 1}/{max_attempts}) for {item.name}",
        )
        vlog(f"Retrying after {preferences.retry_delay_seconds:.1f}s delay...", verbose)
        _backoff(preferences.retry_delay_seconds, cancel)

    _set_status(item, ItemStatus.failed(error_message), report, error_message)
    return OperationOutcome(False, exit_code, attempt, error_message)


def install_item(
    item: PackageItem,
    client: WingetClient,
    preferences: Preferences | None = None,
    cancel: CancellationToken | None = None,
    report: StatusReporter | None = None,
    verbose: bool = False,
) -> OperationOutcome:
    """
    Install one package with verification and retry.

    An attempt succeeds when winget exits 0 or prints a success phrase, or
    when a follow-up `winget list` shows the package by id or by name.

    Args:
        item: Item to install (status is updated in place)
        client: winget client
        preferences: Retry and install preferences
        cancel: Run-level cancellation token
        report: Called after every status change with (item, message)
        verbose: Enable verbose logging

    Returns:
        OperationOutcome (attempts_used is 0 for an invalid id)

    Raises:
        OperationCancelled: If the token fires during the item
    """
    preferences = preferences or Preferences()
    try:
        package_id = require_package_id(item.external_id)
    except ValidationError as e:
        logger.error(f"Skipping {item.name}: {e.message}")
        _set_status(item, ItemStatus.failed(e.message), report, e.message)
        return OperationOutcome(False, -1, 0, e.message)

    def verify() -> bool:
        return (
            client.is_listed(package_id, exact_id=True, cancel=cancel)
            or client.is_listed(item.name, cancel=cancel)
        )

    return _run_with_retry(
        item,
        invoke=lambda: client.install(package_id, silent=preferences.silent_install, cancel=cancel),
        accept=is_success_output,
        verify=verify,
        preferences=preferences,
        cancel=cancel,
        report=report,
        verbose=verbose,
    )


def remove_item(
    item: BloatwareItem,
    shell: PowerShellClient,
    preferences: Preferences | None = None,
    cancel: CancellationToken | None = None,
    report: StatusReporter | None = None,
    verbose: bool = False,
) -> OperationOutcome:
    """
    Remove one AppX package with verification and retry.

    A removal only counts once a follow-up query finds no matching package,
    whatever the removal command's exit code.

    Raises:
        OperationCancelled: If the token fires during the item
    """
    preferences = preferences or Preferences()
    try:
        package_name = require_appx_name(item.external_id)
    except ValidationError as e:
        logger.error(f"Skipping {item.name}: {e.message}")
        _set_status(item, ItemStatus.failed(e.message), report, e.message)
        return OperationOutcome(False, -1, 0, e.message)

    return _run_with_retry(
        item,
        invoke=lambda: shell.remove(package_name, cancel=cancel),
        accept=lambda result: False,
        verify=lambda: shell.is_removed(package_name, cancel=cancel),
        preferences=preferences,
        cancel=cancel,
        report=report,
        verbose=verbose,
    )
