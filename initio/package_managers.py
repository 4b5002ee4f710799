"""
winget command-line contract.

Builds winget argument lists, recognizes success output and parses winget's
column-aligned tables (list and search share the same layout).
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any

from packaging.version import InvalidVersion, Version

from .common import vlog
from .config import Timeouts
from .errors import InitioError, ProcessLaunchFailure, ProcessTimeout
from .models import PackageItem, ProcessResult
from .process import CancellationToken, ProcessRunner
from .validation import require_package_id, sanitize_search_query

logger = logging.getLogger(__name__)

WINGET_EXECUTABLE = "winget"
ACCEPT_FLAGS = ("--accept-package-agreements", "--accept-source-agreements")

# Lowercase; matched against combined stdout/stderr
SUCCESS_PHRASES = (
    "successfully installed",
    "already installed",
    "no available upgrade",
)

MIN_SUPPORTED_VERSION = Version("1.4")

_ID_HEADER = re.compile(r"(?<!\S)Id(?!\S)", re.IGNORECASE)
_MULTI_SPACE = re.compile(r"\s{2,}")


@dataclass(frozen=True)
class ListingRow:
    """One row of a winget list/search table."""
    name: str
    external_id: str

    def to_item(self, category: str = "Search Result") -> PackageItem:
        return PackageItem(name=self.name, category=category, external_id=self.external_id)


def install_arguments(package_id: str, silent: bool = True) -> list[str]:
    """
    Arguments for `winget install`.

    Raises:
        ValidationError: If package_id is malformed
    """
    args = ["install", "--id", require_package_id(package_id)]
    if silent:
        args.append("--silent")
    args.extend(ACCEPT_FLAGS)
    return args


def list_arguments(query: str | None = None, exact_id: bool = False) -> list[str]:
    """Arguments for `winget list`, optionally filtered by id or name."""
    args = ["list"]
    if query:
        if exact_id:
            args.extend(["--id", query, "--exact"])
        else:
            args.append(query)
    args.extend(ACCEPT_FLAGS)
    return args


def search_arguments(query: str) -> list[str]:
    """Arguments for `winget search` against the winget source."""
    return ["search", query, "--source", "winget", "--disable-interactivity"]


def is_success_output(result: ProcessResult) -> bool:
    """Exit code 0, or any known success phrase in the output."""
    if result.exit_code == 0:
        return True
    output = result.output.lower()
    return any(phrase in output for phrase in SUCCESS_PHRASES)


def parse_version(raw: str | None) -> Version | None:
    """Parse `winget --version` output such as "v1.7.10861"."""
    if not raw:
        return None
    text = raw.strip().splitlines()[0].strip() if raw.strip() else ""
    if text.lower().startswith("v"):
        text = text[1:]
    try:
        return Version(text)
    except InvalidVersion:
        return None


def is_supported_version(raw: str | None) -> bool:
    """
    Whether a probed winget version is recent enough.

    Unparseable versions are accepted; winget reported something, so
    assume it works.
    """
    version = parse_version(raw)
    if version is None:
        return raw is not None and bool(raw.strip())
    return version >= MIN_SUPPORTED_VERSION


def _clean_lines(output: str) -> list[str]:
    lines = []
    for raw in output.split("\n"):
        # Progress spinners rewrite the line with carriage returns
        line = raw.rsplit("\r", 1)[-1].rstrip()
        if line.strip():
            lines.append(line)
    return lines


def parse_table(output: str, max_results: int | None = None, require_dotted_id: bool = False) -> list[ListingRow]:
    """
    Parse a winget list/search table into rows.

    Column bounds come from the header line above the dashed separator, or
    from any line with an "Id" column header when there is no separator.
    Without either, rows are split on runs of two or more spaces.

    Args:
        output: Raw winget stdout
        max_results: Stop after this many rows
        require_dotted_id: Only keep ids shaped like Publisher.App

    Returns:
        Parsed rows in table order
    """
    rows: list[ListingRow] = []
    lines = _clean_lines(output)
    if not lines:
        return rows

    separator = next(
        (i for i, line in enumerate(lines) if line.lstrip().startswith("---")),
        -1,
    )
    if separator > 0:
        header_index = separator - 1
        start = separator + 1
    else:
        header_index = next(
            (i for i, line in enumerate(lines) if _ID_HEADER.search(line)),
            -1,
        )
        start = header_index + 1 if header_index >= 0 else 0

    id_start = -1
    if header_index >= 0:
        match = _ID_HEADER.search(lines[header_index])
        if match:
            id_start = match.start()

    for line in lines[start:]:
        if max_results is not None and len(rows) >= max_results:
            break

        if 0 < id_start < len(line):
            name = line[:id_start].strip()
            remainder = line[id_start:].strip()
            external_id = remainder.split(None, 1)[0] if remainder else ""
        else:
            parts = _MULTI_SPACE.split(line.strip())
            if len(parts) < 2:
                continue
            name, external_id = parts[0], parts[1]

        external_id = external_id.rstrip("…")
        if not name or not external_id or " " in external_id:
            continue
        if external_id.lower() == "id":
            continue
        if require_dotted_id and "." not in external_id:
            continue
        rows.append(ListingRow(name=name, external_id=external_id))

    return rows


def parse_export_rows(text: str) -> list[ListingRow] | None:
    """
    Collect packages from a winget export document.

    Only the known shape is accepted:
    {"Sources": [{"Packages": [{"PackageIdentifier": "...", "PackageName": "..."}]}]}

    Plain `winget export` output carries no display names, so `name` is
    empty unless the document has a "PackageName" or "Name" key.

    Returns:
        Rows in document order, or None if text is not a document of that shape
    """
    try:
        data: Any = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return None

    if not isinstance(data, dict) or not isinstance(data.get("Sources"), list):
        return None

    rows: list[ListingRow] = []
    for source in data["Sources"]:
        if not isinstance(source, dict):
            return None
        packages = source.get("Packages", [])
        if not isinstance(packages, list):
            return None
        for package in packages:
            if not isinstance(package, dict):
                return None
            package_id = package.get("PackageIdentifier")
            if not isinstance(package_id, str) or not package_id.strip():
                continue
            name = package.get("PackageName") or package.get("Name") or ""
            rows.append(ListingRow(name=name.strip() if isinstance(name, str) else "", external_id=package_id.strip()))
    return rows


def parse_export_document(text: str) -> set[str] | None:
    """Package ids of a winget export document, or None if text is not one."""
    rows = parse_export_rows(text)
    if rows is None:
        return None
    return {row.external_id for row in rows}


class WingetClient:
    """
    Runs winget commands through a ProcessRunner.

    Attributes:
        runner: Process runner used for every invocation
        timeouts: Per-command timeouts
        executable: winget executable name or path
        verbose: Enable verbose logging
    """

    def __init__(
        self,
        runner: ProcessRunner | None = None,
        timeouts: Timeouts | None = None,
        executable: str = WINGET_EXECUTABLE,
        verbose: bool = False,
    ):
        self.timeouts = timeouts or Timeouts()
        self.runner = runner or ProcessRunner(default_timeout=self.timeouts.default_command, verbose=verbose)
        self.executable = executable
        self.verbose = verbose

    def probe_version(self, cancel: CancellationToken | None = None) -> str | None:
        """
        Check that winget is available.

        Returns:
            Trimmed version text, or None if winget is missing or failing
        """
        try:
            result = self.runner.run(
                self.executable, ["--version"],
                timeout=self.timeouts.version_probe, cancel=cancel,
            )
        except InitioError as e:
            logger.info(f"winget not available: {e.message}")
            return None

        if result.exit_code != 0:
            logger.info(f"winget --version exited with code {result.exit_code}")
            return None
        text = result.stdout.strip() or result.stderr.strip()
        return text or None

    def list_installed(self, cancel: CancellationToken | None = None) -> ProcessResult:
        """
        Full installed-package listing.

        Raises:
            ProcessLaunchFailure, ProcessTimeout, OperationCancelled
        """
        return self.runner.run(
            self.executable, list_arguments(),
            timeout=self.timeouts.listing, cancel=cancel,
        )

    def install(
        self,
        package_id: str,
        silent: bool = True,
        cancel: CancellationToken | None = None,
    ) -> ProcessResult:
        """
        Install one package.

        Raises:
            ValidationError, ProcessLaunchFailure, ProcessTimeout, OperationCancelled
        """
        return self.runner.run(
            self.executable, install_arguments(package_id, silent),
            timeout=self.timeouts.install, cancel=cancel,
        )

    def is_listed(
        self,
        query: str,
        exact_id: bool = False,
        cancel: CancellationToken | None = None,
    ) -> bool:
        """
        Whether `winget list <query>` shows the query in its output.

        Launch failures and timeouts count as "not listed"; cancellation
        propagates.
        """
        if not query or not query.strip():
            return False
        try:
            result = self.runner.run(
                self.executable, list_arguments(query, exact_id=exact_id),
                timeout=self.timeouts.listing, cancel=cancel,
            )
        except (ProcessLaunchFailure, ProcessTimeout) as e:
            vlog(f"Verification query for '{query}' failed: {e.message}", self.verbose)
            return False

        return query.lower() in result.output.lower()

    def search(
        self,
        query: str,
        max_results: int = 50,
        cancel: CancellationToken | None = None,
    ) -> list[ListingRow]:
        """
        Search the winget source.

        Returns:
            Matching rows (empty on any failure)
        """
        cleaned = sanitize_search_query(query)
        if not cleaned:
            return []
        try:
            result = self.runner.run(
                self.executable, search_arguments(cleaned),
                timeout=self.timeouts.listing, cancel=cancel,
            )
        except InitioError as e:
            logger.info(f"winget search for '{cleaned}' failed: {e.message}")
            return []

        # Some winget versions exit non-zero for "no results"; parse anyway
        return parse_table(result.stdout, max_results=max_results, require_dotted_id=True)


def probe_version(client: WingetClient | None = None, cancel: CancellationToken | None = None) -> str | None:
    """
    Probe winget and warn when it is older than the supported minimum.

    Returns:
        Version text, or None if winget is not available
    """
    client = client or WingetClient()
    version = client.probe_version(cancel=cancel)
    if version is None:
        return None
    if not is_supported_version(version):
        logger.warning(f"winget {version} is older than {MIN_SUPPORTED_VERSION}; some commands may fail")
    else:
        vlog(f"winget version: {version}", client.verbose)
    return version


def search(
    query: str,
    client: WingetClient | None = None,
    max_results: int = 50,
    cancel: CancellationToken | None = None,
) -> list[PackageItem]:
    """Search the winget source; results are unselected "Search Result" items."""
    client = client or WingetClient()
    return [row.to_item() for row in client.search(query, max_results=max_results, cancel=cancel)]
