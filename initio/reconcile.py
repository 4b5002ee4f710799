"""
Installed-state reconciliation against package manager ground truth.

The local installed flags drift from reality whenever something is installed
or removed outside a run. Each reconcile queries the tool once and rewrites
every tracked item's flag and status from the listing.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from .bloatware import PowerShellClient
from .errors import InitioError, OperationCancelled
from .models import BloatwareItem, CatalogEntry, ItemStatus, PackageItem
from .package_managers import WingetClient, parse_export_rows, parse_table
from .process import CancellationToken

logger = logging.getLogger(__name__)

CATALOG_STATUS_INSTALLED = "Installed"
CATALOG_STATUS_IN_SETUP = "In My Setup"


@dataclass
class Listing:
    """
    Parsed view of one installed-package listing.

    Attributes:
        ids: Package ids found by a structured parse
        names: Display names found by a structured parse
        raw_text: Combined stdout/stderr, used when nothing parsed
    """
    ids: set[str] = field(default_factory=set)
    names: list[str] = field(default_factory=list)
    raw_text: str = ""

    @property
    def structured(self) -> bool:
        return bool(self.ids)

    def has_id(self, external_id: str) -> bool:
        if not external_id:
            return False
        if self.structured:
            return external_id.lower() in {i.lower() for i in self.ids}
        pattern = rf"(?<![\w.+-]){re.escape(external_id)}(?![\w.+-])"
        return re.search(pattern, self.raw_text, re.IGNORECASE) is not None

    def has_name(self, name: str) -> bool:
        needle = name.strip().lower()
        if not needle:
            return False
        if self.structured:
            return any(needle in listed.lower() for listed in self.names)
        return needle in self.raw_text.lower()

    def contains(self, item: PackageItem) -> bool:
        """Id match first, then display-name substring."""
        return self.has_id(item.external_id) or self.has_name(item.name)


def parse_listing(stdout: str, stderr: str = "") -> Listing:
    """
    Parse `winget list` output.

    A JSON export document wins, then the column table. When neither
    yields rows, the listing keeps only the raw text for free-text matching.
    """
    raw_text = f"{stdout}\n{stderr}" if stderr else stdout

    export_rows = parse_export_rows(stdout)
    if export_rows:
        return Listing(
            ids={row.external_id for row in export_rows},
            names=[row.name for row in export_rows if row.name],
            raw_text=raw_text,
        )

    rows = parse_table(stdout)
    if rows:
        return Listing(
            ids={row.external_id for row in rows},
            names=[row.name for row in rows],
            raw_text=raw_text,
        )

    return Listing(raw_text=raw_text)


def fetch_listing(client: WingetClient, cancel: CancellationToken | None = None) -> Listing | None:
    """
    Run the installed-package listing once.

    Returns:
        Parsed listing, or None if the tool failed

    Raises:
        OperationCancelled: If the token fired
    """
    try:
        result = client.list_installed(cancel=cancel)
    except OperationCancelled:
        raise
    except InitioError as e:
        logger.warning(f"Installed package listing failed: {e.message}")
        return None

    if result.exit_code != 0 and not result.output.strip():
        logger.warning(f"winget list exited with code {result.exit_code} and no output")
        return None
    return parse_listing(result.stdout, result.stderr)


def apply_listing(items: Iterable[PackageItem], listing: Listing) -> set[str]:
    """
    Rewrite installed flags and statuses from a listing.

    Returns:
        External ids of the items found installed
    """
    installed: set[str] = set()
    for item in items:
        found = listing.contains(item)
        item.is_installed = found
        item.status = ItemStatus.detected() if found else ItemStatus.pending()
        if found:
            installed.add(item.external_id)
    return installed


def reconcile(
    items: Sequence[PackageItem],
    client: WingetClient,
    cancel: CancellationToken | None = None,
) -> set[str]:
    """
    Sync tracked items with the package manager's installed list.

    Items are updated in place. On any failure (including cancellation) the
    items are left untouched.

    Returns:
        External ids found installed (empty on failure)
    """
    try:
        listing = fetch_listing(client, cancel)
    except OperationCancelled:
        logger.info("Reconcile cancelled")
        return set()
    if listing is None:
        return set()

    installed = apply_listing(items, listing)
    logger.info(f"Reconciled {len(items)} items: {len(installed)} installed")
    return installed


def detect_bloatware(
    items: Sequence[BloatwareItem],
    shell: PowerShellClient,
    cancel: CancellationToken | None = None,
) -> set[str]:
    """
    Flag which known bloatware packages are present.

    Present items become "Detected", the rest "Not Found". Items are left
    untouched when the AppX listing fails.

    Returns:
        Package names of detected items
    """
    try:
        names = shell.list_package_names(cancel)
    except OperationCancelled:
        logger.info("Bloatware detection cancelled")
        return set()
    if names is None:
        return set()

    lowered = [name.lower() for name in names]
    detected: set[str] = set()
    for item in items:
        needle = item.external_id.lower()
        found = bool(needle) and any(needle in name for name in lowered)
        item.is_installed = found
        item.status = ItemStatus.detected() if found else ItemStatus.not_found()
        if found:
            detected.add(item.external_id)

    logger.info(f"Detected {len(detected)} of {len(items)} known bloatware packages")
    return detected


def catalog_status(
    entries: Sequence[CatalogEntry],
    items: Sequence[PackageItem],
    installed_ids: Iterable[str] = (),
) -> dict[str, str]:
    """
    Status label of each catalog entry relative to the user's setup.

    Args:
        entries: Catalog entries
        items: Tracked setup items
        installed_ids: Ids known installed from the last reconcile

    Returns:
        Mapping external_id -> "Installed", "In My Setup" or ""
    """
    installed = {i.lower() for i in installed_ids}
    installed.update(item.external_id.lower() for item in items if item.is_installed)
    in_setup = {item.external_id.lower() for item in items}

    statuses: dict[str, str] = {}
    for entry in entries:
        key = entry.external_id.lower()
        if key in installed:
            statuses[entry.external_id] = CATALOG_STATUS_INSTALLED
        elif key in in_setup:
            statuses[entry.external_id] = CATALOG_STATUS_IN_SETUP
        else:
            statuses[entry.external_id] = ""
    return statuses
