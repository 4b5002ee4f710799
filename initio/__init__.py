"""
Initio - Bulk package installation and bloatware removal for Windows workstations.

Core Modules:
- Process execution: Timeouts, cancellation and process-tree termination
- Operations: Per-item install/removal with verification and retry, bulk runs
- Reconciliation: Installed-state sync against winget and AppX listings
- Catalog: Remote, cached and embedded catalog resolution
- Foundation: Config, logging, validation, error taxonomy
"""

__version__ = "1.0.0"
__author__ = "Initio Contributors"

VERSION = __version__

# Foundation
from .config import Config, Preferences, Timeouts, load_config, load_config_file
from .errors import (
    InitioError,
    ValidationError,
    ProcessLaunchFailure,
    ProcessTimeout,
    TransientExternalFailure,
    TerminalExternalFailure,
    OperationCancelled,
    CatalogSourceUnavailable,
)
from .logging_config import setup_logging, get_logger
from .models import (
    Operation,
    StatusKind,
    ItemStatus,
    PackageItem,
    BloatwareItem,
    CatalogEntry,
    ProcessResult,
    OperationOutcome,
)
from .validation import is_valid_package_id, is_valid_appx_name, sanitize_search_query

# Process execution
from .process import CancellationToken, ProcessRunner, kill_process_tree

# Package managers
from .package_managers import WingetClient, ListingRow, probe_version, search, is_supported_version
from .bloatware import PowerShellClient, KNOWN_BLOATWARE, known_bloatware

# Operations
from .installer import install_item, remove_item, is_transient_failure
from .bulk import ProgressTracker, RunSummary, run_installs, run_removals
from .eta import EtaEstimate, estimate

# Reconciliation
from .reconcile import Listing, parse_listing, reconcile, detect_bloatware, catalog_status

# Catalog
from .catalog import parse_catalog, resolve_catalog, resolve_configured_catalog, load_embedded_catalog
from .inventory import Inventory, DEFAULT_SETUP, removal_targets

__all__ = [
    "__version__",
    "VERSION",
    # Foundation
    "Config",
    "Preferences",
    "Timeouts",
    "load_config",
    "load_config_file",
    "InitioError",
    "ValidationError",
    "ProcessLaunchFailure",
    "ProcessTimeout",
    "TransientExternalFailure",
    "TerminalExternalFailure",
    "OperationCancelled",
    "CatalogSourceUnavailable",
    "setup_logging",
    "get_logger",
    "Operation",
    "StatusKind",
    "ItemStatus",
    "PackageItem",
    "BloatwareItem",
    "CatalogEntry",
    "ProcessResult",
    "OperationOutcome",
    "is_valid_package_id",
    "is_valid_appx_name",
    "sanitize_search_query",
    # Process execution
    "CancellationToken",
    "ProcessRunner",
    "kill_process_tree",
    # Package managers
    "WingetClient",
    "ListingRow",
    "probe_version",
    "search",
    "is_supported_version",
    "PowerShellClient",
    "KNOWN_BLOATWARE",
    "known_bloatware",
    # Operations
    "install_item",
    "remove_item",
    "is_transient_failure",
    "ProgressTracker",
    "RunSummary",
    "run_installs",
    "run_removals",
    "EtaEstimate",
    "estimate",
    # Reconciliation
    "Listing",
    "parse_listing",
    "reconcile",
    "detect_bloatware",
    "catalog_status",
    # Catalog
    "parse_catalog",
    "resolve_catalog",
    "resolve_configured_catalog",
    "load_embedded_catalog",
    "Inventory",
    "DEFAULT_SETUP",
    "removal_targets",
]
