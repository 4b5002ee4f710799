"""
Data model for tracked packages, catalog entries and process results.

Items are plain records. The orchestrating shell is notified of changes
through ProgressTracker callbacks, not through the items themselves.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar

_MISSING = object()


class Operation(Enum):
    """Kind of bulk operation an item participates in."""
    INSTALL = "install"
    REMOVE = "remove"


class StatusKind(Enum):
    """Closed set of item states."""
    READY = "ready"
    PENDING = "pending"
    RUNNING = "running"
    VERIFYING = "verifying"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    DETECTED = "detected"
    NOT_FOUND = "not_found"


_LABELS: dict[Operation, dict[StatusKind, str]] = {
    Operation.INSTALL: {
        StatusKind.READY: "Ready",
        StatusKind.PENDING: "Pending",
        StatusKind.RUNNING: "Installing...",
        StatusKind.VERIFYING: "Verifying...",
        StatusKind.RETRYING: "Retrying ({attempt}/{max_attempts})...",
        StatusKind.SUCCEEDED: "Installed",
        StatusKind.FAILED: "Failed",
        StatusKind.DETECTED: "Installed",
        StatusKind.NOT_FOUND: "Pending",
    },
    Operation.REMOVE: {
        StatusKind.READY: "Detected",
        StatusKind.PENDING: "Pending",
        StatusKind.RUNNING: "Removing...",
        StatusKind.VERIFYING: "Verifying removal...",
        StatusKind.RETRYING: "Retrying ({attempt}/{max_attempts})...",
        StatusKind.SUCCEEDED: "Removed",
        StatusKind.FAILED: "Failed",
        StatusKind.DETECTED: "Detected",
        StatusKind.NOT_FOUND: "Not Found",
    },
}


@dataclass(frozen=True)
class ItemStatus:
    """
    Status of a tracked item.

    Attributes:
        kind: State machine position
        attempt: Attempt number for RETRYING (1-indexed)
        max_attempts: Total attempts allowed, for RETRYING
        reason: Failure reason for FAILED
    """
    kind: StatusKind = StatusKind.READY
    attempt: int = 0
    max_attempts: int = 0
    reason: str = ""

    @classmethod
    def ready(cls) -> ItemStatus:
        return cls(StatusKind.READY)

    @classmethod
    def pending(cls) -> ItemStatus:
        return cls(StatusKind.PENDING)

    @classmethod
    def running(cls) -> ItemStatus:
        return cls(StatusKind.RUNNING)

    @classmethod
    def verifying(cls) -> ItemStatus:
        return cls(StatusKind.VERIFYING)

    @classmethod
    def retrying(cls, attempt: int, max_attempts: int) -> ItemStatus:
        return cls(StatusKind.RETRYING, attempt=attempt, max_attempts=max_attempts)

    @classmethod
    def succeeded(cls) -> ItemStatus:
        return cls(StatusKind.SUCCEEDED)

    @classmethod
    def failed(cls, reason: str = "") -> ItemStatus:
        return cls(StatusKind.FAILED, reason=reason)

    @classmethod
    def detected(cls) -> ItemStatus:
        return cls(StatusKind.DETECTED)

    @classmethod
    def not_found(cls) -> ItemStatus:
        return cls(StatusKind.NOT_FOUND)

    @property
    def is_terminal(self) -> bool:
        return self.kind in (StatusKind.SUCCEEDED, StatusKind.FAILED)

    def label(self, operation: Operation = Operation.INSTALL) -> str:
        """Human-readable status text for the given operation."""
        template = _LABELS[operation][self.kind]
        return template.format(attempt=self.attempt, max_attempts=self.max_attempts)


@dataclass
class PackageItem:
    """
    A package tracked for installation.

    Setting is_installed to True deselects the item: an installed package is
    never a pending install target.

    Attributes:
        name: Display name
        category: Catalog category
        external_id: Package manager id (unique key)
        is_selected: Whether the user selected the item for the next run
        is_installed: Whether the package manager reports it installed
        status: Current state machine position
    """
    name: str
    category: str
    external_id: str
    is_selected: bool = False
    is_installed: bool = False
    status: ItemStatus = field(default_factory=ItemStatus.ready)

    operation: ClassVar[Operation] = Operation.INSTALL

    def __setattr__(self, name: str, value: Any) -> None:
        previous = self.__dict__.get(name, _MISSING)
        super().__setattr__(name, value)
        if name == "is_installed" and value != previous and self._deselects_when_installed(value):
            super().__setattr__("is_selected", False)

    def _deselects_when_installed(self, installed: bool) -> bool:
        return installed

    @property
    def status_text(self) -> str:
        return self.status.label(self.operation)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.name,
            "category": self.category,
            "external_id": self.external_id,
            "is_selected": self.is_selected,
            "is_installed": self.is_installed,
            "status": self.status_text,
        }


@dataclass
class BloatwareItem(PackageItem):
    """
    A pre-installed AppX package tracked for removal.

    Here the invariant is inverted: once the package is gone it can no
    longer be a removal target, so is_installed=False deselects it.
    """
    description: str = ""

    operation: ClassVar[Operation] = Operation.REMOVE

    def _deselects_when_installed(self, installed: bool) -> bool:
        return not installed

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["description"] = self.description
        return data


@dataclass(frozen=True)
class CatalogEntry:
    """
    A ranked entry of the installable catalog.

    Attributes:
        category: Category name
        rank: 1-based position within the category
        name: Display name
        external_id: Package manager id
        rating: Derived from rank, within [3.5, 5.0]
        popularity_signal: "Top ranked", "Top free", "Rising" or "New"
    """
    category: str
    rank: int
    name: str
    external_id: str
    rating: float
    popularity_signal: str

    @property
    def trend_score(self) -> int:
        return max(42, 100 - (self.rank - 1) * 2)

    def to_item(self) -> PackageItem:
        """Create a tracked install item for this entry."""
        return PackageItem(name=self.name, category=self.category, external_id=self.external_id)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "category": self.category,
            "rank": self.rank,
            "name": self.name,
            "external_id": self.external_id,
            "rating": self.rating,
            "popularity_signal": self.popularity_signal,
        }


@dataclass(frozen=True)
class ProcessResult:
    """Snapshot of one finished external invocation."""
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def output(self) -> str:
        """Combined stdout and stderr."""
        if self.stdout and self.stderr:
            return f"{self.stdout}\n{self.stderr}"
        return self.stdout or self.stderr


@dataclass(frozen=True)
class OperationOutcome:
    """
    Result of the full retry sequence for one item.

    Attributes:
        success: Whether the item reached its target state
        exit_code: Exit code of the last invocation (-1 if none ran)
        attempts_used: Number of process attempts made
        error_message: Reason for failure
    """
    success: bool
    exit_code: int
    attempts_used: int
    error_message: str | None = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "success": self.success,
            "exit_code": self.exit_code,
            "attempts_used": self.attempts_used,
            "error_message": self.error_message,
        }
