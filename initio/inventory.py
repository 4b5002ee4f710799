"""
The user's setup: tracked install items and the known-installed id set.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from .models import BloatwareItem, CatalogEntry, ItemStatus, PackageItem
from .validation import require_package_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppDefinition:
    """Name, category and id of an app to track."""
    name: str
    category: str
    external_id: str


DEFAULT_SETUP: tuple[AppDefinition, ...] = (
    AppDefinition("Chrome", "Browsers", "Google.Chrome"),
    AppDefinition("Firefox", "Browsers", "Mozilla.Firefox"),
    AppDefinition("Spotify", "Media", "Spotify.Spotify"),
    AppDefinition("VLC", "Media", "VideoLAN.VLC"),
    AppDefinition("Discord", "Comms", "Discord.Discord"),
    AppDefinition("Steam", "Gaming", "Valve.Steam"),
    AppDefinition("Dropbox", "Cloud", "Dropbox.Dropbox"),
    AppDefinition("LibreOffice", "Docs", "TheDocumentFoundation.LibreOffice"),
    AppDefinition("NVIDIA App", "Drivers", "Nvidia.NVIDIAApp"),
    AppDefinition("Notepad++", "Utilities", "Notepad++.Notepad++"),
    AppDefinition("Riot Vanguard", "Gaming", "RiotGames.RiotClient"),
    AppDefinition("Foxit PDF Reader", "Docs", "Foxit.FoxitReader"),
)


@dataclass
class Inventory:
    """
    Tracked install items plus the ids known to be installed.

    Ids are compared case-insensitively throughout.

    Attributes:
        items: Tracked items in display order
        installed_ids: Ids reported installed by the last reconcile or run
    """
    items: list[PackageItem] = field(default_factory=list)
    installed_ids: set[str] = field(default_factory=set)

    @classmethod
    def with_defaults(cls) -> Inventory:
        inventory = cls()
        inventory.reset_defaults()
        return inventory

    def get(self, external_id: str) -> PackageItem | None:
        key = external_id.lower()
        return next((item for item in self.items if item.external_id.lower() == key), None)

    def is_known_installed(self, external_id: str) -> bool:
        key = external_id.lower()
        return any(known.lower() == key for known in self.installed_ids)

    def add(self, name: str, category: str, external_id: str) -> PackageItem | None:
        """
        Track a new app, selected for install.

        Args:
            name: Display name (falls back to the id)
            category: Category (falls back to "Custom")
            external_id: Package manager id

        Returns:
            The new item, or None if the id is already tracked

        Raises:
            ValidationError: If external_id is malformed
        """
        package_id = require_package_id(external_id.strip() if external_id else external_id)
        if self.get(package_id) is not None:
            logger.debug(f"Already tracked: {package_id}")
            return None

        item = PackageItem(
            name=name.strip() if name and name.strip() else package_id,
            category=category.strip() if category and category.strip() else "Custom",
            external_id=package_id,
            is_selected=True,
        )
        if self.is_known_installed(package_id):
            item.is_installed = True
            item.status = ItemStatus.detected()
        self.items.append(item)
        logger.info(f"App added: {item.name} ({item.external_id})")
        return item

    def add_entries(self, entries: Iterable[CatalogEntry]) -> list[PackageItem]:
        """Track catalog entries; returns the items actually added."""
        added = []
        for entry in entries:
            item = self.add(entry.name, entry.category, entry.external_id)
            if item is not None:
                added.append(item)
        return added

    def remove(self, external_id: str) -> PackageItem | None:
        """Stop tracking an item; returns it, or None if it was not tracked."""
        item = self.get(external_id)
        if item is None:
            return None
        self.items.remove(item)
        key = external_id.lower()
        self.installed_ids = {known for known in self.installed_ids if known.lower() != key}
        logger.info(f"Removed: {item.name} ({item.external_id})")
        return item

    def reset_defaults(self) -> None:
        """Replace the tracked items with the default setup, all selected."""
        self.items.clear()
        for definition in DEFAULT_SETUP:
            self.add(definition.name, definition.category, definition.external_id)
        for item in self.items:
            item.is_selected = not item.is_installed

    def update_installed(self, installed_ids: Iterable[str]) -> None:
        """Replace the known-installed set after a reconcile."""
        self.installed_ids = set(installed_ids)

    def install_targets(self, include_unselected: bool = False) -> list[PackageItem]:
        """Items a run should install: selected ones, or all of them, that are not installed."""
        return [
            item for item in self.items
            if not item.is_installed and (include_unselected or item.is_selected)
        ]

    def selection_summary(self) -> str:
        installed = sum(1 for item in self.items if item.is_installed)
        selected = sum(1 for item in self.items if item.is_selected and not item.is_installed)
        return f"{selected} selected · {len(self.items) - installed} available · {installed} installed"


def removal_targets(items: Sequence[BloatwareItem]) -> list[BloatwareItem]:
    """Selected bloatware items that are still present."""
    return [item for item in items if item.is_selected and item.is_installed]


def bloatware_summary(items: Sequence[BloatwareItem]) -> str:
    detected = sum(1 for item in items if item.is_installed)
    selected = sum(1 for item in items if item.is_selected and item.is_installed)
    removed = sum(1 for item in items if not item.is_installed and item.status == ItemStatus.succeeded())
    return f"{selected} selected · {detected} detected · {removed} removed"
