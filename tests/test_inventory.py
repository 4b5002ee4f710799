"""
Tests for the tracked setup (initio/inventory.py).
"""

import pytest

from initio.errors import ValidationError
from initio.inventory import (
    DEFAULT_SETUP,
    Inventory,
    bloatware_summary,
    removal_targets,
)
from initio.models import BloatwareItem, CatalogEntry, ItemStatus, StatusKind


class TestDefaults:
    """Tests for the default setup."""

    def test_default_setup_contents(self):
        ids = [d.external_id for d in DEFAULT_SETUP]
        assert len(ids) == 12
        assert ids[0] == "Google.Chrome"
        assert "Notepad++.Notepad++" in ids
        assert "Foxit.FoxitReader" in ids

    def test_with_defaults_selects_everything(self):
        inventory = Inventory.with_defaults()
        assert len(inventory.items) == len(DEFAULT_SETUP)
        assert all(item.is_selected for item in inventory.items)

    def test_reset_keeps_known_installed(self):
        inventory = Inventory(installed_ids={"valve.steam"})
        inventory.reset_defaults()
        steam = inventory.get("Valve.Steam")
        assert steam.is_installed is True
        assert steam.is_selected is False
        assert steam.status.kind == StatusKind.DETECTED


class TestAddRemove:
    """Tests for adding and removing tracked apps."""

    def test_add(self):
        inventory = Inventory()
        item = inventory.add("Git", "Development", "Git.Git")
        assert item.is_selected is True
        assert inventory.get("git.git") is item

    def test_add_duplicate_is_ignored(self):
        inventory = Inventory()
        inventory.add("Git", "Development", "Git.Git")
        assert inventory.add("Git again", "Other", "GIT.GIT") is None
        assert len(inventory.items) == 1

    def test_add_invalid_id(self):
        with pytest.raises(ValidationError):
            Inventory().add("Evil", "Custom", "bad id;rm -rf")

    def test_add_defaults_name_and_category(self):
        item = Inventory().add("", "  ", "Git.Git")
        assert item.name == "Git.Git"
        assert item.category == "Custom"

    def test_add_entries(self):
        inventory = Inventory.with_defaults()
        entries = [
            CatalogEntry("Gaming", 1, "Steam", "Valve.Steam", 4.9, "Top ranked"),
            CatalogEntry("Development", 1, "Git", "Git.Git", 4.9, "Top ranked"),
        ]
        added = inventory.add_entries(entries)
        assert [item.external_id for item in added] == ["Git.Git"]

    def test_remove(self):
        inventory = Inventory(installed_ids={"Git.Git"})
        inventory.add("Git", "Development", "Git.Git")
        removed = inventory.remove("git.git")
        assert removed.external_id == "Git.Git"
        assert inventory.items == []
        assert inventory.installed_ids == set()
        assert inventory.remove("Git.Git") is None


class TestTargets:
    """Tests for run target selection."""

    def test_install_targets(self):
        inventory = Inventory()
        chrome = inventory.add("Chrome", "Browsers", "Google.Chrome")
        git = inventory.add("Git", "Development", "Git.Git")
        steam = inventory.add("Steam", "Gaming", "Valve.Steam")
        git.is_selected = False
        steam.is_installed = True

        assert inventory.install_targets() == [chrome]
        assert inventory.install_targets(include_unselected=True) == [chrome, git]

    def test_selection_summary(self):
        inventory = Inventory.with_defaults()
        inventory.items[0].is_installed = True
        assert inventory.selection_summary() == "11 selected · 11 available · 1 installed"

    def test_removal_targets_and_summary(self):
        news = BloatwareItem("News", "Microsoft Bloat", "Microsoft.BingNews", is_selected=True, is_installed=True)
        tips = BloatwareItem("Tips", "Promotions", "Microsoft.Getstarted", is_installed=True)
        gone = BloatwareItem("Maps", "Microsoft Bloat", "Microsoft.WindowsMaps", is_selected=True, is_installed=True)
        gone.is_installed = False
        gone.status = ItemStatus.succeeded()

        assert removal_targets([news, tips, gone]) == [news]
        assert bloatware_summary([news, tips, gone]) == "1 selected · 2 detected · 1 removed"
