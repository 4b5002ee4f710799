"""
Tests for the data model (initio/models.py).
"""

from initio.models import (
    BloatwareItem,
    CatalogEntry,
    ItemStatus,
    Operation,
    OperationOutcome,
    PackageItem,
    ProcessResult,
    StatusKind,
)


class TestItemStatus:
    """Tests for status labels."""

    def test_install_labels(self):
        assert ItemStatus.ready().label() == "Ready"
        assert ItemStatus.running().label() == "Installing..."
        assert ItemStatus.verifying().label() == "Verifying..."
        assert ItemStatus.retrying(2, 2).label() == "Retrying (2/2)..."
        assert ItemStatus.succeeded().label() == "Installed"
        assert ItemStatus.failed("boom").label() == "Failed"
        assert ItemStatus.detected().label() == "Installed"
        assert ItemStatus.pending().label() == "Pending"

    def test_remove_labels(self):
        op = Operation.REMOVE
        assert ItemStatus.detected().label(op) == "Detected"
        assert ItemStatus.running().label(op) == "Removing..."
        assert ItemStatus.succeeded().label(op) == "Removed"
        assert ItemStatus.not_found().label(op) == "Not Found"
        assert ItemStatus.failed().label(op) == "Failed"

    def test_terminal(self):
        assert ItemStatus.succeeded().is_terminal
        assert ItemStatus.failed("x").is_terminal
        assert not ItemStatus.running().is_terminal
        assert not ItemStatus.retrying(2, 2).is_terminal

    def test_failed_keeps_reason(self):
        status = ItemStatus.failed("Exit code 1")
        assert status.kind == StatusKind.FAILED
        assert status.reason == "Exit code 1"


class TestPackageItem:
    """Tests for the install item invariant."""

    def test_installed_deselects(self):
        item = PackageItem("Chrome", "Browsers", "Google.Chrome", is_selected=True)
        item.is_installed = True
        assert item.is_selected is False

    def test_uninstalled_keeps_selection(self):
        item = PackageItem("Chrome", "Browsers", "Google.Chrome", is_selected=True)
        item.is_installed = False
        assert item.is_selected is True

    def test_constructed_installed_is_deselected(self):
        item = PackageItem("Chrome", "Browsers", "Google.Chrome", is_selected=True, is_installed=True)
        assert item.is_selected is False

    def test_status_text(self):
        item = PackageItem("Chrome", "Browsers", "Google.Chrome")
        item.status = ItemStatus.running()
        assert item.status_text == "Installing..."

    def test_to_dict(self):
        data = PackageItem("Chrome", "Browsers", "Google.Chrome").to_dict()
        assert data["external_id"] == "Google.Chrome"
        assert data["status"] == "Ready"


class TestBloatwareItem:
    """Tests for the removal item invariant."""

    def test_not_installed_deselects(self):
        item = BloatwareItem("News", "Microsoft Bloat", "Microsoft.BingNews", is_selected=True, is_installed=True)
        assert item.is_selected is True
        item.is_installed = False
        assert item.is_selected is False

    def test_installed_keeps_selection(self):
        item = BloatwareItem("News", "Microsoft Bloat", "Microsoft.BingNews", is_installed=True)
        item.is_selected = True
        item.is_installed = True
        assert item.is_selected is True

    def test_removal_labels(self):
        item = BloatwareItem("News", "Microsoft Bloat", "Microsoft.BingNews", description="Bing News")
        item.status = ItemStatus.succeeded()
        assert item.status_text == "Removed"
        assert item.to_dict()["description"] == "Bing News"


class TestCatalogEntry:
    """Tests for catalog entry helpers."""

    def test_trend_score(self):
        entry = CatalogEntry("Gaming", 1, "Steam", "Valve.Steam", 4.9, "Top ranked")
        assert entry.trend_score == 100
        deep = CatalogEntry("Gaming", 40, "X", "X.X", 3.5, "New")
        assert deep.trend_score == 42

    def test_to_item(self):
        entry = CatalogEntry("Gaming", 1, "Steam", "Valve.Steam", 4.9, "Top ranked")
        item = entry.to_item()
        assert item.external_id == "Valve.Steam"
        assert item.category == "Gaming"
        assert item.is_selected is False


class TestResults:
    """Tests for process results and outcomes."""

    def test_output_combines_streams(self):
        assert ProcessResult(0, "out", "err").output == "out\nerr"
        assert ProcessResult(0, "out", "").output == "out"
        assert ProcessResult(0, "", "err").output == "err"
        assert ProcessResult(0).output == ""

    def test_outcome_to_dict(self):
        data = OperationOutcome(False, 1, 2, "Exit code 1").to_dict()
        assert data == {
            "success": False,
            "exit_code": 1,
            "attempts_used": 2,
            "error_message": "Exit code 1",
        }
