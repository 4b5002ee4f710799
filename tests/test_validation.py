"""
Tests for identifier validation (initio/validation.py).
"""

import pytest

from initio.errors import ValidationError
from initio.validation import (
    is_valid_appx_name,
    is_valid_package_id,
    require_appx_name,
    require_package_id,
    sanitize_search_query,
)


class TestPackageIds:
    """Tests for package manager id validation."""

    @pytest.mark.parametrize("package_id", [
        "Google.Chrome",
        "Notepad++.Notepad++",
        "Python.Python.3.12",
        "7zip.7zip",
        "Adobe.Acrobat.Reader.64-bit",
        "Some_Vendor.App",
    ])
    def test_valid_ids(self, package_id):
        assert is_valid_package_id(package_id) is True

    @pytest.mark.parametrize("package_id", [
        "",
        "   ",
        None,
        "bad id;rm -rf",
        ".Leading.Dot",
        "Foo$(whoami)",
        "Foo|Bar",
        "Foo\"Bar",
        "Foo&Bar",
    ])
    def test_invalid_ids(self, package_id):
        assert is_valid_package_id(package_id) is False

    def test_require_returns_id(self):
        assert require_package_id("Git.Git") == "Git.Git"

    def test_require_raises_validation_error(self):
        with pytest.raises(ValidationError) as exc_info:
            require_package_id("bad id;rm -rf")
        assert exc_info.value.retryable is False
        assert exc_info.value.remediation


class TestAppxNames:
    """Tests for AppX package name validation."""

    def test_valid_names(self):
        assert is_valid_appx_name("Microsoft.BingNews")
        assert is_valid_appx_name("king.com.CandyCrushSaga")
        assert is_valid_appx_name("Disney.37853FC22B2CE")

    def test_plus_not_allowed(self):
        """Removal names are interpolated into a script; '+' is rejected."""
        assert is_valid_appx_name("Notepad++") is False

    def test_quote_injection_rejected(self):
        with pytest.raises(ValidationError):
            require_appx_name("x' | Remove-Item C:\\ '")


class TestSanitizeSearchQuery:
    """Tests for search query sanitizing."""

    def test_strips_metacharacters(self):
        assert sanitize_search_query('vs"code; rm -rf $(x) | `y` &') == "vscode rm -rf x  y"

    def test_empty_inputs(self):
        assert sanitize_search_query(None) == ""
        assert sanitize_search_query("   ") == ""

    def test_plain_query_unchanged(self):
        assert sanitize_search_query("  visual studio  ") == "visual studio"
