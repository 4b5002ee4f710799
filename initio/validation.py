"""
Input validation for identifiers passed to external tools.
"""

from __future__ import annotations

import re

from .errors import ValidationError

# Package manager ids, e.g. "Notepad++.Notepad++"
PACKAGE_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9.\-+_]*$")

# AppX package names are interpolated into a shell script, so no "+"
APPX_NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9.\-_]*$")

DANGEROUS_CHARS = frozenset('";&|`$()')


def is_valid_package_id(package_id: str | None) -> bool:
    """Check a package manager id against the strict id grammar."""
    if not package_id or not package_id.strip():
        return False
    return PACKAGE_ID_PATTERN.match(package_id) is not None


def is_valid_appx_name(name: str | None) -> bool:
    """Check an AppX package name against the removal grammar."""
    if not name or not name.strip():
        return False
    return APPX_NAME_PATTERN.match(name) is not None


def require_package_id(package_id: str | None) -> str:
    """
    Return package_id unchanged or raise ValidationError.

    Raises:
        ValidationError: If the id does not match the id grammar
    """
    if not is_valid_package_id(package_id):
        raise ValidationError(
            f"Invalid package id: {package_id!r}",
            remediation="Ids may contain letters, digits, '.', '-', '+' and '_'",
        )
    return package_id  # type: ignore[return-value]


def require_appx_name(name: str | None) -> str:
    """
    Return name unchanged or raise ValidationError.

    Raises:
        ValidationError: If the name does not match the removal grammar
    """
    if not is_valid_appx_name(name):
        raise ValidationError(
            f"Invalid package name: {name!r}",
            remediation="Names may contain letters, digits, '.', '-' and '_'",
        )
    return name  # type: ignore[return-value]


def sanitize_search_query(query: str | None) -> str:
    """
    Strip shell metacharacters from a free-text search query.

    Args:
        query: Raw user input

    Returns:
        Query without dangerous characters, trimmed (empty string for None)
    """
    if not query or not query.strip():
        return ""
    return "".join(c for c in query if c not in DANGEROUS_CHARS).strip()
