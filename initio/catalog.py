"""
Installable catalog resolution.

The catalog is resolved through a cascade of sources: the remote document,
then the last remote document cached on disk, then the copy shipped with the
package. Each source is tried only when the previous one fails or yields no
entries, so resolution always returns something.
"""

from __future__ import annotations

import http.client
import json
import logging
import urllib.request
from pathlib import Path
from typing import Any, Callable

from .config import DEFAULT_CATALOG_URL, Config, default_cache_path
from .errors import CatalogSourceUnavailable
from .models import CatalogEntry
from .validation import is_valid_package_id

logger = logging.getLogger(__name__)

SOURCE_REMOTE = "remote"
SOURCE_CACHE = "cache"
SOURCE_EMBEDDED = "embedded"

USER_AGENT = "initio/1.0"
EMBEDDED_CATALOG_PATH = Path(__file__).parent / "data" / "catalog.json"


def rating_for_rank(rank: int) -> float:
    """Rating derived from rank, within [3.5, 5.0]."""
    return min(5.0, max(3.5, round(4.9 - (rank - 1) * 0.04, 1)))


def popularity_signal(rank: int) -> str:
    if rank <= 3:
        return "Top ranked"
    if rank <= 10:
        return "Top free"
    if rank <= 20:
        return "Rising"
    return "New"


def parse_catalog(text: str, source: str = "catalog") -> list[CatalogEntry]:
    """
    Parse a catalog document into ranked entries.

    Expected shape:
    {"categories": [{"name": "...", "apps": [{"name": "...", "wingetId": "..."}]}]}

    Apps with a missing or invalid id, or an id already seen (case-insensitive),
    are skipped. Ranks are assigned 1..N to the kept apps of each category.

    Args:
        text: Raw JSON document
        source: Source label used in error messages

    Returns:
        Entries in document order

    Raises:
        CatalogSourceUnavailable: If the text is not a catalog document
    """
    try:
        data: Any = json.loads(text)
    except (json.JSONDecodeError, TypeError) as e:
        raise CatalogSourceUnavailable(source, f"invalid JSON: {e}") from e

    if not isinstance(data, dict) or not isinstance(data.get("categories"), list):
        raise CatalogSourceUnavailable(source, "missing 'categories' list")

    entries: list[CatalogEntry] = []
    seen: set[str] = set()

    for category in data["categories"]:
        if not isinstance(category, dict):
            continue
        category_name = category.get("name")
        if not isinstance(category_name, str) or not category_name.strip():
            category_name = "Unknown"
        apps = category.get("apps")
        if not isinstance(apps, list):
            continue

        rank = 0
        for app in apps:
            if not isinstance(app, dict):
                continue
            package_id = app.get("wingetId")
            if not isinstance(package_id, str):
                continue
            package_id = package_id.strip()
            if not is_valid_package_id(package_id):
                logger.debug(f"Skipping catalog app with invalid id: {package_id!r}")
                continue
            if package_id.lower() in seen:
                logger.debug(f"Skipping duplicate catalog id: {package_id}")
                continue
            seen.add(package_id.lower())

            name = app.get("name")
            if not isinstance(name, str) or not name.strip():
                name = package_id

            rank += 1
            entries.append(CatalogEntry(
                category=category_name.strip(),
                rank=rank,
                name=name.strip(),
                external_id=package_id,
                rating=rating_for_rank(rank),
                popularity_signal=popularity_signal(rank),
            ))

    return entries


def http_get(url: str, timeout: float = 5.0, headers: dict[str, str] | None = None) -> bytes:
    """Perform HTTP GET request.

    Args:
        url: URL to fetch
        timeout: Timeout in seconds
        headers: Optional HTTP headers

    Returns:
        Response body as bytes

    Raises:
        CatalogSourceUnavailable: If request fails
    """
    try:
        default_headers = {"User-Agent": USER_AGENT}
        if headers:
            default_headers.update(headers)

        req = urllib.request.Request(url, headers=default_headers)
        with urllib.request.urlopen(req, timeout=timeout) as response:
            return response.read()
    except (OSError, ValueError, http.client.HTTPException) as e:
        raise CatalogSourceUnavailable(SOURCE_REMOTE, f"failed to fetch {url}: {e}") from e


def write_cache(text: str, path: Path) -> None:
    """
    Persist a raw catalog document.

    Atomic write: write to temp file then rename.

    Raises:
        OSError: If the file cannot be written
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_suffix(".tmp")
    with open(temp_path, "w", encoding="utf-8") as f:
        f.write(text)
    temp_path.replace(path)


def read_cache(path: Path) -> str:
    """
    Read the cached catalog document.

    Raises:
        CatalogSourceUnavailable: If the file is missing or unreadable
    """
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise CatalogSourceUnavailable(SOURCE_CACHE, str(e)) from e


def load_embedded_catalog() -> list[CatalogEntry]:
    """Entries of the catalog shipped with the package."""
    return parse_catalog(EMBEDDED_CATALOG_PATH.read_text(encoding="utf-8"), SOURCE_EMBEDDED)


def fetch_remote(
    url: str,
    cache_path: Path,
    timeout: float = 5.0,
    fetch: Callable[[str, float], bytes] | None = None,
) -> list[CatalogEntry]:
    """
    Download and parse the remote catalog, caching it on success.

    A cache write failure does not fail the fetch.

    Raises:
        CatalogSourceUnavailable: If download or parse fails
    """
    getter = fetch or (lambda u, t: http_get(u, timeout=t))
    try:
        body = getter(url, timeout)
    except (OSError, http.client.HTTPException) as e:
        raise CatalogSourceUnavailable(SOURCE_REMOTE, str(e)) from e
    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError as e:
        raise CatalogSourceUnavailable(SOURCE_REMOTE, f"invalid encoding: {e}") from e

    entries = parse_catalog(text, SOURCE_REMOTE)
    if entries:
        try:
            write_cache(text, cache_path)
        except OSError as e:
            logger.debug(f"Could not write catalog cache {cache_path}: {e}")
    return entries


def resolve_catalog(
    url: str = DEFAULT_CATALOG_URL,
    cache_path: Path | None = None,
    timeout: float = 5.0,
    fetch: Callable[[str, float], bytes] | None = None,
) -> tuple[list[CatalogEntry], str]:
    """
    Resolve the catalog from the first source that yields entries.

    Args:
        url: Remote catalog URL
        cache_path: Cache file (default per-user location)
        timeout: Remote fetch timeout in seconds
        fetch: Replacement for the HTTP GET, called as fetch(url, timeout)

    Returns:
        Tuple of (entries, source) where source is "remote", "cache" or "embedded"
    """
    if cache_path is None:
        cache_path = default_cache_path()

    try:
        entries = fetch_remote(url, cache_path, timeout, fetch)
        if entries:
            logger.info(f"Catalog loaded from remote: {len(entries)} apps")
            return entries, SOURCE_REMOTE
        logger.debug("Remote catalog had no entries")
    except CatalogSourceUnavailable as e:
        logger.debug(e.message)

    try:
        entries = parse_catalog(read_cache(cache_path), SOURCE_CACHE)
        if entries:
            logger.info(f"Catalog loaded from cache: {len(entries)} apps")
            return entries, SOURCE_CACHE
        logger.debug("Cached catalog had no entries")
    except CatalogSourceUnavailable as e:
        logger.debug(e.message)

    entries = load_embedded_catalog()
    logger.info(f"Catalog loaded from embedded copy: {len(entries)} apps")
    return entries, SOURCE_EMBEDDED


def resolve_configured_catalog(
    config: Config | None = None,
    fetch: Callable[[str, float], bytes] | None = None,
) -> tuple[list[CatalogEntry], str]:
    """Resolve the catalog using the configured URL, cache file and fetch timeout."""
    config = config or Config()
    return resolve_catalog(
        url=config.preferences.catalog_url,
        cache_path=config.preferences.cache_path,
        timeout=config.timeouts.catalog_fetch,
        fetch=fetch,
    )
