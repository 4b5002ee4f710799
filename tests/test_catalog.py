"""
Tests for catalog resolution (initio/catalog.py).
"""

import http.client
import json
from unittest.mock import MagicMock, patch

import pytest

from initio.catalog import (
    SOURCE_CACHE,
    SOURCE_EMBEDDED,
    SOURCE_REMOTE,
    http_get,
    load_embedded_catalog,
    parse_catalog,
    popularity_signal,
    rating_for_rank,
    resolve_catalog,
    resolve_configured_catalog,
    write_cache,
)
from initio.config import load_config_file
from initio.errors import CatalogSourceUnavailable


def catalog_text(*categories):
    return json.dumps({
        "categories": [
            {"name": name, "apps": [{"name": app_id.split(".")[-1], "wingetId": app_id} for app_id in ids]}
            for name, ids in categories
        ]
    })


REMOTE_TEXT = catalog_text(("Gaming", ["Valve.Steam", "EpicGames.EpicGamesLauncher"]))
CACHED_TEXT = catalog_text(("Development", ["Git.Git"]))


def fetch_returning(text):
    return lambda url, timeout: text.encode("utf-8")


def fetch_failing(url, timeout):
    raise CatalogSourceUnavailable("remote", "offline")


class TestRanking:
    """Tests for rank-derived fields."""

    def test_rating(self):
        assert rating_for_rank(1) == 4.9
        assert rating_for_rank(2) == 4.9
        assert rating_for_rank(6) == 4.7
        assert rating_for_rank(100) == 3.5

    def test_rating_bounds(self):
        for rank in range(1, 200):
            assert 3.5 <= rating_for_rank(rank) <= 5.0

    def test_popularity_signal(self):
        assert popularity_signal(1) == "Top ranked"
        assert popularity_signal(3) == "Top ranked"
        assert popularity_signal(4) == "Top free"
        assert popularity_signal(10) == "Top free"
        assert popularity_signal(11) == "Rising"
        assert popularity_signal(20) == "Rising"
        assert popularity_signal(21) == "New"


class TestParseCatalog:
    """Tests for parse_catalog."""

    def test_ranks_per_category(self):
        text = catalog_text(("Gaming", ["Valve.Steam", "GOG.Galaxy"]), ("Development", ["Git.Git"]))
        entries = parse_catalog(text)
        assert [(e.category, e.rank, e.external_id) for e in entries] == [
            ("Gaming", 1, "Valve.Steam"),
            ("Gaming", 2, "GOG.Galaxy"),
            ("Development", 1, "Git.Git"),
        ]
        assert entries[0].popularity_signal == "Top ranked"

    def test_skips_invalid_and_duplicate_ids(self):
        text = json.dumps({"categories": [
            {"name": "Tools", "apps": [
                {"name": "Missing"},
                {"name": "Blank", "wingetId": "  "},
                {"name": "Evil", "wingetId": "x; rm -rf /"},
                {"name": "Git", "wingetId": "Git.Git"},
                {"name": "Dupe", "wingetId": "git.git"},
                {"name": "7-Zip", "wingetId": "7zip.7zip"},
            ]},
        ]})
        entries = parse_catalog(text)
        assert [(e.rank, e.external_id) for e in entries] == [(1, "Git.Git"), (2, "7zip.7zip")]

    def test_missing_name_falls_back_to_id(self):
        entries = parse_catalog('{"categories": [{"name": "X", "apps": [{"wingetId": "Git.Git"}]}]}')
        assert entries[0].name == "Git.Git"

    def test_empty_categories(self):
        assert parse_catalog('{"categories": []}') == []

    @pytest.mark.parametrize("text", ["not json", "[]", '{"apps": []}', '{"categories": {}}'])
    def test_malformed_document(self, text):
        with pytest.raises(CatalogSourceUnavailable):
            parse_catalog(text)


class TestEmbeddedCatalog:
    """Tests for the catalog shipped with the package."""

    def test_not_empty_and_unique(self):
        entries = load_embedded_catalog()
        assert len(entries) > 0
        ids = [e.external_id.lower() for e in entries]
        assert len(ids) == len(set(ids))

    def test_expected_categories_and_apps(self):
        entries = load_embedded_catalog()
        categories = {e.category for e in entries}
        assert categories == {
            "Productivity",
            "Communication",
            "Media & Creativity",
            "Development",
            "Gaming",
            "Security & Privacy",
            "System Utilities",
        }
        ids = {e.external_id for e in entries}
        for expected in (
            "Microsoft.PowerToys", "Mozilla.Firefox", "Discord.Discord", "Valve.Steam",
            "Microsoft.VisualStudioCode", "Git.Git", "Spotify.Spotify", "VideoLAN.VLC",
        ):
            assert expected in ids

    def test_ranks_are_sequential(self):
        entries = load_embedded_catalog()
        by_category = {}
        for entry in entries:
            by_category.setdefault(entry.category, []).append(entry.rank)
        for ranks in by_category.values():
            assert ranks == list(range(1, len(ranks) + 1))


class TestHttpGet:
    """Tests for http_get."""

    def test_sends_user_agent(self):
        response = MagicMock()
        response.read.return_value = b"{}"
        response.__enter__.return_value = response
        with patch("initio.catalog.urllib.request.urlopen", return_value=response) as mock_open:
            assert http_get("https://example.com/c.json", timeout=5) == b"{}"
        request = mock_open.call_args[0][0]
        assert request.get_header("User-agent").startswith("initio/")
        assert mock_open.call_args[1]["timeout"] == 5

    def test_network_error(self):
        with patch("initio.catalog.urllib.request.urlopen", side_effect=OSError("unreachable")):
            with pytest.raises(CatalogSourceUnavailable):
                http_get("https://example.com/c.json")

    def test_http_protocol_error(self):
        with patch("initio.catalog.urllib.request.urlopen", side_effect=http.client.BadStatusLine("garbage")):
            with pytest.raises(CatalogSourceUnavailable):
                http_get("https://example.com/c.json")


class TestResolveCatalog:
    """Tests for the remote -> cache -> embedded cascade."""

    def test_remote_wins_and_is_cached(self, tmp_path):
        cache = tmp_path / "Initio" / "catalog_cache.json"

        entries, source = resolve_catalog(cache_path=cache, fetch=fetch_returning(REMOTE_TEXT))

        assert source == SOURCE_REMOTE
        assert [e.external_id for e in entries] == ["Valve.Steam", "EpicGames.EpicGamesLauncher"]
        assert cache.read_text(encoding="utf-8") == REMOTE_TEXT
        assert not cache.with_suffix(".tmp").exists()

    def test_cache_when_remote_fails(self, tmp_path):
        cache = tmp_path / "catalog_cache.json"
        cache.write_text(CACHED_TEXT, encoding="utf-8")

        entries, source = resolve_catalog(cache_path=cache, fetch=fetch_failing)

        assert source == SOURCE_CACHE
        assert [e.external_id for e in entries] == ["Git.Git"]

    def test_cache_when_remote_is_empty(self, tmp_path):
        cache = tmp_path / "catalog_cache.json"
        cache.write_text(CACHED_TEXT, encoding="utf-8")

        entries, source = resolve_catalog(cache_path=cache, fetch=fetch_returning('{"categories": []}'))

        assert source == SOURCE_CACHE
        assert cache.read_text(encoding="utf-8") == CACHED_TEXT

    def test_cache_when_remote_is_garbage(self, tmp_path):
        cache = tmp_path / "catalog_cache.json"
        cache.write_text(CACHED_TEXT, encoding="utf-8")

        _, source = resolve_catalog(cache_path=cache, fetch=fetch_returning("<html>502</html>"))

        assert source == SOURCE_CACHE

    def test_embedded_when_everything_fails(self, tmp_path):
        cache = tmp_path / "missing.json"

        entries, source = resolve_catalog(cache_path=cache, fetch=fetch_failing)

        assert source == SOURCE_EMBEDDED
        assert entries == load_embedded_catalog()

    def test_embedded_when_cache_is_corrupt(self, tmp_path):
        cache = tmp_path / "catalog_cache.json"
        cache.write_text("{truncated", encoding="utf-8")

        def fetch_oserror(url, timeout):
            raise OSError("down")

        _, source = resolve_catalog(cache_path=cache, fetch=fetch_oserror)

        assert source == SOURCE_EMBEDDED

    def test_embedded_when_cache_has_invalid_bytes(self, tmp_path):
        cache = tmp_path / "catalog_cache.json"
        cache.write_bytes(b"\xff\xfe{\"categories\": []}")

        entries, source = resolve_catalog(cache_path=cache, fetch=fetch_failing)

        assert source == SOURCE_EMBEDDED
        assert entries

    def test_cache_when_remote_breaks_protocol(self, tmp_path):
        cache = tmp_path / "catalog_cache.json"
        cache.write_text(CACHED_TEXT, encoding="utf-8")

        def fetch_incomplete(url, timeout):
            raise http.client.IncompleteRead(b"{\"categ")

        _, source = resolve_catalog(cache_path=cache, fetch=fetch_incomplete)

        assert source == SOURCE_CACHE

    def test_cache_when_urlopen_returns_bad_status_line(self, tmp_path):
        cache = tmp_path / "catalog_cache.json"
        cache.write_text(CACHED_TEXT, encoding="utf-8")

        with patch("initio.catalog.urllib.request.urlopen", side_effect=http.client.BadStatusLine("garbage")):
            _, source = resolve_catalog(cache_path=cache)

        assert source == SOURCE_CACHE

    def test_cache_write_failure_still_returns_remote(self, tmp_path):
        with patch("initio.catalog.write_cache", side_effect=OSError("read-only")):
            _, source = resolve_catalog(cache_path=tmp_path / "c.json", fetch=fetch_returning(REMOTE_TEXT))
        assert source == SOURCE_REMOTE

    def test_uses_timeout_and_url(self, tmp_path):
        calls = []

        def fetch(url, timeout):
            calls.append((url, timeout))
            return REMOTE_TEXT.encode("utf-8")

        resolve_catalog("https://example.com/c.json", tmp_path / "c.json", timeout=3, fetch=fetch)
        assert calls == [("https://example.com/c.json", 3)]


class TestWriteCache:
    """Tests for write_cache."""

    def test_creates_parent_and_replaces(self, tmp_path):
        path = tmp_path / "a" / "b" / "catalog_cache.json"
        write_cache("one", path)
        write_cache("two", path)
        assert path.read_text(encoding="utf-8") == "two"


class TestResolveConfiguredCatalog:
    """Tests for catalog resolution driven by configuration."""

    def test_uses_configured_url_cache_and_timeout(self, tmp_path):
        cache = tmp_path / "custom" / "catalog.json"
        config_file = tmp_path / "config.yml"
        config_file.write_text(
            "version: 1\n"
            "preferences:\n"
            "  catalog_url: https://mirror.example.org/catalog.json\n"
            f"  cache_file: {cache}\n"
            "timeouts:\n"
            "  catalog_fetch: 12\n",
            encoding="utf-8",
        )
        config = load_config_file(str(config_file))
        calls = []

        def fetch(url, timeout):
            calls.append((url, timeout))
            return REMOTE_TEXT.encode("utf-8")

        _, source = resolve_configured_catalog(config, fetch=fetch)

        assert source == SOURCE_REMOTE
        assert calls == [("https://mirror.example.org/catalog.json", 12.0)]
        assert cache.read_text(encoding="utf-8") == REMOTE_TEXT
