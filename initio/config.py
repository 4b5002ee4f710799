"""
Configuration file parsing and management.

Supports YAML configuration files with JSON fallback.
Merges configurations from multiple sources (project → user → defaults).
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .common import app_data_dir, vlog

DEFAULT_CATALOG_URL = "https://raw.githubusercontent.com/UriCaBa/Initio/main/catalog.json"
CACHE_FILE_NAME = "catalog_cache.json"


def _config_locations() -> list[str]:
    """Configuration file locations in priority order."""
    return [
        ".initio.yml",
        ".initio.yaml",
        os.path.expanduser("~/.config/initio/config.yml"),
        os.path.expanduser("~/.config/initio/config.yaml"),
        str(app_data_dir() / "config.yml"),
    ]


def default_cache_path() -> Path:
    """Catalog cache file path from env or the per-user app data directory."""
    override = os.environ.get("INITIO_CACHE_FILE")
    if override:
        return Path(override)
    return app_data_dir() / CACHE_FILE_NAME


def _check_range(name: str, value: float, low: float, high: float) -> None:
    if value < low or value > high:
        raise ValueError(f"Invalid {name}: {value}. Must be between {low:g} and {high:g}")


@dataclass(frozen=True)
class Timeouts:
    """
    Per-invocation timeouts in seconds.

    Attributes:
        version_probe: `winget --version`
        default_command: Any command without a specific timeout
        install: A single package install
        listing: Listing, search and install verification queries
        catalog_fetch: Remote catalog download
        bloatware_detection: AppX listing
        bloatware_removal: A single AppX removal
        removal_verify: Post-removal AppX query
    """
    version_probe: float = 30.0
    default_command: float = 30.0
    install: float = 15 * 60.0
    listing: float = 15.0
    catalog_fetch: float = 5.0
    bloatware_detection: float = 30.0
    bloatware_removal: float = 60.0
    removal_verify: float = 10.0

    def __post_init__(self):
        _check_range("timeouts.version_probe", self.version_probe, 1, 300)
        _check_range("timeouts.default_command", self.default_command, 1, 300)
        _check_range("timeouts.install", self.install, 10, 4 * 3600)
        _check_range("timeouts.listing", self.listing, 1, 300)
        _check_range("timeouts.catalog_fetch", self.catalog_fetch, 1, 60)
        _check_range("timeouts.bloatware_detection", self.bloatware_detection, 1, 600)
        _check_range("timeouts.bloatware_removal", self.bloatware_removal, 1, 600)
        _check_range("timeouts.removal_verify", self.removal_verify, 1, 300)

    @staticmethod
    def from_dict(data: dict[str, Any]) -> Timeouts:
        """Create Timeouts from dictionary."""
        defaults = Timeouts()
        return Timeouts(**{
            name: float(data.get(name, getattr(defaults, name)))
            for name in defaults.__dataclass_fields__
        })


@dataclass(frozen=True)
class Preferences:
    """
    User preferences for install and removal runs.

    Attributes:
        max_retries: Attempts per item, including the first
        retry_delay_seconds: Fixed backoff between attempts
        silent_install: Pass --silent to winget install
        catalog_url: Remote catalog document
        cache_file: Local catalog cache (empty for the default location)
    """
    max_retries: int = 2
    retry_delay_seconds: float = 4.0
    silent_install: bool = True
    catalog_url: str = DEFAULT_CATALOG_URL
    cache_file: str = ""

    def __post_init__(self):
        if self.max_retries < 1 or self.max_retries > 5:
            raise ValueError(
                f"Invalid max_retries: {self.max_retries}. Must be between 1 and 5"
            )
        _check_range("retry_delay_seconds", self.retry_delay_seconds, 0, 60)
        if not self.catalog_url.startswith("https://"):
            raise ValueError(f"Invalid catalog_url: {self.catalog_url}. Must use https")

    @staticmethod
    def from_dict(data: dict[str, Any]) -> Preferences:
        """Create Preferences from dictionary."""
        return Preferences(
            max_retries=data.get("max_retries", 2),
            retry_delay_seconds=data.get("retry_delay_seconds", 4.0),
            silent_install=data.get("silent_install", True),
            catalog_url=data.get("catalog_url", DEFAULT_CATALOG_URL),
            cache_file=data.get("cache_file", ""),
        )

    @property
    def cache_path(self) -> Path:
        if self.cache_file:
            return Path(os.path.expanduser(self.cache_file))
        return default_cache_path()


@dataclass(frozen=True)
class Config:
    """
    Complete configuration.

    Attributes:
        version: Config schema version
        preferences: Run preferences
        timeouts: Per-invocation timeouts
        source: Path to the configuration file that was loaded
    """
    version: int = 1
    preferences: Preferences = field(default_factory=Preferences)
    timeouts: Timeouts = field(default_factory=Timeouts)
    source: str = ""

    def __post_init__(self):
        if self.version != 1:
            raise ValueError(f"Unsupported config version: {self.version}. Expected version 1")

    @staticmethod
    def from_dict(data: dict[str, Any], source: str = "") -> Config:
        """Create Config from dictionary."""
        return Config(
            version=data.get("version", 1),
            preferences=Preferences.from_dict(data.get("preferences") or {}),
            timeouts=Timeouts.from_dict(data.get("timeouts") or {}),
            source=source,
        )

    def merge_with(self, other: Config) -> Config:
        """
        Merge this config with another, preferring non-default values from this config.

        Args:
            other: Other config to merge (lower priority)

        Returns:
            New merged Config object
        """
        def pick(mine: Any, theirs: Any, default: Any) -> Any:
            return mine if mine != default else theirs

        prefs_default = Preferences()
        merged_preferences = Preferences(**{
            name: pick(
                getattr(self.preferences, name),
                getattr(other.preferences, name),
                getattr(prefs_default, name),
            )
            for name in prefs_default.__dataclass_fields__
        })

        timeouts_default = Timeouts()
        merged_timeouts = Timeouts(**{
            name: pick(
                getattr(self.timeouts, name),
                getattr(other.timeouts, name),
                getattr(timeouts_default, name),
            )
            for name in timeouts_default.__dataclass_fields__
        })

        return Config(
            version=self.version,
            preferences=merged_preferences,
            timeouts=merged_timeouts,
            source=self.source or other.source,
        )


def _load_yaml(file_path: str) -> dict[str, Any] | None:
    """
    Load YAML configuration file.

    Returns:
        Parsed configuration dictionary, or None if file is unreadable or invalid
    """
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
            return data if isinstance(data, dict) else {}
    except (OSError, yaml.YAMLError):
        return None


def _load_json(file_path: str) -> dict[str, Any] | None:
    """
    Load JSON configuration file.

    Returns:
        Parsed configuration dictionary, or None if file invalid
    """
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            data = json.load(f)
            return data if isinstance(data, dict) else {}
    except (OSError, json.JSONDecodeError):
        return None


def load_config_file(file_path: str, verbose: bool = False) -> Config | None:
    """
    Load configuration from a single file.

    .json files are read as JSON; anything else as YAML.

    Args:
        file_path: Path to configuration file
        verbose: Enable verbose logging

    Returns:
        Config object, or None if file cannot be loaded
    """
    if not os.path.exists(file_path):
        return None

    vlog(f"Loading config from: {file_path}", verbose)

    if file_path.endswith(".json"):
        data = _load_json(file_path)
    else:
        data = _load_yaml(file_path)

    if data is None:
        vlog(f"Invalid config file: {file_path}", verbose)
        return None

    try:
        config = Config.from_dict(data, source=file_path)
        vlog(f"Loaded config successfully: {file_path}", verbose)
        return config
    except (ValueError, TypeError) as e:
        vlog(f"Config validation failed for {file_path}: {e}", verbose)
        return None


def load_config(
    custom_path: str | None = None,
    verbose: bool = False,
) -> Config:
    """
    Load and merge configuration from all sources.

    Configuration precedence (highest to lowest):
    1. Custom path (if provided)
    2. Project .initio.yml
    3. User ~/.config/initio/config.yml
    4. Application data directory config.yml
    5. Default configuration

    Args:
        custom_path: Optional path to custom configuration file
        verbose: Enable verbose logging

    Returns:
        Merged Config object (never None, returns defaults if no config found)

    Raises:
        ValueError: If custom_path is provided but file cannot be loaded
    """
    configs: list[Config] = []

    if custom_path:
        config = load_config_file(custom_path, verbose)
        if config is None:
            raise ValueError(f"Could not load config from specified path: {custom_path}")
        configs.append(config)

    seen: set[str] = set()
    for location in _config_locations():
        resolved = os.path.abspath(location)
        if resolved in seen:
            continue
        seen.add(resolved)
        config = load_config_file(location, verbose)
        if config is not None:
            configs.append(config)

    if not configs:
        vlog("No config files found, using defaults", verbose)
        return Config()

    merged = configs[0]
    for config in configs[1:]:
        merged = merged.merge_with(config)

    vlog(f"Merged {len(configs)} config files", verbose)
    return merged
