"""
Configuration file parsing and management.

Supports YAML configuration files with JSON fallback.
Merges configurations from multiple sources (project → user → system → defaults).
The project list is owned by this configuration; the patch engine only reads it.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .common import vlog


# Configuration file locations (in priority order)
CONFIG_LOCATIONS = [
    ".patch-intel.yml",                                      # Project root (highest priority)
    ".patch-intel.yaml",                                     # Alternative extension
    os.path.expanduser("~/.config/patch-intel/config.yml"),  # User global
    os.path.expanduser("~/.config/patch-intel/config.yaml"),
    "/etc/patch-intel/config.yml",                           # System global
    "/etc/patch-intel/config.yaml",
]

# Default storage root for caches, state and history
DEFAULT_STORAGE_DIR = os.path.join(".patch-intel", "patches")


@dataclass(frozen=True)
class ProjectConfig:
    """
    A locally checked-out project managed by the dashboard.

    Attributes:
        id: Stable identity, also used as the cache file name
        name: Display name
        path: Filesystem root of the checkout
        port: Dev server port
        category: Grouping label
        scripts: Named package scripts (dev, build, ...)
        holds: Package names excluded from remediation
    """
    id: str
    name: str
    path: str
    port: int = 0
    category: str = ""
    scripts: dict[str, str] = field(default_factory=dict)
    holds: tuple[str, ...] = ()

    def __post_init__(self):
        if not self.id:
            raise ValueError("Project id must not be empty")
        if os.sep in self.id or "/" in self.id or self.id in (".", ".."):
            raise ValueError(f"Invalid project id: {self.id!r}")

    @staticmethod
    def from_dict(data: dict[str, Any]) -> ProjectConfig:
        """Create ProjectConfig from dictionary."""
        holds = data.get("holds") or ()
        if isinstance(holds, str):
            # "holds: react" in YAML is a single package, not its characters
            holds = (holds,)
        return ProjectConfig(
            id=str(data.get("id", "")),
            name=data.get("name") or str(data.get("id", "")),
            path=os.path.expanduser(data.get("path", "")),
            port=int(data.get("port", 0) or 0),
            category=data.get("category", ""),
            scripts=dict(data.get("scripts") or {}),
            holds=tuple(str(name) for name in holds),
        )


@dataclass(frozen=True)
class Preferences:
    """
    Engine behavior preferences.

    Attributes:
        storage_dir: Root directory for cache, state and history files
        cache_ttl_minutes: Base lifetime of a project scan cache
        cache_jitter_minutes: Upper bound of random extra lifetime per cache
        command_timeout_seconds: Timeout for each package manager command
        max_workers: Parallel workers for read-through batch fetches
        history_limit: Number of applied-update entries retained
    """
    storage_dir: str = DEFAULT_STORAGE_DIR
    cache_ttl_minutes: int = 60
    cache_jitter_minutes: int = 15
    command_timeout_seconds: int = 30
    max_workers: int = 8
    history_limit: int = 500

    def __post_init__(self):
        """Validate preferences after initialization."""
        if self.cache_ttl_minutes < 1 or self.cache_ttl_minutes > 1440:
            raise ValueError(
                f"Invalid cache_ttl_minutes: {self.cache_ttl_minutes}. "
                "Must be between 1 and 1440"
            )

        if self.cache_jitter_minutes < 0 or self.cache_jitter_minutes > 240:
            raise ValueError(
                f"Invalid cache_jitter_minutes: {self.cache_jitter_minutes}. "
                "Must be between 0 and 240"
            )

        if self.command_timeout_seconds < 1 or self.command_timeout_seconds > 600:
            raise ValueError(
                f"Invalid command_timeout_seconds: {self.command_timeout_seconds}. "
                "Must be between 1 and 600"
            )

        if self.max_workers < 1 or self.max_workers > 32:
            raise ValueError(
                f"Invalid max_workers: {self.max_workers}. "
                "Must be between 1 and 32"
            )

        if self.history_limit < 1:
            raise ValueError(
                f"Invalid history_limit: {self.history_limit}. Must be positive"
            )

    @staticmethod
    def from_dict(data: dict[str, Any]) -> Preferences:
        """Create Preferences from dictionary."""
        return Preferences(
            storage_dir=data.get("storage_dir", DEFAULT_STORAGE_DIR),
            cache_ttl_minutes=data.get("cache_ttl_minutes", 60),
            cache_jitter_minutes=data.get("cache_jitter_minutes", 15),
            command_timeout_seconds=data.get("command_timeout_seconds", 30),
            max_workers=data.get("max_workers", 8),
            history_limit=data.get("history_limit", 500),
        )


@dataclass(frozen=True)
class Config:
    """
    Complete configuration for the patch engine.

    Attributes:
        version: Config schema version
        projects: Managed projects, in display order
        preferences: Engine preferences
        source: Path to the configuration file that was loaded
    """
    version: int = 1
    projects: tuple[ProjectConfig, ...] = ()
    preferences: Preferences = field(default_factory=Preferences)
    source: str = ""

    def __post_init__(self):
        """Validate config after initialization."""
        if self.version != 1:
            raise ValueError(f"Unsupported config version: {self.version}. Expected version 1")

        seen: set[str] = set()
        for project in self.projects:
            if project.id in seen:
                raise ValueError(f"Duplicate project id: {project.id}")
            seen.add(project.id)

    @staticmethod
    def from_dict(data: dict[str, Any], source: str = "") -> Config:
        """Create Config from dictionary."""
        projects = tuple(
            ProjectConfig.from_dict(project_data)
            for project_data in data.get("projects", []) or []
        )
        preferences = Preferences.from_dict(data.get("preferences", {}) or {})

        return Config(
            version=data.get("version", 1),
            projects=projects,
            preferences=preferences,
            source=source,
        )

    def get_project(self, project_id: str) -> ProjectConfig | None:
        """Look up a project by id."""
        for project in self.projects:
            if project.id == project_id:
                return project
        return None

    def project_names(self) -> dict[str, str]:
        """Map of project id to display name."""
        return {project.id: project.name for project in self.projects}

    def project_holds(self) -> dict[str, tuple[str, ...]]:
        """Map of project id to held package names."""
        return {project.id: project.holds for project in self.projects}

    def storage_path(self) -> Path:
        """Resolve the storage root, honoring ``PATCH_INTEL_DIR``."""
        storage = os.environ.get("PATCH_INTEL_DIR") or self.preferences.storage_dir
        storage = os.path.expanduser(storage)
        if os.path.isabs(storage):
            return Path(storage)
        return Path.cwd() / storage

    def merge_with(self, other: Config) -> Config:
        """
        Merge this config with another, preferring values from this config.

        Projects are merged by id: this config's projects keep their order
        and win on conflicts, and projects only ``other`` defines follow in
        its order. Preferences come from this config unless they are still
        at their defaults.

        Args:
            other: Other config to merge (lower priority)

        Returns:
            New merged Config object
        """
        merged_projects = {project.id: project for project in self.projects}
        for project in other.projects:
            merged_projects.setdefault(project.id, project)

        defaults = Preferences()
        mine = self.preferences
        theirs = other.preferences
        merged_preferences = Preferences(
            storage_dir=mine.storage_dir if mine.storage_dir != defaults.storage_dir else theirs.storage_dir,
            cache_ttl_minutes=mine.cache_ttl_minutes if mine.cache_ttl_minutes != defaults.cache_ttl_minutes else theirs.cache_ttl_minutes,
            cache_jitter_minutes=mine.cache_jitter_minutes if mine.cache_jitter_minutes != defaults.cache_jitter_minutes else theirs.cache_jitter_minutes,
            command_timeout_seconds=mine.command_timeout_seconds if mine.command_timeout_seconds != defaults.command_timeout_seconds else theirs.command_timeout_seconds,
            max_workers=mine.max_workers if mine.max_workers != defaults.max_workers else theirs.max_workers,
            history_limit=mine.history_limit if mine.history_limit != defaults.history_limit else theirs.history_limit,
        )

        return Config(
            version=self.version,
            projects=tuple(merged_projects.values()),
            preferences=merged_preferences,
            source=self.source or other.source,
        )


def _load_yaml(file_path: str) -> dict[str, Any] | None:
    """
    Load YAML configuration file.

    Returns:
        Parsed configuration dictionary, or None if the file is unreadable or invalid
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

    ``.json`` files are read as JSON; anything else is parsed as YAML, falling
    back to a sibling ``.json`` file when the YAML is invalid.

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
            json_path = file_path.replace(".yml", ".json").replace(".yaml", ".json")
            if json_path != file_path and os.path.exists(json_path):
                vlog(f"Invalid YAML, trying JSON: {json_path}", verbose)
                data = _load_json(json_path)

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
    2. Project .patch-intel.yml
    3. User ~/.config/patch-intel/config.yml
    4. System /etc/patch-intel/config.yml
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
        vlog(f"Using custom config: {custom_path}", verbose)

    for location in CONFIG_LOCATIONS:
        config = load_config_file(location, verbose)
        if config is not None:
            configs.append(config)
            vlog(f"Found config at: {location}", verbose)

    if not configs:
        vlog("No config files found, using defaults", verbose)
        return Config()

    # First config has highest priority
    merged = configs[0]
    for config in configs[1:]:
        merged = merged.merge_with(config)

    vlog(f"Merged {len(configs)} config files", verbose)
    return merged


def validate_config(config: Config) -> list[str]:
    """
    Validate configuration and return list of warnings.

    Args:
        config: Config object to validate

    Returns:
        List of validation warning messages (empty if valid)
    """
    warnings = []

    for project in config.projects:
        if not project.path:
            warnings.append(f"Project '{project.id}': no path configured")
        elif not os.path.isdir(project.path):
            warnings.append(f"Project '{project.id}': path does not exist ({project.path})")
        if len(project.holds) != len(set(project.holds)):
            warnings.append(f"Project '{project.id}': duplicate entries in holds")

    return warnings
