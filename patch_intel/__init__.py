"""
patch_intel - Dependency patch intelligence for locally checked-out projects.

Core Modules:
- Detection: lockfile-based package manager detection, scan command execution
- Normalization: outdated/audit output dialects mapped onto canonical records
- Storage: per-project scan cache with jittered expiry, aggregate state, update history
- Queue: deduplicated, priority-ordered remediation queue with summary counts
"""

__version__ = "1.0.0"

VERSION = __version__

from .config import Config, Preferences, ProjectConfig, load_config, load_config_file, validate_config
from .package_managers import PackageManager, PACKAGE_MANAGERS, detect_package_manager, get_package_manager
from .runner import CommandResult, run_command, extract_json, is_successful_scan
from .normalize import (
    OutdatedPackage,
    VulnerabilityInfo,
    normalize_outdated,
    normalize_audit,
)
from .versions import get_update_type, minimum_fixed_version
from .project_cache import ProjectCache, ProjectPatchCache
from .patch_state import (
    PatchState,
    ProjectPatchState,
    PatchHistoryEntry,
    PatchStore,
    generate_patch_id,
    HISTORY_LIMIT,
)
from .priority_queue import (
    PatchQueueItem,
    PatchSummary,
    build_queue,
    get_priority_score,
    select_actionable,
)
from .scanner import (
    ScanError,
    ScanReport,
    BatchScanResult,
    scan_outdated,
    scan_vulnerabilities,
    scan_project,
    scan_all_projects,
    fetch_all_projects,
)
from .commit_message import (
    UpdatedPackage,
    CommitMessage,
    generate_patch_commit_message,
    generate_patch_summary,
)
from .engine import PatchEngine
from .logging_config import setup_logging, get_logger

__all__ = [
    # Version
    "__version__",
    "VERSION",
    # Configuration
    "Config",
    "Preferences",
    "ProjectConfig",
    "load_config",
    "load_config_file",
    "validate_config",
    # Detection and execution
    "PackageManager",
    "PACKAGE_MANAGERS",
    "detect_package_manager",
    "get_package_manager",
    "CommandResult",
    "run_command",
    "extract_json",
    "is_successful_scan",
    # Normalization
    "OutdatedPackage",
    "VulnerabilityInfo",
    "normalize_outdated",
    "normalize_audit",
    "get_update_type",
    "minimum_fixed_version",
    # Storage
    "ProjectCache",
    "ProjectPatchCache",
    "PatchState",
    "ProjectPatchState",
    "PatchHistoryEntry",
    "PatchStore",
    "generate_patch_id",
    "HISTORY_LIMIT",
    # Queue
    "PatchQueueItem",
    "PatchSummary",
    "build_queue",
    "get_priority_score",
    "select_actionable",
    # Scanning
    "ScanError",
    "ScanReport",
    "BatchScanResult",
    "scan_outdated",
    "scan_vulnerabilities",
    "scan_project",
    "scan_all_projects",
    "fetch_all_projects",
    # Commit messages
    "UpdatedPackage",
    "CommitMessage",
    "generate_patch_commit_message",
    "generate_patch_summary",
    # Facade
    "PatchEngine",
    # Logging
    "setup_logging",
    "get_logger",
]
