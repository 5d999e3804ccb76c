"""
Package manager registry and lockfile detection.

The lockfile present in a project root decides which manager governs it:
pnpm-lock.yaml, then package-lock.json, then yarn.lock.
"""

from __future__ import annotations

import subprocess
import threading
from dataclasses import dataclass
from pathlib import Path

from .common import vlog


# Cache for package manager availability checks
_PM_CACHE: dict[str, bool] = {}
_PM_CACHE_LOCK = threading.Lock()


@dataclass(frozen=True)
class PackageManager:
    """
    Package manager definition.

    Attributes:
        name: Package manager identifier ("pnpm", "npm", "yarn")
        display_name: Human-readable name
        lockfile: Lockfile name that marks a project as governed by this manager
        check_command: Command to check if manager is available
        outdated_command: Command listing outdated packages as JSON
        audit_command: Command running a vulnerability audit as JSON
    """
    name: str
    display_name: str
    lockfile: str
    check_command: tuple[str, ...]
    outdated_command: tuple[str, ...]
    audit_command: tuple[str, ...]

    def is_available(self, timeout: int = 2) -> bool:
        """
        Check if this package manager is available on the system.

        Args:
            timeout: Timeout in seconds for check command

        Returns:
            True if package manager is installed and accessible
        """
        with _PM_CACHE_LOCK:
            if self.name in _PM_CACHE:
                return _PM_CACHE[self.name]

        try:
            result = subprocess.run(
                self.check_command,
                capture_output=True,
                timeout=timeout,
                text=True,
            )
            available = result.returncode == 0
        except (OSError, subprocess.TimeoutExpired):
            available = False

        with _PM_CACHE_LOCK:
            _PM_CACHE[self.name] = available

        return available

    def governs(self, project_path: str | Path) -> bool:
        """True if this manager's lockfile exists in ``project_path``."""
        return (Path(project_path) / self.lockfile).is_file()


# Ordered by detection priority
PACKAGE_MANAGERS = (
    PackageManager(
        name="pnpm",
        display_name="pnpm",
        lockfile="pnpm-lock.yaml",
        check_command=("pnpm", "--version"),
        outdated_command=("pnpm", "outdated", "--format", "json"),
        audit_command=("pnpm", "audit", "--json"),
    ),
    PackageManager(
        name="npm",
        display_name="npm",
        lockfile="package-lock.json",
        check_command=("npm", "--version"),
        outdated_command=("npm", "outdated", "--json"),
        audit_command=("npm", "audit", "--json"),
    ),
    PackageManager(
        name="yarn",
        display_name="Yarn",
        lockfile="yarn.lock",
        check_command=("yarn", "--version"),
        outdated_command=("yarn", "outdated", "--json"),
        audit_command=("yarn", "audit", "--json"),
    ),
)


_PM_BY_NAME = {pm.name: pm for pm in PACKAGE_MANAGERS}


def get_package_manager(name: str) -> PackageManager | None:
    """
    Get package manager by name.

    Returns:
        PackageManager object, or None if not found
    """
    return _PM_BY_NAME.get(name)


def detect_package_manager(project_path: str | Path, verbose: bool = False) -> PackageManager | None:
    """
    Detect the package manager governing a project from its lockfile.

    Args:
        project_path: Project root directory
        verbose: Enable verbose logging

    Returns:
        The first manager (in priority order) whose lockfile exists,
        or None when the project has no lockfile
    """
    for pm in PACKAGE_MANAGERS:
        if pm.governs(project_path):
            vlog(f"Detected {pm.name} from {pm.lockfile} in {project_path}", verbose)
            return pm

    vlog(f"No lockfile found in {project_path}", verbose)
    return None


def clear_cache() -> None:
    """Clear the package manager availability cache."""
    with _PM_CACHE_LOCK:
        _PM_CACHE.clear()
