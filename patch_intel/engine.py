"""
Patch engine facade.

Wires the project cache, the state/history store and the scanner together
behind the operations the dashboard layer calls.
"""

from __future__ import annotations

from typing import Sequence

from .common import format_timestamp, utc_now, vlog
from .config import Config, ProjectConfig
from .patch_state import PatchHistoryEntry, PatchState, PatchStore, generate_patch_id
from .priority_queue import PatchQueueItem, PatchSummary, build_queue
from .project_cache import ProjectCache, ProjectPatchCache
from .runner import CommandRunner
from .scanner import BatchScanResult, fetch_all_projects, scan_all_projects, scan_project
from .versions import get_update_type


CACHE_SUBDIR = "cache"


class PatchEngine:
    """
    Dependency patch operations for the configured projects.

    Args:
        config: Loaded configuration (defaults when None)
        cache: Project cache (built from the config when None)
        store: State and history store (built from the config when None)
        runner: Command runner used for scans
        verbose: Enable verbose logging
    """

    def __init__(
        self,
        config: Config | None = None,
        cache: ProjectCache | None = None,
        store: PatchStore | None = None,
        runner: CommandRunner | None = None,
        verbose: bool = False,
    ):
        self.config = config or Config()
        preferences = self.config.preferences
        root = self.config.storage_path()

        self.cache = cache or ProjectCache(
            root / CACHE_SUBDIR,
            ttl_minutes=preferences.cache_ttl_minutes,
            jitter_minutes=preferences.cache_jitter_minutes,
            verbose=verbose,
        )
        self.store = store or PatchStore(root, history_limit=preferences.history_limit)
        self.runner = runner
        self.verbose = verbose

    @property
    def projects(self) -> tuple[ProjectConfig, ...]:
        return self.config.projects

    def scan_project(self, project: ProjectConfig, force_refresh: bool = False) -> ProjectPatchCache:
        """Scan one project; see :func:`patch_intel.scanner.scan_project`."""
        return scan_project(
            project,
            self.cache,
            self.store,
            force_refresh=force_refresh,
            runner=self.runner,
            timeout=self.config.preferences.command_timeout_seconds,
            verbose=self.verbose,
        )

    def scan_all(self, projects: Sequence[ProjectConfig] | None = None) -> BatchScanResult:
        """Force a sequential rescan of all (or the given) projects."""
        return scan_all_projects(
            self.projects if projects is None else projects,
            self.cache,
            self.store,
            runner=self.runner,
            timeout=self.config.preferences.command_timeout_seconds,
            verbose=self.verbose,
        )

    def fetch_all(self, projects: Sequence[ProjectConfig] | None = None) -> BatchScanResult:
        """Read-through fetch of all (or the given) projects, scanning stale ones."""
        return fetch_all_projects(
            self.projects if projects is None else projects,
            self.cache,
            self.store,
            max_workers=self.config.preferences.max_workers,
            runner=self.runner,
            timeout=self.config.preferences.command_timeout_seconds,
            verbose=self.verbose,
        )

    def build_queue(
        self,
        caches: Sequence[ProjectPatchCache],
    ) -> tuple[list[PatchQueueItem], PatchSummary]:
        """Build the remediation queue using configured names and holds."""
        return build_queue(caches, self.config.project_names(), self.config.project_holds())

    def read_patch_state(self) -> PatchState:
        return self.store.read_patch_state()

    def read_patch_history(
        self,
        project_id: str | None = None,
        limit: int = 50,
    ) -> tuple[list[PatchHistoryEntry], int]:
        return self.store.read_patch_history(project_id=project_id, limit=limit)

    def append_history(self, entry: PatchHistoryEntry) -> bool:
        return self.store.append_history(entry)

    def invalidate_project_cache(self, project_id: str) -> None:
        self.cache.invalidate(project_id)

    def record_update(
        self,
        project_id: str,
        package: str,
        from_version: str,
        to_version: str,
        success: bool,
        output: str = "",
        error: str | None = None,
        trigger: str = "manual",
    ) -> PatchHistoryEntry:
        """
        Record a package update applied outside the engine.

        Appends a history entry and, when the update succeeded, invalidates
        the project's cache so the next read rescans it.

        Returns:
            The history entry that was appended
        """
        entry = PatchHistoryEntry(
            id=generate_patch_id(),
            timestamp=format_timestamp(utc_now()),
            project_id=project_id,
            package=package,
            from_version=from_version,
            to_version=to_version,
            update_type=get_update_type(from_version, to_version),
            trigger=trigger,
            success=success,
            output=output,
            error=error,
        )
        self.store.append_history(entry)

        if success:
            self.invalidate_project_cache(project_id)
        vlog(f"Recorded {package} {from_version} -> {to_version} for {project_id}", self.verbose)
        return entry
