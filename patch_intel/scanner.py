"""
Project dependency scanning.

A project scan runs the manager's ``outdated`` and ``audit`` commands
concurrently, normalizes both outputs and writes the project cache only after
both have finished. Batch scheduling is explicit:

- forced rescans of many projects run on a single worker, because every
  project scan already spawns its own subprocesses;
- read-through fetches run on a wider pool, since they mostly hit the cache.

A failure in one project is recorded and never stops the rest of the batch.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Sequence

from .common import vlog
from .config import ProjectConfig
from .logging_config import get_logger
from .normalize import OutdatedPackage, VulnerabilityInfo, normalize_audit, normalize_outdated
from .package_managers import PackageManager, detect_package_manager
from .patch_state import PatchStore, ProjectPatchState
from .project_cache import ProjectCache, ProjectPatchCache
from .runner import (
    DEFAULT_TIMEOUT_SECONDS,
    CommandRunner,
    extract_json,
    is_successful_scan,
    run_command,
)


# Forced rescans are strictly sequential
FORCED_SCAN_WORKERS = 1
# Read-through fetches mostly hit the cache
DEFAULT_FETCH_WORKERS = 8


class ScanError(Exception):
    """A project scan could not complete; no cache was written."""

    def __init__(self, project_id: str, errors: Sequence[str]):
        self.project_id = project_id
        self.errors = tuple(errors)
        super().__init__(f"Scan failed for {project_id}: {'; '.join(self.errors)}")


@dataclass(frozen=True)
class ScanReport:
    """Normalized records from one command, plus the failure reason if it failed."""

    records: list = field(default_factory=list)
    error: str | None = None


@dataclass(frozen=True)
class BatchScanResult:
    """
    Result of scanning several projects.

    Attributes:
        caches: Caches of projects that scanned successfully, in project order
        failed_projects: Ids of projects whose scan failed
        last_full_scan: Timestamp recorded by a forced full scan
    """
    caches: tuple[ProjectPatchCache, ...]
    failed_projects: tuple[str, ...] = ()
    last_full_scan: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "scanned": [cache.project_id for cache in self.caches],
            "failed_projects": list(self.failed_projects),
            "last_full_scan": self.last_full_scan,
        }


def _run_scan(
    project: ProjectConfig,
    command: Sequence[str],
    normalizer: Callable[[Any], list],
    label: str,
    runner: CommandRunner,
    timeout: int,
    verbose: bool,
) -> ScanReport:
    logger = get_logger()
    result = runner(command, Path(project.path), timeout)

    if not is_successful_scan(result):
        reason = result.describe_failure()
        logger.warning(f"{label} scan failed for {project.id}: {reason}")
        return ScanReport(error=reason)

    data = extract_json(result.stdout)
    if data is None:
        if result.stdout.strip():
            logger.warning(f"Malformed {label} output for {project.id}, treating as empty")
        return ScanReport()

    try:
        records = normalizer(data)
    except (AttributeError, IndexError, KeyError, TypeError, ValueError) as e:
        logger.warning(f"Unexpected {label} output for {project.id}, treating as empty: {e}")
        return ScanReport()

    vlog(f"{project.id}: {len(records)} {label} finding(s)", verbose)
    return ScanReport(records=records)


def scan_outdated(
    project: ProjectConfig,
    package_manager: PackageManager | None = None,
    runner: CommandRunner | None = None,
    timeout: int = DEFAULT_TIMEOUT_SECONDS,
    verbose: bool = False,
) -> ScanReport:
    """
    List a project's outdated packages.

    Args:
        project: Project to scan
        package_manager: Manager to use (detected from the lockfile if None)
        runner: Command runner (defaults to :func:`run_command`)
        timeout: Timeout in seconds
        verbose: Enable verbose logging

    Returns:
        ScanReport of :class:`OutdatedPackage`; empty when no manager is detected
    """
    pm = package_manager or detect_package_manager(project.path, verbose)
    if pm is None:
        return ScanReport()
    return _run_scan(
        project, pm.outdated_command, normalize_outdated, "outdated",
        runner or run_command, timeout, verbose,
    )


def scan_vulnerabilities(
    project: ProjectConfig,
    package_manager: PackageManager | None = None,
    runner: CommandRunner | None = None,
    timeout: int = DEFAULT_TIMEOUT_SECONDS,
    verbose: bool = False,
) -> ScanReport:
    """
    Run a project's vulnerability audit.

    Returns:
        ScanReport of :class:`VulnerabilityInfo`; empty when no manager is detected
    """
    pm = package_manager or detect_package_manager(project.path, verbose)
    if pm is None:
        return ScanReport()
    return _run_scan(
        project, pm.audit_command, normalize_audit, "audit",
        runner or run_command, timeout, verbose,
    )


def project_counts(cache: ProjectPatchCache) -> ProjectPatchState:
    """Summary counts stored in the aggregate state; critical covers high too."""
    return ProjectPatchState(
        outdated_count=len(cache.outdated),
        vuln_count=len(cache.vulnerabilities),
        critical_count=sum(
            1 for v in cache.vulnerabilities if v.severity in ("critical", "high")
        ),
        last_checked=cache.timestamp,
    )


def scan_project(
    project: ProjectConfig,
    cache: ProjectCache,
    store: PatchStore,
    force_refresh: bool = False,
    runner: CommandRunner | None = None,
    timeout: int = DEFAULT_TIMEOUT_SECONDS,
    verbose: bool = False,
) -> ProjectPatchCache:
    """
    Scan one project, serving a live cache unless ``force_refresh`` is set.

    A fresh scan writes the cache and the project's aggregate counts.
    Projects without a lockfile produce an empty result.

    Raises:
        ScanError: If a scan command timed out, could not be launched, or
            failed without output. The previous cache is left untouched.
    """
    if not force_refresh:
        cached = cache.get(project.id)
        if cached is not None:
            vlog(f"Using cached scan for {project.id}", verbose)
            return cached

    outdated: list[OutdatedPackage] = []
    vulnerabilities: list[VulnerabilityInfo] = []

    pm = detect_package_manager(project.path, verbose)
    if pm is not None:
        with ThreadPoolExecutor(max_workers=2) as executor:
            outdated_future = executor.submit(
                scan_outdated, project, pm, runner, timeout, verbose
            )
            audit_future = executor.submit(
                scan_vulnerabilities, project, pm, runner, timeout, verbose
            )
            outdated_report = outdated_future.result()
            audit_report = audit_future.result()

        errors = [r.error for r in (outdated_report, audit_report) if r.error]
        if errors:
            raise ScanError(project.id, errors)

        outdated = outdated_report.records
        vulnerabilities = audit_report.records

    entry = cache.create(project.id, outdated, vulnerabilities)
    cache.put(entry)
    store.update_project_state(project.id, project_counts(entry))
    return entry


def _scan_batch(
    projects: Sequence[ProjectConfig],
    cache: ProjectCache,
    store: PatchStore,
    force_refresh: bool,
    max_workers: int,
    runner: CommandRunner | None,
    timeout: int,
    verbose: bool,
) -> tuple[list[ProjectPatchCache], list[str]]:
    logger = get_logger()
    caches: list[ProjectPatchCache] = []
    failed: list[str] = []

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = [
            (
                project,
                executor.submit(
                    scan_project, project, cache, store, force_refresh, runner, timeout, verbose
                ),
            )
            for project in projects
        ]

        for project, future in futures:
            try:
                caches.append(future.result())
            except ScanError as e:
                logger.warning(str(e))
                failed.append(project.id)
            except Exception as e:
                logger.error(f"Unexpected error scanning {project.id}: {e}")
                failed.append(project.id)

    return caches, failed


def scan_all_projects(
    projects: Sequence[ProjectConfig],
    cache: ProjectCache,
    store: PatchStore,
    runner: CommandRunner | None = None,
    timeout: int = DEFAULT_TIMEOUT_SECONDS,
    verbose: bool = False,
) -> BatchScanResult:
    """
    Force a fresh scan of every project, one project at a time.

    ``last_full_scan`` advances even when some projects fail.
    """
    vlog(f"Full rescan of {len(projects)} project(s)", verbose)
    caches, failed = _scan_batch(
        projects, cache, store, True, FORCED_SCAN_WORKERS, runner, timeout, verbose
    )
    state = store.mark_full_scan()

    return BatchScanResult(
        caches=tuple(caches),
        failed_projects=tuple(failed),
        last_full_scan=state.last_full_scan,
    )


def fetch_all_projects(
    projects: Sequence[ProjectConfig],
    cache: ProjectCache,
    store: PatchStore,
    max_workers: int = DEFAULT_FETCH_WORKERS,
    runner: CommandRunner | None = None,
    timeout: int = DEFAULT_TIMEOUT_SECONDS,
    verbose: bool = False,
) -> BatchScanResult:
    """
    Read every project's scan result, scanning only where the cache is stale.
    """
    caches, failed = _scan_batch(
        projects, cache, store, False, max(1, max_workers), runner, timeout, verbose
    )
    return BatchScanResult(caches=tuple(caches), failed_projects=tuple(failed))
