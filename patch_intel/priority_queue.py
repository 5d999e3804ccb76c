"""
Remediation queue construction.

Turns one or more project caches into a single list of remediation items
ordered by urgency, plus aggregate counts. The builder is a pure function of
its inputs.

Per project:
1. Vulnerabilities are grouped by package. The group takes the highest
   severity, the union of CVEs and advisory URLs, and a combined title when
   more than one advisory is involved.
2. One item is emitted per vulnerable package.
3. Outdated packages already covered by a vulnerability item are skipped.

Lower priority numbers are more urgent. Vulnerability scores (1-5) never
overlap outdated scores (10-30), so every vulnerability sorts first.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Sequence

from .normalize import SEVERITIES, VulnerabilityInfo
from .project_cache import ProjectPatchCache
from .versions import get_update_type, highest_version


SEVERITY_RANK = {severity: rank for rank, severity in enumerate(SEVERITIES)}

VULNERABILITY_PRIORITY = {"critical": 1, "high": 2, "moderate": 3, "low": 4}
DEFAULT_VULNERABILITY_PRIORITY = 5

OUTDATED_PRIORITY = {"major": 10, "minor": 20, "patch": 30}


@dataclass(frozen=True)
class PatchQueueItem:
    """
    One remediation unit: a single package in a single project.

    ``severity`` holds the vulnerability severity for vulnerability items and
    the update type for outdated items.
    """
    priority: int
    type: str
    severity: str
    package: str
    current_version: str
    target_version: str
    update_type: str
    project_id: str
    project_name: str
    is_held: bool
    fix_available: bool
    title: str | None = None
    is_direct: bool | None = None
    breaking_fix: bool | None = None
    via: tuple[str, ...] = ()
    parent_package: str | None = None
    parent_at_latest: bool | None = None
    advisory_id: int | str | None = None
    cves: tuple[str, ...] = ()
    url: str | None = None
    urls: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "priority": self.priority,
            "type": self.type,
            "severity": self.severity,
            "package": self.package,
            "current_version": self.current_version,
            "target_version": self.target_version,
            "update_type": self.update_type,
            "project_id": self.project_id,
            "project_name": self.project_name,
            "is_held": self.is_held,
            "fix_available": self.fix_available,
            "title": self.title,
            "is_direct": self.is_direct,
            "breaking_fix": self.breaking_fix,
            "via": list(self.via),
            "parent_package": self.parent_package,
            "parent_at_latest": self.parent_at_latest,
            "advisory_id": self.advisory_id,
            "cves": list(self.cves),
            "url": self.url,
            "urls": list(self.urls),
        }


@dataclass
class PatchSummary:
    """Aggregate counts over a queue."""

    critical: int = 0
    high: int = 0
    moderate: int = 0
    outdated_major: int = 0
    outdated_minor: int = 0
    outdated_patch: int = 0

    def to_dict(self) -> dict[str, int]:
        """Convert to dictionary for JSON serialization."""
        return {
            "critical": self.critical,
            "high": self.high,
            "moderate": self.moderate,
            "outdated_major": self.outdated_major,
            "outdated_minor": self.outdated_minor,
            "outdated_patch": self.outdated_patch,
        }

    def count_vulnerability(self, severity: str) -> None:
        if severity == "critical":
            self.critical += 1
        elif severity == "high":
            self.high += 1
        elif severity == "moderate":
            self.moderate += 1

    def count_outdated(self, update_type: str) -> None:
        if update_type == "major":
            self.outdated_major += 1
        elif update_type == "minor":
            self.outdated_minor += 1
        else:
            self.outdated_patch += 1


def get_priority_score(item_type: str, severity: str) -> int:
    """
    Urgency score, lower is more urgent.

    Args:
        item_type: "vulnerability" or "outdated"
        severity: Vulnerability severity, or update type for outdated items
    """
    if item_type == "vulnerability":
        return VULNERABILITY_PRIORITY.get(severity, DEFAULT_VULNERABILITY_PRIORITY)
    return OUTDATED_PRIORITY.get(severity, OUTDATED_PRIORITY["patch"])


def max_severity(severities: Iterable[str]) -> str:
    """Most severe of the given severities (critical > high > moderate > low > info)."""
    return min(severities, key=lambda s: SEVERITY_RANK.get(s, len(SEVERITIES)), default="info")


def _union(values: Iterable[str | None]) -> tuple[str, ...]:
    seen: list[str] = []
    for value in values:
        if value and value not in seen:
            seen.append(value)
    return tuple(seen)


def _group_vulnerabilities(
    vulnerabilities: Sequence[VulnerabilityInfo],
) -> dict[str, list[VulnerabilityInfo]]:
    groups: dict[str, list[VulnerabilityInfo]] = {}
    for vuln in vulnerabilities:
        groups.setdefault(vuln.name, []).append(vuln)
    return groups


def _vulnerability_item(
    package: str,
    advisories: list[VulnerabilityInfo],
    project_id: str,
    project_name: str,
    is_held: bool,
) -> PatchQueueItem:
    first = advisories[0]
    severity = max_severity(v.severity for v in advisories)

    if len(advisories) > 1:
        title = f"{len(advisories)} vulnerabilities: " + "; ".join(v.title for v in advisories)
    else:
        title = first.title

    current_version = next((v.current_version for v in advisories if v.current_version), "")
    target_version = highest_version([v.fix_version for v in advisories if v.fix_version]) or ""
    urls = _union(v.url for v in advisories)

    return PatchQueueItem(
        priority=get_priority_score("vulnerability", severity),
        type="vulnerability",
        severity=severity,
        package=package,
        current_version=current_version,
        target_version=target_version,
        update_type=get_update_type(current_version, target_version),
        project_id=project_id,
        project_name=project_name,
        is_held=is_held,
        # Every advisory must be fixable for the package to be fixable
        fix_available=all(v.fix_available for v in advisories),
        title=title,
        is_direct=first.is_direct,
        breaking_fix=any(v.breaking_fix for v in advisories),
        via=first.via,
        parent_package=first.parent_package,
        parent_at_latest=first.parent_at_latest,
        advisory_id=first.advisory_id,
        cves=_union(cve for v in advisories for cve in v.cves),
        url=urls[0] if urls else None,
        urls=urls,
    )


def build_queue(
    caches: Sequence[ProjectPatchCache],
    project_names: Mapping[str, str] | None = None,
    holds: Mapping[str, Iterable[str]] | None = None,
) -> tuple[list[PatchQueueItem], PatchSummary]:
    """
    Build the global remediation queue.

    Args:
        caches: Scan results, one per project
        project_names: Project id to display name (defaults to the id)
        holds: Project id to held package names

    Returns:
        (queue sorted by ascending priority, summary counts)
    """
    project_names = project_names or {}
    holds = holds or {}

    queue: list[PatchQueueItem] = []
    summary = PatchSummary()

    for cache in caches:
        project_id = cache.project_id
        project_name = project_names.get(project_id) or project_id
        held = set(holds.get(project_id) or ())
        covered: set[str] = set()

        for package, advisories in _group_vulnerabilities(cache.vulnerabilities).items():
            item = _vulnerability_item(
                package, advisories, project_id, project_name, package in held
            )
            queue.append(item)
            covered.add(package)
            summary.count_vulnerability(item.severity)

        for pkg in cache.outdated:
            # Vulnerability items take precedence; one item per package
            if pkg.name in covered:
                continue
            covered.add(pkg.name)

            update_type = get_update_type(pkg.current, pkg.latest)
            queue.append(PatchQueueItem(
                priority=get_priority_score("outdated", update_type),
                type="outdated",
                severity=update_type,
                package=pkg.name,
                current_version=pkg.current,
                target_version=pkg.latest,
                update_type=update_type,
                project_id=project_id,
                project_name=project_name,
                is_held=pkg.name in held,
                fix_available=True,
            ))
            summary.count_outdated(update_type)

    # sorted() is stable: equal priorities keep project and discovery order
    return sorted(queue, key=lambda item: item.priority), summary


def select_actionable(queue: Sequence[PatchQueueItem]) -> list[PatchQueueItem]:
    """Items a bulk update may act on: not held and directly fixable."""
    return [item for item in queue if not item.is_held and item.fix_available]
