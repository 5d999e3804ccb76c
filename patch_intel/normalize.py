"""
Normalization of package manager scan output.

Each manager reports outdated packages and audit findings in its own JSON
dialect. The parsers below map every known dialect onto two canonical
records, :class:`OutdatedPackage` and :class:`VulnerabilityInfo`. Supporting
another dialect means adding one parser to :data:`OUTDATED_PARSERS` or
:data:`AUDIT_PARSERS`; nothing downstream changes.

Outdated dialects:
- array of objects, one per package (``name`` inside each object)
- object keyed by package name; npm workspaces use a list per package,
  of which the first entry is taken

Audit dialects:
- ``advisories``: map of advisory id to advisory; a path such as
  ``express>qs`` in the first finding gives the dependency chain
- ``vulnerabilities``: map of package name to finding; ``via`` mixes
  advisory objects (title/source/url) with names of intermediate packages
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

from .versions import NO_FIX_RANGE, minimum_fixed_version


SEVERITIES = ("critical", "high", "moderate", "low", "info")

_SEVERITY_ALIASES = {"medium": "moderate"}

DEFAULT_VULNERABILITY_TITLE = "Vulnerability"


def normalize_severity(value: Any) -> str:
    """Map a reported severity onto the canonical scale, defaulting to "info"."""
    severity = str(value or "").strip().lower()
    severity = _SEVERITY_ALIASES.get(severity, severity)
    return severity if severity in SEVERITIES else "info"


@dataclass(frozen=True)
class OutdatedPackage:
    """
    A dependency with a newer release available.

    Attributes:
        name: Package name
        current: Installed version ("" when not installed)
        wanted: Highest version allowed by the manifest range
        latest: Latest published version
        dependency_kind: "direct" for dependencies, "dev" for devDependencies
    """
    name: str
    current: str
    wanted: str
    latest: str
    dependency_kind: str = "direct"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.name,
            "current": self.current,
            "wanted": self.wanted,
            "latest": self.latest,
            "dependency_kind": self.dependency_kind,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OutdatedPackage":
        """Create from dictionary."""
        return cls(
            name=data.get("name", ""),
            current=data.get("current", ""),
            wanted=data.get("wanted", ""),
            latest=data.get("latest", ""),
            dependency_kind=data.get("dependency_kind", "direct"),
        )


@dataclass(frozen=True)
class VulnerabilityInfo:
    """
    One audit finding for one package.

    Whether a finding can be fixed from the project's own manifest depends on
    two independent facts, kept apart here: the upstream fix may require a
    semver-major bump (``breaking_fix``), and the package may only be pulled
    in through another dependency (``is_direct`` False). They collapse into
    :attr:`fix_available` only for presentation.

    Attributes:
        name: Affected package
        severity: One of :data:`SEVERITIES`
        title: Advisory title
        advisory_id: Advisory identifier reported by the manager
        cves: CVE identifiers
        url: Advisory URL
        fix_exists: Upstream has published a fix
        breaking_fix: The fix requires a semver-major change
        fix_version: Version that fixes the finding ("latest" if unspecified)
        current_version: Installed version, when the manager reports it
        is_direct: Declared by the project itself
        via: Dependency chain for transitive findings
        parent_package: Direct dependency that pulls in a transitive finding
        parent_at_latest: Parent likely already at its latest release
    """
    name: str
    severity: str
    title: str = DEFAULT_VULNERABILITY_TITLE
    advisory_id: int | str | None = None
    cves: tuple[str, ...] = ()
    url: str | None = None
    fix_exists: bool = False
    breaking_fix: bool = False
    fix_version: str | None = None
    current_version: str | None = None
    is_direct: bool = True
    via: tuple[str, ...] = ()
    parent_package: str | None = None
    parent_at_latest: bool = False

    @property
    def fix_available(self) -> bool:
        """A non-breaking fix exists and the project can apply it directly."""
        return self.fix_exists and not self.breaking_fix and self.is_direct

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.name,
            "severity": self.severity,
            "title": self.title,
            "advisory_id": self.advisory_id,
            "cves": list(self.cves),
            "url": self.url,
            "fix_available": self.fix_available,
            "fix_exists": self.fix_exists,
            "breaking_fix": self.breaking_fix,
            "fix_version": self.fix_version,
            "current_version": self.current_version,
            "is_direct": self.is_direct,
            "via": list(self.via),
            "parent_package": self.parent_package,
            "parent_at_latest": self.parent_at_latest,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VulnerabilityInfo":
        """Create from dictionary."""
        return cls(
            name=data.get("name", ""),
            severity=normalize_severity(data.get("severity")),
            title=data.get("title") or DEFAULT_VULNERABILITY_TITLE,
            advisory_id=data.get("advisory_id"),
            cves=tuple(data.get("cves") or ()),
            url=data.get("url"),
            fix_exists=data.get("fix_exists", data.get("fix_available", False)),
            breaking_fix=data.get("breaking_fix", False),
            fix_version=data.get("fix_version"),
            current_version=data.get("current_version"),
            is_direct=data.get("is_direct", True),
            via=tuple(data.get("via") or ()),
            parent_package=data.get("parent_package"),
            parent_at_latest=data.get("parent_at_latest", False),
        )


@dataclass(frozen=True)
class OutputParser:
    """
    Parser for one raw JSON dialect.

    Attributes:
        name: Dialect name, for logging
        matches: Predicate telling whether parsed JSON is in this dialect
        parse: Converts matching JSON into canonical records
    """
    name: str
    matches: Callable[[Any], bool]
    parse: Callable[[Any], list]


def _dependency_kind(entry: dict[str, Any]) -> str:
    kind = entry.get("dependencyType") or entry.get("type") or ""
    return "dev" if kind == "devDependencies" else "direct"


def _outdated_from_entry(name: str, entry: dict[str, Any]) -> OutdatedPackage | None:
    if not name or not any(key in entry for key in ("current", "wanted", "latest")):
        return None
    return OutdatedPackage(
        name=name,
        current=str(entry.get("current") or ""),
        wanted=str(entry.get("wanted") or ""),
        latest=str(entry.get("latest") or ""),
        dependency_kind=_dependency_kind(entry),
    )


def _parse_outdated_array(data: list[Any]) -> list[OutdatedPackage]:
    result = []
    for entry in data:
        if not isinstance(entry, dict):
            continue
        package = _outdated_from_entry(str(entry.get("name") or ""), entry)
        if package:
            result.append(package)
    return result


def _parse_outdated_keyed(data: dict[str, Any]) -> list[OutdatedPackage]:
    result = []
    for name, info in data.items():
        # Workspaces report one entry per workspace; versions agree across them
        if isinstance(info, list):
            info = info[0] if info else None
        if not isinstance(info, dict):
            continue
        package = _outdated_from_entry(name, info)
        if package:
            result.append(package)
    return result


def _dependency_chain(path: str) -> list[str]:
    chain = [part.strip() for part in path.split(">") if part.strip()]
    # pnpm prefixes paths with the workspace root
    if len(chain) > 1 and chain[0] == ".":
        chain = chain[1:]
    return chain


def _parse_advisories(data: dict[str, Any]) -> list[VulnerabilityInfo]:
    result = []
    for key, advisory in data["advisories"].items():
        if not isinstance(advisory, dict):
            continue
        name = advisory.get("module_name") or ""
        if not name:
            continue

        findings = advisory.get("findings") or []
        first_finding = findings[0] if findings and isinstance(findings[0], dict) else {}
        paths = first_finding.get("paths") or []
        chain = _dependency_chain(paths[0] if paths else name) or [name]
        is_direct = len(chain) == 1

        patched = advisory.get("patched_versions")
        advisory_id = advisory.get("id")
        if advisory_id is None:
            advisory_id = int(key) if str(key).isdigit() else key

        result.append(VulnerabilityInfo(
            name=name,
            severity=normalize_severity(advisory.get("severity")),
            title=advisory.get("title") or DEFAULT_VULNERABILITY_TITLE,
            advisory_id=advisory_id,
            cves=tuple(advisory.get("cves") or ()),
            url=advisory.get("url"),
            fix_exists=patched != NO_FIX_RANGE,
            fix_version=minimum_fixed_version(patched),
            current_version=first_finding.get("version"),
            is_direct=is_direct,
            via=tuple(chain) if not is_direct else (),
            parent_package=chain[0] if not is_direct else None,
        ))
    return result


def _parse_vulnerabilities(data: dict[str, Any]) -> list[VulnerabilityInfo]:
    result = []
    for name, vuln in data["vulnerabilities"].items():
        if not isinstance(vuln, dict):
            continue

        via_entries = vuln.get("via") or []
        advisories = [v for v in via_entries if isinstance(v, dict)]
        chain = [v for v in via_entries if isinstance(v, str)]

        title = next(
            (a["title"] for a in advisories if a.get("title")),
            DEFAULT_VULNERABILITY_TITLE,
        )
        url = next((a["url"] for a in advisories if a.get("url")), None)
        advisory_id = next(
            (a["source"] for a in advisories if a.get("source") is not None),
            None,
        )
        cves: list[str] = []
        for advisory in advisories:
            for cve in advisory.get("cves") or ():
                if cve not in cves:
                    cves.append(cve)

        # Reports without the flag are treated as direct
        is_direct = vuln.get("isDirect") is not False

        fix = vuln.get("fixAvailable")
        fix_version = None
        breaking_fix = False
        if isinstance(fix, dict):
            fix_version = fix.get("version") or None
            breaking_fix = fix.get("isSemVerMajor") is True
        elif fix is True:
            fix_version = "latest"

        result.append(VulnerabilityInfo(
            name=name,
            severity=normalize_severity(vuln.get("severity")),
            title=title,
            advisory_id=advisory_id,
            cves=tuple(cves),
            url=url,
            fix_exists=bool(fix),
            breaking_fix=breaking_fix,
            fix_version=fix_version,
            is_direct=is_direct,
            via=tuple(chain),
            parent_package=chain[0] if not is_direct and chain else None,
            # A breaking fix usually means the parent is already at its latest release
            parent_at_latest=breaking_fix,
        ))
    return result


OUTDATED_PARSERS = (
    OutputParser("array", lambda data: isinstance(data, list), _parse_outdated_array),
    OutputParser("keyed", lambda data: isinstance(data, dict), _parse_outdated_keyed),
)

AUDIT_PARSERS = (
    OutputParser(
        "advisories",
        lambda data: isinstance(data, dict) and isinstance(data.get("advisories"), dict),
        _parse_advisories,
    ),
    OutputParser(
        "vulnerabilities",
        lambda data: isinstance(data, dict) and isinstance(data.get("vulnerabilities"), dict),
        _parse_vulnerabilities,
    ),
)


def normalize_outdated(data: Any) -> list[OutdatedPackage]:
    """
    Convert parsed ``outdated`` output into canonical records.

    The first parser whose dialect matches is used; unknown shapes yield [].
    """
    for parser in OUTDATED_PARSERS:
        if parser.matches(data):
            return parser.parse(data)
    return []


def normalize_audit(data: Any) -> list[VulnerabilityInfo]:
    """
    Convert parsed ``audit`` output into canonical records.

    Every matching dialect contributes, since a report may carry both maps.
    """
    result: list[VulnerabilityInfo] = []
    for parser in AUDIT_PARSERS:
        if parser.matches(data):
            result.extend(parser.parse(data))
    return result
