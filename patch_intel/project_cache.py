"""
Per-project scan cache.

Each project's normalized scan result lives in ``<cache_dir>/<project_id>.json``
and is replaced wholesale by every scan. Lifetimes carry random jitter so
that caches written in one batch do not all expire at the same moment.
"""

from __future__ import annotations

import datetime
import random
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Sequence

from .common import format_timestamp, parse_timestamp, read_json, utc_now, vlog, write_json_atomic
from .logging_config import get_logger
from .normalize import OutdatedPackage, VulnerabilityInfo


DEFAULT_TTL_MINUTES = 60
DEFAULT_JITTER_MINUTES = 15


@dataclass
class ProjectPatchCache:
    """Normalized scan result for one project."""

    project_id: str
    timestamp: str
    expires_at: str
    outdated: list[OutdatedPackage] = field(default_factory=list)
    vulnerabilities: list[VulnerabilityInfo] = field(default_factory=list)

    def is_live(self, now: datetime.datetime) -> bool:
        """True while ``now`` is before the expiry time."""
        return now < parse_timestamp(self.expires_at)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "project_id": self.project_id,
            "timestamp": self.timestamp,
            "expires_at": self.expires_at,
            "outdated": [pkg.to_dict() for pkg in self.outdated],
            "vulnerabilities": [vuln.to_dict() for vuln in self.vulnerabilities],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProjectPatchCache":
        """Create from dictionary.

        Raises:
            KeyError: If identity or timing fields are missing
        """
        return cls(
            project_id=data["project_id"],
            timestamp=data["timestamp"],
            expires_at=data["expires_at"],
            outdated=[OutdatedPackage.from_dict(pkg) for pkg in data.get("outdated", [])],
            vulnerabilities=[
                VulnerabilityInfo.from_dict(vuln) for vuln in data.get("vulnerabilities", [])
            ],
        )


class ProjectCache:
    """
    File-backed cache of project scan results.

    Args:
        cache_dir: Directory holding one JSON file per project
        ttl_minutes: Base lifetime of a new cache
        jitter_minutes: Upper bound of the random extra lifetime
        clock: Returns the current aware datetime
        rng: Random source for the jitter
        verbose: Enable verbose logging
    """

    def __init__(
        self,
        cache_dir: Path,
        ttl_minutes: int = DEFAULT_TTL_MINUTES,
        jitter_minutes: int = DEFAULT_JITTER_MINUTES,
        clock: Callable[[], datetime.datetime] | None = None,
        rng: random.Random | None = None,
        verbose: bool = False,
    ):
        self.cache_dir = Path(cache_dir)
        self.ttl_minutes = ttl_minutes
        self.jitter_minutes = jitter_minutes
        self.clock = clock or utc_now
        self.rng = rng or random.Random()
        self.verbose = verbose

    def path_for(self, project_id: str) -> Path:
        return self.cache_dir / f"{project_id}.json"

    def lifetime(self) -> datetime.timedelta:
        """Base TTL plus uniform jitter, in whole seconds."""
        jitter_seconds = self.rng.randint(0, self.jitter_minutes * 60)
        return datetime.timedelta(seconds=self.ttl_minutes * 60 + jitter_seconds)

    def create(
        self,
        project_id: str,
        outdated: Sequence[OutdatedPackage],
        vulnerabilities: Sequence[VulnerabilityInfo],
    ) -> ProjectPatchCache:
        """Build a new cache entry stamped with the current time and a jittered expiry."""
        now = self.clock().replace(microsecond=0)
        return ProjectPatchCache(
            project_id=project_id,
            timestamp=format_timestamp(now),
            expires_at=format_timestamp(now + self.lifetime()),
            outdated=list(outdated),
            vulnerabilities=list(vulnerabilities),
        )

    def get(self, project_id: str) -> ProjectPatchCache | None:
        """
        Return the cached result if it has not expired.

        Missing, expired and unreadable files all count as a miss. Expired
        files are left in place; the next write replaces them.
        """
        data = read_json(self.path_for(project_id))
        if not isinstance(data, dict):
            return None

        try:
            cache = ProjectPatchCache.from_dict(data)
            live = cache.is_live(self.clock())
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            get_logger().warning(f"Ignoring corrupt cache for {project_id}: {e}")
            return None

        if not live:
            vlog(f"Cache for {project_id} expired at {cache.expires_at}", self.verbose)
            return None
        return cache

    def put(self, cache: ProjectPatchCache) -> bool:
        """Persist ``cache``, replacing any previous entry for the project."""
        return write_json_atomic(self.path_for(cache.project_id), cache.to_dict(), "patch cache")

    def invalidate(self, project_id: str) -> None:
        """Delete the project's cache file; absent files are ignored."""
        try:
            self.path_for(project_id).unlink(missing_ok=True)
            vlog(f"Invalidated patch cache for {project_id}", self.verbose)
        except OSError as e:
            get_logger().warning(f"Failed to invalidate cache for {project_id}: {e}")
