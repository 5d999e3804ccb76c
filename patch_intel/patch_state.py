"""
Aggregate patch state and applied-update history.

``state.json`` keeps per-project counts so list views can show them without
loading full caches. ``history.json`` is an append-only audit log of applied
package updates, newest first, capped at :data:`HISTORY_LIMIT` entries.
"""

from __future__ import annotations

import random
import string
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .common import format_timestamp, read_json, utc_now, write_json_atomic


STATE_FILE = "state.json"
HISTORY_FILE = "history.json"

HISTORY_LIMIT = 500
DEFAULT_HISTORY_PAGE = 50

TRIGGERS = ("manual", "auto")

_BASE36 = string.digits + string.ascii_lowercase


@dataclass
class ProjectPatchState:
    """Summary counts from a project's latest scan."""

    outdated_count: int = 0
    vuln_count: int = 0
    critical_count: int = 0
    last_checked: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "outdated_count": self.outdated_count,
            "vuln_count": self.vuln_count,
            "critical_count": self.critical_count,
            "last_checked": self.last_checked,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProjectPatchState":
        """Create from dictionary."""
        return cls(
            outdated_count=data.get("outdated_count", 0),
            vuln_count=data.get("vuln_count", 0),
            critical_count=data.get("critical_count", 0),
            last_checked=data.get("last_checked", ""),
        )


@dataclass
class PatchState:
    """Container for per-project patch counts with scan metadata."""

    last_full_scan: str | None = None
    projects: dict[str, ProjectPatchState] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "last_full_scan": self.last_full_scan,
            "projects": {
                project_id: state.to_dict() for project_id, state in self.projects.items()
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PatchState":
        """Create from dictionary."""
        projects_raw = data.get("projects") or {}
        return cls(
            last_full_scan=data.get("last_full_scan"),
            projects={
                project_id: ProjectPatchState.from_dict(state)
                for project_id, state in projects_raw.items()
                if isinstance(state, dict)
            },
        )


@dataclass(frozen=True)
class PatchHistoryEntry:
    """
    Record of one applied package update. Entries are never modified.

    Attributes:
        id: Unique entry id (see :func:`generate_patch_id`)
        timestamp: When the update was applied
        project_id: Project the package belongs to
        package: Package name
        from_version: Version before the update
        to_version: Version after the update
        update_type: "major", "minor" or "patch"
        trigger: "manual" or "auto"
        success: Whether the install command succeeded
        output: Captured command output
        error: Error message when the update failed
    """
    id: str
    timestamp: str
    project_id: str
    package: str
    from_version: str
    to_version: str
    update_type: str
    trigger: str
    success: bool
    output: str = ""
    error: str | None = None

    def __post_init__(self):
        if self.trigger not in TRIGGERS:
            raise ValueError(
                f"Invalid trigger: {self.trigger}. Must be one of: {', '.join(TRIGGERS)}"
            )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "project_id": self.project_id,
            "package": self.package,
            "from_version": self.from_version,
            "to_version": self.to_version,
            "update_type": self.update_type,
            "trigger": self.trigger,
            "success": self.success,
            "output": self.output,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PatchHistoryEntry":
        """Create from dictionary."""
        return cls(
            id=data.get("id", ""),
            timestamp=data.get("timestamp", ""),
            project_id=data.get("project_id", ""),
            package=data.get("package", ""),
            from_version=data.get("from_version", ""),
            to_version=data.get("to_version", ""),
            update_type=data.get("update_type", "patch"),
            trigger=data.get("trigger", "manual"),
            success=data.get("success", False),
            output=data.get("output", ""),
            error=data.get("error"),
        )


def _to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def generate_patch_id() -> str:
    """Unique id for a history entry: ``upd_<base36 ms>_<6 random chars>``."""
    millis = _to_base36(int(time.time() * 1000))
    suffix = "".join(random.choices(_BASE36, k=6))
    return f"upd_{millis}_{suffix}"


class PatchStore:
    """
    File-backed store for aggregate state and update history.

    Writes within one process are serialized; across processes the last writer wins.

    Args:
        root: Directory holding ``state.json`` and ``history.json``
        history_limit: Number of history entries retained
    """

    def __init__(self, root: Path, history_limit: int = HISTORY_LIMIT):
        self.root = Path(root)
        self.history_limit = history_limit
        # Serializes read-modify-write cycles between threads of this process
        self._lock = threading.Lock()

    @property
    def state_path(self) -> Path:
        return self.root / STATE_FILE

    @property
    def history_path(self) -> Path:
        return self.root / HISTORY_FILE

    def read_patch_state(self) -> PatchState:
        """Load aggregate state; a missing or corrupt file yields an empty state."""
        data = read_json(self.state_path)
        if not isinstance(data, dict):
            return PatchState()
        return PatchState.from_dict(data)

    def write_patch_state(self, state: PatchState) -> bool:
        return write_json_atomic(self.state_path, state.to_dict(), "patch state")

    def update_project_state(self, project_id: str, counts: ProjectPatchState) -> PatchState:
        """
        Replace one project's counts and refresh ``last_full_scan``.

        Returns:
            The state as written
        """
        with self._lock:
            state = self.read_patch_state()
            state.projects[project_id] = counts
            state.last_full_scan = format_timestamp(utc_now())
            self.write_patch_state(state)
        return state

    def mark_full_scan(self) -> PatchState:
        """Stamp ``last_full_scan`` with the current time."""
        with self._lock:
            state = self.read_patch_state()
            state.last_full_scan = format_timestamp(utc_now())
            self.write_patch_state(state)
        return state

    def _load_history(self) -> list[PatchHistoryEntry]:
        data = read_json(self.history_path)
        if not isinstance(data, dict):
            return []
        entries = []
        for raw in data.get("updates") or []:
            if not isinstance(raw, dict):
                continue
            try:
                entries.append(PatchHistoryEntry.from_dict(raw))
            except ValueError:
                continue
        return entries

    def read_patch_history(
        self,
        project_id: str | None = None,
        limit: int = DEFAULT_HISTORY_PAGE,
    ) -> tuple[list[PatchHistoryEntry], int]:
        """
        Read history, newest first.

        Args:
            project_id: Only return entries for this project
            limit: Maximum entries returned, clamped to 1..history_limit

        Returns:
            (entries, total matching entries before the limit)
        """
        limit = min(max(limit, 1), self.history_limit)
        entries = self._load_history()
        if project_id:
            entries = [entry for entry in entries if entry.project_id == project_id]
        return entries[:limit], len(entries)

    def append_history(self, entry: PatchHistoryEntry) -> bool:
        """
        Prepend an entry and drop everything beyond the retention limit.

        Returns:
            True if the history file was written
        """
        with self._lock:
            entries = self._load_history()
            entries.insert(0, entry)
            del entries[self.history_limit:]
            return write_json_atomic(
                self.history_path,
                {"updates": [e.to_dict() for e in entries]},
                "patch history",
            )
