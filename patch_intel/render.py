"""
Terminal rendering of the remediation queue.
"""

import os
import re
from typing import Any, Sequence

from wcwidth import wcswidth

from .priority_queue import PatchQueueItem, PatchSummary


# Environment options
USE_EMOJI = os.environ.get("PATCH_INTEL_EMOJI", "1") == "1"
ENABLE_LINKS = os.environ.get("PATCH_INTEL_LINKS", "1") == "1"
USE_COLOR = os.environ.get("PATCH_INTEL_COLOR", "1") == "1"

# ANSI color codes
GREEN = "\033[32m"
BOLD_RED = "\033[1;31m"
RED = "\033[31m"
YELLOW = "\033[33m"
BLUE = "\033[34m"
DIM = "\033[2m"
RESET = "\033[0m"

SEVERITY_COLOR = {
    "critical": BOLD_RED,
    "high": RED,
    "moderate": YELLOW,
    "low": BLUE,
    "info": DIM,
    "major": YELLOW,
    "minor": BLUE,
    "patch": GREEN,
}

HEADERS = ("", "package", "project", "version", "severity", "notes")

# CSI sequences and OSC 8 hyperlink open/close markers
_CONTROL_RE = re.compile(r"\x1b\[[0-?]*[ -/]*[@-~]|\x1b\]8;[^\\]*\\")


def severity_icon(item: PatchQueueItem) -> str:
    """Icon for a queue item's severity."""
    if not USE_EMOJI:
        if item.type == "vulnerability":
            return "!" if item.severity in ("critical", "high") else "?"
        return "↑"

    if item.type == "vulnerability":
        if item.severity == "critical":
            return "🚨"
        if item.severity == "high":
            return "🔴"
        if item.severity == "moderate":
            return "🟠"
        return "🟡"
    return "⬆"


def colorize(text: str, color: str) -> str:
    """Apply color to text, unless colors are disabled."""
    if not USE_COLOR or not text:
        return text
    return f"{color}{text}{RESET}"


def osc8(url: str, text: str) -> str:
    """Create OSC8 hyperlink, unless links are disabled."""
    if not ENABLE_LINKS or not url:
        return text
    return f"\033]8;;{url}\033\\{text}\033]8;;\033\\"


def display_width(text: str) -> int:
    """Terminal columns occupied by ``text``, ignoring escape sequences."""
    visible = _CONTROL_RE.sub("", text)
    width = wcswidth(visible)
    return width if width >= 0 else len(visible)


def _pad(text: str, width: int) -> str:
    return text + " " * max(0, width - display_width(text))


def _notes(item: PatchQueueItem) -> str:
    notes = []
    if item.is_held:
        notes.append("HELD")
    if item.type == "vulnerability":
        if item.breaking_fix:
            notes.append("BREAKING FIX")
        if item.is_direct is False and item.parent_package:
            notes.append(f"via {item.parent_package}")
        elif not item.fix_available:
            notes.append("NO FIX")
        if item.cves:
            notes.append(", ".join(item.cves))
    return " ".join(notes)


def queue_rows(queue: Sequence[PatchQueueItem]) -> list[tuple[str, ...]]:
    """Cells for each queue item, in :data:`HEADERS` order."""
    rows = []
    for item in queue:
        version = item.current_version or "?"
        if item.target_version:
            version = f"{version} → {item.target_version}"
        package = osc8(item.url, item.package) if item.url else item.package
        rows.append((
            severity_icon(item),
            package,
            item.project_name,
            version,
            colorize(item.severity, SEVERITY_COLOR.get(item.severity, "")),
            _notes(item),
        ))
    return rows


def render_queue(queue: Sequence[PatchQueueItem]) -> list[str]:
    """
    Render the queue as display-width aligned lines, header first.
    """
    rows = [HEADERS] + queue_rows(queue)
    widths = [max(display_width(row[col]) for row in rows) for col in range(len(HEADERS))]

    lines = []
    for row in rows:
        cells = [_pad(cell, widths[col]) for col, cell in enumerate(row)]
        lines.append("  ".join(cells).rstrip())
    return lines


def format_summary(summary: PatchSummary, meta: dict[str, Any] | None = None) -> str:
    """One-line summary of vulnerability and staleness counts."""
    meta = meta or {}
    parts = [
        f"{summary.critical} critical",
        f"{summary.high} high",
        f"{summary.moderate} moderate",
        f"{summary.outdated_major} major",
        f"{summary.outdated_minor} minor",
        f"{summary.outdated_patch} patch",
    ]
    line = f"Patches: {', '.join(parts)}"
    if meta.get("last_scan"):
        line += f" (last full scan {meta['last_scan']})"
    return line
