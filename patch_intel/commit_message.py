"""
Commit messages for batches of applied package updates.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence


@dataclass(frozen=True)
class UpdatedPackage:
    """A package changed by an update batch."""

    name: str
    from_version: str
    to_version: str
    is_security_fix: bool = False
    vuln_count: int = 0


@dataclass(frozen=True)
class CommitMessage:
    """Commit title, body, and both joined by a blank line."""

    title: str
    body: str
    full: str


def _plural(count: int, singular: str, plural: str) -> str:
    return singular if count == 1 else plural


def generate_patch_commit_message(packages: Sequence[UpdatedPackage]) -> CommitMessage:
    """
    Build a conventional-commit message for a batch of updates.

    Security fixes are listed first under ``Security:``, the remaining
    updates under ``Dependencies:``.

    Example:
        chore(deps): update 2 packages (1 security fix)

        Security:
        - axios 0.21.1 → 0.21.2 (fixes 2 vulnerabilities)

        Dependencies:
        - lodash 4.17.20 → 4.17.21
    """
    if not packages:
        return CommitMessage(title="", body="", full="")

    security_fixes = [p for p in packages if p.is_security_fix]
    regular_updates = [p for p in packages if not p.is_security_fix]

    security_suffix = ""
    if security_fixes:
        count = len(security_fixes)
        security_suffix = f" ({count} security {_plural(count, 'fix', 'fixes')})"
    title = (
        f"chore(deps): update {len(packages)} "
        f"{_plural(len(packages), 'package', 'packages')}{security_suffix}"
    )

    lines: list[str] = []
    if security_fixes:
        lines.append("Security:")
        for pkg in security_fixes:
            vuln_info = ""
            if pkg.vuln_count > 0:
                noun = _plural(pkg.vuln_count, "vulnerability", "vulnerabilities")
                vuln_info = f" (fixes {pkg.vuln_count} {noun})"
            lines.append(f"- {pkg.name} {pkg.from_version} → {pkg.to_version}{vuln_info}")

    if regular_updates:
        if lines:
            lines.append("")
        lines.append("Dependencies:")
        for pkg in regular_updates:
            lines.append(f"- {pkg.name} {pkg.from_version} → {pkg.to_version}")

    body = "\n".join(lines)
    full = f"{title}\n\n{body}" if body else title
    return CommitMessage(title=title, body=body, full=full)


def generate_patch_summary(packages: Sequence[UpdatedPackage]) -> str:
    """One-line summary of an update batch for display."""
    if not packages:
        return ""

    security_count = sum(1 for p in packages if p.is_security_fix)
    if security_count:
        return (
            f"Updated {len(packages)} packages "
            f"({security_count} security {_plural(security_count, 'fix', 'fixes')})"
        )
    return f"Updated {len(packages)} {_plural(len(packages), 'package', 'packages')}"
