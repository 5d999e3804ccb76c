"""
Version comparison helpers for npm-style version strings.
"""

from __future__ import annotations

import re

from packaging.specifiers import InvalidSpecifier, SpecifierSet
from packaging.version import InvalidVersion, Version


UPDATE_TYPES = ("major", "minor", "patch")

# Range reported by audit tools when no patched release exists
NO_FIX_RANGE = "<0.0.0"

_NUMERIC_RE = re.compile(r"^\d+$")
_RANGE_PREFIX_RE = re.compile(r"^[\^~]")


def _component(parts: list[str], index: int) -> int | None:
    if index >= len(parts) or not _NUMERIC_RE.match(parts[index]):
        return None
    return int(parts[index])


def get_update_type(current: str | None, target: str | None) -> str:
    """
    Classify the magnitude of a version change.

    Leading ``^``/``~`` range markers are ignored. Major components are
    compared first, then minor; anything missing or non-numeric is "patch".

    Args:
        current: Installed version
        target: Version being moved to

    Returns:
        "major", "minor" or "patch"
    """
    if not current or not target:
        return "patch"

    current_parts = _RANGE_PREFIX_RE.sub("", current).split(".")
    target_parts = _RANGE_PREFIX_RE.sub("", target).split(".")

    current_major = _component(current_parts, 0)
    target_major = _component(target_parts, 0)
    if current_major is None or target_major is None:
        return "patch"
    if target_major > current_major:
        return "major"

    current_minor = _component(current_parts, 1)
    target_minor = _component(target_parts, 1)
    if current_minor is None or target_minor is None:
        return "patch"
    if target_minor > current_minor:
        return "minor"
    return "patch"


def minimum_fixed_version(patched_versions: str | None) -> str | None:
    """
    Lowest version satisfying an advisory's ``patched_versions`` range.

    Handles ``>=x.y.z`` style bounds, space-separated conjunctions and
    ``||`` alternatives. Ranges that cannot be read as version specifiers
    yield None, as does the no-fix range ``<0.0.0``.

    Examples:
        >>> minimum_fixed_version(">=4.17.21")
        '4.17.21'
        >>> minimum_fixed_version(">=1.2.5 <2.0.0 || >=2.1.1")
        '1.2.5'
    """
    if not patched_versions or patched_versions.strip() == NO_FIX_RANGE:
        return None

    candidates: list[Version] = []
    for alternative in patched_versions.split("||"):
        terms = alternative.split()
        if not terms:
            continue
        try:
            specifiers = SpecifierSet(",".join(terms))
        except InvalidSpecifier:
            continue
        for specifier in specifiers:
            if specifier.operator not in (">=", "==", "==="):
                continue
            try:
                candidates.append(Version(specifier.version))
            except InvalidVersion:
                continue

    if not candidates:
        return None
    return str(min(candidates))


def highest_version(versions: list[str]) -> str | None:
    """
    Highest of several fix versions.

    "latest" outranks everything. If any value is not a parseable version the
    first value is returned unchanged.
    """
    if not versions:
        return None
    if "latest" in versions:
        return "latest"
    try:
        return max(versions, key=Version)
    except InvalidVersion:
        return versions[0]
