"""
Common utilities shared across patch_intel modules.
"""

from __future__ import annotations

import datetime
import json
import os
import tempfile
from pathlib import Path
from typing import Any

from .logging_config import get_logger


def utc_now() -> datetime.datetime:
    """Current time as a timezone-aware UTC datetime, truncated to seconds."""
    return datetime.datetime.now(datetime.timezone.utc).replace(microsecond=0)


def format_timestamp(moment: datetime.datetime) -> str:
    """Serialize a datetime as ISO-8601 UTC with a trailing ``Z``."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=datetime.timezone.utc)
    return (
        moment.astimezone(datetime.timezone.utc)
        .replace(microsecond=0)
        .isoformat()
        .replace("+00:00", "Z")
    )


def parse_timestamp(value: str) -> datetime.datetime:
    """Parse a timestamp written by :func:`format_timestamp`.

    Naive values are assumed to be UTC.

    Raises:
        ValueError: If the string is not ISO-8601
    """
    parsed = datetime.datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=datetime.timezone.utc)
    return parsed


def write_json_atomic(path: Path, data: Any, what: str = "file") -> bool:
    """
    Write JSON to ``path`` through a temp file and rename.

    Errors are logged and swallowed so the previous file stays intact.

    Args:
        path: Destination file
        data: JSON-serializable value
        what: Description used in the warning message

    Returns:
        True if the file was replaced
    """
    temp_path = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
        temp_path = Path(temp_name)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        temp_path.replace(path)
        return True
    except (OSError, TypeError, ValueError) as e:
        get_logger().warning(f"Failed to write {what} {path}: {e}")
        if temp_path is not None:
            temp_path.unlink(missing_ok=True)
        return False


def read_json(path: Path) -> Any | None:
    """Read a JSON file, returning None when missing or unreadable."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as e:
        get_logger().warning(f"Ignoring unreadable {path}: {e}")
        return None


def vlog(msg: str, verbose: bool = False) -> None:
    """
    Log a verbose trace message.

    Emitted when ``verbose`` is set or ``PATCH_INTEL_DEBUG=1``.

    Args:
        msg: Message to log
        verbose: Whether verbose mode is enabled
    """
    if verbose or os.environ.get("PATCH_INTEL_DEBUG", "0") == "1":
        get_logger().info(msg)
