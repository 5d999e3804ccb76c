"""
Shared fixtures: throwaway project checkouts and a scripted command runner.
"""

import json
import threading
from pathlib import Path

import pytest

from patch_intel.config import ProjectConfig
from patch_intel.runner import CommandResult


NPM_OUTDATED = {
    "lodash": {"current": "4.17.20", "wanted": "4.17.21", "latest": "4.17.21", "type": "dependencies"},
    "react": {"current": "17.0.2", "wanted": "17.0.2", "latest": "18.2.0", "type": "dependencies"},
}

NPM_AUDIT = {
    "vulnerabilities": {
        "lodash": {
            "severity": "high",
            "isDirect": True,
            "via": [{
                "source": 1523,
                "title": "Prototype Pollution in lodash",
                "url": "https://github.com/advisories/GHSA-p6mc-m468-83gw",
                "severity": "high",
            }],
            "fixAvailable": {"name": "lodash", "version": "4.17.21", "isSemVerMajor": False},
        },
    },
}


class FakeRunner:
    """
    Command runner returning scripted results keyed by project directory name
    and subcommand ("outdated" or "audit").

    Unscripted commands succeed with empty JSON output.
    """

    def __init__(self, results=None):
        self.results = results or {}
        self.calls = []
        self._lock = threading.Lock()

    def __call__(self, command, cwd, timeout):
        command = tuple(command)
        with self._lock:
            self.calls.append((Path(cwd).name, command))
        key = (Path(cwd).name, command[1])
        result = self.results.get(key)
        if result is None:
            return CommandResult(command=command, stdout="{}", exit_code=0)
        if isinstance(result, CommandResult):
            return result
        return CommandResult(command=command, stdout=json.dumps(result), exit_code=1)


def timed_out(*command):
    return CommandResult(command=tuple(command), timed_out=True)


@pytest.fixture
def make_project(tmp_path):
    """Create a project checkout with the given lockfile (None for no lockfile)."""

    def _make(project_id, lockfile="package-lock.json", **kwargs):
        root = tmp_path / "projects" / project_id
        root.mkdir(parents=True)
        if lockfile:
            (root / lockfile).write_text("{}")
        return ProjectConfig(id=project_id, name=kwargs.pop("name", project_id.upper()), path=str(root), **kwargs)

    return _make
