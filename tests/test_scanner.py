"""
Tests for project scanning (patch_intel/scanner.py).
"""

import threading
import time
from pathlib import Path

import pytest

from patch_intel.package_managers import get_package_manager
from patch_intel.patch_state import PatchStore
from patch_intel.project_cache import ProjectCache
from patch_intel.runner import CommandResult
from patch_intel.scanner import (
    ScanError,
    fetch_all_projects,
    scan_all_projects,
    scan_outdated,
    scan_project,
    scan_vulnerabilities,
)

from conftest import NPM_AUDIT, NPM_OUTDATED, FakeRunner, timed_out


class OverlapRunner(FakeRunner):
    """
    FakeRunner that makes a project's two commands meet at a barrier and
    records which projects had commands in flight at the same time.
    """

    def __init__(self, results=None, hold_seconds=0.05):
        super().__init__(results)
        self.hold_seconds = hold_seconds
        self.in_flight = {}
        self.overlaps = set()
        self._barriers = {}

    def _barrier(self, project):
        with self._lock:
            if project not in self._barriers:
                self._barriers[project] = threading.Barrier(2, timeout=5)
            return self._barriers[project]

    def __call__(self, command, cwd, timeout):
        project = Path(cwd).name
        with self._lock:
            for other, count in self.in_flight.items():
                if other != project and count:
                    self.overlaps.add(frozenset((project, other)))
            self.in_flight[project] = self.in_flight.get(project, 0) + 1
        try:
            # Both commands of a project must be running before either returns
            self._barrier(project).wait()
            time.sleep(self.hold_seconds)
            return super().__call__(command, cwd, timeout)
        finally:
            with self._lock:
                self.in_flight[project] -= 1


@pytest.fixture
def store(tmp_path):
    return PatchStore(tmp_path / "patches")


@pytest.fixture
def cache(tmp_path):
    return ProjectCache(tmp_path / "patches" / "cache")


class TestScanCommands:
    """Tests for the individual outdated and audit scans."""

    def test_outdated_findings_on_non_zero_exit(self, make_project):
        project = make_project("web")
        runner = FakeRunner({("web", "outdated"): NPM_OUTDATED})

        report = scan_outdated(project, runner=runner)

        assert report.error is None
        assert sorted(pkg.name for pkg in report.records) == ["lodash", "react"]
        assert runner.calls == [("web", ("npm", "outdated", "--json"))]

    def test_audit_uses_detected_manager(self, make_project):
        project = make_project("web", lockfile="pnpm-lock.yaml")
        runner = FakeRunner({("web", "audit"): NPM_AUDIT})

        report = scan_vulnerabilities(project, runner=runner)

        assert [v.name for v in report.records] == ["lodash"]
        assert runner.calls == [("web", ("pnpm", "audit", "--json"))]

    def test_timeout_is_error_report(self, make_project):
        project = make_project("web")
        runner = FakeRunner({("web", "audit"): timed_out("npm", "audit", "--json")})

        report = scan_vulnerabilities(project, runner=runner)

        assert report.records == []
        assert "timed out" in report.error

    def test_malformed_output_is_empty(self, make_project):
        project = make_project("web")
        bad = CommandResult(command=("npm", "outdated", "--json"), stdout="Debugger attached.", exit_code=0)
        runner = FakeRunner({("web", "outdated"): bad})

        report = scan_outdated(project, runner=runner)

        assert report.records == []
        assert report.error is None

    def test_non_zero_exit_without_json_is_error(self, make_project):
        project = make_project("web")
        failed = CommandResult(command=("npm", "outdated", "--json"), stderr="ENOTFOUND", exit_code=1)
        runner = FakeRunner({("web", "outdated"): failed})

        report = scan_outdated(project, runner=runner)

        assert report.error is not None

    def test_no_lockfile(self, make_project):
        project = make_project("docs", lockfile=None)
        runner = FakeRunner()

        assert scan_outdated(project, runner=runner).records == []
        assert runner.calls == []

    def test_explicit_package_manager(self, make_project):
        project = make_project("web")
        runner = FakeRunner()

        scan_outdated(project, package_manager=get_package_manager("yarn"), runner=runner)

        assert runner.calls == [("web", ("yarn", "outdated", "--json"))]


class TestScanProject:
    """Tests for single-project scans."""

    def test_fresh_scan_writes_cache_and_state(self, make_project, cache, store):
        project = make_project("web")
        runner = FakeRunner({("web", "outdated"): NPM_OUTDATED, ("web", "audit"): NPM_AUDIT})

        result = scan_project(project, cache, store, runner=runner)

        assert len(result.outdated) == 2
        assert len(result.vulnerabilities) == 1
        assert cache.get("web") == result
        counts = store.read_patch_state().projects["web"]
        assert counts.outdated_count == 2
        assert counts.vuln_count == 1
        assert counts.critical_count == 1
        assert counts.last_checked == result.timestamp

    def test_live_cache_skips_commands(self, make_project, cache, store):
        project = make_project("web")
        runner = FakeRunner({("web", "outdated"): NPM_OUTDATED})
        first = scan_project(project, cache, store, runner=runner)
        calls = len(runner.calls)

        second = scan_project(project, cache, store, runner=runner)

        assert second == first
        assert len(runner.calls) == calls

    def test_force_refresh_rescans(self, make_project, cache, store):
        project = make_project("web")
        runner = FakeRunner()
        scan_project(project, cache, store, runner=runner)

        scan_project(project, cache, store, force_refresh=True, runner=runner)

        assert len(runner.calls) == 4

    def test_failure_keeps_previous_cache(self, make_project, cache, store):
        project = make_project("web")
        good = FakeRunner({("web", "outdated"): NPM_OUTDATED})
        previous = scan_project(project, cache, store, runner=good)

        bad = FakeRunner({("web", "audit"): timed_out("npm", "audit", "--json")})
        with pytest.raises(ScanError) as exc_info:
            scan_project(project, cache, store, force_refresh=True, runner=bad)

        assert exc_info.value.project_id == "web"
        assert cache.get("web") == previous

    def test_outdated_and_audit_run_concurrently(self, make_project, cache, store):
        """Both commands are in flight together; the cache is written after both return."""
        project = make_project("web")
        runner = OverlapRunner({("web", "outdated"): NPM_OUTDATED, ("web", "audit"): NPM_AUDIT})

        result = scan_project(project, cache, store, runner=runner)

        assert sorted(command[1] for _, command in runner.calls) == ["audit", "outdated"]
        assert len(result.outdated) == 2
        assert len(result.vulnerabilities) == 1
        assert cache.get("web") == result

    def test_no_lockfile_is_empty_result(self, make_project, cache, store):
        project = make_project("docs", lockfile=None)
        runner = FakeRunner()

        result = scan_project(project, cache, store, runner=runner)

        assert result.outdated == []
        assert result.vulnerabilities == []
        assert runner.calls == []
        assert cache.get("docs") is not None


class TestBatchScans:
    """Tests for multi-project scans."""

    def test_forced_scan_isolates_failures(self, make_project, cache, store):
        """A timeout in B does not stop A and C; B is reported as failed."""
        projects = [make_project("a"), make_project("b"), make_project("c")]
        runner = FakeRunner({
            ("a", "outdated"): NPM_OUTDATED,
            ("b", "audit"): timed_out("npm", "audit", "--json"),
            ("c", "audit"): NPM_AUDIT,
        })

        result = scan_all_projects(projects, cache, store, runner=runner)

        assert result.failed_projects == ("b",)
        assert [c.project_id for c in result.caches] == ["a", "c"]
        assert cache.path_for("a").exists()
        assert cache.path_for("c").exists()
        assert not cache.path_for("b").exists()

        state = store.read_patch_state()
        assert state.last_full_scan is not None
        assert state.last_full_scan == result.last_full_scan
        assert set(state.projects) == {"a", "c"}

    def test_forced_scan_runs_one_project_at_a_time(self, make_project, cache, store):
        projects = [make_project("a"), make_project("b"), make_project("c")]
        runner = OverlapRunner()

        result = scan_all_projects(projects, cache, store, runner=runner)

        assert result.failed_projects == ()
        assert [c.project_id for c in result.caches] == ["a", "b", "c"]
        assert runner.overlaps == set()
        assert [name for name, _ in runner.calls] == ["a", "a", "b", "b", "c", "c"]

    def test_fetch_scans_projects_in_parallel(self, make_project, cache, store):
        projects = [make_project("a"), make_project("b"), make_project("c")]
        runner = OverlapRunner(hold_seconds=0.2)

        result = fetch_all_projects(projects, cache, store, max_workers=3, runner=runner)

        assert result.failed_projects == ()
        assert runner.overlaps

    def test_forced_scan_ignores_live_caches(self, make_project, cache, store):
        projects = [make_project("a")]
        runner = FakeRunner()
        scan_all_projects(projects, cache, store, runner=runner)
        scan_all_projects(projects, cache, store, runner=runner)

        assert len(runner.calls) == 4

    def test_forced_scan_advances_even_when_all_fail(self, make_project, cache, store):
        projects = [make_project("a")]
        runner = FakeRunner({("a", "outdated"): timed_out("npm", "outdated", "--json")})

        result = scan_all_projects(projects, cache, store, runner=runner)

        assert result.caches == ()
        assert result.failed_projects == ("a",)
        assert store.read_patch_state().last_full_scan is not None

    def test_fetch_reuses_live_caches(self, make_project, cache, store):
        projects = [make_project("a"), make_project("b")]
        runner = FakeRunner({("a", "outdated"): NPM_OUTDATED})
        scan_project(projects[0], cache, store, runner=runner)
        runner.calls.clear()

        result = fetch_all_projects(projects, cache, store, max_workers=4, runner=runner)

        assert [c.project_id for c in result.caches] == ["a", "b"]
        assert {name for name, _ in runner.calls} == {"b"}
        assert result.last_full_scan is None

    def test_fetch_records_failures(self, make_project, cache, store):
        projects = [make_project("a"), make_project("b")]
        runner = FakeRunner({("a", "outdated"): timed_out("npm", "outdated", "--json")})

        result = fetch_all_projects(projects, cache, store, runner=runner)

        assert result.failed_projects == ("a",)
        assert [c.project_id for c in result.caches] == ["b"]

    def test_to_dict(self, make_project, cache, store):
        result = scan_all_projects([make_project("a")], cache, store, runner=FakeRunner())

        data = result.to_dict()

        assert data["scanned"] == ["a"]
        assert data["failed_projects"] == []
        assert data["last_full_scan"] == result.last_full_scan
