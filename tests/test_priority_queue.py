"""
Tests for remediation queue construction (patch_intel/priority_queue.py).
"""

import pytest

from patch_intel.normalize import OutdatedPackage, VulnerabilityInfo
from patch_intel.priority_queue import (
    PatchSummary,
    build_queue,
    get_priority_score,
    max_severity,
    select_actionable,
)
from patch_intel.project_cache import ProjectPatchCache


def make_cache(project_id, outdated=(), vulnerabilities=()):
    return ProjectPatchCache(
        project_id=project_id,
        timestamp="2026-03-01T12:00:00Z",
        expires_at="2026-03-01T13:00:00Z",
        outdated=list(outdated),
        vulnerabilities=list(vulnerabilities),
    )


def outdated(name, current, latest):
    return OutdatedPackage(name, current, latest, latest)


class TestPriorityScore:
    """Tests for the urgency table."""

    @pytest.mark.parametrize("item_type,severity,expected", [
        ("vulnerability", "critical", 1),
        ("vulnerability", "high", 2),
        ("vulnerability", "moderate", 3),
        ("vulnerability", "low", 4),
        ("vulnerability", "info", 5),
        ("outdated", "major", 10),
        ("outdated", "minor", 20),
        ("outdated", "patch", 30),
    ])
    def test_scores(self, item_type, severity, expected):
        assert get_priority_score(item_type, severity) == expected

    def test_max_severity(self):
        assert max_severity(["low", "high", "moderate"]) == "high"
        assert max_severity([]) == "info"


class TestBuildQueue:
    """Tests for queue building."""

    def test_vulnerability_supersedes_outdated_entry(self):
        """An outdated package with an advisory appears once, as a vulnerability."""
        cache = make_cache(
            "web",
            outdated=[outdated("lodash", "4.17.20", "4.17.21")],
            vulnerabilities=[VulnerabilityInfo(
                "lodash", "high", title="Prototype Pollution", fix_exists=True,
                fix_version="4.17.21", current_version="4.17.20",
            )],
        )

        queue, summary = build_queue([cache])

        assert len(queue) == 1
        item = queue[0]
        assert item.type == "vulnerability"
        assert item.priority == 2
        assert item.target_version == "4.17.21"
        assert item.update_type == "patch"
        assert item.fix_available is True
        assert summary == PatchSummary(high=1)

    def test_multiple_advisories_grouped(self):
        cache = make_cache("web", vulnerabilities=[
            VulnerabilityInfo("axios", "moderate", title="CSRF", fix_exists=True,
                              fix_version="0.21.2", cves=("CVE-2023-45857",),
                              url="https://example.com/a"),
            VulnerabilityInfo("axios", "high", title="SSRF", fix_exists=True,
                              fix_version="0.21.1", cves=("CVE-2021-3749", "CVE-2023-45857"),
                              url="https://example.com/b"),
        ])

        [item], summary = build_queue([cache])

        assert item.severity == "high"
        assert item.priority == 2
        assert item.title == "2 vulnerabilities: CSRF; SSRF"
        assert item.cves == ("CVE-2023-45857", "CVE-2021-3749")
        assert item.urls == ("https://example.com/a", "https://example.com/b")
        assert item.url == "https://example.com/a"
        assert item.target_version == "0.21.2"
        assert summary.high == 1
        assert summary.moderate == 0

    def test_group_unfixable_when_any_advisory_is(self):
        cache = make_cache("web", vulnerabilities=[
            VulnerabilityInfo("qs", "low", fix_exists=True, fix_version="6.10.3"),
            VulnerabilityInfo("qs", "moderate", fix_exists=False),
        ])

        [item], _ = build_queue([cache])

        assert item.fix_available is False

    def test_transitive_metadata_carried(self):
        cache = make_cache("web", vulnerabilities=[
            VulnerabilityInfo("qs", "moderate", fix_exists=True, breaking_fix=True,
                              fix_version="5.0.0", is_direct=False, via=("express",),
                              parent_package="express", parent_at_latest=True),
        ])

        [item], _ = build_queue([cache])

        assert item.is_direct is False
        assert item.parent_package == "express"
        assert item.parent_at_latest is True
        assert item.breaking_fix is True
        assert item.fix_available is False

    def test_ordering(self):
        cache = make_cache(
            "web",
            outdated=[
                outdated("left-pad", "1.0.0", "1.0.1"),
                outdated("react", "17.0.2", "18.2.0"),
                outdated("vite", "5.0.0", "5.1.0"),
            ],
            vulnerabilities=[
                VulnerabilityInfo("minimist", "low", fix_exists=True),
                VulnerabilityInfo("shell-quote", "critical", fix_exists=True),
            ],
        )

        queue, summary = build_queue([cache])

        assert [item.package for item in queue] == [
            "shell-quote", "minimist", "react", "vite", "left-pad",
        ]
        assert [item.priority for item in queue] == [1, 4, 10, 20, 30]
        assert summary == PatchSummary(critical=1, outdated_major=1, outdated_minor=1, outdated_patch=1)

    def test_every_vulnerability_before_every_outdated(self):
        caches = [
            make_cache("a", outdated=[outdated("react", "17.0.0", "18.0.0")]),
            make_cache("b", vulnerabilities=[VulnerabilityInfo("x", "info")]),
        ]

        queue, _ = build_queue(caches)

        assert [item.type for item in queue] == ["vulnerability", "outdated"]

    def test_equal_priority_keeps_project_order(self):
        caches = [
            make_cache("a", outdated=[outdated("react", "17.0.0", "18.0.0")]),
            make_cache("b", outdated=[outdated("react", "16.0.0", "18.0.0")]),
        ]

        queue, _ = build_queue(caches)

        assert [item.project_id for item in queue] == ["a", "b"]

    def test_duplicate_outdated_names_collapse(self):
        cache = make_cache("web", outdated=[
            outdated("react", "17.0.2", "18.2.0"),
            outdated("react", "17.0.2", "18.2.0"),
        ])

        queue, summary = build_queue([cache])

        assert len(queue) == 1
        assert summary.outdated_major == 1

    def test_same_package_in_two_projects_is_two_items(self):
        caches = [
            make_cache("a", outdated=[outdated("react", "17.0.2", "18.2.0")]),
            make_cache("b", outdated=[outdated("react", "17.0.2", "18.2.0")]),
        ]

        queue, _ = build_queue(caches)

        assert len(queue) == 2

    def test_held_packages_flagged(self):
        cache = make_cache("web", outdated=[
            outdated("react", "17.0.2", "18.2.0"),
            outdated("vite", "5.0.0", "5.1.0"),
        ])

        queue, _ = build_queue([cache], holds={"web": ["react"]})
        held = {item.package: item.is_held for item in queue}

        assert held == {"react": True, "vite": False}
        assert [item.package for item in select_actionable(queue)] == ["vite"]

    def test_held_package_still_reported(self):
        """A held package that is outdated and vulnerable stays visible, flagged as held."""
        cache = make_cache(
            "web",
            outdated=[outdated("foo", "1.0.0", "1.0.5")],
            vulnerabilities=[VulnerabilityInfo("foo", "high", fix_exists=True, fix_version="1.0.5")],
        )

        queue, summary = build_queue([cache], holds={"web": ("foo",)})

        assert len(queue) == 1
        assert queue[0].type == "vulnerability"
        assert queue[0].is_held is True
        assert summary.high == 1
        assert select_actionable(queue) == []

    def test_dedup_and_ordering_invariants(self):
        caches = [
            make_cache(
                "a",
                outdated=[
                    outdated("lodash", "4.17.20", "4.17.21"),
                    outdated("react", "17.0.2", "18.2.0"),
                    outdated("vite", "5.0.0", "5.1.0"),
                    outdated("vite", "5.0.0", "5.1.0"),
                ],
                vulnerabilities=[
                    VulnerabilityInfo("lodash", "high", fix_exists=True),
                    VulnerabilityInfo("lodash", "low", fix_exists=True),
                    VulnerabilityInfo("qs", "moderate", is_direct=False),
                ],
            ),
            make_cache(
                "b",
                outdated=[outdated("qs", "6.7.0", "6.11.0"), outdated("react", "16.0.0", "18.2.0")],
                vulnerabilities=[VulnerabilityInfo("qs", "critical", fix_exists=True)],
            ),
        ]

        queue, _ = build_queue(caches)

        pairs = [(item.project_id, item.package) for item in queue]
        assert len(pairs) == len(set(pairs))
        vulnerable = {(i.project_id, i.package) for i in queue if i.type == "vulnerability"}
        outdated_pairs = {(i.project_id, i.package) for i in queue if i.type == "outdated"}
        assert not vulnerable & outdated_pairs
        assert all(
            queue[i].priority <= queue[i + 1].priority for i in range(len(queue) - 1)
        )

    def test_project_names(self):
        cache = make_cache("web", outdated=[outdated("react", "17.0.2", "18.2.0")])

        [named], _ = build_queue([cache], project_names={"web": "Storefront"})
        [unnamed], _ = build_queue([cache])

        assert named.project_name == "Storefront"
        assert unnamed.project_name == "web"

    def test_idempotent(self):
        caches = [make_cache(
            "web",
            outdated=[outdated("react", "17.0.2", "18.2.0")],
            vulnerabilities=[VulnerabilityInfo("lodash", "high", fix_exists=True, fix_version="4.17.21")],
        )]

        assert build_queue(caches) == build_queue(caches)

    def test_empty(self):
        queue, summary = build_queue([])
        assert queue == []
        assert summary == PatchSummary()


class TestSelectActionable:
    """Tests for bulk-update selection."""

    def test_excludes_unfixable(self):
        cache = make_cache("web", vulnerabilities=[
            VulnerabilityInfo("qs", "high", fix_exists=True, is_direct=False, parent_package="express"),
            VulnerabilityInfo("lodash", "high", fix_exists=True, fix_version="4.17.21"),
        ])

        queue, _ = build_queue([cache])

        assert [item.package for item in select_actionable(queue)] == ["lodash"]
