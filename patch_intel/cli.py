"""
Command line interface for the dependency patch engine.

Usage:
    patch-intel queue            # Remediation queue (cached scans where fresh)
    patch-intel scan --force     # Sequential forced rescan of every project
    patch-intel state            # Per-project counts from the last scans
    patch-intel history          # Applied updates, newest first
    patch-intel invalidate ID    # Drop a project's cached scan
"""

from __future__ import annotations

import argparse
import json
import os
import signal
import sys

from .config import Config, load_config, validate_config
from .engine import PatchEngine
from .logging_config import get_logger, setup_logging
from .package_managers import detect_package_manager
from .priority_queue import select_actionable
from .render import format_summary, render_queue


def _select_projects(config: Config, project_ids: list[str]):
    if not project_ids:
        return list(config.projects)
    selected = []
    for project_id in project_ids:
        project = config.get_project(project_id)
        if project is None:
            raise ValueError(f"Unknown project: {project_id}")
        selected.append(project)
    return selected


def _print_queue(engine: PatchEngine, result, as_json: bool, actionable_only: bool) -> None:
    queue, summary = engine.build_queue(result.caches)
    if actionable_only:
        queue = select_actionable(queue)
    state = engine.read_patch_state()

    if as_json:
        print(json.dumps({
            "queue": [item.to_dict() for item in queue],
            "summary": summary.to_dict(),
            "last_scan": state.last_full_scan,
            "project_count": len(engine.projects),
            "scanned_count": len(result.caches),
            "failed_projects": list(result.failed_projects),
        }, indent=2, ensure_ascii=False))
        return

    for line in render_queue(queue):
        print(line)
    print(f"\n{format_summary(summary, {'last_scan': state.last_full_scan})}", file=sys.stderr)
    if result.failed_projects:
        print(f"Failed: {', '.join(result.failed_projects)}", file=sys.stderr)


def cmd_queue(engine: PatchEngine, args: argparse.Namespace) -> int:
    """Show the remediation queue, scanning only stale projects."""
    projects = _select_projects(engine.config, args.projects)
    result = engine.fetch_all(projects)
    _print_queue(engine, result, args.json, args.actionable)
    return 0


def cmd_scan(engine: PatchEngine, args: argparse.Namespace) -> int:
    """Scan projects; ``--force`` ignores live caches and scans sequentially."""
    projects = _select_projects(engine.config, args.projects)
    if args.force:
        result = engine.scan_all(projects)
    else:
        result = engine.fetch_all(projects)
    _print_queue(engine, result, args.json, args.actionable)
    return 1 if result.failed_projects else 0


def cmd_state(engine: PatchEngine, args: argparse.Namespace) -> int:
    state = engine.read_patch_state()
    if args.json:
        print(json.dumps(state.to_dict(), indent=2))
        return 0

    print(f"Last full scan: {state.last_full_scan or 'never'}")
    for project in engine.projects:
        counts = state.projects.get(project.id)
        if counts is None:
            print(f"  {project.name}: unscanned")
            continue
        print(
            f"  {project.name}: {counts.outdated_count} outdated, "
            f"{counts.vuln_count} vulnerable ({counts.critical_count} critical/high), "
            f"checked {counts.last_checked}"
        )
    return 0


def cmd_history(engine: PatchEngine, args: argparse.Namespace) -> int:
    entries, total = engine.read_patch_history(project_id=args.project, limit=args.limit)
    if args.json:
        print(json.dumps({
            "updates": [entry.to_dict() for entry in entries],
            "total": total,
        }, indent=2, ensure_ascii=False))
        return 0

    for entry in entries:
        status = "ok" if entry.success else "FAILED"
        print(
            f"{entry.timestamp}  {entry.project_id}  {entry.package} "
            f"{entry.from_version} → {entry.to_version} ({entry.update_type}, {entry.trigger}) {status}"
        )
    print(f"\n{len(entries)} of {total} update(s)", file=sys.stderr)
    return 0


def cmd_invalidate(engine: PatchEngine, args: argparse.Namespace) -> int:
    for project_id in args.projects:
        engine.invalidate_project_cache(project_id)
    return 0


def cmd_doctor(engine: PatchEngine, args: argparse.Namespace) -> int:
    """Report detected package managers and configuration problems."""
    for warning in validate_config(engine.config):
        print(f"warning: {warning}", file=sys.stderr)

    for project in engine.projects:
        pm = detect_package_manager(project.path)
        if pm is None:
            print(f"{project.id}: no lockfile")
            continue
        available = "available" if pm.is_available() else "NOT INSTALLED"
        print(f"{project.id}: {pm.display_name} ({pm.lockfile}), {available}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="patch-intel",
        description="Outdated dependency and vulnerability queue for local projects",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", help="Path to a configuration file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")
    parser.add_argument("--log-file", help="Also write logs to this file")

    subparsers = parser.add_subparsers(dest="command")

    for name, handler, help_text in (
        ("queue", cmd_queue, "Show the remediation queue"),
        ("scan", cmd_scan, "Scan projects for outdated and vulnerable packages"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("projects", nargs="*", help="Project ids (default: all)")
        sub.add_argument("--json", action="store_true", help="JSON output")
        sub.add_argument(
            "--actionable", action="store_true",
            help="Only items that are not held and can be fixed directly",
        )
        if name == "scan":
            sub.add_argument("--force", action="store_true", help="Ignore cached results")
        sub.set_defaults(handler=handler)

    state = subparsers.add_parser("state", help="Per-project counts from the last scans")
    state.add_argument("--json", action="store_true", help="JSON output")
    state.set_defaults(handler=cmd_state)

    history = subparsers.add_parser("history", help="Applied package updates")
    history.add_argument("--project", help="Only updates for this project id")
    history.add_argument("--limit", type=int, default=50, help="Maximum entries (1-500)")
    history.add_argument("--json", action="store_true", help="JSON output")
    history.set_defaults(handler=cmd_history)

    invalidate = subparsers.add_parser("invalidate", help="Drop cached scans")
    invalidate.add_argument("projects", nargs="+", help="Project ids")
    invalidate.set_defaults(handler=cmd_invalidate)

    doctor = subparsers.add_parser("doctor", help="Check lockfiles and package managers")
    doctor.set_defaults(handler=cmd_doctor)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(verbose=args.verbose, log_file=args.log_file)

    if not getattr(args, "handler", None):
        parser.print_help()
        return 2

    try:
        config = load_config(args.config, verbose=args.verbose)
        engine = PatchEngine(config, verbose=args.verbose)
        return args.handler(engine, args)
    except ValueError as e:
        get_logger().error(str(e))
        return 2


def _sigint_handler(signum, frame):
    """Exit immediately on Ctrl-C, without waiting for scan threads."""
    print("", file=sys.stderr)
    os._exit(130)


def run() -> None:
    """Console script entry point."""
    signal.signal(signal.SIGINT, _sigint_handler)
    try:
        raise SystemExit(main())
    except KeyboardInterrupt:
        print("", file=sys.stderr)
        os._exit(130)


if __name__ == "__main__":
    run()
