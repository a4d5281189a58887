"""Reviewer utilities for the cycle clock, mission submissions and reputation."""
from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path
from typing import List, Optional

from ..config import get_settings
from ..errors import HeroCycleError
from ..models import parse_flag
from ..service import MissionService


def _load_service(state_db: Optional[Path]) -> MissionService:
    settings = get_settings()
    return MissionService(state_db or settings.store_path, settings=settings)


def cmd_cycle(args: argparse.Namespace) -> None:
    service = _load_service(args.state_db)
    if args.action == "advance":
        result = service.advance_cycle()
        print(f"Advanced to cycle {result.new_cycle}. Started: {result.new_start.isoformat()}")
        return
    if args.action == "init":
        state = service.cycle.initialise(args.cycle)
        print(f"Cycle {state.current_cycle} is ready ({service.current_cycle_id()}).")
        return

    overview = service.overview()
    if args.json:
        print(json.dumps(overview, indent=2))
        return
    print(f"Current cycle: {overview['current_cycle']} ({overview['cycle_id']})")
    print(f"Cycle start: {overview['cycle_start'] or 'not set'}")
    print(
        f"Submissions: {overview['total_submissions']} total, "
        f"{overview['pending_submissions']} awaiting review"
    )


def cmd_submissions(args: argparse.Namespace) -> None:
    service = _load_service(args.state_db)
    groups = service.review_submissions(args.mission, pending_only=args.pending)
    if args.json:
        print(json.dumps(groups, indent=2))
        return
    if not groups:
        if args.pending:
            print("No submissions awaiting review.")
        elif args.mission:
            print(f"No submissions for mission {args.mission}.")
        else:
            print("No mission submissions yet.")
        return

    lines: List[str] = []
    for group in groups:
        lines.append(f"{group['title']} [{group['mission_id']}]")
        for item in group["submissions"]:
            status = "resolved" if item["resolved"] else "pending"
            override = f", override {item['dm_override']}" if item["dm_override"] else ""
            answers = ", ".join(item["answers"]) or "none"
            lines.append(
                f"  - {item['submission_id']}: {item['hero_name'] or item['username']} "
                f"({status}) answers {answers}; auto bucket {item['outcome_bucket']}{override}"
            )
    print("\n".join(lines))


def cmd_resolve(args: argparse.Namespace) -> None:
    service = _load_service(args.state_db)
    resolved = parse_flag(args.resolved) if args.resolved is not None else None
    submission = service.resolve_submission(
        args.submission_id,
        dm_override=args.override,
        resolved=resolved,
    )
    override = submission.dm_override.value if submission.dm_override else "none"
    print(
        f"Submission {submission.submission_id}: override {override}, "
        f"resolved {'yes' if submission.resolved else 'no'}, "
        f"effective bucket {submission.effective_bucket.value}"
    )


def cmd_reputation(args: argparse.Namespace) -> None:
    service = _load_service(args.state_db)
    if args.action == "set":
        if not (args.hero and args.faction and args.level):
            raise SystemExit("reputation set requires --hero, --faction and --level")
        entry = service.set_reputation(args.hero, args.faction, args.level)
        print(f"{entry.hero_name} / {entry.faction_name}: {entry.level.value}")
        return

    added = service.sync_reputation()
    if args.json:
        print(json.dumps([asdict(entry) for entry in added], indent=2, default=str))
        return
    if not added:
        print("All reputation rows are present. Nothing to add.")
        return
    print(f"Added {len(added)} missing reputation rows (all set to neutral).")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Review missions and manage the cycle clock.")
    parser.add_argument(
        "--state-db",
        type=Path,
        default=None,
        help="Path to the row store SQLite database (default: settings store.path).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    cycle = subparsers.add_parser("cycle", help="Show, initialise or advance the cycle.")
    cycle.add_argument("action", choices=["show", "advance", "init"], nargs="?", default="show")
    cycle.add_argument("--cycle", type=int, default=None, help="First cycle number for init.")
    cycle.add_argument("--json", action="store_true", help="Output JSON for automation.")
    cycle.set_defaults(func=cmd_cycle)

    submissions = subparsers.add_parser("submissions", help="List submissions grouped by mission.")
    submissions.add_argument("--mission", type=str, help="Only show this mission.")
    submissions.add_argument("--pending", action="store_true", help="Hide resolved submissions.")
    submissions.add_argument("--json", action="store_true", help="Output JSON for automation.")
    submissions.set_defaults(func=cmd_submissions)

    resolve = subparsers.add_parser("resolve", help="Set the override and resolved flag.")
    resolve.add_argument("submission_id")
    resolve.add_argument(
        "--override",
        type=str,
        default=None,
        help="Override bucket a, b or c; pass an empty string to clear it.",
    )
    resolve.add_argument("--resolved", choices=["yes", "no"], default=None)
    resolve.set_defaults(func=cmd_resolve)

    reputation = subparsers.add_parser("reputation", help="Fill or edit the reputation matrix.")
    reputation.add_argument("action", choices=["sync", "set"])
    reputation.add_argument("--hero", type=str)
    reputation.add_argument("--faction", type=str)
    reputation.add_argument("--level", type=str)
    reputation.add_argument("--json", action="store_true", help="Output JSON for automation.")
    reputation.set_defaults(func=cmd_reputation)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO)
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        args.func(args)
    except HeroCycleError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
