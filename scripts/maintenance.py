#!/usr/bin/env python3
"""
Shaadi Mantrana — Maintenance CLI

Data repair and clean-up jobs.  Subcommands:

  reconcile         — Repair mutual pairs whose flags, connection or match
                      rows disagree with the like edges.
  purge-likes       — Delete unanswered likes older than LIKE_RETENTION_DAYS.
  purge-acks        — Delete buffered toast acknowledgements older than
                      TOAST_ACK_RETENTION_HOURS.
  fix-completeness  — Clamp profile completeness values into 0–100.
  expire-invites    — Mark overdue invitations as expired.
  stats             — Print row counts for the match tables.

Usage examples
--------------
  python scripts/maintenance.py reconcile
  python scripts/maintenance.py purge-likes --dry-run
  python scripts/maintenance.py stats --json
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from datetime import timedelta

from sqlalchemy import func, select

from mantrana.config import get_settings
from mantrana.database import dispose_engine, get_session_factory
from mantrana.models.like import DailyLike
from mantrana.services.access_service import AccessService
from mantrana.services.reconciliation_service import ReconciliationService
from mantrana.utils.clock import utcnow


def _print_report(title: str, report: dict) -> None:
    print(f"\n{'=' * 60}")
    print(f"  {title}")
    print(f"{'=' * 60}")
    width = max(len(k) for k in report) + 2
    for key, value in report.items():
        print(f"  {key.replace('_', ' ').capitalize() + ':':<{width}} {value}")
    print(f"{'=' * 60}\n")


async def cmd_reconcile(args: argparse.Namespace) -> None:
    report = await ReconciliationService(attempts=args.attempts).reconcile()
    _print_report("Reconciliation", report)
    if report["pairs_failed"]:
        sys.exit(2)


async def cmd_purge_likes(args: argparse.Namespace) -> None:
    settings = get_settings()
    if args.dry_run:
        cutoff = utcnow() - timedelta(days=settings.LIKE_RETENTION_DAYS)
        async with get_session_factory()() as session:
            count = await session.scalar(
                select(func.count(DailyLike.id)).where(
                    DailyLike.is_mutual_match.is_(False),
                    DailyLike.like_date < cutoff,
                )
            )
        _print_report(
            "Purge stale likes (dry run)",
            {"retention_days": settings.LIKE_RETENTION_DAYS, "would_delete": count or 0},
        )
        return

    deleted = await ReconciliationService().purge_stale_likes()
    _print_report(
        "Purge stale likes",
        {"retention_days": settings.LIKE_RETENTION_DAYS, "deleted": deleted},
    )


async def cmd_purge_acks(args: argparse.Namespace) -> None:
    settings = get_settings()
    deleted = await ReconciliationService().purge_toast_acks()
    _print_report(
        "Purge toast acknowledgements",
        {"retention_hours": settings.TOAST_ACK_RETENTION_HOURS, "deleted": deleted},
    )


async def cmd_fix_completeness(args: argparse.Namespace) -> None:
    fixed = await ReconciliationService().clamp_profile_completeness()
    _print_report("Profile completeness", {"users_fixed": fixed})


async def cmd_expire_invites(args: argparse.Namespace) -> None:
    async with get_session_factory()() as session:
        async with session.begin():
            expired = await AccessService().expire_invitations(session)
    _print_report("Invitations", {"expired": expired})


async def cmd_stats(args: argparse.Namespace) -> None:
    stats = await ReconciliationService().stats()
    if args.json:
        print(json.dumps(stats, indent=2))
    else:
        _print_report("Match tables", stats)


_COMMANDS = {
    "reconcile": cmd_reconcile,
    "purge-likes": cmd_purge_likes,
    "purge-acks": cmd_purge_acks,
    "fix-completeness": cmd_fix_completeness,
    "expire-invites": cmd_expire_invites,
    "stats": cmd_stats,
}


async def _run(args: argparse.Namespace) -> None:
    try:
        await _COMMANDS[args.command](args)
    finally:
        await dispose_engine()


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Shaadi Mantrana maintenance jobs.",
    )
    subparsers = parser.add_subparsers(dest="command")

    # ── reconcile ─────────────────────────────────────────────────────
    reconcile_parser = subparsers.add_parser(
        "reconcile",
        help="Repair inconsistent mutual-match records.",
    )
    reconcile_parser.add_argument(
        "--attempts",
        type=int,
        default=3,
        help="Retries per pair on transient database errors (default: 3).",
    )

    # ── purge-likes ───────────────────────────────────────────────────
    purge_parser = subparsers.add_parser(
        "purge-likes",
        help="Delete unanswered likes past the retention window.",
    )
    purge_parser.add_argument(
        "--dry-run",
        action="store_true",
        default=False,
        help="Only count what would be deleted.",
    )

    subparsers.add_parser(
        "purge-acks",
        help="Delete toast acknowledgements whose connection never appeared.",
    )
    subparsers.add_parser(
        "fix-completeness",
        help="Clamp profile completeness into 0-100.",
    )
    subparsers.add_parser(
        "expire-invites",
        help="Expire overdue invitations.",
    )

    # ── stats ─────────────────────────────────────────────────────────
    stats_parser = subparsers.add_parser(
        "stats",
        help="Print row counts for the match tables.",
    )
    stats_parser.add_argument(
        "--json",
        action="store_true",
        default=False,
        help="Output raw JSON.",
    )

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    asyncio.run(_run(args))


if __name__ == "__main__":
    main()
