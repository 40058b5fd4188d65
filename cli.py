"""Deal entity resolution — administrative entry point.

Resolves free-text company / contact / email hints on deals into canonical
Company and Contact rows, and exposes the review and audit surfaces.

Usage:
  # Resolve every unresolved deal
  python cli.py run --concurrency 4

  # Undo one run and reprocess exactly what it touched
  python cli.py rollback --run-id 6f1c... [--purge]

  # Work the review queue
  python cli.py reviews list --status pending --search acme
  python cli.py reviews resolve --case-id ... --company-id ... --contact-id ... \
      --resolver-id ops@example.com --notes "Confirmed with owner"
  python cli.py reviews archive --case-id ... --resolver-id ops@example.com

  # Offline invariant audit, then the one-time constraint gate
  python cli.py audit
  python cli.py tighten
"""
import argparse
import asyncio
import dataclasses
import json
import logging
import sys
import uuid

from config import load_settings
from db.connection import dispose_engine, get_db
from resolution import enforcer, orchestrator, review
from resolution.errors import ResolutionError

logger = logging.getLogger(__name__)


def _print_json(payload) -> None:
    print(json.dumps(payload, indent=2, default=str))


async def cmd_run(concurrency: int) -> int:
    settings = load_settings()
    if concurrency:
        settings = dataclasses.replace(settings, concurrency=concurrency)
    report = await orchestrator.run_resolution(settings=settings)
    print(f"\n[Run {report.run_id}]")
    print(f"  Resolved:   {report.success_count}")
    print(f"  For review: {report.review_count}")
    print(f"  Errors:     {report.error_count}")
    for line in report.diagnostics:
        print(f"  - {line}")
    return 0


async def cmd_rollback(run_id: uuid.UUID, purge: bool) -> int:
    report = await orchestrator.rollback_and_rerun(run_id, purge_entities=purge)
    _print_json(report.model_dump(mode="json"))
    return 0


async def cmd_reviews_list(status: str, search: str) -> int:
    async with get_db() as session:
        cases = await review.list_review_cases(
            session, status=None if status == "all" else status, search=search or None
        )
    _print_json([c.model_dump(mode="json") for c in cases])
    print(f"  {len(cases)} review cases")
    return 0


async def cmd_reviews_resolve(args) -> int:
    async with get_db() as session:
        await review.resolve_review_case(
            session,
            args.case_id,
            args.company_id,
            args.contact_id,
            args.resolver_id,
            args.notes or None,
        )
    print(f"  Review case {args.case_id} resolved")
    return 0


async def cmd_reviews_archive(args) -> int:
    async with get_db() as session:
        await review.archive_review_case(
            session, args.case_id, args.resolver_id, args.notes or None
        )
    print(f"  Review case {args.case_id} archived")
    return 0


async def cmd_audit() -> int:
    async with get_db() as session:
        issues = await enforcer.validate_all_entities(session)
    _print_json([i.model_dump(mode="json") for i in issues])
    print(f"  {len(issues)} invariant violations")
    return 1 if issues else 0


async def cmd_tighten() -> int:
    async with get_db() as session:
        result = await enforcer.tighten_constraints(session)
    print(f"  {result.message}")
    return 0 if result.applied else 1


async def _dispatch(args, parser: argparse.ArgumentParser) -> int:
    try:
        if args.command == "run":
            return await cmd_run(args.concurrency)
        if args.command == "rollback":
            return await cmd_rollback(args.run_id, args.purge)
        if args.command == "reviews":
            if args.reviews_command == "list":
                return await cmd_reviews_list(args.status, args.search)
            if args.reviews_command == "resolve":
                return await cmd_reviews_resolve(args)
            if args.reviews_command == "archive":
                return await cmd_reviews_archive(args)
        if args.command == "audit":
            return await cmd_audit()
        if args.command == "tighten":
            return await cmd_tighten()
        parser.print_help()
        return 1
    except ResolutionError as exc:
        print(f"  Error: {exc}", file=sys.stderr)
        return 2
    finally:
        await dispose_engine()


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Deal identity resolution: companies, contacts, review queue"
    )
    parser.add_argument("--log-level", default="INFO")
    sub = parser.add_subparsers(dest="command")

    run = sub.add_parser("run", help="Resolve all unresolved deals")
    run.add_argument(
        "--concurrency", type=int, default=0,
        help="Records processed at once (default: RESOLUTION_CONCURRENCY or 1)",
    )

    rollback = sub.add_parser("rollback", help="Roll back one run and reprocess its records")
    rollback.add_argument("--run-id", type=uuid.UUID, required=True)
    rollback.add_argument(
        "--purge", action="store_true", default=False,
        help="Also delete companies/contacts created by the run that are now unreferenced",
    )

    reviews = sub.add_parser("reviews", help="Review queue operations")
    reviews_sub = reviews.add_subparsers(dest="reviews_command")

    lst = reviews_sub.add_parser("list", help="List review cases")
    lst.add_argument("--status", default="pending", choices=["pending", "resolved", "archived", "all"])
    lst.add_argument("--search", default="", help="Filter on original company/contact/email")

    resolve = reviews_sub.add_parser("resolve", help="Link a case's deal and close the case")
    resolve.add_argument("--case-id", type=uuid.UUID, required=True)
    resolve.add_argument("--company-id", type=uuid.UUID, required=True)
    resolve.add_argument("--contact-id", type=uuid.UUID, required=True)
    resolve.add_argument("--resolver-id", required=True)
    resolve.add_argument("--notes", default="")

    archive = reviews_sub.add_parser("archive", help="Close a case without linking")
    archive.add_argument("--case-id", type=uuid.UUID, required=True)
    archive.add_argument("--resolver-id", required=True)
    archive.add_argument("--notes", default="")

    sub.add_parser("audit", help="Report every current invariant violation")
    sub.add_parser("tighten", help="Make deal references mandatory (requires a clean audit)")

    return parser


if __name__ == "__main__":
    parser = _build_arg_parser()
    args = parser.parse_args()
    logging.basicConfig(level=args.log_level.upper(), format="%(levelname)s %(message)s")
    sys.exit(asyncio.run(_dispatch(args, parser)))
