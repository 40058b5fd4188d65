"""Export the offline invariant audit and review queue as Markdown.

Run before the tighten-constraints gate, or on a schedule for monitoring:

    uv run python scripts/export_audit_report.py

AUDIT_REPORT_DIR controls the output directory (default: ./audit_reports).
"""
import asyncio
import logging
import os
import sys
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path

# Resolve project root so imports work when run from any cwd
_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(_ROOT))

from db.connection import dispose_engine, get_db
from resolution.enforcer import validate_all_entities
from resolution.review import list_review_cases
from schemas.audit import AuditIssue
from schemas.review import ReviewCaseView

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
logger = logging.getLogger(__name__)

REPORT_DIR = Path(os.environ.get("AUDIT_REPORT_DIR", str(_ROOT / "audit_reports")))


def render_audit(issues: list[AuditIssue], generated_at: datetime) -> str:
    counts = Counter(i.issue for i in issues)
    lines = [
        "# Deal Reference Audit",
        f"Generated: {generated_at.isoformat()}",
        "",
        f"Total violations: {len(issues)}",
    ]
    for issue_type in ("missing_company", "missing_contact", "contact_company_mismatch"):
        lines.append(f"- {issue_type}: {counts.get(issue_type, 0)}")
    lines.append("")

    if issues:
        lines.append("| Deal | Issue | Company | Contact | Contact's Company |")
        lines.append("|---|---|---|---|---|")
        for i in issues:
            lines.append(
                f"| {i.source_record_id} | {i.issue} | {i.company_id or ''} "
                f"| {i.contact_id or ''} | {i.contact_company_id or ''} |"
            )
        lines.append("")
    return "\n".join(lines)


def render_review_queue(cases: list[ReviewCaseView]) -> str:
    lines = ["# Pending Review Cases", ""]
    for case in cases:
        lines.append(f"## {case.reason.replace('_', ' ')} (deal {case.source_record_id})")
        lines.append(f"Case: {case.id} | Flagged: {case.flagged_at}")
        lines.append(
            f"Original: company={case.original_company or '-'} "
            f"contact={case.original_contact_name or '-'} "
            f"email={case.original_contact_email or '-'}"
        )
        if case.suggested_company_id or case.suggested_contact_id:
            lines.append(
                f"Suggested: company={case.suggested_company_id or '-'} "
                f"contact={case.suggested_contact_id or '-'}"
            )
        if case.error_detail:
            lines.append(f"Detail: {case.error_detail}")
        lines.append("")
    return "\n".join(lines)


async def main() -> None:
    REPORT_DIR.mkdir(parents=True, exist_ok=True)
    logger.info("Writing audit report to %s ...", REPORT_DIR.resolve())

    async with get_db() as session:
        issues = await validate_all_entities(session)
        cases = await list_review_cases(session, status="pending")

    now = datetime.now(timezone.utc)
    (REPORT_DIR / "audit.md").write_text(render_audit(issues, now), encoding="utf-8")
    (REPORT_DIR / "review_queue.md").write_text(render_review_queue(cases), encoding="utf-8")
    logger.info("  audit.md: %d violations", len(issues))
    logger.info("  review_queue.md: %d pending cases", len(cases))
    await dispose_engine()


if __name__ == "__main__":
    asyncio.run(main())
