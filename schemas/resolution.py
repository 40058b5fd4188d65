"""Batch run result schemas."""
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field


RecordOutcome = Literal["resolved", "review_pending", "creation_failed", "rejected"]


class RecordResult(BaseModel):
    source_record_id: UUID
    outcome: RecordOutcome
    company_id: Optional[UUID] = None
    contact_id: Optional[UUID] = None
    review_case_id: Optional[UUID] = None
    reason: Optional[str] = None
    message: Optional[str] = None

    def diagnostic(self) -> str:
        return f"{self.source_record_id}: {self.outcome} ({self.reason or 'n/a'}) {self.message or ''}".rstrip()


class RunReport(BaseModel):
    run_id: UUID
    success_count: int = 0
    review_count: int = 0
    error_count: int = 0
    diagnostics: List[str] = Field(default_factory=list)

    @classmethod
    def from_results(cls, run_id: UUID, results: List[RecordResult]) -> "RunReport":
        report = cls(run_id=run_id)
        for r in results:
            if r.outcome == "resolved":
                report.success_count += 1
                continue
            if r.outcome == "review_pending":
                report.review_count += 1
            else:
                report.error_count += 1
            report.diagnostics.append(r.diagnostic())
        return report


class RollbackReport(BaseModel):
    rolled_back_run_id: UUID
    records_reset: int
    review_cases_deleted: int
    companies_purged: int = 0
    contacts_purged: int = 0
    rerun: RunReport
