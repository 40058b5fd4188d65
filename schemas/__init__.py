from .identity import (
    NormalizedIdentity,
    CompanyMatch,
    ContactMatch,
    MatchResult,
)
from .resolution import (
    RecordOutcome,
    RecordResult,
    RunReport,
    RollbackReport,
)
from .review import (
    ReviewReason,
    ReviewStatus,
    ReviewCaseView,
)
from .audit import (
    AuditIssue,
    AuditIssueType,
    ConstraintGateResult,
)

__all__ = [
    "NormalizedIdentity", "CompanyMatch", "ContactMatch", "MatchResult",
    "RecordOutcome", "RecordResult", "RunReport", "RollbackReport",
    "ReviewReason", "ReviewStatus", "ReviewCaseView",
    "AuditIssue", "AuditIssueType", "ConstraintGateResult",
]
