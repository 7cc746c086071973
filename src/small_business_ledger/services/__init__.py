from small_business_ledger.services.accounts import DEFAULT_CHART, AccountRegistry
from small_business_ledger.services.adjustments import (
    AdjustmentWorkflowImpl,
    build_reversal,
    plan_edit,
)
from small_business_ledger.services.audit import AuditLog
from small_business_ledger.services.identity import IdentityProvider, StaticIdentity
from small_business_ledger.services.interfaces import (
    AdjustmentWorkflow,
    AssignmentSuggestion,
    EditPlan,
    EditResult,
    InvoiceService,
    LedgerService,
    PeriodLockManager,
    ReasonRequired,
    ReportingService,
    StagingService,
    TypeMismatch,
)
from small_business_ledger.services.invoices import InvoiceServiceImpl
from small_business_ledger.services.ledger import LedgerServiceImpl, sanitize_lines
from small_business_ledger.services.period_lock import PeriodLockManagerImpl
from small_business_ledger.services.reporting import (
    ReportingServiceImpl,
    financial_date_range,
)
from small_business_ledger.services.staging import (
    StagingServiceImpl,
    stage_to_lines,
    validate_staged,
)

__all__ = [
    "AccountRegistry",
    "AdjustmentWorkflow",
    "AdjustmentWorkflowImpl",
    "AssignmentSuggestion",
    "AuditLog",
    "DEFAULT_CHART",
    "EditPlan",
    "EditResult",
    "IdentityProvider",
    "InvoiceService",
    "InvoiceServiceImpl",
    "LedgerService",
    "LedgerServiceImpl",
    "PeriodLockManager",
    "PeriodLockManagerImpl",
    "ReasonRequired",
    "ReportingService",
    "ReportingServiceImpl",
    "StagingService",
    "StagingServiceImpl",
    "StaticIdentity",
    "TypeMismatch",
    "build_reversal",
    "financial_date_range",
    "plan_edit",
    "sanitize_lines",
    "stage_to_lines",
    "validate_staged",
]
