"""Audit trail domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4


def _utc_now() -> datetime:
    return datetime.now(UTC)


class AuditAction(str, Enum):
    POST_ENTRY = "POST_ENTRY"
    CREATE_AJE = "CREATE_AJE"
    LOCK_PERIOD = "LOCK_PERIOD"
    EDIT_ATTEMPT = "EDIT_ATTEMPT"
    PERIOD_CROSSING = "PERIOD_CROSSING"
    INVOICE_CREATE = "INVOICE_CREATE"
    INVOICE_PAYMENT = "INVOICE_PAYMENT"
    ACCOUNT_ARCHIVE = "ACCOUNT_ARCHIVE"


@dataclass(frozen=True)
class AuditEvent:
    action: AuditAction
    details: str
    user: str
    id: str = field(default_factory=lambda: uuid4().hex)
    timestamp: datetime = field(default_factory=_utc_now)
