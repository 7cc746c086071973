"""Append-only audit trail for ledger actions."""

from __future__ import annotations

from small_business_ledger.domain.audit import AuditAction, AuditEvent
from small_business_ledger.domain.clock import Clock, SystemClock
from small_business_ledger.logging_config import get_logger
from small_business_ledger.repositories.interfaces import AuditEventRepository
from small_business_ledger.services.identity import IdentityProvider

logger = get_logger(__name__)


class AuditLog:
    def __init__(
        self,
        audit_repo: AuditEventRepository,
        identity: IdentityProvider,
        clock: Clock | None = None,
    ) -> None:
        self._audit_repo = audit_repo
        self._identity = identity
        self._clock = clock or SystemClock()

    def record(self, action: AuditAction, details: str) -> AuditEvent:
        user_id = self._identity.require_user()
        event = AuditEvent(
            action=action,
            details=details,
            user=self._identity.current_user_label(),
            timestamp=self._clock.now(),
        )
        self._audit_repo.add(user_id, event)
        logger.debug("audit_event_recorded", action=action.value, event_id=event.id)
        return event

    def list_recent(self, limit: int = 100) -> list[AuditEvent]:
        user_id = self._identity.require_user()
        return list(self._audit_repo.list_recent(user_id, limit))
