"""
Audit Logger

DESIGN DECISION: Every balance mutation and every derived-data rebuild is
logged. This provides:
1. Complete traceability from change notification to balance delta
2. Operator signals for data defects the core recovers from silently
3. Debugging capability when a balance drifts

The audit logger:
- Is async to match the storage layer
- Gracefully handles failures (a failed audit write never fails a ledger write)
- Supports correlation IDs to trace related events
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog

from pocket_ledger.models.audit import AuditEvent, AuditEventBuilder
from pocket_ledger.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for operators)
    2. Audit storage (for persistence), when configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("pocket_ledger.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        severity = event.severity.value
        if severity in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif severity == "warning":
            self._logger.warning("audit_event", **log_dict)
        elif severity == "debug":
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_event_applied(
        self,
        user_id: str,
        event_id: str,
        transaction_id: Optional[str],
        deltas: dict[str, Decimal],
        attempts: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a successfully applied change."""
        await self.log(AuditEventBuilder.event_applied(
            user_id=user_id,
            event_id=event_id,
            transaction_id=transaction_id,
            deltas=deltas,
            attempts=attempts,
            correlation_id=correlation_id,
        ))

    async def log_event_duplicate(
        self,
        user_id: Optional[str],
        event_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a duplicate delivery."""
        await self.log(AuditEventBuilder.event_duplicate(
            user_id=user_id,
            event_id=event_id,
            correlation_id=correlation_id,
        ))

    async def log_conflict_retry(
        self,
        user_id: str,
        event_id: str,
        attempt: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an optimistic-concurrency retry."""
        await self.log(AuditEventBuilder.event_conflict_retry(
            user_id=user_id,
            event_id=event_id,
            attempt=attempt,
            correlation_id=correlation_id,
        ))

    async def log_apply_failed(
        self,
        user_id: Optional[str],
        event_id: str,
        attempts: int,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a change that could not be applied within the retry budget."""
        await self.log(AuditEventBuilder.event_apply_failed(
            user_id=user_id,
            event_id=event_id,
            attempts=attempts,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_unknown_type(
        self,
        user_id: str,
        transaction_id: str,
        transaction_type: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a transaction type that has no balance effect."""
        await self.log(AuditEventBuilder.unknown_transaction_type(
            user_id=user_id,
            transaction_id=transaction_id,
            transaction_type=transaction_type,
            correlation_id=correlation_id,
        ))

    async def log_payment_link_changed(
        self,
        user_id: str,
        transaction_id: str,
        changed_fields: list[str],
        card_id: Optional[str],
        closing_date: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an edit to a bill payment that may unsettle its statement."""
        await self.log(AuditEventBuilder.payment_link_changed(
            user_id=user_id,
            transaction_id=transaction_id,
            changed_fields=changed_fields,
            card_id=card_id,
            closing_date=closing_date,
            correlation_id=correlation_id,
        ))

    async def log_balances_recomputed(
        self,
        user_id: str,
        differences: dict[str, Decimal],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a recovery recompute and how far balances had drifted."""
        await self.log(AuditEventBuilder.balances_recomputed(
            user_id=user_id,
            differences=differences,
            correlation_id=correlation_id,
        ))

    async def log_history_rebuilt(
        self,
        user_id: str,
        months: int,
        oldest_month: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a history rebuild."""
        await self.log(AuditEventBuilder.history_rebuilt(
            user_id=user_id,
            months=months,
            oldest_month=oldest_month,
            correlation_id=correlation_id,
        ))

    async def log_history_skipped(
        self,
        user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.history_skipped(
            user_id=user_id,
            correlation_id=correlation_id,
        ))

    async def log_history_truncated(
        self,
        user_id: str,
        max_months: int,
        oldest_transaction_month: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a history walk stopped by the month cap."""
        await self.log(AuditEventBuilder.history_truncated(
            user_id=user_id,
            max_months=max_months,
            oldest_transaction_month=oldest_transaction_month,
            correlation_id=correlation_id,
        ))

    async def log_billing_rule_missing(
        self,
        user_id: str,
        account_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.billing_rule_missing(
            user_id=user_id,
            account_id=account_id,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        user_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            user_id=user_id,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this when a change notification arrives.
    Pass it through the processor and the history rebuild.
    """
    return uuid4()
