"""
Audit Models for Pocket Ledger

Every balance mutation and every derived-data rebuild leaves an audit
event. This provides:
1. Traceability of which change notification moved which balance
2. Operator signals for data defects (unknown types, truncated history)
3. The raw material to replay or recompute a user's ledger

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Grouped by the component that emits them.
    """
    # Ledger event processing
    EVENT_APPLIED = "event_applied"
    EVENT_DUPLICATE = "event_duplicate"
    EVENT_CONFLICT_RETRY = "event_conflict_retry"
    EVENT_APPLY_FAILED = "event_apply_failed"
    UNKNOWN_TRANSACTION_TYPE = "unknown_transaction_type"
    PAYMENT_LINK_CHANGED = "payment_link_changed"
    BALANCES_RECOMPUTED = "balances_recomputed"

    # Net-worth history
    HISTORY_REBUILT = "history_rebuilt"
    HISTORY_SKIPPED = "history_skipped"
    HISTORY_TRUNCATED = "history_truncated"

    # Billing
    BILLING_RULE_MISSING = "billing_rule_missing"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


def _jsonable(details: dict[str, Any]) -> dict[str, Any]:
    """Decimals are logged as strings so no precision is lost."""
    out = {}
    for key, value in details.items():
        if isinstance(value, Decimal):
            out[key] = str(value)
        elif isinstance(value, dict):
            out[key] = _jsonable(value)
        else:
            out[key] = value
    return out


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique audit event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    user_id: Optional[str] = Field(
        default=None,
        description="Ledger owner"
    )
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'change_event', 'history')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one change notification end to end)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "user_id": self.user_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": _jsonable(self.details),
            "error_message": self.error_message,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, user_id, entity_type,
         entity_id, correlation_id, description, details_json, error_message]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.user_id or "",
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(_jsonable(self.details)) if self.details else "",
            self.error_message or "",
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.event_applied(user_id, event_id, deltas)
        event = AuditEventBuilder.history_truncated(user_id, cap, oldest)
    """

    @staticmethod
    def event_applied(
        user_id: str,
        event_id: str,
        transaction_id: Optional[str],
        deltas: dict[str, Decimal],
        attempts: int,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EVENT_APPLIED,
            user_id=user_id,
            entity_type="change_event",
            entity_id=event_id,
            correlation_id=correlation_id,
            description=f"Applied change to {len(deltas)} account(s)",
            details={
                "transaction_id": transaction_id,
                "deltas": deltas,
                "attempts": attempts,
            },
        )

    @staticmethod
    def event_duplicate(
        user_id: Optional[str],
        event_id: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EVENT_DUPLICATE,
            severity=AuditSeverity.DEBUG,
            user_id=user_id,
            entity_type="change_event",
            entity_id=event_id,
            correlation_id=correlation_id,
            description="Duplicate delivery ignored",
        )

    @staticmethod
    def event_conflict_retry(
        user_id: str,
        event_id: str,
        attempt: int,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EVENT_CONFLICT_RETRY,
            severity=AuditSeverity.DEBUG,
            user_id=user_id,
            entity_type="change_event",
            entity_id=event_id,
            correlation_id=correlation_id,
            description=f"Concurrent balance update, retrying (attempt {attempt})",
            details={"attempt": attempt},
        )

    @staticmethod
    def event_apply_failed(
        user_id: Optional[str],
        event_id: str,
        attempts: int,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EVENT_APPLY_FAILED,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            entity_type="change_event",
            entity_id=event_id,
            correlation_id=correlation_id,
            description=f"Gave up applying change after {attempts} attempt(s)",
            details={"attempts": attempts},
            error_message=error_message,
        )

    @staticmethod
    def unknown_transaction_type(
        user_id: str,
        transaction_id: str,
        transaction_type: Optional[str],
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.UNKNOWN_TRANSACTION_TYPE,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction type '{transaction_type}' has no balance effect",
            details={"type": transaction_type},
        )

    @staticmethod
    def payment_link_changed(
        user_id: str,
        transaction_id: str,
        changed_fields: list[str],
        card_id: Optional[str],
        closing_date: Optional[str],
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PAYMENT_LINK_CHANGED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description="Edited bill payment may no longer settle its statement",
            details={
                "changed_fields": changed_fields,
                "card_id": card_id,
                "closing_date": closing_date,
            },
        )

    @staticmethod
    def balances_recomputed(
        user_id: str,
        differences: dict[str, Decimal],
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCES_RECOMPUTED,
            severity=AuditSeverity.WARNING if differences else AuditSeverity.INFO,
            user_id=user_id,
            entity_type="balances",
            entity_id=user_id,
            correlation_id=correlation_id,
            description=f"Balances recomputed, {len(differences)} account(s) drifted",
            details={"differences": differences},
        )

    @staticmethod
    def history_rebuilt(
        user_id: str,
        months: int,
        oldest_month: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.HISTORY_REBUILT,
            user_id=user_id,
            entity_type="history",
            entity_id=user_id,
            correlation_id=correlation_id,
            description=f"Net-worth history rebuilt: {months} month(s) from {oldest_month}",
            details={"months": months, "oldest_month": oldest_month},
        )

    @staticmethod
    def history_skipped(
        user_id: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.HISTORY_SKIPPED,
            severity=AuditSeverity.DEBUG,
            user_id=user_id,
            entity_type="history",
            entity_id=user_id,
            correlation_id=correlation_id,
            description="No transactions, history not written",
        )

    @staticmethod
    def history_truncated(
        user_id: str,
        max_months: int,
        oldest_transaction_month: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.HISTORY_TRUNCATED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="history",
            entity_id=user_id,
            correlation_id=correlation_id,
            description=f"History stopped at the {max_months}-month cap",
            details={
                "max_months": max_months,
                "oldest_transaction_month": oldest_transaction_month,
            },
        )

    @staticmethod
    def billing_rule_missing(
        user_id: str,
        account_id: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BILLING_RULE_MISSING,
            severity=AuditSeverity.DEBUG,
            user_id=user_id,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description="Liability account has no billing rule, skipped",
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        user_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
