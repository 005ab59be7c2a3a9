"""
Ledger Event Processor

Applies transaction change notifications to account balances exactly once.

FLOW (one attempt):
1. Event id already processed?            -> DUPLICATE, no side effects
2. Read the balance document (for its version)
3. Stage reverse(before) + forward(after)  -> net delta
4. Commit delta + processed-event record as ONE atomic unit
5. Stamp "last entry" when a new state exists

A ConflictError in step 4 means another writer got in first; the whole
attempt is repeated from step 1. Attempts are cheap and side-effect free
until the commit, so repeating them is always safe.

DESIGN DECISION: The dedup check in step 1 is only a fast path.
The storage re-checks the event id inside the commit, so two concurrent
deliveries of the same event can never both apply.
"""

from typing import Optional
from uuid import UUID

import structlog
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from pocket_ledger.audit import AuditLogger
from pocket_ledger.config import LedgerSettings, get_settings
from pocket_ledger.ledger.effects import (
    balance_drift,
    is_known_type,
    net_delta,
    payment_link_changes,
    recompute_balances,
)
from pocket_ledger.models.ledger import (
    ApplyResult,
    ApplyStatus,
    ProcessedEvent,
    TransactionChange,
)
from pocket_ledger.services.storage import (
    ConflictError,
    DuplicateError,
    LedgerStorageInterface,
)
from pocket_ledger.utils.dates import utc_now

logger = structlog.get_logger(__name__)


class LedgerError(Exception):
    """Base exception for ledger processing."""
    pass


class EventApplyError(LedgerError):
    """A change could not be applied within the retry budget."""

    def __init__(self, event_id: str, attempts: int, message: str):
        self.event_id = event_id
        self.attempts = attempts
        super().__init__(message)


class LedgerEventProcessor:
    """
    Turns before/after transaction pairs into committed balance deltas.

    The processor holds no state of its own; everything lives in the
    ledger storage, which is what makes retries and redeliveries safe.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger
        self._settings = settings or get_settings().ledger

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self._settings.max_apply_attempts),
            wait=wait_exponential(
                multiplier=self._settings.retry_wait_min_seconds,
                min=self._settings.retry_wait_min_seconds,
                max=self._settings.retry_wait_max_seconds,
            ),
            retry=retry_if_exception_type(ConflictError),
        )

    async def apply(
        self,
        change: TransactionChange,
        correlation_id: Optional[UUID] = None,
        raise_on_failure: bool = False,
    ) -> ApplyResult:
        """
        Apply one change notification.

        Returns:
            ApplyResult with status APPLIED, DUPLICATE or RETRYABLE_FAILURE.
            Storage failures other than conflicts propagate.

        Raises:
            EventApplyError: Retries exhausted and raise_on_failure is set
        """
        user_id = change.user_id
        if user_id is None:
            # Neither side present: nothing to apply and no owner to lock
            logger.warning("empty_change_ignored", event_id=change.event_id)
            return ApplyResult(status=ApplyStatus.APPLIED, event_id=change.event_id, attempts=0)

        result: Optional[ApplyResult] = None
        attempts = 0
        try:
            async for attempt in self._retrying():
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    result = await self._apply_once(change, user_id, attempts, correlation_id)
        except RetryError as e:
            last = e.last_attempt.exception()
            message = f"Balance update kept conflicting: {last}"
            logger.error(
                "change_apply_failed",
                event_id=change.event_id,
                user_id=user_id,
                attempts=attempts,
                error=str(last),
            )
            if self._audit_logger:
                await self._audit_logger.log_apply_failed(
                    user_id=user_id,
                    event_id=change.event_id,
                    attempts=attempts,
                    error_message=message,
                    correlation_id=correlation_id,
                )
            if raise_on_failure:
                raise EventApplyError(change.event_id, attempts, message)
            return ApplyResult(
                status=ApplyStatus.RETRYABLE_FAILURE,
                event_id=change.event_id,
                user_id=user_id,
                attempts=attempts,
                error=message,
            )

        if result.status == ApplyStatus.APPLIED:
            await self._after_commit(change, user_id, result, correlation_id)
        elif self._audit_logger:
            await self._audit_logger.log_event_duplicate(
                user_id=user_id,
                event_id=change.event_id,
                correlation_id=correlation_id,
            )
        return result

    async def _apply_once(
        self,
        change: TransactionChange,
        user_id: str,
        attempt_number: int,
        correlation_id: Optional[UUID],
    ) -> ApplyResult:
        duplicate = ApplyResult(
            status=ApplyStatus.DUPLICATE,
            event_id=change.event_id,
            user_id=user_id,
            attempts=attempt_number,
        )

        if await self._storage.is_event_processed(change.event_id):
            return duplicate

        state = await self._storage.get_ledger_state(user_id)
        deltas = net_delta(change.before, change.after)
        processed = ProcessedEvent(
            event_id=change.event_id,
            transaction_id=change.transaction_id,
        )

        try:
            await self._storage.apply_delta(
                user_id=user_id,
                deltas=deltas,
                processed_event=processed,
                expected_version=state.version,
            )
        except DuplicateError:
            # Lost the race to a concurrent delivery of the same event
            return duplicate
        except ConflictError:
            logger.info(
                "balance_conflict_retry",
                event_id=change.event_id,
                user_id=user_id,
                attempt=attempt_number,
            )
            if self._audit_logger:
                await self._audit_logger.log_conflict_retry(
                    user_id=user_id,
                    event_id=change.event_id,
                    attempt=attempt_number,
                    correlation_id=correlation_id,
                )
            raise

        return ApplyResult(
            status=ApplyStatus.APPLIED,
            event_id=change.event_id,
            user_id=user_id,
            deltas=deltas,
            attempts=attempt_number,
        )

    async def _after_commit(
        self,
        change: TransactionChange,
        user_id: str,
        result: ApplyResult,
        correlation_id: Optional[UUID],
    ) -> None:
        if change.after is not None:
            await self._storage.touch_last_entry(user_id, utc_now())

        for state in (change.before, change.after):
            if state is not None and not is_known_type(state):
                logger.warning(
                    "unknown_transaction_type",
                    user_id=user_id,
                    transaction_id=state.id,
                    type=state.type,
                )
                if self._audit_logger:
                    await self._audit_logger.log_unknown_type(
                        user_id=user_id,
                        transaction_id=state.id,
                        transaction_type=state.type,
                        correlation_id=correlation_id,
                    )

        changed = payment_link_changes(change.before, change.after, self._settings.zone)
        if changed:
            metadata = change.before.metadata
            logger.warning(
                "bill_payment_edited",
                user_id=user_id,
                transaction_id=change.before.id,
                changed_fields=changed,
            )
            if self._audit_logger:
                await self._audit_logger.log_payment_link_changed(
                    user_id=user_id,
                    transaction_id=change.before.id,
                    changed_fields=changed,
                    card_id=metadata.payment_target_card_id,
                    closing_date=metadata.payment_target_closing_date,
                    correlation_id=correlation_id,
                )

        if self._audit_logger:
            await self._audit_logger.log_event_applied(
                user_id=user_id,
                event_id=change.event_id,
                transaction_id=change.transaction_id,
                deltas=result.deltas,
                attempts=result.attempts,
                correlation_id=correlation_id,
            )

    async def rebuild_balances(
        self,
        user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> dict:
        """
        Recovery: recompute balances from the full transaction log.

        Returns the per-account drift that was corrected (empty if none).
        Not part of steady-state processing.
        """
        drift = {}
        async for attempt in self._retrying():
            with attempt:
                state = await self._storage.get_ledger_state(user_id)
                transactions = await self._storage.list_transactions(user_id)
                recomputed = recompute_balances(transactions)
                drift = balance_drift(state.balances, recomputed)
                await self._storage.replace_balances(
                    user_id=user_id,
                    balances=recomputed,
                    expected_version=state.version,
                )

        logger.info("balances_rebuilt", user_id=user_id, drifted_accounts=len(drift))
        if self._audit_logger:
            await self._audit_logger.log_balances_recomputed(
                user_id=user_id,
                differences=drift,
                correlation_id=correlation_id,
            )
        return drift
