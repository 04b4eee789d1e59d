"""Payout orchestration services."""
from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from bountypay.core.config import Settings, get_settings
from bountypay.core.logging import mask_phone
from bountypay.models import (
    AuditLog,
    DepositStatus,
    GibrapayStatus,
    PayoutType,
    Profile,
    Report,
    Transaction,
    TransactionStatus,
    WalletType,
)
from bountypay.obs import STALE_PAYOUT_CLAIMS_COUNTER, payout_span, record_transfer
from bountypay.services.amounts import InvalidAmount, compute_split, split_is_consistent
from bountypay.services.errors import (
    AlreadyPaid,
    AlreadyPaidOrNotConfirmed,
    DepositAlreadyConfirmed,
    LedgerInvariantError,
    PayoutConcurrencyError,
    PayoutDestinationError,
    PayoutError,
    PayoutInProgress,
    ReconciliationRequired,
    ReportNotFound,
    RetryNotAllowed,
)
from bountypay.services.fee_policy import FeePolicyProvider, clean_phone_number
from bountypay.services.gibrapay import GibrapayClient, MobileMoneyGateway, TransferResult, WalletBalance
from bountypay.services.ledger import PayoutState, ReconciliationQueues, TransactionLedger, as_utc
from bountypay.services.payout_events import PayoutEventPublisher

logger = logging.getLogger(__name__)

REPORT_PAID_STATUS = "paid"
SYSTEM_ACTOR = "system"


def payout_reference(report_id: str, leg: str) -> str:
    """Provider reference for one transfer leg, e.g. ``REP-1a2b3c4d-PENT``."""
    return f"REP-{report_id[:8]}-{leg}"


@dataclass(slots=True, frozen=True)
class WalletDestination:
    wallet_type: WalletType
    phone_number: str


@dataclass(slots=True, frozen=True)
class ManualDestination:
    payout_method: str | None
    payout_details: dict[str, Any]


@dataclass(slots=True, frozen=True)
class PayoutOutcome:
    """Result of one payout attempt as reported to the admin surface."""

    transaction_id: str
    state: PayoutState
    automatic: bool
    success: bool
    pentester_tx_id: str | None = None
    platform_tx_id: str | None = None
    error: str | None = None
    payout_method: str | None = None
    payout_details: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class DepositConfirmation:
    transaction: Transaction
    payout: PayoutOutcome | None


class PayoutService:
    """Coordinates the reward payment lifecycle of a ledger entry.

    Every automatic attempt makes exactly one gateway call for the hunter's
    net amount. Retries are explicit admin actions and require the operator
    to have reconciled the previous attempt against provider records.
    """

    def __init__(
        self,
        session: Session,
        *,
        settings: Settings | None = None,
        gateway: MobileMoneyGateway | None = None,
        fee_policy: FeePolicyProvider | None = None,
        events: PayoutEventPublisher | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._session = session
        self._settings = settings or get_settings()
        self._gateway = gateway or GibrapayClient.from_settings(self._settings)
        self._fee_policy = fee_policy or FeePolicyProvider(session, settings=self._settings)
        self._events = events or PayoutEventPublisher(settings=self._settings)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._ledger = TransactionLedger(session)

    @property
    def ledger(self) -> TransactionLedger:
        return self._ledger

    @property
    def processing_timeout(self) -> timedelta:
        return timedelta(seconds=self._settings.payout_processing_timeout_seconds)

    # -- ledger entry creation -------------------------------------------------

    def request_payment(
        self,
        *,
        report_id: str,
        company_id: str,
        pentester_id: str,
        gross_amount: Decimal,
        actor: str,
        direct_payment: bool = False,
        phone_number: str | None = None,
        wallet_type: WalletType | None = None,
    ) -> Transaction:
        """Return the ledger entry for ``report_id``, creating it on first call.

        Amounts are computed once here from the current fee policy and never
        recomputed afterwards.
        """

        existing = self._ledger.find_by_report(report_id)
        if existing is not None:
            logger.info(
                "payment already requested for report",
                extra={"report_id": report_id, "transaction_id": existing.id},
            )
            return existing

        policy = self._fee_policy.snapshot()
        split = compute_split(gross_amount, policy.pentester_deduction_percent)
        cleaned_phone = clean_phone_number(phone_number) if phone_number else None
        if cleaned_phone and wallet_type is None:
            wallet_type = WalletType.MPESA

        transaction, created = self._ledger.create(
            report_id=report_id,
            company_id=company_id,
            pentester_id=pentester_id,
            split=split,
            direct_payment=direct_payment,
            phone_number=cleaned_phone or None,
            wallet_type=wallet_type,
        )
        if not created:
            return transaction

        self._record_audit(
            transaction.id,
            action="payout.payment_requested",
            actor=actor,
            details={
                "report_id": report_id,
                "gross_amount": f"{split.gross:.2f}",
                "platform_fee": f"{split.fee:.2f}",
                "net_amount": f"{split.net:.2f}",
                "deduction_percent": str(policy.pentester_deduction_percent),
                "direct_payment": direct_payment,
            },
        )
        self._session.commit()
        logger.info(
            "ledger entry created",
            extra={"report_id": report_id, "transaction_id": transaction.id, "net_amount": f"{split.net:.2f}"},
        )
        self._publish(transaction, "transaction.created")
        return transaction

    def ensure_transaction(
        self,
        report_id: str,
        *,
        actor: str,
        reward_amount: Decimal | None = None,
        phone_number: str | None = None,
        wallet_type: WalletType | None = None,
        direct_payment: bool = False,
    ) -> Transaction:
        """Locate or create the ledger entry for a report using the report's own parties."""

        existing = self._ledger.find_by_report(report_id)
        if existing is not None:
            return existing
        report = self._session.get(Report, report_id)
        if report is None:
            raise ReportNotFound(f"Report '{report_id}' was not found")
        gross = reward_amount if reward_amount is not None else report.reward_amount
        if gross is None:
            raise InvalidAmount("report has no reward amount")
        return self.request_payment(
            report_id=report.id,
            company_id=report.company_id,
            pentester_id=report.pentester_id,
            gross_amount=gross,
            actor=actor,
            direct_payment=direct_payment,
            phone_number=phone_number,
            wallet_type=wallet_type,
        )

    def process_payout(
        self,
        report_id: str,
        *,
        actor: str,
        reward_amount: Decimal | None = None,
        phone_number: str | None = None,
        wallet_type: WalletType | None = None,
        direct_payment: bool = False,
    ) -> PayoutOutcome:
        """Single entry point for paying a report: ensure the entry, then attempt the payout."""

        transaction = self.ensure_transaction(
            report_id,
            actor=actor,
            reward_amount=reward_amount,
            phone_number=phone_number,
            wallet_type=wallet_type,
            direct_payment=direct_payment,
        )
        if transaction.deposit_status != DepositStatus.CONFIRMED:
            logger.info("payout awaits deposit confirmation", extra={"transaction_id": transaction.id})
            return PayoutOutcome(
                transaction_id=transaction.id,
                state=PayoutState.of(transaction),
                automatic=False,
                success=False,
                error="Deposit has not been confirmed",
            )
        return self.try_automatic_payout(transaction.id, actor=actor)

    # -- admin transitions -----------------------------------------------------

    def confirm_deposit(self, transaction_id: str, *, actor: str, trigger_payout: bool = True) -> DepositConfirmation:
        transaction = self._ledger.get(transaction_id)
        if transaction.deposit_status == DepositStatus.CONFIRMED:
            raise DepositAlreadyConfirmed(f"Deposit for transaction '{transaction_id}' is already confirmed")

        now = self._clock()
        transaction.deposit_status = DepositStatus.CONFIRMED
        transaction.deposit_confirmed_at = now
        transaction.status = TransactionStatus.COMPLETED
        transaction.completed_at = now
        self._flush()
        self._record_audit(
            transaction.id,
            action="payout.deposit_confirmed",
            actor=actor,
            details={"gross_amount": f"{transaction.gross_amount:.2f}"},
        )
        self._session.commit()
        logger.info("deposit confirmed", extra={"transaction_id": transaction.id, "actor": actor})
        self._publish(transaction, "deposit.confirmed")

        payout: PayoutOutcome | None = None
        if trigger_payout:
            # the deposit stays confirmed; a payout that cannot start is reported, not raised
            try:
                payout = self.try_automatic_payout(transaction.id, actor=actor)
            except PayoutError as exc:
                logger.warning(
                    "payout after deposit confirmation did not go through",
                    extra={"transaction_id": transaction.id, "error": str(exc)},
                )
                payout = PayoutOutcome(
                    transaction_id=transaction.id,
                    state=PayoutState.of(transaction),
                    automatic=False,
                    success=False,
                    error=str(exc),
                )
        return DepositConfirmation(transaction=transaction, payout=payout)

    def try_automatic_payout(self, transaction_id: str, *, actor: str) -> PayoutOutcome:
        """Pay a funded entry's hunter through the gateway, or route it to manual payout.

        Entries whose previous attempt failed or was abandoned are refused here;
        they go through :meth:`retry_payout`.
        """

        return self._attempt_payout(transaction_id, actor=actor, allow_retry=False)

    def _attempt_payout(self, transaction_id: str, *, actor: str, allow_retry: bool) -> PayoutOutcome:
        transaction = self._ledger.get(transaction_id)
        if transaction.pentester_paid or transaction.deposit_status != DepositStatus.CONFIRMED:
            raise AlreadyPaidOrNotConfirmed(
                f"Transaction '{transaction_id}' is already paid or its deposit is not confirmed"
            )
        if not allow_retry and self._awaits_retry(transaction):
            raise RetryNotAllowed(
                f"Previous payout attempt for transaction '{transaction_id}' did not complete; "
                "reconcile with the provider and use retry"
            )
        if not split_is_consistent(transaction.gross_amount, transaction.platform_fee, transaction.net_amount):
            raise LedgerInvariantError(f"Transaction '{transaction_id}' amounts do not add up to the gross amount")

        destination = self._resolve_destination(transaction)
        if isinstance(destination, ManualDestination):
            return self._require_manual_payout(transaction, destination, actor=actor)

        remittance_phone = self._fee_policy.platform_remittance_phone()
        now = self._clock()
        claimed = self._ledger.claim_payout(
            transaction.id,
            payout_type=destination.wallet_type.payout_type,
            now=now,
            stale_before=now - self.processing_timeout,
            allow_retry=allow_retry,
        )
        if not claimed:
            self._session.rollback()
            raise PayoutInProgress(f"Transaction '{transaction_id}' is already being paid out")
        self._record_audit(
            transaction.id,
            action="payout.claimed",
            actor=actor,
            details={"wallet_type": destination.wallet_type.value, "phone": mask_phone(destination.phone_number)},
        )
        self._session.commit()
        self._publish(transaction, "payout.processing")

        hunter_result = self._transfer(
            transaction,
            leg="pentester",
            phone_number=destination.phone_number,
            amount=transaction.net_amount,
            reference=payout_reference(transaction.report_id, "PENT"),
        )

        platform_result: TransferResult | None = None
        # the fee leg is sent at most once per entry, whatever the hunter leg did
        if remittance_phone and transaction.platform_fee > 0 and not self._platform_fee_remitted(transaction):
            platform_result = self._transfer(
                transaction,
                leg="platform",
                phone_number=remittance_phone,
                amount=transaction.platform_fee,
                reference=payout_reference(transaction.report_id, "PLAT"),
            )
            if not platform_result.success:
                logger.warning(
                    "platform fee remittance failed; hunter payout unaffected",
                    extra={"transaction_id": transaction.id, "error": platform_result.error},
                )

        return self._record_outcome(transaction, hunter_result, platform_result, actor=actor)

    def confirm_manual_payment(
        self,
        transaction_id: str,
        *,
        actor: str,
        reference: str | None = None,
        notes: str | None = None,
    ) -> Transaction:
        transaction = self._ledger.get(transaction_id)
        if transaction.pentester_paid:
            raise AlreadyPaid(f"Transaction '{transaction_id}' is already paid")
        if self._claim_is_live(transaction):
            raise PayoutInProgress(f"Transaction '{transaction_id}' has an automatic payout in progress")

        transaction.pentester_paid = True
        transaction.pentester_paid_at = self._clock()
        transaction.pentester_payment_reference = reference or None
        transaction.pentester_payment_notes = notes or None
        transaction.payout_type = PayoutType.MANUAL
        self._flush()
        self._record_audit(
            transaction.id,
            action="payout.manual_confirmed",
            actor=actor,
            details={"reference": reference, "net_amount": f"{transaction.net_amount:.2f}"},
        )
        self._session.commit()
        logger.info("manual payout recorded", extra={"transaction_id": transaction.id, "actor": actor})
        self._publish(transaction, "payout.manually_confirmed")
        return transaction

    def retry_payout(
        self,
        transaction_id: str,
        *,
        actor: str,
        provider_reconciled: bool = False,
        note: str | None = None,
    ) -> PayoutOutcome:
        """Re-attempt a failed automatic payout.

        A recorded failure may be a false negative (the provider accepted the
        transfer but the response was lost), which this service cannot detect.
        The operator must check provider records first and acknowledge it with
        ``provider_reconciled``.
        """

        transaction = self._ledger.get(transaction_id)
        if transaction.pentester_paid:
            raise AlreadyPaid(f"Transaction '{transaction_id}' is already paid")
        if not self._awaits_retry(transaction):
            status = transaction.gibrapay_status.value if transaction.gibrapay_status else "none"
            raise RetryNotAllowed(f"Only failed payouts can be retried; gibrapay_status is '{status}'")

        context = {
            "transaction_id": transaction.id,
            "previous_error": transaction.gibrapay_error,
            "attempts": transaction.payout_attempts,
        }
        if not provider_reconciled:
            logger.warning("retry refused until the previous attempt is reconciled with the provider", extra=context)
            raise ReconciliationRequired(
                "Confirm with the provider that the previous transfer did not go through before retrying"
            )

        logger.warning("retrying payout after operator reconciliation", extra={**context, "actor": actor})
        self._record_audit(
            transaction.id,
            action="payout.retry_requested",
            actor=actor,
            details={"note": note, "previous_error": transaction.gibrapay_error},
        )
        self._session.commit()
        return self._attempt_payout(transaction.id, actor=actor, allow_retry=True)

    # -- maintenance and queries ----------------------------------------------

    def release_stale_claims(self, *, now: datetime | None = None) -> list[str]:
        """Fail ``processing`` claims that outlived the processing timeout."""

        current_time = now or self._clock()
        timeout_seconds = self._settings.payout_processing_timeout_seconds
        released = self._ledger.release_stale_claims(
            stale_before=current_time - self.processing_timeout,
            error=(
                f"Payout did not reach a terminal state within {timeout_seconds}s; "
                "reconcile with the provider before retrying"
            ),
        )
        for transaction_id in released:
            self._record_audit(transaction_id, action="payout.claim_expired", actor=SYSTEM_ACTOR)
        self._session.commit()

        if released:
            STALE_PAYOUT_CLAIMS_COUNTER.inc(len(released))
            logger.warning("released stale payout claims", extra={"transaction_ids": released})
        for transaction_id in released:
            self._publish(self._ledger.get(transaction_id), "payout.failed")
        return released

    def reconciliation_queues(
        self,
        *,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> ReconciliationQueues:
        return self._ledger.reconciliation_queues(date_from=date_from, date_to=date_to)

    def wallet_balance(self) -> WalletBalance:
        balance = self._gateway.wallet_balance(self._settings.gibrapay_wallet_id)
        if not balance.success:
            logger.warning("wallet balance lookup failed", extra={"error": balance.error})
        return balance

    # -- internals ---------------------------------------------------------------

    def _resolve_destination(self, transaction: Transaction) -> WalletDestination | ManualDestination:
        profile = self._session.get(Profile, transaction.pentester_id)
        method = profile.payout_method if profile is not None else None
        details = dict(profile.payout_details or {}) if profile is not None else {}

        if transaction.direct_payment and transaction.phone_number:
            return self._wallet(transaction.wallet_type or WalletType.MPESA, transaction.phone_number)
        if profile is not None and profile.has_wallet_payout:
            phone = profile.payout_phone or transaction.phone_number
            if phone:
                return self._wallet(WalletType(profile.payout_method), phone)
        return ManualDestination(payout_method=method, payout_details=details)

    @staticmethod
    def _wallet(wallet_type: WalletType, phone: str) -> WalletDestination:
        cleaned = clean_phone_number(phone)
        if not cleaned:
            raise PayoutDestinationError("Payout phone number contains no digits")
        return WalletDestination(wallet_type=wallet_type, phone_number=cleaned)

    def _require_manual_payout(
        self,
        transaction: Transaction,
        destination: ManualDestination,
        *,
        actor: str,
    ) -> PayoutOutcome:
        if transaction.payout_type != PayoutType.MANUAL:
            transaction.payout_type = PayoutType.MANUAL
            self._flush()
            self._record_audit(
                transaction.id,
                action="payout.manual_required",
                actor=actor,
                details={"payout_method": destination.payout_method},
            )
            self._session.commit()
            self._publish(transaction, "payout.manual_required")
        logger.info(
            "payout requires manual transfer",
            extra={"transaction_id": transaction.id, "payout_method": destination.payout_method},
        )
        return PayoutOutcome(
            transaction_id=transaction.id,
            state=PayoutState.of(transaction),
            automatic=False,
            success=False,
            payout_method=destination.payout_method,
            payout_details=destination.payout_details,
        )

    def _transfer(
        self,
        transaction: Transaction,
        *,
        leg: str,
        phone_number: str,
        amount: Decimal,
        reference: str,
    ) -> TransferResult:
        started = time.perf_counter()
        with payout_span("payout.transfer", leg=leg, transaction_id=transaction.id, reference=reference):
            result = self._gateway.transfer(
                wallet_id=self._settings.gibrapay_wallet_id,
                phone_number=phone_number,
                amount=Decimal(amount),
                reference=reference,
            )
        record_transfer(leg, success=result.success, latency_seconds=time.perf_counter() - started)
        logger.info(
            "transfer leg finished",
            extra={
                "transaction_id": transaction.id,
                "leg": leg,
                "success": result.success,
                "provider_tx_id": result.provider_tx_id,
            },
        )
        return result

    def _record_outcome(
        self,
        transaction: Transaction,
        hunter: TransferResult,
        platform: TransferResult | None,
        *,
        actor: str,
    ) -> PayoutOutcome:
        transaction.gibrapay_pentester_tx_id = hunter.provider_tx_id
        if platform is not None and platform.provider_tx_id:
            transaction.gibrapay_platform_tx_id = platform.provider_tx_id
        if platform is not None and platform.success:
            transaction.platform_fee_remitted_at = self._clock()
        platform_error = platform.error if platform is not None and not platform.success else None

        if hunter.success:
            transaction.pentester_paid = True
            transaction.pentester_paid_at = self._clock()
            transaction.pentester_payment_reference = hunter.provider_tx_id
            transaction.gibrapay_status = GibrapayStatus.COMPLETE
            transaction.gibrapay_error = f"Platform fee transfer failed: {platform_error}" if platform_error else None
            if transaction.direct_payment:
                self._mark_report_paid(transaction)
        else:
            transaction.gibrapay_status = GibrapayStatus.FAILED
            transaction.gibrapay_error = hunter.error or "Transfer failed"
        transaction.payout_claimed_at = None

        try:
            self._flush()
        except PayoutConcurrencyError:
            logger.error(
                "payout outcome could not be recorded; reconcile with the provider",
                extra={
                    "transaction_id": transaction.id,
                    "hunter_success": hunter.success,
                    "provider_tx_id": hunter.provider_tx_id,
                },
            )
            raise
        self._record_audit(
            transaction.id,
            action="payout.completed" if hunter.success else "payout.failed",
            actor=actor,
            details={
                "pentester": hunter.to_dict(),
                "platform": platform.to_dict() if platform is not None else None,
            },
        )
        self._session.commit()
        self._publish(transaction, "payout.completed" if hunter.success else "payout.failed")

        return PayoutOutcome(
            transaction_id=transaction.id,
            state=PayoutState.of(transaction),
            automatic=True,
            success=hunter.success,
            pentester_tx_id=hunter.provider_tx_id,
            platform_tx_id=platform.provider_tx_id if platform is not None else None,
            error=hunter.error or platform_error,
        )

    def _mark_report_paid(self, transaction: Transaction) -> None:
        report = self._session.get(Report, transaction.report_id)
        if report is None:
            logger.warning("report for paid transaction not found", extra={"report_id": transaction.report_id})
            return
        report.status = REPORT_PAID_STATUS

    def _claim_is_live(self, transaction: Transaction) -> bool:
        if transaction.gibrapay_status != GibrapayStatus.PROCESSING:
            return False
        claimed_at = as_utc(transaction.payout_claimed_at)
        if claimed_at is None:
            return False
        return claimed_at >= self._clock() - self.processing_timeout

    def _awaits_retry(self, transaction: Transaction) -> bool:
        if transaction.gibrapay_status == GibrapayStatus.FAILED:
            return True
        return transaction.gibrapay_status == GibrapayStatus.PROCESSING and not self._claim_is_live(transaction)

    @staticmethod
    def _platform_fee_remitted(transaction: Transaction) -> bool:
        return transaction.platform_fee_remitted_at is not None or bool(transaction.gibrapay_platform_tx_id)

    def _flush(self) -> None:
        try:
            self._session.flush()
        except StaleDataError as exc:
            self._session.rollback()
            raise PayoutConcurrencyError("Transaction was modified concurrently") from exc

    def _record_audit(
        self,
        transaction_id: str,
        *,
        action: str,
        actor: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        self._session.add(
            AuditLog(
                actor=actor,
                action=action,
                resource_type="Transaction",
                resource_id=transaction_id,
                payload=details or {},
                ip_address=None,
            )
        )

    def _publish(self, transaction: Transaction, event_type: str) -> None:
        # runs after commit; delivery failures are logged only
        try:
            self._events.publish(transaction, event_type=event_type)
        except Exception:
            logger.exception(
                "failed to publish payout event",
                extra={"transaction_id": transaction.id, "event_type": event_type},
            )


__all__ = [
    "DepositConfirmation",
    "ManualDestination",
    "PayoutOutcome",
    "PayoutService",
    "WalletDestination",
    "payout_reference",
]
