"""Transaction ledger persistence and payout state derivation."""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bountypay.models import (
    DepositStatus,
    GibrapayStatus,
    PayoutType,
    Transaction,
    TransactionStatus,
    WalletType,
)
from bountypay.services.amounts import AmountSplit
from bountypay.services.errors import TransactionNotFound

_transactions = Transaction.__table__


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive timestamps read back from databases without timezone support."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class PayoutState(str, enum.Enum):
    DEPOSIT_PENDING = "DEPOSIT_PENDING"
    DEPOSIT_CONFIRMED = "DEPOSIT_CONFIRMED"
    PAYOUT_PROCESSING = "PAYOUT_PROCESSING"
    PAYOUT_COMPLETE = "PAYOUT_COMPLETE"
    PAYOUT_FAILED = "PAYOUT_FAILED"
    MANUAL_PAYOUT_REQUIRED = "MANUAL_PAYOUT_REQUIRED"

    @classmethod
    def of(cls, transaction: Transaction) -> "PayoutState":
        if transaction.pentester_paid:
            return cls.PAYOUT_COMPLETE
        if transaction.deposit_status != DepositStatus.CONFIRMED:
            return cls.DEPOSIT_PENDING
        if transaction.gibrapay_status == GibrapayStatus.PROCESSING:
            return cls.PAYOUT_PROCESSING
        if transaction.gibrapay_status == GibrapayStatus.FAILED:
            return cls.PAYOUT_FAILED
        if transaction.payout_type == PayoutType.MANUAL:
            return cls.MANUAL_PAYOUT_REQUIRED
        return cls.DEPOSIT_CONFIRMED


@dataclass(slots=True)
class ReconciliationQueues:
    """Ledger entries grouped the way the admin reconciliation screen lists them."""

    deposit_pending: list[Transaction] = field(default_factory=list)
    payout_pending: list[Transaction] = field(default_factory=list)
    completed: list[Transaction] = field(default_factory=list)


class TransactionLedger:
    """Reads and writes ``platform_transactions`` rows.

    The ledger never commits; the calling service owns transaction boundaries.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, transaction_id: str) -> Transaction:
        transaction = self._session.get(Transaction, transaction_id)
        if transaction is None:
            raise TransactionNotFound(f"Transaction '{transaction_id}' was not found")
        return transaction

    def find_by_report(self, report_id: str) -> Transaction | None:
        return self._session.scalar(select(Transaction).where(Transaction.report_id == report_id))

    def create(
        self,
        *,
        report_id: str,
        company_id: str,
        pentester_id: str,
        split: AmountSplit,
        direct_payment: bool = False,
        phone_number: str | None = None,
        wallet_type: WalletType | None = None,
    ) -> tuple[Transaction, bool]:
        """Insert a ``DEPOSIT_PENDING`` entry, or return the one that won a concurrent insert.

        Returns the entry and whether this call created it. Must be called with
        no other pending changes in the session: a lost insert race rolls the
        session back.
        """

        transaction = Transaction(
            report_id=report_id,
            company_id=company_id,
            pentester_id=pentester_id,
            gross_amount=split.gross,
            platform_fee=split.fee,
            net_amount=split.net,
            status=TransactionStatus.PENDING,
            deposit_status=DepositStatus.PENDING,
            payout_type=PayoutType.PENDING,
            pentester_paid=False,
            direct_payment=direct_payment,
            phone_number=phone_number,
            wallet_type=wallet_type,
        )
        self._session.add(transaction)
        try:
            self._session.flush()
        except IntegrityError:
            self._session.rollback()
            existing = self.find_by_report(report_id)
            if existing is None:
                raise
            return existing, False
        return transaction, True

    def claim_payout(
        self,
        transaction_id: str,
        *,
        payout_type: PayoutType,
        now: datetime,
        stale_before: datetime,
        allow_retry: bool = False,
    ) -> bool:
        """Atomically move a funded, unpaid entry into ``processing``.

        Only succeeds while the pre-transition guard still holds, so exactly one
        concurrent caller wins. Entries whose previous attempt failed, or whose
        ``processing`` claim is older than ``stale_before``, are only claimed with
        ``allow_retry``.
        """

        if allow_retry:
            attempt_guard = or_(
                _transactions.c.gibrapay_status.is_(None),
                _transactions.c.gibrapay_status != GibrapayStatus.PROCESSING,
                _transactions.c.payout_claimed_at < stale_before,
            )
        else:
            attempt_guard = or_(
                _transactions.c.gibrapay_status.is_(None),
                _transactions.c.gibrapay_status.notin_([GibrapayStatus.FAILED, GibrapayStatus.PROCESSING]),
            )
        statement = (
            update(_transactions)
            .where(
                _transactions.c.id == transaction_id,
                _transactions.c.pentester_paid.is_(False),
                _transactions.c.deposit_status == DepositStatus.CONFIRMED,
                attempt_guard,
            )
            .values(
                gibrapay_status=GibrapayStatus.PROCESSING,
                payout_type=payout_type,
                payout_claimed_at=now,
                gibrapay_error=None,
                payout_attempts=_transactions.c.payout_attempts + 1,
                lock_version=_transactions.c.lock_version + 1,
            )
        )
        result = self._session.execute(statement)
        return result.rowcount == 1

    def release_stale_claims(self, *, stale_before: datetime, error: str) -> list[str]:
        """Mark ``processing`` claims taken before ``stale_before`` as failed."""

        stale_guard = and_(
            _transactions.c.gibrapay_status == GibrapayStatus.PROCESSING,
            _transactions.c.pentester_paid.is_(False),
            _transactions.c.payout_claimed_at < stale_before,
        )
        stale_ids = list(self._session.scalars(select(_transactions.c.id).where(stale_guard)))
        if not stale_ids:
            return []
        self._session.execute(
            update(_transactions)
            .where(_transactions.c.id.in_(stale_ids), stale_guard)
            .values(
                gibrapay_status=GibrapayStatus.FAILED,
                gibrapay_error=error,
                lock_version=_transactions.c.lock_version + 1,
            )
        )
        return stale_ids

    def reconciliation_queues(
        self,
        *,
        date_from: date | None = None,
        date_to: date | None = None,
        completed_limit: int = 20,
    ) -> ReconciliationQueues:
        window = []
        if date_from is not None:
            window.append(Transaction.created_at >= datetime.combine(date_from, time.min, tzinfo=timezone.utc))
        if date_to is not None:
            end_of_day = datetime.combine(date_to + timedelta(days=1), time.min, tzinfo=timezone.utc)
            window.append(Transaction.created_at < end_of_day)

        deposits = select(Transaction).where(
            Transaction.deposit_status == DepositStatus.PENDING, *window
        ).order_by(Transaction.created_at.desc())
        pending = select(Transaction).where(
            Transaction.pentester_paid.is_(False),
            Transaction.deposit_status == DepositStatus.CONFIRMED,
            *window,
        ).order_by(Transaction.created_at.desc())
        completed = (
            select(Transaction)
            .where(Transaction.pentester_paid.is_(True), *window)
            .order_by(Transaction.pentester_paid_at.desc())
            .limit(completed_limit)
        )
        return ReconciliationQueues(
            deposit_pending=list(self._session.scalars(deposits)),
            payout_pending=list(self._session.scalars(pending)),
            completed=list(self._session.scalars(completed)),
        )


__all__ = ["PayoutState", "ReconciliationQueues", "TransactionLedger", "as_utc"]
