"""Kafka integration for payout state-change events."""
from __future__ import annotations

import json
import logging
from collections.abc import Callable
from datetime import datetime, timezone
from uuid import uuid4

from kafka import KafkaProducer
from pydantic import BaseModel

from bountypay.core.config import Settings, get_settings
from bountypay.models import Transaction
from bountypay.obs import inject_traceparent
from bountypay.services.ledger import PayoutState

logger = logging.getLogger(__name__)


class PayoutEvent(BaseModel):
    """Serializable representation of a payout ledger transition."""

    event_id: str
    event_type: str
    transaction_id: str
    report_id: str
    state: PayoutState
    deposit_status: str
    gibrapay_status: str | None
    payout_type: str
    pentester_paid: bool
    net_amount: str
    occurred_at: datetime

    @classmethod
    def from_transaction(
        cls,
        *,
        transaction: Transaction,
        event_type: str,
        occurred_at: datetime | None = None,
    ) -> "PayoutEvent":
        occurred = occurred_at or datetime.now(timezone.utc)
        return cls(
            event_id=uuid4().hex,
            event_type=event_type,
            transaction_id=transaction.id,
            report_id=transaction.report_id,
            state=PayoutState.of(transaction),
            deposit_status=transaction.deposit_status.value,
            gibrapay_status=transaction.gibrapay_status.value if transaction.gibrapay_status else None,
            payout_type=transaction.payout_type.value,
            pentester_paid=transaction.pentester_paid,
            net_amount=f"{transaction.net_amount:.2f}",
            occurred_at=occurred,
        )


class PayoutEventPublisher:
    """Publishes payout transitions to Kafka for UI and audit subscribers."""

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        producer_factory: Callable[[], KafkaProducer] | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._producer_factory = producer_factory or self._default_factory
        self._producer: KafkaProducer | None = None

    def _default_factory(self) -> KafkaProducer:
        return KafkaProducer(
            bootstrap_servers=self._settings.kafka_bootstrap_servers.split(","),
            value_serializer=lambda value: json.dumps(value).encode("utf-8"),
        )

    def _get_producer(self) -> KafkaProducer:
        if self._producer is None:
            self._producer = self._producer_factory()
        return self._producer

    def publish(self, transaction: Transaction, *, event_type: str) -> None:
        if not self._settings.publish_payout_events:
            return
        event = PayoutEvent.from_transaction(transaction=transaction, event_type=event_type)
        payload = event.model_dump(mode="json")
        producer = self._get_producer()
        logger.debug(
            "publishing payout event",
            extra={"transaction_id": transaction.id, "event_type": event_type},
        )
        headers = [(key, value.encode("utf-8")) for key, value in inject_traceparent({}).items()]
        producer.send(self._settings.payout_events_topic, value=payload, headers=headers)
        producer.flush()


__all__ = ["PayoutEvent", "PayoutEventPublisher"]
