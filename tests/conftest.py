from __future__ import annotations

import json
import os
import sys
from collections.abc import Callable, Iterator
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from io import BytesIO
from pathlib import Path
from types import SimpleNamespace

import pytest
from botocore.exceptions import ClientError
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///./test_suite.db")
os.environ.setdefault("ENABLE_TRACING", "false")
os.environ.setdefault("ADMIN_API_TOKEN", "test-admin-token")
os.environ.setdefault("GIBRAPAY_WALLET_ID", "wallet-test")

from bountypay.api.deps import get_db_session, get_payout_service
from bountypay.core.config import get_settings
from bountypay.main import app as fastapi_app
from bountypay.models import Base, Profile, Report
from bountypay.obs import AuditMiddleware
from bountypay.services.gibrapay import TransferResult, WalletBalance
from bountypay.services.ledger import PayoutState
from bountypay.services.payouts import PayoutService


class InMemoryS3Client:
    """Simple in-memory S3 stub used by the audit middleware during tests."""

    exceptions = SimpleNamespace(NoSuchKey=type("NoSuchKey", (Exception,), {}))

    def __init__(self) -> None:
        self._buckets: dict[str, dict[str, bytes]] = {}

    def head_bucket(self, *, Bucket: str) -> None:
        if Bucket not in self._buckets:
            raise ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, "HeadBucket")

    def create_bucket(self, *, Bucket: str, **_: object) -> None:
        self._buckets.setdefault(Bucket, {})

    def get_object(self, *, Bucket: str, Key: str) -> dict[str, BytesIO]:
        bucket = self._buckets.get(Bucket, {})
        if Key not in bucket:
            raise self.exceptions.NoSuchKey()
        return {"Body": BytesIO(bucket[Key])}

    def put_object(self, *, Bucket: str, Key: str, Body: bytes, **_: object) -> dict[str, str]:
        self._buckets.setdefault(Bucket, {})[Key] = Body
        return {"ETag": "in-memory"}

    @property
    def buckets(self) -> dict[str, dict[str, bytes]]:
        return self._buckets


class FakeGateway:
    """Records transfers and answers with queued results, succeeding by default."""

    def __init__(self) -> None:
        self.transfers: list[dict[str, object]] = []
        self._queued: dict[str, list[TransferResult]] = {"PENT": [], "PLAT": []}
        self.balance = WalletBalance(success=True, name="BountyPay Custody", balance=Decimal("5000.00"))

    def queue(self, leg: str, *results: TransferResult) -> None:
        self._queued[leg].extend(results)

    def transfer(self, *, wallet_id: str, phone_number: str, amount: Decimal, reference: str) -> TransferResult:
        leg = reference.rsplit("-", 1)[-1]
        self.transfers.append(
            {"wallet_id": wallet_id, "phone_number": phone_number, "amount": amount, "reference": reference}
        )
        if self._queued[leg]:
            return self._queued[leg].pop(0)
        return TransferResult(success=True, provider_tx_id=f"gp-{leg.lower()}-{len(self.transfers)}")

    def wallet_balance(self, wallet_id: str) -> WalletBalance:
        return self.balance

    def leg(self, leg: str) -> list[dict[str, object]]:
        return [entry for entry in self.transfers if str(entry["reference"]).endswith(f"-{leg}")]


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


DATABASE_URL = "sqlite+pysqlite:///:memory:"


engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture(autouse=True)
def audit_s3_client(monkeypatch: pytest.MonkeyPatch) -> Iterator[InMemoryS3Client]:
    client = InMemoryS3Client()

    def _client_factory(*args: object, **kwargs: object) -> InMemoryS3Client:
        return client

    monkeypatch.setattr("bountypay.obs.audit.boto3.client", _client_factory)
    stack = getattr(fastapi_app, "middleware_stack", None)
    middleware = getattr(stack, "app", None)
    while middleware is not None and hasattr(middleware, "app"):
        if isinstance(middleware, AuditMiddleware):
            middleware._s3_client = None
            middleware._bucket_ready = False
        middleware = getattr(middleware, "app", None)
    yield client


@pytest.fixture(autouse=True)
def _payout_event_publisher_stub(monkeypatch: pytest.MonkeyPatch) -> Iterator[list[dict[str, str]]]:
    events: list[dict[str, str]] = []

    class StubPublisher:
        def __init__(self, *_: object, **__: object) -> None:
            self._events = events

        def publish(self, transaction, *, event_type: str) -> None:  # type: ignore[no-untyped-def]
            self._events.append(
                {
                    "transaction_id": transaction.id,
                    "event_type": event_type,
                    "state": PayoutState.of(transaction).value,
                }
            )

    class DummyKafkaProducer:
        def __init__(self, *_: object, **__: object) -> None:
            self.messages: list[dict[str, object]] = []

        def send(
            self,
            topic: str,
            value: dict[str, str],
            headers: list[tuple[str, bytes]] | None = None,
        ) -> None:
            self.messages.append({"topic": topic, "value": json.dumps(value), "headers": headers})

        def flush(self) -> None:
            return None

    monkeypatch.setattr("bountypay.services.payouts.PayoutEventPublisher", StubPublisher)
    monkeypatch.setattr("bountypay.services.payout_events.KafkaProducer", DummyKafkaProducer)
    yield events
    events.clear()


@pytest.fixture()
def payout_events(_payout_event_publisher_stub: list[dict[str, str]]) -> list[dict[str, str]]:
    return _payout_event_publisher_stub


@pytest.fixture()
def db_session() -> Iterator[Session]:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture()
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def payout_service(db_session: Session, gateway: FakeGateway, clock: FakeClock) -> PayoutService:
    return PayoutService(db_session, gateway=gateway, clock=clock)


@pytest.fixture()
def make_report(db_session: Session) -> Callable[..., Report]:
    """Create a hunter profile plus an accepted report owed to that hunter."""

    def _make(
        *,
        payout_method: str | None = "mpesa",
        payout_details: dict | None = None,
        reward_amount: Decimal = Decimal("1000.00"),
        company_id: str = "company-1",
    ) -> Report:
        if payout_details is None and payout_method in {"mpesa", "emola"}:
            payout_details = {"phone_number": "258841234567"}
        profile = Profile(display_name="hunter", payout_method=payout_method, payout_details=payout_details)
        db_session.add(profile)
        db_session.flush()
        report = Report(
            company_id=company_id,
            pentester_id=profile.id,
            title="IDOR on invoices endpoint",
            reward_amount=reward_amount,
        )
        db_session.add(report)
        db_session.commit()
        return report

    return _make


@pytest.fixture()
def client(db_session: Session, gateway: FakeGateway, clock: FakeClock) -> Iterator[TestClient]:
    def override_get_db() -> Iterator[Session]:
        try:
            yield db_session
        finally:
            db_session.rollback()

    def override_get_payout_service() -> PayoutService:
        return PayoutService(db_session, gateway=gateway, clock=clock)

    fastapi_app.dependency_overrides[get_db_session] = override_get_db
    fastapi_app.dependency_overrides[get_payout_service] = override_get_payout_service

    with TestClient(fastapi_app) as test_client:
        yield test_client

    fastapi_app.dependency_overrides.pop(get_db_session, None)
    fastapi_app.dependency_overrides.pop(get_payout_service, None)


@pytest.fixture()
def admin_headers() -> dict[str, str]:
    return {"X-Admin-Token": get_settings().admin_api_token, "X-Admin-Actor": "ops@bountypay.test"}
