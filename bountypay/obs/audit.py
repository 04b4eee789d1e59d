"""HTTP audit trail middleware for the admin reconciliation surface."""
from __future__ import annotations

import json
import logging
import random
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable
from uuid import uuid4

import boto3
from botocore.exceptions import BotoCoreError, ClientError  # type: ignore[import-untyped]
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from starlette.types import ASGIApp

from bountypay.core.config import Settings

_SENSITIVE_KEYS = {
    "phone",
    "phone_number",
    "number_phone",
    "platform_remittance_phone",
    "account_number",
    "nib",
    "paypal_email",
    "email",
}
_READ_ONLY_METHODS = {"GET", "HEAD", "OPTIONS"}


def _mask_scalar(value: Any) -> Any:
    if isinstance(value, str):
        if "@" in value:
            local, _, domain = value.partition("@")
            hidden = local[0] + "***" if local else "***"
            return f"{hidden}@{domain}" if domain else "***@***"
        digits = value.lstrip("+")
        if digits.isdigit() and len(digits) > 4:
            return f"***{digits[-4:]}"
    return value


def mask_payload(value: Any, *, key: str | None = None) -> Any:
    """Recursively mask phone numbers, account numbers and emails in a JSON payload."""

    if isinstance(value, dict):
        return {item_key: mask_payload(item, key=str(item_key)) for item_key, item in value.items()}
    if isinstance(value, list):
        return [mask_payload(item, key=key) for item in value]
    if key is not None and key.lower() in _SENSITIVE_KEYS:
        if isinstance(value, str) and len(value) > 4:
            return f"***{value[-4:]}"
        return "***"
    return _mask_scalar(value)


@dataclass(slots=True)
class AuditLogRecord:
    """Structured log entry emitted by the middleware."""

    timestamp: str
    request_id: str
    method: str
    path: str
    status: int
    duration_ms: float
    actor: str | None
    transaction_id: str | None
    ip_address: str | None
    query: dict[str, Any]
    body: Any

    def to_json(self) -> str:
        payload = {
            "timestamp": self.timestamp,
            "request_id": self.request_id,
            "method": self.method,
            "path": self.path,
            "status": self.status,
            "duration_ms": round(self.duration_ms, 2),
            "actor": self.actor,
            "transaction_id": self.transaction_id,
            "ip_address": self.ip_address,
            "query": self.query,
            "body": self.body,
        }
        return json.dumps(payload, default=str)

    def to_dict(self) -> dict[str, Any]:
        return json.loads(self.to_json())


class AuditMiddleware(BaseHTTPMiddleware):
    """Starlette middleware writing a masked JSON line per request to the log and S3."""

    def __init__(
        self,
        app: ASGIApp,
        *,
        settings: Settings,
        logger: logging.Logger | None = None,
        s3_client_factory: Callable[[], Any] | None = None,
    ) -> None:
        super().__init__(app)
        self._settings = settings
        self._logger = logger or logging.getLogger("audit")
        self._s3_client_factory = s3_client_factory or self._default_client_factory
        self._s3_client: Any | None = None
        self._bucket_ready = False

    async def dispatch(self, request: Request, call_next: Callable[[Request], Any]) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid4().hex
        request.state.request_id = request_id
        start = time.perf_counter()

        body_bytes = await request.body()
        self._set_body(request, body_bytes)

        masked_body = None
        if body_bytes:
            try:
                masked_body = mask_payload(json.loads(body_bytes))
            except json.JSONDecodeError:
                masked_body = "<binary>"

        response = await call_next(request)

        record = AuditLogRecord(
            timestamp=datetime.now(timezone.utc).isoformat(),
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=(time.perf_counter() - start) * 1000,
            actor=getattr(request.state, "actor", None),
            transaction_id=getattr(request.state, "transaction_id", None),
            ip_address=request.client.host if request.client else None,
            query=mask_payload(dict(request.query_params.multi_items())),
            body=masked_body,
        )

        self._logger.info(record.to_json())
        if request.method not in _READ_ONLY_METHODS:
            self._persist_to_s3(record)

        response.headers["X-Request-ID"] = request_id
        return response

    def _default_client_factory(self) -> Any:
        return boto3.client(
            "s3",
            region_name=self._settings.aws_region,
            endpoint_url=self._settings.s3_endpoint_url,
        )

    def _get_s3_client(self) -> Any:
        if self._s3_client is None:
            self._s3_client = self._s3_client_factory()
        return self._s3_client

    def _ensure_bucket(self, client: Any) -> bool:
        if self._bucket_ready:
            return True
        bucket = self._settings.audit_log_bucket
        try:
            client.head_bucket(Bucket=bucket)
        except ClientError:
            create_params: dict[str, Any] = {"Bucket": bucket}
            if self._settings.aws_region != "us-east-1" and self._settings.s3_endpoint_url is None:
                create_params["CreateBucketConfiguration"] = {"LocationConstraint": self._settings.aws_region}
            try:
                client.create_bucket(**create_params)
            except ClientError as exc:  # pragma: no cover - configuration issues
                self._logger.error("failed to create audit bucket", extra={"error": str(exc)})
                return False
        self._bucket_ready = True
        return True

    def _persist_to_s3(self, record: AuditLogRecord) -> None:
        sample_rate = self._settings.audit_log_sample_rate
        if sample_rate <= 0 or (sample_rate < 1 and random.random() > sample_rate):
            return

        # one object per request; the log line above is the fallback trail
        try:
            client = self._get_s3_client()
            if not self._ensure_bucket(client):
                return
            client.put_object(
                Bucket=self._settings.audit_log_bucket,
                Key=self._record_key(record),
                Body=record.to_json().encode("utf-8"),
                ContentType="application/json",
            )
        except (ClientError, BotoCoreError) as exc:  # pragma: no cover - S3 connectivity issues
            self._logger.error("failed to persist audit record", extra={"error": str(exc)})

    def _record_key(self, record: AuditLogRecord) -> str:
        now = datetime.now(timezone.utc)
        prefix = self._settings.audit_log_prefix.rstrip("/")
        return f"{prefix}/{now:%Y/%m/%d}/{record.request_id}.json"

    @staticmethod
    def _set_body(request: Request, body: bytes) -> None:
        async def receive() -> dict[str, Any]:
            nonlocal consumed
            if consumed:
                return {"type": "http.request", "body": b"", "more_body": False}
            consumed = True
            return {"type": "http.request", "body": body, "more_body": False}

        consumed = False
        request._receive = receive  # type: ignore[attr-defined]


__all__ = ["AuditLogRecord", "AuditMiddleware", "mask_payload"]
