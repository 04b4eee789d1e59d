"""HTTP client for the GibraPay mobile-money gateway."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Protocol

import httpx

from bountypay.core.config import Settings, get_settings
from bountypay.core.logging import mask_phone
from bountypay.services.fee_policy import clean_phone_number

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class TransferRequest:
    """Payload submitted to the GibraPay transfer endpoint."""

    wallet_id: str
    phone_number: str
    amount: Decimal
    reference: str

    def to_json(self) -> dict[str, str | float]:
        # the provider keys on wallet, phone and amount; the reference is for our logs only
        return {
            "wallet_id": self.wallet_id,
            "number_phone": clean_phone_number(self.phone_number),
            "amount": float(self.amount),
        }

    def masked(self) -> dict[str, str]:
        return {
            "phone": mask_phone(clean_phone_number(self.phone_number)) or "***",
            "amount": f"{self.amount:.2f}",
            "reference": self.reference,
        }


@dataclass(slots=True, frozen=True)
class TransferResult:
    """Normalized outcome of a single transfer attempt."""

    success: bool
    provider_tx_id: str | None = None
    error: str | None = None
    message: str | None = None

    def to_dict(self) -> dict[str, str | bool | None]:
        return {
            "success": self.success,
            "provider_tx_id": self.provider_tx_id,
            "error": self.error,
            "message": self.message,
        }


@dataclass(slots=True, frozen=True)
class WalletBalance:
    """Custodial wallet balance as reported by the provider."""

    success: bool
    name: str | None = None
    balance: Decimal | None = None
    statistics: dict[str, Any] | None = None
    error: str | None = None


class MobileMoneyGateway(Protocol):
    """Protocol describing a mobile-money transfer gateway."""

    def transfer(self, *, wallet_id: str, phone_number: str, amount: Decimal, reference: str) -> TransferResult:
        """Issue one transfer; never raises for provider or network faults."""

    def wallet_balance(self, wallet_id: str) -> WalletBalance:
        """Report the custodial wallet balance."""


def _error_message(payload: dict[str, Any], default: str) -> str:
    return str(payload.get("message") or payload.get("error") or default)


class GibrapayClient:
    """Synchronous wrapper around the GibraPay HTTP API.

    Every transport error, timeout or rejection is folded into a failed
    :class:`TransferResult`. The client never retries.
    """

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str,
        timeout_seconds: float,
        client: httpx.Client | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout_seconds
        self._client = client or httpx.Client()
        self._owns_client = client is None

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "GibrapayClient":
        settings = settings or get_settings()
        return cls(
            base_url=settings.gibrapay_base_url,
            api_key=settings.gibrapay_api_key,
            timeout_seconds=settings.gibrapay_timeout_seconds,
        )

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "GibrapayClient":  # pragma: no cover - convenience
        return self

    def __exit__(self, *_args: object) -> None:  # pragma: no cover - convenience
        self.close()

    def transfer(self, *, wallet_id: str, phone_number: str, amount: Decimal, reference: str) -> TransferResult:
        request = TransferRequest(wallet_id=wallet_id, phone_number=phone_number, amount=amount, reference=reference)
        logger.info("sending gibrapay transfer", extra=request.masked())
        try:
            response = self._client.post(
                f"{self._base_url}/transfer",
                json=request.to_json(),
                headers={"API-Key": self._api_key},
                timeout=self._timeout,
            )
        except httpx.TimeoutException:
            logger.warning("gibrapay transfer timed out", extra={"reference": reference})
            return TransferResult(success=False, error="Timeout waiting for provider confirmation")
        except httpx.HTTPError as exc:
            logger.warning("gibrapay transfer failed", extra={"reference": reference, "error": str(exc)})
            return TransferResult(success=False, error=str(exc) or "Network error")

        try:
            payload = response.json()
        except ValueError:
            return TransferResult(
                success=False,
                error=f"Invalid provider response (HTTP {response.status_code})",
            )
        if not isinstance(payload, dict):
            return TransferResult(success=False, error="Invalid provider response")

        logger.info(
            "gibrapay transfer response",
            extra={"reference": reference, "http_status": response.status_code, "provider_status": payload.get("status")},
        )
        # HTTP 200 alone is not success; the body status decides
        if response.is_success and payload.get("status") == "success":
            data = payload.get("data") or {}
            tx_id = data.get("id") if isinstance(data, dict) else None
            tx_id = tx_id or payload.get("transaction_id")
            return TransferResult(
                success=True,
                provider_tx_id=str(tx_id) if tx_id else None,
                message=payload.get("message"),
            )
        return TransferResult(success=False, error=_error_message(payload, "Transfer failed"))

    def wallet_balance(self, wallet_id: str) -> WalletBalance:
        try:
            response = self._client.get(f"{self._base_url}/wallet/{wallet_id}", timeout=self._timeout)
            payload = response.json()
        except httpx.HTTPError as exc:
            return WalletBalance(success=False, error=str(exc) or "Network error")
        except ValueError:
            return WalletBalance(success=False, error="Invalid provider response")

        if isinstance(payload, dict) and payload.get("status") == "success":
            data = payload.get("data") or {}
            try:
                balance = Decimal(str(data["balance"])) if data.get("balance") is not None else None
            except InvalidOperation:
                return WalletBalance(success=False, error="Invalid balance in provider response")
            return WalletBalance(
                success=True,
                name=data.get("nome"),
                balance=balance,
                statistics=data.get("statistics"),
            )
        error = _error_message(payload, "Failed to fetch balance") if isinstance(payload, dict) else "Failed to fetch balance"
        return WalletBalance(success=False, error=error)


__all__ = [
    "GibrapayClient",
    "MobileMoneyGateway",
    "TransferRequest",
    "TransferResult",
    "WalletBalance",
]
