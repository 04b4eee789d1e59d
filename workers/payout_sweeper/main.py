"""Worker failing abandoned payout claims and reporting reconciliation queue depths."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

from bountypay.core.config import get_settings
from bountypay.core.logging import configure_logging
from bountypay.db.session import SessionLocal
from bountypay.obs import report_queue_depth
from bountypay.services.gibrapay import GibrapayClient
from bountypay.services.payouts import PayoutService
from bountypay.workers.observability import configure_worker, worker_span

LOGGER = logging.getLogger(__name__)

QUEUES = ("deposit_pending", "payout_pending")


async def run_once(service: PayoutService) -> list[str]:
    """Execute a single sweep and return the released transaction ids."""

    with worker_span("payout_sweeper.cycle"):
        released = service.release_stale_claims(now=datetime.now(timezone.utc))
        queues = service.reconciliation_queues()
        report_queue_depth("deposit_pending", len(queues.deposit_pending))
        report_queue_depth("payout_pending", len(queues.payout_pending))
        LOGGER.info(
            "payout sweep complete",
            extra={
                "released_claims": len(released),
                "deposit_pending": len(queues.deposit_pending),
                "payout_pending": len(queues.payout_pending),
            },
        )
    return released


async def run() -> None:
    """Continuously sweep payout claims at the configured cadence."""

    settings = get_settings()
    configure_worker("payout-sweeper", queues=QUEUES)
    interval = max(10, settings.payout_sweep_interval_seconds)
    LOGGER.info("starting payout sweeper", extra={"interval_seconds": interval})
    while True:
        gateway = GibrapayClient.from_settings(settings)
        try:
            with SessionLocal() as session:
                service = PayoutService(session, settings=settings, gateway=gateway)
                await run_once(service)
        finally:
            gateway.close()
        await asyncio.sleep(interval)


def main() -> None:
    configure_logging()
    try:
        asyncio.run(run())
    except KeyboardInterrupt:  # pragma: no cover - manual shutdown
        LOGGER.info("payout sweeper stopped")


if __name__ == "__main__":
    main()
