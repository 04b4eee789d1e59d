"""Common dependencies for API routes."""
from __future__ import annotations

import secrets
from collections.abc import Iterator

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from bountypay.core.config import Settings, get_settings
from bountypay.db.session import SessionLocal
from bountypay.services.gibrapay import GibrapayClient
from bountypay.services.payouts import PayoutService


def get_db_session() -> Iterator[Session]:
    """Yield a database session for FastAPI dependencies."""

    session: Session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def require_admin(
    request: Request,
    x_admin_token: str | None = Header(default=None),
    x_admin_actor: str | None = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> str:
    """Authorize platform operators and return the acting admin's identifier."""

    if not x_admin_token or not secrets.compare_digest(x_admin_token, settings.admin_api_token):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Admin token required")
    actor = x_admin_actor or "admin"
    request.state.actor = actor
    return actor


def get_payout_service(session: Session = Depends(get_db_session)) -> Iterator[PayoutService]:
    """Yield a payout service bound to the request session and a fresh gateway client."""

    settings = get_settings()
    gateway = GibrapayClient.from_settings(settings)
    try:
        yield PayoutService(session, settings=settings, gateway=gateway)
    finally:
        gateway.close()


__all__ = ["get_db_session", "get_payout_service", "require_admin"]
