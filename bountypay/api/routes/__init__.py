"""Top level API router registration."""
from fastapi import APIRouter, FastAPI

from bountypay.api.routes import health, payouts, settings


def register_routes(application: FastAPI) -> None:
    """Register all API routers with the FastAPI application."""
    api_router = APIRouter(prefix="/api")

    api_router.include_router(health.router, tags=["health"])
    api_router.include_router(payouts.router, tags=["payouts"])
    api_router.include_router(settings.router, tags=["settings"])

    application.include_router(api_router)


__all__ = ["register_routes"]
