"""FastAPI application factory for the wemp bridge."""

from __future__ import annotations

from fastapi import FastAPI

from wemp import __version__
from wemp.pairing import PairingRegistry, get_pairing_registry
from wemp.settings import get_settings


def create_app(pairing: PairingRegistry | None = None) -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app_name, version=__version__)
    app.state.pairing = pairing or get_pairing_registry()

    # ── mount routers ──
    from wemp.api.routes import health, pairing as pairing_routes

    app.include_router(health.router)
    app.include_router(pairing_routes.router, prefix="/api/v1/pairing", tags=["pairing"])

    return app
