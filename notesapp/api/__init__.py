"""API router registry used by the app factory."""

from __future__ import annotations

from fastapi import APIRouter

from . import health, ledger, verifications

API_PREFIX = "/api/v1"

API_ROUTERS: tuple[APIRouter, ...] = (
    health.router,
    verifications.router,
    ledger.router,
)

__all__ = ["API_PREFIX", "API_ROUTERS"]
