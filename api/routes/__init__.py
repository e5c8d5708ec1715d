from __future__ import annotations

from fastapi import APIRouter

from . import backtest, health


def get_api_router() -> APIRouter:
    router = APIRouter()

    router.include_router(health.router, tags=["health"])
    router.include_router(backtest.router, tags=["backtest"])

    return router
