from __future__ import annotations

import os
import time
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.errors import ApiError, api_error_handler, backtester_error_handler
from api.routes import get_api_router
from backtester import __version__
from backtester.core.config import Config
from backtester.core.exceptions import BacktesterError
from backtester.core.logging import configure_logging


def create_app(config: Config | None = None) -> FastAPI:
    start = time.monotonic()

    # Security check: refuse to start with empty auth_token unless explicitly overridden
    config = config or Config.load(Path.cwd())
    auth_token = str(config.api.auth_token or "")
    insecure_ok = os.environ.get("BACKTESTER_INSECURE_OK", "").lower() in ("1", "true", "yes")

    if not auth_token and not insecure_ok:
        msg = (
            "SECURITY ERROR: API auth_token is empty\n"
            "\n"
            "Set BACKTESTER_API__AUTH_TOKEN environment variable or add to config:\n"
            "  api:\n"
            "    auth_token: your-secret-token\n"
            "\n"
            "To run without auth (dev/test only), set BACKTESTER_INSECURE_OK=1"
        )
        raise RuntimeError(msg)

    configure_logging(config.logging)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.started_at = start
        yield

    openapi_tags = [
        {"name": "health", "description": "Liveness and version metadata."},
        {"name": "backtest", "description": "Run a strategy over caller-supplied candles."},
    ]

    app = FastAPI(
        title="backtester API",
        description="Rule-based strategy backtesting",
        version=__version__,
        openapi_tags=openapi_tags,
        lifespan=lifespan,
    )
    # Exposed in app state for dependency injection + tests.
    app.state.config = config
    app.state.started_at = start

    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(BacktesterError, backtester_error_handler)

    # CORS: only enable if origins explicitly configured
    if config.api.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=config.api.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.include_router(get_api_router(), prefix="/api/v1")
    return app


# Module-level app for uvicorn (e.g. `uvicorn api.main:app`).
# Guarded so test imports don't crash when auth_token isn't configured.
try:
    app = create_app()
except RuntimeError:
    app = None
