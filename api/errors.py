"""api.errors

Every error response has the same body::

    {"error": {"code": "<area>.<reason>", "message": "...", ...extras}}

Domain exceptions from the backtester core are translated here, once, so
routes only raise ``ApiError`` for transport-level problems.
"""

from __future__ import annotations

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from backtester.core.exceptions import (
    BacktesterError,
    ConfigError,
    DataError,
    StrategyError,
    UnsupportedIndicatorError,
)

logger = logging.getLogger(__name__)


class ApiError(Exception):
    def __init__(
        self,
        code: str,
        message: str,
        status: int = 400,
        *,
        headers: dict[str, str] | None = None,
        **extra: object,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status = status
        self.headers = headers
        self.extra = extra


# Most specific first; the first isinstance match wins.
_DOMAIN_ERRORS: tuple[tuple[type[BacktesterError], str, int], ...] = (
    (UnsupportedIndicatorError, "strategy.unsupported_indicator", 422),
    (StrategyError, "strategy.invalid", 422),
    (DataError, "candles.invalid", 400),
    (ConfigError, "config.invalid", 500),
    (BacktesterError, "backtest.failed", 400),
)


def from_backtester_error(exc: BacktesterError) -> ApiError:
    code, status = next((c, s) for t, c, s in _DOMAIN_ERRORS if isinstance(exc, t))
    extra: dict[str, object] = {}
    if isinstance(exc, UnsupportedIndicatorError):
        extra["kind"] = exc.kind
    return ApiError(code=code, message=str(exc), status=status, **extra)


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    body = {"error": {"code": exc.code, "message": exc.message, **exc.extra}}
    return JSONResponse(status_code=exc.status, content=body, headers=exc.headers)


async def backtester_error_handler(request: Request, exc: BacktesterError) -> JSONResponse:
    err = from_backtester_error(exc)
    logger.info("request_rejected", extra={"path": request.url.path, "code": err.code})
    return await api_error_handler(request, err)
