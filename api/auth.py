from __future__ import annotations

import hmac

from fastapi import Depends, Header

from api.deps import get_config
from api.errors import ApiError
from backtester.core.config import Config

_CHALLENGE = {"WWW-Authenticate": 'Bearer realm="backtester"'}


def _unauthorized(code: str, message: str) -> ApiError:
    return ApiError(code=code, message=message, status=401, headers=_CHALLENGE, scheme="Bearer")


def _bearer_token(authorization: str | None) -> str:
    if not authorization:
        raise _unauthorized("auth.token_missing", "Backtests require an Authorization: Bearer header")

    scheme, _, token = authorization.partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        raise _unauthorized("auth.scheme_unsupported", f"Unsupported authorization scheme {scheme!r}")
    return token


def require_bearer_token(
    authorization: str | None = Header(default=None, alias="Authorization"),
    config: Config = Depends(get_config),
) -> None:
    """Gate backtest routes on ``api.auth_token``. An empty token disables the check."""

    expected = str(config.api.auth_token or "")
    if not expected:
        return

    token = _bearer_token(authorization)
    if not hmac.compare_digest(token.encode("utf-8"), expected.encode("utf-8")):
        raise _unauthorized("auth.token_rejected", "Bearer token does not match api.auth_token")


AuthDep = Depends(require_bearer_token)
