from __future__ import annotations

from fastapi import APIRouter, Depends

from api.auth import AuthDep
from api.deps import get_config
from api.schemas.backtest import BacktestRequest, BacktestResponse
from api.schemas.common import ErrorResponse
from backtester.backtest.engine import BacktestConfig, run_backtest
from backtester.backtest.io import candle_from_mapping, validate_candles
from backtester.backtest.strategy import is_compact, parse_compact_strategy, parse_strategy
from backtester.core.config import Config

router = APIRouter(prefix="/backtest", dependencies=[AuthDep])


@router.post(
    "",
    response_model=BacktestResponse,
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
def post_backtest(body: BacktestRequest, config: Config = Depends(get_config)) -> BacktestResponse:
    """Run one backtest over caller-supplied candles.

    ``DataError`` and ``StrategyError`` propagate to the handler registered in
    ``api.main`` and come back as 400 and 422 responses.
    """

    candles = [candle_from_mapping(c.model_dump()) for c in body.candles]
    validate_candles(candles)

    parse = parse_compact_strategy if is_compact(body.strategy) else parse_strategy
    strategy = parse(body.strategy)
    result = run_backtest(
        candles,
        BacktestConfig(
            strategy=strategy,
            initial_capital=body.initial_capital if body.initial_capital is not None else config.backtest.initial_capital,
            commission=body.commission if body.commission is not None else config.backtest.commission,
        ),
    )
    return BacktestResponse.model_validate({"strategy": strategy.name, **result.to_dict()})
