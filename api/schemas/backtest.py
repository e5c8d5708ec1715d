from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class CandleIn(BaseModel):
    time: int = Field(..., description="Candle close time, UTC milliseconds")
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0


class BacktestRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    candles: list[CandleIn] = Field(..., min_length=1, description="Ascending by time, unique timestamps")
    strategy: dict[str, Any] = Field(..., description="Strategy document, internal or compact form")
    initial_capital: float | None = Field(None, alias="initialCapital", gt=0)
    commission: float | None = Field(None, ge=0, lt=1, description="Fee fraction per side")


class MetricsOut(BaseModel):
    total_trades: int
    winning_trades: int
    losing_trades: int
    win_rate: float
    total_pnl: float
    total_pnl_percent: float
    max_drawdown: float
    max_drawdown_percent: float
    average_win: float
    average_loss: float
    largest_win: float
    largest_loss: float
    final_capital: float
    sequential_max_drawdown: float


class TradeOut(BaseModel):
    id: str
    direction: str
    entry_time: int
    entry_price: float
    size: float
    stop_loss_price: float
    take_profit_price: float
    status: str
    exit_time: int | None = None
    exit_price: float | None = None
    exit_reason: str | None = None
    pnl: float | None = None
    pnl_percent: float | None = None


class EquityPointOut(BaseModel):
    time: int
    equity: float
    drawdown: float


class IndicatorPointOut(BaseModel):
    time: int
    value: float | None


class IndicatorOut(BaseModel):
    kind: str
    params: dict[str, Any]
    key: str
    values: list[IndicatorPointOut]


class BacktestResponse(BaseModel):
    strategy: str
    metrics: MetricsOut
    trades: list[TradeOut]
    equity_curve: list[EquityPointOut]
    candles: list[CandleIn]
    indicators: list[IndicatorOut]
