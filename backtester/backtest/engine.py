"""backtester.backtest.engine

Backtest entry point.

candles + strategy → indicators → simulation → metrics. Pure and
synchronous: nothing is shared between calls, so concurrent callers need no
locking.

Preconditions are the caller's job: candles non-empty in practice, sorted
ascending by time, unique timestamps (see ``backtester.backtest.io``).
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from backtester.backtest.indicators import IndicatorResult, build_indicators
from backtester.backtest.metrics import BacktestMetrics, summarize
from backtester.backtest.simulator import SimConfig, simulate
from backtester.backtest.strategy import Strategy
from backtester.backtest.types import Candle, EquityPoint, PriceSeries, Trade
from backtester.core.exceptions import ConfigError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class BacktestConfig:
    strategy: Strategy
    initial_capital: float = 10000.0
    commission: float = 0.0005  # fraction per side

    def __post_init__(self) -> None:
        if not self.initial_capital > 0:
            raise ConfigError(f"initial_capital must be > 0, got {self.initial_capital!r}")
        if not 0.0 <= self.commission < 1.0:
            raise ConfigError(f"commission must be in [0, 1), got {self.commission!r}")


@dataclass(frozen=True, slots=True)
class BacktestResult:
    metrics: BacktestMetrics
    trades: list[Trade]
    equity_curve: list[EquityPoint]
    candles: list[Candle]
    indicators: list[IndicatorResult]

    def to_dict(self) -> dict[str, Any]:
        times = [c.time for c in self.candles]
        return {
            "metrics": self.metrics.to_dict(),
            "trades": [t.to_dict() for t in self.trades],
            "equity_curve": [e.to_dict() for e in self.equity_curve],
            "candles": [c.to_dict() for c in self.candles],
            "indicators": [ind.to_dict(times) for ind in self.indicators],
        }


def run_backtest(candles: Sequence[Candle], cfg: BacktestConfig) -> BacktestResult:
    strategy = cfg.strategy
    series = PriceSeries.from_candles(candles)

    # Unsupported indicator kinds surface here and abort the run.
    indicators = build_indicators(series, strategy.specs())

    sim = simulate(
        series=series,
        strategy=strategy,
        indicators=indicators,
        cfg=SimConfig(initial_capital=cfg.initial_capital, commission=cfg.commission),
    )
    metrics = summarize(
        sim.trades,
        sim.equity_curve,
        initial_capital=cfg.initial_capital,
        final_capital=sim.final_capital,
    )

    logger.info(
        "backtest_complete",
        extra={
            "strategy": strategy.name,
            "bars": len(series),
            "warmup": sim.warmup,
            "trades": metrics.total_trades,
            "final_capital": round(metrics.final_capital, 2),
        },
    )
    return BacktestResult(
        metrics=metrics,
        trades=sim.trades,
        equity_curve=sim.equity_curve,
        candles=list(candles),
        indicators=list(indicators.values()),
    )
