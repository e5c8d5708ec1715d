"""backtester.backtest.simulator

Bar-by-bar, long-only simulator.

FLAT → IN_POSITION → FLAT. At most one open trade at any bar.

Per bar:
1) record equity (capital before any action this bar)
2) skip signals during warm-up
3) FLAT: entry rules true → buy with all capital at close, pay entry fee
4) IN_POSITION: stop-loss, then take-profit, then exit rules; first match wins

Stop-loss is checked before take-profit. When one bar's range spans both
levels the trade is recorded as a stop-loss; OHLC alone cannot tell which
level was touched first.

Equity is realized capital; open positions are not marked to market.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from enum import StrEnum
from typing import Final

from backtester.backtest.indicators import IndicatorMap, IndicatorSpec
from backtester.backtest.rules import evaluate
from backtester.backtest.strategy import Strategy
from backtester.backtest.types import EquityPoint, ExitReason, PriceSeries, Trade

logger = logging.getLogger(__name__)

MIN_WARMUP_BARS: Final[int] = 20


class PositionState(StrEnum):
    FLAT = "flat"
    IN_POSITION = "in_position"


ALLOWED_TRANSITIONS: Final[dict[PositionState, set[PositionState]]] = {
    PositionState.FLAT: {PositionState.IN_POSITION},
    PositionState.IN_POSITION: {PositionState.FLAT},
}


def _transition(state: PositionState, new_state: PositionState) -> PositionState:
    if new_state not in ALLOWED_TRANSITIONS.get(state, set()):
        raise ValueError(f"Invalid transition {state} -> {new_state}")
    return new_state


@dataclass(frozen=True, slots=True)
class SimConfig:
    initial_capital: float = 10000.0
    commission: float = 0.0005  # fraction of capital, per side


@dataclass(frozen=True, slots=True)
class SimResult:
    trades: list[Trade]
    equity_curve: list[EquityPoint]
    final_capital: float
    warmup: int


def warmup_bars(specs: Iterable[IndicatorSpec]) -> int:
    longest = max((s.lookback for s in specs), default=0)
    return max(MIN_WARMUP_BARS, longest + 2)


def _exit_for_bar(trade: Trade, *, low: float, high: float) -> tuple[float, ExitReason] | None:
    if low <= trade.stop_loss_price:
        return trade.stop_loss_price, ExitReason.STOP_LOSS
    if high >= trade.take_profit_price:
        return trade.take_profit_price, ExitReason.TAKE_PROFIT
    return None


def simulate(
    *,
    series: PriceSeries,
    strategy: Strategy,
    indicators: IndicatorMap,
    cfg: SimConfig | None = None,
) -> SimResult:
    cfg = cfg or SimConfig()

    warmup = warmup_bars(strategy.specs())
    sl_frac = strategy.risk.stop_loss_pct / 100.0
    tp_frac = strategy.risk.take_profit_pct / 100.0

    capital = float(cfg.initial_capital)
    peak = capital
    state = PositionState.FLAT
    open_trade: Trade | None = None

    trades: list[Trade] = []
    equity: list[EquityPoint] = []

    for i in range(len(series)):
        t = int(series.time[i])
        close = float(series.close[i])

        equity.append(EquityPoint(time=t, equity=capital, drawdown=max(0.0, peak - capital)))
        if capital > peak:
            peak = capital

        if i < warmup:
            continue

        if state == PositionState.FLAT:
            if not evaluate(strategy.entry, indicators, i):
                continue
            open_trade = Trade(
                id=f"T{len(trades) + 1}",
                entry_time=t,
                entry_price=close,
                size=capital / close,
                stop_loss_price=close * (1.0 - sl_frac),
                take_profit_price=close * (1.0 + tp_frac),
            )
            trades.append(open_trade)
            capital -= capital * cfg.commission
            state = _transition(state, PositionState.IN_POSITION)
            logger.debug("trade_opened", extra={"trade_id": open_trade.id, "time": t, "price": close})
            continue

        assert open_trade is not None
        hit = _exit_for_bar(open_trade, low=float(series.low[i]), high=float(series.high[i]))
        if hit is None and evaluate(strategy.exit, indicators, i):
            hit = (close, ExitReason.EXIT_SIGNAL)
        if hit is None:
            continue

        price, reason = hit
        capital += open_trade.close(time=t, price=price, reason=reason)
        capital -= capital * cfg.commission
        logger.debug(
            "trade_closed",
            extra={"trade_id": open_trade.id, "time": t, "price": price, "reason": str(reason), "pnl": open_trade.pnl},
        )
        open_trade = None
        state = _transition(state, PositionState.FLAT)

        if capital > peak:
            peak = capital

    if len(series) > 0:
        equity.append(EquityPoint(time=int(series.time[-1]), equity=capital, drawdown=max(0.0, peak - capital)))

    return SimResult(trades=trades, equity_curve=equity, final_capital=capital, warmup=warmup)
