"""backtester.backtest.metrics

Summary statistics over a finished run.

Only closed trades count. A trade still open at the last bar is in the trade
list but not in these numbers.

``max_drawdown`` is the global spread ``max(equity) - min(equity)`` over the
whole curve, not a peak-to-trough drawdown: a trough that precedes the peak
still counts. Historical results were reported this way, so it stays.
``sequential_max_drawdown`` is the running-peak figure, reported separately.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import asdict, dataclass
from typing import Any

import numpy as np

from backtester.backtest.types import EquityPoint, Trade, TradeStatus


@dataclass(frozen=True, slots=True)
class BacktestMetrics:
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

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _sequential_max_drawdown(equity: np.ndarray) -> float:
    if equity.size == 0:
        return 0.0
    peak = np.maximum.accumulate(equity)
    return float(np.max(peak - equity))


def summarize(
    trades: Sequence[Trade],
    equity_curve: Sequence[EquityPoint],
    *,
    initial_capital: float,
    final_capital: float,
) -> BacktestMetrics:
    closed = [t for t in trades if t.status == TradeStatus.CLOSED]
    pnls = [float(t.pnl or 0.0) for t in closed]
    wins = [p for p in pnls if p > 0]
    losses = [p for p in pnls if p <= 0]  # break-even counts as a loss

    equity = np.array([e.equity for e in equity_curve], dtype=np.float64)
    # Seeded with initial capital so an empty curve yields zero drawdown.
    max_equity = max(float(equity.max()) if equity.size else initial_capital, initial_capital)
    min_equity = min(float(equity.min()) if equity.size else initial_capital, initial_capital)
    max_dd = max_equity - min_equity
    max_dd_pct = max_dd / max_equity * 100.0 if max_equity != 0 else math.inf

    return BacktestMetrics(
        total_trades=len(closed),
        winning_trades=len(wins),
        losing_trades=len(losses),
        win_rate=len(wins) / len(closed) * 100.0 if closed else 0.0,
        total_pnl=float(sum(pnls)),
        total_pnl_percent=(final_capital - initial_capital) / initial_capital * 100.0 if initial_capital else 0.0,
        max_drawdown=max_dd,
        max_drawdown_percent=max_dd_pct if math.isfinite(max_dd_pct) else 0.0,
        average_win=sum(wins) / len(wins) if wins else 0.0,
        average_loss=sum(losses) / len(losses) if losses else 0.0,
        largest_win=max(wins) if wins else 0.0,
        largest_loss=min(losses) if losses else 0.0,
        final_capital=float(final_capital),
        sequential_max_drawdown=_sequential_max_drawdown(equity),
    )
