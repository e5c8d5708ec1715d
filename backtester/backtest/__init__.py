"""backtester.backtest

Backtest core.

- indicators: numeric series per indicator spec
- rules: boolean entry/exit rule evaluation
- simulator: bar-by-bar long-only position state machine
- metrics: summary statistics over the trade list

Candle acquisition and strategy authoring are out of scope here; the core
takes an ordered candle list and a parsed strategy.
"""

from backtester.backtest.engine import BacktestConfig, BacktestResult, run_backtest
from backtester.backtest.strategy import Strategy, load_strategy_file, parse_compact_strategy, parse_strategy
from backtester.backtest.types import Candle, EquityPoint, ExitReason, Trade, TradeStatus

__all__ = [
    "BacktestConfig",
    "BacktestResult",
    "Candle",
    "EquityPoint",
    "ExitReason",
    "Strategy",
    "Trade",
    "TradeStatus",
    "load_strategy_file",
    "parse_compact_strategy",
    "parse_strategy",
    "run_backtest",
]
