"""backtester.backtest.types

Candles, trades and equity points.

Times are candle close timestamps in UTC milliseconds. Prices are floats;
this is a simulator, not a ledger.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import asdict, dataclass
from enum import StrEnum
from typing import Any, Literal

import numpy as np

SourceField = Literal["open", "high", "low", "close", "volume"]
SOURCE_FIELDS: tuple[str, ...] = ("open", "high", "low", "close", "volume")


@dataclass(frozen=True, slots=True)
class Candle:
    time: int
    open: float
    high: float
    low: float
    close: float
    volume: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class PriceSeries:
    """Column view of a candle list. Every column has the same length."""

    time: np.ndarray
    open: np.ndarray
    high: np.ndarray
    low: np.ndarray
    close: np.ndarray
    volume: np.ndarray

    @classmethod
    def from_candles(cls, candles: Sequence[Candle]) -> PriceSeries:
        def col(name: str) -> np.ndarray:
            return np.array([float(getattr(c, name)) for c in candles], dtype=np.float64)

        return cls(
            time=np.array([int(c.time) for c in candles], dtype=np.int64),
            open=col("open"),
            high=col("high"),
            low=col("low"),
            close=col("close"),
            volume=col("volume"),
        )

    def __len__(self) -> int:
        return int(self.close.shape[0])

    def column(self, source: str) -> np.ndarray:
        if source not in SOURCE_FIELDS:
            raise KeyError(source)
        return getattr(self, source)


class TradeStatus(StrEnum):
    OPEN = "open"
    CLOSED = "closed"


class ExitReason(StrEnum):
    STOP_LOSS = "stop_loss"
    TAKE_PROFIT = "take_profit"
    EXIT_SIGNAL = "exit_signal"


@dataclass(slots=True)
class Trade:
    """A long position.

    Stop-loss and take-profit prices are fixed at entry. The record is
    mutated exactly once, by :meth:`close`.
    """

    id: str
    entry_time: int
    entry_price: float
    size: float
    stop_loss_price: float
    take_profit_price: float
    direction: Literal["long"] = "long"
    status: TradeStatus = TradeStatus.OPEN
    exit_time: int | None = None
    exit_price: float | None = None
    exit_reason: ExitReason | None = None
    pnl: float | None = None
    pnl_percent: float | None = None

    @property
    def is_open(self) -> bool:
        return self.status == TradeStatus.OPEN

    def close(self, *, time: int, price: float, reason: ExitReason) -> float:
        if not self.is_open:
            raise ValueError(f"Trade {self.id} is already closed")

        pnl = (price - self.entry_price) * self.size
        self.exit_time = int(time)
        self.exit_price = float(price)
        self.exit_reason = reason
        self.pnl = pnl
        self.pnl_percent = (price - self.entry_price) / self.entry_price * 100.0
        self.status = TradeStatus.CLOSED
        return pnl

    def to_dict(self) -> dict[str, Any]:
        out = asdict(self)
        out["status"] = str(self.status)
        out["exit_reason"] = str(self.exit_reason) if self.exit_reason is not None else None
        return out


@dataclass(frozen=True, slots=True)
class EquityPoint:
    time: int
    equity: float
    drawdown: float  # absolute, from running peak

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
