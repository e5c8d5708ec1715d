from __future__ import annotations

import pytest

from backtester.backtest.types import ExitReason, PriceSeries, Trade, TradeStatus
from tests.unit._candles import make_candles


def test_price_series_columns():
    candles = make_candles([1.0, 2.0, 3.0])
    s = PriceSeries.from_candles(candles)
    assert len(s) == 3
    assert s.column("close").tolist() == [1.0, 2.0, 3.0]
    assert s.time.tolist() == [c.time for c in candles]
    with pytest.raises(KeyError):
        s.column("vwap")


def test_trade_closes_exactly_once():
    t = Trade(id="T1", entry_time=1, entry_price=100.0, size=2.0, stop_loss_price=95.0, take_profit_price=110.0)
    assert t.is_open

    pnl = t.close(time=2, price=110.0, reason=ExitReason.TAKE_PROFIT)

    assert pnl == pytest.approx(20.0)
    assert t.status == TradeStatus.CLOSED
    assert t.pnl_percent == pytest.approx(10.0)
    assert t.to_dict()["exit_reason"] == "take_profit"
    with pytest.raises(ValueError):
        t.close(time=3, price=90.0, reason=ExitReason.STOP_LOSS)
