from __future__ import annotations

import pytest

from api.main import create_app
from tests.unit._api_test_client import make_client
from tests.unit._candles import make_candles

STRATEGY = {
    "name": "Close over SMA(5)",
    "entry": {"all": [{"type": "SMA", "params": {"period": 1}, "op": ">", "compareWith": {"type": "SMA", "params": {"period": 5}}}]},
    "exit": {"all": [{"type": "SMA", "params": {"period": 1}, "op": "<", "value": -1}]},
    "risk": {"stopLoss": 50, "takeProfit": 50},
}


def _candles(n: int = 30) -> list[dict]:
    return [c.to_dict() for c in make_candles([100.0 + i for i in range(n)])]


@pytest.fixture()
def app(test_config, monkeypatch):
    monkeypatch.setenv("BACKTESTER_INSECURE_OK", "1")
    return create_app(test_config)


@pytest.mark.anyio
async def test_backtest_round_trip(app):
    async with make_client(app) as ac:
        r = await ac.post("/api/v1/backtest", json={"candles": _candles(), "strategy": STRATEGY})

    assert r.status_code == 200
    data = r.json()
    assert data["strategy"] == "Close over SMA(5)"
    assert len(data["candles"]) == 30
    assert len(data["equity_curve"]) == 31
    assert len(data["trades"]) == 1
    assert data["trades"][0]["status"] == "open"
    assert data["trades"][0]["entry_time"] == data["candles"][20]["time"]
    assert data["metrics"]["total_trades"] == 0
    assert data["metrics"]["final_capital"] == pytest.approx(10000.0 * (1 - 0.0005))

    keys = {ind["key"] for ind in data["indicators"]}
    assert keys == {"SMA_period:1_source:close", "SMA_period:5_source:close"}
    sma5 = next(ind for ind in data["indicators"] if ind["key"] == "SMA_period:5_source:close")
    assert sma5["values"][0]["value"] is None


@pytest.mark.anyio
async def test_backtest_accepts_compact_strategy_and_overrides(app):
    compact = {
        "name": "compact",
        "entry": {"all": [{"left": {"indicator": "SMA", "period": 2}, "operator": ">", "right": {"indicator": "SMA", "period": 5}}]},
        "exit": {"any": [{"left": {"indicator": "RSI", "period": 14}, "operator": "<", "value": 0}]},
        "risk": {"stopLossPct": 50, "takeProfitPct": 50},
    }
    body = {"candles": _candles(), "strategy": compact, "initialCapital": 2000, "commission": 0}
    async with make_client(app) as ac:
        r = await ac.post("/api/v1/backtest", json=body)

    assert r.status_code == 200
    data = r.json()
    assert data["strategy"] == "compact"
    assert data["trades"][0]["size"] == pytest.approx(2000.0 / data["trades"][0]["entry_price"])
    assert data["metrics"]["final_capital"] == pytest.approx(2000.0)


@pytest.mark.anyio
async def test_unknown_indicator_is_422_with_kind(app):
    strategy = {
        "entry": {"all": [{"type": "VWAP", "params": {}, "op": ">", "value": 1}]},
        "exit": {},
        "risk": {"stopLoss": 1, "takeProfit": 1},
    }
    async with make_client(app) as ac:
        r = await ac.post("/api/v1/backtest", json={"candles": _candles(), "strategy": strategy})

    assert r.status_code == 422
    err = r.json()["error"]
    assert err["code"] == "strategy.unsupported_indicator"
    assert err["kind"] == "VWAP"


@pytest.mark.anyio
async def test_malformed_strategy_is_422(app):
    async with make_client(app) as ac:
        r = await ac.post("/api/v1/backtest", json={"candles": _candles(), "strategy": {"entry": {}}})

    assert r.status_code == 422
    assert r.json()["error"]["code"] == "strategy.invalid"


@pytest.mark.anyio
async def test_unordered_candles_are_400(app):
    candles = _candles(5)
    candles[2], candles[3] = candles[3], candles[2]
    async with make_client(app) as ac:
        r = await ac.post("/api/v1/backtest", json={"candles": candles, "strategy": STRATEGY})

    assert r.status_code == 400
    assert r.json()["error"]["code"] == "candles.invalid"


@pytest.mark.anyio
async def test_empty_candle_list_fails_validation(app):
    async with make_client(app) as ac:
        r = await ac.post("/api/v1/backtest", json={"candles": [], "strategy": STRATEGY})
    assert r.status_code == 422
