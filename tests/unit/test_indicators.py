from __future__ import annotations

import math

import numpy as np
import pytest

from backtester.backtest.indicators import (
    Ema,
    Macd,
    Rsi,
    Sma,
    build_indicators,
    ema,
    macd,
    rsi,
    sma,
    spec_from_params,
)
from backtester.backtest.types import PriceSeries
from backtester.core.exceptions import StrategyError, UnsupportedIndicatorError
from tests.unit._candles import make_candles


def _nan_prefix(values: np.ndarray) -> int:
    n = 0
    for v in values:
        if not np.isnan(v):
            break
        n += 1
    return n


def test_sma_first_value_at_period_minus_one():
    out = sma(np.array([1, 2, 3, 4, 5], dtype=np.float64), 3)
    assert _nan_prefix(out) == 2
    assert out[2:].tolist() == [2.0, 3.0, 4.0]


def test_sma_short_series_is_all_undefined():
    out = sma(np.array([1.0, 2.0]), 5)
    assert out.shape == (2,)
    assert np.all(np.isnan(out))


def test_ema_seeded_on_first_value_and_exposed_from_period_minus_one():
    out = ema(np.array([1, 2, 3, 4, 5], dtype=np.float64), 3)
    assert _nan_prefix(out) == 2
    assert out[2:] == pytest.approx([2.25, 3.125, 4.0625])


def test_ema_period_one_is_identity():
    x = np.array([3.0, 1.0, 4.0, 1.0, 5.0])
    assert ema(x, 1).tolist() == x.tolist()


def test_rsi_wilder_smoothing():
    out = rsi(np.array([1.0, 2.0, 1.0, 2.0]), 2)
    assert _nan_prefix(out) == 2
    assert out[2] == pytest.approx(50.0)
    # avg gain (0.5*1 + 1)/2 = 0.75, avg loss (0.5*1 + 0)/2 = 0.25 -> RS 3
    assert out[3] == pytest.approx(75.0)


def test_rsi_constant_series_is_100_not_nan():
    # zero gain and zero loss: the avg_loss == 0 branch gives 100 by convention
    out = rsi(np.full(20, 42.0), 14)
    assert _nan_prefix(out) == 14
    assert out[14:].tolist() == [100.0] * 6
    assert not any(math.isnan(v) for v in out[14:])


def test_rsi_rising_series_is_100():
    out = rsi(np.arange(1.0, 31.0), 14)
    assert out[14:].tolist() == [100.0] * 16


def test_macd_alignment_and_components():
    x = 100.0 + np.sin(np.arange(40) / 3.0) * 5.0
    line, sig, hist = macd(x, 3, 5, 4)

    assert _nan_prefix(line) == 4  # max(fast, slow) - 1
    assert _nan_prefix(sig) == 7  # + signal - 1
    assert _nan_prefix(hist) == 7

    # Line uses the raw EMA recurrences; by index 4 both are exposed anyway.
    expected_line = ema(x, 3)[4:] - ema(x, 5)[4:]
    assert line[4:] == pytest.approx(expected_line)
    assert hist[7:] == pytest.approx(line[7:] - sig[7:])


def test_macd_signal_seeded_on_first_line_value():
    x = 100.0 + np.sin(np.arange(30) / 2.0)
    line, sig, _ = macd(x, 2, 4, 3)
    start = 3
    k = 2.0 / 4.0
    expected = line[start]
    for i in range(start + 1, start + 3):
        expected = k * line[i] + (1 - k) * expected
    assert sig[start + 2] == pytest.approx(expected)


def test_macd_constant_series_is_zero():
    line, sig, hist = macd(np.full(50, 10.0), 12, 26, 9)
    assert _nan_prefix(line) == 25
    assert line[25:] == pytest.approx([0.0] * 25, abs=1e-9)
    assert sig[33:] == pytest.approx([0.0] * 17, abs=1e-9)
    assert hist[33:] == pytest.approx([0.0] * 17, abs=1e-9)


@pytest.mark.parametrize(
    "spec",
    [Sma(period=5), Ema(period=5, source="high"), Rsi(period=14), Macd(component="line"), Macd(component="hist")],
)
@pytest.mark.parametrize("n_bars", [0, 3, 60])
def test_series_length_always_matches_candles(spec, n_bars):
    closes = [100.0 + i for i in range(n_bars)]
    series = PriceSeries.from_candles(make_candles(closes) if closes else [])
    out = build_indicators(series, [spec])
    assert len(out[spec]) == n_bars


def test_equal_specs_share_one_series():
    series = PriceSeries.from_candles(make_candles([float(i) for i in range(1, 31)]))
    a = Sma(period=5)
    b = spec_from_params("sma", {"period": 5, "source": "close"})
    out = build_indicators(series, [a, b, Ema(period=5)])

    assert a == b and hash(a) == hash(b)
    assert len(out) == 2
    assert out[a] is out[b]


def test_series_are_read_only():
    series = PriceSeries.from_candles(make_candles([float(i) for i in range(1, 31)]))
    res = build_indicators(series, [Sma(period=5)])[Sma(period=5)]
    with pytest.raises(ValueError):
        res.values[10] = 0.0


def test_indicator_result_value_at_and_dict():
    candles = make_candles([1.0, 2.0, 3.0, 4.0])
    series = PriceSeries.from_candles(candles)
    res = build_indicators(series, [Sma(period=2)])[Sma(period=2)]

    assert res.value_at(0) is None
    assert res.value_at(-1) is None
    assert res.value_at(99) is None
    assert res.value_at(1) == pytest.approx(1.5)

    d = res.to_dict(c.time for c in candles)
    assert d["kind"] == "SMA"
    assert d["key"] == "SMA_period:2_source:close"
    assert d["params"] == {"period": 2, "source": "close"}
    assert d["values"][0] == {"time": candles[0].time, "value": None}


def test_canonical_keys_sort_parameters():
    assert Macd(fast=12, slow=26, signal=9, component="signal").key == "MACD_component:signal_fast:12_signal:9_slow:26"
    assert Rsi(period=7).key == "RSI_period:7"


def test_lookback_per_kind():
    assert Sma(period=50).lookback == 50
    assert Rsi(period=14).lookback == 14
    assert Macd(fast=12, slow=26).lookback == 14
    assert Macd(fast=30, slow=50).lookback == 14


def test_spec_from_params_defaults_and_coercion():
    assert spec_from_params("EMA") == Ema(period=14, source="close")
    assert spec_from_params("SMA", {"period": 20.0}) == Sma(period=20)
    assert spec_from_params("RSI", {"period": 14, "source": "close"}) == Rsi(period=14)
    assert spec_from_params("MACD", {}) == Macd(fast=12, slow=26, signal=9, component="line")


def test_unknown_indicator_kind_is_fatal():
    with pytest.raises(UnsupportedIndicatorError) as e:
        spec_from_params("VWAP", {"period": 10})
    assert e.value.kind == "VWAP"
    assert "Unsupported indicator" in str(e.value)


def test_unregistered_spec_type_is_fatal():
    class Vwap:
        kind = "VWAP"

    series = PriceSeries.from_candles(make_candles([1.0, 2.0, 3.0]))
    with pytest.raises(UnsupportedIndicatorError):
        build_indicators(series, [Vwap()])


@pytest.mark.parametrize(
    ("kind", "params"),
    [
        ("SMA", {"period": 0}),
        ("SMA", {"period": "20"}),
        ("SMA", {"period": 2.5}),
        ("SMA", {"source": "vwap"}),
        ("SMA", {"length": 20}),
        ("RSI", {"source": "high"}),
        ("MACD", {"component": "histogram"}),
    ],
)
def test_invalid_parameters_rejected(kind, params):
    with pytest.raises(StrategyError):
        spec_from_params(kind, params)
