"""backtester.backtest.indicators

Indicator engine.

Each indicator spec is a small frozen dataclass; equal specs hash equal, so
the indicator map is keyed by the spec value itself and a spec referenced in
several rules is computed once.

Warm-up convention: a value that cannot be computed yet is NaN. NaN never
leaves this module as a number; consumers see ``None``.

Series are index-aligned 1:1 with the candle series and read-only once
built.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, fields
from typing import Any, ClassVar, Literal

import numpy as np

from backtester.backtest.types import SOURCE_FIELDS, PriceSeries
from backtester.core.exceptions import StrategyError, UnsupportedIndicatorError

MacdComponent = Literal["line", "signal", "hist"]
MACD_COMPONENTS: tuple[str, ...] = ("line", "signal", "hist")
DEFAULT_PERIOD = 14


def _check_period(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise StrategyError(f"{name} must be a positive integer, got {value!r}")


class _Spec:
    __slots__ = ()

    kind: ClassVar[str]

    def params(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in sorted(fields(self), key=lambda f: f.name)}

    @property
    def key(self) -> str:
        """Canonical display key, e.g. ``SMA_period:20_source:close``."""

        p = "_".join(f"{k}:{v}" for k, v in self.params().items())
        return f"{self.kind}_{p}"

    @property
    def lookback(self) -> int:
        raise NotImplementedError


@dataclass(frozen=True, slots=True)
class Sma(_Spec):
    kind: ClassVar[str] = "SMA"

    period: int = DEFAULT_PERIOD
    source: str = "close"

    def __post_init__(self) -> None:
        _check_period("period", self.period)
        if self.source not in SOURCE_FIELDS:
            raise StrategyError(f"source must be one of {SOURCE_FIELDS}, got {self.source!r}")

    @property
    def lookback(self) -> int:
        return self.period


@dataclass(frozen=True, slots=True)
class Ema(_Spec):
    kind: ClassVar[str] = "EMA"

    period: int = DEFAULT_PERIOD
    source: str = "close"

    def __post_init__(self) -> None:
        _check_period("period", self.period)
        if self.source not in SOURCE_FIELDS:
            raise StrategyError(f"source must be one of {SOURCE_FIELDS}, got {self.source!r}")

    @property
    def lookback(self) -> int:
        return self.period


@dataclass(frozen=True, slots=True)
class Rsi(_Spec):
    """RSI on close."""

    kind: ClassVar[str] = "RSI"

    period: int = DEFAULT_PERIOD

    def __post_init__(self) -> None:
        _check_period("period", self.period)

    @property
    def lookback(self) -> int:
        return self.period


@dataclass(frozen=True, slots=True)
class Macd(_Spec):
    """MACD on close. ``component`` picks line, signal or histogram."""

    kind: ClassVar[str] = "MACD"

    fast: int = 12
    slow: int = 26
    signal: int = 9
    component: str = "line"

    def __post_init__(self) -> None:
        _check_period("fast", self.fast)
        _check_period("slow", self.slow)
        _check_period("signal", self.signal)
        if self.component not in MACD_COMPONENTS:
            raise StrategyError(f"component must be one of {MACD_COMPONENTS}, got {self.component!r}")

    @property
    def lookback(self) -> int:
        # MACD has no single period; warm-up counts it as the default period.
        return DEFAULT_PERIOD


IndicatorSpec = Sma | Ema | Rsi | Macd

SPEC_TYPES: dict[str, type[_Spec]] = {cls.kind: cls for cls in (Sma, Ema, Rsi, Macd)}


def _integral(value: Any) -> Any:
    # JSON/YAML may hand us 20.0 for 20; anything else is left for __post_init__ to reject.
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def spec_from_params(kind: str, params: Mapping[str, Any] | None = None) -> IndicatorSpec:
    """Resolve ``(kind, params)`` from a strategy document into a typed spec."""

    cls = SPEC_TYPES.get(str(kind).upper())
    if cls is None:
        raise UnsupportedIndicatorError(str(kind))

    raw = dict(params or {})
    if cls is Rsi or cls is Macd:
        # Both are computed on close; an explicit close source is harmless.
        source = raw.pop("source", "close")
        if source != "close":
            raise StrategyError(f"{cls.kind} is computed on close only, got source {source!r}")

    allowed = {f.name for f in fields(cls)}
    unknown = sorted(set(raw) - allowed)
    if unknown:
        raise StrategyError(f"Unknown {cls.kind} parameter(s): {', '.join(unknown)}")

    return cls(**{k: _integral(v) for k, v in raw.items()})  # type: ignore[return-value]


# ---------------------------------------------------------------------------
# Series math
# ---------------------------------------------------------------------------


def sma(x: np.ndarray, n: int) -> np.ndarray:
    x = x.astype(np.float64)
    if n <= 1:
        return x.copy()
    out = np.full_like(x, np.nan, dtype=np.float64)
    if x.size < n:
        return out

    csum = np.cumsum(x, dtype=np.float64)
    # rolling sum for windows ending at i (inclusive): sum[x[i-n+1:i+1]]
    roll_sum = csum[n - 1 :].copy()
    roll_sum[1:] = roll_sum[1:] - csum[:-n]
    out[n - 1 :] = roll_sum / float(n)
    return out


def _ema_recurrence(x: np.ndarray, n: int) -> np.ndarray:
    """EMA seeded with x[0], every index filled. Not for direct exposure."""

    out = np.empty_like(x, dtype=np.float64)
    if x.size == 0:
        return out
    k = 2.0 / (n + 1.0)
    prev = float(x[0])
    out[0] = prev
    for i in range(1, x.size):
        prev = k * float(x[i]) + (1.0 - k) * prev
        out[i] = prev
    return out


def ema(x: np.ndarray, n: int) -> np.ndarray:
    x = x.astype(np.float64)
    raw = _ema_recurrence(x, n)
    out = np.full_like(x, np.nan, dtype=np.float64)
    out[n - 1 :] = raw[n - 1 :]
    return out


def _rsi_value(avg_gain: float, avg_loss: float) -> float:
    # avg_loss == 0 means RS = +inf; a flat series (no gain either) lands here too.
    if avg_loss == 0.0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100.0 - (100.0 / (1.0 + rs))


def rsi(close: np.ndarray, n: int) -> np.ndarray:
    """Wilder RSI. First value at index ``n``."""

    close = close.astype(np.float64)
    out = np.full_like(close, np.nan, dtype=np.float64)

    avg_gain = 0.0
    avg_loss = 0.0
    for i in range(1, close.size):
        change = float(close[i] - close[i - 1])
        gain = max(change, 0.0)
        loss = max(-change, 0.0)

        if i <= n:
            avg_gain += gain
            avg_loss += loss
            if i == n:
                avg_gain /= n
                avg_loss /= n
                out[i] = _rsi_value(avg_gain, avg_loss)
            continue

        avg_gain = (avg_gain * (n - 1) + gain) / n
        avg_loss = (avg_loss * (n - 1) + loss) / n
        out[i] = _rsi_value(avg_gain, avg_loss)

    return out


def macd(close: np.ndarray, fast: int, slow: int, signal: int) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Return ``(line, signal, hist)``.

    The line subtracts the raw EMA recurrences (no exposure delay), starting
    once both have run ``max(fast, slow)`` bars. The signal EMA is seeded on
    the first line value and exposed ``signal - 1`` bars later.
    """

    close = close.astype(np.float64)
    line = np.full_like(close, np.nan, dtype=np.float64)
    sig = np.full_like(close, np.nan, dtype=np.float64)
    hist = np.full_like(close, np.nan, dtype=np.float64)

    start = max(fast, slow) - 1
    if close.size <= start:
        return line, sig, hist

    line[start:] = _ema_recurrence(close, fast)[start:] - _ema_recurrence(close, slow)[start:]

    sig_raw = _ema_recurrence(line[start:], signal)
    sig_start = start + signal - 1
    if close.size > sig_start:
        sig[sig_start:] = sig_raw[signal - 1 :]
        hist[sig_start:] = line[sig_start:] - sig[sig_start:]

    return line, sig, hist


def _calc_sma(series: PriceSeries, spec: Sma) -> np.ndarray:
    return sma(series.column(spec.source), spec.period)


def _calc_ema(series: PriceSeries, spec: Ema) -> np.ndarray:
    return ema(series.column(spec.source), spec.period)


def _calc_rsi(series: PriceSeries, spec: Rsi) -> np.ndarray:
    return rsi(series.close, spec.period)


def _calc_macd(series: PriceSeries, spec: Macd) -> np.ndarray:
    line, sig, hist = macd(series.close, spec.fast, spec.slow, spec.signal)
    return {"line": line, "signal": sig, "hist": hist}[spec.component]


_CALCULATORS: dict[type, Callable[[PriceSeries, Any], np.ndarray]] = {
    Sma: _calc_sma,
    Ema: _calc_ema,
    Rsi: _calc_rsi,
    Macd: _calc_macd,
}


# ---------------------------------------------------------------------------
# Indicator map
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class IndicatorResult:
    spec: IndicatorSpec
    values: np.ndarray  # float64, NaN while warming up

    @property
    def kind(self) -> str:
        return self.spec.kind

    @property
    def params(self) -> dict[str, Any]:
        return self.spec.params()

    @property
    def key(self) -> str:
        return self.spec.key

    def __len__(self) -> int:
        return int(self.values.shape[0])

    def value_at(self, index: int) -> float | None:
        if index < 0 or index >= self.values.shape[0]:
            return None
        v = float(self.values[index])
        return None if np.isnan(v) else v

    def to_dict(self, times: Iterable[int]) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "params": self.params,
            "key": self.key,
            "values": [{"time": int(t), "value": self.value_at(i)} for i, t in enumerate(times)],
        }


IndicatorMap = Mapping[IndicatorSpec, IndicatorResult]


def compute(series: PriceSeries, spec: IndicatorSpec) -> np.ndarray:
    calc = _CALCULATORS.get(type(spec))
    if calc is None:
        raise UnsupportedIndicatorError(getattr(spec, "kind", type(spec).__name__))
    values = calc(series, spec)
    values.setflags(write=False)
    return values


def build_indicators(series: PriceSeries, specs: Iterable[IndicatorSpec]) -> dict[IndicatorSpec, IndicatorResult]:
    out: dict[IndicatorSpec, IndicatorResult] = {}
    for spec in specs:
        if spec in out:
            continue
        out[spec] = IndicatorResult(spec=spec, values=compute(series, spec))
    return out
