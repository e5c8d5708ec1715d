"""backtester.backtest.io

Lightweight IO helpers for backtesting.

CSV schema:
- required: time, open, high, low, close, volume
- time is the candle close timestamp in UTC milliseconds

All columns must be numeric. Extra columns are ignored.
"""

from __future__ import annotations

import csv
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

from backtester.backtest.types import Candle
from backtester.core.exceptions import DataError

REQUIRED_COLUMNS: tuple[str, ...] = ("time", "open", "high", "low", "close", "volume")


def candle_from_mapping(row: Mapping[str, Any], *, where: str = "") -> Candle:
    missing = [c for c in REQUIRED_COLUMNS if c not in row]
    if missing:
        raise DataError(f"{where}missing field(s): {', '.join(missing)}")
    try:
        return Candle(
            time=int(float(row["time"])),
            open=float(row["open"]),
            high=float(row["high"]),
            low=float(row["low"]),
            close=float(row["close"]),
            volume=float(row["volume"]),
        )
    except (TypeError, ValueError) as e:
        raise DataError(f"{where}non-numeric candle field: {e}") from e


def load_candles_csv(path: str | Path) -> list[Candle]:
    p = Path(path)
    if not p.exists():
        raise DataError(f"Candle file not found: {p}")

    with p.open("r", encoding="utf-8", newline="") as f:
        r = csv.DictReader(f)
        header = [h.strip() for h in (r.fieldnames or [])]
        missing = [c for c in REQUIRED_COLUMNS if c not in header]
        if missing:
            raise DataError(f"CSV missing required column(s): {', '.join(missing)}")

        out: list[Candle] = []
        for line_no, row in enumerate(r, start=2):
            clean = {k.strip(): (v.strip() if isinstance(v, str) else v) for k, v in row.items() if k is not None}
            out.append(candle_from_mapping(clean, where=f"{p.name}:{line_no}: "))
    return out


def validate_candles(candles: Sequence[Candle]) -> None:
    """Raise ``DataError`` unless timestamps are strictly increasing."""

    for prev, cur in zip(candles, candles[1:]):
        if cur.time <= prev.time:
            raise DataError(f"Candles must be strictly increasing by time: {prev.time} then {cur.time}")
