"""backtester: rule-based strategy backtesting.

Candles in, trades out. Everything in between is deterministic.
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "1.0.0"
