"""backtester.core.exceptions

Errors are part of the interface.

Only configuration and input-data problems are errors. Warm-up gaps and
degenerate arithmetic are ordinary data, not exceptions.
"""

from __future__ import annotations


class BacktesterError(Exception):
    """Base exception for backtester."""


class ConfigError(BacktesterError):
    """Configuration is missing, invalid, or inconsistent."""


class StrategyError(ConfigError):
    """Strategy definition is structurally invalid."""


class UnsupportedIndicatorError(StrategyError):
    """Indicator kind is not one the engine can compute."""

    def __init__(self, kind: str) -> None:
        super().__init__(f"Unsupported indicator: {kind}")
        self.kind = kind


class DataError(BacktesterError):
    """Candle data is unreadable or violates ordering preconditions."""
