from __future__ import annotations

import pytest

from backtester.core.exceptions import (
    BacktesterError,
    ConfigError,
    DataError,
    StrategyError,
    UnsupportedIndicatorError,
)


@pytest.mark.parametrize("exc", [ConfigError, StrategyError, UnsupportedIndicatorError, DataError])
def test_everything_is_a_backtester_error(exc):
    assert issubclass(exc, BacktesterError)


def test_strategy_errors_are_config_errors():
    assert issubclass(StrategyError, ConfigError)
    assert issubclass(UnsupportedIndicatorError, StrategyError)
    assert not issubclass(DataError, ConfigError)


def test_unsupported_indicator_carries_kind():
    e = UnsupportedIndicatorError("STOCH")
    assert e.kind == "STOCH"
    assert str(e) == "Unsupported indicator: STOCH"
