from __future__ import annotations

import io
import json
import logging

from backtester.core.config import LoggingConfig
from backtester.core.logging import JsonFormatter, TextFormatter, configure_logging


def _record(msg: str, **extra) -> logging.LogRecord:
    rec = logging.LogRecord("backtester.backtest.engine", logging.INFO, __file__, 1, msg, (), None)
    for k, v in extra.items():
        setattr(rec, k, v)
    return rec


def test_json_formatter_puts_extras_at_top_level():
    line = JsonFormatter().format(_record("backtest_complete", trades=3, strategy="x"))
    payload = json.loads(line)
    assert payload["event"] == "backtest_complete"
    assert payload["level"] == "INFO"
    assert payload["logger"] == "backtester.backtest.engine"
    assert payload["trades"] == 3
    assert payload["strategy"] == "x"
    assert "ts" in payload
    assert "exc" not in payload


def test_text_formatter_appends_sorted_extras():
    line = TextFormatter().format(_record("trade_closed", pnl=1.5, id="T1"))
    assert line.endswith("trade_closed id=T1 pnl=1.5")


def test_configure_logging_replaces_handlers():
    logger = configure_logging(LoggingConfig(level="debug", json_output=True))
    logger = configure_logging(LoggingConfig(level="debug", json_output=True))

    assert logger.name == "backtester"
    assert logger.level == logging.DEBUG
    assert len(logger.handlers) == 1
    assert isinstance(logger.handlers[0].formatter, JsonFormatter)

    buf = io.StringIO()
    logger.handlers[0].setStream(buf)
    logging.getLogger("backtester.backtest.simulator").debug("trade_opened", extra={"id": "T1"})
    assert json.loads(buf.getvalue())["id"] == "T1"
