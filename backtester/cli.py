"""backtester.cli

Command line interface entry point for backtester.

Design constraints:
- argparse-based.
- Lazy imports: do not import numpy/pydantic/uvicorn at parse time.
"""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class CliContext:
    repo_root: Path


def _repo_root_from_cwd() -> Path:
    return Path.cwd()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="backtester",
        description="Replay a rule-based strategy over historical candles.",
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Print version and exit.",
    )

    sub = parser.add_subparsers(dest="command")

    p_bt = sub.add_parser("backtest", help="Run one backtest from a candle CSV and a strategy file")
    p_bt.add_argument("--candles", required=True, type=Path, help="CSV with time,open,high,low,close,volume")
    p_bt.add_argument("--strategy", required=True, type=Path, help="Strategy YAML or JSON")
    p_bt.add_argument("--initial-capital", type=float, default=None, help="Starting capital (default from config).")
    p_bt.add_argument("--commission", type=float, default=None, help="Fee fraction per side (default from config).")
    p_bt.add_argument("--json", action="store_true", help="Print the full result as JSON.")

    p_api = sub.add_parser("api", help="Start FastAPI server")
    p_api.add_argument("--host", default=None)
    p_api.add_argument("--port", type=int, default=None)

    return parser


def _print_version() -> None:
    from backtester import __version__

    print(f"backtester v{__version__}")


def _format_summary(result) -> str:
    m = result.metrics
    open_trades = sum(1 for t in result.trades if t.is_open)
    lines = [
        f"bars:            {len(result.candles)}",
        f"closed trades:   {m.total_trades} ({m.winning_trades} won / {m.losing_trades} lost)",
        f"open trades:     {open_trades}",
        f"win rate:        {m.win_rate:.2f}%",
        f"total pnl:       {m.total_pnl:.2f} ({m.total_pnl_percent:.2f}%)",
        f"max drawdown:    {m.max_drawdown:.2f} ({m.max_drawdown_percent:.2f}%)",
        f"avg win / loss:  {m.average_win:.2f} / {m.average_loss:.2f}",
        f"largest win:     {m.largest_win:.2f}",
        f"largest loss:    {m.largest_loss:.2f}",
        f"final capital:   {m.final_capital:.2f}",
    ]
    return "\n".join(lines)


def _cmd_backtest(ctx: CliContext, args: argparse.Namespace) -> int:
    from backtester.backtest.engine import BacktestConfig, run_backtest
    from backtester.backtest.io import load_candles_csv, validate_candles
    from backtester.backtest.strategy import load_strategy_file
    from backtester.core.config import Config
    from backtester.core.exceptions import BacktesterError
    from backtester.core.logging import configure_logging

    try:
        config = Config.load(ctx.repo_root)
        configure_logging(config.logging)

        candles = load_candles_csv(args.candles)
        validate_candles(candles)
        if not candles:
            print(f"error: no candles in {args.candles}", file=sys.stderr)
            return 2
        strategy = load_strategy_file(args.strategy)

        initial_capital = args.initial_capital if args.initial_capital is not None else config.backtest.initial_capital
        commission = args.commission if args.commission is not None else config.backtest.commission

        result = run_backtest(
            candles,
            BacktestConfig(strategy=strategy, initial_capital=initial_capital, commission=commission),
        )
    except BacktesterError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        print(f"{strategy.name}")
        print(_format_summary(result))
    return 0


def _cmd_api(ctx: CliContext, args: argparse.Namespace) -> int:
    from backtester.core.config import Config
    from backtester.core.exceptions import BacktesterError

    try:
        config = Config.load(ctx.repo_root)
    except BacktesterError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    from api.main import create_app

    # create_app raises on an empty auth token; api.main:app would be None.
    try:
        app = create_app(config)
    except RuntimeError as e:
        print(str(e), file=sys.stderr)
        return 2

    host = args.host or config.api.host
    port = args.port or config.api.port

    import uvicorn

    uvicorn.run(app, host=host, port=port, reload=False)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        _print_version()
        return 0

    if not args.command:
        parser.print_help()
        return 2

    ctx = CliContext(repo_root=_repo_root_from_cwd())

    dispatch: dict[str, Callable[[CliContext, argparse.Namespace], int]] = {
        "backtest": _cmd_backtest,
        "api": _cmd_api,
    }

    fn = dispatch.get(str(args.command))
    if fn is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 2

    return int(fn(ctx, args))


if __name__ == "__main__":
    raise SystemExit(main())
