"""Command-line interface for running the rebalancer."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
from datetime import date
from typing import Iterable, List, Optional

from .config import RelevConfig, load_config, load_env_file
from .errors import ConfigError, RelevError
from .exchange import OKXClient
from .journal import TradeJournal
from .notifications import TelegramNotifier
from .scheduler import DailyScheduler
from .sinks import RecordSink, rebalance_and_publish
from .strategy.calculator import evaluate
from .strategy.orchestrator import RebalanceOrchestrator

logger = logging.getLogger(__name__)


def _parse_args(argv: Optional[Iterable[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="relever",
        description="Keep an OKX perpetual position at a fixed leverage multiple of account equity.",
    )
    parser.add_argument(
        "--config",
        default=os.getenv("RELEVER_CONFIG"),
        help="Optional YAML/JSON file with defaults (environment variables win).",
    )
    parser.add_argument(
        "--env-file",
        default=os.getenv("RELEVER_ENV_FILE"),
        help="Env file to load before reading configuration (default: .env if present).",
    )
    parser.add_argument(
        "--log-level",
        help="Logging level (default: LOG_LEVEL env var, else INFO).",
    )
    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("run", help="Start the daily scheduler (default).")
    subparsers.add_parser("rebalance", help="Run one rebalance cycle immediately.")
    subparsers.add_parser("inspect", help="Show account snapshot and decision without trading.")
    summary = subparsers.add_parser("summary", help="Print the journal summary for a day.")
    summary.add_argument("--date", help="UTC date as YYYY-MM-DD (default: today).")
    summary.add_argument(
        "--log-dir",
        default=os.getenv("LOG_DIR", "logs"),
        help="Journal directory (default: LOG_DIR env var or ./logs).",
    )
    args = parser.parse_args(argv)
    if args.command is None:
        args.command = "run"
    return args


def _configure_logging(level_name: str) -> None:
    level = getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _build_client(config: RelevConfig) -> OKXClient:
    return OKXClient(
        config.credentials,
        base_url=config.base_url,
        timeout=config.http_timeout,
    )


def _build_sinks(config: RelevConfig) -> List[RecordSink]:
    symbol = config.trading.symbol
    sinks: List[RecordSink] = [TradeJournal(config.log_dir, symbol=symbol)]
    if config.telegram.enabled:
        sinks.append(TelegramNotifier(config.telegram, symbol=symbol))
    return sinks


async def _run_scheduler(config: RelevConfig) -> int:
    trading = config.trading
    async with _build_client(config) as client:
        orchestrator = RebalanceOrchestrator(client, trading)
        sinks = _build_sinks(config)
        scheduler = DailyScheduler(
            lambda: rebalance_and_publish(orchestrator, sinks),
            config.schedule.hour,
            config.schedule.minute,
        )

        stop_event = asyncio.Event()

        def _handle_signal(*_: object) -> None:
            logger.warning("Shutdown signal received, stopping scheduler")
            stop_event.set()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, _handle_signal)

        logger.info(
            "Target: %s at %.2fx leverage, min adjustment %s %s",
            trading.instrument,
            trading.leverage,
            trading.min_adjustment,
            trading.symbol,
        )
        logger.info("Mode: %s", "DRY RUN" if trading.dry_run else "LIVE TRADING")
        await scheduler.run(stop_event)
    return 0


async def _rebalance_once(config: RelevConfig) -> int:
    async with _build_client(config) as client:
        orchestrator = RebalanceOrchestrator(client, config.trading)
        record = await rebalance_and_publish(orchestrator, _build_sinks(config))
    return 0 if record.success else 1


async def _inspect(config: RelevConfig) -> int:
    trading = config.trading
    async with _build_client(config) as client:
        orchestrator = RebalanceOrchestrator(client, trading)
        try:
            snapshot = await orchestrator.fetch_snapshot()
            decision = evaluate(snapshot, trading.leverage, trading.min_adjustment)
        except RelevError as exc:
            print(f"Error: {exc}")
            return 1
        contract_value = await client.get_contract_value(trading.instrument)

    print(f"Instrument:        {trading.instrument}")
    print(f"Account equity:    {snapshot.equity:,.2f} USDT")
    print(f"Last price:        {snapshot.price:,.4f} USDT")
    if contract_value.is_ok:
        print(f"Contract value:    {contract_value.value} {trading.symbol}")
    else:
        print(f"Contract value:    unavailable ({contract_value.error})")
    print(f"Current position:  {snapshot.position:.4f} {trading.symbol}")
    print(f"Target position:   {decision.target:.4f} {trading.symbol} ({trading.leverage}x)")
    print(f"Delta:             {decision.delta:+.4f} {trading.symbol}")
    print(f"Action:            {decision.action.value.upper()}")
    return 0


def _print_summary(log_dir: str, day: Optional[str]) -> int:
    try:
        target_day = date.fromisoformat(day) if day else None
    except ValueError:
        print(f"Invalid --date {day!r}; expected YYYY-MM-DD")
        return 2
    summary = TradeJournal(log_dir).daily_summary(target_day)
    print(f"Trade summary for {summary.date}")
    print(f"  Records:        {summary.total_trades}")
    print(f"  Successful:     {summary.successful_trades}")
    print(f"  Failed:         {summary.failed_trades}")
    print(f"  Total bought:   {summary.total_bought:.4f}")
    print(f"  Total sold:     {summary.total_sold:.4f}")
    print(f"  Average equity: {summary.average_equity:,.2f}")
    return 0


def run_cli(argv: Optional[Iterable[str]] = None) -> int:
    args = _parse_args(argv)
    try:
        load_env_file(args.env_file)
    except ConfigError as exc:
        _configure_logging(args.log_level or "INFO")
        logger.critical("Configuration error: %s", exc)
        return 2

    if args.command == "summary":
        _configure_logging(args.log_level or os.getenv("LOG_LEVEL") or "INFO")
        return _print_summary(args.log_dir, args.date)

    try:
        config = load_config(args.config)
    except ConfigError as exc:
        _configure_logging(args.log_level or "INFO")
        logger.critical("Configuration error: %s", exc)
        return 2

    _configure_logging(args.log_level or config.log_level)
    handlers = {
        "run": _run_scheduler,
        "rebalance": _rebalance_once,
        "inspect": _inspect,
    }
    return asyncio.run(handlers[args.command](config))


def main() -> None:
    raise SystemExit(run_cli())


__all__ = ["main", "run_cli"]


if __name__ == "__main__":  # pragma: no cover
    main()
