"""
Application entry point.

This module defines a simple command-line interface for running the
copy trader in paper or live mode, and for turning the persisted
execution journal into a report.  It wires the exchange clients, the
risk engine, the executor and the polling loop together and restores
runtime state saved by a previous run.
"""

from __future__ import annotations

import argparse
import logging
from typing import List, Optional

from .config.schema import Config, load_config, validate_copy_mode, validate_ratio, validate_tif
from .data.hyperliquid_info import HyperliquidInfoClient
from .execution.exchange_client import ExchangeClient
from .execution.executor import Executor
from .execution.loop import CopyTradingLoop, LoopConfig
from .execution.risk_engine import RiskEngine
from .reporting.report import generate_execution_report
from .utils.persistence import StateStore


logger = logging.getLogger(__name__)


def _setup_logging(verbose: bool) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )


def build_components(config: Config, store: StateStore):
    """Create the risk engine, executor and loop from config and saved state.

    Saved operator settings override the configured defaults and go
    through the same validation as the YAML values.

    Raises
    ------
    ValueError
        If a saved setting is out of range.
    """
    notional_cap = float(store.get('notional_cap', config.trading.notional_cap_per_order_usd))
    if notional_cap < 0:
        raise ValueError(f"Saved notional_cap must be >= 0, got {notional_cap}")
    risk_engine = RiskEngine(
        max_leverage=float(store.get('max_leverage', config.risk.max_leverage)),
        max_total_notional=float(store.get('max_total_notional', config.risk.max_total_notional_usd)),
        cooldown_ms=int(store.get('cooldown_ms', config.risk.cooldown_ms_per_coin)),
    )
    exchange_client = ExchangeClient(config.hyperliquid, mode=config.mode)
    executor = Executor(exchange_client, risk_engine, dry_run=config.dry_run)
    loop = CopyTradingLoop(
        HyperliquidInfoClient(config.hyperliquid),
        executor,
        LoopConfig(
            poll_interval_ms=config.trading.poll_interval_ms,
            leader_addresses=tuple(store.get('leaders') or config.leaders),
            follower_address=config.follower.address,
            ratio=validate_ratio(store.get('ratio', config.trading.ratio)),
            notional_cap=notional_cap,
            tif=validate_tif(store.get('tif', config.trading.tif)),
            copy_mode=validate_copy_mode(store.get('copy_mode', config.trading.copy_mode)),
        ),
        dry_run=config.dry_run,
    )
    store.restore(loop, risk_engine, executor)
    return risk_engine, executor, loop


def run_trading(config: Config, enable: bool = False) -> None:
    """Run the copy trading loop until interrupted, then persist state."""
    store = StateStore(config.state_file)
    risk_engine, executor, loop = build_components(config, store)
    if enable:
        loop.enable()
    if config.mode == 'live' and executor.exchange_client.signer is None and not config.dry_run:
        logger.warning("Live mode without an order signer: every order submission will fail")

    def _persist(result) -> None:
        if result.executed_orders or result.errors:
            store.capture(loop, risk_engine, executor)
            store.save()

    loop.set_tick_complete_callback(_persist)
    logger.info(
        "Starting copy trader: mode=%s dry_run=%s leaders=%d enabled=%s",
        config.mode,
        config.dry_run,
        len(loop.get_config()['leader_addresses']),
        loop.is_enabled(),
    )
    try:
        loop.run()
    except KeyboardInterrupt:
        logger.info("Shutting down copy trader...")
        loop.stop()
    finally:
        store.capture(loop, risk_engine, executor)
        store.save()


def main(argv: Optional[List[str]] = None) -> None:
    """Parse command-line arguments and dispatch to the appropriate mode."""
    parser = argparse.ArgumentParser(description="Hyperliquid Copy Trader")
    parser.add_argument('mode', choices=['paper', 'live', 'report'], help="Operating mode")
    parser.add_argument('--config', default='config.yaml', help="Path to configuration YAML file")
    parser.add_argument('--dry-run', action='store_true', help="Log orders instead of sending them")
    parser.add_argument('--enable', action='store_true', help="Start with auto-copy enabled")
    parser.add_argument('--out', default='results', help="Output directory for the report mode")
    parser.add_argument('-v', '--verbose', action='store_true', help="Enable debug logging")
    args = parser.parse_args(argv)

    _setup_logging(args.verbose)

    config = load_config(args.config)

    if args.mode == 'report':
        records = StateStore(config.state_file).journal()
        generate_execution_report(records, out_dir=args.out)
        logging.info("Report for %d journal entries saved to the '%s' directory.", len(records), args.out)
        return

    # Override mode from CLI
    config.mode = args.mode
    if args.dry_run:
        config.dry_run = True
    run_trading(config, enable=args.enable)


if __name__ == '__main__':
    main()
