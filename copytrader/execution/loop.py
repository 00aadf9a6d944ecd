"""
Copy trading loop.

The `CopyTradingLoop` polls the leader and follower accounts, builds
follower targets from the aggregated leader book and hands the
resulting orders to the `Executor`.  Ticks run strictly one after
another; the next tick starts one poll interval after the previous one
finished.  Leader fetches inside a tick are fanned out to a thread pool
and all of them settle before aggregation starts.

Runtime parameters live in an immutable `LoopConfig` that is swapped
as a whole by `update_params`.  A tick reads it once at the start, so
an update never takes effect half-way through a tick.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace, asdict
from typing import Callable, Dict, List, Optional, Sequence

from ..config.schema import validate_copy_mode, validate_ratio, validate_tif
from ..strategy.aggregator import PositionChange, aggregate, detect_orphaned_positions, detect_position_changes
from ..strategy.targeting import MIN_DELTA, compute_targets, generate_orders
from .executor import ExecutionResult, Executor
from .models import OrderRequest, Position, PositionTarget
from ..utils.timeutils import utc_now


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoopConfig:
    """Parameters read at the top of every tick."""
    poll_interval_ms: int
    leader_addresses: tuple
    follower_address: str
    ratio: float
    notional_cap: float
    tif: str = 'IOC'
    copy_mode: str = 'full'


def filter_targets(targets: Sequence[PositionTarget], copy_mode: str) -> List[PositionTarget]:
    """Apply the copy mode to a list of targets.

    ``entry-only`` keeps opens from flat and closes to flat and drops
    pure resizes.  ``signals-only`` drops everything.
    """
    if copy_mode == 'signals-only':
        return []
    if copy_mode == 'entry-only':
        kept = []
        for t in targets:
            opening = abs(t.current_size) < MIN_DELTA and abs(t.target_size) > MIN_DELTA
            closing = abs(t.current_size) > MIN_DELTA and abs(t.target_size) < MIN_DELTA
            if opening or closing:
                kept.append(t)
        return kept
    return list(targets)


class CopyTradingLoop:
    """Mirror leader positions into the follower account on a fixed cadence.

    Parameters
    ----------
    info_client
        Read collaborator exposing ``get_positions``, ``get_market_data``
        and ``get_account_info``.
    executor : Executor
        Runs risk checks and submits orders.
    config : LoopConfig
        Initial runtime parameters.
    dry_run : bool
        Forces the effective per-order notional cap to 0 so orders are not
        chunked.  The configured cap is still tracked for persistence.
    """

    def __init__(self, info_client, executor: Executor, config: LoopConfig, dry_run: bool = False) -> None:
        self.info_client = info_client
        self.executor = executor
        self.dry_run = dry_run
        # operator value; the effective cap stays 0 in dry-run
        self._configured_notional_cap = float(config.notional_cap)
        if dry_run:
            config = replace(config, notional_cap=0)
        self._config = replace(config, leader_addresses=tuple(config.leader_addresses))
        self._config_lock = threading.Lock()
        self._enabled = False
        self.running = False
        self._stop_event = threading.Event()
        self._previous_leader_positions: Dict[str, List[Position]] = {}
        self._on_position_change: Optional[Callable[[str, List[PositionChange]], None]] = None
        self._on_positions_update: Optional[Callable[[List[Position]], None]] = None
        self._on_tick_complete: Optional[Callable[[ExecutionResult], None]] = None

    # -- operator surface ------------------------------------------------

    def enable(self) -> None:
        self._enabled = True
        logger.info("Auto-copy enabled")

    def disable(self) -> None:
        self._enabled = False
        logger.info("Auto-copy disabled")

    def is_enabled(self) -> bool:
        return self._enabled

    def update_params(
        self,
        ratio: Optional[float] = None,
        notional_cap: Optional[float] = None,
        tif: Optional[str] = None,
        leader_addresses: Optional[Sequence[str]] = None,
        copy_mode: Optional[str] = None,
    ) -> LoopConfig:
        """Replace the given parameters; the change applies from the next tick.

        Raises
        ------
        ValueError
            If a value is out of range; the config is then left unchanged.
        """
        changes = {}
        configured_cap = None
        if ratio is not None:
            changes['ratio'] = validate_ratio(ratio)
        if notional_cap is not None:
            if notional_cap < 0:
                raise ValueError(f"notional_cap must be >= 0, got {notional_cap}")
            configured_cap = float(notional_cap)
            changes['notional_cap'] = 0.0 if self.dry_run else configured_cap
        if tif is not None:
            changes['tif'] = validate_tif(tif)
        if leader_addresses is not None:
            changes['leader_addresses'] = tuple(leader_addresses)
        if copy_mode is not None:
            changes['copy_mode'] = validate_copy_mode(copy_mode)
        with self._config_lock:
            self._config = replace(self._config, **changes)
            if configured_cap is not None:
                self._configured_notional_cap = configured_cap
            config = self._config
        if changes:
            logger.info("Loop parameters updated: %s", changes)
        return config

    def get_config(self) -> dict:
        with self._config_lock:
            snapshot = asdict(self._config)
        snapshot['leader_addresses'] = list(snapshot['leader_addresses'])
        snapshot['enabled'] = self._enabled
        snapshot['dry_run'] = self.dry_run
        snapshot['configured_notional_cap'] = self._configured_notional_cap
        return snapshot

    def set_position_change_callback(self, callback: Callable[[str, List[PositionChange]], None]) -> None:
        self._on_position_change = callback

    def set_positions_update_callback(self, callback: Callable[[List[Position]], None]) -> None:
        self._on_positions_update = callback

    def set_tick_complete_callback(self, callback: Callable[[ExecutionResult], None]) -> None:
        self._on_tick_complete = callback

    # -- scheduling ------------------------------------------------------

    def run(self) -> None:
        """Poll until `stop()` is called.

        Exceptions escaping a tick are logged and the loop keeps going.
        """
        if self.running:
            logger.warning("Loop already running")
            return
        self.running = True
        self._stop_event.clear()
        logger.info("Copy trading loop started")
        while self.running:
            if self._enabled:
                try:
                    self.tick()
                except Exception:
                    logger.exception("Error in loop tick")
            else:
                logger.debug("Loop disabled - skipping tick")
            with self._config_lock:
                interval_s = self._config.poll_interval_ms / 1000.0
            self._stop_event.wait(interval_s)
        logger.info("Copy trading loop stopped")

    def stop(self) -> None:
        self.running = False
        self._stop_event.set()
        logger.info("Stopping copy trading loop...")

    # -- tick ------------------------------------------------------------

    def _fetch_leaders(self, leaders: Sequence[str]) -> Dict[str, List[Position]]:
        fetched: Dict[str, List[Position]] = {}
        if not leaders:
            return fetched
        with ThreadPoolExecutor(max_workers=len(leaders)) as pool:
            futures = {leader: pool.submit(self.info_client.get_positions, leader) for leader in leaders}
        for leader, future in futures.items():
            try:
                positions = list(future.result())
            except Exception as exc:
                logger.error("Failed to fetch positions for leader %s: %s", leader, exc)
                continue
            fetched[leader] = positions
            previous = self._previous_leader_positions.get(leader, [])
            self._previous_leader_positions[leader] = positions
            if self._on_position_change is None:
                continue
            changes = detect_position_changes(previous, positions)
            if changes:
                try:
                    self._on_position_change(leader, changes)
                except Exception:
                    logger.exception("Position change callback failed for leader %s", leader)
        return fetched

    def tick(self) -> Optional[ExecutionResult]:
        """Run one polling iteration.

        Returns
        -------
        ExecutionResult or None
            The executor's result, or `None` when the tick ended before
            any order was sent.
        """
        with self._config_lock:
            config = self._config
        logger.debug("Loop tick starting")

        leader_positions = self._fetch_leaders(config.leader_addresses)
        if not leader_positions:
            logger.warning("No leader positions fetched - skipping tick")
            return None

        try:
            follower_positions = list(self.info_client.get_positions(config.follower_address))
        except Exception as exc:
            logger.error("Failed to fetch follower positions: %s", exc)
            return None
        if self._on_positions_update is not None:
            try:
                self._on_positions_update(follower_positions)
            except Exception:
                logger.exception("Positions update callback failed")
        if follower_positions and not any(leader_positions.values()):
            logger.warning(
                "All %d leader(s) reported no open positions - closing %d follower position(s)",
                len(leader_positions),
                len(follower_positions),
            )

        aggregated = aggregate(leader_positions)
        orphaned = detect_orphaned_positions(follower_positions, aggregated)
        if orphaned:
            logger.info("Detected orphaned positions, closing: %s", orphaned)
            now = utc_now()
            for coin in orphaned:
                aggregated[coin] = Position(coin=coin, size=0.0, updated_at=now)

        follower_map = {p.coin: p for p in follower_positions}
        all_targets = compute_targets(aggregated, follower_map, config.ratio)
        targets = filter_targets(all_targets, config.copy_mode)
        if len(targets) < len(all_targets):
            logger.debug("Copy mode %s filtered %d target(s)", config.copy_mode, len(all_targets) - len(targets))
        if not targets:
            logger.debug("No targets to execute")
            return None
        logger.info("Computed %d position target(s)", len(targets))

        market_data = self.info_client.get_market_data(sorted({t.coin for t in targets}))
        orders: List[OrderRequest] = []
        for target in targets:
            market = market_data.get(target.coin)
            mark_price = market.price if market is not None else 0.0
            if not mark_price:
                logger.warning("No market price for %s - skipping target", target.coin)
                continue
            orders.extend(generate_orders(target, mark_price, config.notional_cap, config.tif))
        if not orders:
            logger.debug("No orders to execute")
            return None

        account = self.info_client.get_account_info(config.follower_address)
        logger.info("Executing %d order(s)", len(orders))
        result = self.executor.execute_orders(orders, follower_positions, account.total_notional, market_data)
        logger.info(
            "Execution completed: executed=%d rejected=%d errors=%d",
            len(result.executed_orders),
            len(result.rejected_orders),
            len(result.errors),
        )
        if self._on_tick_complete is not None:
            try:
                self._on_tick_complete(result)
            except Exception:
                logger.exception("Tick complete callback failed")
        return result
