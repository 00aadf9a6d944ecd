"""
Order execution engine.

The `Executor` takes a batch of order requests, runs each one through
the `RiskEngine` and submits the survivors to the exchange client with
a bounded exponential-backoff retry.  Orders are processed strictly one
after another: later risk checks depend on the cooldowns and notional
consumed by earlier orders in the same batch.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, List, Mapping, Optional, Sequence, Tuple

from .models import ExecutionRecord, MarketData, OrderRequest, OrderResult, Position
from .risk_engine import RiskEngine
from ..utils.timeutils import now_ms, utc_now


logger = logging.getLogger(__name__)

NO_MARKET_PRICE = 'No market price available'


@dataclass
class ExecutionResult:
    """Outcome of one `execute_orders` batch."""
    success: bool = True
    executed_orders: List[OrderResult] = field(default_factory=list)
    rejected_orders: List[Tuple[OrderRequest, str]] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


class Executor:
    """Execute orders with risk checks, dry-run support and retries.

    Parameters
    ----------
    exchange_client
        Object exposing ``place_order(OrderRequest) -> OrderResult``.
    risk_engine : RiskEngine
        Gate consulted before every order.
    dry_run : bool
        When set, orders that pass the risk checks are logged and
        reported as filled without touching the exchange client.
    max_retries : int
        Total number of submission attempts per order.
    retry_delay_ms : int
        Base backoff; attempt ``n`` waits ``retry_delay_ms * 2**(n-1)``.
    sleep : callable
        Called with a delay in seconds.  Injected in tests.
    journal_size : int
        Number of most recent `ExecutionRecord` entries kept.
    """

    def __init__(
        self,
        exchange_client,
        risk_engine: RiskEngine,
        dry_run: bool = False,
        max_retries: int = 3,
        retry_delay_ms: int = 1000,
        sleep: Callable[[float], None] = time.sleep,
        journal_size: int = 1000,
    ) -> None:
        self.exchange_client = exchange_client
        self.risk_engine = risk_engine
        self.dry_run = dry_run
        self.max_retries = max_retries
        self.retry_delay_ms = retry_delay_ms
        self._sleep = sleep
        self._counters: Dict[str, int] = {'exec_count': 0, 'reject_count': 0, 'error_count': 0}
        self._journal: Deque[ExecutionRecord] = deque(maxlen=journal_size)

    def execute_orders(
        self,
        orders: Sequence[OrderRequest],
        current_positions: Sequence[Position],
        current_total_notional: float,
        market_data: Mapping[str, MarketData],
    ) -> ExecutionResult:
        """Run every order in `orders` through risk checks and submission.

        A failing order never stops the batch; it is recorded in the
        result and the next order is processed.
        """
        result = ExecutionResult()
        total_notional = current_total_notional

        for order in orders:
            mark_price = 0.0
            try:
                market = market_data.get(order.coin)
                mark_price = market.price if market is not None else 0.0

                if not mark_price:
                    logger.warning("No market price available for %s - skipping order", order.coin)
                    result.rejected_orders.append((order, NO_MARKET_PRICE))
                    self._record(order, 0.0, 'skipped', NO_MARKET_PRICE)
                    continue

                check = self.risk_engine.check_order(order, current_positions, total_notional, mark_price)
                if not check.allowed:
                    reason = check.reason or 'Risk check failed'
                    level = logging.DEBUG if 'Cooldown' in reason else logging.WARNING
                    logger.log(level, "Order rejected by risk engine: %s (%s)", order.sanitized(), reason)
                    result.rejected_orders.append((order, reason))
                    self._counters['reject_count'] += 1
                    self._record(order, mark_price, 'rejected', reason)
                    continue

                if self.dry_run:
                    logger.info("DRY RUN: order would be executed: %s", order.sanitized())
                    order_result = OrderResult(success=True, order_id=f"dryrun-{now_ms()}", filled_size=order.size)
                else:
                    order_result = self.execute_with_retry(order)

                if order_result.success:
                    result.executed_orders.append(order_result)
                    self.risk_engine.record_execution(order.coin)
                    self._counters['exec_count'] += 1
                    if not order.reduce_only:
                        total_notional += order.size * mark_price
                    self._record(order, mark_price, 'executed', order_id=order_result.order_id)
                    logger.info("Order executed: %s (id=%s)", order.sanitized(), order_result.order_id)
                else:
                    error = order_result.error or 'Unknown error'
                    self._fail(result, order, mark_price, error)
                    logger.error("Order execution failed: %s (%s)", order.sanitized(), error)
            except Exception as exc:
                self._fail(result, order, mark_price, str(exc))
                logger.exception("Unexpected error while executing %s", order.sanitized())

        return result

    def execute_with_retry(self, order: OrderRequest) -> OrderResult:
        """Submit `order`, retrying failures with exponential backoff.

        Failed results and raised exceptions are retried identically.
        Only the error from the last attempt is returned.
        """
        last_error = ''
        for attempt in range(1, self.max_retries + 1):
            try:
                order_result = self.exchange_client.place_order(order)
                if order_result.success:
                    return order_result
                last_error = order_result.error or 'Unknown error'
                logger.warning(
                    "Order attempt %d/%d failed for %s: %s",
                    attempt,
                    self.max_retries,
                    order.coin,
                    last_error,
                )
            except Exception as exc:
                last_error = str(exc) or 'Unknown error'
                logger.error(
                    "Exception on order attempt %d/%d for %s: %s",
                    attempt,
                    self.max_retries,
                    order.coin,
                    last_error,
                )
            if attempt < self.max_retries:
                self._sleep(self.retry_delay_ms * 2 ** (attempt - 1) / 1000.0)

        return OrderResult(success=False, error=last_error or 'Max retries exceeded')

    def _fail(self, result: ExecutionResult, order: OrderRequest, mark_price: float, error: str) -> None:
        result.errors.append(error)
        result.success = False
        self.risk_engine.record_error()
        self._counters['error_count'] += 1
        self._record(order, mark_price, 'error', error)

    def _record(
        self,
        order: OrderRequest,
        mark_price: float,
        status: str,
        reason: Optional[str] = None,
        order_id: Optional[str] = None,
    ) -> None:
        self._journal.append(
            ExecutionRecord(
                timestamp=utc_now(),
                coin=order.coin,
                side=order.side,
                size=order.size,
                mark_price=mark_price,
                reduce_only=order.reduce_only,
                status=status,
                reason=reason,
                order_id=order_id,
            )
        )

    def get_counters(self) -> Dict[str, int]:
        return dict(self._counters)

    def reset_counters(self) -> None:
        for key in self._counters:
            self._counters[key] = 0

    def restore_counters(self, counters: Mapping[str, int]) -> None:
        for key in self._counters:
            if key in counters:
                self._counters[key] = int(counters[key])

    def get_journal(self) -> List[ExecutionRecord]:
        return list(self._journal)

    def restore_journal(self, records: Sequence[ExecutionRecord]) -> None:
        self._journal.extend(records)
