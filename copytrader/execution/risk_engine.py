"""
Pre-trade risk checks.

The `RiskEngine` gates every order before it reaches the exchange.  It
tracks four independent conditions: operator panic mode, an automatic
circuit breaker fed by execution errors, a per-coin cooldown and two
static ceilings (total notional and approximate leverage).  Reduce-only
orders skip the ceilings so exposure can always be shrunk.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Mapping, Optional

from .models import BUY, OrderRequest, Position
from ..utils.timeutils import now_ms


logger = logging.getLogger(__name__)

CIRCUIT_BREAKER_ERROR_THRESHOLD = 5
CIRCUIT_BREAKER_WINDOW_MS = 5 * 60 * 1000


@dataclass(frozen=True)
class RiskCheckResult:
    allowed: bool
    reason: Optional[str] = None


class RiskEngine:
    """Validate orders against panic, circuit breaker, cooldown and limits.

    Parameters
    ----------
    max_leverage : float
        Ceiling on the approximate projected leverage of a position.
    max_total_notional : float
        Ceiling on the account's total notional after the order (USD).
    cooldown_ms : int
        Minimum time between two executions on the same coin.
    clock : callable, optional
        Returns the current time in milliseconds.  Injected in tests.
    """

    def __init__(
        self,
        max_leverage: float,
        max_total_notional: float,
        cooldown_ms: int,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.max_leverage = max_leverage
        self.max_total_notional = max_total_notional
        self.cooldown_ms = cooldown_ms
        self.panic_mode = False
        self.auto_trading_disabled = False
        self._clock = clock
        self._last_exec_by_coin: Dict[str, int] = {}
        self._error_count = 0
        self._window_start = clock()
        self._lock = threading.RLock()

    def check_order(
        self,
        order: OrderRequest,
        current_positions: Iterable[Position],
        current_total_notional: float,
        mark_price: float,
    ) -> RiskCheckResult:
        """Return the first failing check for `order`, or an allowed result.

        Checks run in a fixed order: panic, circuit breaker, cooldown,
        total notional, leverage.
        """
        with self._lock:
            if self.panic_mode and not order.reduce_only:
                return RiskCheckResult(False, 'PANIC mode active - only reduce-only orders allowed')

            if self.auto_trading_disabled and not order.reduce_only:
                return RiskCheckResult(False, 'Auto-trading disabled by circuit breaker')

            remaining = self.get_cooldown_remaining(order.coin)
            if remaining > 0:
                return RiskCheckResult(False, f"Cooldown active for {order.coin} ({remaining}ms remaining)")

            if order.reduce_only:
                return RiskCheckResult(True)

            projected_total = current_total_notional + order.size * mark_price
            if projected_total > self.max_total_notional:
                return RiskCheckResult(
                    False,
                    f"Max total notional exceeded: {projected_total:.2f} > {self.max_total_notional}",
                )

            # Approximation: real leverage depends on margin mode and collateral.
            position = next((p for p in current_positions if p.coin == order.coin), None)
            current_size = position.size if position is not None else 0.0
            new_size = current_size + order.size if order.side == BUY else current_size - order.size
            new_notional = abs(new_size) * mark_price
            margin_used = position.margin_used if position is not None and position.margin_used else None
            if margin_used is None and self.max_leverage > 0:
                margin_used = new_notional / self.max_leverage
            projected_leverage = new_notional / margin_used if margin_used else 0.0
            if projected_leverage > self.max_leverage:
                logger.warning(
                    "Leverage check for %s: projected %.2f > %s (approximation)",
                    order.coin,
                    projected_leverage,
                    self.max_leverage,
                )
                return RiskCheckResult(
                    False,
                    f"Max leverage exceeded for {order.coin}: {projected_leverage:.2f} > {self.max_leverage}",
                )

            return RiskCheckResult(True)

    def record_execution(self, coin: str) -> None:
        """Start the cooldown for `coin`."""
        with self._lock:
            self._last_exec_by_coin[coin] = self._clock()
        logger.debug("Recorded execution timestamp for %s", coin)

    def record_error(self) -> None:
        """Count an execution error and trip the circuit breaker at the threshold."""
        with self._lock:
            now = self._clock()
            if now - self._window_start > CIRCUIT_BREAKER_WINDOW_MS:
                self._error_count = 0
                self._window_start = now
            self._error_count += 1
            logger.warning(
                "Execution error recorded (%d/%d)", self._error_count, CIRCUIT_BREAKER_ERROR_THRESHOLD
            )
            if self._error_count >= CIRCUIT_BREAKER_ERROR_THRESHOLD and not self.auto_trading_disabled:
                self.auto_trading_disabled = True
                logger.error("Circuit breaker triggered - auto-trading disabled")

    def enable_panic_mode(self) -> None:
        with self._lock:
            self.panic_mode = True
        logger.warning("PANIC mode enabled")

    def disable_panic_mode(self) -> None:
        with self._lock:
            self.panic_mode = False
        logger.info("PANIC mode disabled")

    def reset_circuit_breaker(self) -> None:
        """Re-enable auto-trading after the circuit breaker tripped."""
        with self._lock:
            self.auto_trading_disabled = False
            self._error_count = 0
            self._window_start = self._clock()
        logger.info("Circuit breaker reset - auto-trading re-enabled")

    def update_params(
        self,
        max_leverage: Optional[float] = None,
        max_total_notional: Optional[float] = None,
        cooldown_ms: Optional[int] = None,
    ) -> None:
        """Replace any subset of the tunable limits."""
        with self._lock:
            if max_leverage is not None:
                self.max_leverage = max_leverage
            if max_total_notional is not None:
                self.max_total_notional = max_total_notional
            if cooldown_ms is not None:
                self.cooldown_ms = cooldown_ms
        logger.info(
            "Risk parameters updated: max_leverage=%s max_total_notional=%s cooldown_ms=%s",
            self.max_leverage,
            self.max_total_notional,
            self.cooldown_ms,
        )

    def get_state(self) -> dict:
        with self._lock:
            return {
                'panic_mode': self.panic_mode,
                'auto_trading_disabled': self.auto_trading_disabled,
                'max_leverage': self.max_leverage,
                'max_total_notional': self.max_total_notional,
                'cooldown_ms': self.cooldown_ms,
                'circuit_breaker_errors': self._error_count,
            }

    def get_cooldown_remaining(self, coin: str) -> int:
        """Milliseconds until `coin` may trade again; 0 if never executed."""
        with self._lock:
            last_exec = self._last_exec_by_coin.get(coin)
            if last_exec is None:
                return 0
            return max(0, self.cooldown_ms - (self._clock() - last_exec))

    def last_executions(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._last_exec_by_coin)

    def restore_cooldowns(self, last_exec_by_coin: Mapping[str, int]) -> None:
        """Seed cooldown timestamps from persisted state."""
        with self._lock:
            self._last_exec_by_coin.update({coin: int(ts) for coin, ts in last_exec_by_coin.items()})
