import os
import sys

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)
if CURRENT_DIR not in sys.path:
    sys.path.insert(0, CURRENT_DIR)

from copytrader.execution.models import OrderRequest
from copytrader.execution.risk_engine import CIRCUIT_BREAKER_WINDOW_MS, RiskEngine
from fakes import FakeClock, pos

import unittest


def order(side='buy', size=0.01, reduce_only=False, coin='BTC'):
    return OrderRequest(coin=coin, side=side, size=size, tif='IOC', reduce_only=reduce_only)


class TestRiskEngine(unittest.TestCase):
    def setUp(self) -> None:
        self.clock = FakeClock()
        # max leverage 5, max notional 2000, cooldown 2s
        self.engine = RiskEngine(5, 2000, 2000, clock=self.clock)

    def test_allows_order_when_all_checks_pass(self) -> None:
        result = self.engine.check_order(order(), [], 500, 50000)
        self.assertTrue(result.allowed)
        self.assertIsNone(result.reason)

    def test_panic_mode_blocks_only_increasing_orders(self) -> None:
        self.engine.enable_panic_mode()
        rejected = self.engine.check_order(order(), [], 500, 50000)
        self.assertFalse(rejected.allowed)
        self.assertIn('PANIC', rejected.reason)
        self.assertTrue(self.engine.check_order(order('sell', reduce_only=True), [], 500, 50000).allowed)
        self.engine.disable_panic_mode()
        self.assertTrue(self.engine.check_order(order(), [], 500, 50000).allowed)

    def test_cooldown_after_execution(self) -> None:
        self.engine.record_execution('BTC')
        result = self.engine.check_order(order(), [], 500, 50000)
        self.assertFalse(result.allowed)
        self.assertIn('Cooldown', result.reason)
        self.assertIn('2000ms', result.reason)
        # other coins are unaffected
        self.assertTrue(self.engine.check_order(order(coin='ETH'), [], 500, 50000).allowed)

        self.clock.advance(1500)
        self.assertEqual(self.engine.get_cooldown_remaining('BTC'), 500)
        self.clock.advance(500)
        self.assertTrue(self.engine.check_order(order(), [], 500, 50000).allowed)
        self.assertEqual(self.engine.get_cooldown_remaining('BTC'), 0)

    def test_cooldown_also_applies_to_reduce_only(self) -> None:
        self.engine.record_execution('BTC')
        result = self.engine.check_order(order('sell', reduce_only=True), [], 500, 50000)
        self.assertIn('Cooldown', result.reason)

    def test_never_executed_coin_has_no_cooldown(self) -> None:
        self.assertEqual(self.engine.get_cooldown_remaining('XYZ'), 0)

    def test_total_notional_limit(self) -> None:
        result = self.engine.check_order(order(size=0.1), [], 500, 50000)
        self.assertFalse(result.allowed)
        self.assertIn('notional', result.reason)
        allowed = self.engine.check_order(order('sell', size=0.1, reduce_only=True), [pos('BTC', 1)], 500, 50000)
        self.assertTrue(allowed.allowed)

    def test_leverage_limit_uses_existing_margin(self) -> None:
        self.engine.update_params(max_total_notional=1_000_000)
        position = pos('BTC', 1, margin_used=5000)
        result = self.engine.check_order(order(size=0.01), [position], 0, 50000)
        self.assertFalse(result.allowed)
        self.assertIn('leverage', result.reason)
        # a reduce-only order skips the leverage check
        self.assertTrue(self.engine.check_order(order('sell', 0.5, True), [position], 0, 50000).allowed)

    def test_leverage_fallback_passes_fresh_positions(self) -> None:
        self.engine.update_params(max_total_notional=1_000_000)
        self.assertTrue(self.engine.check_order(order(size=10), [], 0, 50000).allowed)

    def test_check_priority(self) -> None:
        self.engine.enable_panic_mode()
        for _ in range(5):
            self.engine.record_error()
        self.engine.record_execution('BTC')
        self.assertIn('PANIC', self.engine.check_order(order(size=1), [], 500, 50000).reason)
        self.engine.disable_panic_mode()
        self.assertIn('circuit breaker', self.engine.check_order(order(size=1), [], 500, 50000).reason)
        self.engine.reset_circuit_breaker()
        self.assertIn('Cooldown', self.engine.check_order(order(size=1), [], 500, 50000).reason)

    def test_circuit_breaker_trips_after_five_errors(self) -> None:
        for _ in range(4):
            self.engine.record_error()
        self.assertFalse(self.engine.get_state()['auto_trading_disabled'])
        self.engine.record_error()
        state = self.engine.get_state()
        self.assertTrue(state['auto_trading_disabled'])
        self.assertEqual(state['circuit_breaker_errors'], 5)

        rejected = self.engine.check_order(order(), [], 500, 50000)
        self.assertIn('circuit breaker', rejected.reason)
        self.assertTrue(self.engine.check_order(order('sell', reduce_only=True), [], 500, 50000).allowed)

        # time alone does not re-enable trading
        self.clock.advance(CIRCUIT_BREAKER_WINDOW_MS * 3)
        self.assertTrue(self.engine.get_state()['auto_trading_disabled'])

        self.engine.reset_circuit_breaker()
        state = self.engine.get_state()
        self.assertFalse(state['auto_trading_disabled'])
        self.assertEqual(state['circuit_breaker_errors'], 0)

    def test_error_window_expires(self) -> None:
        for _ in range(4):
            self.engine.record_error()
        self.clock.advance(CIRCUIT_BREAKER_WINDOW_MS + 1)
        self.engine.record_error()
        state = self.engine.get_state()
        self.assertEqual(state['circuit_breaker_errors'], 1)
        self.assertFalse(state['auto_trading_disabled'])

    def test_update_params_replaces_subset(self) -> None:
        self.engine.update_params(cooldown_ms=100)
        state = self.engine.get_state()
        self.assertEqual(state['cooldown_ms'], 100)
        self.assertEqual(state['max_leverage'], 5)
        self.assertEqual(state['max_total_notional'], 2000)

    def test_restore_cooldowns(self) -> None:
        self.engine.restore_cooldowns({'ETH': self.clock.now - 500})
        self.assertEqual(self.engine.get_cooldown_remaining('ETH'), 1500)
        self.assertEqual(self.engine.last_executions(), {'ETH': self.clock.now - 500})


if __name__ == '__main__':
    unittest.main()
