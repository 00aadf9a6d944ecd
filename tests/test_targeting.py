import os
import sys

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)
if CURRENT_DIR not in sys.path:
    sys.path.insert(0, CURRENT_DIR)

from copytrader.execution.models import PositionTarget
from copytrader.strategy.targeting import calculate_target, compute_targets, generate_orders
from fakes import pos

import unittest


class TestCalculateTarget(unittest.TestCase):
    def test_scales_leader_size_by_ratio(self) -> None:
        cases = [
            ((10, 0, 0.2), (2.0, 2.0)),
            ((5, 10, 0.5), (2.5, -7.5)),
            ((0, 5, 0.2), (0.0, -5.0)),
            ((-10, 0, 0.2), (-2.0, -2.0)),
        ]
        for (leader, current, ratio), (target_size, delta) in cases:
            target = calculate_target(leader, current, ratio)
            self.assertEqual(target.target_size, target_size)
            self.assertEqual(target.delta, delta)
            self.assertEqual(target.current_size, current)

    def test_delta_is_exact_difference(self) -> None:
        for leader, current, ratio in [(3.3, 1.1, 0.37), (-7.25, 2.5, 0.9), (1e-3, -4.0, 0.15)]:
            target = calculate_target(leader, current, ratio)
            self.assertEqual(target.delta, leader * ratio - current)

    def test_out_of_range_ratio_is_not_rejected(self) -> None:
        self.assertEqual(calculate_target(10, 0, 2.0).target_size, 20.0)


class TestComputeTargets(unittest.TestCase):
    def test_excludes_targets_inside_dead_zone(self) -> None:
        targets = compute_targets({'BTC': pos('BTC', 10)}, {'BTC': pos('BTC', 2)}, 0.2)
        self.assertEqual(targets, [])

    def test_follower_only_coin_is_closed(self) -> None:
        targets = compute_targets({}, {'BTC': pos('BTC', 5)}, 0.2)
        self.assertEqual(len(targets), 1)
        self.assertEqual(targets[0].coin, 'BTC')
        self.assertEqual(targets[0].target_size, 0.0)
        self.assertEqual(targets[0].delta, -5.0)

    def test_union_of_leader_and_follower_coins(self) -> None:
        leaders = {'BTC': pos('BTC', 10), 'ETH': pos('ETH', -20)}
        follower = {'SOL': pos('SOL', 3)}
        by_coin = {t.coin: t for t in compute_targets(leaders, follower, 0.5)}
        self.assertEqual(set(by_coin), {'BTC', 'ETH', 'SOL'})
        self.assertEqual(by_coin['BTC'].delta, 5.0)
        self.assertEqual(by_coin['ETH'].delta, -10.0)
        self.assertEqual(by_coin['SOL'].delta, -3.0)


class TestGenerateOrders(unittest.TestCase):
    def test_single_buy_when_opening_from_flat(self) -> None:
        target = PositionTarget(coin='BTC', target_size=2, current_size=0, delta=2)
        orders = generate_orders(target, 50000, 100000, 'IOC')
        self.assertEqual(len(orders), 1)
        self.assertEqual(orders[0].side, 'buy')
        self.assertEqual(orders[0].size, 2)
        self.assertEqual(orders[0].tif, 'IOC')
        self.assertFalse(orders[0].reduce_only)

    def test_chunks_respect_notional_cap(self) -> None:
        target = PositionTarget(coin='BTC', target_size=0, current_size=10, delta=-10)
        orders = generate_orders(target, 50000, 100000, 'GTC')
        self.assertGreater(len(orders), 1)
        self.assertAlmostEqual(sum(o.size for o in orders), 10, delta=1e-4)
        for order in orders:
            self.assertLessEqual(order.size * 50000, 100000 + 1e-6)
            self.assertEqual(order.side, 'sell')
            self.assertEqual(order.tif, 'GTC')
            self.assertTrue(order.reduce_only)

    def test_uneven_chunks_sum_to_size(self) -> None:
        target = PositionTarget(coin='ETH', target_size=7.3, current_size=0, delta=7.3)
        orders = generate_orders(target, 1000, 2000, 'IOC')
        self.assertEqual(len(orders), 4)
        self.assertAlmostEqual(orders[-1].size, 1.3, places=6)
        self.assertAlmostEqual(sum(o.size for o in orders), 7.3, delta=1e-4)

    def test_non_positive_cap_disables_chunking(self) -> None:
        target = PositionTarget(coin='BTC', target_size=0, current_size=10, delta=-10)
        for cap in (0, -1):
            orders = generate_orders(target, 50000, cap, 'IOC')
            self.assertEqual(len(orders), 1)
            self.assertEqual(orders[0].size, 10)

    def test_reduce_only_quadrants(self) -> None:
        cases = [
            (10, 5, True),    # long reducing
            (10, -5, True),   # long flipping to short
            (-10, -5, True),  # short reducing
            (0, 5, False),    # opening
            (5, 10, False),   # increasing long
            (-5, -10, False), # increasing short
        ]
        for current, target_size, expected in cases:
            target = PositionTarget('BTC', target_size, current, target_size - current)
            orders = generate_orders(target, 100, 0, 'IOC')
            self.assertEqual(orders[0].reduce_only, expected, f"{current} -> {target_size}")

    def test_zero_delta_defaults_to_sell(self) -> None:
        target = PositionTarget(coin='BTC', target_size=1, current_size=1, delta=0)
        self.assertEqual(generate_orders(target, 100, 0, 'IOC')[0].side, 'sell')


if __name__ == '__main__':
    unittest.main()
