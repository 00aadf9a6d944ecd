import os
import sys
import tempfile

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)
if CURRENT_DIR not in sys.path:
    sys.path.insert(0, CURRENT_DIR)

from copytrader.execution.executor import Executor
from copytrader.execution.loop import CopyTradingLoop, LoopConfig
from copytrader.execution.models import OrderRequest
from copytrader.execution.risk_engine import RiskEngine
from copytrader.utils.persistence import StateStore, load_state
from fakes import FakeClock, FakeExchange, FakeInfoClient, market

import unittest


def build(clock, dry_run=False):
    risk = RiskEngine(5, 1_000_000, 2000, clock=clock)
    executor = Executor(FakeExchange(), risk, dry_run=dry_run, sleep=lambda s: None)
    loop = CopyTradingLoop(
        FakeInfoClient(),
        executor,
        LoopConfig(1000, ('L1',), 'F', 0.2, 300.0),
        dry_run=dry_run,
    )
    return risk, executor, loop


class TestStateStore(unittest.TestCase):
    def test_missing_file_loads_nothing(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            self.assertIsNone(load_state(os.path.join(tmp, 'absent.json')))
            store = StateStore(os.path.join(tmp, 'absent.json'), defaults={'ratio': 0.3})
            self.assertEqual(store.get('ratio'), 0.3)
            self.assertEqual(store.journal(), [])

    def test_capture_and_restore(self) -> None:
        clock = FakeClock()
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, 'state', 'state.json')
            risk, executor, loop = build(clock)
            loop.enable()
            loop.update_params(ratio=0.4, copy_mode='full')
            risk.enable_panic_mode()
            risk.update_params(cooldown_ms=5000)
            order = OrderRequest('BTC', 'sell', 1.0, 'IOC', True)
            executor.execute_orders([order], [], 0, {'BTC': market('BTC', 100.0)})

            store = StateStore(path)
            store.capture(loop, risk, executor)
            store.save()

            reloaded = StateStore(path, defaults={'ratio': 0.2, 'notional_cap': 1.0})
            self.assertEqual(reloaded.get('ratio'), 0.4)
            self.assertEqual(reloaded.get('notional_cap'), 300.0)
            self.assertEqual(reloaded.get('cooldown_ms'), 5000)
            self.assertEqual(reloaded.get('leaders'), ['L1'])

            new_risk, new_executor, new_loop = build(clock)
            reloaded.restore(new_loop, new_risk, new_executor)
            self.assertTrue(new_loop.is_enabled())
            self.assertTrue(new_risk.get_state()['panic_mode'])
            self.assertEqual(new_risk.get_cooldown_remaining('BTC'), 2000)
            self.assertEqual(new_executor.get_counters()['exec_count'], 1)
            journal = new_executor.get_journal()
            self.assertEqual(len(journal), 1)
            self.assertEqual(journal[0].status, 'executed')
            self.assertEqual(journal[0].notional, 100.0)

    def test_dry_run_keeps_saved_cap(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, 'state.json')
            risk, executor, loop = build(FakeClock(), dry_run=True)
            store = StateStore(path, defaults={'notional_cap': 300.0})
            store.capture(loop, risk, executor)
            store.save()
            self.assertEqual(load_state(path)['notional_cap'], 300.0)

    def test_dry_run_persists_updated_cap(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, 'state.json')
            risk, executor, loop = build(FakeClock(), dry_run=True)
            loop.update_params(notional_cap=75)
            store = StateStore(path)
            store.capture(loop, risk, executor)
            store.save()
            self.assertEqual(load_state(path)['notional_cap'], 75.0)
            self.assertEqual(loop.get_config()['notional_cap'], 0)


if __name__ == '__main__':
    unittest.main()
