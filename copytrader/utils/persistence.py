"""
State persistence utilities.

The copy trader needs to remember operator changes across restarts:
whether auto-copy and panic mode were on, the ratio and limits set at
runtime, the leader list, cooldown timestamps, execution counters and
the recent execution journal.  This module provides simple JSON-based
load/save functions and a `StateStore` that maps the running components
to and from that file.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..execution.models import ExecutionRecord
from .timeutils import to_utc


logger = logging.getLogger(__name__)


def load_state(path: str) -> Optional[Dict[str, Any]]:
    """Load a JSON state file.

    Parameters
    ----------
    path : str
        Path to the JSON file.

    Returns
    -------
    dict or None
        The state dictionary if the file exists, otherwise `None`.
    """
    file_path = Path(path)
    if not file_path.exists():
        return None
    with file_path.open("r", encoding="utf-8") as fh:
        return json.load(fh)


def save_state(path: str, state: Dict[str, Any]) -> None:
    """Write a JSON state file to disk.

    The file is written to a temporary sibling first and then renamed
    so a crash mid-write never leaves a truncated state file.
    """
    file_path = Path(path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = file_path.with_suffix(file_path.suffix + ".tmp")
    with tmp_path.open("w", encoding="utf-8") as fh:
        json.dump(state, fh, ensure_ascii=False, indent=2, sort_keys=True)
    tmp_path.replace(file_path)


def record_to_dict(record: ExecutionRecord) -> Dict[str, Any]:
    return {
        'timestamp': record.timestamp.isoformat(),
        'coin': record.coin,
        'side': record.side,
        'size': record.size,
        'mark_price': record.mark_price,
        'reduce_only': record.reduce_only,
        'status': record.status,
        'reason': record.reason,
        'order_id': record.order_id,
    }


def record_from_dict(raw: Dict[str, Any]) -> ExecutionRecord:
    return ExecutionRecord(
        timestamp=to_utc(raw['timestamp']),
        coin=raw['coin'],
        side=raw['side'],
        size=float(raw['size']),
        mark_price=float(raw['mark_price']),
        reduce_only=bool(raw['reduce_only']),
        status=raw['status'],
        reason=raw.get('reason'),
        order_id=raw.get('order_id'),
    )


class StateStore:
    """Runtime state persisted to a JSON file.

    Values found in an existing file take precedence over the defaults
    passed in, so operator changes made before a restart survive it.
    """

    def __init__(self, path: str, defaults: Optional[Dict[str, Any]] = None) -> None:
        self.path = path
        persisted = load_state(path) or {}
        self.state: Dict[str, Any] = dict(defaults or {})
        self.state.update(persisted)
        logger.info("State store initialised from %s (loaded=%s)", path, bool(persisted))

    def get(self, key: str, default: Any = None) -> Any:
        return self.state.get(key, default)

    def journal(self) -> List[ExecutionRecord]:
        return [record_from_dict(raw) for raw in self.state.get('journal', [])]

    def restore(self, loop, risk_engine, executor) -> None:
        """Push persisted runtime state into freshly built components."""
        if self.get('enabled'):
            loop.enable()
        if self.get('panic'):
            risk_engine.enable_panic_mode()
        risk_engine.restore_cooldowns(self.get('last_exec_by_coin', {}))
        executor.restore_counters(self.get('counters', {}))
        executor.restore_journal(self.journal())

    def capture(self, loop, risk_engine, executor) -> None:
        """Copy the components' current runtime state into the store."""
        config = loop.get_config()
        risk = risk_engine.get_state()
        self.state.update({
            'enabled': config['enabled'],
            'panic': risk['panic_mode'],
            'ratio': config['ratio'],
            'tif': config['tif'],
            'copy_mode': config['copy_mode'],
            'leaders': config['leader_addresses'],
            'max_leverage': risk['max_leverage'],
            'max_total_notional': risk['max_total_notional'],
            'cooldown_ms': risk['cooldown_ms'],
            'last_exec_by_coin': risk_engine.last_executions(),
            'notional_cap': config['configured_notional_cap'],
            'counters': executor.get_counters(),
            'journal': [record_to_dict(r) for r in executor.get_journal()],
        })

    def save(self) -> None:
        save_state(self.path, self.state)
