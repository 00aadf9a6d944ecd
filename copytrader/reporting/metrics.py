"""
Execution statistics.

This module summarises the executor's journal: how many orders were
executed, rejected, skipped or failed, how much notional was traded
and why orders were turned down.  The numbers feed the execution
report and are handy when reviewing a live session.
"""

from __future__ import annotations

from collections import Counter
from typing import Dict, List

from ..execution.models import ExecutionRecord


def _reason_key(reason: str) -> str:
    """Group reasons that embed variable numbers (e.g. cooldown ms)."""
    for key in ('PANIC', 'circuit breaker', 'Cooldown', 'notional', 'leverage', 'No market price'):
        if key in reason:
            return key
    return reason


def compute_metrics(records: List[ExecutionRecord]) -> dict:
    """Compute summary statistics for a list of execution records.

    Parameters
    ----------
    records : list of ExecutionRecord
        Journal entries, in any order.

    Returns
    -------
    dict
        Dictionary of execution metrics.
    """
    statuses = Counter(r.status for r in records)
    executed = [r for r in records if r.status == 'executed']
    submitted = statuses['executed'] + statuses['error']

    reject_reasons: Dict[str, int] = dict(
        Counter(_reason_key(r.reason or '') for r in records if r.status in ('rejected', 'skipped'))
    )
    per_coin: Dict[str, int] = dict(Counter(r.coin for r in executed))

    return {
        'num_records': len(records),
        'executed': statuses['executed'],
        'rejected': statuses['rejected'],
        'skipped': statuses['skipped'],
        'errors': statuses['error'],
        'error_rate': statuses['error'] / submitted if submitted else 0.0,
        'executed_notional': sum(r.notional for r in executed),
        'reduce_only_executed': sum(1 for r in executed if r.reduce_only),
        'reject_reasons': reject_reasons,
        'executions_per_coin': per_coin,
    }
