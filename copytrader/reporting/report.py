"""
Report generation utilities.

This module turns the execution journal into human-readable artefacts:
a CSV file of every handled order, a JSON summary of execution metrics
and a PNG chart of cumulative executed notional.
"""

from __future__ import annotations

import os
import json
from typing import List
import pandas as pd
import matplotlib

# Use non-interactive backend for environments without display
matplotlib.use("Agg")
import matplotlib.pyplot as plt

from ..execution.models import ExecutionRecord
from .metrics import compute_metrics


def generate_execution_report(records: List[ExecutionRecord], out_dir: str = "results") -> dict:
    """Generate report files for an execution journal.

    Creates the output directory if it does not exist and writes the
    following files:

    - `executions.csv` – one row per handled order
    - `summary.json` – execution metrics
    - `executed_notional.png` – cumulative executed notional over time

    Returns the metrics dictionary written to `summary.json`.
    """
    os.makedirs(out_dir, exist_ok=True)

    rows = [
        {
            'timestamp': r.timestamp.isoformat(),
            'coin': r.coin,
            'side': r.side,
            'size': r.size,
            'mark_price': r.mark_price,
            'notional': r.notional,
            'reduce_only': r.reduce_only,
            'status': r.status,
            'reason': r.reason,
            'order_id': r.order_id,
        }
        for r in sorted(records, key=lambda rec: rec.timestamp)
    ]
    df = pd.DataFrame(rows, columns=[
        'timestamp', 'coin', 'side', 'size', 'mark_price', 'notional',
        'reduce_only', 'status', 'reason', 'order_id',
    ])
    df.to_csv(os.path.join(out_dir, 'executions.csv'), index=False)

    metrics = compute_metrics(records)
    with open(os.path.join(out_dir, 'summary.json'), 'w', encoding='utf-8') as fh:
        json.dump(metrics, fh, indent=2, ensure_ascii=False)

    executed = df[df['status'] == 'executed']
    fig, ax = plt.subplots(figsize=(10, 4))
    if not executed.empty:
        ax.step(
            pd.to_datetime(executed['timestamp']),
            executed['notional'].cumsum(),
            where='post',
            linewidth=1.5,
        )
    ax.set_title('Cumulative Executed Notional')
    ax.set_xlabel('Time')
    ax.set_ylabel('Notional (USD)')
    ax.grid(True)
    fig.tight_layout()
    fig.savefig(os.path.join(out_dir, 'executed_notional.png'))
    plt.close(fig)
    return metrics
