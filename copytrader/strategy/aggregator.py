"""
Leader position aggregation.

Combines the positions of several leaders into one synthetic leader
and tracks how each leader's book changes between polls.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional
import logging

from ..execution.models import Position
from ..utils.timeutils import utc_now


logger = logging.getLogger(__name__)

MIN_SIZE = 0.0001


@dataclass(frozen=True)
class PositionChange:
    """A leader position that was opened, resized or closed since the last poll."""
    type: str  # 'opened', 'modified' or 'closed'
    coin: str
    position: Optional[Position] = None
    previous_size: Optional[float] = None


def aggregate(leader_positions: Mapping[str, Iterable[Position]]) -> Dict[str, Position]:
    """Average each coin's size across the leaders holding it.

    Every leader has equal weight.  A leader without a position in a
    coin does not pull the average towards zero.  Only `coin`, `size`
    and `updated_at` are populated on the returned positions.
    """
    sizes_by_coin: Dict[str, List[float]] = {}
    for positions in leader_positions.values():
        for pos in positions:
            sizes_by_coin.setdefault(pos.coin, []).append(pos.size)

    now = utc_now()
    aggregated: Dict[str, Position] = {}
    for coin, sizes in sizes_by_coin.items():
        avg_size = sum(sizes) / len(sizes)
        aggregated[coin] = Position(coin=coin, size=avg_size, updated_at=now)
        logger.debug("Aggregated %s: sizes=%s avg=%s", coin, sizes, avg_size)
    return aggregated


def detect_orphaned_positions(
    follower_positions: Iterable[Position],
    aggregated_leader: Mapping[str, Position],
) -> List[str]:
    """Return follower coins that no tracked leader currently holds."""
    return [
        pos.coin
        for pos in follower_positions
        if abs(pos.size) > MIN_SIZE and pos.coin not in aggregated_leader
    ]


def detect_position_changes(previous: Iterable[Position], current: Iterable[Position]) -> List[PositionChange]:
    """Diff two snapshots of one leader's positions."""
    prev_map = {p.coin: p for p in previous}
    curr_map = {p.coin: p for p in current}
    changes: List[PositionChange] = []
    for coin, pos in curr_map.items():
        prev = prev_map.get(coin)
        if prev is None:
            changes.append(PositionChange(type='opened', coin=coin, position=pos))
        elif abs(pos.size - prev.size) > MIN_SIZE:
            changes.append(PositionChange(type='modified', coin=coin, position=pos, previous_size=prev.size))
    for coin, prev in prev_map.items():
        if coin not in curr_map:
            changes.append(PositionChange(type='closed', coin=coin, previous_size=prev.size))
    return changes
