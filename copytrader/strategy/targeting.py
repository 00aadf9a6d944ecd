"""
Target position calculation.

Turns aggregated leader positions into follower targets and converts a
target into one or more order requests.  Everything here is a pure
function of its inputs: no I/O and no state between calls.
"""

from __future__ import annotations

import logging
from typing import Dict, List

from ..execution.models import BUY, SELL, OrderRequest, Position, PositionTarget


logger = logging.getLogger(__name__)

# Deltas at or below this size are treated as rounding noise.
MIN_DELTA = 0.0001


def calculate_target(leader_size: float, current_follower_size: float, ratio: float) -> PositionTarget:
    """Scale a leader size by `ratio` and compute the gap to the follower.

    The ratio is not range-checked here; callers validate it.  The
    returned target has an empty coin, which `compute_targets` fills in.
    """
    target_size = leader_size * ratio
    return PositionTarget(
        coin='',
        target_size=target_size,
        current_size=current_follower_size,
        delta=target_size - current_follower_size,
    )


def compute_targets(
    aggregated_leader: Dict[str, Position],
    follower_positions: Dict[str, Position],
    ratio: float,
) -> List[PositionTarget]:
    """Compute a target for every coin held by the leaders or the follower.

    Coins missing from the leader side get a target of zero, i.e. they
    are closed.  Targets with a delta inside the dead zone are dropped.
    The order of the returned list is not significant.
    """
    targets: List[PositionTarget] = []
    for coin in set(aggregated_leader) | set(follower_positions):
        leader = aggregated_leader.get(coin)
        follower = follower_positions.get(coin)
        target = calculate_target(
            leader.size if leader is not None else 0.0,
            follower.size if follower is not None else 0.0,
            ratio,
        )
        target.coin = coin
        if abs(target.delta) > MIN_DELTA:
            targets.append(target)
    return targets


def is_reducing_position(current_size: float, target_size: float) -> bool:
    """Return `True` when moving to `target_size` shrinks the current side.

    A long is reduced when the target is below it and a short when the
    target is above it.  Only the comparison against the current size
    matters, so a long 10 → short 5 flip also counts as reducing.
    """
    if current_size > 0:
        return target_size < current_size
    if current_size < 0:
        return target_size > current_size
    return False


def generate_orders(
    target: PositionTarget,
    mark_price: float,
    notional_cap: float,
    tif: str,
) -> List[OrderRequest]:
    """Convert a position target into order requests.

    Parameters
    ----------
    target : PositionTarget
        Target produced by `compute_targets`.
    mark_price : float
        Current mark price of the coin.
    notional_cap : float
        Maximum notional (USD) per order.  Zero or negative disables
        chunking and a single order for the full size is returned.
    tif : str
        Time in force tagged on every order (``IOC`` or ``GTC``).

    Returns
    -------
    list of OrderRequest
        One order, or several equal-sided chunks whose sizes sum to
        ``abs(target.delta)``.
    """
    # delta == 0 only arrives here when called directly; it maps to 'sell'
    side = BUY if target.delta > 0 else SELL
    size_to_trade = abs(target.delta)
    reduce_only = is_reducing_position(target.current_size, target.target_size)

    def _order(size: float) -> OrderRequest:
        return OrderRequest(coin=target.coin, side=side, size=size, tif=tif, reduce_only=reduce_only)

    if notional_cap <= 0:
        return [_order(size_to_trade)]

    max_size_per_order = notional_cap / mark_price
    if size_to_trade <= max_size_per_order:
        orders = [_order(size_to_trade)]
    else:
        orders = []
        remaining = size_to_trade
        while remaining > MIN_DELTA:
            chunk = min(remaining, max_size_per_order)
            orders.append(_order(chunk))
            remaining -= chunk

    logger.debug(
        "Generated %d %s order(s) for %s (target=%s, current=%s, reduce_only=%s)",
        len(orders),
        side,
        target.coin,
        target.target_size,
        target.current_size,
        reduce_only,
    )
    return orders
