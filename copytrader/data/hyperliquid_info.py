"""
Hyperliquid read-only data feed.

Wraps the public ``/info`` endpoint to fetch account positions, mark
prices and margin summaries.  Every method degrades to an empty result
on network or payload errors so a single failed call never aborts the
caller's tick; the failure is logged instead.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List
import requests

from ..config.schema import HyperliquidConfig
from ..execution.models import AccountInfo, MarketData, Position
from ..utils.timeutils import utc_now


logger = logging.getLogger(__name__)


def _to_float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


class HyperliquidInfoClient:
    """Fetch positions, prices and account info from Hyperliquid."""

    def __init__(self, config: HyperliquidConfig, session: requests.Session = None) -> None:
        self.config = config
        self.session = session or requests.Session()
        self.session.headers.update({'Content-Type': 'application/json'})

    def _post(self, payload: Dict[str, Any]) -> Any:
        resp = self.session.post(f"{self.config.base_url}/info", json=payload, timeout=self.config.timeout_s)
        resp.raise_for_status()
        return resp.json()

    def get_positions(self, address: str) -> List[Position]:
        """Return the open perpetual positions of `address`.

        Returns an empty list if the request or the payload is invalid.
        """
        try:
            data = self._post({'type': 'clearinghouseState', 'user': address})
        except (requests.RequestException, ValueError) as exc:
            logger.error("Failed to fetch positions for %s: %s", address, exc)
            return []
        asset_positions = data.get('assetPositions') if isinstance(data, dict) else None
        if not isinstance(asset_positions, list):
            return []

        now = utc_now()
        positions: List[Position] = []
        for entry in asset_positions:
            raw = entry.get('position') if isinstance(entry, dict) else None
            if not raw:
                continue
            size = _to_float(raw.get('szi'))
            if size == 0:
                continue
            leverage = raw.get('leverage') or {}
            positions.append(
                Position(
                    coin=raw.get('coin', ''),
                    size=size,
                    updated_at=now,
                    entry_price=_to_float(raw.get('entryPx')),
                    leverage=_to_float(leverage.get('value'), None) if isinstance(leverage, dict) else None,
                    unrealized_pnl=_to_float(raw.get('unrealizedPnl')),
                    margin_used=_to_float(raw.get('marginUsed')),
                    liquidation_price=_to_float(raw.get('liquidationPx')),
                    return_on_equity=_to_float(raw.get('returnOnEquity')),
                    cum_funding=_to_float((raw.get('cumFunding') or {}).get('sinceOpen')),
                )
            )
        logger.debug("Fetched %d positions for %s", len(positions), address)
        return positions

    def get_market_data(self, coins: Iterable[str]) -> Dict[str, MarketData]:
        """Return mark and mid prices for the requested coins."""
        wanted = set(coins)
        try:
            data = self._post({'type': 'metaAndAssetCtxs'})
        except (requests.RequestException, ValueError) as exc:
            logger.error("Failed to fetch market data for %s: %s", sorted(wanted), exc)
            return {}
        if not isinstance(data, list) or len(data) < 2:
            return {}
        meta, contexts = data[0], data[1]
        universe = meta.get('universe') if isinstance(meta, dict) else None
        if not isinstance(universe, list) or not isinstance(contexts, list):
            return {}

        now = utc_now()
        result: Dict[str, MarketData] = {}
        for asset, ctx in zip(universe, contexts):
            name = asset.get('name')
            if name not in wanted or not ctx:
                continue
            mark = _to_float(ctx.get('markPx'))
            result[name] = MarketData(
                coin=name,
                mark_price=mark,
                last_price=_to_float(ctx.get('midPx'), mark),
                timestamp=now,
            )
        return result

    def get_account_info(self, address: str) -> AccountInfo:
        """Return equity, margin used and total notional; zeros on failure."""
        try:
            data = self._post({'type': 'clearinghouseState', 'user': address})
        except (requests.RequestException, ValueError) as exc:
            logger.error("Failed to fetch account info for %s: %s", address, exc)
            return AccountInfo()
        summary = (data.get('marginSummary') if isinstance(data, dict) else None) or {}
        return AccountInfo(
            equity=_to_float(summary.get('accountValue')),
            total_margin_used=_to_float(summary.get('totalMarginUsed')),
            total_notional=_to_float(summary.get('totalNtlPos')),
        )
