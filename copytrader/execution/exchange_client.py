"""
Hyperliquid order submission client.

In ``paper`` mode orders are simulated and reported as filled without
any network traffic.  In ``live`` mode the order action is signed by an
injected `signer` and posted to the ``/exchange`` endpoint.  Failures
are returned as unsuccessful `OrderResult` objects rather than raised,
so the executor's retry loop sees one uniform shape.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional
import requests

from ..config.schema import HyperliquidConfig
from .models import BUY, OrderRequest, OrderResult
from ..utils.timeutils import now_ms


logger = logging.getLogger(__name__)

Signer = Callable[[Dict[str, Any], int], Dict[str, Any]]


class ExchangeClient:
    """Place and cancel orders for the follower account.

    Parameters
    ----------
    config : HyperliquidConfig
        API location and timeout.
    mode : str
        ``paper`` or ``live``.
    signer : callable, optional
        ``signer(action, nonce) -> signature`` used in live mode.
    """

    def __init__(
        self,
        config: HyperliquidConfig,
        mode: str = 'paper',
        signer: Optional[Signer] = None,
        session: requests.Session = None,
    ) -> None:
        self.config = config
        self.mode = mode
        self.signer = signer
        self.session = session or requests.Session()

    @property
    def paper(self) -> bool:
        return self.mode == 'paper'

    def _send(self, action: Dict[str, Any]) -> Dict[str, Any]:
        if self.signer is None:
            raise RuntimeError("Order signing is not configured for live mode")
        nonce = now_ms()
        body = {'action': action, 'nonce': nonce, 'signature': self.signer(action, nonce)}
        resp = self.session.post(f"{self.config.base_url}/exchange", json=body, timeout=self.config.timeout_s)
        resp.raise_for_status()
        return resp.json()

    def place_order(self, order: OrderRequest) -> OrderResult:
        """Submit `order` and return the exchange's verdict."""
        if self.paper:
            logger.info("PAPER MODE: order simulated: %s", order.sanitized())
            return OrderResult(
                success=True,
                order_id=f"paper-{now_ms()}",
                filled_size=order.size,
                avg_price=order.price,
            )

        logger.info("Placing order: %s", order.sanitized())
        action = {
            'type': 'order',
            'orders': [{
                'coin': order.coin,
                'is_buy': order.side == BUY,
                'sz': order.size,
                'limit_px': order.price or 0,
                'order_type': {'limit': {'tif': order.tif.capitalize()}},
                'reduce_only': order.reduce_only,
            }],
            'grouping': 'na',
        }
        try:
            data = self._send(action)
        except (requests.RequestException, ValueError, RuntimeError) as exc:
            logger.error("Failed to place order %s: %s", order.sanitized(), exc)
            return OrderResult(success=False, error=str(exc))
        return self._parse_order_response(data)

    @staticmethod
    def _parse_order_response(data: Dict[str, Any]) -> OrderResult:
        if not isinstance(data, dict) or data.get('status') != 'ok':
            return OrderResult(success=False, error=str(data.get('response') if isinstance(data, dict) else data))
        statuses = ((data.get('response') or {}).get('data') or {}).get('statuses') or []
        status = statuses[0] if statuses else {}
        if 'error' in status:
            return OrderResult(success=False, error=str(status['error']))
        if 'filled' in status:
            filled = status['filled']
            return OrderResult(
                success=True,
                order_id=str(filled.get('oid')),
                filled_size=float(filled.get('totalSz', 0)),
                avg_price=float(filled.get('avgPx', 0)),
            )
        if 'resting' in status:
            return OrderResult(success=True, order_id=str(status['resting'].get('oid')), filled_size=0.0)
        return OrderResult(success=False, error=f"Unexpected order status: {status}")

    def cancel_all_open_orders(self, coin: Optional[str] = None) -> Dict[str, Any]:
        """Cancel open orders for `coin`, or for every coin when omitted."""
        if self.paper:
            logger.info("PAPER MODE: cancel all orders simulated (coin=%s)", coin)
            return {'success': True}
        action = {'type': 'cancel', 'cancels': [{'coin': coin}] if coin else [{'all': True}]}
        try:
            data = self._send(action)
        except (requests.RequestException, ValueError, RuntimeError) as exc:
            logger.error("Failed to cancel orders (coin=%s): %s", coin, exc)
            return {'success': False, 'error': str(exc)}
        if isinstance(data, dict) and data.get('status') == 'ok':
            return {'success': True}
        return {'success': False, 'error': str(data)}
