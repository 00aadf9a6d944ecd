"""
Configuration schema and loader.

This module defines dataclasses that mirror the expected structure of
the YAML configuration file (`config.yaml`).  A helper function
`load_config()` reads a YAML file from disk and returns an instance
of `Config` populated with defaults for any missing fields.

The follower's private key is a secret and should not live in the
YAML file; the ``FOLLOWER_PRIVATE_KEY`` environment variable overrides
whatever the file contains.
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List
import yaml


COPY_MODES = ('full', 'entry-only', 'signals-only')
TIF_CHOICES = ('IOC', 'GTC')
MODES = ('paper', 'live')


@dataclass
class FollowerConfig:
    """The account that mirrors the leaders.

    Attributes
    ----------
    address : str
        Follower account address, used for position and account queries.
    private_key : str
        Key used to sign orders in live mode.
    """

    address: str = ""
    private_key: str = ""


@dataclass
class TradingConfig:
    """Copy parameters an operator can change at runtime.

    Attributes
    ----------
    ratio : float
        Fraction of the aggregated leader size to hold (0 < ratio <= 1).
    notional_cap_per_order_usd : float
        Maximum notional of one order; larger moves are chunked.
    tif : str
        ``IOC`` or ``GTC``.
    copy_mode : str
        ``full``, ``entry-only`` or ``signals-only``.
    poll_interval_ms : int
        Pause between the end of one tick and the start of the next.
    """

    ratio: float = 0.2
    notional_cap_per_order_usd: float = 200.0
    tif: str = "IOC"
    copy_mode: str = "entry-only"
    poll_interval_ms: int = 1500


@dataclass
class RiskConfig:
    """Initial risk limits."""

    max_leverage: float = 5.0
    max_total_notional_usd: float = 2000.0
    cooldown_ms_per_coin: int = 2000


@dataclass
class HyperliquidConfig:
    base_url: str = "https://api.hyperliquid.xyz"
    timeout_s: float = 10.0


@dataclass
class Config:
    """Root configuration for the copy trader.

    Attributes
    ----------
    leaders : List[str]
        Leader account addresses to mirror.
    follower : FollowerConfig
        Follower account settings.
    trading : TradingConfig
        Copy parameters.
    risk : RiskConfig
        Risk limits.
    hyperliquid : HyperliquidConfig
        Exchange API settings.
    mode : str
        ``paper`` simulates orders in the exchange client, ``live`` sends them.
    dry_run : bool
        Skip the exchange client entirely after risk checks.
    state_file : str
        JSON file holding runtime state between restarts.
    """

    leaders: List[str] = field(default_factory=list)
    follower: FollowerConfig = field(default_factory=FollowerConfig)
    trading: TradingConfig = field(default_factory=TradingConfig)
    risk: RiskConfig = field(default_factory=RiskConfig)
    hyperliquid: HyperliquidConfig = field(default_factory=HyperliquidConfig)
    mode: str = "paper"
    dry_run: bool = False
    state_file: str = "state.json"


def validate_ratio(ratio: float) -> float:
    ratio = float(ratio)
    if not 0 < ratio <= 1:
        raise ValueError(f"ratio must be in (0, 1], got {ratio}")
    return ratio


def validate_tif(tif: str) -> str:
    tif = str(tif).upper()
    if tif not in TIF_CHOICES:
        raise ValueError(f"tif must be one of {TIF_CHOICES}, got {tif!r}")
    return tif


def validate_copy_mode(copy_mode: str) -> str:
    copy_mode = str(copy_mode).lower()
    if copy_mode not in COPY_MODES:
        raise ValueError(f"copy_mode must be one of {COPY_MODES}, got {copy_mode!r}")
    return copy_mode


def _merge_dict(defaults: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge two dictionaries.

    The values in `override` take precedence over those in `defaults`.
    This helper is used when loading YAML into nested dataclasses.
    """
    result: Dict[str, Any] = defaults.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _merge_dict(result[key], value)
        else:
            result[key] = value
    return result


def load_config(path: str) -> Config:
    """Load a configuration file from the given YAML path.

    Parameters
    ----------
    path : str
        Path to the YAML file.

    Returns
    -------
    Config
        A populated configuration object.

    Raises
    ------
    ValueError
        If no leader is configured or a value is outside its allowed set.
    """
    with open(path, "r", encoding="utf-8") as fh:
        raw: Dict[str, Any] = yaml.safe_load(fh) or {}
    return config_from_dict(raw)


def config_from_dict(raw: Dict[str, Any]) -> Config:
    """Build and validate a `Config` from a parsed YAML mapping."""
    merged = _merge_dict(asdict(Config()), raw)

    follower_cfg = FollowerConfig(**merged['follower'])
    env_key = os.environ.get('FOLLOWER_PRIVATE_KEY')
    if env_key:
        follower_cfg.private_key = env_key

    trading = merged['trading']
    trading_cfg = TradingConfig(
        ratio=validate_ratio(trading['ratio']),
        notional_cap_per_order_usd=float(trading['notional_cap_per_order_usd']),
        tif=validate_tif(trading['tif']),
        copy_mode=validate_copy_mode(trading['copy_mode']),
        poll_interval_ms=int(trading['poll_interval_ms']),
    )
    risk = merged['risk']
    risk_cfg = RiskConfig(
        max_leverage=float(risk['max_leverage']),
        max_total_notional_usd=float(risk['max_total_notional_usd']),
        cooldown_ms_per_coin=int(risk['cooldown_ms_per_coin']),
    )
    hl = merged['hyperliquid']
    hl_cfg = HyperliquidConfig(base_url=str(hl['base_url']).rstrip('/'), timeout_s=float(hl['timeout_s']))

    leaders = [str(addr).strip() for addr in merged.get('leaders') or [] if str(addr).strip()]
    if not leaders:
        raise ValueError("leaders must contain at least one address")

    mode = str(merged.get('mode', 'paper')).lower()
    if mode not in MODES:
        raise ValueError(f"mode must be one of {MODES}, got {mode!r}")

    return Config(
        leaders=leaders,
        follower=follower_cfg,
        trading=trading_cfg,
        risk=risk_cfg,
        hyperliquid=hl_cfg,
        mode=mode,
        dry_run=bool(merged.get('dry_run', False)),
        state_file=str(merged.get('state_file', 'state.json')),
    )
