# routing/config.py
# NOTE:
# Contract addresses and endpoints per chain live in configs/chains/*.json.
# This module only holds process-wide defaults; every value can be overridden
# through env vars so deployments don't need code changes.

import os
from pathlib import Path


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not str(raw).strip():
        return float(default)
    try:
        return float(raw)
    except ValueError:
        return float(default)


def _env_str(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None or not str(raw).strip():
        return default
    return str(raw).strip()


# Per-source quote timeout (seconds). A slow source degrades to a rejection.
SOURCE_TIMEOUT_S = _env_float("ROUTER_SOURCE_TIMEOUT_S", 3.0)

# RPC timeouts (seconds). All RPC calls are clamped to this range.
RPC_TIMEOUT_MIN_S = 0.5
RPC_TIMEOUT_MAX_S = 4.0
RPC_DEFAULT_TIMEOUT_S = 3.0

# HTTP aggregator timeout (seconds).
HTTP_DEFAULT_TIMEOUT_S = 3.0

# A quote is considered stale after this many seconds.
QUOTE_TTL_S = 30.0

# Used when the request carries no execution deadline.
DEFAULT_TX_DEADLINE_S = 20 * 60

# Slippage bounds in bps (10_000 == 100%).
MAX_SLIPPAGE_BPS = 10_000
DEFAULT_SLIPPAGE_BPS = 50

NATIVE_TOKEN = "0x0000000000000000000000000000000000000000"
# Placeholder many HTTP aggregators use for the native currency.
NATIVE_TOKEN_EEEE = "0xEeeeeEeeeEeEeeEeEeEeeEEEeeeeEeeeeeeeEEeE"

# Gas figures used when a source can't report its own.
CLOBER_SPEND_GAS_ESTIMATE = 250_000
GATEWAY_GAS_OVERHEAD = 60_000

CHAIN_CONFIG_DIR = Path(
    _env_str("ROUTER_CHAIN_CONFIG_DIR", str(Path(__file__).resolve().parents[1] / "configs" / "chains"))
)

OPENOCEAN_API_URL = _env_str("OPENOCEAN_API_URL", "https://open-api.openocean.finance")
MAGPIE_API_URL = _env_str("MAGPIE_API_URL", "https://api.magpiefi.xyz")
MAGPIE_API_KEY = os.getenv("MAGPIE_API_KEY") or None
HERMES_API_URL = _env_str("HERMES_API_URL", "https://hermes.pyth.network")

# Magpie identifies chains by network name, not id.
MAGPIE_NETWORKS = {
    1: "ethereum",
    10: "optimism",
    56: "bsc",
    137: "polygon",
    8453: "base",
    42161: "arbitrum",
    43114: "avalanche",
}


def is_native(token: str) -> bool:
    t = str(token or "").strip().lower()
    return t in (NATIVE_TOKEN.lower(), NATIVE_TOKEN_EEEE.lower())
