from __future__ import annotations

from typing import Any, Optional


def _parse_quantity(value: Any) -> int:
    if isinstance(value, str):
        return int(value, 16) if value.startswith("0x") else int(value)
    return int(value)


async def get_gas_price(rpc: Any, *, timeout_s: Optional[float] = None) -> int:
    """Legacy gas price in wei (eth_gasPrice). Errors propagate to the caller."""
    res = await rpc.call("eth_gasPrice", [], timeout_s=timeout_s)
    price = _parse_quantity(res)
    if price <= 0:
        raise ValueError(f"bad gas price: {res!r}")
    return price
