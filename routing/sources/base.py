from __future__ import annotations

import time
from typing import Any, Dict, Optional

from eth_utils import to_checksum_address

from routing import config
from routing.chain_config import ChainContext
from routing.errors import NoLiquidity
from routing.types import Quote, QuoteRequest


def min_out(amount_out: int, slippage_bps: int) -> int:
    """Floor of amount_out after slippage."""
    bps = max(0, min(config.MAX_SLIPPAGE_BPS, int(slippage_bps)))
    return int(amount_out) * (config.MAX_SLIPPAGE_BPS - bps) // config.MAX_SLIPPAGE_BPS


def tx_deadline(request: QuoteRequest, now_s: Optional[float] = None) -> int:
    if request.deadline:
        return int(request.deadline)
    now = time.time() if now_s is None else float(now_s)
    return int(now) + int(config.DEFAULT_TX_DEADLINE_S)


def parse_int(raw: Any) -> Optional[int]:
    """Lenient int parsing for provider payloads: int, decimal or 0x-hex strings."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    s = str(raw).strip()
    if not s:
        return None
    try:
        if s.lower().startswith("0x"):
            return int(s, 16)
        return int(s)
    except ValueError:
        # Some APIs send "123.0"
        try:
            f = float(s)
        except ValueError:
            return None
        if f != f or f < 0:
            return None
        return int(f)


def parse_bytes(raw: Any) -> Optional[bytes]:
    if not isinstance(raw, str):
        return None
    hx = raw[2:] if raw.startswith("0x") else raw
    try:
        return bytes.fromhex(hx)
    except ValueError:
        return None


class QuoteSource:
    """One backend able to price and build a token-to-token swap.

    Implementations raise SourceUnavailable / NoLiquidity instead of returning
    degenerate quotes, and keep no per-request state on `self` so one instance
    can serve concurrent requests.
    """

    kind: str = "source"

    def __init__(self, address: str, chain: ChainContext):
        self.address = to_checksum_address(address)
        self.chain = chain

    @property
    def source_id(self) -> str:
        return self.kind

    async def get_quote(self, request: QuoteRequest) -> Quote:
        raise NotImplementedError

    def _finalize(
        self,
        request: QuoteRequest,
        *,
        amount_out: int,
        calldata: bytes,
        target_contract: str,
        native_value: int = 0,
        estimated_gas: Optional[int] = None,
        provider_min_out: Optional[int] = None,
        meta: Optional[Dict[str, Any]] = None,
    ) -> Quote:
        amount_out = int(amount_out)
        if amount_out <= 0:
            raise NoLiquidity("insufficient liquidity", source_id=self.source_id)
        if provider_min_out is not None and provider_min_out > 0:
            # The provider's bound is the one enforced by its calldata.
            floor = min(int(provider_min_out), amount_out)
        else:
            floor = min_out(amount_out, request.slippage_bps)
        if floor <= 0:
            raise NoLiquidity("output below slippage floor", source_id=self.source_id)
        return Quote(
            source_id=self.source_id,
            amount_out=amount_out,
            min_amount_out=int(floor),
            calldata=bytes(calldata),
            target_contract=to_checksum_address(target_contract),
            native_value=int(native_value),
            estimated_gas=int(estimated_gas) if estimated_gas is not None and estimated_gas > 0 else None,
            expires_at=time.time() + float(config.QUOTE_TTL_S),
            meta=dict(meta or {}),
        )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.source_id} chain={self.chain.chain_id} {self.address}>"
