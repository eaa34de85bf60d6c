from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from eth_utils import to_checksum_address

from routing import config
from routing.chain_config import ChainContext
from routing.errors import NoLiquidity, SourceUnavailable
from routing.sources.base import QuoteSource, parse_bytes, parse_int
from routing.types import Quote, QuoteRequest
from infra import gas as gas_oracle
from infra.http import AsyncHTTP, HTTPError, HTTPTimeout, query_params
from infra.rpc import RPCError, normalize_rpc_error

log = logging.getLogger(__name__)


def slippage_percent(slippage_bps: int) -> str:
    """OpenOcean takes slippage in percent (50 bps -> "0.5")."""
    pct = int(slippage_bps) / 100.0
    return f"{pct:.2f}".rstrip("0").rstrip(".") or "0"


class OpenOceanSource(QuoteSource):
    kind = "openocean"

    def __init__(
        self,
        address: str,
        chain: ChainContext,
        *,
        http: AsyncHTTP,
        rpc: Any,
        base_url: str = config.OPENOCEAN_API_URL,
        timeout_s: Optional[float] = None,
    ):
        super().__init__(address, chain)
        self.http = http
        self.rpc = rpc
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s

    def _token(self, token: str) -> str:
        if str(token).lower() == self.chain.native_token.lower() or config.is_native(token):
            return config.NATIVE_TOKEN_EEEE
        return to_checksum_address(token)

    async def _gas_price(self) -> int:
        try:
            return await gas_oracle.get_gas_price(self.rpc, timeout_s=self.timeout_s)
        except (RPCError, ValueError) as e:
            reason = normalize_rpc_error(e) if isinstance(e, RPCError) else "bad gas price"
            raise SourceUnavailable(f"gas price: {reason}", source_id=self.source_id) from e

    def build_params(self, request: QuoteRequest, gas_price: int) -> Dict[str, str]:
        return query_params(
            {
                "inTokenAddress": self._token(request.token_in),
                "outTokenAddress": self._token(request.token_out),
                "amountDecimals": int(request.amount_in),
                "gasPriceDecimals": int(gas_price),
                "slippage": slippage_percent(request.slippage_bps),
                "account": to_checksum_address(request.recipient),
            }
        )

    async def get_quote(self, request: QuoteRequest) -> Quote:
        gas_price = await self._gas_price()
        url = f"{self.base_url}/v4/{self.chain.chain_id}/swap"
        try:
            payload = await self.http.get_json(url, params=self.build_params(request, gas_price), timeout_s=self.timeout_s)
        except HTTPTimeout as e:
            raise SourceUnavailable("timeout", source_id=self.source_id) from e
        except HTTPError as e:
            raise SourceUnavailable(f"http_{e.status}" if e.status else str(e), source_id=self.source_id) from e
        return self.parse_response(request, payload)

    def parse_response(self, request: QuoteRequest, payload: Any) -> Quote:
        if not isinstance(payload, dict):
            raise SourceUnavailable("malformed payload", source_id=self.source_id)
        code = parse_int(payload.get("code"))
        data = payload.get("data")
        if code is not None and code != 200:
            msg = str(payload.get("error") or payload.get("message") or f"code {code}")
            if "liquidity" in msg.lower():
                raise NoLiquidity("insufficient liquidity", source_id=self.source_id)
            raise SourceUnavailable(f"api error: {msg[:120]}", source_id=self.source_id)
        if not isinstance(data, dict):
            raise SourceUnavailable("malformed payload", source_id=self.source_id)

        amount_out = parse_int(data.get("outAmount"))
        calldata = parse_bytes(data.get("data"))
        target = data.get("to")
        if amount_out is None or calldata is None or not target:
            raise SourceUnavailable("malformed payload: missing outAmount/data/to", source_id=self.source_id)
        if amount_out <= 0:
            raise NoLiquidity("insufficient liquidity", source_id=self.source_id)
        if str(target).lower() != self.address.lower():
            log.warning("openocean returned unexpected router %s (configured %s)", target, self.address)
            raise SourceUnavailable("unexpected router", source_id=self.source_id)

        return self._finalize(
            request,
            amount_out=amount_out,
            calldata=calldata,
            target_contract=str(target),
            native_value=parse_int(data.get("value")) or 0,
            estimated_gas=parse_int(data.get("estimatedGas")),
            provider_min_out=parse_int(data.get("minOutAmount")),
            meta={"price_impact": data.get("price_impact")},
        )
