from __future__ import annotations

from typing import Any, Dict, Optional

from eth_utils import to_checksum_address

from routing import config
from routing.chain_config import ChainContext
from routing.errors import NoLiquidity, SourceUnavailable
from routing.sources.base import QuoteSource, parse_bytes, parse_int
from routing.types import Quote, QuoteRequest
from infra.http import AsyncHTTP, HTTPError, HTTPTimeout, query_params


class MagpieSource(QuoteSource):
    """Magpie aggregator: quote, then fetch the transaction for that quote id."""

    kind = "magpie"

    def __init__(
        self,
        address: str,
        chain: ChainContext,
        *,
        http: AsyncHTTP,
        base_url: str = config.MAGPIE_API_URL,
        api_key: Optional[str] = config.MAGPIE_API_KEY,
        timeout_s: Optional[float] = None,
    ):
        super().__init__(address, chain)
        self.http = http
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout_s = timeout_s
        self.network = config.MAGPIE_NETWORKS.get(int(chain.chain_id), chain.name)

    def _headers(self) -> Dict[str, str]:
        return {"apikey": self.api_key} if self.api_key else {}

    def _token(self, token: str) -> str:
        if str(token).lower() == self.chain.native_token.lower() or config.is_native(token):
            return config.NATIVE_TOKEN
        return to_checksum_address(token)

    async def _get(self, path: str, params: Dict[str, str]) -> Any:
        try:
            return await self.http.get_json(
                f"{self.base_url}{path}", params=params, headers=self._headers(), timeout_s=self.timeout_s
            )
        except HTTPTimeout as e:
            raise SourceUnavailable("timeout", source_id=self.source_id) from e
        except HTTPError as e:
            if e.status == 400 and "liquidity" in str(e).lower():
                raise NoLiquidity("insufficient liquidity", source_id=self.source_id) from e
            raise SourceUnavailable(f"http_{e.status}" if e.status else str(e), source_id=self.source_id) from e

    async def get_quote(self, request: QuoteRequest) -> Quote:
        recipient = to_checksum_address(request.recipient)
        quote = await self._get(
            "/aggregator/quote",
            query_params(
                {
                    "network": self.network,
                    "fromTokenAddress": self._token(request.token_in),
                    "toTokenAddress": self._token(request.token_out),
                    "sellAmount": int(request.amount_in),
                    "slippage": int(request.slippage_bps) / 10_000,
                    "gasless": False,
                    "fromAddress": recipient,
                    "toAddress": recipient,
                }
            ),
        )
        if not isinstance(quote, dict) or not quote.get("id"):
            raise SourceUnavailable("malformed quote payload", source_id=self.source_id)
        amount_out = parse_int(quote.get("amountOut"))
        if amount_out is None:
            raise SourceUnavailable("malformed quote payload: missing amountOut", source_id=self.source_id)
        if amount_out <= 0:
            raise NoLiquidity("insufficient liquidity", source_id=self.source_id)

        tx = await self._get("/aggregator/transaction", {"quoteId": str(quote["id"])})
        return self.parse_transaction(request, amount_out, quote, tx)

    def parse_transaction(self, request: QuoteRequest, amount_out: int, quote: Dict[str, Any], tx: Any) -> Quote:
        if not isinstance(tx, dict):
            raise SourceUnavailable("malformed transaction payload", source_id=self.source_id)
        calldata = parse_bytes(tx.get("data"))
        target = tx.get("to") or quote.get("targetAddress")
        if calldata is None or not target:
            raise SourceUnavailable("malformed transaction payload: missing data/to", source_id=self.source_id)
        if str(target).lower() != self.address.lower():
            raise SourceUnavailable("unexpected router", source_id=self.source_id)
        return self._finalize(
            request,
            amount_out=amount_out,
            calldata=calldata,
            target_contract=str(target),
            native_value=parse_int(tx.get("value")) or 0,
            estimated_gas=parse_int(tx.get("gasLimit")),
            provider_min_out=parse_int(quote.get("amountOutMin")),
            meta={"quote_id": str(quote["id"])},
        )
