from __future__ import annotations

import dataclasses

from eth_utils import to_checksum_address

from routing import config
from routing.abi import encode_call
from routing.chain_config import ChainContext
from routing.errors import SourceFailure
from routing.sources.base import QuoteSource
from routing.types import Quote, QuoteRequest

# RouterGateway.swap(inToken, outToken, amountIn, minAmountOut, recipient, router, value, data)
SIG_GATEWAY_SWAP = "swap(address,address,uint256,uint256,address,address,uint256,bytes)"


class RouterGateway(QuoteSource):
    """Routes another source's swap through a gateway contract.

    The inner quote is requested with the gateway as recipient; the gateway
    forwards the inner calldata to the inner router and settles to the user.
    Economic terms of the inner quote are passed through untouched.
    """

    kind = "gateway"

    def __init__(self, address: str, chain: ChainContext, inner: QuoteSource, *, gas_overhead: int = config.GATEWAY_GAS_OVERHEAD):
        super().__init__(address, chain)
        self.inner = inner
        self.gas_overhead = int(gas_overhead)

    @property
    def source_id(self) -> str:
        return f"gateway:{self.inner.source_id}"

    def encode_swap(self, request: QuoteRequest, inner: Quote) -> bytes:
        return encode_call(
            SIG_GATEWAY_SWAP,
            ["address", "address", "uint256", "uint256", "address", "address", "uint256", "bytes"],
            [
                to_checksum_address(request.token_in),
                to_checksum_address(request.token_out),
                int(request.amount_in),
                int(inner.min_amount_out),
                to_checksum_address(request.recipient),
                to_checksum_address(inner.target_contract),
                int(inner.native_value),
                bytes(inner.calldata),
            ],
        )

    async def get_quote(self, request: QuoteRequest) -> Quote:
        inner_request = dataclasses.replace(request, recipient=self.address)
        try:
            inner = await self.inner.get_quote(inner_request)
        except SourceFailure as e:
            raise type(e)(
                f"{self.inner.source_id}: {e.reason}",
                source_id=self.source_id,
                origin=e.origin or self.inner.source_id,
            ) from e

        gas = inner.estimated_gas + self.gas_overhead if inner.estimated_gas is not None else None
        return dataclasses.replace(
            inner,
            source_id=self.source_id,
            target_contract=self.address,
            calldata=self.encode_swap(request, inner),
            estimated_gas=gas,
            meta={**inner.meta, "inner_source": inner.source_id, "inner_target": inner.target_contract},
        )
