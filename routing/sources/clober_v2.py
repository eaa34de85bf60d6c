from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from eth_abi import decode
from eth_utils import to_checksum_address

from routing import config
from routing.abi import decode_revert_reason, encode_call, hex_to_bytes
from routing.chain_config import ChainContext
from routing.errors import NoLiquidity, OracleError, SourceUnavailable
from routing.oracle import PriceUpdate
from routing.sources.base import QuoteSource, min_out, tx_deadline
from routing.types import Quote, QuoteRequest
from infra.rpc import RPCError, RPCRevert, normalize_rpc_error

log = logging.getLogger(__name__)

# BookViewer.getExpectedOutput(SpendOrderParams) -> (takenQuoteAmount, spentBaseAmount)
SIG_GET_EXPECTED_OUTPUT = "getExpectedOutput((uint192,uint256,uint256,uint256,bytes))"
# Controller.spend(SpendOrderParams[], tokensToSettle, ERC20PermitParams[], deadline)
SIG_SPEND = "spend((uint192,uint256,uint256,uint256,bytes)[],address[],(address,uint256,(uint256,uint8,bytes32,bytes32))[],uint64)"

SPEND_PARAMS_TYPE = "(uint192,uint256,uint256,uint256,bytes)"
PERMIT_PARAMS_TYPE = "(address,uint256,(uint256,uint8,bytes32,bytes32))"

# limitPrice is a floor on the taken tick price; 0 walks the whole book.
MARKET_LIMIT_PRICE = 0


def _book_key(token_in: str, token_out: str) -> Tuple[str, str]:
    return (str(token_in).strip().lower(), str(token_out).strip().lower())


def parse_books(raw: Optional[Iterable[Mapping[str, Any]]]) -> Dict[Tuple[str, str], int]:
    out: Dict[Tuple[str, str], int] = {}
    for entry in raw or []:
        try:
            key = _book_key(entry["token_in"], entry["token_out"])
            out[key] = int(str(entry["book_id"]), 0)
        except (KeyError, TypeError, ValueError):
            continue
    return out


class CloberV2Source(QuoteSource):
    """Market spend through a Clober v2 Controller, priced by its BookViewer."""

    kind = "clober_v2"

    def __init__(
        self,
        address: str,
        chain: ChainContext,
        *,
        rpc: Any,
        book_viewer: str,
        books: Mapping[Tuple[str, str], int],
        price_update: Optional[PriceUpdate] = None,
        gas_estimate: int = config.CLOBER_SPEND_GAS_ESTIMATE,
        timeout_s: Optional[float] = None,
    ):
        super().__init__(address, chain)
        self.rpc = rpc
        self.book_viewer = to_checksum_address(book_viewer)
        self.books = dict(books)
        self.price_update = price_update
        self.gas_estimate = int(gas_estimate)
        self.timeout_s = timeout_s

    def book_id(self, token_in: str, token_out: str) -> Optional[int]:
        return self.books.get(_book_key(token_in, token_out))

    def _is_native(self, token: str) -> bool:
        return str(token).lower() == self.chain.native_token.lower() or config.is_native(token)

    def encode_preview(self, book_id: int, amount_in: int) -> str:
        params = (int(book_id), MARKET_LIMIT_PRICE, int(amount_in), 0, b"")
        return "0x" + encode_call(SIG_GET_EXPECTED_OUTPUT, [SPEND_PARAMS_TYPE], [params]).hex()

    def encode_spend(self, request: QuoteRequest, book_id: int, min_amount_out: int) -> bytes:
        params = (int(book_id), MARKET_LIMIT_PRICE, int(request.amount_in), int(min_amount_out), b"")
        settle = [to_checksum_address(request.token_out)]
        if not self._is_native(request.token_in):
            settle.append(to_checksum_address(request.token_in))
        return encode_call(
            SIG_SPEND,
            [f"{SPEND_PARAMS_TYPE}[]", "address[]", f"{PERMIT_PARAMS_TYPE}[]", "uint64"],
            [[params], settle, [], tx_deadline(request)],
        )

    async def _preview(self, book_id: int, amount_in: int) -> Tuple[int, int]:
        data = self.encode_preview(book_id, amount_in)
        try:
            raw = await self.rpc.eth_call(self.book_viewer, data, timeout_s=self.timeout_s)
        except RPCRevert as e:
            reason = decode_revert_reason(e.data) or "revert"
            raise NoLiquidity(reason, source_id=self.source_id) from e
        except RPCError as e:
            raise SourceUnavailable(normalize_rpc_error(e), source_id=self.source_id) from e
        try:
            taken, spent = decode(["uint256", "uint256"], hex_to_bytes(raw))
        except Exception as e:
            raise SourceUnavailable("malformed preview result", source_id=self.source_id) from e
        return int(taken), int(spent)

    async def get_quote(self, request: QuoteRequest) -> Quote:
        book_id = self.book_id(request.token_in, request.token_out)
        if book_id is None:
            raise NoLiquidity("unsupported pair", source_id=self.source_id)

        amount_out, spent = await self._preview(book_id, request.amount_in)
        if amount_out <= 0 or spent < int(request.amount_in):
            # Partial fills would leave the user's input stranded in the controller.
            raise NoLiquidity("insufficient liquidity", source_id=self.source_id)

        native_value = int(request.amount_in) if self._is_native(request.token_in) else 0
        meta: Dict[str, Any] = {"book_id": str(book_id), "spent": str(spent)}

        if self.price_update is not None:
            try:
                update_data, fee = await self.price_update.fetch(timeout_s=self.timeout_s)
            except OracleError as e:
                raise SourceUnavailable(f"price update: {e}", source_id=self.source_id) from e
            native_value += int(fee)
            if self._is_native(request.token_out):
                amount_out -= int(fee)
            meta["price_update_fee"] = str(fee)
            meta["price_update_data"] = ["0x" + b.hex() for b in update_data]

        floor = min_out(amount_out, request.slippage_bps)
        log.debug("clober_v2 book=%s out=%s min=%s", book_id, amount_out, floor)
        return self._finalize(
            request,
            amount_out=amount_out,
            calldata=self.encode_spend(request, book_id, max(floor, 0)),
            target_contract=self.address,
            native_value=native_value,
            estimated_gas=self.gas_estimate,
            meta=meta,
        )
