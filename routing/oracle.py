from __future__ import annotations

import logging
from typing import Any, List, Optional, Sequence, Tuple

from eth_abi import decode, encode
from eth_utils import function_signature_to_4byte_selector, to_checksum_address

from routing import config
from routing.errors import OracleError
from infra.http import AsyncHTTP, HTTPError
from infra.rpc import RPCError

log = logging.getLogger(__name__)

SIG_GET_UPDATE_FEE = "getUpdateFee(bytes[])"


class PythOracle:
    """Reads the fee a Pyth contract charges to push price updates."""

    def __init__(self, rpc: Any, address: str):
        self.rpc = rpc
        self.address = to_checksum_address(address)
        self._selector = function_signature_to_4byte_selector(SIG_GET_UPDATE_FEE)

    def encode_get_update_fee(self, update_data: Sequence[bytes]) -> str:
        blobs = [bytes(b) for b in update_data]
        return "0x" + (self._selector + encode(["bytes[]"], [blobs])).hex()

    async def get_update_fee(self, update_data: Sequence[bytes], *, timeout_s: Optional[float] = None) -> int:
        data = self.encode_get_update_fee(update_data)
        try:
            raw = await self.rpc.eth_call(self.address, data, timeout_s=timeout_s)
        except RPCError as e:
            raise OracleError(f"getUpdateFee failed: {e}") from e
        hx = raw[2:] if raw.startswith("0x") else raw
        try:
            (fee,) = decode(["uint256"], bytes.fromhex(hx))
        except Exception as e:
            raise OracleError(f"getUpdateFee decode failed: {raw[:18]!r}") from e
        return int(fee)


class HermesClient:
    """Fetches signed price update blobs from a Pyth Hermes endpoint."""

    def __init__(self, http: AsyncHTTP, base_url: str = config.HERMES_API_URL):
        self.http = http
        self.base_url = base_url.rstrip("/")

    async def latest_update_data(self, price_ids: Sequence[str], *, timeout_s: Optional[float] = None) -> List[bytes]:
        if not price_ids:
            return []
        params = [("ids[]", str(pid)) for pid in price_ids]
        params.append(("encoding", "hex"))
        try:
            payload = await self.http.get_json(
                f"{self.base_url}/v2/updates/price/latest", params=params, timeout_s=timeout_s
            )
        except HTTPError as e:
            raise OracleError(f"hermes: {e}") from e

        binary = payload.get("binary") if isinstance(payload, dict) else None
        blobs = binary.get("data") if isinstance(binary, dict) else None
        if not isinstance(blobs, list) or not blobs:
            raise OracleError("hermes: malformed update payload")
        out: List[bytes] = []
        for blob in blobs:
            hx = str(blob)
            hx = hx[2:] if hx.startswith("0x") else hx
            try:
                out.append(bytes.fromhex(hx))
            except ValueError:
                raise OracleError("hermes: update blob is not hex") from None
        log.debug("hermes update blobs=%d ids=%d", len(out), len(price_ids))
        return out


class PriceUpdate:
    """Update data + fee a source must attach before it can execute."""

    def __init__(self, oracle: PythOracle, hermes: HermesClient, price_ids: Sequence[str]):
        self.oracle = oracle
        self.hermes = hermes
        self.price_ids = tuple(str(p) for p in price_ids)

    async def fetch(self, *, timeout_s: Optional[float] = None) -> Tuple[List[bytes], int]:
        update_data = await self.hermes.latest_update_data(self.price_ids, timeout_s=timeout_s)
        fee = await self.oracle.get_update_fee(update_data, timeout_s=timeout_s)
        return update_data, fee
