from __future__ import annotations

from typing import Any, Optional, Sequence

from eth_abi import decode as abi_decode, encode as abi_encode
from eth_utils import function_signature_to_4byte_selector


_SELECTOR_ERROR = b"\x08\xc3\x79\xa0"
_SELECTOR_PANIC = b"\x4e\x48\x7b\x71"


def encode_call(signature: str, types: Sequence[str], values: Sequence[Any]) -> bytes:
    selector = function_signature_to_4byte_selector(signature)
    return bytes(selector) + abi_encode(list(types), list(values))


def hex_to_bytes(data_hex: str) -> bytes:
    hx = data_hex[2:] if data_hex.startswith("0x") else data_hex
    return bytes.fromhex(hx)


def decode_revert_reason(data_hex: Optional[str]) -> Optional[str]:
    if not data_hex or data_hex == "0x":
        return None
    try:
        raw = hex_to_bytes(data_hex)
    except ValueError:
        return None
    if raw.startswith(_SELECTOR_ERROR):
        try:
            reason = abi_decode(["string"], raw[4:])[0]
            return f"revert:{reason}"
        except Exception:
            return "revert:error"
    if raw.startswith(_SELECTOR_PANIC):
        try:
            code = abi_decode(["uint256"], raw[4:])[0]
            return f"panic:0x{int(code):x}"
        except Exception:
            return "panic"
    return f"revert:custom({raw[:4].hex()})" if len(raw) >= 4 else None
