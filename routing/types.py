from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from routing.errors import AllSourcesFailed


@dataclass(frozen=True)
class QuoteRequest:
    chain_id: int
    token_in: str
    token_out: str
    amount_in: int
    recipient: str
    slippage_bps: int = 50
    deadline: Optional[int] = None  # unix seconds, embedded in calldata


@dataclass(frozen=True)
class Quote:
    source_id: str
    amount_out: int
    min_amount_out: int
    calldata: bytes
    target_contract: str
    native_value: int = 0
    estimated_gas: Optional[int] = None  # None == unknown
    expires_at: float = 0.0
    meta: Dict[str, Any] = field(default_factory=dict)

    def is_expired(self, now_s: Optional[float] = None) -> bool:
        now = time.time() if now_s is None else float(now_s)
        return now >= float(self.expires_at)

    def to_tx(self) -> Dict[str, Any]:
        """Unsigned transaction fields for the wallet layer."""
        tx: Dict[str, Any] = {
            "to": self.target_contract,
            "data": "0x" + bytes(self.calldata).hex(),
            "value": int(self.native_value),
        }
        if self.estimated_gas is not None:
            tx["gas"] = int(self.estimated_gas)
        return tx


@dataclass(frozen=True)
class Rejection:
    source_id: str
    reason: str
    kind: str = "SourceUnavailable"


@dataclass(frozen=True)
class RouteResult:
    chain_id: int
    chosen: Optional[Quote]
    rejections: List[Rejection] = field(default_factory=list)
    quotes: List[Quote] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.chosen is not None

    def raise_for_status(self) -> Quote:
        if self.chosen is None:
            raise AllSourcesFailed(self.chain_id, self.rejections)
        return self.chosen

    def to_dict(self) -> Dict[str, Any]:
        chosen = None
        if self.chosen is not None:
            q = self.chosen
            chosen = {
                "source_id": q.source_id,
                "amount_out": str(q.amount_out),
                "min_amount_out": str(q.min_amount_out),
                "estimated_gas": q.estimated_gas,
                "expires_at": q.expires_at,
                "tx": {**q.to_tx(), "value": str(q.native_value)},
            }
        return {
            "chain_id": self.chain_id,
            "chosen": chosen,
            "quotes": [
                {"source_id": q.source_id, "min_amount_out": str(q.min_amount_out)} for q in self.quotes
            ],
            "rejections": [
                {"source_id": r.source_id, "reason": r.reason, "kind": r.kind} for r in self.rejections
            ],
        }
