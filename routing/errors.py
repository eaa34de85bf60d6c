from __future__ import annotations

from typing import List, Optional, Sequence


class RoutingError(Exception):
    """Base class for everything the routing layer raises."""


class ConfigError(RoutingError):
    pass


class ValidationError(RoutingError):
    """Malformed QuoteRequest. Raised before any network call."""

    def __init__(self, field: str, reason: str) -> None:
        self.field = str(field)
        self.reason = str(reason)
        super().__init__(f"{self.field}: {self.reason}")


class SourceFailure(RoutingError):
    """A single source could not produce a quote.

    `origin` names the source that actually failed; for a gateway it is the
    wrapped source rather than the gateway itself.
    """

    def __init__(self, reason: str, *, source_id: Optional[str] = None, origin: Optional[str] = None) -> None:
        self.reason = str(reason)
        self.source_id = source_id
        self.origin = origin or source_id
        super().__init__(self.reason)


class SourceUnavailable(SourceFailure):
    """Network/RPC/HTTP failure, timeout or malformed payload."""


class NoLiquidity(SourceFailure):
    """The source answered but can't fill the pair/amount."""


class OracleError(RoutingError):
    pass


class AllSourcesFailed(RoutingError):
    def __init__(self, chain_id: int, rejections: Sequence[object]) -> None:
        self.chain_id = int(chain_id)
        self.rejections: List[object] = list(rejections)
        reasons = ", ".join(f"{getattr(r, 'source_id', '?')}={getattr(r, 'reason', '?')}" for r in self.rejections)
        super().__init__(f"no route on chain {self.chain_id}: {reasons or 'no sources'}")
