from __future__ import annotations

from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from routing import config
from routing.chain_config import ChainContext
from routing.errors import ConfigError
from routing.oracle import HermesClient, PriceUpdate, PythOracle
from routing.sources.base import QuoteSource
from routing.sources.clober_v2 import CloberV2Source, parse_books
from routing.sources.gateway import RouterGateway
from routing.sources.magpie import MagpieSource
from routing.sources.openocean import OpenOceanSource
from infra.http import AsyncHTTP


class AggregatorRegistry:
    """chain_id -> ordered quote sources. Read-only once built."""

    def __init__(self, sources: Mapping[int, Sequence[QuoteSource]]):
        frozen: Dict[int, Tuple[QuoteSource, ...]] = {}
        for chain_id, items in sources.items():
            frozen[int(chain_id)] = tuple(items)
        self._sources = MappingProxyType(frozen)

    def sources_for(self, chain_id: int) -> Tuple[QuoteSource, ...]:
        try:
            return self._sources.get(int(chain_id), ())
        except (TypeError, ValueError):
            return ()

    def chain_ids(self) -> List[int]:
        return list(self._sources.keys())

    def describe(self) -> Dict[int, List[str]]:
        return {cid: [s.source_id for s in items] for cid, items in self._sources.items()}


def _price_update(raw: Any, rpc: Any, http: AsyncHTTP, *, where: str) -> Optional[PriceUpdate]:
    if raw is None:
        return None
    if not isinstance(raw, dict) or not raw.get("oracle"):
        raise ConfigError(f"{where}: pyth section needs an oracle address")
    ids = [str(x) for x in (raw.get("price_ids") or []) if str(x).strip()]
    if not ids:
        raise ConfigError(f"{where}: pyth section needs price_ids")
    hermes = HermesClient(http, str(raw.get("hermes_url") or config.HERMES_API_URL))
    return PriceUpdate(PythOracle(rpc, str(raw["oracle"])), hermes, ids)


def build_source(
    entry: Mapping[str, Any],
    chain: ChainContext,
    *,
    rpc: Any,
    http: AsyncHTTP,
    timeout_s: Optional[float] = None,
) -> QuoteSource:
    kind = str(entry.get("kind") or "")
    address = entry.get("address")
    where = f"{chain.name}.{kind}"
    if not address:
        raise ConfigError(f"{where}: missing address")

    if kind == "clober_v2":
        if not entry.get("book_viewer"):
            raise ConfigError(f"{where}: missing book_viewer")
        return CloberV2Source(
            address,
            chain,
            rpc=rpc,
            book_viewer=str(entry["book_viewer"]),
            books=parse_books(entry.get("books")),
            price_update=_price_update(entry.get("pyth"), rpc, http, where=where),
            gas_estimate=int(entry.get("gas_estimate") or config.CLOBER_SPEND_GAS_ESTIMATE),
            timeout_s=timeout_s,
        )
    if kind == "openocean":
        return OpenOceanSource(
            address,
            chain,
            http=http,
            rpc=rpc,
            base_url=str(entry.get("api_url") or config.OPENOCEAN_API_URL),
            timeout_s=timeout_s,
        )
    if kind == "magpie":
        return MagpieSource(
            address,
            chain,
            http=http,
            base_url=str(entry.get("api_url") or config.MAGPIE_API_URL),
            timeout_s=timeout_s,
        )
    if kind == "gateway":
        inner_raw = entry.get("inner")
        if not isinstance(inner_raw, Mapping):
            raise ConfigError(f"{where}: gateway needs an inner source")
        inner = build_source(inner_raw, chain, rpc=rpc, http=http, timeout_s=timeout_s)
        return RouterGateway(
            address,
            chain,
            inner,
            gas_overhead=int(entry.get("gas_overhead") or config.GATEWAY_GAS_OVERHEAD),
        )
    raise ConfigError(f"{where}: unknown aggregator kind")


def build_registry(
    chains: Iterable[ChainContext],
    *,
    rpc_for: Callable[[ChainContext], Any],
    http: AsyncHTTP,
    timeout_s: Optional[float] = None,
) -> AggregatorRegistry:
    """Build sources for every chain once at startup.

    `rpc_for` returns the RPC client a chain's on-chain reads go through.
    """
    table: Dict[int, List[QuoteSource]] = {}
    for chain in chains:
        rpc = rpc_for(chain)
        table[chain.chain_id] = [
            build_source(entry, chain, rpc=rpc, http=http, timeout_s=timeout_s) for entry in chain.aggregators
        ]
    return AggregatorRegistry(table)
