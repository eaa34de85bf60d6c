from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from routing import config
from routing.chain_config import ChainContext, load_all_chains
from routing.errors import ConfigError
from routing.registry import build_registry
from routing.router import Router
from infra.http import AsyncHTTP
from infra.rpc import AsyncRPC


@dataclass
class RoutingApp:
    """Process-wide wiring: one registry, shared HTTP session, one RPC per chain."""

    router: Router
    chains: List[ChainContext]
    http: AsyncHTTP
    rpcs: Dict[int, AsyncRPC] = field(default_factory=dict)

    async def close(self) -> None:
        await self.http.close()
        for rpc in self.rpcs.values():
            await rpc.close()


def build_app(
    *,
    base_dir: Optional[Path] = None,
    rpc_overrides: Optional[Dict[int, str]] = None,
    source_timeout_s: float = config.SOURCE_TIMEOUT_S,
) -> RoutingApp:
    chains = load_all_chains(base_dir=base_dir)
    http = AsyncHTTP()
    rpcs: Dict[int, AsyncRPC] = {}
    overrides = dict(rpc_overrides or {})

    def _rpc_for(chain: ChainContext) -> AsyncRPC:
        url = overrides.get(chain.chain_id) or (chain.rpc_urls[0] if chain.rpc_urls else None)
        if not url:
            raise ConfigError(f"{chain.name}: no rpc_urls configured")
        rpc = AsyncRPC(url, default_timeout_s=min(config.RPC_DEFAULT_TIMEOUT_S, source_timeout_s))
        rpcs[chain.chain_id] = rpc
        return rpc

    registry = build_registry(chains, rpc_for=_rpc_for, http=http, timeout_s=source_timeout_s)
    router = Router(registry, source_timeout_s=source_timeout_s)
    return RoutingApp(router=router, chains=chains, http=http, rpcs=rpcs)
