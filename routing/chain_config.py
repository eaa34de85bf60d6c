from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from eth_utils import is_address, to_checksum_address

from routing import config
from routing.errors import ConfigError


@dataclass(frozen=True)
class ChainContext:
    chain_id: int
    name: str
    native_token: str
    explorer_url: Optional[str]
    rpc_urls: Tuple[str, ...]
    aggregators: Tuple[Dict[str, Any], ...]


def _read_json(path: Path) -> Optional[Dict[str, Any]]:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return None


def _normalize_address(raw: Any, *, where: str) -> str:
    val = str(raw or "").strip()
    if not is_address(val):
        raise ConfigError(f"{where}: invalid address {val!r}")
    return to_checksum_address(val)


def _normalize_aggregator(raw: Any, *, where: str) -> Dict[str, Any]:
    if not isinstance(raw, dict):
        raise ConfigError(f"{where}: aggregator entry must be an object")
    kind = str(raw.get("kind") or "").strip().lower()
    if not kind:
        raise ConfigError(f"{where}: aggregator entry without kind")
    out: Dict[str, Any] = dict(raw)
    out["kind"] = kind
    if raw.get("address") is not None:
        out["address"] = _normalize_address(raw.get("address"), where=f"{where}.{kind}")
    if raw.get("inner") is not None:
        out["inner"] = _normalize_aggregator(raw.get("inner"), where=f"{where}.{kind}.inner")
    return out


def parse_chain_config(data: Dict[str, Any], *, fallback_name: str = "unknown") -> ChainContext:
    try:
        chain_id = int(data.get("chain_id"))
    except (TypeError, ValueError):
        raise ConfigError(f"{fallback_name}: missing or invalid chain_id") from None

    name = str(data.get("name") or fallback_name).strip().lower()
    native = data.get("native_token") or config.NATIVE_TOKEN
    aggregators = [
        _normalize_aggregator(a, where=f"{name}.aggregators[{i}]")
        for i, a in enumerate(data.get("aggregators") or [])
    ]
    explorer = str(data.get("explorer_url") or "").strip() or None

    return ChainContext(
        chain_id=chain_id,
        name=name,
        native_token=_normalize_address(native, where=f"{name}.native_token"),
        explorer_url=explorer,
        rpc_urls=tuple(str(x).strip() for x in (data.get("rpc_urls") or []) if str(x).strip()),
        aggregators=tuple(aggregators),
    )


def load_chain_config(
    chain_name: Optional[str] = None,
    chain_id: Optional[int] = None,
    *,
    base_dir: Optional[Path] = None,
) -> Optional[ChainContext]:
    base = Path(base_dir) if base_dir is not None else config.CHAIN_CONFIG_DIR
    name = str(chain_name or "").strip().lower()

    candidates: List[Path] = []
    if name:
        candidates.append(base / f"{name}.json")
    if chain_id is not None:
        candidates.append(base / f"{int(chain_id)}.json")

    for path in candidates:
        if not path.exists():
            continue
        data = _read_json(path)
        if isinstance(data, dict):
            return parse_chain_config(data, fallback_name=path.stem)

    # Files are named by chain, so an id lookup may need a scan.
    if chain_id is not None:
        for ctx in load_all_chains(base_dir=base):
            if ctx.chain_id == int(chain_id):
                return ctx
    return None


def load_all_chains(*, base_dir: Optional[Path] = None) -> List[ChainContext]:
    """Load every chain file once at startup, sorted by file name."""
    base = Path(base_dir) if base_dir is not None else config.CHAIN_CONFIG_DIR
    if not base.is_dir():
        return []
    out: List[ChainContext] = []
    seen: set = set()
    for path in sorted(base.glob("*.json")):
        data = _read_json(path)
        if not isinstance(data, dict):
            raise ConfigError(f"{path.name}: unreadable chain config")
        ctx = parse_chain_config(data, fallback_name=path.stem)
        if ctx.chain_id in seen:
            raise ConfigError(f"{path.name}: duplicate chain_id {ctx.chain_id}")
        seen.add(ctx.chain_id)
        out.append(ctx)
    return out
