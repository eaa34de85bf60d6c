# infra/rpc.py

from __future__ import annotations

import asyncio
import time
from typing import Any, Dict, Optional

import aiohttp

from routing import config
from infra.metrics import METRICS


class RPCError(Exception):
    pass


class RPCTimeout(RPCError):
    pass


class RPCRevert(RPCError):
    """eth_call reverted; `data` carries the raw revert payload (may be "0x")."""

    def __init__(self, message: str, data: Optional[str] = None) -> None:
        self.data = data
        super().__init__(message)


def _normalize_url(url: str) -> str:
    u = str(url).strip()
    if not u:
        return u
    if "://" not in u:
        u = "https://" + u
    return u


def url_host(url: str) -> str:
    u = _normalize_url(url).lower()
    if "://" in u:
        u = u.split("://", 1)[1]
    return u.split("/", 1)[0]


def normalize_rpc_error(exc: BaseException) -> str:
    if isinstance(exc, RPCTimeout):
        return "timeout"
    if isinstance(exc, RPCRevert):
        return "revert"
    text = str(exc).lower()
    if "http_429" in text or "rate limit" in text:
        return "rate_limited"
    if "http_5" in text:
        return "http_5xx"
    if "decode" in text:
        return "decode_error"
    return "rpc_error"


def _extract_revert_hex(ed: Any) -> Optional[str]:
    if isinstance(ed, dict):
        if isinstance(ed.get("data"), str):
            return ed["data"]
        if isinstance(ed.get("result"), str):
            return ed["result"]
        for _k, v in ed.items():
            if isinstance(v, dict):
                if isinstance(v.get("return"), str):
                    return v["return"]
                if isinstance(v.get("data"), str):
                    return v["data"]
    if isinstance(ed, str):
        return ed
    return None


def _clamp_timeout(timeout_s: Optional[float], default_s: float) -> float:
    to_s = float(timeout_s) if timeout_s is not None else float(default_s)
    min_t = float(config.RPC_TIMEOUT_MIN_S)
    max_t = max(min_t, float(config.RPC_TIMEOUT_MAX_S))
    return max(min_t, min(max_t, to_s))


class AsyncRPC:
    """Async JSON-RPC client for one endpoint.

    - persistent aiohttp session shared by all concurrent callers
    - per-call timeout, clamped to config.RPC_TIMEOUT_MIN_S..MAX_S
    - no retries: one quote request gets one attempt per source
    - eth_call reverts surface as RPCRevert with the revert payload
    """

    def __init__(self, url: str, *, default_timeout_s: float = config.RPC_DEFAULT_TIMEOUT_S):
        self.url = _normalize_url(url)
        self.default_timeout_s = float(default_timeout_s)
        self._id = 0
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session and not self._session.closed:
            return self._session
        # Limit total sockets to avoid exploding a public RPC.
        connector = aiohttp.TCPConnector(limit=50, ttl_dns_cache=300)
        self._session = aiohttp.ClientSession(connector=connector)
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def call(self, method: str, params: list, *, timeout_s: Optional[float] = None) -> Any:
        self._id += 1
        payload = {"jsonrpc": "2.0", "id": self._id, "method": method, "params": params}
        session = await self._get_session()
        to_s = _clamp_timeout(timeout_s, self.default_timeout_s)
        host = url_host(self.url)

        async def _do():
            async with session.post(self.url, json=payload) as resp:
                if resp.status >= 400:
                    text = await resp.text()
                    raise aiohttp.ClientResponseError(
                        request_info=resp.request_info,
                        history=resp.history,
                        status=resp.status,
                        message=text,
                        headers=resp.headers,
                    )
                return await resp.json(content_type=None)

        t0 = time.perf_counter()
        METRICS.inc("rpc_requests_total")
        try:
            data = await asyncio.wait_for(_do(), timeout=to_s)
        except asyncio.TimeoutError:
            METRICS.inc_reason("rpc_fail_by_reason", "timeout")
            raise RPCTimeout(f"timeout({to_s}s) {host} {method}") from None
        except aiohttp.ClientResponseError as e:
            METRICS.inc_reason("rpc_fail_by_reason", f"http_{e.status}")
            raise RPCError(f"http_{e.status} {host} {method}") from e
        except (aiohttp.ClientError, ValueError) as e:
            METRICS.inc_reason("rpc_fail_by_reason", "rpc_error")
            raise RPCError(f"{type(e).__name__}: {e}") from e
        finally:
            METRICS.observe(f"rpc_latency_ms:{host}", (time.perf_counter() - t0) * 1000.0)

        if not isinstance(data, dict):
            raise RPCError("decode: response is not an object")
        if "error" in data:
            err = data["error"]
            err_data = err.get("data") if isinstance(err, dict) else None
            msg = err.get("message") if isinstance(err, dict) else str(err)
            if method == "eth_call" and ("revert" in str(msg).lower() or err_data is not None):
                raise RPCRevert(f"revert: {msg}", _extract_revert_hex(err_data))
            raise RPCError(f"rpc_error:{err}")
        return data.get("result")

    async def eth_call(
        self,
        to: str,
        data: str,
        block: str = "latest",
        *,
        from_addr: Optional[str] = None,
        value: int = 0,
        timeout_s: Optional[float] = None,
    ) -> str:
        tx: Dict[str, Any] = {"to": to, "data": data}
        if from_addr:
            tx["from"] = from_addr
        if value:
            tx["value"] = hex(int(value))
        res = await self.call("eth_call", [tx, block], timeout_s=timeout_s)
        if not isinstance(res, str):
            raise RPCError("decode: eth_call result is not a hex string")
        return res
