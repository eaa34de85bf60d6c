from __future__ import annotations

import asyncio
import time
from typing import Any, Dict, Mapping, Optional

import aiohttp

from routing import config
from infra.metrics import METRICS
from infra.rpc import url_host


class HTTPError(Exception):
    def __init__(self, message: str, *, status: Optional[int] = None) -> None:
        self.status = status
        super().__init__(message)


class HTTPTimeout(HTTPError):
    pass


class AsyncHTTP:
    """Shared aiohttp session for aggregator REST APIs (GET + JSON only)."""

    def __init__(self, *, default_timeout_s: float = config.HTTP_DEFAULT_TIMEOUT_S):
        self.default_timeout_s = float(default_timeout_s)
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session and not self._session.closed:
            return self._session
        connector = aiohttp.TCPConnector(limit=50, ttl_dns_cache=300)
        self._session = aiohttp.ClientSession(connector=connector)
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def get_json(
        self,
        url: str,
        *,
        params: Optional[Any] = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout_s: Optional[float] = None,
    ) -> Any:
        session = await self._get_session()
        to_s = float(timeout_s) if timeout_s is not None else self.default_timeout_s
        host = url_host(url)

        async def _do():
            async with session.get(url, params=params, headers=dict(headers or {})) as resp:
                if resp.status < 200 or resp.status >= 300:
                    text = await resp.text()
                    raise HTTPError(f"http_{resp.status} {host}: {text[:160]}", status=resp.status)
                try:
                    return await resp.json(content_type=None)
                except ValueError as e:
                    raise HTTPError(f"decode_error {host}: {e}", status=resp.status) from e

        t0 = time.perf_counter()
        METRICS.inc("http_requests_total")
        try:
            return await asyncio.wait_for(_do(), timeout=to_s)
        except asyncio.TimeoutError:
            METRICS.inc_reason("http_fail_by_reason", "timeout")
            raise HTTPTimeout(f"timeout({to_s}s) {host}") from None
        except aiohttp.ClientError as e:
            METRICS.inc_reason("http_fail_by_reason", "client_error")
            raise HTTPError(f"{type(e).__name__}: {e}") from e
        finally:
            METRICS.observe(f"http_latency_ms:{host}", (time.perf_counter() - t0) * 1000.0)


def query_params(raw: Dict[str, Any]) -> Dict[str, str]:
    """Drop None values and stringify the rest (aiohttp rejects ints/bools)."""
    out: Dict[str, str] = {}
    for k, v in raw.items():
        if v is None:
            continue
        if isinstance(v, bool):
            out[k] = "true" if v else "false"
        else:
            out[k] = str(v)
    return out
