from __future__ import annotations

import asyncio
import logging
import time
from typing import List, Optional, Sequence, Tuple, Union

from eth_utils import is_address

from routing import config
from routing.errors import SourceFailure, ValidationError
from routing.registry import AggregatorRegistry
from routing.sources.base import QuoteSource
from routing.types import Quote, QuoteRequest, Rejection, RouteResult
from infra.metrics import METRICS, Metrics

log = logging.getLogger(__name__)

Outcome = Union[Quote, Rejection]


def validate_request(request: QuoteRequest) -> None:
    if isinstance(request.chain_id, bool) or not isinstance(request.chain_id, int):
        raise ValidationError("chain_id", "must be an integer")
    if isinstance(request.amount_in, bool) or not isinstance(request.amount_in, int):
        raise ValidationError("amount_in", "must be an integer amount in base units")
    if request.amount_in <= 0:
        raise ValidationError("amount_in", "must be > 0")
    for name in ("token_in", "token_out", "recipient"):
        if not is_address(str(getattr(request, name) or "")):
            raise ValidationError(name, "not an address")
    if str(request.token_in).lower() == str(request.token_out).lower():
        raise ValidationError("token_out", "must differ from token_in")
    bps = request.slippage_bps
    if isinstance(bps, bool) or not isinstance(bps, int) or not (0 <= bps < config.MAX_SLIPPAGE_BPS):
        raise ValidationError("slippage_bps", f"must be in [0, {config.MAX_SLIPPAGE_BPS})")
    deadline = request.deadline
    if deadline is not None and (isinstance(deadline, bool) or not isinstance(deadline, int) or deadline < 0):
        raise ValidationError("deadline", "must be a unix timestamp")


def select_best(candidates: Sequence[Tuple[int, Quote]]) -> Optional[Quote]:
    """Highest min_amount_out; ties go to known gas, then lower gas, then registry order."""
    if not candidates:
        return None

    def _key(item: Tuple[int, Quote]):
        idx, q = item
        gas_known = q.estimated_gas is not None
        return (-int(q.min_amount_out), 0 if gas_known else 1, int(q.estimated_gas or 0), idx)

    return min(candidates, key=_key)[1]


class Router:
    """Fans a quote request out to every source registered for the chain."""

    def __init__(
        self,
        registry: AggregatorRegistry,
        *,
        source_timeout_s: float = config.SOURCE_TIMEOUT_S,
        metrics: Metrics = METRICS,
    ):
        self.registry = registry
        self.source_timeout_s = float(source_timeout_s)
        self.metrics = metrics

    async def _quote_one(self, source: QuoteSource, request: QuoteRequest) -> Outcome:
        sid = source.source_id
        t0 = time.perf_counter()
        try:
            quote = await asyncio.wait_for(source.get_quote(request), timeout=self.source_timeout_s)
        except asyncio.TimeoutError:
            outcome: Outcome = Rejection(sid, "timeout", "SourceUnavailable")
        except SourceFailure as e:
            outcome = Rejection(sid, e.reason, type(e).__name__)
        except Exception as e:
            log.exception("source %s raised unexpectedly", sid)
            outcome = Rejection(sid, f"internal:{type(e).__name__}", "SourceUnavailable")
        else:
            if quote.min_amount_out > quote.amount_out or quote.amount_out <= 0:
                outcome = Rejection(sid, "inconsistent quote", "SourceUnavailable")
            else:
                outcome = quote

        dt_ms = (time.perf_counter() - t0) * 1000.0
        if isinstance(outcome, Rejection):
            self.metrics.record_quote(sid, ok=False, latency_ms=dt_ms, reason=outcome.reason)
            log.warning("source %s rejected: %s (%.0fms)", sid, outcome.reason, dt_ms)
        else:
            self.metrics.record_quote(sid, ok=True, latency_ms=dt_ms)
            log.debug("source %s min_out=%s gas=%s (%.0fms)", sid, outcome.min_amount_out, outcome.estimated_gas, dt_ms)
        return outcome

    async def route(self, request: QuoteRequest, *, budget_s: Optional[float] = None) -> RouteResult:
        """Quote every source and pick the best route.

        Raises ValidationError for malformed requests (no network calls made).
        Every other failure ends up in RouteResult.rejections. With `budget_s`
        set, sources still pending when it elapses are cancelled and rejected
        as "deadline"; quotes already received are still ranked.
        """
        validate_request(request)
        chain_id = int(request.chain_id)
        sources = self.registry.sources_for(chain_id)
        if not sources:
            log.info("route chain=%s: no sources registered", chain_id)
            self.metrics.inc("route_unsupported_chain")
            return RouteResult(chain_id, None, [Rejection("registry", "unsupported chain", "AllSourcesFailed")])

        tasks = [asyncio.ensure_future(self._quote_one(s, request)) for s in sources]
        _done, pending = await asyncio.wait(tasks, timeout=budget_s)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        quotes: List[Tuple[int, Quote]] = []
        rejections: List[Rejection] = []
        for idx, (source, task) in enumerate(zip(sources, tasks)):
            if task in pending:
                self.metrics.record_quote(source.source_id, ok=False, latency_ms=float(budget_s or 0) * 1000.0, reason="deadline")
                rejections.append(Rejection(source.source_id, "deadline", "SourceUnavailable"))
                continue
            outcome = task.result()
            if isinstance(outcome, Rejection):
                rejections.append(outcome)
            else:
                quotes.append((idx, outcome))

        chosen = select_best(quotes)
        self.metrics.inc("route_ok" if chosen is not None else "route_no_quote")
        log.info(
            "route chain=%s %s->%s amount_in=%s: chosen=%s quotes=%d rejected=%d",
            chain_id,
            request.token_in,
            request.token_out,
            request.amount_in,
            chosen.source_id if chosen is not None else None,
            len(quotes),
            len(rejections),
        )
        return RouteResult(chain_id, chosen, rejections, [q for _, q in quotes])

    async def best_quote(self, request: QuoteRequest, *, budget_s: Optional[float] = None) -> Quote:
        """Like route(), but raises AllSourcesFailed when nothing could be quoted."""
        result = await self.route(request, budget_s=budget_s)
        return result.raise_for_status()
