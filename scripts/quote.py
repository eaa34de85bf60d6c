from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import List, Optional


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from routing import config  # noqa: E402
from routing.app import build_app  # noqa: E402
from routing.errors import ValidationError  # noqa: E402
from routing.logs import configure_logging  # noqa: E402
from routing.types import QuoteRequest  # noqa: E402
from infra.metrics import METRICS  # noqa: E402


async def _run(args: argparse.Namespace) -> int:
    overrides = {int(args.chain_id): args.rpc_url} if args.rpc_url else None
    app = build_app(
        base_dir=Path(args.config_dir) if args.config_dir else None,
        rpc_overrides=overrides,
        source_timeout_s=float(args.timeout_s),
    )
    request = QuoteRequest(
        chain_id=int(args.chain_id),
        token_in=args.token_in,
        token_out=args.token_out,
        amount_in=int(args.amount_in),
        recipient=args.recipient,
        slippage_bps=int(args.slippage_bps),
        deadline=int(args.deadline) if args.deadline else None,
    )
    try:
        result = await app.router.route(request, budget_s=args.budget_s)
    except ValidationError as e:
        print(json.dumps({"error": "validation", "field": e.field, "reason": e.reason}))
        return 2
    finally:
        await app.close()

    out = result.to_dict()
    if args.metrics:
        out["metrics"] = METRICS.snapshot()
    print(json.dumps(out, indent=2))
    return 0 if result.ok else 1


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Quote a swap across all registered sources")
    parser.add_argument("--chain-id", type=int, required=True, help="chain id")
    parser.add_argument("--token-in", required=True, help="input token address (zero address for native)")
    parser.add_argument("--token-out", required=True, help="output token address")
    parser.add_argument("--amount-in", required=True, help="amount in base units")
    parser.add_argument("--recipient", required=True, help="address receiving the output")
    parser.add_argument("--slippage-bps", type=int, default=config.DEFAULT_SLIPPAGE_BPS, help="slippage in bps")
    parser.add_argument("--deadline", type=int, default=0, help="tx deadline (unix seconds, optional)")
    parser.add_argument("--budget-s", type=float, default=None, help="overall response budget (optional)")
    parser.add_argument("--timeout-s", type=float, default=config.SOURCE_TIMEOUT_S, help="per-source timeout")
    parser.add_argument("--rpc-url", default="", help="override RPC for the requested chain")
    parser.add_argument("--config-dir", default="", help="chain config directory")
    parser.add_argument("--log-level", default="INFO", help="log level")
    parser.add_argument("--metrics", action="store_true", help="include metrics snapshot")
    args = parser.parse_args(argv)

    configure_logging(args.log_level)
    return asyncio.run(_run(args))


if __name__ == "__main__":
    raise SystemExit(main())
