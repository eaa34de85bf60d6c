import asyncio
import json
import logging

from fakes import NATIVE, RECIPIENT, USDC
from routing.app import build_app
from routing.logs import configure_logging
from scripts import quote as quote_cli


def test_build_app_wires_every_shipped_chain() -> None:
    app = build_app(rpc_overrides={10143: "https://override.example"})
    try:
        described = app.router.registry.describe()
        assert described[10143] == ["clober_v2", "gateway:openocean"]
        assert described[8453] == ["magpie"]
        assert app.rpcs[10143].url == "https://override.example"
        assert app.rpcs[8453].url == "https://mainnet.base.org"
    finally:
        asyncio.run(app.close())


def test_cli_validation_error_exit_code(capsys) -> None:
    code = quote_cli.main(
        [
            "--chain-id", "10143",
            "--token-in", NATIVE,
            "--token-out", USDC,
            "--amount-in", "0",
            "--recipient", RECIPIENT,
        ]
    )
    out = json.loads(capsys.readouterr().out)
    assert code == 2
    assert out == {"error": "validation", "field": "amount_in", "reason": "must be > 0"}


def test_cli_unknown_chain_exit_code(capsys) -> None:
    code = quote_cli.main(
        [
            "--chain-id", "1",
            "--token-in", NATIVE,
            "--token-out", USDC,
            "--amount-in", "1000",
            "--recipient", RECIPIENT,
        ]
    )
    out = json.loads(capsys.readouterr().out)
    assert code == 1
    assert out["chosen"] is None
    assert out["rejections"] == [{"source_id": "registry", "reason": "unsupported chain", "kind": "AllSourcesFailed"}]


def test_configure_logging_format(tmp_path) -> None:
    log_path = tmp_path / "logs" / "quote.log"
    logger = configure_logging("debug", log_path=log_path)
    try:
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 2
        assert all(h.formatter._fmt == "%(asctime)s %(levelname)s %(message)s" for h in logger.handlers)
        logging.getLogger("routing.router").info("hello")
        logger.handlers[1].flush()
        assert log_path.read_text(encoding="utf-8").rstrip().endswith("INFO hello")
    finally:
        for handler in logger.handlers:
            handler.close()
        logger.handlers.clear()
