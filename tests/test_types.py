import time

from eth_abi import encode

from fakes import make_request
from routing.abi import decode_revert_reason
from routing.sources.base import min_out, parse_bytes, parse_int, tx_deadline
from routing.types import Quote, Rejection, RouteResult


def _quote(**kw) -> Quote:
    fields = dict(
        source_id="A",
        amount_out=1000,
        min_amount_out=995,
        calldata=b"\xaa\xbb",
        target_contract="0x" + "1" * 40,
        native_value=7,
        estimated_gas=None,
        expires_at=time.time() + 30,
    )
    fields.update(kw)
    return Quote(**fields)


def test_min_out_floors() -> None:
    assert min_out(1000, 50) == 995
    assert min_out(999, 50) == 994
    assert min_out(1000, 0) == 1000
    assert min_out(1000, 9_999) == 0


def test_parse_int_variants() -> None:
    assert parse_int("123") == 123
    assert parse_int("0x10") == 16
    assert parse_int(5) == 5
    assert parse_int("12.0") == 12
    assert parse_int(None) is None
    assert parse_int("") is None
    assert parse_int("abc") is None
    assert parse_int(True) is None


def test_parse_bytes() -> None:
    assert parse_bytes("0xaabb") == b"\xaa\xbb"
    assert parse_bytes("zz") is None
    assert parse_bytes(None) is None


def test_tx_deadline_defaults() -> None:
    assert tx_deadline(make_request(deadline=123)) == 123
    assert tx_deadline(make_request(deadline=None), now_s=1000.0) == 1000 + 20 * 60


def test_quote_to_tx_omits_unknown_gas() -> None:
    tx = _quote().to_tx()
    assert tx == {"to": "0x" + "1" * 40, "data": "0xaabb", "value": 7}
    assert _quote(estimated_gas=21_000).to_tx()["gas"] == 21_000


def test_quote_expiry() -> None:
    q = _quote(expires_at=100.0)
    assert q.is_expired(now_s=100.0)
    assert not q.is_expired(now_s=99.0)


def test_route_result_to_dict() -> None:
    res = RouteResult(10143, _quote(), [Rejection("C", "insufficient liquidity", "NoLiquidity")], [_quote()])
    out = res.to_dict()
    assert out["chosen"]["source_id"] == "A"
    assert out["chosen"]["min_amount_out"] == "995"
    assert out["chosen"]["tx"]["value"] == "7"
    assert out["rejections"] == [{"source_id": "C", "reason": "insufficient liquidity", "kind": "NoLiquidity"}]

    empty = RouteResult(10143, None, [Rejection("registry", "unsupported chain", "AllSourcesFailed")])
    assert not empty.ok
    assert empty.to_dict()["chosen"] is None


def test_decode_revert_reason() -> None:
    assert decode_revert_reason("0x08c379a0" + encode(["string"], ["boom"]).hex()) == "revert:boom"
    assert decode_revert_reason("0x4e487b71" + encode(["uint256"], [0x11]).hex()) == "panic:0x11"
    assert decode_revert_reason("0xdeadbeef") == "revert:custom(deadbeef)"
    assert decode_revert_reason("0x") is None
    assert decode_revert_reason(None) is None
