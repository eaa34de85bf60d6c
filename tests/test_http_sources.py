import asyncio
import dataclasses
import re

import pytest
import pytest_asyncio
from aioresponses import aioresponses

from fakes import NATIVE, USDC, FakeRPC, make_chain, make_request
from routing import config
from routing.errors import NoLiquidity, SourceUnavailable
from routing.sources.magpie import MagpieSource
from routing.sources.openocean import OpenOceanSource, slippage_percent
from infra.http import AsyncHTTP
from infra.rpc import RPCTimeout

OPENOCEAN_ROUTER = "0x6352a56caadc4f1e25cd6c75970fa768a3304e64"
MAGPIE_ROUTER = "0x5e766616aabfb588e23a8ea854e9dbd1042affd3"

RE_OPENOCEAN_SWAP = re.compile(r"https://oo\.example/v4/10143/swap.*")
RE_MAGPIE_QUOTE = re.compile(r"https://magpie\.example/aggregator/quote.*")
RE_MAGPIE_TX = re.compile(r"https://magpie\.example/aggregator/transaction.*")

SAMPLE_CALLDATA = "0xabcdef1234567890"


def _openocean_response(out_amount="2000000", min_out="1990000", router=OPENOCEAN_ROUTER, gas="180000"):
    data = {
        "outAmount": out_amount,
        "minOutAmount": min_out,
        "data": SAMPLE_CALLDATA,
        "to": router,
        "value": str(10**18),
    }
    if gas is not None:
        data["estimatedGas"] = gas
    return {"code": 200, "data": data}


@pytest_asyncio.fixture
async def http():
    client = AsyncHTTP(default_timeout_s=1.0)
    yield client
    await client.close()


def _openocean(http, rpc=None) -> OpenOceanSource:
    return OpenOceanSource(
        OPENOCEAN_ROUTER, make_chain(), http=http, rpc=rpc or FakeRPC(), base_url="https://oo.example"
    )


def _magpie(http) -> MagpieSource:
    chain = make_chain(chain_id=8453, name="base")
    return MagpieSource(MAGPIE_ROUTER, chain, http=http, base_url="https://magpie.example", api_key=None)


def test_slippage_percent() -> None:
    assert slippage_percent(50) == "0.5"
    assert slippage_percent(100) == "1"
    assert slippage_percent(5) == "0.05"
    assert slippage_percent(0) == "0"


@pytest.mark.asyncio
async def test_openocean_maps_response(http) -> None:
    with aioresponses() as mocked:
        mocked.get(RE_OPENOCEAN_SWAP, payload=_openocean_response())
        quote = await _openocean(http).get_quote(make_request())

    assert quote.source_id == "openocean"
    assert quote.amount_out == 2_000_000
    assert quote.min_amount_out == 1_990_000
    assert quote.calldata == bytes.fromhex(SAMPLE_CALLDATA[2:])
    assert quote.target_contract.lower() == OPENOCEAN_ROUTER
    assert quote.native_value == 10**18
    assert quote.estimated_gas == 180_000


@pytest.mark.asyncio
async def test_openocean_min_out_above_out_amount_is_clamped(http) -> None:
    with aioresponses() as mocked:
        mocked.get(RE_OPENOCEAN_SWAP, payload=_openocean_response(out_amount="2000000", min_out="2500000"))
        quote = await _openocean(http).get_quote(make_request())

    assert quote.amount_out == 2_000_000
    assert quote.min_amount_out == 2_000_000


@pytest.mark.asyncio
async def test_openocean_request_params(http) -> None:
    with aioresponses() as mocked:
        mocked.get(RE_OPENOCEAN_SWAP, payload=_openocean_response())
        await _openocean(http).get_quote(make_request())
        (_method, url), _calls = next(iter(mocked.requests.items()))

    query = url.query
    assert query["inTokenAddress"] == config.NATIVE_TOKEN_EEEE
    assert query["outTokenAddress"].lower() == USDC
    assert query["amountDecimals"] == str(10**18)
    assert query["gasPriceDecimals"] == str(0x3B9ACA00)
    assert query["slippage"] == "0.5"


@pytest.mark.asyncio
async def test_openocean_missing_gas_is_unknown(http) -> None:
    with aioresponses() as mocked:
        mocked.get(RE_OPENOCEAN_SWAP, payload=_openocean_response(gas=None))
        quote = await _openocean(http).get_quote(make_request())
    assert quote.estimated_gas is None


@pytest.mark.asyncio
async def test_openocean_min_out_falls_back_to_slippage(http) -> None:
    with aioresponses() as mocked:
        mocked.get(RE_OPENOCEAN_SWAP, payload=_openocean_response(min_out=None))
        quote = await _openocean(http).get_quote(make_request())
    assert quote.min_amount_out == 2_000_000 * 9950 // 10_000


@pytest.mark.asyncio
async def test_openocean_http_error(http) -> None:
    with aioresponses() as mocked:
        mocked.get(RE_OPENOCEAN_SWAP, status=500)
        with pytest.raises(SourceUnavailable) as exc:
            await _openocean(http).get_quote(make_request())
    assert exc.value.reason == "http_500"


@pytest.mark.asyncio
async def test_openocean_timeout(http) -> None:
    with aioresponses() as mocked:
        mocked.get(RE_OPENOCEAN_SWAP, exception=asyncio.TimeoutError())
        with pytest.raises(SourceUnavailable) as exc:
            await _openocean(http).get_quote(make_request())
    assert exc.value.reason == "timeout"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        {"code": 200, "data": {"outAmount": "10"}},
        {"code": 200, "data": "nope"},
        ["not", "a", "dict"],
        {"code": 500, "error": "internal"},
    ],
)
async def test_openocean_malformed_payload(http, payload) -> None:
    with aioresponses() as mocked:
        mocked.get(RE_OPENOCEAN_SWAP, payload=payload)
        with pytest.raises(SourceUnavailable):
            await _openocean(http).get_quote(make_request())


@pytest.mark.asyncio
async def test_openocean_zero_output_is_no_liquidity(http) -> None:
    with aioresponses() as mocked:
        mocked.get(RE_OPENOCEAN_SWAP, payload=_openocean_response(out_amount="0", min_out="0"))
        with pytest.raises(NoLiquidity):
            await _openocean(http).get_quote(make_request())


@pytest.mark.asyncio
async def test_openocean_rejects_unexpected_router(http) -> None:
    with aioresponses() as mocked:
        mocked.get(RE_OPENOCEAN_SWAP, payload=_openocean_response(router="0x" + "ab" * 20))
        with pytest.raises(SourceUnavailable) as exc:
            await _openocean(http).get_quote(make_request())
    assert exc.value.reason == "unexpected router"


@pytest.mark.asyncio
async def test_openocean_gas_price_failure(http) -> None:
    rpc = FakeRPC(gas_price=RPCTimeout("timeout(3.0s)"))
    with aioresponses():
        with pytest.raises(SourceUnavailable) as exc:
            await _openocean(http, rpc).get_quote(make_request())
    assert exc.value.reason == "gas price: timeout"


@pytest.mark.asyncio
async def test_magpie_quote_then_transaction(http) -> None:
    request = make_request(chain_id=8453, token_in=NATIVE)
    with aioresponses() as mocked:
        mocked.get(RE_MAGPIE_QUOTE, payload={"id": "q-1", "amountOut": "3000000", "targetAddress": MAGPIE_ROUTER})
        mocked.get(
            RE_MAGPIE_TX,
            payload={"to": MAGPIE_ROUTER, "data": SAMPLE_CALLDATA, "value": str(10**18), "gasLimit": "210000"},
        )
        quote = await _magpie(http).get_quote(request)
        urls = [url for (_method, url) in mocked.requests.keys()]

    assert quote.source_id == "magpie"
    assert quote.amount_out == 3_000_000
    assert quote.min_amount_out == 3_000_000 * 9950 // 10_000
    assert quote.estimated_gas == 210_000
    assert quote.native_value == 10**18
    assert quote.meta["quote_id"] == "q-1"
    assert urls[0].query["network"] == "base"
    assert urls[0].query["slippage"] == "0.005"
    assert urls[1].query["quoteId"] == "q-1"


@pytest.mark.asyncio
async def test_magpie_missing_gas_limit_is_unknown(http) -> None:
    with aioresponses() as mocked:
        mocked.get(RE_MAGPIE_QUOTE, payload={"id": "q-2", "amountOut": "10"})
        mocked.get(RE_MAGPIE_TX, payload={"to": MAGPIE_ROUTER, "data": "0x01"})
        quote = await _magpie(http).get_quote(make_request(chain_id=8453))
    assert quote.estimated_gas is None
    assert quote.native_value == 0


@pytest.mark.asyncio
async def test_magpie_zero_output_skips_transaction(http) -> None:
    with aioresponses() as mocked:
        mocked.get(RE_MAGPIE_QUOTE, payload={"id": "q-3", "amountOut": "0"})
        with pytest.raises(NoLiquidity):
            await _magpie(http).get_quote(make_request(chain_id=8453))
        assert len(mocked.requests) == 1


@pytest.mark.asyncio
async def test_magpie_liquidity_error(http) -> None:
    with aioresponses() as mocked:
        mocked.get(RE_MAGPIE_QUOTE, status=400, body="Insufficient liquidity for this trade")
        with pytest.raises(NoLiquidity):
            await _magpie(http).get_quote(make_request(chain_id=8453))


@pytest.mark.asyncio
async def test_magpie_malformed_quote(http) -> None:
    with aioresponses() as mocked:
        mocked.get(RE_MAGPIE_QUOTE, payload={"amountOut": "10"})
        with pytest.raises(SourceUnavailable):
            await _magpie(http).get_quote(make_request(chain_id=8453))


def test_magpie_maps_chain_native_token() -> None:
    wrapped_native = "0x" + "de" * 20
    chain = dataclasses.replace(make_chain(chain_id=8453, name="base"), native_token=wrapped_native)
    source = MagpieSource(MAGPIE_ROUTER, chain, http=AsyncHTTP(), base_url="https://magpie.example", api_key=None)

    assert source._token(wrapped_native) == config.NATIVE_TOKEN
    assert source._token(config.NATIVE_TOKEN_EEEE) == config.NATIVE_TOKEN
    assert source._token(USDC).lower() == USDC
