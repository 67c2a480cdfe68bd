"""Tests for the Bitcoin sweep builder."""

from decimal import Decimal

import httpx
import pytest

from chainsweep.builders.bitcoin import BitcoinChainBuilder, calculate_fee, estimate_vbytes
from chainsweep.chains import ChainKind
from chainsweep.errors import (
    ConfigurationError,
    FeeEstimationError,
    InsufficientBalanceError,
    InvalidAddressError,
    RpcError,
    UtxoSelectionError,
)
from chainsweep.types import BroadcastParams, BuildTxParams
from conftest import (
    BTC_API,
    BTC_P2PKH,
    BTC_P2SH,
    BTC_SEGWIT,
    RecordingTransport,
    make_settings,
    unreachable,
)


def utxo(txid: str, value: int, vout: int = 0, confirmed: bool = True) -> dict:
    return {"txid": txid, "vout": vout, "value": value, "status": {"confirmed": confirmed}}


def esplora_handler(utxos: list[dict], fee_estimates=None, fee_status: int = 200):
    if fee_estimates is None:
        fee_estimates = {"1": 10.0, "6": 5.0}

    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path.endswith("/utxo"):
            return httpx.Response(200, json=utxos)
        if path.endswith("/fee-estimates"):
            return httpx.Response(fee_status, json=fee_estimates)
        if path.endswith("/tx"):
            return httpx.Response(200, text="c0ffee" * 10 + "\n")
        return httpx.Response(404)

    return handler


def params(balance: int, **overrides) -> BuildTxParams:
    values = dict(
        chain=ChainKind.BTC,
        network="mainnet",
        asset="BTC",
        from_address=BTC_SEGWIT,
        to_address=BTC_P2PKH,
        balance=balance,
    )
    values.update(overrides)
    return BuildTxParams(**values)


class TestBitcoinAddressValidation:
    """Tests for Bitcoin address format checks."""

    @pytest.mark.parametrize("address", [BTC_SEGWIT, BTC_P2PKH, BTC_P2SH, BTC_SEGWIT.upper()])
    def test_valid(self, address):
        assert BitcoinChainBuilder(make_settings()).validate_address(address)

    @pytest.mark.parametrize(
        "address",
        [
            "",
            "bc1short",
            "tb1qw508d6qejxtdg4y5r3zarvary0c5xw7kxpjzsx",
            "2MzQwSSnBHWHqSAqtTVQ6v47XtaisrJa1Vc",
            "1" + "0" * 33,
            "1abc",
            "bc1" + "q" * 100,
            "\u0000￿",
        ],
    )
    def test_invalid(self, address):
        assert BitcoinChainBuilder(make_settings()).validate_address(address) is False


class TestFeeMath:
    """Tests for the vbyte fee model."""

    def test_vbytes(self):
        assert estimate_vbytes(1, 1) == 192
        assert estimate_vbytes(2, 2) == 374

    def test_fee_rounds_up(self):
        assert calculate_fee(1, 1, Decimal("10")) == 1920
        assert calculate_fee(1, 1, Decimal("1.01")) == 194


class TestBitcoinBuild:
    """Tests for building Bitcoin sweeps."""

    @pytest.mark.asyncio
    async def test_single_utxo_sweep(self):
        """One 100000 sat UTXO at 10 sat/vB pays 1920 sat."""
        builder = BitcoinChainBuilder(
            make_settings(), transport=httpx.MockTransport(esplora_handler([utxo("aa" * 32, 100_000)]))
        )

        unsigned = await builder.build_unsigned_tx(params(100_000))

        assert unsigned.estimated_fee == "1920"
        assert unsigned.data["inputs"] == [{"txid": "aa" * 32, "vout": 0, "value": 100_000}]
        assert unsigned.data["outputs"] == [{"address": BTC_P2PKH, "value": 98_080}]
        assert unsigned.data["fee"] == 1920
        assert unsigned.metadata["amountAfterFee"] == "98080"
        assert unsigned.metadata["utxosUsed"] == 1
        assert unsigned.metadata["changeAmount"] == "0"

    @pytest.mark.asyncio
    async def test_unconfirmed_utxos_ignored(self):
        handler = esplora_handler([utxo("aa" * 32, 100_000), utxo("bb" * 32, 50_000, confirmed=False)])
        builder = BitcoinChainBuilder(make_settings(), transport=httpx.MockTransport(handler))

        unsigned = await builder.build_unsigned_tx(params(100_000))

        assert len(unsigned.data["inputs"]) == 1

    @pytest.mark.asyncio
    async def test_change_returned_when_utxos_exceed_balance(self):
        handler = esplora_handler([utxo("aa" * 32, 60_000), utxo("bb" * 32, 60_000, vout=1)])
        builder = BitcoinChainBuilder(make_settings(), transport=httpx.MockTransport(handler))

        unsigned = await builder.build_unsigned_tx(params(100_000))

        fee = (2 * 148 + 2 * 34 + 10) * 10
        assert unsigned.estimated_fee == str(fee)
        outputs = unsigned.data["outputs"]
        assert outputs[0] == {"address": BTC_P2PKH, "value": 100_000 - fee}
        assert outputs[1] == {"address": BTC_SEGWIT, "value": 20_000}
        assert sum(o["value"] for o in outputs) + unsigned.data["fee"] == 120_000

    @pytest.mark.asyncio
    async def test_explicit_change_address(self):
        handler = esplora_handler([utxo("aa" * 32, 150_000)])
        builder = BitcoinChainBuilder(make_settings(), transport=httpx.MockTransport(handler))

        unsigned = await builder.build_unsigned_tx(
            params(100_000, chain_specific={"change_address": BTC_P2SH})
        )

        assert unsigned.data["outputs"][1]["address"] == BTC_P2SH

    @pytest.mark.asyncio
    async def test_balance_equal_to_fee_is_insufficient(self):
        builder = BitcoinChainBuilder(
            make_settings(), transport=httpx.MockTransport(esplora_handler([utxo("aa" * 32, 1920)]))
        )

        with pytest.raises(InsufficientBalanceError) as exc_info:
            await builder.build_unsigned_tx(params(1920))

        assert exc_info.value.required > exc_info.value.available == 1920

    @pytest.mark.asyncio
    async def test_dust_send_amount_is_insufficient(self):
        builder = BitcoinChainBuilder(
            make_settings(), transport=httpx.MockTransport(esplora_handler([utxo("aa" * 32, 2000)]))
        )

        with pytest.raises(InsufficientBalanceError) as exc_info:
            await builder.build_unsigned_tx(params(2000))

        assert exc_info.value.required > exc_info.value.available

    @pytest.mark.asyncio
    async def test_no_utxos(self):
        builder = BitcoinChainBuilder(make_settings(), transport=httpx.MockTransport(esplora_handler([])))

        with pytest.raises(UtxoSelectionError):
            await builder.build_unsigned_tx(params(100_000))

    @pytest.mark.asyncio
    async def test_fee_rate_fallback(self):
        handler = esplora_handler([utxo("aa" * 32, 100_000)], fee_status=500)
        builder = BitcoinChainBuilder(make_settings(), transport=httpx.MockTransport(handler))

        unsigned = await builder.build_unsigned_tx(params(100_000))

        assert unsigned.estimated_fee == "1920"
        assert unsigned.metadata["feeRate"] == "10"

    @pytest.mark.asyncio
    async def test_fractional_fee_rate(self):
        handler = esplora_handler([utxo("aa" * 32, 100_000)], fee_estimates={"1": 2.5})
        builder = BitcoinChainBuilder(make_settings(), transport=httpx.MockTransport(handler))

        unsigned = await builder.build_unsigned_tx(params(100_000))

        assert unsigned.estimated_fee == "480"

    @pytest.mark.asyncio
    async def test_invalid_destination(self):
        builder = BitcoinChainBuilder(make_settings(), transport=httpx.MockTransport(unreachable))

        with pytest.raises(InvalidAddressError):
            await builder.build_unsigned_tx(params(100_000, to_address="0x" + "a" * 40))

    @pytest.mark.asyncio
    async def test_missing_api_url(self):
        builder = BitcoinChainBuilder(make_settings(bitcoin_api_url=""), transport=httpx.MockTransport(unreachable))

        with pytest.raises(ConfigurationError) as exc_info:
            await builder.build_unsigned_tx(params(100_000))

        assert "BITCOIN_API_URL" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_utxo_fetch_failure(self):
        builder = BitcoinChainBuilder(
            make_settings(), transport=httpx.MockTransport(lambda r: httpx.Response(500, text="oops"))
        )

        with pytest.raises(RpcError) as exc_info:
            await builder.build_unsigned_tx(params(100_000))

        assert exc_info.value.endpoint == BTC_API


class TestBitcoinBroadcast:
    """Tests for Bitcoin broadcast."""

    @pytest.mark.asyncio
    async def test_broadcast_posts_raw_hex(self):
        transport = RecordingTransport(esplora_handler([]))
        builder = BitcoinChainBuilder(make_settings(), transport=transport)

        result = await builder.broadcast_tx(
            BroadcastParams(chain=ChainKind.BTC, network="mainnet", signed_tx="0200000001abcd")
        )

        assert result.transaction_hash == "c0ffee" * 10
        request = transport.requests[0]
        assert request.method == "POST"
        assert request.url.path == "/api/tx"
        assert request.content == b"0200000001abcd"

    @pytest.mark.asyncio
    async def test_estimate_fee_uses_shape(self):
        builder = BitcoinChainBuilder(make_settings(), transport=httpx.MockTransport(esplora_handler([])))

        fee = await builder.estimate_fee(params(0, chain_specific={"input_count": 3, "output_count": 2}))

        assert fee == (3 * 148 + 2 * 34 + 10) * 10

    @pytest.mark.asyncio
    async def test_estimate_fee_accepts_digit_strings(self):
        builder = BitcoinChainBuilder(make_settings(), transport=httpx.MockTransport(esplora_handler([])))

        fee = await builder.estimate_fee(params(0, chain_specific={"input_count": "2", "output_count": "1"}))

        assert fee == (2 * 148 + 34 + 10) * 10

    @pytest.mark.asyncio
    @pytest.mark.parametrize("count", ["abc", "1.5", 0, -1, True, None, 2.5])
    async def test_estimate_fee_rejects_bad_shape(self, count):
        builder = BitcoinChainBuilder(make_settings(), transport=httpx.MockTransport(unreachable))

        with pytest.raises(FeeEstimationError) as exc_info:
            await builder.estimate_fee(params(0, chain_specific={"input_count": count}))

        assert "input_count" in str(exc_info.value)
