"""Bitcoin sweep builder.

Uses an Esplora (Blockstream-style) REST API for UTXOs, fee rates and
broadcast. The sweep path spends every confirmed UTXO of the deposit
address; strategy-based coin selection lives in chainsweep.utxo.
"""

import logging
import math
import re
from decimal import Decimal, InvalidOperation

from chainsweep.builders.base import ChainTxBuilder, ProtocolError
from chainsweep.chains import (
    BTC_DUST_LIMIT,
    BTC_FALLBACK_FEE_RATE,
    BTC_INPUT_VBYTES,
    BTC_OUTPUT_VBYTES,
    BTC_TX_OVERHEAD_VBYTES,
    ChainKind,
)
from chainsweep.errors import (
    FeeEstimationError,
    InsufficientBalanceError,
    InvalidAddressError,
    RpcError,
    UtxoSelectionError,
)
from chainsweep.types import BroadcastParams, BroadcastResult, BuildTxParams, UnsignedTx

logger = logging.getLogger(__name__)

BECH32_PATTERN = re.compile(r"^bc1[a-z0-9]{39,87}$", re.IGNORECASE)
LEGACY_PATTERN = re.compile(r"^[13][1-9A-HJ-NP-Za-km-z]{25,33}$")

# Esplora fee-estimates key for next-block confirmation
NEXT_BLOCK_TARGET = "1"


def estimate_vbytes(input_count: int, output_count: int) -> int:
    """Approximate virtual size: 148 per input, 34 per output, 10 overhead."""
    return (
        input_count * BTC_INPUT_VBYTES
        + output_count * BTC_OUTPUT_VBYTES
        + BTC_TX_OVERHEAD_VBYTES
    )


def calculate_fee(input_count: int, output_count: int, fee_rate: Decimal) -> int:
    """Fee in satoshi, rounded up."""
    return math.ceil(Decimal(estimate_vbytes(input_count, output_count)) * fee_rate)


class BitcoinChainBuilder(ChainTxBuilder):
    """Bitcoin mainnet sweep builder."""

    chain = ChainKind.BTC

    def validate_address(self, address: str) -> bool:
        """Validate Bitcoin mainnet address format.

        - bech32 (bc1...): SegWit v0/v1
        - P2PKH (1...) and P2SH (3...): base58, 26-34 chars
        """
        if not isinstance(address, str):
            return False

        if address[:3].lower() == "bc1":
            return BECH32_PATTERN.match(address) is not None

        if address.startswith(("1", "3")):
            return LEGACY_PATTERN.match(address) is not None

        return False

    async def estimate_fee(self, params: BuildTxParams) -> int:
        """Estimate fee for a sweep shape.

        Input/output counts default to 1/1 and may be overridden with
        ``chain_specific["input_count"]`` / ``["output_count"]``.
        """
        api_url = self.settings.require("bitcoin_api_url", self.chain)

        input_count = self._shape_count(params, "input_count")
        output_count = self._shape_count(params, "output_count")
        fee_rate = await self._get_fee_rate(api_url)

        return calculate_fee(input_count, output_count, fee_rate)

    def _shape_count(self, params: BuildTxParams, key: str) -> int:
        """Positive integer count from chain_specific, defaulting to 1."""
        value = params.chain_specific.get(key, 1)
        if isinstance(value, str) and value.strip().isdigit():
            value = int(value)
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise FeeEstimationError(self.chain, f"{key} must be a positive integer, got {value!r}")
        return value

    async def build_unsigned_tx(self, params: BuildTxParams) -> UnsignedTx:
        """Build a sweep spending all confirmed UTXOs of ``from_address``."""
        api_url = self.settings.require("bitcoin_api_url", self.chain)

        self._check_addresses(params)
        change_address = params.chain_specific.get("change_address") or params.from_address
        if not self.validate_address(change_address):
            raise InvalidAddressError(self.chain, change_address)

        utxos = await self._get_utxos(api_url, params.from_address)
        if not utxos:
            raise UtxoSelectionError(self.chain, f"No confirmed UTXOs for {params.from_address}")

        total_input = sum(utxo["value"] for utxo in utxos)
        if total_input < params.balance:
            raise UtxoSelectionError(
                self.chain,
                f"Confirmed UTXOs total {total_input} sat, below balance {params.balance}",
            )

        fee_rate = await self._get_fee_rate(api_url)

        # A change output is only expected when the UTXOs exceed the balance being swept
        output_count = 2 if total_input - params.balance >= BTC_DUST_LIMIT else 1
        fee = calculate_fee(len(utxos), output_count, fee_rate)

        if params.balance <= fee:
            raise InsufficientBalanceError(self.chain, fee + 1, params.balance)

        send_amount = params.balance - fee
        if send_amount < BTC_DUST_LIMIT:
            raise InsufficientBalanceError(self.chain, fee + BTC_DUST_LIMIT, params.balance)

        outputs = [{"address": params.to_address, "value": send_amount}]
        change = total_input - send_amount - fee
        if change >= BTC_DUST_LIMIT:
            outputs.append({"address": change_address, "value": change})

        total_output = sum(output["value"] for output in outputs)
        psbt = {
            "inputs": [
                {"txid": utxo["txid"], "vout": utxo["vout"], "value": utxo["value"]}
                for utxo in utxos
            ],
            "outputs": outputs,
            "fee": total_input - total_output,
        }

        logger.info(
            f"Built BTC sweep: {send_amount} sat from {len(utxos)} UTXOs "
            f"{params.from_address} -> {params.to_address} (fee {fee} @ {fee_rate} sat/vB)"
        )

        return UnsignedTx(
            chain=self.chain,
            data=psbt,
            estimated_fee=str(fee),
            metadata={
                "amount": str(params.balance),
                "amountAfterFee": str(send_amount),
                "utxosUsed": len(utxos),
                "feeRate": str(fee_rate),
                "changeAmount": str(change if change >= BTC_DUST_LIMIT else 0),
            },
        )

    async def broadcast_tx(self, params: BroadcastParams) -> BroadcastResult:
        """POST raw hex to /tx; the response body is the txid."""
        api_url = self.settings.require("bitcoin_api_url", self.chain)

        response = await self._request(
            "POST",
            f"{api_url}/tx",
            api_url,
            content=params.signed_tx,
            headers={"Content-Type": "text/plain"},
        )

        txid = response.text.strip()
        if not txid:
            raise self._rpc_error(api_url, ProtocolError("Empty txid in broadcast response"))

        logger.info(f"BTC transaction broadcast: {txid}")

        return BroadcastResult(
            transaction_hash=txid,
            chain=self.chain,
            network=params.network,
        )

    async def _get_utxos(self, api_url: str, address: str) -> list[dict]:
        """Get confirmed UTXOs for an address."""
        response = await self._request("GET", f"{api_url}/address/{address}/utxo", api_url)
        data = self._json(response, api_url)

        if not isinstance(data, list):
            raise self._rpc_error(api_url, ProtocolError(f"Unexpected UTXO response: {data!r}"))

        try:
            return [
                {"txid": str(u["txid"]), "vout": int(u["vout"]), "value": int(u["value"])}
                for u in data
                if u.get("status", {}).get("confirmed")
            ]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise self._rpc_error(api_url, ProtocolError(f"Malformed UTXO entry: {e}")) from e

    async def _get_fee_rate(self, api_url: str) -> Decimal:
        """Get next-block fee rate in sat/vB, falling back to 10 sat/vB."""
        try:
            response = await self._request("GET", f"{api_url}/fee-estimates", api_url)
            estimates = self._json(response, api_url)
            rate = Decimal(str(estimates[NEXT_BLOCK_TARGET]))
            if rate > 0:
                return rate
            logger.warning(f"Non-positive BTC fee rate {rate}, using fallback")
        except (RpcError, KeyError, TypeError, InvalidOperation) as e:
            logger.warning(f"Failed to fetch BTC fee rate: {e}")

        return Decimal(BTC_FALLBACK_FEE_RATE)
