"""Cardano sweep builder.

Uses Blockfrost for UTxOs and submission. Only UTxOs holding nothing but
lovelace are spent; multi-asset UTxOs are left untouched. The payload is
the input/output structure a wallet serializes to CBOR before signing.
"""

import logging
import re

from chainsweep.builders.base import ChainTxBuilder, ProtocolError
from chainsweep.chains import (
    ADA_BUILD_FEE,
    ADA_MIN_FEE_A,
    ADA_MIN_FEE_B,
    ADA_MIN_UTXO,
    ADA_TYPICAL_TX_SIZE,
    ChainKind,
    NetworkType,
)
from chainsweep.errors import InsufficientBalanceError, TxBuildError
from chainsweep.types import BroadcastParams, BroadcastResult, BuildTxParams, UnsignedTx

logger = logging.getLogger(__name__)

LOVELACE = "lovelace"
MIN_ADDRESS_LENGTH = 58

MAINNET_PATTERN = re.compile(r"^addr1[a-z0-9]{53,}$", re.IGNORECASE)
TESTNET_PATTERN = re.compile(r"^addr_test1[a-z0-9]{48,}$", re.IGNORECASE)


def linear_fee(tx_size: int) -> int:
    """Protocol min fee: minFeeA x size + minFeeB."""
    return ADA_MIN_FEE_A * tx_size + ADA_MIN_FEE_B


class CardanoChainBuilder(ChainTxBuilder):
    """Cardano mainnet sweep builder (ADA only)."""

    chain = ChainKind.ADA

    def validate_address(self, address: str) -> bool:
        """Validate Cardano Shelley bech32 address format (addr1... / addr_test1...)."""
        if not isinstance(address, str) or len(address) < MIN_ADDRESS_LENGTH:
            return False

        if address.startswith("addr1"):
            return MAINNET_PATTERN.match(address) is not None

        if address.startswith("addr_test1"):
            return TESTNET_PATTERN.match(address) is not None

        return False

    async def estimate_fee(self, params: BuildTxParams) -> int:
        """Linear fee for a typical ~300 byte transaction (168,581 lovelace)."""
        tx_size = int(params.chain_specific.get("tx_size", ADA_TYPICAL_TX_SIZE))
        return linear_fee(tx_size)

    async def build_unsigned_tx(self, params: BuildTxParams) -> UnsignedTx:
        """Sweep ``balance - 0.17 ADA`` keeping every output above min UTxO."""
        api_url = self.settings.require("cardano_blockfrost_url", self.chain)
        self.settings.require("cardano_blockfrost_project_id", self.chain)

        self._check_addresses(params)

        if params.network != NetworkType.MAINNET.value:
            raise TxBuildError(self.chain, f"Network '{params.network}' is not implemented")

        fee = ADA_BUILD_FEE
        threshold = fee + ADA_MIN_UTXO
        if params.balance <= threshold:
            raise InsufficientBalanceError(self.chain, threshold + 1, params.balance)

        send_amount = params.balance - fee
        if send_amount < ADA_MIN_UTXO:
            raise InsufficientBalanceError(self.chain, fee + ADA_MIN_UTXO, params.balance)

        utxos = await self._get_utxos(api_url, params.from_address)
        if not utxos:
            raise TxBuildError(self.chain, "No ADA-only UTxOs available")

        total_input = sum(utxo["lovelace"] for utxo in utxos)
        if total_input < send_amount + fee:
            raise TxBuildError(
                self.chain,
                f"UTxOs hold {total_input} lovelace, below {send_amount + fee} required",
            )

        outputs = [
            {"address": params.to_address, "amount": [{"unit": LOVELACE, "quantity": str(send_amount)}]}
        ]
        change = total_input - send_amount - fee
        if change >= ADA_MIN_UTXO:
            outputs.append(
                {"address": params.from_address, "amount": [{"unit": LOVELACE, "quantity": str(change)}]}
            )

        tx = {
            "inputs": [
                {"tx_hash": utxo["tx_hash"], "output_index": utxo["output_index"]}
                for utxo in utxos
            ],
            "outputs": outputs,
            "fee": str(fee),
        }

        logger.info(
            f"Built ADA sweep: {send_amount} lovelace from {len(utxos)} UTxOs "
            f"{params.from_address} -> {params.to_address}"
        )

        return UnsignedTx(
            chain=self.chain,
            data=tx,
            estimated_fee=str(fee),
            metadata={
                "amount": str(params.balance),
                "amountAfterFee": str(send_amount),
                "utxosUsed": len(utxos),
            },
        )

    async def broadcast_tx(self, params: BroadcastParams) -> BroadcastResult:
        """Submit signed CBOR to /tx/submit."""
        api_url = self.settings.require("cardano_blockfrost_url", self.chain)
        project_id = self.settings.require("cardano_blockfrost_project_id", self.chain)

        try:
            body = bytes.fromhex(params.signed_tx)
        except ValueError as e:
            raise self._rpc_error(api_url, ProtocolError(f"Signed transaction is not hex CBOR: {e}")) from e

        response = await self._request(
            "POST",
            f"{api_url}/tx/submit",
            api_url,
            content=body,
            headers={"project_id": project_id, "Content-Type": "application/cbor"},
        )

        tx_hash = response.text.replace('"', "").strip()
        if not tx_hash:
            raise self._rpc_error(api_url, ProtocolError("Empty hash in submit response"))

        logger.info(f"ADA transaction submitted: {tx_hash}")

        return BroadcastResult(
            transaction_hash=tx_hash,
            chain=self.chain,
            network=params.network,
        )

    async def _get_utxos(self, api_url: str, address: str) -> list[dict]:
        """Get UTxOs that hold only lovelace, as tx_hash/output_index/lovelace."""
        project_id = self.settings.require("cardano_blockfrost_project_id", self.chain)

        response = await self._request(
            "GET",
            f"{api_url}/addresses/{address}/utxos",
            api_url,
            headers={"project_id": project_id},
        )
        data = self._json(response, api_url)

        if not isinstance(data, list):
            raise self._rpc_error(api_url, ProtocolError(f"Unexpected UTxO response: {data!r}"))

        try:
            return [
                {
                    "tx_hash": utxo["tx_hash"],
                    "output_index": utxo["output_index"],
                    "lovelace": int(utxo["amount"][0]["quantity"]),
                }
                for utxo in data
                if len(utxo["amount"]) == 1 and utxo["amount"][0]["unit"] == LOVELACE
            ]
        except (KeyError, TypeError, IndexError, ValueError) as e:
            raise self._rpc_error(api_url, ProtocolError(f"Malformed UTxO entry: {e}")) from e

