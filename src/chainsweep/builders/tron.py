"""Tron sweep builder.

Uses TronGrid HTTP API. TRX transfers burn roughly 0.1 TRX of bandwidth
when the account has no staked bandwidth left; the node builds the raw
transaction through /wallet/createtransaction.
"""

import json
import logging

from chainsweep.builders.base import ChainTxBuilder, ProtocolError
from chainsweep.chains import TRC20_TRANSFER_FEE_SUN, TRX_TRANSFER_FEE_SUN, ChainKind
from chainsweep.errors import InsufficientBalanceError, TxBuildError
from chainsweep.types import BroadcastParams, BroadcastResult, BuildTxParams, UnsignedTx

logger = logging.getLogger(__name__)

BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"


class TronChainBuilder(ChainTxBuilder):
    """TRON sweep builder (native TRX only)."""

    chain = ChainKind.TRC

    def validate_address(self, address: str) -> bool:
        """Validate TRON address format: 34 base58 chars starting with T."""
        if not isinstance(address, str) or len(address) != 34:
            return False

        if not address.startswith("T"):
            return False

        return all(c in BASE58_ALPHABET for c in address[1:])

    async def estimate_fee(self, params: BuildTxParams) -> int:
        """Estimate transfer fee in sun.

        TRX transfers cost ~0.1 TRX of bandwidth; TRC20 transfers need energy,
        estimated conservatively at 5 TRX.
        """
        if params.asset.upper() != "TRX" and params.chain_specific.get("contract_address"):
            return TRC20_TRANSFER_FEE_SUN
        return TRX_TRANSFER_FEE_SUN

    async def build_unsigned_tx(self, params: BuildTxParams) -> UnsignedTx:
        """Build a TRX transfer of ``balance - 0.1 TRX`` via the node."""
        rpc_url = self.settings.require("tron_rpc_url", self.chain)

        self._check_addresses(params)

        if params.asset.upper() != "TRX":
            if params.chain_specific.get("contract_address"):
                raise TxBuildError(self.chain, "TRC20 token transfers are not yet implemented")
            raise TxBuildError(self.chain, f"Unsupported asset: {params.asset}")

        fee = TRX_TRANSFER_FEE_SUN
        if params.balance <= fee:
            raise InsufficientBalanceError(self.chain, fee + 1, params.balance)

        amount = params.balance - fee
        tx = await self._create_transaction(rpc_url, params.from_address, params.to_address, amount)

        logger.info(
            f"Built TRX sweep: {amount} sun {params.from_address} -> {params.to_address} "
            f"(txID {tx.get('txID')})"
        )

        return UnsignedTx(
            chain=self.chain,
            data=tx,
            estimated_fee=str(fee),
            metadata={
                "amount": str(params.balance),
                "amountAfterFee": str(amount),
                "network": params.network,
            },
        )

    async def broadcast_tx(self, params: BroadcastParams) -> BroadcastResult:
        """POST the signed JSON transaction to /wallet/broadcasttransaction."""
        rpc_url = self.settings.require("tron_rpc_url", self.chain)

        response = await self._request(
            "POST",
            f"{rpc_url}/wallet/broadcasttransaction",
            rpc_url,
            content=params.signed_tx,
            headers=self._headers(),
        )
        data = self._json(response, rpc_url)

        if not isinstance(data, dict):
            raise self._rpc_error(rpc_url, ProtocolError(f"Unexpected response: {data!r}"))
        if data.get("Error"):
            raise self._rpc_error(rpc_url, ProtocolError(f"Broadcast rejected: {data['Error']}"))
        if not data.get("result") or not data.get("txid"):
            raise self._rpc_error(
                rpc_url,
                ProtocolError(
                    f"Broadcast failed: {data.get('code', '')} {_decode_message(data.get('message'))}".strip()
                ),
            )

        logger.info(f"TRX transaction broadcast: {data['txid']}")

        return BroadcastResult(
            transaction_hash=data["txid"],
            chain=self.chain,
            network=params.network,
            metadata={"result": data["result"]},
        )

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.settings.tron_api_key:
            headers["TRON-PRO-API-KEY"] = self.settings.tron_api_key
        return headers

    async def _create_transaction(
        self, rpc_url: str, from_address: str, to_address: str, amount: int
    ) -> dict:
        """Ask the node to assemble an unsigned TransferContract."""
        response = await self._request(
            "POST",
            f"{rpc_url}/wallet/createtransaction",
            rpc_url,
            content=json.dumps(
                {
                    "owner_address": from_address,
                    "to_address": to_address,
                    "amount": amount,
                    "visible": True,
                }
            ),
            headers=self._headers(),
        )
        data = self._json(response, rpc_url)

        if not isinstance(data, dict):
            raise self._rpc_error(rpc_url, ProtocolError(f"Unexpected response: {data!r}"))
        if data.get("Error"):
            raise self._rpc_error(rpc_url, ProtocolError(f"TronGrid API error: {data['Error']}"))

        return data


def _decode_message(message: object) -> str:
    """TronGrid returns broadcast messages hex-encoded."""
    if not isinstance(message, str):
        return ""
    try:
        return bytes.fromhex(message).decode("utf-8", errors="replace")
    except ValueError:
        return message
