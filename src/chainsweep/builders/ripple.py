"""Ripple/XRP sweep builder.

Uses rippled JSON-RPC (``account_info``, ``submit``). An XRP account must
keep its reserve (10 XRP base + 2 XRP per owned ledger object), so the
sweep sends ``balance - fee - reserve``.
"""

import logging
from typing import Any, Optional

from chainsweep.builders.base import ChainTxBuilder, ProtocolError
from chainsweep.chains import (
    XRP_BASE_FEE_DROPS,
    XRP_BASE_RESERVE_DROPS,
    XRP_OWNER_RESERVE_DROPS,
    ChainKind,
)
from chainsweep.errors import InsufficientBalanceError, TxBuildError
from chainsweep.types import BroadcastParams, BroadcastResult, BuildTxParams, UnsignedTx

logger = logging.getLogger(__name__)

RIPPLE_ALPHABET = "rpshnaf39wBUDNEGHJKLM4PQRST7VWXYZ2bcdeCg65jkm8oFqi1tuvAxyz"


class RippleChainBuilder(ChainTxBuilder):
    """XRP Ledger sweep builder."""

    chain = ChainKind.XRP

    def validate_address(self, address: str) -> bool:
        """Validate classic XRP address format: r + ripple base58, 25-34 chars."""
        if not isinstance(address, str) or not 25 <= len(address) <= 34:
            return False

        if not address.startswith("r"):
            return False

        return all(c in RIPPLE_ALPHABET for c in address)

    async def estimate_fee(self, params: BuildTxParams) -> int:
        """Standard transaction cost: 12 drops."""
        return XRP_BASE_FEE_DROPS

    async def build_unsigned_tx(self, params: BuildTxParams) -> UnsignedTx:
        """Build a Payment of everything above fee and reserve."""
        rpc_url = self.settings.require("ripple_rpc_url", self.chain)

        self._check_addresses(params)

        fee = XRP_BASE_FEE_DROPS
        if params.balance <= fee + XRP_BASE_RESERVE_DROPS:
            raise InsufficientBalanceError(
                self.chain, fee + XRP_BASE_RESERVE_DROPS + 1, params.balance
            )

        sequence, owner_count = await self._get_account_info(rpc_url, params.from_address)

        reserve = XRP_BASE_RESERVE_DROPS + owner_count * XRP_OWNER_RESERVE_DROPS
        if params.balance <= fee + reserve:
            raise InsufficientBalanceError(self.chain, fee + reserve + 1, params.balance)

        send_amount = params.balance - fee - reserve

        tx = build_payment(
            params.from_address,
            params.to_address,
            send_amount,
            fee,
            sequence,
            params.chain_specific.get("destination_tag"),
        )

        logger.info(
            f"Built XRP sweep: {send_amount} drops {params.from_address} -> "
            f"{params.to_address} (sequence {sequence}, reserve {reserve})"
        )

        return UnsignedTx(
            chain=self.chain,
            data=tx,
            estimated_fee=str(fee),
            metadata={
                "amount": str(params.balance),
                "amountAfterFee": str(send_amount),
                "sequence": sequence,
                "reserveRequired": str(reserve),
            },
        )

    async def broadcast_tx(self, params: BroadcastParams) -> BroadcastResult:
        """Submit a signed tx_blob."""
        rpc_url = self.settings.require("ripple_rpc_url", self.chain)

        result = await self._call(rpc_url, "submit", {"tx_blob": params.signed_tx})

        tx_json = result.get("tx_json")
        tx_hash = tx_json.get("hash") if isinstance(tx_json, dict) else None
        if not tx_hash:
            raise self._rpc_error(rpc_url, ProtocolError("Broadcast failed: no transaction hash in response"))

        logger.info(f"XRP transaction submitted: {tx_hash} ({result.get('engine_result')})")

        return BroadcastResult(
            transaction_hash=tx_hash,
            chain=self.chain,
            network=params.network,
            metadata={
                "engine_result": result.get("engine_result"),
                "engine_result_message": result.get("engine_result_message"),
            },
        )

    async def _get_account_info(self, rpc_url: str, address: str) -> tuple[int, int]:
        """Fetch the account's Sequence and OwnerCount."""
        result = await self._call(
            rpc_url,
            "account_info",
            {"account": address, "ledger_index": "current"},
            not_found_ok=True,
        )

        account_data = result.get("account_data")
        if not account_data:
            raise TxBuildError(self.chain, f"Account {address} not found or not activated")

        try:
            return int(account_data["Sequence"]), int(account_data.get("OwnerCount", 0))
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise self._rpc_error(rpc_url, ProtocolError(f"Malformed account_data: {e!r}")) from e

    async def _call(
        self, rpc_url: str, method: str, payload: dict, not_found_ok: bool = False
    ) -> dict:
        """rippled JSON-RPC: errors are reported inside ``result``."""
        response = await self._request(
            "POST", rpc_url, rpc_url, json={"method": method, "params": [payload]}
        )
        data = self._json(response, rpc_url)
        result = data.get("result") if isinstance(data, dict) else None

        if not isinstance(result, dict):
            raise self._rpc_error(rpc_url, ProtocolError(f"{method}: missing result"))

        if result.get("error"):
            if not_found_ok and result["error"] == "actNotFound":
                return {}
            message = result.get("error_message") or result["error"]
            raise self._rpc_error(rpc_url, ProtocolError(f"XRPL API error: {message}"))

        return result


def build_payment(
    account: str,
    destination: str,
    amount: int,
    fee: int,
    sequence: int,
    destination_tag: Optional[int] = None,
) -> dict[str, Any]:
    """Assemble Payment transaction fields (amounts as drop strings)."""
    tx: dict[str, Any] = {
        "TransactionType": "Payment",
        "Account": account,
        "Destination": destination,
        "Amount": str(amount),
        "Fee": str(fee),
        "Sequence": sequence,
    }

    if destination_tag is not None:
        tx["DestinationTag"] = int(destination_tag)

    return tx
