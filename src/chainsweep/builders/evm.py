"""EVM sweep builder.

Legacy (type 0) value transfers over JSON-RPC for Ethereum, Sepolia,
Polygon and Arbitrum. Amounts are in wei; payload numbers are hex strings.
"""

import logging

from chainsweep.builders.base import ChainTxBuilder, ProtocolError
from chainsweep.chains import EVM_CHAIN_IDS, EVM_TRANSFER_GAS_LIMIT, ChainKind
from chainsweep.errors import ConfigurationError, InsufficientBalanceError
from chainsweep.types import BroadcastParams, BroadcastResult, BuildTxParams, UnsignedTx

logger = logging.getLogger(__name__)

HEX_DIGITS = frozenset("0123456789abcdefABCDEF")


def to_hex(value: int) -> str:
    """Encode a non-negative integer as a 0x-prefixed quantity."""
    return hex(value)


def parse_quantity(value: str) -> int:
    """Decode a JSON-RPC hex quantity."""
    return int(value, 16)


class EvmChainBuilder(ChainTxBuilder):
    """Ethereum/EVM sweep builder."""

    chain = ChainKind.EVM

    def validate_address(self, address: str) -> bool:
        """Validate EVM address format: 0x + 40 hex chars."""
        if not isinstance(address, str) or len(address) != 42:
            return False

        if not address.startswith("0x"):
            return False

        return all(c in HEX_DIGITS for c in address[2:])

    async def estimate_fee(self, params: BuildTxParams) -> int:
        """Estimate transfer fee as gasPrice x 21000."""
        rpc_url = self.settings.get_evm_rpc_url(params.network)
        gas_price = await self._get_gas_price(rpc_url)
        return gas_price * EVM_TRANSFER_GAS_LIMIT

    async def build_unsigned_tx(self, params: BuildTxParams) -> UnsignedTx:
        """Build a legacy transfer of ``balance - gasPrice x 21000`` wei."""
        chain_id = EVM_CHAIN_IDS.get(params.network)
        if chain_id is None:
            raise ConfigurationError(self.chain, f"chain id for network '{params.network}'")

        rpc_url = self.settings.get_evm_rpc_url(params.network)

        self._check_addresses(params)

        nonce = await self._get_nonce(rpc_url, params.from_address)
        gas_price = await self._get_gas_price(rpc_url)

        fee = gas_price * EVM_TRANSFER_GAS_LIMIT
        if params.balance <= fee:
            raise InsufficientBalanceError(self.chain, fee + 1, params.balance)

        value = params.balance - fee

        tx = {
            "from": params.from_address,
            "to": params.to_address,
            "value": to_hex(value),
            "gas": to_hex(EVM_TRANSFER_GAS_LIMIT),
            "gasPrice": to_hex(gas_price),
            "nonce": to_hex(nonce),
            "chainId": chain_id,
            "type": 0,
        }

        logger.info(
            f"Built EVM sweep on {params.network}: {value} wei "
            f"{params.from_address} -> {params.to_address} (nonce {nonce})"
        )

        return UnsignedTx(
            chain=self.chain,
            data=tx,
            estimated_fee=str(fee),
            metadata={
                "amount": str(params.balance),
                "amountAfterFee": str(value),
                "chainId": chain_id,
                "network": params.network,
            },
        )

    async def broadcast_tx(self, params: BroadcastParams) -> BroadcastResult:
        """Broadcast via eth_sendRawTransaction."""
        rpc_url = self.settings.get_evm_rpc_url(params.network)

        signed = params.signed_tx if params.signed_tx.startswith("0x") else f"0x{params.signed_tx}"
        tx_hash = await self._json_rpc(rpc_url, "eth_sendRawTransaction", [signed])

        if not isinstance(tx_hash, str) or not tx_hash:
            raise self._rpc_error(rpc_url, ProtocolError("eth_sendRawTransaction returned no hash"))

        logger.info(f"EVM transaction broadcast on {params.network}: {tx_hash}")

        return BroadcastResult(
            transaction_hash=tx_hash,
            chain=self.chain,
            network=params.network,
        )

    async def _get_nonce(self, rpc_url: str, address: str) -> int:
        """Get transaction count (nonce) for address."""
        result = await self._json_rpc(rpc_url, "eth_getTransactionCount", [address, "latest"])
        return self._quantity(rpc_url, "eth_getTransactionCount", result)

    async def _get_gas_price(self, rpc_url: str) -> int:
        """Get current gas price in wei."""
        result = await self._json_rpc(rpc_url, "eth_gasPrice", [])
        return self._quantity(rpc_url, "eth_gasPrice", result)

    def _quantity(self, rpc_url: str, method: str, value: object) -> int:
        try:
            return parse_quantity(value)  # type: ignore[arg-type]
        except (TypeError, ValueError) as e:
            raise self._rpc_error(rpc_url, ProtocolError(f"{method}: bad quantity {value!r}")) from e
