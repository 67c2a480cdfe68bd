"""Error taxonomy shared by the chain builders and the UTXO manager.

Each failure kind is its own exception class with a stable ``code`` so
callers can branch on the type (or the code) instead of parsing messages.
"""

from typing import Optional, Union

from chainsweep.chains import ChainKind

ChainRef = Optional[Union[ChainKind, str]]


def _chain_label(chain: ChainRef) -> str:
    if isinstance(chain, ChainKind):
        return chain.value
    return str(chain)


class ChainAbstractionError(Exception):
    """Base error for the chain abstraction layer."""

    code: str = "CHAIN_ERROR"

    def __init__(self, message: str, chain: ChainRef = None, code: Optional[str] = None):
        super().__init__(message)
        self.chain = chain
        if code is not None:
            self.code = code


class InsufficientBalanceError(ChainAbstractionError):
    """Balance does not cover fee, reserve, dust or min-UTXO threshold."""

    code = "INSUFFICIENT_BALANCE"

    def __init__(self, chain: ChainRef, required: int, available: int):
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient balance on {_chain_label(chain)}: "
            f"required {required}, available {available}",
            chain,
        )


class InvalidAddressError(ChainAbstractionError):
    """Address failed format validation."""

    code = "INVALID_ADDRESS"

    def __init__(self, chain: ChainRef, address: str):
        self.address = address
        super().__init__(f"Invalid address for {_chain_label(chain)}: {address}", chain)


class RpcError(ChainAbstractionError):
    """Transport or protocol failure talking to a node or indexer."""

    code = "RPC_ERROR"

    def __init__(self, chain: ChainRef, endpoint: str, original_error: Exception):
        self.endpoint = endpoint
        self.original_error = original_error
        super().__init__(
            f"RPC error for {_chain_label(chain)} at {endpoint}: {original_error}",
            chain,
        )


class UnsupportedChainError(ChainAbstractionError):
    """Factory was given an unknown chain tag."""

    code = "UNSUPPORTED_CHAIN"

    def __init__(self, tag: str):
        self.tag = tag
        super().__init__(f"Unsupported chain: {tag}")


class TxBuildError(ChainAbstractionError):
    """Transaction cannot be built on this path (unsupported asset, missing account...)."""

    code = "TX_BUILD_ERROR"

    def __init__(self, chain: ChainRef, reason: str, original_error: Optional[Exception] = None):
        self.reason = reason
        self.original_error = original_error
        super().__init__(f"Transaction build error for {_chain_label(chain)}: {reason}", chain)


class BroadcastError(ChainAbstractionError):
    """Node accepted the request but rejected the transaction."""

    code = "BROADCAST_ERROR"

    def __init__(self, chain: ChainRef, reason: str, original_error: Optional[Exception] = None):
        self.reason = reason
        self.original_error = original_error
        super().__init__(f"Broadcast error for {_chain_label(chain)}: {reason}", chain)


class FeeEstimationError(ChainAbstractionError):
    """Fee could not be estimated."""

    code = "FEE_ESTIMATION_ERROR"

    def __init__(self, chain: ChainRef, reason: str):
        self.reason = reason
        super().__init__(f"Fee estimation error for {_chain_label(chain)}: {reason}", chain)


class UtxoSelectionError(ChainAbstractionError):
    """No viable input combination for the requested amount."""

    code = "UTXO_SELECTION_ERROR"

    def __init__(self, chain: ChainRef, reason: str):
        self.reason = reason
        super().__init__(f"UTXO selection error for {_chain_label(chain)}: {reason}", chain)


class UTXOError(ChainAbstractionError):
    """UTXO ledger violation (duplicate key, double spend, bad snapshot...)."""

    code = "UTXO_ERROR"

    def __init__(self, message: str, chain: ChainRef = ChainKind.BTC):
        super().__init__(message, chain)


class ReservationConflictError(ChainAbstractionError):
    """A durable UTXO reservation is already held by another holder."""

    code = "RESERVATION_CONFLICT"

    def __init__(self, keys: list[str], holder: str):
        self.keys = keys
        self.holder = holder
        super().__init__(
            f"UTXOs already reserved, requested by {holder}: {', '.join(keys)}",
            ChainKind.BTC,
        )


class ConfigurationError(ChainAbstractionError):
    """Required configuration value is missing."""

    code = "CONFIGURATION_ERROR"

    def __init__(self, chain: ChainRef, key: str):
        self.key = key
        where = f" for {_chain_label(chain)}" if chain else ""
        super().__init__(f"Configuration error{where}: {key} is not set", chain)
