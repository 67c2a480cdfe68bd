"""UTXO ledger, address analysis and coin selection."""

from chainsweep.utxo.manager import UTXOManager
from chainsweep.utxo.models import (
    UTXO,
    ConstructedTransaction,
    FeeEstimationLevel,
    TransactionInput,
    TransactionOutput,
    UTXOSelectionStrategy,
    UTXOStatistics,
)

__all__ = [
    "UTXO",
    "ConstructedTransaction",
    "FeeEstimationLevel",
    "TransactionInput",
    "TransactionOutput",
    "UTXOManager",
    "UTXOSelectionStrategy",
    "UTXOStatistics",
]
