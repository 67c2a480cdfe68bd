"""UTXO ledger data types.

All amounts are integer satoshi.
"""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Optional


class UTXOSelectionStrategy(str, Enum):
    """Coin selection strategy."""

    LARGEST_FIRST = "largest_first"
    SMALLEST_FIRST = "smallest_first"
    OPTIMAL = "optimal"
    BRANCH_AND_BOUND = "branch_and_bound"


class FeeEstimationLevel(str, Enum):
    """Confirmation urgency."""

    LOW = "low"          # 1 hour+
    MEDIUM = "medium"    # ~30 minutes
    HIGH = "high"        # ~10 minutes
    URGENT = "urgent"    # next block


def utxo_key(txid: str, vout: int) -> str:
    """Ledger key in ``txid:vout`` form."""
    return f"{txid}:{vout}"


@dataclass
class UTXO:
    """Unspent transaction output tracked by the manager."""

    txid: str
    vout: int
    amount: int
    script_pubkey: str
    address: str
    confirmations: int
    spent: bool = False
    spent_txid: Optional[str] = None
    block_height: Optional[int] = None
    timestamp: Optional[int] = None

    @property
    def key(self) -> str:
        return utxo_key(self.txid, self.vout)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "UTXO":
        return cls(
            txid=str(data["txid"]),
            vout=int(data["vout"]),
            amount=int(data["amount"]),
            script_pubkey=str(data.get("script_pubkey", "")),
            address=str(data["address"]),
            confirmations=int(data.get("confirmations", 0)),
            spent=bool(data.get("spent", False)),
            spent_txid=data.get("spent_txid"),
            block_height=data.get("block_height"),
            timestamp=data.get("timestamp"),
        )


@dataclass
class TransactionInput:
    """Input spending a selected UTXO."""

    txid: str
    vout: int
    amount: int
    script_pubkey: str
    address: str
    sequence: int = 0xFFFFFFFF
    witness_script: Optional[str] = None


@dataclass
class TransactionOutput:
    """Payment output."""

    address: str
    amount: int
    script_pubkey: Optional[str] = None


@dataclass
class ConstructedTransaction:
    """Unsigned transaction assembled from the ledger.

    ``total_output`` sums every entry of ``outputs``, change included, so
    ``total_input == total_output + fee`` whenever change was emitted.
    """

    inputs: list[TransactionInput]
    outputs: list[TransactionOutput]
    fee: int
    estimated_size: int
    fee_rate: int
    total_input: int
    total_output: int
    change_amount: int = 0
    change_address: Optional[str] = None

    @property
    def unaccounted(self) -> int:
        """Value that is neither an output nor the computed fee (sub-dust change)."""
        return self.total_input - self.total_output - self.fee


@dataclass
class UTXOStatistics:
    """Snapshot of ledger counts and values."""

    total: int
    available: int
    spent: int
    locked: int
    total_value: int
    average_value: int
    largest_utxo: int
    smallest_utxo: int
