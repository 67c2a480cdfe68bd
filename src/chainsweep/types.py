"""Wire shapes exchanged with the sweep orchestrator.

Amounts are Python ints in the chain's smallest unit (wei, satoshi,
lovelace, sun, drop). They are never floats.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from chainsweep.chains import ChainKind


@dataclass
class BuildTxParams:
    """Input to ``ChainTxBuilder.build_unsigned_tx``."""

    chain: ChainKind
    network: str
    asset: str
    from_address: str
    to_address: str
    balance: int
    deposit_index: Optional[int] = None
    chain_specific: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # bool is an int subclass; reject it along with floats and Decimals
        if isinstance(self.balance, bool) or not isinstance(self.balance, int):
            raise TypeError(
                f"balance must be an integer in the smallest unit, got {type(self.balance).__name__}"
            )
        if self.balance < 0:
            raise ValueError("balance must be non-negative")
        if not isinstance(self.chain, ChainKind):
            self.chain = ChainKind(self.chain)


@dataclass(frozen=True)
class UnsignedTx:
    """Chain-specific unsigned payload handed to the external signer."""

    chain: ChainKind
    data: Any
    estimated_fee: str
    metadata: dict[str, Any]

    def to_dict(self) -> dict:
        return {
            "chain": self.chain.value,
            "data": self.data,
            "estimatedFee": self.estimated_fee,
            "metadata": self.metadata,
        }


@dataclass
class BroadcastParams:
    """Signed payload to submit."""

    chain: ChainKind
    network: str
    signed_tx: str


@dataclass
class BroadcastResult:
    """Outcome of a successful submission."""

    transaction_hash: str
    chain: ChainKind
    network: str
    metadata: Optional[dict[str, Any]] = None

    def to_dict(self) -> dict:
        return {
            "transactionHash": self.transaction_hash,
            "chain": self.chain.value,
            "network": self.network,
            "metadata": self.metadata,
        }


class SweepJobStatus(str, Enum):
    """Lifecycle of a sweep job record (owned by the orchestrator)."""

    PENDING = "pending"
    TX_GENERATED = "tx_generated"
    BROADCAST = "broadcast"
    CONFIRMED = "confirmed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SweepJobStatus.CONFIRMED, SweepJobStatus.FAILED)

    def can_transition_to(self, target: "SweepJobStatus") -> bool:
        """Check a forward-only transition.

        Any non-terminal state may fail; otherwise only the next step is allowed.
        """
        if self.is_terminal:
            return False
        if target == SweepJobStatus.FAILED:
            return True
        return _NEXT_STATUS.get(self) == target


_NEXT_STATUS = {
    SweepJobStatus.PENDING: SweepJobStatus.TX_GENERATED,
    SweepJobStatus.TX_GENERATED: SweepJobStatus.BROADCAST,
    SweepJobStatus.BROADCAST: SweepJobStatus.CONFIRMED,
}
