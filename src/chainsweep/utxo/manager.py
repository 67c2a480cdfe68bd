"""UTXO ledger and coin-selection engine.

Keeps an in-process map of UTXOs for wallet-balance accounting, selects
inputs by strategy and assembles unsigned transactions. Locks taken with
``lock_utxos`` only guard this instance; pair them with
``UtxoLedgerRepository.reserve_utxos`` when several workers select from
the same wallet.
"""

import json
import logging
import math
import time
from typing import Awaitable, Callable, Optional

from chainsweep.chains import BTC_DUST_LIMIT, ChainKind
from chainsweep.config import get_settings
from chainsweep.errors import UTXOError, UtxoSelectionError
from chainsweep.utxo.address import analyze_btc_address
from chainsweep.utxo.models import (
    UTXO,
    ConstructedTransaction,
    FeeEstimationLevel,
    TransactionInput,
    TransactionOutput,
    UTXOSelectionStrategy,
    UTXOStatistics,
    utxo_key,
)
from chainsweep.utxo.selection import (
    select_branch_and_bound,
    select_largest_first,
    select_smallest_first,
    total_amount,
)

logger = logging.getLogger(__name__)

# action, details, user_id
AuditSink = Callable[[str, dict, Optional[str]], Awaitable[None]]

AUDIT_UTXO_ADD = "UTXO_ADD"
AUDIT_UTXO_SPEND = "UTXO_SPEND"
AUDIT_TRANSACTION_CREATE = "TRANSACTION_CREATE"

# sat/vB per urgency level
FEE_RATES = {
    FeeEstimationLevel.LOW: 1,
    FeeEstimationLevel.MEDIUM: 10,
    FeeEstimationLevel.HIGH: 20,
    FeeEstimationLevel.URGENT: 50,
}

# Size model: P2WPKH inputs, P2PKH/P2SH outputs
TX_BASE_SIZE = 10
TX_INPUT_SIZE = 68
TX_OUTPUT_SIZE = 34

# Assumed average UTXO value for the first fee guess
ASSUMED_UTXO_VALUE = 100_000

CONSOLIDATION_DUST_LIMIT = 1000


def estimate_transaction_size(input_count: int, output_count: int) -> int:
    """Virtual size in vbytes."""
    return TX_BASE_SIZE + input_count * TX_INPUT_SIZE + output_count * TX_OUTPUT_SIZE


class UTXOManager:
    """In-memory UTXO set for one Bitcoin network.

    Example:
        manager = UTXOManager("mainnet")
        await manager.add_utxo(utxo)
        tx = await manager.construct_transaction(
            [TransactionOutput(address=dest, amount=50_000)],
            change_address=change,
        )
    """

    def __init__(self, network: Optional[str] = None, audit_sink: Optional[AuditSink] = None):
        self.network = network or get_settings().bitcoin_network
        self.audit_sink = audit_sink
        self._utxos: dict[str, UTXO] = {}
        self._locked: set[str] = set()

    async def _audit(self, action: str, details: dict, user_id: Optional[str]) -> None:
        logger.info(f"{action}: {details}")
        if self.audit_sink is not None:
            await self.audit_sink(action, details, user_id)

    # Ledger mutations

    async def add_utxo(self, utxo: UTXO, user_id: Optional[str] = None) -> None:
        """Add a UTXO to the set.

        Raises:
            UTXOError: If the address is invalid for this network, the key
                already exists or the amount is not positive
        """
        key = utxo.key

        if not analyze_btc_address(utxo.address, self.network).is_valid:
            raise UTXOError(f"Invalid address: {utxo.address}")

        if key in self._utxos:
            raise UTXOError(f"UTXO {key} already exists")

        if utxo.amount <= 0:
            raise UTXOError("UTXO amount must be positive")

        self._utxos[key] = UTXO(**utxo.to_dict())

        await self._audit(
            AUDIT_UTXO_ADD,
            {
                "utxo_key": key,
                "amount": utxo.amount,
                "address": utxo.address,
                "confirmations": utxo.confirmations,
            },
            user_id,
        )

    async def spend_utxo(
        self, txid: str, vout: int, spent_txid: str, user_id: Optional[str] = None
    ) -> None:
        """Mark a UTXO spent by spent_txid.

        Raises:
            UTXOError: If the UTXO is unknown or already spent
        """
        key = utxo_key(txid, vout)
        utxo = self._utxos.get(key)

        if utxo is None:
            raise UTXOError(f"UTXO {key} not found")

        if utxo.spent:
            raise UTXOError(f"UTXO {key} already spent in {utxo.spent_txid}")

        utxo.spent = True
        utxo.spent_txid = spent_txid
        self._locked.discard(key)

        await self._audit(
            AUDIT_UTXO_SPEND,
            {"utxo_key": key, "spent_txid": spent_txid, "amount": utxo.amount},
            user_id,
        )

    def clear(self) -> None:
        """Drop every UTXO and lock."""
        self._utxos.clear()
        self._locked.clear()

    # Queries

    def get_utxo(self, txid: str, vout: int) -> Optional[UTXO]:
        return self._utxos.get(utxo_key(txid, vout))

    def get_available_utxos(self, min_confirmations: int = 1) -> list[UTXO]:
        """Unspent, unlocked UTXOs with enough confirmations."""
        return [
            utxo
            for key, utxo in self._utxos.items()
            if not utxo.spent
            and utxo.confirmations >= min_confirmations
            and key not in self._locked
        ]

    def get_utxos_by_address(self, address: str, min_confirmations: int = 1) -> list[UTXO]:
        return [u for u in self.get_available_utxos(min_confirmations) if u.address == address]

    def get_total_balance(self, min_confirmations: int = 1) -> int:
        return total_amount(self.get_available_utxos(min_confirmations))

    def get_balance_by_address(self, address: str, min_confirmations: int = 1) -> int:
        return total_amount(self.get_utxos_by_address(address, min_confirmations))

    def estimate_fee_rate(self, level: FeeEstimationLevel) -> int:
        """Static fee rate in sat/vB for an urgency level."""
        return FEE_RATES[FeeEstimationLevel(level)]

    def get_utxo_statistics(self) -> UTXOStatistics:
        """Counts over the whole set; values over available UTXOs (any confirmations)."""
        available = self.get_available_utxos(0)
        amounts = [utxo.amount for utxo in available]
        total_value = sum(amounts)

        return UTXOStatistics(
            total=len(self._utxos),
            available=len(available),
            spent=sum(1 for utxo in self._utxos.values() if utxo.spent),
            locked=len(self._locked),
            total_value=total_value,
            average_value=total_value // len(amounts) if amounts else 0,
            largest_utxo=max(amounts, default=0),
            smallest_utxo=min(amounts, default=0),
        )

    # Selection

    def select_utxos(
        self,
        target_amount: int,
        strategy: UTXOSelectionStrategy = UTXOSelectionStrategy.OPTIMAL,
        fee_rate: int = 10,
        min_confirmations: int = 1,
    ) -> list[UTXO]:
        """Select available UTXOs covering target_amount.

        Raises:
            UtxoSelectionError: If nothing is available or the selection
                falls short of the target
        """
        available = self.get_available_utxos(min_confirmations)

        if not available:
            raise UtxoSelectionError(ChainKind.BTC, "No UTXOs available")

        strategy = UTXOSelectionStrategy(strategy)

        if strategy == UTXOSelectionStrategy.LARGEST_FIRST:
            selected = select_largest_first(available, target_amount)
        elif strategy == UTXOSelectionStrategy.SMALLEST_FIRST:
            selected = select_smallest_first(available, target_amount)
        elif strategy == UTXOSelectionStrategy.BRANCH_AND_BOUND:
            selected = select_branch_and_bound(available, target_amount) or []
        else:
            selected = select_branch_and_bound(available, target_amount)
            if selected is None:
                selected = select_largest_first(available, target_amount)

        if not selected:
            raise UtxoSelectionError(ChainKind.BTC, "Could not select enough UTXOs")

        selected_total = total_amount(selected)
        if selected_total < target_amount:
            raise UtxoSelectionError(
                ChainKind.BTC,
                f"Selected UTXOs total {selected_total}, below target {target_amount}",
            )

        logger.debug(
            f"Selected {len(selected)} UTXOs ({selected_total} sat) for {target_amount} sat "
            f"using {strategy.value} at {fee_rate} sat/vB"
        )
        return selected

    def lock_utxos(self, utxos: list[UTXO]) -> None:
        """Hide UTXOs from selection until unlocked or spent."""
        for utxo in utxos:
            self._locked.add(utxo.key)

    def unlock_utxos(self, utxos: list[UTXO]) -> None:
        for utxo in utxos:
            self._locked.discard(utxo.key)

    # Transaction assembly

    async def construct_transaction(
        self,
        outputs: list[TransactionOutput],
        change_address: Optional[str] = None,
        fee_level: FeeEstimationLevel = FeeEstimationLevel.MEDIUM,
        strategy: UTXOSelectionStrategy = UTXOSelectionStrategy.OPTIMAL,
        user_id: Optional[str] = None,
    ) -> ConstructedTransaction:
        """Select inputs and assemble an unsigned transaction paying outputs.

        The fee is first guessed from an assumed input count, then
        recomputed from the inputs actually selected. Change below the
        dust limit, or with no change address, is not emitted.

        Raises:
            UTXOError: If the outputs do not sum to a positive amount
            UtxoSelectionError: If the UTXOs cannot cover outputs plus fee
        """
        requested = sum(output.amount for output in outputs)
        if requested <= 0:
            raise UTXOError("Output total must be positive")

        fee_rate = self.estimate_fee_rate(fee_level)

        # Sized with one extra output for change
        output_count = len(outputs) + 1
        assumed_inputs = math.ceil(requested / ASSUMED_UTXO_VALUE)
        initial_fee = estimate_transaction_size(assumed_inputs, output_count) * fee_rate

        selected = self.select_utxos(requested + initial_fee, strategy, fee_rate)
        total_input = total_amount(selected)

        actual_size = estimate_transaction_size(len(selected), output_count)
        actual_fee = actual_size * fee_rate

        change = total_input - requested - actual_fee

        tx_outputs = list(outputs)
        emit_change = change >= BTC_DUST_LIMIT and bool(change_address)
        if emit_change:
            tx_outputs.append(TransactionOutput(address=change_address, amount=change))

        tx = ConstructedTransaction(
            inputs=[
                TransactionInput(
                    txid=utxo.txid,
                    vout=utxo.vout,
                    amount=utxo.amount,
                    script_pubkey=utxo.script_pubkey,
                    address=utxo.address,
                )
                for utxo in selected
            ],
            outputs=tx_outputs,
            fee=actual_fee,
            estimated_size=actual_size,
            fee_rate=fee_rate,
            total_input=total_input,
            total_output=sum(output.amount for output in tx_outputs),
            change_amount=change if emit_change else 0,
            change_address=change_address if emit_change else None,
        )

        if not emit_change and change > 0:
            logger.warning(
                f"Change of {change} sat not returned "
                f"({'below dust limit' if change < BTC_DUST_LIMIT else 'no change address'})"
            )

        await self._audit(
            AUDIT_TRANSACTION_CREATE,
            {
                "input_count": len(tx.inputs),
                "output_count": len(tx.outputs),
                "total_input": total_input,
                "total_output": tx.total_output,
                "fee": actual_fee,
                "fee_rate": fee_rate,
            },
            user_id,
        )

        return tx

    async def optimize_utxos(
        self,
        target_output_count: int = 10,
        fee_level: FeeEstimationLevel = FeeEstimationLevel.LOW,
        user_id: Optional[str] = None,
    ) -> Optional[ConstructedTransaction]:
        """Consolidate small UTXOs into one output at the first small UTXO's address.

        Returns None when fewer than two UTXOs are below ten times the
        consolidation dust limit.

        Raises:
            UTXOError: If the consolidated amount would not clear the dust limit
        """
        small = [
            utxo
            for utxo in self.get_available_utxos(1)
            if utxo.amount < CONSOLIDATION_DUST_LIMIT * 10
        ]

        if len(small) < 2:
            return None

        address = small[0].address
        fee = estimate_transaction_size(len(small), 1) * self.estimate_fee_rate(fee_level)
        output_amount = total_amount(small) - fee

        if output_amount <= CONSOLIDATION_DUST_LIMIT:
            raise UTXOError(
                f"Consolidated amount {output_amount} sat is below the dust limit"
            )

        logger.info(
            f"Consolidating {len(small)} small UTXOs into {output_amount} sat at {address} "
            f"(target output count {target_output_count})"
        )

        return await self.construct_transaction(
            [TransactionOutput(address=address, amount=output_amount)],
            None,
            fee_level,
            UTXOSelectionStrategy.SMALLEST_FIRST,
            user_id,
        )

    # Snapshots

    def export_utxo_set(self) -> str:
        """JSON snapshot tagged with the network."""
        return json.dumps(
            {
                "network": self.network,
                "utxos": [utxo.to_dict() for utxo in self._utxos.values()],
                "locked_utxos": sorted(self._locked),
                "timestamp": int(time.time() * 1000),
            },
            indent=2,
        )

    def import_utxo_set(self, json_data: str) -> None:
        """Replace the set with a snapshot from export_utxo_set.

        Raises:
            UTXOError: If the snapshot is malformed or from another network
        """
        try:
            data = json.loads(json_data)
            network = data["network"]
            utxos = [UTXO.from_dict(item) for item in data["utxos"]]
            locked = [str(key) for key in data.get("locked_utxos", [])]
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise UTXOError(f"Invalid UTXO snapshot: {e}") from e

        if network != self.network:
            raise UTXOError(f"Network mismatch: snapshot {network}, manager {self.network}")

        restored: dict[str, UTXO] = {}
        for utxo in utxos:
            if utxo.key in restored:
                raise UTXOError(f"Duplicate UTXO {utxo.key} in snapshot")
            restored[utxo.key] = utxo

        self.clear()
        self._utxos.update(restored)
        self._locked.update(locked)

        logger.info(f"Imported {len(restored)} UTXOs ({len(locked)} locked) for {self.network}")
