"""Coin selection strategies.

Pure functions over a list of candidate UTXOs. Each returns the selected
UTXOs (possibly short of the target when the candidates run out);
callers check the total.
"""

from typing import Optional

from chainsweep.utxo.models import UTXO

# Branch-and-bound searches at most this many of the largest candidates
BNB_MAX_CANDIDATES = 20


def total_amount(utxos: list[UTXO]) -> int:
    return sum(utxo.amount for utxo in utxos)


def _accumulate(ordered: list[UTXO], target: int) -> list[UTXO]:
    selected: list[UTXO] = []
    total = 0

    for utxo in ordered:
        selected.append(utxo)
        total += utxo.amount
        if total >= target:
            break

    return selected


def select_largest_first(utxos: list[UTXO], target: int) -> list[UTXO]:
    """Take UTXOs in descending amount order until the target is reached."""
    return _accumulate(sorted(utxos, key=lambda u: u.amount, reverse=True), target)


def select_smallest_first(utxos: list[UTXO], target: int) -> list[UTXO]:
    """Take UTXOs in ascending amount order until the target is reached."""
    return _accumulate(sorted(utxos, key=lambda u: u.amount), target)


def select_branch_and_bound(
    utxos: list[UTXO],
    target: int,
    max_candidates: int = BNB_MAX_CANDIDATES,
) -> Optional[list[UTXO]]:
    """Depth-first include/exclude search over the largest candidates.

    Candidates are sorted by descending amount and the include branch is
    explored first; the first combination whose sum reaches the target is
    returned. Returns None when no combination of the candidates does.
    """
    candidates = sorted(utxos, key=lambda u: u.amount, reverse=True)[:max_candidates]

    if total_amount(candidates) < target:
        return None

    def search(index: int, current: list[UTXO], current_sum: int) -> Optional[list[UTXO]]:
        if current_sum >= target:
            return current

        if index >= len(candidates):
            return None

        utxo = candidates[index]
        with_current = search(index + 1, current + [utxo], current_sum + utxo.amount)
        if with_current is not None:
            return with_current

        return search(index + 1, current, current_sum)

    return search(0, [], 0)
