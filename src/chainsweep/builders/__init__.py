"""Per-chain sweep transaction builders.

This module handles building unsigned sweep transactions and broadcasting
their signed counterparts.
"""

from chainsweep.builders.base import ChainTxBuilder
from chainsweep.builders.factory import ChainBuilderFactory

__all__ = [
    "ChainBuilderFactory",
    "ChainTxBuilder",
]
