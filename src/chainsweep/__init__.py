"""Chainsweep - multichain sweep transaction construction and UTXO management."""

__version__ = "0.1.0"
