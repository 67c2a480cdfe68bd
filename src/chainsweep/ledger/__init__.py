"""Durable UTXO reservations and audit trail."""

from chainsweep.ledger.database import close_db, get_db, init_db
from chainsweep.ledger.models import Base, UtxoAuditLog, UtxoReservation
from chainsweep.ledger.repository import DatabaseAuditSink, UtxoLedgerRepository

__all__ = [
    # Models
    "Base",
    "UtxoAuditLog",
    "UtxoReservation",
    # Database
    "close_db",
    "get_db",
    "init_db",
    "DatabaseAuditSink",
    "UtxoLedgerRepository",
]
