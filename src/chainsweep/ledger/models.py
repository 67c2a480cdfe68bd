"""SQLAlchemy models for durable UTXO reservations and the audit trail."""

from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, DateTime, Index, Integer, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class UtxoReservation(Base):
    """A UTXO claimed by one holder (sweep job, worker) until released.

    The unique (txid, vout) index is the cross-process lock: a second
    insert for the same outpoint fails at the database.
    """

    __tablename__ = "utxo_reservations"
    __table_args__ = (Index("ix_utxo_reservation_outpoint", "txid", "vout", unique=True),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    txid: Mapped[str] = mapped_column(String(64), nullable=False)
    vout: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)  # satoshi
    address: Mapped[str] = mapped_column(String(100), nullable=False)
    holder: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    @property
    def key(self) -> str:
        return f"{self.txid}:{self.vout}"

    def __repr__(self) -> str:
        return f"<UtxoReservation {self.key} holder={self.holder}>"


class UtxoAuditLog(Base):
    """UTXO ledger event (add, spend, transaction create)."""

    __tablename__ = "utxo_audit_logs"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    network: Mapped[str] = mapped_column(String(20), nullable=False)
    utxo_key: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    details_json: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
