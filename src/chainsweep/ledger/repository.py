"""Repository for durable UTXO reservations and audit records."""

import json
import logging
from typing import Callable, Iterable, Optional

from sqlalchemy import delete, select, tuple_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from chainsweep.errors import ReservationConflictError
from chainsweep.ledger.database import get_db
from chainsweep.ledger.models import UtxoAuditLog, UtxoReservation
from chainsweep.utxo.models import UTXO

logger = logging.getLogger(__name__)


class UtxoLedgerRepository:
    """Database operations backing UTXO locks across processes."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # Reservation operations
    async def get_reservations(self, holder: Optional[str] = None) -> list[UtxoReservation]:
        """Get reservations, optionally for one holder."""
        stmt = select(UtxoReservation)
        if holder is not None:
            stmt = stmt.where(UtxoReservation.holder == holder)
        stmt = stmt.order_by(UtxoReservation.id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_reserved_keys(self) -> set[str]:
        """Get ``txid:vout`` keys of every reserved UTXO."""
        return {reservation.key for reservation in await self.get_reservations()}

    async def reserve_utxos(self, utxos: Iterable[UTXO], holder: str) -> list[UtxoReservation]:
        """Reserve UTXOs for holder, all or nothing.

        UTXOs the holder already reserved are kept as-is.

        Raises:
            ReservationConflictError: If another holder reserved any of them.
                The caller's session must be rolled back (``get_db`` does).
        """
        wanted = {utxo.key: utxo for utxo in utxos}
        if not wanted:
            return []

        outpoints = [(utxo.txid, utxo.vout) for utxo in wanted.values()]
        stmt = select(UtxoReservation).where(
            tuple_(UtxoReservation.txid, UtxoReservation.vout).in_(outpoints)
        )
        result = await self.session.execute(stmt)
        existing = list(result.scalars().all())

        conflicts = sorted(r.key for r in existing if r.holder != holder)
        if conflicts:
            raise ReservationConflictError(conflicts, holder)

        held = {r.key for r in existing}
        created = [
            UtxoReservation(
                txid=utxo.txid,
                vout=utxo.vout,
                amount=utxo.amount,
                address=utxo.address,
                holder=holder,
            )
            for key, utxo in wanted.items()
            if key not in held
        ]

        self.session.add_all(created)
        try:
            await self.session.flush()
        except IntegrityError as e:
            # Lost a race with a concurrent reservation of the same outpoint
            raise ReservationConflictError(sorted(wanted), holder) from e

        logger.info(f"Reserved {len(created)} UTXOs for {holder}")
        return existing + created

    async def release_utxos(self, holder: str, keys: Optional[Iterable[str]] = None) -> int:
        """Release a holder's reservations (all, or only the given keys).

        Returns:
            Number of reservations released
        """
        reservations = await self.get_reservations(holder)
        if keys is not None:
            selected = set(keys)
            reservations = [r for r in reservations if r.key in selected]

        if not reservations:
            return 0

        stmt = delete(UtxoReservation).where(
            UtxoReservation.id.in_([r.id for r in reservations])
        )
        await self.session.execute(stmt)
        await self.session.flush()

        logger.info(f"Released {len(reservations)} UTXOs held by {holder}")
        return len(reservations)

    # Audit Log operations
    async def add_audit_log(
        self,
        action: str,
        network: str,
        details: dict,
        user_id: Optional[str] = None,
    ) -> UtxoAuditLog:
        """Add an audit log entry for a UTXO ledger event."""
        audit = UtxoAuditLog(
            action=action,
            network=network,
            utxo_key=details.get("utxo_key"),
            user_id=user_id,
            details_json=json.dumps(details, default=str, sort_keys=True),
        )
        self.session.add(audit)
        await self.session.flush()
        return audit

    async def get_audit_logs(
        self,
        action: Optional[str] = None,
        utxo_key: Optional[str] = None,
        limit: int = 50,
    ) -> list[UtxoAuditLog]:
        """Get audit logs, newest first."""
        stmt = select(UtxoAuditLog)
        if action:
            stmt = stmt.where(UtxoAuditLog.action == action)
        if utxo_key:
            stmt = stmt.where(UtxoAuditLog.utxo_key == utxo_key)
        stmt = stmt.order_by(UtxoAuditLog.id.desc()).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())


class DatabaseAuditSink:
    """``UTXOManager`` audit hook that writes each event to ``utxo_audit_logs``.

    Example:
        manager = UTXOManager("mainnet", audit_sink=DatabaseAuditSink("mainnet"))
    """

    def __init__(self, network: str, session_scope: Callable = get_db):
        self.network = network
        self._session_scope = session_scope

    async def __call__(self, action: str, details: dict, user_id: Optional[str]) -> None:
        async with self._session_scope() as session:
            await UtxoLedgerRepository(session).add_audit_log(
                action, self.network, details, user_id
            )
