"""Tests for the reservation ledger and audit trail."""

import json
from contextlib import asynccontextmanager

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from chainsweep.errors import ReservationConflictError
from chainsweep.ledger.repository import DatabaseAuditSink, UtxoLedgerRepository
from chainsweep.utxo.manager import UTXOManager
from chainsweep.utxo.models import UTXO
from conftest import BTC_SEGWIT


def make_utxo(index: int, amount: int = 10_000) -> UTXO:
    return UTXO(
        txid=f"{index:064x}",
        vout=0,
        amount=amount,
        script_pubkey="0014751e76e8199196d454941c45d1b3a323f1433bd6",
        address=BTC_SEGWIT,
        confirmations=3,
    )


class TestReservations:
    """Tests for durable UTXO reservations."""

    @pytest.mark.asyncio
    async def test_reserve(self, ledger_repo: UtxoLedgerRepository):
        reserved = await ledger_repo.reserve_utxos([make_utxo(1), make_utxo(2, 25_000)], "sweep-1")

        assert len(reserved) == 2
        assert reserved[1].amount == 25_000
        assert reserved[0].holder == "sweep-1"
        assert await ledger_repo.get_reserved_keys() == {make_utxo(1).key, make_utxo(2).key}

    @pytest.mark.asyncio
    async def test_empty_request(self, ledger_repo: UtxoLedgerRepository):
        assert await ledger_repo.reserve_utxos([], "sweep-1") == []

    @pytest.mark.asyncio
    async def test_same_holder_is_idempotent(self, ledger_repo: UtxoLedgerRepository):
        await ledger_repo.reserve_utxos([make_utxo(1)], "sweep-1")

        reserved = await ledger_repo.reserve_utxos([make_utxo(1), make_utxo(2)], "sweep-1")

        assert sorted(r.key for r in reserved) == sorted([make_utxo(1).key, make_utxo(2).key])
        assert len(await ledger_repo.get_reservations("sweep-1")) == 2

    @pytest.mark.asyncio
    async def test_conflict_reserves_nothing(self, ledger_repo: UtxoLedgerRepository):
        await ledger_repo.reserve_utxos([make_utxo(1)], "sweep-1")

        with pytest.raises(ReservationConflictError) as exc_info:
            await ledger_repo.reserve_utxos([make_utxo(2), make_utxo(1)], "sweep-2")

        assert exc_info.value.keys == [make_utxo(1).key]
        assert exc_info.value.holder == "sweep-2"
        assert await ledger_repo.get_reservations("sweep-2") == []

    @pytest.mark.asyncio
    async def test_release_all(self, ledger_repo: UtxoLedgerRepository):
        await ledger_repo.reserve_utxos([make_utxo(1), make_utxo(2)], "sweep-1")
        await ledger_repo.reserve_utxos([make_utxo(3)], "sweep-2")

        released = await ledger_repo.release_utxos("sweep-1")

        assert released == 2
        assert await ledger_repo.get_reserved_keys() == {make_utxo(3).key}

    @pytest.mark.asyncio
    async def test_release_selected_keys(self, ledger_repo: UtxoLedgerRepository):
        await ledger_repo.reserve_utxos([make_utxo(1), make_utxo(2)], "sweep-1")

        released = await ledger_repo.release_utxos("sweep-1", [make_utxo(2).key])

        assert released == 1
        assert await ledger_repo.get_reserved_keys() == {make_utxo(1).key}

    @pytest.mark.asyncio
    async def test_release_frees_for_other_holder(self, ledger_repo: UtxoLedgerRepository):
        await ledger_repo.reserve_utxos([make_utxo(1)], "sweep-1")
        await ledger_repo.release_utxos("sweep-1")

        reserved = await ledger_repo.reserve_utxos([make_utxo(1)], "sweep-2")

        assert reserved[0].holder == "sweep-2"

    @pytest.mark.asyncio
    async def test_release_nothing(self, ledger_repo: UtxoLedgerRepository):
        assert await ledger_repo.release_utxos("nobody") == 0


class TestAuditLog:
    """Tests for audit records."""

    @pytest.mark.asyncio
    async def test_add_and_filter(self, ledger_repo: UtxoLedgerRepository):
        key = make_utxo(1).key
        await ledger_repo.add_audit_log("UTXO_ADD", "mainnet", {"utxo_key": key, "amount": 10_000}, "ops")
        await ledger_repo.add_audit_log("TRANSACTION_CREATE", "mainnet", {"fee": 1460})
        await ledger_repo.add_audit_log("UTXO_SPEND", "mainnet", {"utxo_key": key})

        logs = await ledger_repo.get_audit_logs()
        assert [log.action for log in logs] == ["UTXO_SPEND", "TRANSACTION_CREATE", "UTXO_ADD"]

        by_key = await ledger_repo.get_audit_logs(utxo_key=key)
        assert len(by_key) == 2

        added = await ledger_repo.get_audit_logs(action="UTXO_ADD")
        assert added[0].user_id == "ops"
        assert json.loads(added[0].details_json) == {"amount": 10_000, "utxo_key": key}

    @pytest.mark.asyncio
    async def test_limit(self, ledger_repo: UtxoLedgerRepository):
        for i in range(5):
            await ledger_repo.add_audit_log("UTXO_ADD", "mainnet", {"n": i})

        logs = await ledger_repo.get_audit_logs(limit=2)

        assert [json.loads(log.details_json)["n"] for log in logs] == [4, 3]


class TestDatabaseAuditSink:
    """Tests for wiring the manager's audit hook to the database."""

    @pytest.mark.asyncio
    async def test_manager_events_are_persisted(self, db_engine):
        session_factory = async_sessionmaker(bind=db_engine, class_=AsyncSession, expire_on_commit=False)

        @asynccontextmanager
        async def session_scope():
            async with session_factory() as session:
                yield session
                await session.commit()

        manager = UTXOManager("mainnet", audit_sink=DatabaseAuditSink("mainnet", session_scope))
        utxo = make_utxo(7, 50_000)

        await manager.add_utxo(utxo, user_id="ops")
        await manager.spend_utxo(utxo.txid, utxo.vout, "ab" * 32)

        async with session_factory() as session:
            logs = await UtxoLedgerRepository(session).get_audit_logs(utxo_key=utxo.key)

        assert [log.action for log in logs] == ["UTXO_SPEND", "UTXO_ADD"]
        assert {log.network for log in logs} == {"mainnet"}
        assert logs[1].user_id == "ops"
