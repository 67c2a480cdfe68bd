#!/usr/bin/env python3
"""UTXO Snapshot Report.

Loads a UTXO set exported with UTXOManager.export_utxo_set() and prints
balance statistics, optionally alongside the durable reservations held
in the ledger database.

Usage:
    python scripts/utxo_report.py snapshot.json [--address ADDR] [--reservations] [--json]

Options:
    --address       Also report the available balance of one address
    --min-conf      Minimum confirmations for available balances (default: 1)
    --reservations  List reservations from DATABASE_URL
    --json          Print the report as JSON
"""

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from chainsweep.errors import UTXOError
from chainsweep.ledger.database import close_db, get_db, init_db
from chainsweep.ledger.repository import UtxoLedgerRepository
from chainsweep.utxo.manager import UTXOManager

load_dotenv()

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


def load_manager(path: Path) -> UTXOManager:
    """Build a manager on the snapshot's own network and import it."""
    raw = path.read_text()
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise UTXOError(f"{path} is not a UTXO snapshot")
    network = data.get("network", "mainnet")

    manager = UTXOManager(network)
    manager.import_utxo_set(raw)
    return manager


async def load_reservations() -> list[dict]:
    await init_db()
    try:
        async with get_db() as session:
            reservations = await UtxoLedgerRepository(session).get_reservations()
            return [
                {"utxo": r.key, "amount": r.amount, "address": r.address, "holder": r.holder}
                for r in reservations
            ]
    finally:
        await close_db()


def build_report(manager: UTXOManager, address: Optional[str] = None, min_conf: int = 1) -> dict:
    report = {
        "network": manager.network,
        "statistics": asdict(manager.get_utxo_statistics()),
        "total_balance": manager.get_total_balance(min_conf),
    }
    if address:
        report["address"] = {
            "address": address,
            "balance": manager.get_balance_by_address(address, min_conf),
            "utxos": len(manager.get_utxos_by_address(address, min_conf)),
        }
    return report


def print_report(report: dict) -> None:
    stats = report["statistics"]
    print(f"\nUTXO report ({report['network']})")
    print("=" * 40)
    print(f"  Total UTXOs:     {stats['total']}")
    print(f"  Available:       {stats['available']}")
    print(f"  Spent:           {stats['spent']}")
    print(f"  Locked:          {stats['locked']}")
    print(f"  Available value: {stats['total_value']} sat")
    print(f"  Average:         {stats['average_value']} sat")
    print(f"  Largest:         {stats['largest_utxo']} sat")
    print(f"  Smallest:        {stats['smallest_utxo']} sat")
    print(f"  Confirmed total: {report['total_balance']} sat")

    if "address" in report:
        entry = report["address"]
        print(f"\n  {entry['address']}: {entry['balance']} sat in {entry['utxos']} UTXOs")

    if "reservations" in report:
        print(f"\nReservations ({len(report['reservations'])})")
        for r in report["reservations"]:
            print(f"  {r['utxo']}  {r['amount']} sat  held by {r['holder']}")


def main():
    parser = argparse.ArgumentParser(description="Report on an exported UTXO set")
    parser.add_argument("snapshot", type=Path, help="Path to exported UTXO JSON")
    parser.add_argument("--address", help="Report balance for this address")
    parser.add_argument("--min-conf", type=int, default=1, help="Minimum confirmations")
    parser.add_argument("--reservations", action="store_true", help="Include DB reservations")
    parser.add_argument("--json", action="store_true", help="Output JSON")
    args = parser.parse_args()

    try:
        manager = load_manager(args.snapshot)
    except (OSError, json.JSONDecodeError, UTXOError) as e:
        logger.error(f"Could not load {args.snapshot}: {e}")
        sys.exit(1)

    report = build_report(manager, args.address, args.min_conf)

    if args.reservations:
        report["reservations"] = asyncio.run(load_reservations())

    if args.json:
        print(json.dumps(report, indent=2))
    else:
        print_report(report)


if __name__ == "__main__":
    main()
