#!/usr/bin/env python3
"""NFT Escrow — End-to-End Simulation.

Simulates four scenarios between two collectors, Alice and Bob, against a
simulated asset registry:

    Scenario 1: Happy Path (explicit deposits)
        - Alice proposes punk#1 + punk#2 for Bob's ape#3
        - Both deposit -> settlement fires, bundles swap owners

    Scenario 2: Partial Deposit and Cancel
        - Same trade, Alice deposits punk#1 only
        - Alice cancels -> punk#1 returned, nothing ever reaches Bob

    Scenario 3: Atomic Offer with Terms Griefing
        - Alice escrows her whole bundle with depositAll, wanting ape#3
        - Bob answers with different terms -> TermsMismatch, Alice's items stay escrowed
        - Bob answers with the agreed terms -> settlement

    Scenario 4: Locking Flow
        - Both deposit, nothing settles until both sides lock
        - Bob withdraws and re-deposits in between

Usage:
    # Default: in-memory ledger
    python simulation.py

    # Persist the ledger in SQLite (in-memory database):
    python simulation.py --sqlite

    # Run a specific scenario:
    python simulation.py --scenario 3
"""

from __future__ import annotations

import argparse
import asyncio
from dataclasses import dataclass
from typing import Any

# ---------------------------------------------------------------------------
# Configure structured logging BEFORE importing app modules
# ---------------------------------------------------------------------------
from nft_escrow.logging_config import get_logger, setup_logging

setup_logging(log_level="INFO", json_logs=False)
logger = get_logger("simulation")

from nft_escrow.domain.enums import DepositPolicy  # noqa: E402
from nft_escrow.domain.exceptions import EscrowError  # noqa: E402
from nft_escrow.domain.models import items_of  # noqa: E402
from nft_escrow.infrastructure.memory_repository import InMemoryTradeRepository  # noqa: E402
from nft_escrow.infrastructure.registry import InMemoryAssetRegistry  # noqa: E402
from nft_escrow.services.escrow_service import EscrowService  # noqa: E402

ESCROW = "0xE5C0E5C0E5C0E5C0E5C0E5C0E5C0E5C0E5C0E5C0"
ALICE = "0xA11CE00000000000000000000000000000000000"
BOB = "0xB0B0000000000000000000000000000000000000"
PUNKS = "0xPunks"
APES = "0xApes"

# Module-level state
_sqlite_engine = None
_sqlite_session_factory = None


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------
async def init_database(use_sqlite: bool = False) -> None:
    """Create an in-memory SQLite database when requested."""
    global _sqlite_engine, _sqlite_session_factory

    if not use_sqlite:
        return

    from nft_escrow.infrastructure.database.engine import (
        build_engine,
        create_tables,
        session_factory_for,
    )

    _sqlite_engine = build_engine("sqlite+aiosqlite:///:memory:")
    _sqlite_session_factory = session_factory_for(_sqlite_engine)
    await create_tables(_sqlite_engine)
    logger.info("database.sqlite_initialized")


async def shutdown_database() -> None:
    """Close database connections."""
    global _sqlite_engine, _sqlite_session_factory
    if _sqlite_engine is not None:
        await _sqlite_engine.dispose()
        _sqlite_engine = None
        _sqlite_session_factory = None


@dataclass
class World:
    """Everything one scenario runs against."""

    registry: InMemoryAssetRegistry
    service: EscrowService
    session: Any = None

    async def close(self) -> None:
        if self.session is not None:
            await self.session.close()


async def build_world(policy: DepositPolicy = DepositPolicy.EXPLICIT) -> World:
    """Mint the collectors' items and wire an escrow service around them."""
    registry = InMemoryAssetRegistry(ESCROW)
    registry.mint(ALICE, PUNKS, 1, 2)
    registry.mint(BOB, APES, 3)
    registry.set_approval_for_all(ALICE, PUNKS)
    registry.set_approval_for_all(BOB, APES)

    session = None
    if _sqlite_session_factory is not None:
        from nft_escrow.infrastructure.database.repositories import SqlTradeRepository

        session = _sqlite_session_factory()
        repository: Any = SqlTradeRepository(session)
        on_commit = session.commit
    else:
        repository = InMemoryTradeRepository()
        on_commit = None

    service = EscrowService(
        repository,
        registry,
        escrow_address=ESCROW,
        deposit_policy=policy,
        on_commit=on_commit,
    )
    return World(registry=registry, service=service, session=session)


# ---------------------------------------------------------------------------
# Collector bot
# ---------------------------------------------------------------------------
@dataclass
class CollectorBot:
    """A party that talks to the escrow and reports what happened."""

    name: str
    address: str

    async def attempt(self, label: str, call: Any) -> bool:
        try:
            trade = await call
        except EscrowError as exc:
            print(f"  ❌ {self.name} {label}: {exc.code} — {exc.message}")
            return False
        print(f"  ✅ {self.name} {label}: status={trade.status.value}")
        return True


# ---------------------------------------------------------------------------
# Print helpers
# ---------------------------------------------------------------------------
def banner(text: str) -> None:
    """Print a prominent banner."""
    width = 70
    print("\n" + "=" * width)
    print(f"  {text}")
    print("=" * width + "\n")


def section(text: str) -> None:
    """Print a section header."""
    print(f"\n--- {text} ---\n")


def print_ownership(registry: InMemoryAssetRegistry) -> None:
    for label, address in (("Alice", ALICE), ("Bob", BOB), ("Escrow", ESCROW)):
        owned = ", ".join(f"{c}#{i}" for c, i in registry.items_owned_by(address)) or "—"
        print(f"  {label:>6}: {owned}")


async def print_audit_trail(service: EscrowService, trade_id: str) -> None:
    """Print the full audit trail for a trade."""
    events = await service.get_events(trade_id)
    print("\n  📜 Audit Trail:")
    for i, evt in enumerate(events, 1):
        print(f"    {i}. [{evt.event_type.value}] by {evt.actor[:10]}… {evt.metadata}")
    print()


# ===========================================================================
# Scenario 1: Happy Path
# ===========================================================================
async def scenario_1_happy_path() -> None:
    """Two punks for one ape, explicit deposits."""
    banner("SCENARIO 1: Happy Path — Explicit Deposits")

    world = await build_world()
    alice = CollectorBot("Alice", ALICE)
    bob = CollectorBot("Bob", BOB)
    try:
        section("Step 1: Alice proposes the trade")
        await alice.attempt(
            "creates T1",
            world.service.create_trade(
                ALICE, "T1", ALICE, BOB, items_of(PUNKS, [1, 2]), items_of(APES, [3])
            ),
        )

        section("Step 2: Alice deposits both punks")
        await alice.attempt("deposits", world.service.deposit(ALICE, "T1", PUNKS, ["1", "2"]))

        section("Step 3: Bob deposits the ape -> settlement")
        await bob.attempt("deposits", world.service.deposit(BOB, "T1", APES, ["3"]))

        print_ownership(world.registry)
        await print_audit_trail(world.service, "T1")
    finally:
        await world.close()


# ===========================================================================
# Scenario 2: Partial Deposit and Cancel
# ===========================================================================
async def scenario_2_partial_and_cancel() -> None:
    """Alice gives up after a partial deposit."""
    banner("SCENARIO 2: Partial Deposit and Cancel")

    world = await build_world()
    alice = CollectorBot("Alice", ALICE)
    try:
        section("Step 1: Alice proposes and deposits one punk")
        await alice.attempt(
            "creates T2",
            world.service.create_trade(
                ALICE, "T2", ALICE, BOB, items_of(PUNKS, [1, 2]), items_of(APES, [3])
            ),
        )
        await alice.attempt("deposits punk#1", world.service.deposit(ALICE, "T2", PUNKS, ["1"]))
        print_ownership(world.registry)

        section("Step 2: A stranger tries to cancel")
        stranger = CollectorBot("Mallory", "0xMALLORY")
        await stranger.attempt("cancels", world.service.cancel_trade_offer("0xMALLORY", "T2"))

        section("Step 3: Alice cancels")
        await alice.attempt("cancels", world.service.cancel_trade_offer(ALICE, "T2"))

        section("Step 4: Late deposit from Bob")
        bob = CollectorBot("Bob", BOB)
        await bob.attempt("deposits", world.service.deposit(BOB, "T2", APES, ["3"]))

        print_ownership(world.registry)
        await print_audit_trail(world.service, "T2")
    finally:
        await world.close()


# ===========================================================================
# Scenario 3: Atomic Offer with Terms Griefing
# ===========================================================================
async def scenario_3_atomic_terms() -> None:
    """depositAll creates the trade; a mismatched answer is rejected."""
    banner("SCENARIO 3: Atomic Offer — Terms Mismatch")

    world = await build_world(DepositPolicy.ATOMIC)
    alice = CollectorBot("Alice", ALICE)
    bob = CollectorBot("Bob", BOB)
    punks = items_of(PUNKS, [1, 2])
    ape = items_of(APES, [3])
    try:
        section("Step 1: Alice escrows both punks and asks for ape#3")
        await alice.attempt(
            "deposits all",
            world.service.deposit_all(ALICE, "T3", BOB, have_items=punks, want_items=ape),
        )

        section("Step 2: Bob answers asking for only one punk")
        await bob.attempt(
            "deposits all",
            world.service.deposit_all(
                BOB, "T3", ALICE, have_items=ape, want_items=items_of(PUNKS, [1])
            ),
        )
        print_ownership(world.registry)

        section("Step 3: Bob answers with the agreed terms")
        await bob.attempt(
            "deposits all",
            world.service.deposit_all(BOB, "T3", ALICE, have_items=ape, want_items=punks),
        )

        print_ownership(world.registry)
        await print_audit_trail(world.service, "T3")
    finally:
        await world.close()


# ===========================================================================
# Scenario 4: Locking Flow
# ===========================================================================
async def scenario_4_locking() -> None:
    """Deposits alone do not settle; both sides must lock."""
    banner("SCENARIO 4: Locking Flow")

    world = await build_world(DepositPolicy.LOCKING)
    alice = CollectorBot("Alice", ALICE)
    bob = CollectorBot("Bob", BOB)
    try:
        await alice.attempt(
            "creates T4",
            world.service.create_trade(
                ALICE, "T4", ALICE, BOB, items_of(PUNKS, [1, 2]), items_of(APES, [3])
            ),
        )

        section("Step 1: Both deposit, Alice locks")
        await alice.attempt("deposits all", world.service.deposit_all(ALICE, "T4"))
        await bob.attempt("deposits all", world.service.deposit_all(BOB, "T4"))
        await alice.attempt("locks", world.service.lock(ALICE, "T4"))

        section("Step 2: Bob has second thoughts and withdraws")
        await bob.attempt("withdraws", world.service.withdraw(BOB, "T4", APES, ["3"]))
        await bob.attempt("locks", world.service.lock(BOB, "T4"))

        section("Step 3: Bob re-deposits and locks -> settlement")
        await bob.attempt("deposits", world.service.deposit(BOB, "T4", APES, ["3"]))
        await bob.attempt("locks", world.service.lock(BOB, "T4"))

        print_ownership(world.registry)
        await print_audit_trail(world.service, "T4")
    finally:
        await world.close()


# ===========================================================================
# Main
# ===========================================================================
SCENARIOS = {
    1: scenario_1_happy_path,
    2: scenario_2_partial_and_cancel,
    3: scenario_3_atomic_terms,
    4: scenario_4_locking,
}


async def run_all(use_sqlite: bool = False) -> None:
    """Run all scenarios sequentially."""
    await init_database(use_sqlite=use_sqlite)

    try:
        print("\n" + "🚀" * 35)
        print("  NFT ESCROW — SIMULATION")
        db_type = "SQLite (in-memory)" if use_sqlite else "in-memory ledger"
        print(f"  Storage: {db_type}")
        print("🚀" * 35 + "\n")

        for scenario in SCENARIOS.values():
            await scenario()

        print("\n" + "=" * 70)
        print("  ✅ ALL SCENARIOS COMPLETED")
        print("=" * 70 + "\n")
    finally:
        await shutdown_database()


async def run_scenario(num: int, use_sqlite: bool = False) -> None:
    """Run a specific scenario."""
    await init_database(use_sqlite=use_sqlite)

    try:
        if num not in SCENARIOS:
            print(f"Unknown scenario {num}. Available: {', '.join(map(str, SCENARIOS))}")
            return
        await SCENARIOS[num]()
    finally:
        await shutdown_database()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="NFT Escrow Simulation")
    parser.add_argument(
        "--scenario",
        type=int,
        default=0,
        help="Run a specific scenario (1-4). Default: run all.",
    )
    parser.add_argument(
        "--sqlite",
        action="store_true",
        help="Keep the ledger in an in-memory SQLite database.",
    )
    args = parser.parse_args()

    if args.scenario == 0:
        asyncio.run(run_all(use_sqlite=args.sqlite))
    else:
        asyncio.run(run_scenario(args.scenario, use_sqlite=args.sqlite))
