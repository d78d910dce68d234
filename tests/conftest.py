"""Shared test fixtures for the NFT escrow test suite.

Provides:
    - Party identities and item bundles
    - A simulated asset registry with minted, approved items
    - An in-memory trade repository
    - A factory for EscrowService instances under any policy
    - Async test support via pytest-asyncio
"""

from __future__ import annotations

from collections.abc import Callable

import pytest

from nft_escrow.domain.models import Item, items_of
from nft_escrow.infrastructure.memory_repository import InMemoryTradeRepository
from nft_escrow.infrastructure.registry import InMemoryAssetRegistry
from nft_escrow.services.escrow_service import EscrowService

ESCROW = "0xE5C0E5C0E5C0E5C0E5C0E5C0E5C0E5C0E5C0E5C0"
PUNKS = "0xPunks"
APES = "0xApes"

# ---------------------------------------------------------------------------
# Identities and items
# ---------------------------------------------------------------------------


@pytest.fixture
def escrow_address() -> str:
    return ESCROW


@pytest.fixture
def alice() -> str:
    return "0xA11CE00000000000000000000000000000000000"


@pytest.fixture
def bob() -> str:
    return "0xB0B0000000000000000000000000000000000000"


@pytest.fixture
def carol() -> str:
    """A third identity that is never a party of the default trade."""
    return "0xCA201000000000000000000000000000000000000"


@pytest.fixture
def punks() -> tuple[Item, ...]:
    """Alice's bundle: item1 and item2."""
    return items_of(PUNKS, ["1", "2"])


@pytest.fixture
def ape() -> tuple[Item, ...]:
    """Bob's bundle: item3."""
    return items_of(APES, ["3"])


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------


@pytest.fixture
def registry(escrow_address: str, alice: str, bob: str, carol: str) -> InMemoryAssetRegistry:
    """Registry where Alice holds punks 1-2, Bob ape 3, Carol punk 9; all approved."""
    reg = InMemoryAssetRegistry(escrow_address)
    reg.mint(alice, PUNKS, "1", "2")
    reg.mint(bob, APES, "3")
    reg.mint(carol, PUNKS, "9")
    for owner, collection in ((alice, PUNKS), (bob, APES), (carol, PUNKS)):
        reg.set_approval_for_all(owner, collection)
    return reg


@pytest.fixture
def repository() -> InMemoryTradeRepository:
    return InMemoryTradeRepository()


@pytest.fixture
def make_service(
    repository: InMemoryTradeRepository,
    registry: InMemoryAssetRegistry,
    escrow_address: str,
) -> Callable[..., EscrowService]:
    """Build an EscrowService sharing the test's registry and repository."""

    def _make(**kwargs) -> EscrowService:
        return EscrowService(repository, registry, escrow_address=escrow_address, **kwargs)

    return _make


@pytest.fixture
def service(make_service: Callable[..., EscrowService]) -> EscrowService:
    """Explicit deposits, either-party cancellation, auto-settle on."""
    return make_service()
