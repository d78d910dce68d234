"""FastAPI dependency injection providers.

These are used with Depends() in route handlers to inject database sessions,
the trade repository, the asset registry, the escrow service and the caller
identity.
"""

from __future__ import annotations

from functools import lru_cache
from typing import TYPE_CHECKING

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: TC002 - resolved by FastAPI at runtime

from nft_escrow.config import Settings, get_settings
from nft_escrow.domain.registry_protocol import AssetRegistry  # noqa: TC001
from nft_escrow.infrastructure.database.engine import get_async_session
from nft_escrow.infrastructure.database.repositories import SqlTradeRepository
from nft_escrow.infrastructure.registry import get_registry
from nft_escrow.services.escrow_service import EscrowService
from nft_escrow.services.transfers import MutationGuard

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session for a request."""
    async for session in get_async_session():
        yield session


@lru_cache(maxsize=1)
def get_mutation_guard() -> MutationGuard:
    """One guard per process so every request shares the same total order."""
    return MutationGuard()


def get_registry_client() -> AssetRegistry:
    """Provide the asset registry."""
    return get_registry()


def get_app_settings() -> Settings:
    """Provide the application settings."""
    return get_settings()


async def get_escrow_service(
    session: AsyncSession = Depends(get_db_session),
    registry: AssetRegistry = Depends(get_registry_client),
    settings: Settings = Depends(get_app_settings),
) -> EscrowService:
    """Provide an EscrowService that commits the session inside its critical section."""
    return EscrowService.from_settings(
        SqlTradeRepository(session),
        registry,
        settings,
        guard=get_mutation_guard(),
        on_commit=session.commit,
    )


def get_caller(
    x_caller_address: str = Header(
        ...,
        min_length=1,
        description="Identity of the party making the call",
    ),
) -> str:
    """Resolve the caller identity from the X-Caller-Address header."""
    return x_caller_address
