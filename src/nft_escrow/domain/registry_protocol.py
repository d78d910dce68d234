"""Asset Registry Protocol.

Defines the interface the escrow needs from the external ownership registry.
This is a Protocol (structural subtyping) so concrete registries don't need
to inherit from a base class — they just need to match the shape.

The escrow never implements ownership itself; it only calls these methods.

Concrete implementations:
    - infrastructure/registry.py  InMemoryAssetRegistry (simulated registry)
    - infrastructure/registry.py  HttpAssetRegistry (remote registry over HTTP)
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class AssetRegistry(Protocol):
    """Ownership registry for non-fungible items."""

    async def transfer(
        self,
        sender: str,
        recipient: str,
        collection: str,
        item_id: str,
    ) -> bool:
        """Move an item from ``sender`` to ``recipient``.

        Returns:
            True if the registry recorded the new owner, False if it refused.
            A raised exception is treated the same way as False.
        """
        ...

    async def owner_of(self, collection: str, item_id: str) -> str | None:
        """Return the current owner of an item, or None if it is unknown."""
        ...

    async def is_approved_for_escrow(
        self,
        owner: str,
        collection: str,
        item_id: str,
    ) -> bool:
        """Whether ``owner`` allowed the escrow to move this item."""
        ...
