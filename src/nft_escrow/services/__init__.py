"""Application services — use case orchestration."""

from nft_escrow.services.escrow_service import EscrowService
from nft_escrow.services.transfers import MutationGuard

__all__ = ["EscrowService", "MutationGuard"]
