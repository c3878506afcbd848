"""Aptos full-node adapter for the on-chain UPI registry."""

from __future__ import annotations

from .client import AptosAPIError, AptosRegistryClient
from .schema import EscrowPayload, TransactionResponse

__all__ = [
    "AptosAPIError",
    "AptosRegistryClient",
    "EscrowPayload",
    "TransactionResponse",
]
