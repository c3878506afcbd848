"""Domain model for UPI id mappings and escrow wallets."""

from __future__ import annotations

from .enums import FailureReason, MappingStatus, OutcomeKind, OwnershipVerdict
from .mapping import (
    ALLOWED_TRANSITIONS,
    EscrowWallet,
    InvalidTransitionError,
    MappingRecord,
    ensure_transition,
)
from .merchant import (
    OCTAS_PER_APT,
    AccountTransaction,
    EscrowBalance,
    MerchantProfile,
    RegistryStats,
    merchant_details_problem,
)
from .primitives import (
    UPI_ID_PATTERN,
    Address,
    InvalidIdentifierError,
    is_valid_upi_id,
    normalize_address,
    require_upi_id,
    same_address,
)
from .results import OperationResult

__all__ = [
    "ALLOWED_TRANSITIONS",
    "OCTAS_PER_APT",
    "UPI_ID_PATTERN",
    "AccountTransaction",
    "Address",
    "EscrowBalance",
    "EscrowWallet",
    "FailureReason",
    "InvalidIdentifierError",
    "InvalidTransitionError",
    "MappingRecord",
    "MappingStatus",
    "MerchantProfile",
    "OperationResult",
    "OutcomeKind",
    "OwnershipVerdict",
    "RegistryStats",
    "ensure_transition",
    "is_valid_upi_id",
    "merchant_details_problem",
    "normalize_address",
    "require_upi_id",
    "same_address",
]
