"""Domain port definitions for adapters."""

from __future__ import annotations

from .keys import GeneratedKeyPair, KeyPairGenerator
from .persistence import EscrowWalletRepository, MappingRepository, Repository
from .registry import (
    MappingNotFoundError,
    RegistryClient,
    RegistryError,
    RegistryUnavailableError,
    RemoteEscrow,
)
from .unit_of_work import (
    CacheRepositories,
    CacheUnitOfWork,
    RepositoryCollection,
    UnitOfWork,
)

__all__ = [
    "CacheRepositories",
    "CacheUnitOfWork",
    "EscrowWalletRepository",
    "GeneratedKeyPair",
    "KeyPairGenerator",
    "MappingNotFoundError",
    "MappingRepository",
    "RegistryClient",
    "RegistryError",
    "RegistryUnavailableError",
    "RemoteEscrow",
    "Repository",
    "RepositoryCollection",
    "UnitOfWork",
]
