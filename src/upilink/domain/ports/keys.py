"""Port for local escrow keypair generation."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from upilink.domain.model import Address


@dataclass(frozen=True, slots=True)
class GeneratedKeyPair:
    address: Address
    key_material: str = field(repr=False)


@runtime_checkable
class KeyPairGenerator(Protocol):
    """Callable port creating a fresh keypair that never leaves the process."""

    def __call__(self) -> GeneratedKeyPair: ...


__all__ = ["GeneratedKeyPair", "KeyPairGenerator"]
