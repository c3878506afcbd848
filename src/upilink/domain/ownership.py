"""Ownership checks against the registry."""

from __future__ import annotations

from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from upilink.domain.model import OwnershipVerdict, normalize_address, same_address
from upilink.domain.ports.registry import MappingNotFoundError

if TYPE_CHECKING:
    from upilink.domain.model import Address
    from upilink.domain.ports.registry import RegistryClient

log = getLogger(__name__)


@dataclass(frozen=True, slots=True)
class OwnershipCheck:
    upi_id: str
    verdict: OwnershipVerdict
    owner: Address | None = None

    @property
    def owned(self) -> bool:
        return self.verdict is OwnershipVerdict.OWNED

    @property
    def exists(self) -> bool:
        return self.verdict is not OwnershipVerdict.NOT_FOUND


class OwnershipVerifier:
    """Decide whether an identity is the recorded owner of a UPI id.

    Always asks the registry; the local cache is never trusted for ownership.
    ``RegistryUnavailableError`` propagates to the caller.
    """

    def __init__(self, registry: RegistryClient) -> None:
        self._registry = registry

    def check(self, upi_id: str, identity: Address) -> OwnershipCheck:
        if not self._registry.exists(upi_id):
            return OwnershipCheck(upi_id=upi_id, verdict=OwnershipVerdict.NOT_FOUND)
        try:
            owner = normalize_address(self._registry.owner_of(upi_id))
        except MappingNotFoundError:
            # removed between the two reads
            return OwnershipCheck(upi_id=upi_id, verdict=OwnershipVerdict.NOT_FOUND)

        verdict = (
            OwnershipVerdict.OWNED
            if same_address(owner, identity)
            else OwnershipVerdict.OWNED_BY_OTHER
        )
        log.debug("Ownership of %s: %s (owner=%s)", upi_id, verdict, owner)
        return OwnershipCheck(upi_id=upi_id, verdict=verdict, owner=owner)

    def is_owner(self, upi_id: str, identity: Address) -> bool:
        return self.check(upi_id, identity).owned
