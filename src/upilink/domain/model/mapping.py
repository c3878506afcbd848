"""Mapping and escrow wallet entities."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Final

from upilink.domain.model.enums import MappingStatus

if TYPE_CHECKING:
    from datetime import datetime

    from upilink.domain.model.primitives import Address


class InvalidTransitionError(RuntimeError):
    """Raised when a mapping is driven through a transition the lifecycle forbids."""

    def __init__(self, current: MappingStatus, target: MappingStatus) -> None:
        super().__init__(f"Illegal mapping transition {current} -> {target}")
        self.current = current
        self.target = target


ALLOWED_TRANSITIONS: Final[dict[MappingStatus, frozenset[MappingStatus]]] = {
    MappingStatus.UNREGISTERED: frozenset({MappingStatus.REGISTERING}),
    MappingStatus.REGISTERING: frozenset({MappingStatus.ACTIVE, MappingStatus.UNREGISTERED}),
    MappingStatus.ACTIVE: frozenset({MappingStatus.UPDATING, MappingStatus.DELETING}),
    MappingStatus.UPDATING: frozenset({MappingStatus.ACTIVE, MappingStatus.ROLLING_BACK}),
    MappingStatus.ROLLING_BACK: frozenset({MappingStatus.ACTIVE, MappingStatus.ORPHANED}),
    # manual re-registration by an operator is the only way out
    MappingStatus.ORPHANED: frozenset({MappingStatus.REGISTERING}),
    MappingStatus.DELETING: frozenset(
        {MappingStatus.UNREGISTERED, MappingStatus.DELETE_FAILED}
    ),
    MappingStatus.DELETE_FAILED: frozenset({MappingStatus.ACTIVE, MappingStatus.DELETING}),
}


def ensure_transition(current: MappingStatus, target: MappingStatus) -> MappingStatus:
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(current, target)
    return target


@dataclass(eq=True, kw_only=True, slots=True)
class MappingRecord:
    """Local view of a ``upi_id -> owner -> escrow`` registration."""

    upi_id: str
    owner_identity: Address
    created_at: datetime
    escrow_address: Address | None = None
    status: MappingStatus = MappingStatus.ACTIVE

    @property
    def is_active(self) -> bool:
        return self.status is MappingStatus.ACTIVE

    def renamed(self, upi_id: str) -> MappingRecord:
        """Copy carrying escrow and creation time over to a new identifier."""

        return replace(self, upi_id=upi_id, status=MappingStatus.ACTIVE)

    def with_status(self, status: MappingStatus) -> MappingRecord:
        return replace(self, status=status)


@dataclass(eq=True, kw_only=True, slots=True)
class EscrowWallet:
    """Locally generated escrow keypair.

    ``upi_id`` is the local storage key. ``linked_upi_id`` is only set once the
    registry has committed the link for that pair.
    """

    upi_id: str
    address: Address
    key_material: str = field(repr=False)
    created_at: datetime
    linked_upi_id: str | None = None

    @property
    def is_linked(self) -> bool:
        return self.linked_upi_id is not None

    def linked(self) -> EscrowWallet:
        return replace(self, linked_upi_id=self.upi_id)

    def unlinked(self) -> EscrowWallet:
        return replace(self, linked_upi_id=None)

    def moved_to(self, upi_id: str) -> EscrowWallet:
        return replace(
            self,
            upi_id=upi_id,
            linked_upi_id=upi_id if self.is_linked else None,
        )
