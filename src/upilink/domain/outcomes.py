"""Per-operation options and the outcome type returned to callers."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from upilink.domain.model import OutcomeKind

if TYPE_CHECKING:
    from upilink.domain.model import Address, MappingRecord, MerchantProfile

type Confirmation = Callable[[str], bool]
type Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass(frozen=True, slots=True, kw_only=True)
class OperationOptions:
    """Options shared by every mutating operation.

    ``confirm`` is asked synchronously before the first remote write; answering
    ``False`` cancels the operation without any state change. ``force`` skips
    the question.
    """

    force: bool = False
    confirm: Confirmation | None = None

    def approved(self, prompt: str) -> bool:
        if self.force or self.confirm is None:
            return True
        return bool(self.confirm(prompt))


@dataclass(frozen=True, slots=True, kw_only=True)
class RegisterOptions(OperationOptions):
    pass


@dataclass(frozen=True, slots=True, kw_only=True)
class UpdateOptions(OperationOptions):
    pass


@dataclass(frozen=True, slots=True, kw_only=True)
class DeleteOptions(OperationOptions):
    pass


@dataclass(frozen=True, slots=True, kw_only=True)
class GenerateEscrowOptions(OperationOptions):
    """``regenerate`` discards an existing wallet's key material for good."""

    regenerate: bool = False


@dataclass(frozen=True, slots=True, kw_only=True)
class MerchantOptions(OperationOptions):
    pass


@dataclass(frozen=True, slots=True)
class LifecycleOutcome:
    """Result of a lifecycle or escrow operation.

    ``local_state_changed`` tells the caller whether the cache was written, so
    it can decide between retrying, escalating and reconciling.
    """

    kind: OutcomeKind
    upi_id: str
    local_state_changed: bool = False
    references: tuple[str, ...] = ()
    detail: str | None = None
    record: MappingRecord | None = None
    wallet_address: Address | None = None

    @property
    def succeeded(self) -> bool:
        return self.kind.succeeded

    @property
    def restored(self) -> bool | None:
        """For failed updates: whether the previous mapping was restored."""

        if self.kind is OutcomeKind.UPDATE_FAILED_RESTORED:
            return True
        if self.kind is OutcomeKind.UPDATE_FAILED_ORPHANED:
            return False
        return None


@dataclass(frozen=True, slots=True)
class MerchantOutcome:
    kind: OutcomeKind
    address: Address
    references: tuple[str, ...] = ()
    detail: str | None = None
    profile: MerchantProfile | None = None

    @property
    def succeeded(self) -> bool:
        return self.kind.succeeded
