"""Results of remote registry writes."""

from __future__ import annotations

from dataclasses import dataclass

from upilink.domain.model.enums import FailureReason


@dataclass(frozen=True, slots=True)
class OperationResult:
    """Outcome of a single remote write.

    ``reference`` is the opaque transaction reference (empty when the write was
    never accepted by the node).
    """

    committed: bool
    reference: str = ""
    failure_reason: FailureReason | None = None
    detail: str | None = None

    @classmethod
    def success(cls, reference: str) -> OperationResult:
        return cls(committed=True, reference=reference)

    @classmethod
    def failure(
        cls,
        reason: FailureReason,
        *,
        reference: str = "",
        detail: str | None = None,
    ) -> OperationResult:
        return cls(committed=False, reference=reference, failure_reason=reason, detail=detail)

    @property
    def transient_failure(self) -> bool:
        return self.failure_reason is not None and self.failure_reason.transient
