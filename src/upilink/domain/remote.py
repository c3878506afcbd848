"""Helpers for issuing single remote steps."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from upilink.domain.model import FailureReason, OperationResult, OutcomeKind
from upilink.domain.ports.registry import RegistryError, RegistryUnavailableError

if TYPE_CHECKING:
    from collections.abc import Callable

log = getLogger(__name__)


def submit_once(step: str, call: Callable[[], OperationResult]) -> OperationResult:
    """Run one remote write exactly once and never raise for remote failure."""

    try:
        result = call()
    except RegistryError as exc:
        timed_out = isinstance(exc, RegistryUnavailableError) and exc.timed_out
        reason = FailureReason.TIMEOUT if timed_out else FailureReason.UNAVAILABLE
        log.warning("Remote step %r failed before commit: %s", step, exc)
        return OperationResult.failure(reason, detail=str(exc))

    if result.committed:
        log.info("Remote step %r committed: %s", step, result.reference)
    else:
        log.warning(
            "Remote step %r did not commit: %s (%s)",
            step,
            result.failure_reason,
            result.detail,
        )
    return result


def failure_kind(result: OperationResult) -> OutcomeKind:
    if result.transient_failure:
        return OutcomeKind.REMOTE_UNAVAILABLE
    return OutcomeKind.REMOTE_REJECTED


def describe(result: OperationResult) -> str:
    reason = result.failure_reason or FailureReason.REJECTED
    return f"{reason}: {result.detail}" if result.detail else str(reason)


def references(*results: OperationResult | None) -> tuple[str, ...]:
    return tuple(result.reference for result in results if result and result.reference)
