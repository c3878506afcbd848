"""Domain enums (pure, dependency-light)."""

from __future__ import annotations

from enum import StrEnum


class MappingStatus(StrEnum):
    """Lifecycle states of a UPI id mapping.

    Only ``ACTIVE`` and ``ORPHANED`` are persisted; the remaining states exist
    while a lifecycle operation is in flight.
    """

    UNREGISTERED = "unregistered"
    REGISTERING = "registering"
    ACTIVE = "active"
    UPDATING = "updating"
    ROLLING_BACK = "rolling_back"
    ORPHANED = "orphaned"
    DELETING = "deleting"
    DELETE_FAILED = "delete_failed"


class FailureReason(StrEnum):
    """Why a remote write did not commit."""

    REJECTED = "rejected"
    TIMEOUT = "timeout"
    UNAVAILABLE = "unavailable"
    NOT_FOUND = "not_found"

    @property
    def transient(self) -> bool:
        return self in {FailureReason.TIMEOUT, FailureReason.UNAVAILABLE}


class OwnershipVerdict(StrEnum):
    OWNED = "owned"
    OWNED_BY_OTHER = "owned_by_other"
    NOT_FOUND = "not_found"


class OutcomeKind(StrEnum):
    """Status/error kinds returned at the controller boundary."""

    # success
    REGISTERED = "registered"
    ADOPTED = "adopted"
    UPDATED = "updated"
    DELETED = "deleted"
    DELETED_LOCAL_ONLY = "deleted_local_only"
    LINKED = "linked"
    MERCHANT_REGISTERED = "merchant_registered"
    ALREADY_REGISTERED = "already_registered"

    # precondition failures (no remote write attempted)
    INVALID_IDENTIFIER_FORMAT = "invalid_identifier_format"
    ALREADY_OWNED_BY_OTHER = "already_owned_by_other"
    NOT_OWNER = "not_owner"
    NOT_FOUND = "not_found"
    NOT_ACTIVE = "not_active"
    ALREADY_LINKED = "already_linked"
    CANCELLED = "cancelled"
    INVALID_MERCHANT_DETAILS = "invalid_merchant_details"

    # remote failures
    REMOTE_UNAVAILABLE = "remote_unavailable"
    REMOTE_REJECTED = "remote_rejected"
    UPDATE_FAILED_RESTORED = "update_failed_restored"
    UPDATE_FAILED_ORPHANED = "update_failed_orphaned"
    DELETE_FAILED = "delete_failed"
    LINKED_LOCAL_ONLY = "linked_local_only"

    @property
    def succeeded(self) -> bool:
        return self in _SUCCESS_KINDS

    @property
    def retryable(self) -> bool:
        return self in _RETRYABLE_KINDS


_SUCCESS_KINDS = frozenset(
    {
        OutcomeKind.REGISTERED,
        OutcomeKind.ADOPTED,
        OutcomeKind.UPDATED,
        OutcomeKind.DELETED,
        OutcomeKind.DELETED_LOCAL_ONLY,
        OutcomeKind.LINKED,
        OutcomeKind.MERCHANT_REGISTERED,
        OutcomeKind.ALREADY_REGISTERED,
    }
)

_RETRYABLE_KINDS = frozenset(
    {
        OutcomeKind.REMOTE_UNAVAILABLE,
        OutcomeKind.UPDATE_FAILED_RESTORED,
        OutcomeKind.DELETE_FAILED,
        OutcomeKind.LINKED_LOCAL_ONLY,
    }
)
