"""Register, update and delete UPI id mappings against the registry.

The registry is the single source of truth and every remote step may fail on
its own. Each mutating operation:

* validates the identifier grammar and resolves ownership remotely,
* takes the per-identifier lock for the whole operation,
* asks the optional confirmation callback before the first remote write (the
  only point where cancelling is safe; once a write has been submitted it may
  still commit, and the caller has to reconcile instead),
* submits each remote step exactly once and only then touches the cache.

``update`` is a remove followed by a register because the registry keeps one
slot per identifier. When the register half fails the old identifier is
re-registered once; if that also fails the record is marked ``ORPHANED`` and
left for an operator.
"""

from __future__ import annotations

from contextlib import contextmanager
from logging import getLogger
from typing import TYPE_CHECKING

from upilink.domain.locking import KeyedLock
from upilink.domain.model import (
    MappingRecord,
    MappingStatus,
    OutcomeKind,
    OwnershipVerdict,
    ensure_transition,
    is_valid_upi_id,
    normalize_address,
    same_address,
)
from upilink.domain.outcomes import (
    DeleteOptions,
    LifecycleOutcome,
    RegisterOptions,
    UpdateOptions,
    utcnow,
)
from upilink.domain.ownership import OwnershipVerifier
from upilink.domain.ports.registry import RegistryError
from upilink.domain.remote import describe, failure_kind, references, submit_once

if TYPE_CHECKING:
    from collections.abc import Iterator

    from upilink.domain.cache import LocalCache
    from upilink.domain.model import Address, OperationResult
    from upilink.domain.outcomes import Clock
    from upilink.domain.ports.registry import RegistryClient

log = getLogger(__name__)


class _Flight:
    """In-flight state of one identifier, validated against the state machine."""

    def __init__(
        self,
        states: dict[str, MappingStatus],
        upi_id: str,
        start: MappingStatus,
    ) -> None:
        self._states = states
        self.upi_id = upi_id
        self.status = start
        states[upi_id] = start

    def advance(self, target: MappingStatus) -> None:
        self.status = ensure_transition(self.status, target)
        self._states[self.upi_id] = target
        log.debug("%s -> %s", self.upi_id, target)


class MappingLifecycleController:
    """Drive the lifecycle of UPI id mappings owned by the registry's identity."""

    def __init__(
        self,
        *,
        registry: RegistryClient,
        cache: LocalCache,
        verifier: OwnershipVerifier | None = None,
        locks: KeyedLock | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._registry = registry
        self._cache = cache
        self._verifier = verifier or OwnershipVerifier(registry)
        self._locks = locks or KeyedLock()
        self._clock = clock
        self._in_flight: dict[str, MappingStatus] = {}

    @property
    def identity(self) -> Address:
        return normalize_address(self._registry.identity)

    def state_of(self, upi_id: str) -> MappingStatus:
        """Current state: in-flight if an operation is running, else cached."""

        status = self._in_flight.get(upi_id)
        if status is not None:
            return status
        record = self._cache.get_mapping(upi_id)
        return record.status if record is not None else MappingStatus.UNREGISTERED

    # register -------------------------------------------------------------------

    def register(
        self,
        upi_id: str,
        owner: Address,
        options: RegisterOptions | None = None,
    ) -> LifecycleOutcome:
        options = options or RegisterOptions()
        if not is_valid_upi_id(upi_id):
            return _invalid(upi_id)
        identity = self.identity
        if not same_address(owner, identity):
            return LifecycleOutcome(
                OutcomeKind.NOT_OWNER,
                upi_id,
                detail=f"{owner} is not the authenticated identity {identity}",
            )

        with self._locks.hold(upi_id):
            try:
                check = self._verifier.check(upi_id, identity)
            except RegistryError as exc:
                return _unavailable(upi_id, exc)

            local = self._cache.get_mapping(upi_id)
            if check.verdict is OwnershipVerdict.OWNED_BY_OTHER:
                return LifecycleOutcome(
                    OutcomeKind.ALREADY_OWNED_BY_OTHER,
                    upi_id,
                    detail=f"registered to {check.owner}",
                )
            if check.verdict is OwnershipVerdict.OWNED:
                return self._adopt(upi_id, identity, local)

            if not options.approved(f"Register UPI id {upi_id} on the registry?"):
                return _cancelled(upi_id)

            start = (
                MappingStatus.ORPHANED
                if local is not None and local.status is MappingStatus.ORPHANED
                else MappingStatus.UNREGISTERED
            )
            with self._track(upi_id, start) as flight:
                flight.advance(MappingStatus.REGISTERING)
                result = submit_once(
                    f"register {upi_id}",
                    lambda: self._registry.submit_register(upi_id),
                )
                if not result.committed:
                    flight.advance(MappingStatus.UNREGISTERED)
                    return LifecycleOutcome(
                        failure_kind(result),
                        upi_id,
                        references=references(result),
                        detail=describe(result),
                    )

                flight.advance(MappingStatus.ACTIVE)
                record = MappingRecord(
                    upi_id=upi_id,
                    owner_identity=identity,
                    created_at=self._clock(),
                )
                # a fresh registration carries no escrow link
                self._cache.save_mapping(record, unlink_wallet=True)
                log.info("Registered %s for %s", upi_id, identity)
                return LifecycleOutcome(
                    OutcomeKind.REGISTERED,
                    upi_id,
                    local_state_changed=True,
                    references=references(result),
                    record=record,
                )

    def _adopt(
        self,
        upi_id: str,
        identity: Address,
        local: MappingRecord | None,
    ) -> LifecycleOutcome:
        if (
            local is not None
            and local.is_active
            and same_address(local.owner_identity, identity)
        ):
            return LifecycleOutcome(OutcomeKind.ADOPTED, upi_id, record=local)

        record = MappingRecord(
            upi_id=upi_id,
            owner_identity=identity,
            created_at=local.created_at if local is not None else self._clock(),
            escrow_address=local.escrow_address if local is not None else None,
        )
        self._cache.save_mapping(record)
        log.info("Adopted existing registration of %s", upi_id)
        return LifecycleOutcome(
            OutcomeKind.ADOPTED,
            upi_id,
            local_state_changed=True,
            record=record,
        )

    # update ---------------------------------------------------------------------

    def update(
        self,
        old_upi_id: str,
        new_upi_id: str,
        options: UpdateOptions | None = None,
    ) -> LifecycleOutcome:
        options = options or UpdateOptions()
        for candidate in (old_upi_id, new_upi_id):
            if not is_valid_upi_id(candidate):
                return _invalid(candidate)
        if old_upi_id == new_upi_id:
            return LifecycleOutcome(
                OutcomeKind.INVALID_IDENTIFIER_FORMAT,
                old_upi_id,
                detail="old and new UPI ids are identical",
            )
        identity = self.identity

        with self._locks.hold(old_upi_id, new_upi_id):
            try:
                old_check = self._verifier.check(old_upi_id, identity)
                new_check = self._verifier.check(new_upi_id, identity)
            except RegistryError as exc:
                return _unavailable(old_upi_id, exc)

            if old_check.verdict is OwnershipVerdict.NOT_FOUND:
                return LifecycleOutcome(
                    OutcomeKind.NOT_FOUND,
                    old_upi_id,
                    detail="not registered on the registry",
                )
            if old_check.verdict is OwnershipVerdict.OWNED_BY_OTHER:
                return LifecycleOutcome(
                    OutcomeKind.NOT_OWNER,
                    old_upi_id,
                    detail=f"registered to {old_check.owner}",
                )
            if new_check.verdict is OwnershipVerdict.OWNED_BY_OTHER:
                return LifecycleOutcome(
                    OutcomeKind.ALREADY_OWNED_BY_OTHER,
                    new_upi_id,
                    detail=f"registered to {new_check.owner}",
                )

            local = self._cache.get_mapping(old_upi_id)
            snapshot = (
                local.with_status(MappingStatus.ACTIVE)
                if local is not None
                else MappingRecord(
                    upi_id=old_upi_id,
                    owner_identity=identity,
                    created_at=self._clock(),
                )
            )

            if not options.approved(f"Replace UPI id {old_upi_id} with {new_upi_id}?"):
                return _cancelled(old_upi_id)

            with self._track(old_upi_id, MappingStatus.ACTIVE) as flight:
                flight.advance(MappingStatus.UPDATING)
                removed = submit_once(
                    f"remove {old_upi_id}",
                    lambda: self._registry.submit_remove(old_upi_id),
                )
                if not removed.committed:
                    flight.advance(MappingStatus.ACTIVE)
                    return LifecycleOutcome(
                        failure_kind(removed),
                        old_upi_id,
                        references=references(removed),
                        detail=f"remove of old UPI id failed ({describe(removed)})",
                    )

                registered: OperationResult | None = None
                incoming_start = (
                    MappingStatus.ACTIVE if new_check.owned else MappingStatus.UNREGISTERED
                )
                with self._track(new_upi_id, incoming_start) as incoming:
                    if new_check.owned:
                        log.info(
                            "%s already registered to %s; skipping register", new_upi_id, identity
                        )
                    else:
                        incoming.advance(MappingStatus.REGISTERING)
                        registered = submit_once(
                            f"register {new_upi_id}",
                            lambda: self._registry.submit_register(new_upi_id),
                        )
                        if not registered.committed:
                            incoming.advance(MappingStatus.UNREGISTERED)
                            return self._roll_back(
                                flight,
                                snapshot=snapshot,
                                cached=local,
                                new_upi_id=new_upi_id,
                                prior=(removed, registered),
                            )
                        incoming.advance(MappingStatus.ACTIVE)

                    flight.advance(MappingStatus.ACTIVE)
                    record = snapshot.renamed(new_upi_id)
                    # local-only re-link: the registry keeps no escrow cross-reference
                    self._cache.rekey_mapping(old_upi_id, record)
                log.info("Updated %s -> %s", old_upi_id, new_upi_id)
                return LifecycleOutcome(
                    OutcomeKind.UPDATED,
                    new_upi_id,
                    local_state_changed=True,
                    references=references(removed, registered),
                    record=record,
                )

    def _roll_back(
        self,
        flight: _Flight,
        *,
        snapshot: MappingRecord,
        cached: MappingRecord | None,
        new_upi_id: str,
        prior: tuple[OperationResult, OperationResult],
    ) -> LifecycleOutcome:
        old_upi_id = snapshot.upi_id
        failed_register = prior[1]
        flight.advance(MappingStatus.ROLLING_BACK)
        log.warning(
            "Register of %s failed (%s); restoring %s",
            new_upi_id,
            describe(failed_register),
            old_upi_id,
        )
        restored = submit_once(
            f"rollback register {old_upi_id}",
            lambda: self._registry.submit_register(old_upi_id),
        )
        refs = references(*prior, restored)

        if restored.committed:
            flight.advance(MappingStatus.ACTIVE)
            changed = cached is not None and cached != snapshot
            if changed:
                self._cache.save_mapping(snapshot)
            return LifecycleOutcome(
                OutcomeKind.UPDATE_FAILED_RESTORED,
                old_upi_id,
                local_state_changed=changed,
                references=refs,
                detail=f"register of {new_upi_id} failed ({describe(failed_register)})",
                record=snapshot,
            )

        flight.advance(MappingStatus.ORPHANED)
        orphan = snapshot.with_status(MappingStatus.ORPHANED)
        self._cache.save_mapping(orphan)
        log.error(
            "Rollback of %s failed (%s); mapping orphaned, manual correction required",
            old_upi_id,
            describe(restored),
        )
        return LifecycleOutcome(
            OutcomeKind.UPDATE_FAILED_ORPHANED,
            old_upi_id,
            local_state_changed=True,
            references=refs,
            detail=(
                f"register of {new_upi_id} failed ({describe(failed_register)}); "
                f"rollback failed ({describe(restored)})"
            ),
            record=orphan,
        )

    # delete ---------------------------------------------------------------------

    def delete(self, upi_id: str, options: DeleteOptions | None = None) -> LifecycleOutcome:
        options = options or DeleteOptions()
        if not is_valid_upi_id(upi_id):
            return _invalid(upi_id)
        identity = self.identity

        with self._locks.hold(upi_id):
            local = self._cache.get_mapping(upi_id)
            try:
                check = self._verifier.check(upi_id, identity)
            except RegistryError as exc:
                return _unavailable(upi_id, exc)

            if check.verdict is OwnershipVerdict.NOT_FOUND:
                if local is None:
                    return LifecycleOutcome(
                        OutcomeKind.NOT_FOUND,
                        upi_id,
                        detail="unknown locally and on the registry",
                    )
                if not options.approved(f"{upi_id} is not on the registry. Remove locally?"):
                    return _cancelled(upi_id)
                self._cache.drop_mapping(upi_id)
                log.info("Removed drifted local mapping %s", upi_id)
                return LifecycleOutcome(
                    OutcomeKind.DELETED_LOCAL_ONLY,
                    upi_id,
                    local_state_changed=True,
                )
            if check.verdict is OwnershipVerdict.OWNED_BY_OTHER:
                return LifecycleOutcome(
                    OutcomeKind.NOT_OWNER,
                    upi_id,
                    detail=f"registered to {check.owner}",
                )

            if not options.approved(f"Delete UPI id {upi_id} from the registry?"):
                return _cancelled(upi_id)

            with self._track(upi_id, MappingStatus.ACTIVE) as flight:
                flight.advance(MappingStatus.DELETING)
                result = submit_once(
                    f"remove {upi_id}",
                    lambda: self._registry.submit_remove(upi_id),
                )
                if not result.committed:
                    flight.advance(MappingStatus.DELETE_FAILED)
                    return LifecycleOutcome(
                        OutcomeKind.DELETE_FAILED,
                        upi_id,
                        references=references(result),
                        detail=describe(result),
                        record=local,
                    )

                flight.advance(MappingStatus.UNREGISTERED)
                existed = self._cache.drop_mapping(upi_id)
                log.info("Deleted %s", upi_id)
                return LifecycleOutcome(
                    OutcomeKind.DELETED,
                    upi_id,
                    local_state_changed=existed,
                    references=references(result),
                )

    @contextmanager
    def _track(self, upi_id: str, start: MappingStatus) -> Iterator[_Flight]:
        flight = _Flight(self._in_flight, upi_id, start)
        try:
            yield flight
        finally:
            self._in_flight.pop(upi_id, None)


def _invalid(upi_id: str) -> LifecycleOutcome:
    return LifecycleOutcome(
        OutcomeKind.INVALID_IDENTIFIER_FORMAT,
        upi_id,
        detail="expected <name>@<handle> using letters, digits, '.', '_' or '-'",
    )


def _cancelled(upi_id: str) -> LifecycleOutcome:
    return LifecycleOutcome(OutcomeKind.CANCELLED, upi_id, detail="declined before any remote write")


def _unavailable(upi_id: str, exc: RegistryError) -> LifecycleOutcome:
    log.warning("Registry read failed for %s: %s", upi_id, exc)
    return LifecycleOutcome(OutcomeKind.REMOTE_UNAVAILABLE, upi_id, detail=str(exc))
