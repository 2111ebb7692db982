"""In-memory implementations of repository interfaces.

A single lock serializes every check-and-write, which makes
``compare_and_update`` and the uniqueness indexes atomic across threads. The
record store writes audit events into its audit log while holding that lock.
"""

import threading
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from ..core.enums import EntityKind, EntityStatus
from ..core.exceptions import ConflictError, NotFoundError
from ..domain.entities import EntityRecord, with_core
from ..domain.events import BaseEvent, EventEnvelope
from .interfaces import AuditLog, EventBuilder, Mutation, RecordStore, RepositoryContainer

RecordKey = Tuple[EntityKind, UUID]


class MemoryAuditLog(AuditLog):
    """In-memory implementation of AuditLog."""

    def __init__(self):
        self._lock = threading.Lock()
        self._events: Dict[UUID, List[EventEnvelope]] = {}

    def record(self, event: BaseEvent) -> EventEnvelope:
        """Append synchronously; used by the record store inside its lock."""
        with self._lock:
            entity_events = self._events.setdefault(event.entity_id, [])
            envelope = EventEnvelope(
                sequence_number=len(entity_events) + 1,
                stored_at=event.timestamp,
                event=event,
            )
            entity_events.append(envelope)
            return envelope

    async def append(self, event: BaseEvent) -> EventEnvelope:
        return self.record(event)

    async def list_for_entity(
        self, entity_id: UUID, event_types: Optional[List[str]] = None
    ) -> List[EventEnvelope]:
        with self._lock:
            envelopes = list(self._events.get(entity_id, []))
        if event_types:
            envelopes = [e for e in envelopes if e.event_type in event_types]
        return envelopes


class MemoryRecordStore(RecordStore):
    """In-memory implementation of RecordStore."""

    def __init__(self, audit_log: Optional[MemoryAuditLog] = None):
        self._lock = threading.RLock()
        self._records: Dict[RecordKey, EntityRecord] = {}
        self._code_index: Dict[Tuple[EntityKind, str], UUID] = {}
        self._referral_claims: Dict[UUID, UUID] = {}
        self.audit_log = audit_log or MemoryAuditLog()

    def _check_code_free(
        self, kind: EntityKind, code: Optional[str], owner_id: UUID
    ) -> None:
        if not code:
            return
        holder = self._code_index.get((kind, code))
        if holder is not None and holder != owner_id:
            raise ConflictError(
                f"Referral code '{code}' is already used by another {kind.value}",
                referral_code=code,
            )

    def _check_claim_free(self, referred_id: Optional[UUID], referrer_id: UUID) -> None:
        if referred_id is None:
            return
        holder = self._referral_claims.get(referred_id)
        if holder is not None and holder != referrer_id:
            raise ConflictError(
                f"Entity {referred_id} was already referred by {holder}",
                retryable=False,
                referred_id=referred_id,
                referrer_id=holder,
            )

    def _reindex_code(self, kind: EntityKind, old: EntityRecord, new: EntityRecord) -> None:
        old_code = old.core.referral_code if old is not None else None
        if old_code and old_code != new.core.referral_code:
            self._code_index.pop((kind, old_code), None)
        if new.core.referral_code:
            self._code_index[(kind, new.core.referral_code)] = new.id

    async def get(self, kind: EntityKind, entity_id: UUID) -> EntityRecord:
        with self._lock:
            record = self._records.get((EntityKind(kind), entity_id))
        if record is None:
            raise NotFoundError(f"No {EntityKind(kind).value} with id {entity_id}")
        return record

    async def create_if_absent(
        self, record: EntityRecord, event: Optional[BaseEvent] = None
    ) -> EntityRecord:
        kind = record.kind
        with self._lock:
            if (kind, record.id) in self._records:
                raise ConflictError(f"{kind.value} {record.id} already exists")
            self._check_code_free(kind, record.core.referral_code, record.id)

            stored = with_core(record, version=1)
            if event is not None:
                self.audit_log.record(event)
            self._records[(kind, record.id)] = stored
            self._reindex_code(kind, None, stored)
            return stored

    async def compare_and_update(
        self,
        kind: EntityKind,
        entity_id: UUID,
        expected_version: int,
        mutation: Mutation,
        event_for: Optional[EventBuilder] = None,
        referral_claim: Optional[UUID] = None,
    ) -> EntityRecord:
        kind = EntityKind(kind)
        with self._lock:
            current = self._records.get((kind, entity_id))
            if current is None:
                raise NotFoundError(f"No {kind.value} with id {entity_id}")
            if current.core.version != expected_version:
                raise ConflictError(
                    f"{kind.value} {entity_id} changed concurrently "
                    f"(expected version {expected_version}, found {current.core.version})",
                    entity_id=entity_id,
                )
            self._check_claim_free(referral_claim, entity_id)

            updated = mutation(current)
            if updated.id != entity_id:
                raise ValueError("A mutation cannot change the record id")
            self._check_code_free(kind, updated.core.referral_code, entity_id)

            stored = with_core(updated, version=current.core.version + 1)
            event = event_for(stored) if event_for is not None else None
            if event is not None:
                self.audit_log.record(event)

            self._records[(kind, entity_id)] = stored
            self._reindex_code(kind, current, stored)
            if referral_claim is not None:
                self._referral_claims[referral_claim] = entity_id
            return stored

    async def find_by_referral_code(self, kind: EntityKind, code: str) -> EntityRecord:
        kind = EntityKind(kind)
        with self._lock:
            entity_id = self._code_index.get((kind, code))
            record = self._records.get((kind, entity_id)) if entity_id else None
        if record is None:
            raise NotFoundError(f"No {kind.value} owns referral code '{code}'")
        return record

    async def list_by_status(
        self, kind: EntityKind, status: EntityStatus, limit: int = 100, offset: int = 0
    ) -> List[EntityRecord]:
        kind = EntityKind(kind)
        with self._lock:
            matching = [
                record
                for (record_kind, _), record in self._records.items()
                if record_kind == kind and record.status == status
            ]
        matching.sort(key=lambda record: (record.core.created_at, str(record.id)))
        return matching[offset:offset + limit]

    async def find_referrer_id(self, referred_id: UUID) -> Optional[UUID]:
        with self._lock:
            return self._referral_claims.get(referred_id)


def create_memory_container() -> RepositoryContainer:
    """Repository container backed by memory, for tests and embedding."""
    audit_log = MemoryAuditLog()
    return RepositoryContainer(
        record_store=MemoryRecordStore(audit_log), audit_log=audit_log
    )
