"""Abstract repository interfaces for the record store and audit log."""

from abc import ABC, abstractmethod
from typing import Callable, List, Optional
from uuid import UUID

from ..core.enums import EntityKind, EntityStatus
from ..domain.entities import EntityRecord
from ..domain.events import BaseEvent, EventEnvelope

# Pure function applied to the current record inside an atomic update
Mutation = Callable[[EntityRecord], EntityRecord]

# Builds the audit event for the updated record, or None when nothing changed
EventBuilder = Callable[[EntityRecord], Optional[BaseEvent]]


class RecordStore(ABC):
    """
    Document store for entity records.

    Every mutation goes through :meth:`compare_and_update`, which applies a
    pure mutation only if the stored version still matches the version the
    caller read. The record, its audit event and any referral claim commit
    together or not at all. Records returned by the store always carry their
    current version on ``record.core.version``.
    """

    @abstractmethod
    async def get(self, kind: EntityKind, entity_id: UUID) -> EntityRecord:
        """
        Get a record by primary key.

        Raises:
            NotFoundError: if no record of that kind has the id
        """
        pass

    @abstractmethod
    async def create_if_absent(
        self, record: EntityRecord, event: Optional[BaseEvent] = None
    ) -> EntityRecord:
        """
        Insert a new record at version 1, together with its audit event.

        Raises:
            ConflictError: if the id or the referral code is already taken
        """
        pass

    @abstractmethod
    async def compare_and_update(
        self,
        kind: EntityKind,
        entity_id: UUID,
        expected_version: int,
        mutation: Mutation,
        event_for: Optional[EventBuilder] = None,
        referral_claim: Optional[UUID] = None,
    ) -> EntityRecord:
        """
        Atomically apply ``mutation`` if the stored version equals ``expected_version``.

        ``event_for`` is called with the updated record and its event is
        appended to the audit log in the same atomic step. ``referral_claim``
        records that the updated entity referred that id, also in the same
        step. Exceptions raised by ``mutation`` or ``event_for`` propagate and
        nothing is written.

        Raises:
            NotFoundError: if the record does not exist
            ConflictError: if the version moved on, the referral code is
                taken, or ``referral_claim`` is held by another referrer
                (the latter with ``retryable=False``)
        """
        pass

    @abstractmethod
    async def find_by_referral_code(self, kind: EntityKind, code: str) -> EntityRecord:
        """
        Get the record of ``kind`` that owns a referral code.

        Raises:
            NotFoundError: if no record owns the code
        """
        pass

    @abstractmethod
    async def list_by_status(
        self, kind: EntityKind, status: EntityStatus, limit: int = 100, offset: int = 0
    ) -> List[EntityRecord]:
        """List records in a status, oldest first."""
        pass

    @abstractmethod
    async def find_referrer_id(self, referred_id: UUID) -> Optional[UUID]:
        """Get the id of the referrer holding the claim on ``referred_id``."""
        pass


class AuditLog(ABC):
    """Append-only log of domain events, sequenced per entity."""

    @abstractmethod
    async def append(self, event: BaseEvent) -> EventEnvelope:
        """Append an event and return it with its sequence number."""
        pass

    @abstractmethod
    async def list_for_entity(
        self, entity_id: UUID, event_types: Optional[List[str]] = None
    ) -> List[EventEnvelope]:
        """Get events for an entity ordered by sequence number."""
        pass


class RepositoryContainer:
    """Container for the repository interfaces to support dependency injection."""

    def __init__(self, record_store: RecordStore, audit_log: AuditLog):
        self.records = record_store
        self.audit = audit_log
