"""SQLAlchemy concrete implementations of repository interfaces.

Each operation runs in its own session and commits before returning, so a
store instance can be shared between threads. Optimistic concurrency relies on
``UPDATE ... WHERE version = :expected``; uniqueness relies on the table
constraints classified by ``store.integrity_policy``. A record update, its
audit event and its referral claim are written in one transaction.
"""

from typing import List, Optional
from uuid import UUID

from sqlalchemy import and_, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..core.enums import EntityKind, EntityStatus
from ..core.exceptions import ConflictError, NotFoundError, RecordStoreError
from ..db.models import AuditEventRow, EntityRecordRow, ReferralLinkRow
from ..domain.entities import EntityRecord, from_document, to_document, with_core
from ..domain.events import BaseEvent, EventEnvelope, deserialize_event
from ..store.integrity_policy import to_conflict
from ..utils.logging_config import get_logger
from .interfaces import (
    AuditLog,
    EventBuilder,
    Mutation,
    RecordStore,
    RepositoryContainer,
)

logger = get_logger(__name__)


def _row_values(record: EntityRecord) -> dict:
    return {
        "status": record.status.value,
        "referral_code": record.core.referral_code or None,
        "document": to_document(record),
        "updated_at": record.core.updated_at,
    }


def _add_event(session: Session, event: BaseEvent) -> EventEnvelope:
    """Stage an audit row with the next per-entity sequence number."""
    current_max = session.execute(
        select(func.coalesce(func.max(AuditEventRow.seq), 0)).where(
            AuditEventRow.entity_id == event.entity_id
        )
    ).scalar()
    next_seq = (current_max or 0) + 1
    session.add(
        AuditEventRow(
            id=event.event_id,
            entity_id=event.entity_id,
            seq=next_seq,
            type=event.event_type,
            payload_json=event.model_dump(mode="json"),
            created_at=event.timestamp,
        )
    )
    return EventEnvelope(sequence_number=next_seq, stored_at=event.timestamp, event=event)


class BaseSQLAlchemyRepository:
    """Base SQLAlchemy repository implementation."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def _session(self) -> Session:
        return self._session_factory()


class SQLAlchemyRecordStore(BaseSQLAlchemyRepository, RecordStore):
    """SQLAlchemy implementation of RecordStore."""

    @staticmethod
    def _to_record(row: EntityRecordRow) -> EntityRecord:
        return from_document(EntityKind(row.kind), row.document, row.version)

    async def get(self, kind: EntityKind, entity_id: UUID) -> EntityRecord:
        kind = EntityKind(kind)
        try:
            with self._session() as session:
                row = session.get(EntityRecordRow, (entity_id, kind.value))
                if row is None:
                    raise NotFoundError(f"No {kind.value} with id {entity_id}")
                return self._to_record(row)
        except SQLAlchemyError as e:
            raise RecordStoreError(f"Failed to load {kind.value} {entity_id}: {e}") from e

    async def create_if_absent(
        self, record: EntityRecord, event: Optional[BaseEvent] = None
    ) -> EntityRecord:
        stored = with_core(record, version=1)
        context = {"operation": "create_if_absent", "entity_id": record.id}
        with self._session() as session:
            try:
                session.add(
                    EntityRecordRow(
                        id=stored.id,
                        kind=stored.kind.value,
                        owner_user_id=stored.core.owner_user_id,
                        version=1,
                        created_at=stored.core.created_at,
                        **_row_values(stored),
                    )
                )
                if event is not None:
                    _add_event(session, event)
                session.commit()
            except IntegrityError as e:
                session.rollback()
                raise to_conflict(e, context) from e
            except SQLAlchemyError as e:
                session.rollback()
                raise RecordStoreError(f"Failed to create record {record.id}: {e}") from e
        return stored

    @staticmethod
    def _stage_claim(session: Session, referred_id: UUID, referrer_id: UUID) -> None:
        link = session.get(ReferralLinkRow, referred_id)
        if link is None:
            session.add(ReferralLinkRow(referred_id=referred_id, referrer_id=referrer_id))
        elif link.referrer_id != referrer_id:
            raise ConflictError(
                f"Entity {referred_id} was already referred by {link.referrer_id}",
                retryable=False,
                referred_id=referred_id,
                referrer_id=link.referrer_id,
            )

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
        context = {"operation": "compare_and_update", "entity_id": entity_id}
        with self._session() as session:
            row = session.get(EntityRecordRow, (entity_id, kind.value))
            if row is None:
                raise NotFoundError(f"No {kind.value} with id {entity_id}")
            if row.version != expected_version:
                raise ConflictError(
                    f"{kind.value} {entity_id} changed concurrently "
                    f"(expected version {expected_version}, found {row.version})",
                    entity_id=entity_id,
                )

            updated = mutation(self._to_record(row))
            if updated.id != entity_id:
                raise ValueError("A mutation cannot change the record id")
            stored = with_core(updated, version=expected_version + 1)
            event = event_for(stored) if event_for is not None else None

            try:
                if referral_claim is not None:
                    self._stage_claim(session, referral_claim, entity_id)
                result = session.execute(
                    update(EntityRecordRow)
                    .where(
                        and_(
                            EntityRecordRow.id == entity_id,
                            EntityRecordRow.kind == kind.value,
                            EntityRecordRow.version == expected_version,
                        )
                    )
                    .values(version=expected_version + 1, **_row_values(stored))
                )
                if result.rowcount != 1:
                    session.rollback()
                    raise ConflictError(
                        f"{kind.value} {entity_id} changed concurrently",
                        entity_id=entity_id,
                    )
                if event is not None:
                    _add_event(session, event)
                session.commit()
            except IntegrityError as e:
                session.rollback()
                raise to_conflict(e, context) from e
            except SQLAlchemyError as e:
                session.rollback()
                raise RecordStoreError(f"Failed to update {kind.value} {entity_id}: {e}") from e
        return stored

    async def find_by_referral_code(self, kind: EntityKind, code: str) -> EntityRecord:
        kind = EntityKind(kind)
        with self._session() as session:
            row = session.execute(
                select(EntityRecordRow).where(
                    and_(
                        EntityRecordRow.kind == kind.value,
                        EntityRecordRow.referral_code == code,
                    )
                )
            ).scalar_one_or_none()
            if row is None:
                raise NotFoundError(f"No {kind.value} owns referral code '{code}'")
            return self._to_record(row)

    async def list_by_status(
        self, kind: EntityKind, status: EntityStatus, limit: int = 100, offset: int = 0
    ) -> List[EntityRecord]:
        kind = EntityKind(kind)
        with self._session() as session:
            rows = session.execute(
                select(EntityRecordRow)
                .where(
                    and_(
                        EntityRecordRow.kind == kind.value,
                        EntityRecordRow.status == EntityStatus(status).value,
                    )
                )
                .order_by(EntityRecordRow.created_at, EntityRecordRow.id)
                .limit(limit)
                .offset(offset)
            ).scalars().all()
            return [self._to_record(row) for row in rows]

    async def find_referrer_id(self, referred_id: UUID) -> Optional[UUID]:
        with self._session() as session:
            link = session.get(ReferralLinkRow, referred_id)
            return link.referrer_id if link else None


class SQLAlchemyAuditLog(BaseSQLAlchemyRepository, AuditLog):
    """SQLAlchemy implementation of AuditLog."""

    # Concurrent appends for one entity race on the sequence constraint
    max_append_attempts = 5

    async def append(self, event: BaseEvent) -> EventEnvelope:
        last_error: Optional[ConflictError] = None
        for _ in range(self.max_append_attempts):
            with self._session() as session:
                try:
                    envelope = _add_event(session, event)
                    session.commit()
                    return envelope
                except IntegrityError as e:
                    session.rollback()
                    last_error = to_conflict(
                        e, {"operation": "audit_append", "entity_id": event.entity_id}
                    )
                    logger.debug(f"Retrying audit append for {event.entity_id}: {last_error}")
        raise last_error

    async def list_for_entity(
        self, entity_id: UUID, event_types: Optional[List[str]] = None
    ) -> List[EventEnvelope]:
        query = select(AuditEventRow).where(AuditEventRow.entity_id == entity_id)
        if event_types:
            query = query.where(AuditEventRow.type.in_(event_types))
        with self._session() as session:
            rows = session.execute(query.order_by(AuditEventRow.seq)).scalars().all()
            return [
                EventEnvelope(
                    sequence_number=row.seq,
                    stored_at=row.created_at,
                    event=deserialize_event(row.type, row.payload_json),
                )
                for row in rows
            ]


def create_sqlalchemy_container(session_factory: sessionmaker) -> RepositoryContainer:
    """Repository container backed by SQLAlchemy sessions from ``session_factory``."""
    return RepositoryContainer(
        record_store=SQLAlchemyRecordStore(session_factory),
        audit_log=SQLAlchemyAuditLog(session_factory),
    )
