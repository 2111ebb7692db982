"""SQLAlchemy models for the registry document store."""

from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import (
    CHAR,
    JSON,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.types import TypeDecorator

from .database import Base


class GUID(TypeDecorator):
    """Platform-independent GUID type using String for SQLite."""

    impl = CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PG_UUID())
        else:
            return dialect.type_descriptor(CHAR(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        return str(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if not isinstance(value, UUID):
            return UUID(str(value))
        return value


class EntityRecordRow(Base):
    """One service provider or wholesaler document.

    Status, referral code and owner are copied out of the document so they
    can be indexed and constrained.
    """

    __tablename__ = "entity_records"

    id = Column(GUID(), primary_key=True)
    kind = Column(String(32), primary_key=True)
    status = Column(String(16), nullable=False)
    referral_code = Column(String(64), nullable=True)
    owner_user_id = Column(GUID(), nullable=False)
    version = Column(Integer, nullable=False, default=1)
    document = Column(JSON, nullable=False)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        UniqueConstraint("kind", "referral_code", name="uq_entity_referral_code"),
        Index("ix_entity_kind_status_created", "kind", "status", "created_at"),
        Index("ix_entity_owner", "owner_user_id"),
    )

    def __repr__(self) -> str:
        return f"<EntityRecordRow(id={self.id}, kind='{self.kind}', status='{self.status}', v{self.version})>"


class ReferralLinkRow(Base):
    """Unique index enforcing one referrer per referred entity."""

    __tablename__ = "referral_links"

    referred_id = Column(GUID(), primary_key=True)
    referrer_id = Column(GUID(), nullable=False)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (Index("ix_referral_links_referrer", "referrer_id"),)

    def __repr__(self) -> str:
        return f"<ReferralLinkRow(referred={self.referred_id}, referrer={self.referrer_id})>"


class AuditEventRow(Base):
    """Append-only audit event with a per-entity sequence number."""

    __tablename__ = "audit_events"

    id = Column(GUID(), primary_key=True)
    entity_id = Column(GUID(), nullable=False)
    seq = Column(Integer, nullable=False)
    type = Column(String(64), nullable=False)
    payload_json = Column(JSON, nullable=False)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        UniqueConstraint("entity_id", "seq", name="uq_audit_entity_seq"),
        Index("ix_audit_entity_type", "entity_id", "type"),
    )

    def __repr__(self) -> str:
        return f"<AuditEventRow(entity={self.entity_id}, seq={self.seq}, type='{self.type}')>"
