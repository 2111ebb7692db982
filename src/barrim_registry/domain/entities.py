"""Entity records: service providers and wholesalers.

Both kinds embed the same :class:`EntityCore` by composition and add their
kind-specific fields alongside it. Records are immutable; every mutation
produces a new copy (see ``domain.rules``).

Records serialize to the flat camelCase document shape used by the mobile
clients (``_id``, ``userId``, ``businessName`` ...), with empty optional
fields omitted.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, ClassVar, Dict, FrozenSet, Optional, Tuple, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_serializer
from pydantic.alias_generators import to_camel

from ..core.enums import EntityKind, EntityStatus
from .values import Branch, ContactInfo, SocialMedia


class RecordModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
        str_strip_whitespace=True,
    )


class EntityCore(RecordModel):
    """Identity, ownership, contact and approval status shared by all kinds."""

    id: Optional[UUID] = Field(default=None, alias="_id")
    owner_user_id: Optional[UUID] = Field(default=None, alias="userId")
    business_name: str = ""
    category: str = ""
    contact_info: ContactInfo = Field(default_factory=ContactInfo)
    logo_url: Optional[str] = None
    referral_code: Optional[str] = None
    created_by: Optional[UUID] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    status: EntityStatus = EntityStatus.PENDING

    # Store metadata, never part of the document
    version: int = Field(default=0, exclude=True)


class ServiceProvider(RecordModel):
    """A service provider listing."""

    kind: ClassVar[EntityKind] = EntityKind.SERVICE_PROVIDER

    core: EntityCore

    @property
    def id(self) -> Optional[UUID]:
        return self.core.id

    @property
    def status(self) -> EntityStatus:
        return self.core.status


class Wholesaler(RecordModel):
    """A wholesaler with its referral ledger and branches."""

    kind: ClassVar[EntityKind] = EntityKind.WHOLESALER

    core: EntityCore
    phone: str = ""
    sub_category: str = ""
    additional_phones: Tuple[str, ...] = ()
    additional_emails: Tuple[str, ...] = ()
    referrals: FrozenSet[UUID] = frozenset()
    points: int = Field(default=0, ge=0)
    balance: Decimal = Decimal("0")
    social_media: Optional[SocialMedia] = None
    branches: Tuple[Branch, ...] = ()

    @property
    def id(self) -> Optional[UUID]:
        return self.core.id

    @property
    def status(self) -> EntityStatus:
        return self.core.status

    @field_serializer("referrals")
    def _serialize_referrals(self, referrals: FrozenSet[UUID], info):
        ordered = sorted(referrals, key=str)
        if info.mode_is_json():
            return [str(referred_id) for referred_id in ordered]
        return ordered


EntityRecord = Union[ServiceProvider, Wholesaler]

RECORD_TYPES: Dict[EntityKind, type] = {
    EntityKind.SERVICE_PROVIDER: ServiceProvider,
    EntityKind.WHOLESALER: Wholesaler,
}

# Document keys dropped when empty
OMIT_EMPTY = {
    "_id",
    "logoUrl",
    "referralCode",
    "subCategory",
    "additionalPhones",
    "additionalEmails",
    "referrals",
    "socialMedia",
    "branches",
}


def record_type(kind: EntityKind) -> type:
    return RECORD_TYPES[EntityKind(kind)]


def to_document(record: EntityRecord) -> Dict[str, Any]:
    """Flatten a record into its JSON document."""
    document = record.core.model_dump(mode="json", by_alias=True)
    extra = record.model_dump(mode="json", by_alias=True, exclude={"core"})
    document.update(extra)
    return {
        key: value
        for key, value in document.items()
        if not (key in OMIT_EMPTY and value in (None, "", [], {}))
    }


def from_document(
    kind: EntityKind, document: Dict[str, Any], version: int = 0
) -> EntityRecord:
    """Rebuild a record from its JSON document and store version."""
    core = EntityCore.model_validate({**document, "version": version})
    return record_type(kind).model_validate({**document, "core": core})


def with_core(record: EntityRecord, **changes: Any) -> EntityRecord:
    """Return a copy of ``record`` with fields of its core replaced."""
    return record.model_copy(update={"core": record.core.model_copy(update=changes)})
