"""Domain event contracts recorded in the audit log.

Events are immutable and append-only. They carry the facts that do not fit
on the records themselves, such as who approved an entity or why it was
rejected.
"""

from abc import abstractmethod
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Optional, Type, Union
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from ..core.enums import EntityKind


class BaseEvent(BaseModel):
    """Base class for all domain events."""

    model_config = ConfigDict(frozen=True, extra="forbid", use_enum_values=True)

    event_id: UUID = Field(default_factory=uuid4)
    entity_id: UUID
    entity_kind: EntityKind
    actor_id: Optional[UUID] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    @abstractmethod
    def event_type(self) -> str:
        """Return the event type identifier."""
        pass


class EntitySubmittedEvent(BaseEvent):
    """A new entity was registered and awaits approval."""

    owner_user_id: UUID
    business_name: str

    @property
    def event_type(self) -> str:
        return "entity_submitted"


class EntityApprovedEvent(BaseEvent):
    """An entity was approved."""

    @property
    def event_type(self) -> str:
        return "entity_approved"


class EntityRejectedEvent(BaseEvent):
    """An entity was rejected."""

    reason: str

    @property
    def event_type(self) -> str:
        return "entity_rejected"


class ProfileUpdatedEvent(BaseEvent):
    """The owner changed profile fields."""

    fields: list[str]

    @property
    def event_type(self) -> str:
        return "profile_updated"


class ReferralCodeIssuedEvent(BaseEvent):
    """A referral code was assigned to an entity."""

    referral_code: str

    @property
    def event_type(self) -> str:
        return "referral_code_issued"


class ReferralRegisteredEvent(BaseEvent):
    """A new entity registered through the wholesaler's referral code."""

    referred_id: UUID
    referral_code: str
    points_awarded: int

    @property
    def event_type(self) -> str:
        return "referral_registered"


class BalanceSettledEvent(BaseEvent):
    """A settlement was applied to the wholesaler balance."""

    delta: Decimal
    balance_after: Decimal

    @property
    def event_type(self) -> str:
        return "balance_settled"


class PointsAdjustedEvent(BaseEvent):
    """Points were corrected by an administrator."""

    delta: int
    points_after: int
    reason: str

    @property
    def event_type(self) -> str:
        return "points_adjusted"


DomainEvent = Union[
    EntitySubmittedEvent,
    EntityApprovedEvent,
    EntityRejectedEvent,
    ProfileUpdatedEvent,
    ReferralCodeIssuedEvent,
    ReferralRegisteredEvent,
    BalanceSettledEvent,
    PointsAdjustedEvent,
]

EVENT_CLASS_MAP: Dict[str, Type[BaseEvent]] = {
    "entity_submitted": EntitySubmittedEvent,
    "entity_approved": EntityApprovedEvent,
    "entity_rejected": EntityRejectedEvent,
    "profile_updated": ProfileUpdatedEvent,
    "referral_code_issued": ReferralCodeIssuedEvent,
    "referral_registered": ReferralRegisteredEvent,
    "balance_settled": BalanceSettledEvent,
    "points_adjusted": PointsAdjustedEvent,
}


class EventEnvelope(BaseModel):
    """Audit log envelope containing an event with its per-entity sequence."""

    model_config = ConfigDict(frozen=True)

    sequence_number: int = Field(..., description="Sequence within the entity")
    stored_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    event: DomainEvent

    @property
    def event_type(self) -> str:
        return self.event.event_type

    @property
    def entity_id(self) -> UUID:
        return self.event.entity_id


def deserialize_event(event_type: str, payload: dict) -> BaseEvent:
    event_class = EVENT_CLASS_MAP.get(event_type)
    if event_class is None:
        raise ValueError(f"Unknown event type: {event_type}")
    return event_class.model_validate(payload)
