"""Enums for the Barrim registry."""

from enum import Enum


class EntityKind(str, Enum):
    """Kinds of persisted business entities."""

    SERVICE_PROVIDER = "service_provider"
    WHOLESALER = "wholesaler"


class EntityStatus(str, Enum):
    """Approval status of an entity record."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self is not EntityStatus.PENDING
