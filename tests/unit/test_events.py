"""Unit tests for audit events."""

from decimal import Decimal
from uuid import uuid4

import pytest

from barrim_registry.core.enums import EntityKind
from barrim_registry.domain.events import (
    BalanceSettledEvent,
    EntityRejectedEvent,
    deserialize_event,
)


@pytest.mark.unit
class TestEvents:
    """Test event types and payload restoration."""

    def test_deserialize_rejection(self):
        event = EntityRejectedEvent(
            entity_id=uuid4(),
            entity_kind=EntityKind.SERVICE_PROVIDER,
            actor_id=uuid4(),
            reason="Duplicate listing",
        )

        restored = deserialize_event(event.event_type, event.model_dump(mode="json"))

        assert restored == event
        assert restored.event_type == "entity_rejected"

    def test_decimal_payload(self):
        event = BalanceSettledEvent(
            entity_id=uuid4(),
            entity_kind=EntityKind.WHOLESALER,
            delta=Decimal("-2.50"),
            balance_after=Decimal("7.50"),
        )

        restored = deserialize_event("balance_settled", event.model_dump(mode="json"))

        assert restored.balance_after == Decimal("7.50")

    def test_unknown_event_type(self):
        with pytest.raises(ValueError):
            deserialize_event("entity_deleted", {})

    def test_events_are_immutable(self):
        event = EntityRejectedEvent(
            entity_id=uuid4(), entity_kind=EntityKind.WHOLESALER, reason="x"
        )
        with pytest.raises(Exception):
            event.reason = "y"
