"""Unit tests for the in-memory record store and audit log."""

from datetime import datetime, timezone
from uuid import uuid4

import pytest

from barrim_registry.core.enums import EntityKind, EntityStatus
from barrim_registry.core.exceptions import ConflictError, NotFoundError
from barrim_registry.domain import rules
from barrim_registry.domain.entities import with_core
from barrim_registry.domain.events import EntityApprovedEvent
from barrim_registry.repositories.memory_impl import (
    MemoryAuditLog,
    MemoryRecordStore,
    create_memory_container,
)
from tests.helpers.builders import make_wholesaler

NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


def prepared_wholesaler(**fields):
    return rules.prepare_submission(make_wholesaler(**fields), uuid4(), uuid4(), NOW)


@pytest.mark.unit
class TestMemoryRecordStore:
    """Test compare-and-update and the uniqueness indexes."""

    def setup_method(self):
        self.store = MemoryRecordStore()

    @pytest.mark.asyncio
    async def test_create_sets_version_one(self):
        stored = await self.store.create_if_absent(prepared_wholesaler())
        assert stored.core.version == 1
        assert (await self.store.get(EntityKind.WHOLESALER, stored.id)) == stored

    @pytest.mark.asyncio
    async def test_create_twice_conflicts(self):
        record = prepared_wholesaler()
        await self.store.create_if_absent(record)
        with pytest.raises(ConflictError):
            await self.store.create_if_absent(record)

    @pytest.mark.asyncio
    async def test_compare_and_update_bumps_version(self):
        stored = await self.store.create_if_absent(prepared_wholesaler())

        updated = await self.store.compare_and_update(
            EntityKind.WHOLESALER,
            stored.id,
            1,
            lambda current: rules.transition(current, EntityStatus.APPROVED, NOW),
        )

        assert updated.core.version == 2
        assert updated.status is EntityStatus.APPROVED

    @pytest.mark.asyncio
    async def test_stale_version_conflicts_without_applying(self):
        stored = await self.store.create_if_absent(prepared_wholesaler())
        calls = []

        with pytest.raises(ConflictError):
            await self.store.compare_and_update(
                EntityKind.WHOLESALER, stored.id, 0, lambda current: calls.append(1) or current
            )

        assert calls == []
        assert (await self.store.get(EntityKind.WHOLESALER, stored.id)).core.version == 1

    @pytest.mark.asyncio
    async def test_mutation_error_writes_nothing(self):
        stored = await self.store.create_if_absent(prepared_wholesaler())

        with pytest.raises(Exception):
            await self.store.compare_and_update(
                EntityKind.WHOLESALER,
                stored.id,
                1,
                lambda current: rules.apply_settlement(current, -1, NOW),
            )

        assert (await self.store.get(EntityKind.WHOLESALER, stored.id)) == stored

    @pytest.mark.asyncio
    async def test_missing_record(self):
        with pytest.raises(NotFoundError):
            await self.store.get(EntityKind.WHOLESALER, uuid4())
        with pytest.raises(NotFoundError):
            await self.store.compare_and_update(EntityKind.WHOLESALER, uuid4(), 1, lambda r: r)

    @pytest.mark.asyncio
    async def test_referral_code_unique_per_kind(self):
        first = await self.store.create_if_absent(prepared_wholesaler())
        second = await self.store.create_if_absent(prepared_wholesaler())
        await self.store.compare_and_update(
            EntityKind.WHOLESALER,
            first.id,
            1,
            lambda current: rules.assign_referral_code(current, "ACME1", NOW),
        )

        with pytest.raises(ConflictError):
            await self.store.compare_and_update(
                EntityKind.WHOLESALER,
                second.id,
                1,
                lambda current: rules.assign_referral_code(current, "ACME1", NOW),
            )

        owner = await self.store.find_by_referral_code(EntityKind.WHOLESALER, "ACME1")
        assert owner.id == first.id
        with pytest.raises(NotFoundError):
            await self.store.find_by_referral_code(EntityKind.SERVICE_PROVIDER, "ACME1")

    @pytest.mark.asyncio
    async def test_create_with_taken_code_conflicts(self):
        await self.store.create_if_absent(
            with_core(prepared_wholesaler(), referral_code="ACME1")
        )
        with pytest.raises(ConflictError):
            await self.store.create_if_absent(
                with_core(prepared_wholesaler(), referral_code="ACME1")
            )

    @pytest.mark.asyncio
    async def test_referral_claim_commits_with_update(self):
        referrer = await self.store.create_if_absent(prepared_wholesaler())
        other = await self.store.create_if_absent(prepared_wholesaler(business_name="Beta"))
        referred = uuid4()

        await self.store.compare_and_update(
            EntityKind.WHOLESALER, referrer.id, 1, lambda r: r, referral_claim=referred
        )
        assert await self.store.find_referrer_id(referred) == referrer.id

        # Same referrer again is accepted
        await self.store.compare_and_update(
            EntityKind.WHOLESALER, referrer.id, 2, lambda r: r, referral_claim=referred
        )

        with pytest.raises(ConflictError) as exc_info:
            await self.store.compare_and_update(
                EntityKind.WHOLESALER, other.id, 1, lambda r: r, referral_claim=referred
            )
        assert exc_info.value.retryable is False
        assert (await self.store.get(EntityKind.WHOLESALER, other.id)).core.version == 1
        assert await self.store.find_referrer_id(referred) == referrer.id

    @pytest.mark.asyncio
    async def test_failed_update_writes_no_claim_or_event(self):
        stored = await self.store.create_if_absent(prepared_wholesaler())
        referred = uuid4()

        def failing_event(updated):
            raise RuntimeError("event rendering failed")

        with pytest.raises(RuntimeError):
            await self.store.compare_and_update(
                EntityKind.WHOLESALER,
                stored.id,
                1,
                lambda r: r,
                event_for=failing_event,
                referral_claim=referred,
            )

        assert (await self.store.get(EntityKind.WHOLESALER, stored.id)).core.version == 1
        assert await self.store.find_referrer_id(referred) is None
        assert await self.store.audit_log.list_for_entity(stored.id) == []

    @pytest.mark.asyncio
    async def test_events_are_written_with_records(self):
        record = prepared_wholesaler()
        stored = await self.store.create_if_absent(
            record,
            event=EntityApprovedEvent(entity_id=record.id, entity_kind=EntityKind.WHOLESALER),
        )

        await self.store.compare_and_update(
            EntityKind.WHOLESALER,
            stored.id,
            1,
            lambda r: r,
            event_for=lambda updated: EntityApprovedEvent(
                entity_id=updated.id, entity_kind=updated.kind
            ),
        )
        await self.store.compare_and_update(
            EntityKind.WHOLESALER, stored.id, 2, lambda r: r, event_for=lambda updated: None
        )

        envelopes = await self.store.audit_log.list_for_entity(stored.id)
        assert [e.sequence_number for e in envelopes] == [1, 2]

    def test_container_shares_audit_log(self):
        container = create_memory_container()
        assert container.records.audit_log is container.audit


@pytest.mark.unit
class TestMemoryAuditLog:
    """Test per-entity sequencing of audit events."""

    @pytest.mark.asyncio
    async def test_sequence_per_entity(self):
        audit = MemoryAuditLog()
        first, second = uuid4(), uuid4()

        envelopes = [
            await audit.append(
                EntityApprovedEvent(entity_id=entity_id, entity_kind=EntityKind.WHOLESALER)
            )
            for entity_id in (first, first, second)
        ]

        assert [e.sequence_number for e in envelopes] == [1, 2, 1]
        assert len(await audit.list_for_entity(first)) == 2
        assert await audit.list_for_entity(first, event_types=["entity_rejected"]) == []
