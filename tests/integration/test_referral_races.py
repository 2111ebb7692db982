"""Concurrent referral registrations and balance settlements.

Validates the referral-uniqueness invariant, replay idempotency and the
non-negative balance under real thread contention on both backends.
"""

import asyncio
from decimal import Decimal
from uuid import uuid4

import pytest

from barrim_registry.core.enums import EntityKind
from barrim_registry.core.exceptions import ConflictError, InsufficientFundsError
from tests.helpers.builders import approved_wholesaler, make_provider
from tests.helpers.concurrency import async_worker, run_in_threads


def fail_on_errors(errors):
    for i, error in enumerate(errors):
        if error:
            pytest.fail(f"Thread {i} failed: {error!r}")


class TestReferralRaces:
    """Test referral registration under contention."""

    @pytest.mark.integration
    @pytest.mark.concurrency
    def test_two_referrers_race_for_one_entity(self, race_registry, barrier_factory):
        """Test that an entity ends up in exactly one referrer's set."""
        registry = race_registry
        approver = uuid4()
        acme = asyncio.run(approved_wholesaler(registry, approver, code="ACME1"))
        beta = asyncio.run(
            approved_wholesaler(registry, approver, code="BETA2", business_name="Beta")
        )
        referred = asyncio.run(registry.registration.submit(make_provider()))
        barrier = barrier_factory(2)
        results = [None, None]

        workers = [
            async_worker(
                lambda code=code: registry.referrals.register_with_referral(referred, code),
                results, i, barrier,
            )
            for i, code in enumerate(["ACME1", "BETA2"])
        ]

        errors = run_in_threads(workers, join_timeout=15.0)

        assert sum(error is None for error in errors) == 1
        assert any(isinstance(error, ConflictError) for error in errors)

        holders = []
        for wholesaler_id in (acme.id, beta.id):
            current = asyncio.run(
                registry.registration.get(EntityKind.WHOLESALER, wholesaler_id)
            )
            if referred.id in current.referrals:
                holders.append(current)
        assert len(holders) == 1
        assert holders[0].points == 1
        referrer = asyncio.run(registry.referrals.find_referrer(referred.id))
        assert referrer.id == holders[0].id

    @pytest.mark.integration
    @pytest.mark.concurrency
    def test_concurrent_replays_credit_once(self, race_registry, barrier_factory):
        """Test that replaying one registration concurrently awards points once."""
        registry = race_registry
        acme = asyncio.run(approved_wholesaler(registry, uuid4(), code="ACME1"))
        referred = asyncio.run(registry.registration.submit(make_provider()))
        workers_count = 4
        barrier = barrier_factory(workers_count)
        results = [None] * workers_count

        workers = [
            async_worker(
                lambda: registry.referrals.register_with_referral(referred, "ACME1"),
                results, i, barrier,
            )
            for i in range(workers_count)
        ]

        fail_on_errors(run_in_threads(workers, join_timeout=15.0))

        final = asyncio.run(registry.registration.get(EntityKind.WHOLESALER, acme.id))
        assert final.points == 1
        assert final.referrals == frozenset({referred.id})

    @pytest.mark.integration
    @pytest.mark.concurrency
    def test_distinct_referrals_all_counted(self, race_registry, barrier_factory):
        """Test that concurrent referrals of different entities are all credited."""
        registry = race_registry
        acme = asyncio.run(approved_wholesaler(registry, uuid4(), code="ACME1"))
        workers_count = 5
        referred = [
            asyncio.run(registry.registration.submit(make_provider(business_name=f"P{i}")))
            for i in range(workers_count)
        ]
        barrier = barrier_factory(workers_count)
        results = [None] * workers_count

        workers = [
            async_worker(
                lambda entity=entity: registry.referrals.register_with_referral(entity, "ACME1"),
                results, i, barrier,
            )
            for i, entity in enumerate(referred)
        ]

        fail_on_errors(run_in_threads(workers, join_timeout=20.0))

        final = asyncio.run(registry.registration.get(EntityKind.WHOLESALER, acme.id))
        assert final.points == workers_count
        assert final.referrals == frozenset(entity.id for entity in referred)


class TestBalanceRaces:
    """Test balance settlement under contention."""

    @pytest.mark.integration
    @pytest.mark.concurrency
    def test_concurrent_credits_all_applied(self, race_registry, barrier_factory):
        """Test that no concurrent credit is lost."""
        registry = race_registry
        acme = asyncio.run(approved_wholesaler(registry, uuid4()))
        workers_count = 5
        barrier = barrier_factory(workers_count)
        results = [None] * workers_count

        workers = [
            async_worker(
                lambda: registry.referrals.settle_balance(acme.id, "1.10"),
                results, i, barrier,
            )
            for i in range(workers_count)
        ]

        fail_on_errors(run_in_threads(workers, join_timeout=20.0))

        final = asyncio.run(registry.registration.get(EntityKind.WHOLESALER, acme.id))
        assert final.balance == Decimal("5.50")

    @pytest.mark.integration
    @pytest.mark.concurrency
    def test_concurrent_debits_never_overdraw(self, race_registry, barrier_factory):
        """Test that racing debits stop exactly at zero."""
        registry = race_registry
        acme = asyncio.run(approved_wholesaler(registry, uuid4()))
        asyncio.run(registry.referrals.settle_balance(acme.id, 3))
        workers_count = 5
        barrier = barrier_factory(workers_count)
        results = [None] * workers_count

        workers = [
            async_worker(
                lambda: registry.referrals.settle_balance(acme.id, -1),
                results, i, barrier,
            )
            for i in range(workers_count)
        ]

        errors = run_in_threads(workers, join_timeout=20.0)

        assert sum(error is None for error in errors) == 3
        assert all(
            isinstance(error, InsufficientFundsError) for error in errors if error is not None
        )
        final = asyncio.run(registry.registration.get(EntityKind.WHOLESALER, acme.id))
        assert final.balance == Decimal("0")
