"""Concurrent approval decisions.

Two administrators acting on the same pending record at the same moment must
produce exactly one decision; the loser sees InvalidTransitionError computed
against the winner's state.
"""

import asyncio
from uuid import uuid4

import pytest

from barrim_registry.core.enums import EntityKind, EntityStatus
from barrim_registry.core.exceptions import InvalidTransitionError
from tests.helpers.builders import make_provider
from tests.helpers.concurrency import async_worker, run_in_threads


class TestApprovalRaces:
    """Test that concurrent decisions resolve to a single winner."""

    @pytest.mark.integration
    @pytest.mark.concurrency
    def test_approve_and_reject_race(self, race_registry, barrier_factory):
        """Test that an approval racing a rejection leaves exactly one decision."""
        registry = race_registry
        submitted = asyncio.run(registry.registration.submit(make_provider()))
        barrier = barrier_factory(2)
        results = [None, None]

        workers = [
            async_worker(
                lambda: registry.approval.approve(
                    EntityKind.SERVICE_PROVIDER, submitted.id, uuid4()
                ),
                results, 0, barrier,
            ),
            async_worker(
                lambda: registry.approval.reject(
                    EntityKind.SERVICE_PROVIDER, submitted.id, uuid4(), "Duplicate"
                ),
                results, 1, barrier,
            ),
        ]

        errors = run_in_threads(workers, join_timeout=15.0)

        assert sum(error is None for error in errors) == 1
        loser = next(error for error in errors if error is not None)
        assert isinstance(loser, InvalidTransitionError)

        winner = next(result for result in results if result is not None)
        final = asyncio.run(registry.registration.get(EntityKind.SERVICE_PROVIDER, submitted.id))
        assert final.status is winner.status
        assert final.status in (EntityStatus.APPROVED, EntityStatus.REJECTED)
        assert final.core.version == 2

        decisions = asyncio.run(
            registry.repos.audit.list_for_entity(
                submitted.id, event_types=["entity_approved", "entity_rejected"]
            )
        )
        assert len(decisions) == 1

    @pytest.mark.integration
    @pytest.mark.concurrency
    def test_many_approvers_one_winner(self, race_registry, barrier_factory):
        """Test that concurrent approvals of one record succeed exactly once."""
        registry = race_registry
        submitted = asyncio.run(registry.registration.submit(make_provider()))
        workers_count = 4
        barrier = barrier_factory(workers_count)
        results = [None] * workers_count

        workers = [
            async_worker(
                lambda: registry.approval.approve(
                    EntityKind.SERVICE_PROVIDER, submitted.id, uuid4()
                ),
                results, i, barrier,
            )
            for i in range(workers_count)
        ]

        errors = run_in_threads(workers, join_timeout=15.0)

        assert sum(error is None for error in errors) == 1
        assert all(
            isinstance(error, InvalidTransitionError) for error in errors if error is not None
        )
