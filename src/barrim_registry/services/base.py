"""Shared plumbing for the registry services."""

from typing import Callable, Optional
from uuid import UUID

from ..config import LedgerConfig, get_config
from ..core.enums import EntityKind
from ..core.exceptions import ConflictError, ValidationError
from ..core.providers import Clock, IdGenerator, RandomIdGenerator, SystemClock
from ..domain.entities import EntityRecord
from ..repositories.interfaces import EventBuilder, RepositoryContainer
from ..utils.logging_config import get_logger


class RegistryService:
    """Base class wiring repositories, clock, id generator and ledger policy."""

    def __init__(
        self,
        repos: RepositoryContainer,
        clock: Optional[Clock] = None,
        ids: Optional[IdGenerator] = None,
        ledger: Optional[LedgerConfig] = None,
    ):
        self.repos = repos
        self.ledger = ledger or get_config().ledger
        self.clock = clock or SystemClock()
        self.ids = ids or RandomIdGenerator(self.ledger.referral_code_length)
        self.logger = get_logger(type(self).__module__)

    async def _update(
        self,
        kind: EntityKind,
        entity_id: UUID,
        build_mutation: Callable[[EntityRecord], Callable[[EntityRecord], EntityRecord]],
        event_for: Optional[EventBuilder] = None,
        referral_claim: Optional[UUID] = None,
    ) -> EntityRecord:
        """
        Read-check-write loop over ``compare_and_update``.

        ``build_mutation`` receives the freshly read record, so it can run
        precondition checks on the latest state before each attempt. The audit
        event from ``event_for`` and the optional referral claim commit with
        the record. Retryable conflicts are retried up to
        ``ledger.max_update_attempts`` times.
        """
        attempts = max(1, self.ledger.max_update_attempts)
        for attempt in range(1, attempts + 1):
            current = await self.repos.records.get(kind, entity_id)
            mutation = build_mutation(current)
            try:
                return await self.repos.records.compare_and_update(
                    kind,
                    entity_id,
                    current.core.version,
                    mutation,
                    event_for=event_for,
                    referral_claim=referral_claim,
                )
            except ConflictError as e:
                if not e.retryable:
                    raise
                if attempt == attempts:
                    self.logger.warning(
                        f"Giving up on {kind.value} {entity_id} after {attempts} conflicting updates"
                    )
                    raise
                self.logger.debug(f"Retrying update of {entity_id} after conflict: {e}")
        raise AssertionError("unreachable")

    @staticmethod
    def _require_actor(actor_id: Optional[UUID], field: str) -> UUID:
        if actor_id is None:
            raise ValidationError(f"{field} is required", field=field)
        return actor_id
