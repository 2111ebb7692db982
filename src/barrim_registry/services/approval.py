"""Approval workflow: moves pending records to approved or rejected."""

from typing import List, Optional
from uuid import UUID

from ..core.enums import EntityKind, EntityStatus
from ..core.exceptions import InvalidTransitionError, ValidationError
from ..domain import rules
from ..domain.entities import EntityRecord
from ..domain.events import EntityApprovedEvent, EntityRejectedEvent
from ..repositories.interfaces import EventBuilder
from .base import RegistryService


class ApprovalService(RegistryService):
    """
    Applies the approval state machine through the record store.

    Two concurrent decisions on the same record resolve to one winner: the
    loser's compare-and-update fails, the record is re-read, and the
    transition check on the fresh state raises InvalidTransitionError.
    """

    async def _decide(
        self,
        kind: EntityKind,
        entity_id: UUID,
        target: EntityStatus,
        event_for: EventBuilder,
    ) -> EntityRecord:
        def build_mutation(current: EntityRecord):
            if not rules.can_transition(current.status, target):
                raise InvalidTransitionError(entity_id, current.status.value, target.value)
            now = self.clock.now()
            return lambda latest: rules.transition(latest, target, now)

        return await self._update(
            EntityKind(kind), entity_id, build_mutation, event_for=event_for
        )

    async def approve(
        self, kind: EntityKind, entity_id: UUID, approver_id: UUID
    ) -> EntityRecord:
        """
        Approve a pending record.

        Raises:
            NotFoundError: if the record does not exist
            InvalidTransitionError: if the record is not pending
        """
        self._require_actor(approver_id, "approverId")
        def event_for(updated: EntityRecord) -> EntityApprovedEvent:
            return EntityApprovedEvent(
                entity_id=entity_id,
                entity_kind=updated.kind,
                actor_id=approver_id,
                timestamp=updated.core.updated_at,
            )

        try:
            record = await self._decide(kind, entity_id, EntityStatus.APPROVED, event_for)
        except InvalidTransitionError as e:
            self.logger.warning(f"Approval of {entity_id} refused: {e}")
            raise

        self.logger.info(f"{record.kind.value} {entity_id} approved by {approver_id}")
        return record

    async def reject(
        self, kind: EntityKind, entity_id: UUID, approver_id: UUID, reason: str
    ) -> EntityRecord:
        """
        Reject a pending record. Rejection is terminal.

        Raises:
            ValidationError: if no reason is given
            NotFoundError: if the record does not exist
            InvalidTransitionError: if the record is not pending
        """
        self._require_actor(approver_id, "approverId")
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("A rejection reason is required", field="reason")

        def event_for(updated: EntityRecord) -> EntityRejectedEvent:
            return EntityRejectedEvent(
                entity_id=entity_id,
                entity_kind=updated.kind,
                actor_id=approver_id,
                timestamp=updated.core.updated_at,
                reason=reason,
            )

        try:
            record = await self._decide(kind, entity_id, EntityStatus.REJECTED, event_for)
        except InvalidTransitionError as e:
            self.logger.warning(f"Rejection of {entity_id} refused: {e}")
            raise

        self.logger.info(f"{record.kind.value} {entity_id} rejected by {approver_id}: {reason}")
        return record

    async def list_pending(
        self, kind: EntityKind, limit: int = 100, offset: int = 0
    ) -> List[EntityRecord]:
        """Approval queue, oldest submission first."""
        return await self.repos.records.list_by_status(
            EntityKind(kind), EntityStatus.PENDING, limit=limit, offset=offset
        )

    async def rejection_reason(self, entity_id: UUID) -> Optional[str]:
        """Reason recorded for a rejected entity, if any."""
        envelopes = await self.repos.audit.list_for_entity(
            entity_id, event_types=["entity_rejected"]
        )
        return envelopes[-1].event.reason if envelopes else None
