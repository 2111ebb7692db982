"""Registration of new entities and owner-driven profile maintenance."""

from typing import Any, Mapping, Optional
from uuid import UUID

from ..core.enums import EntityKind
from ..core.exceptions import PermissionDeniedError, ValidationError
from ..domain import rules
from ..domain.entities import EntityRecord, Wholesaler
from ..domain.events import EntitySubmittedEvent, ProfileUpdatedEvent
from ..domain.values import Branch, find_duplicate_branches
from .base import RegistryService


class RegistrationService(RegistryService):
    """Creates records in pending status and applies owner edits."""

    async def submit(
        self, record: EntityRecord, created_by: Optional[UUID] = None
    ) -> EntityRecord:
        """
        Register a new service provider or wholesaler.

        The id, timestamps and pending status are assigned here; whatever the
        caller put in those fields is ignored. ``created_by`` defaults to the
        owner (self-registration).

        Raises:
            ValidationError: for missing business name, owner, phone or
                contact channel; nothing is persisted
            ConflictError: if the generated id or the referral code is taken
        """
        if record.core.owner_user_id is None:
            raise ValidationError("Owner user id is required", field="userId")

        prepared = rules.prepare_submission(
            record,
            entity_id=self.ids.new_id(),
            created_by=created_by or record.core.owner_user_id,
            now=self.clock.now(),
        )
        stored = await self.repos.records.create_if_absent(
            prepared,
            event=EntitySubmittedEvent(
                entity_id=prepared.id,
                entity_kind=prepared.kind,
                actor_id=prepared.core.created_by,
                timestamp=prepared.core.created_at,
                owner_user_id=prepared.core.owner_user_id,
                business_name=prepared.core.business_name,
            ),
        )
        self.logger.info(
            f"{stored.kind.value} {stored.id} '{stored.core.business_name}' submitted "
            f"by {stored.core.created_by}"
        )
        return stored

    async def get(self, kind: EntityKind, entity_id: UUID) -> EntityRecord:
        return await self.repos.records.get(EntityKind(kind), entity_id)

    def _require_owner(self, record: EntityRecord, actor_id: UUID) -> None:
        if record.core.owner_user_id != actor_id:
            raise PermissionDeniedError(
                f"User {actor_id} does not own {record.kind.value} {record.id}",
                entity_id=record.id,
                actor_id=actor_id,
            )

    async def update_profile(
        self,
        kind: EntityKind,
        entity_id: UUID,
        actor_id: UUID,
        changes: Mapping[str, Any],
    ) -> EntityRecord:
        """
        Apply owner edits to profile and contact fields.

        Raises:
            PermissionDeniedError: if ``actor_id`` is not the owner
            ValidationError: for non-profile fields or an invalid result
        """
        self._require_actor(actor_id, "actorId")

        def build_mutation(current: EntityRecord):
            self._require_owner(current, actor_id)
            now = self.clock.now()
            return lambda latest: rules.apply_profile_changes(latest, changes, now)

        def event_for(updated: EntityRecord) -> ProfileUpdatedEvent:
            return ProfileUpdatedEvent(
                entity_id=entity_id,
                entity_kind=updated.kind,
                actor_id=actor_id,
                timestamp=updated.core.updated_at,
                fields=sorted(changes),
            )

        try:
            record = await self._update(
                EntityKind(kind), entity_id, build_mutation, event_for=event_for
            )
        except PermissionDeniedError as e:
            self.logger.warning(f"Profile update refused: {e}")
            raise

        self.logger.info(f"Profile of {entity_id} updated: {', '.join(sorted(changes))}")
        return record

    async def add_branch(
        self, entity_id: UUID, actor_id: UUID, branch: Branch
    ) -> Wholesaler:
        """
        Append a branch to a wholesaler.

        Branches sharing an address are kept; they are reported in the log so
        the owner can be offered a merge.
        """
        self._require_actor(actor_id, "actorId")

        def build_mutation(current: EntityRecord):
            self._require_owner(current, actor_id)
            now = self.clock.now()
            return lambda latest: rules.append_branch(latest, branch, now)

        def event_for(updated: EntityRecord) -> ProfileUpdatedEvent:
            return ProfileUpdatedEvent(
                entity_id=entity_id,
                entity_kind=EntityKind.WHOLESALER,
                actor_id=actor_id,
                timestamp=updated.core.updated_at,
                fields=["branches"],
            )

        wholesaler = await self._update(
            EntityKind.WHOLESALER, entity_id, build_mutation, event_for=event_for
        )

        duplicates = find_duplicate_branches(wholesaler.branches)
        if branch.address_key in duplicates:
            self.logger.warning(
                f"Wholesaler {entity_id} has {len(duplicates[branch.address_key])} branches "
                f"at '{branch.address}'"
            )
        return wholesaler
