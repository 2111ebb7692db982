"""
Referral ledger service.

Tracks referral codes, credits wholesalers for entities that register with
their code and keeps the balance consistent.

Rules:
- referral codes are unique per entity kind
- a referred entity has exactly one referrer; the store writes the referral
  claim in the same atomic step as the referrer's ledger update
- replaying a registration never credits points twice
- the balance never goes negative unless overdraft is configured
"""

from decimal import Decimal
from typing import Optional, Union
from uuid import UUID

from ..core.enums import EntityKind, EntityStatus
from ..core.exceptions import (
    ConflictError,
    InsufficientFundsError,
    NotFoundError,
    ValidationError,
)
from ..domain import rules
from ..domain.entities import EntityRecord, Wholesaler
from ..domain.events import (
    BalanceSettledEvent,
    PointsAdjustedEvent,
    ReferralCodeIssuedEvent,
    ReferralRegisteredEvent,
)
from .base import RegistryService


class ReferralService(RegistryService):
    """Referral code issuance and wholesaler ledger operations."""

    async def issue_referral_code(self, kind: EntityKind, entity_id: UUID) -> str:
        """
        Give an entity a referral code unique among entities of its kind.

        An entity that already has a code keeps it.

        Raises:
            NotFoundError: if the entity does not exist
            ConflictError: if no free code was found within the attempt budget
        """
        kind = EntityKind(kind)
        attempts = max(1, self.ledger.referral_code_max_attempts)

        for attempt in range(1, attempts + 1):
            record = await self.repos.records.get(kind, entity_id)
            if record.core.referral_code:
                return record.core.referral_code

            code = self.ids.new_referral_code()
            try:
                await self.repos.records.find_by_referral_code(kind, code)
                self.logger.debug(f"Referral code collision on attempt {attempt}")
                continue
            except NotFoundError:
                pass

            now = self.clock.now()
            try:
                updated = await self.repos.records.compare_and_update(
                    kind,
                    entity_id,
                    record.core.version,
                    lambda latest: rules.assign_referral_code(latest, code, now),
                    event_for=lambda issued: ReferralCodeIssuedEvent(
                        entity_id=entity_id,
                        entity_kind=kind,
                        timestamp=now,
                        referral_code=issued.core.referral_code,
                    ),
                )
            except ConflictError as e:
                # Lost a race on the code or on the record; re-read and try again
                self.logger.debug(f"Referral code assignment conflict on attempt {attempt}: {e}")
                continue

            self.logger.info(f"Referral code {code} issued to {kind.value} {entity_id}")
            return updated.core.referral_code

        self.logger.warning(
            f"Could not issue a referral code to {entity_id} after {attempts} attempts"
        )
        raise ConflictError(
            f"Could not find a free referral code after {attempts} attempts",
            entity_id=entity_id,
        )

    async def register_with_referral(
        self, new_entity: EntityRecord, referral_code: str
    ) -> Wholesaler:
        """
        Credit the wholesaler owning ``referral_code`` for ``new_entity``.

        The referred entity must already be stored. The referral claim and
        the referrer's points are written together, so a failed attempt
        leaves neither behind.

        Returns:
            The referrer after the update (unchanged if already credited)

        Raises:
            ValidationError: for an empty code, an unsaved entity or self-referral
            NotFoundError: if the entity is not stored or no approved
                wholesaler owns the code
            ConflictError: if the entity already has a different referrer
                (not retryable), or the referrer kept changing concurrently
        """
        code = (referral_code or "").strip()
        if not code:
            raise ValidationError("Referral code is required", field="referralCode")
        referred_id = new_entity.id
        if referred_id is None:
            raise ValidationError("Only submitted entities can be referred", field="id")

        try:
            await self.repos.records.get(new_entity.kind, referred_id)
        except NotFoundError:
            self.logger.warning(f"Referral via '{code}' for unknown entity {referred_id}")
            raise

        try:
            referrer = await self.repos.records.find_by_referral_code(
                EntityKind.WHOLESALER, code
            )
        except NotFoundError:
            self.logger.warning(f"Referral code '{code}' not found (referred={referred_id})")
            raise
        if referrer.status is not EntityStatus.APPROVED:
            self.logger.warning(
                f"Referral code '{code}' belongs to {referrer.status.value} wholesaler {referrer.id}"
            )
            raise NotFoundError(
                f"No approved wholesaler owns referral code '{code}'", referral_code=code
            )
        if referrer.id == referred_id:
            raise ValidationError("An entity cannot refer itself", field="referralCode")

        holder = await self.repos.records.find_referrer_id(referred_id)
        if holder is not None and holder != referrer.id:
            self.logger.warning(f"Referral of {referred_id} via '{code}' refused: held by {holder}")
            raise ConflictError(
                f"Entity {referred_id} was already referred by {holder}",
                retryable=False,
                referred_id=referred_id,
                referrer_id=holder,
            )

        current = await self.repos.records.get(EntityKind.WHOLESALER, referrer.id)
        if referred_id in current.referrals:
            self.logger.debug(f"Referral of {referred_id} by {referrer.id} already recorded")
            return current

        points_unit = self.ledger.points_per_referral
        added = False

        def build_mutation(latest_read: Wholesaler):
            now = self.clock.now()

            def mutation(latest: Wholesaler) -> Wholesaler:
                nonlocal added
                decision = rules.apply_referral(latest, referred_id, points_unit, now)
                added = decision.added
                return decision.wholesaler

            return mutation

        def event_for(updated: Wholesaler) -> Optional[ReferralRegisteredEvent]:
            if not added:
                return None
            return ReferralRegisteredEvent(
                entity_id=referrer.id,
                entity_kind=EntityKind.WHOLESALER,
                actor_id=new_entity.core.owner_user_id,
                timestamp=updated.core.updated_at,
                referred_id=referred_id,
                referral_code=code,
                points_awarded=points_unit,
            )

        try:
            updated = await self._update(
                EntityKind.WHOLESALER,
                referrer.id,
                build_mutation,
                event_for=event_for,
                referral_claim=referred_id,
            )
        except ConflictError as e:
            self.logger.warning(f"Referral of {referred_id} via '{code}' refused: {e}")
            raise

        if added:
            self.logger.info(
                f"REFERRAL_REGISTERED [referrer={referrer.id}, referred={referred_id}, "
                f"code={code}, points={updated.points}]"
            )
        return updated

    async def find_referrer(self, entity_id: UUID) -> Optional[Wholesaler]:
        """Wholesaler credited for ``entity_id``, if any."""
        referrer_id = await self.repos.records.find_referrer_id(entity_id)
        if referrer_id is None:
            return None
        return await self.repos.records.get(EntityKind.WHOLESALER, referrer_id)

    async def settle_balance(
        self,
        entity_id: UUID,
        delta: Union[Decimal, int, float, str],
        actor_id: Optional[UUID] = None,
    ) -> Wholesaler:
        """
        Apply a signed settlement amount to a wholesaler balance.

        Raises:
            ValidationError: if ``delta`` is not a finite number
            InsufficientFundsError: if the balance would go negative; the
                balance is left unchanged
        """
        amount = rules.to_money(delta)
        allow_overdraft = self.ledger.allow_overdraft

        def build_mutation(current: Wholesaler):
            now = self.clock.now()
            return lambda latest: rules.apply_settlement(latest, amount, now, allow_overdraft)

        def event_for(updated: Wholesaler) -> BalanceSettledEvent:
            return BalanceSettledEvent(
                entity_id=entity_id,
                entity_kind=EntityKind.WHOLESALER,
                actor_id=actor_id,
                timestamp=updated.core.updated_at,
                delta=amount,
                balance_after=updated.balance,
            )

        try:
            wholesaler = await self._update(
                EntityKind.WHOLESALER, entity_id, build_mutation, event_for=event_for
            )
        except InsufficientFundsError as e:
            self.logger.warning(f"Settlement refused: {e}")
            raise

        self.logger.info(
            f"Balance of {entity_id} settled by {amount}, now {wholesaler.balance}"
        )
        return wholesaler

    async def adjust_points(
        self, entity_id: UUID, delta: int, actor_id: UUID, reason: str
    ) -> Wholesaler:
        """
        Administrative points correction, the only way points can go down.

        Raises:
            ValidationError: without a reason or if points would go negative
        """
        self._require_actor(actor_id, "actorId")
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("A correction reason is required", field="reason")

        def build_mutation(current: Wholesaler):
            now = self.clock.now()
            return lambda latest: rules.apply_points_adjustment(latest, delta, now)

        def event_for(updated: Wholesaler) -> PointsAdjustedEvent:
            return PointsAdjustedEvent(
                entity_id=entity_id,
                entity_kind=EntityKind.WHOLESALER,
                actor_id=actor_id,
                timestamp=updated.core.updated_at,
                delta=delta,
                points_after=updated.points,
                reason=reason,
            )

        wholesaler = await self._update(
            EntityKind.WHOLESALER, entity_id, build_mutation, event_for=event_for
        )

        self.logger.info(
            f"Points of {entity_id} adjusted by {delta} to {wholesaler.points} ({reason})"
        )
        return wholesaler
