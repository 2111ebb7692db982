"""
Pure function rules for the entity lifecycle and the referral ledger.

This module contains the approval state machine and ledger accounting as
pure functions with no side effects. Each function takes a record and returns
a new record (or a decision); persistence and atomicity are handled by the
record store through the services layer.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, FrozenSet, Mapping, Union
from uuid import UUID

from ..core.enums import EntityKind, EntityStatus
from ..core.exceptions import (
    InsufficientFundsError,
    InvalidTransitionError,
    ValidationError,
)
from .entities import EntityCore, EntityRecord, Wholesaler, with_core
from .values import (
    Branch,
    ContactInfo,
    SocialMedia,
    validate_branch,
    validate_branches,
    validate_contact_info,
    validate_email_list,
    validate_url,
)

# pending is the only non-terminal state; rejected records are not resubmitted
ALLOWED_TRANSITIONS: Dict[EntityStatus, FrozenSet[EntityStatus]] = {
    EntityStatus.PENDING: frozenset({EntityStatus.APPROVED, EntityStatus.REJECTED}),
    EntityStatus.APPROVED: frozenset(),
    EntityStatus.REJECTED: frozenset(),
}

CORE_PROFILE_FIELDS = frozenset({"business_name", "category", "contact_info", "logo_url"})
WHOLESALER_PROFILE_FIELDS = frozenset(
    {
        "phone",
        "sub_category",
        "additional_phones",
        "additional_emails",
        "social_media",
    }
)

MoneyLike = Union[Decimal, int, float, str]


@dataclass(frozen=True)
class ReferralDecision:
    """Result of applying a referral to a wholesaler."""

    wholesaler: Wholesaler
    added: bool = False

    @property
    def is_noop(self) -> bool:
        return not self.added


def to_money(value: MoneyLike) -> Decimal:
    """Convert an amount to Decimal without float artifacts."""
    if isinstance(value, bool):
        raise ValidationError("Amount must be numeric", field="amount")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(f"'{value}' is not a valid amount", field="amount") from e
    if not amount.is_finite():
        raise ValidationError(f"'{value}' is not a valid amount", field="amount")
    return amount


def can_transition(current: EntityStatus, target: EntityStatus) -> bool:
    return EntityStatus(target) in ALLOWED_TRANSITIONS[EntityStatus(current)]


def validate_core(core: EntityCore) -> None:
    if not core.business_name:
        raise ValidationError("Business name is required", field="businessName")
    if core.owner_user_id is None:
        raise ValidationError("Owner user id is required", field="userId")
    validate_contact_info(core.contact_info)
    validate_url(core.logo_url, "logoUrl")


def validate_record(record: EntityRecord) -> None:
    """
    Validate a record's business rules.

    Raises:
        ValidationError: naming the first offending field
    """
    validate_core(record.core)
    if isinstance(record, Wholesaler):
        if not record.phone:
            raise ValidationError("Wholesaler phone is required", field="phone")
        validate_email_list(record.additional_emails, "additionalEmails")
        validate_branches(record.branches)
        validate_url(record.social_media.website if record.social_media else None,
                     "socialMedia.website")
        if record.points < 0:
            raise ValidationError("Points cannot be negative", field="points")


def prepare_submission(
    record: EntityRecord, entity_id: UUID, created_by: UUID, now: datetime
) -> EntityRecord:
    """
    Build the record to persist for a new submission.

    The status is forced to pending and both timestamps are set to ``now``;
    ledger fields start empty. A wholesaler's phone and its contact phone fill
    in for each other when only one is given.
    """
    if created_by is None:
        raise ValidationError("Creator id is required", field="createdBy")

    if isinstance(record, Wholesaler):
        phone = record.phone or record.core.contact_info.phone
        contact = record.core.contact_info
        if phone and not contact.phone:
            contact = contact.model_copy(update={"phone": phone})
        record = record.model_copy(
            update={
                "phone": phone,
                "referrals": frozenset(),
                "points": 0,
                "balance": Decimal("0"),
                "core": record.core.model_copy(update={"contact_info": contact}),
            }
        )

    prepared = with_core(
        record,
        id=entity_id,
        created_by=created_by,
        created_at=now,
        updated_at=now,
        status=EntityStatus.PENDING,
        version=0,
    )
    validate_record(prepared)
    return prepared


def transition(record: EntityRecord, target: EntityStatus, now: datetime) -> EntityRecord:
    """
    Move a record to ``target`` status.

    Raises:
        InvalidTransitionError: if the state machine forbids the move
    """
    current = record.core.status
    if not can_transition(current, target):
        raise InvalidTransitionError(record.core.id, current.value, EntityStatus(target).value)
    return with_core(record, status=EntityStatus(target), updated_at=now)


def assign_referral_code(record: EntityRecord, code: str, now: datetime) -> EntityRecord:
    code = (code or "").strip()
    if not code:
        raise ValidationError("Referral code cannot be empty", field="referralCode")
    return with_core(record, referral_code=code, updated_at=now)


def apply_referral(
    wholesaler: Wholesaler, referred_id: UUID, points_unit: int, now: datetime
) -> ReferralDecision:
    """
    Credit ``wholesaler`` for a new referred entity.

    Adding an id already in the referral set is a no-op, so replays never
    double-count points.
    """
    if referred_id == wholesaler.id:
        raise ValidationError("An entity cannot refer itself", field="referralCode")
    if referred_id in wholesaler.referrals:
        return ReferralDecision(wholesaler=wholesaler, added=False)

    updated = wholesaler.model_copy(
        update={
            "referrals": wholesaler.referrals | {referred_id},
            "points": wholesaler.points + points_unit,
            "core": wholesaler.core.model_copy(update={"updated_at": now}),
        }
    )
    return ReferralDecision(wholesaler=updated, added=True)


def apply_settlement(
    wholesaler: Wholesaler,
    delta: MoneyLike,
    now: datetime,
    allow_overdraft: bool = False,
) -> Wholesaler:
    """
    Apply a signed amount to the wholesaler balance.

    Raises:
        InsufficientFundsError: if the balance would drop below zero and
            overdraft is not allowed
    """
    amount = to_money(delta)
    new_balance = wholesaler.balance + amount
    if new_balance < 0 and not allow_overdraft:
        raise InsufficientFundsError(wholesaler.id, wholesaler.balance, amount)
    return wholesaler.model_copy(
        update={
            "balance": new_balance,
            "core": wholesaler.core.model_copy(update={"updated_at": now}),
        }
    )


def apply_points_adjustment(wholesaler: Wholesaler, delta: int, now: datetime) -> Wholesaler:
    """Administrative correction; the only way points may decrease."""
    if isinstance(delta, bool) or not isinstance(delta, int):
        raise ValidationError("Points adjustment must be an integer", field="points")
    new_points = wholesaler.points + delta
    if new_points < 0:
        raise ValidationError(
            f"Adjustment of {delta} would leave {new_points} points", field="points"
        )
    return wholesaler.model_copy(
        update={
            "points": new_points,
            "core": wholesaler.core.model_copy(update={"updated_at": now}),
        }
    )


def _coerce_profile_value(name: str, value: Any) -> Any:
    if name == "contact_info" and isinstance(value, Mapping):
        return ContactInfo.model_validate(value)
    if name == "social_media" and isinstance(value, Mapping):
        return SocialMedia.model_validate(value)
    if name in ("additional_phones", "additional_emails"):
        return tuple(str(item).strip() for item in value or ())
    if isinstance(value, str):
        return value.strip()
    return value


def apply_profile_changes(
    record: EntityRecord, changes: Mapping[str, Any], now: datetime
) -> EntityRecord:
    """
    Apply owner-editable profile fields.

    Raises:
        ValidationError: for fields outside the profile or an invalid result
    """
    if not changes:
        raise ValidationError("No profile changes given")

    allowed = CORE_PROFILE_FIELDS
    if record.kind is EntityKind.WHOLESALER:
        allowed = allowed | WHOLESALER_PROFILE_FIELDS
    unknown = sorted(set(changes) - allowed)
    if unknown:
        raise ValidationError(
            f"Fields cannot be changed through a profile update: {', '.join(unknown)}",
            field=unknown[0],
        )

    core_changes = {
        name: _coerce_profile_value(name, value)
        for name, value in changes.items()
        if name in CORE_PROFILE_FIELDS
    }
    extra_changes = {
        name: _coerce_profile_value(name, value)
        for name, value in changes.items()
        if name not in CORE_PROFILE_FIELDS
    }

    updated = with_core(record, updated_at=now, **core_changes)
    if extra_changes:
        updated = updated.model_copy(update=extra_changes)
    validate_record(updated)
    return updated


def append_branch(wholesaler: Wholesaler, branch: Branch, now: datetime) -> Wholesaler:
    validate_branch(branch, len(wholesaler.branches))
    return wholesaler.model_copy(
        update={
            "branches": wholesaler.branches + (branch,),
            "core": wholesaler.core.model_copy(update={"updated_at": now}),
        }
    )
