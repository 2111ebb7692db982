"""
Integrity policy for classifying expected IntegrityError exceptions.

Unique constraints back the registry's uniqueness rules (record ids,
referral codes per kind, one referrer per referred entity, audit sequence
numbers). Violations of those constraints are expected under concurrency and
map to ``ConflictError``; anything else is an unexpected failure.
"""

from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError  # type: ignore

from ..core.exceptions import ConflictError
from ..utils.logging_config import get_logger, log_exception

logger = get_logger('database')


class ExpectedIntegrityTag(Enum):
    """Tags for expected integrity constraint violations."""

    RECORD_ALREADY_EXISTS = "record_already_exists"
    REFERRAL_CODE_TAKEN = "referral_code_taken"
    REFERRAL_ALREADY_CLAIMED = "referral_already_claimed"
    AUDIT_SEQUENCE_RACE = "audit_sequence_race"


# SQLite reports the constrained columns, PostgreSQL the constraint name
CONSTRAINT_TAG_MAP: Dict[str, ExpectedIntegrityTag] = {
    "entity_records.id, entity_records.kind": ExpectedIntegrityTag.RECORD_ALREADY_EXISTS,
    "entity_records_pkey": ExpectedIntegrityTag.RECORD_ALREADY_EXISTS,
    "entity_records.kind, entity_records.referral_code": ExpectedIntegrityTag.REFERRAL_CODE_TAKEN,
    "uq_entity_referral_code": ExpectedIntegrityTag.REFERRAL_CODE_TAKEN,
    "referral_links.referred_id": ExpectedIntegrityTag.REFERRAL_ALREADY_CLAIMED,
    "referral_links_pkey": ExpectedIntegrityTag.REFERRAL_ALREADY_CLAIMED,
    "audit_events.entity_id, audit_events.seq": ExpectedIntegrityTag.AUDIT_SEQUENCE_RACE,
    "uq_audit_entity_seq": ExpectedIntegrityTag.AUDIT_SEQUENCE_RACE,
}

TAG_MESSAGES = {
    ExpectedIntegrityTag.RECORD_ALREADY_EXISTS: "Record already exists",
    ExpectedIntegrityTag.REFERRAL_CODE_TAKEN: "Referral code is already in use",
    ExpectedIntegrityTag.REFERRAL_ALREADY_CLAIMED: "Entity already has a referrer",
    ExpectedIntegrityTag.AUDIT_SEQUENCE_RACE: "Concurrent audit append",
}


def extract_constraint_name(exc: IntegrityError) -> Optional[str]:
    """Extract the violated constraint from an IntegrityError."""
    orig = exc.orig
    diag = getattr(orig, "diag", None)
    constraint_name = getattr(diag, "constraint_name", None)
    if constraint_name:
        return constraint_name

    # SQLite format: "UNIQUE constraint failed: table.column1, table.column2"
    error_msg = str(orig) if orig else str(exc)
    if "UNIQUE constraint failed:" in error_msg:
        return error_msg.split("UNIQUE constraint failed:", 1)[1].strip()
    return None


def classify_integrity_error(exc: IntegrityError) -> Optional[ExpectedIntegrityTag]:
    """
    Classify an IntegrityError to determine if it's an expected constraint violation.

    Returns:
        ExpectedIntegrityTag if this is an expected violation, None otherwise
    """
    constraint_name = extract_constraint_name(exc)
    if constraint_name is None:
        return None
    return CONSTRAINT_TAG_MAP.get(constraint_name)


def to_conflict(exc: IntegrityError, context: Dict[str, Any]) -> ConflictError:
    """
    Translate an expected violation into ConflictError.

    Unexpected violations are logged and re-raised unchanged.
    """
    tag = classify_integrity_error(exc)
    if tag is None:
        log_exception(
            "database",
            exc,
            {"constraint_name": extract_constraint_name(exc), **context},
        )
        raise exc

    logger.info(
        f"Expected integrity violation: {tag.value}",
        extra={
            "integrity_tag": tag.value,
            "operation": context.get("operation", "unknown"),
            "entity_id": context.get("entity_id"),
        },
    )
    return ConflictError(TAG_MESSAGES[tag], integrity_tag=tag.value, **context)
