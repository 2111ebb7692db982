"""Error taxonomy for registry operations.

Every operation raises one of these instead of returning error codes.
``ValidationError`` is caller-fixable and never retried automatically,
``ConflictError`` is safe to retry after re-reading current state, the rest
are terminal for the request that raised them.
"""

from typing import Any, Optional
from uuid import UUID


class RegistryError(Exception):
    """Base exception for registry operations."""

    retryable = False

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context


class ValidationError(RegistryError):
    """Malformed input; nothing was persisted."""

    def __init__(self, message: str, field: Optional[str] = None, **context: Any):
        super().__init__(message, field=field, **context)
        self.field = field


class InvalidTransitionError(RegistryError):
    """Requested status change is not allowed from the current status."""

    def __init__(self, entity_id: UUID, current: str, target: str):
        super().__init__(
            f"Cannot move entity {entity_id} from '{current}' to '{target}'",
            entity_id=entity_id,
            current=current,
            target=target,
        )
        self.entity_id = entity_id
        self.current = current
        self.target = target


class ConflictError(RegistryError):
    """Concurrent update or uniqueness violation.

    Conflicts that re-reading cannot resolve, such as an entity already
    claimed by another referrer, are raised with ``retryable=False``.
    """

    retryable = True

    def __init__(self, message: str, retryable: bool = True, **context: Any):
        super().__init__(message, **context)
        self.retryable = retryable


class NotFoundError(RegistryError):
    """Referenced record or referral code does not exist."""


class InsufficientFundsError(RegistryError):
    """Balance settlement would violate the non-negative balance invariant."""

    def __init__(self, entity_id: UUID, balance: Any, delta: Any):
        super().__init__(
            f"Settling {delta} against balance {balance} of {entity_id} "
            f"would overdraw the account",
            entity_id=entity_id,
            balance=balance,
            delta=delta,
        )
        self.entity_id = entity_id
        self.balance = balance
        self.delta = delta


class PermissionDeniedError(RegistryError):
    """Actor is not allowed to modify the record."""


class RecordStoreError(RegistryError):
    """Unexpected failure inside a record store backend."""
