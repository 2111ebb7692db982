"""Clock and identifier providers injected into the services."""

import secrets
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID, uuid4

# Unambiguous characters only (no 0/O, 1/I/L)
REFERRAL_CODE_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"


class Clock(ABC):
    """Source of the current time."""

    @abstractmethod
    def now(self) -> datetime:
        """Return the current UTC time."""
        pass


class SystemClock(Clock):
    """Wall clock."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """Clock that only moves when told to."""

    def __init__(self, start: Optional[datetime] = None):
        self._now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._now

    def set(self, value: datetime) -> None:
        self._now = value

    def advance(self, **kwargs) -> datetime:
        """Advance by ``timedelta(**kwargs)`` and return the new time."""
        self._now = self._now + timedelta(**kwargs)
        return self._now


class IdGenerator(ABC):
    """Source of record identifiers and referral codes."""

    @abstractmethod
    def new_id(self) -> UUID:
        pass

    @abstractmethod
    def new_referral_code(self) -> str:
        """Return a candidate code; uniqueness is checked by the store."""
        pass


class RandomIdGenerator(IdGenerator):
    """UUID4 identifiers and random referral codes."""

    def __init__(self, code_length: int = 8):
        if code_length < 4:
            raise ValueError("Referral codes must be at least 4 characters")
        self.code_length = code_length

    def new_id(self) -> UUID:
        return uuid4()

    def new_referral_code(self) -> str:
        return "".join(
            secrets.choice(REFERRAL_CODE_ALPHABET) for _ in range(self.code_length)
        )
