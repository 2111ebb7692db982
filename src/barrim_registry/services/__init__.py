"""Application services that apply domain rules through the record store."""

from .approval import ApprovalService
from .referrals import ReferralService
from .registration import RegistrationService
from .registry import Registry

__all__ = ["ApprovalService", "ReferralService", "RegistrationService", "Registry"]
