"""Entry point bundling the registry services over one set of repositories."""

from typing import Optional

from ..config import LedgerConfig, get_config
from ..core.providers import Clock, IdGenerator, RandomIdGenerator, SystemClock
from ..repositories.dependencies import get_repository_container
from ..repositories.interfaces import RepositoryContainer
from .approval import ApprovalService
from .referrals import ReferralService
from .registration import RegistrationService


class Registry:
    """Registration, approval and referral services sharing repositories and providers."""

    def __init__(
        self,
        repos: RepositoryContainer,
        clock: Optional[Clock] = None,
        ids: Optional[IdGenerator] = None,
        ledger: Optional[LedgerConfig] = None,
    ):
        ledger = ledger or get_config().ledger
        clock = clock or SystemClock()
        ids = ids or RandomIdGenerator(ledger.referral_code_length)

        self.repos = repos
        self.registration = RegistrationService(repos, clock, ids, ledger)
        self.approval = ApprovalService(repos, clock, ids, ledger)
        self.referrals = ReferralService(repos, clock, ids, ledger)

    @classmethod
    def from_config(cls, database_url: Optional[str] = None, **kwargs) -> "Registry":
        """Build a registry on the configured (or given) database."""
        return cls(get_repository_container(database_url), **kwargs)
