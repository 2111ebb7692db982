"""Value objects embedded in entity records and their validators.

Value objects have no independent lifecycle. The pydantic models only enforce
shape; the ``validate_*`` functions enforce the business rules and raise
:class:`~barrim_registry.core.exceptions.ValidationError`.
"""

from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Sequence
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from ..core.exceptions import ValidationError


class ValueObject(BaseModel):
    """Immutable, camelCase-serialized embedded document."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
        str_strip_whitespace=True,
    )


class ContactInfo(ValueObject):
    """Reachable channels for an entity."""

    phone: str = ""
    email: str = ""
    address: str = ""
    whatsapp: str = ""


class SocialMedia(ValueObject):
    """Optional social links shown on a wholesaler profile."""

    facebook: str = ""
    instagram: str = ""
    website: str = ""


class Branch(ValueObject):
    """A wholesaler branch location."""

    name: str = ""
    address: str = ""
    phone: str = ""
    email: str = ""

    @property
    def address_key(self) -> str:
        """Address normalized for duplicate detection."""
        return " ".join(self.address.lower().split())


def _check_email(value: str, field: str) -> None:
    if value and ("@" not in value or value.startswith("@") or value.endswith("@")):
        raise ValidationError(f"'{value}' is not a valid email address", field=field)


def validate_contact_info(contact: ContactInfo, field: str = "contactInfo") -> ContactInfo:
    """Require at least one reachable channel (phone or email)."""
    if not contact.phone and not contact.email:
        raise ValidationError(
            "Contact info needs at least a phone number or an email address",
            field=field,
        )
    _check_email(contact.email, f"{field}.email")
    return contact


def validate_branch(branch: Branch, index: Optional[int] = None) -> Branch:
    """Require a distinguishable address on every branch."""
    field = "branches" if index is None else f"branches[{index}]"
    if not branch.address:
        raise ValidationError("Branch address is required", field=f"{field}.address")
    _check_email(branch.email, f"{field}.email")
    return branch


def validate_branches(branches: Sequence[Branch]) -> None:
    for index, branch in enumerate(branches):
        validate_branch(branch, index)


def find_duplicate_branches(branches: Iterable[Branch]) -> Dict[str, List[int]]:
    """
    Group branch positions by normalized address.

    Duplicates are allowed; callers use this to offer a merge.

    Returns:
        Mapping of normalized address to the positions sharing it, only for
        addresses that occur more than once.
    """
    positions: Dict[str, List[int]] = defaultdict(list)
    for index, branch in enumerate(branches):
        positions[branch.address_key].append(index)
    return {key: found for key, found in positions.items() if len(found) > 1}


def validate_email_list(values: Sequence[str], field: str) -> None:
    for index, value in enumerate(values):
        _check_email(value, f"{field}[{index}]")


def validate_url(value: Optional[str], field: str) -> None:
    """Accept absolute http(s) URLs only."""
    if not value:
        return
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError(f"'{value}' is not a URL", field=field)
