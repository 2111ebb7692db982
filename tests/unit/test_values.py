"""Unit tests for embedded value objects and their validators."""

import pytest

from barrim_registry.core.exceptions import ValidationError
from barrim_registry.domain.values import (
    Branch,
    ContactInfo,
    SocialMedia,
    find_duplicate_branches,
    validate_branch,
    validate_contact_info,
    validate_url,
)


@pytest.mark.unit
class TestContactInfo:
    """Test contact info validation."""

    def test_phone_only_is_enough(self):
        contact = ContactInfo(phone="555-0100")
        assert validate_contact_info(contact) is contact

    def test_email_only_is_enough(self):
        validate_contact_info(ContactInfo(email="sales@acme.test"))

    def test_no_channel_is_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_contact_info(ContactInfo(address="Main street"))
        assert exc_info.value.field == "contactInfo"

    def test_malformed_email_is_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_contact_info(ContactInfo(phone="555-0100", email="acme.test"))
        assert exc_info.value.field == "contactInfo.email"

    def test_whitespace_is_stripped(self):
        contact = ContactInfo(phone="  555-0100 ")
        assert contact.phone == "555-0100"

    def test_camel_case_aliases(self):
        contact = ContactInfo.model_validate({"phone": "1", "whatsapp": "2"})
        assert contact.model_dump(by_alias=True)["whatsapp"] == "2"


@pytest.mark.unit
class TestBranches:
    """Test branch validation and duplicate detection."""

    def test_branch_requires_address(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_branch(Branch(name="Downtown"), index=2)
        assert exc_info.value.field == "branches[2].address"

    def test_duplicates_grouped_by_normalized_address(self):
        branches = [
            Branch(name="A", address="12 Harbor Road"),
            Branch(name="B", address="5 Hill Street"),
            Branch(name="C", address="12  harbor road"),
        ]

        duplicates = find_duplicate_branches(branches)

        assert duplicates == {"12 harbor road": [0, 2]}

    def test_no_duplicates(self):
        branches = [Branch(address="1 A St"), Branch(address="2 B St")]
        assert find_duplicate_branches(branches) == {}


@pytest.mark.unit
class TestUrls:
    """Test URL validation for logos and social links."""

    @pytest.mark.parametrize("url", ["https://acme.test/logo.png", "http://acme.test", None, ""])
    def test_accepted(self, url):
        validate_url(url, "logoUrl")

    @pytest.mark.parametrize("url", ["acme.test/logo.png", "ftp://acme.test/x", "https://"])
    def test_rejected(self, url):
        with pytest.raises(ValidationError):
            validate_url(url, "logoUrl")

    def test_social_media_is_immutable(self):
        social = SocialMedia(website="https://acme.test")
        with pytest.raises(Exception):
            social.website = "https://other.test"
