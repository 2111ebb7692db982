#!/usr/bin/env python3
"""Initialize the registry database, optionally with a sample wholesaler."""

import argparse
import asyncio
import sys
from pathlib import Path
from uuid import uuid4

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from barrim_registry.config import config_manager, get_config
from barrim_registry.core.enums import EntityKind
from barrim_registry.domain.entities import EntityCore, Wholesaler
from barrim_registry.domain.values import ContactInfo
from barrim_registry.repositories.dependencies import get_repository_container
from barrim_registry.services import Registry


async def create_sample_wholesaler(registry: Registry) -> Wholesaler:
    """Submit, approve and issue a referral code to a sample wholesaler."""
    print("Creating sample wholesaler...")

    owner_id = uuid4()
    admin_id = uuid4()
    wholesaler = await registry.registration.submit(
        Wholesaler(
            core=EntityCore(
                owner_user_id=owner_id,
                business_name="Acme Wholesale",
                category="food",
                contact_info=ContactInfo(phone="555-0100", email="sales@acme.example"),
            ),
            phone="555-0100",
        )
    )
    await registry.approval.approve(EntityKind.WHOLESALER, wholesaler.id, admin_id)
    code = await registry.referrals.issue_referral_code(EntityKind.WHOLESALER, wholesaler.id)

    print(f"✅ Wholesaler {wholesaler.id} approved with referral code {code}")
    return await registry.registration.get(EntityKind.WHOLESALER, wholesaler.id)


def main():
    """Main initialization function."""
    parser = argparse.ArgumentParser(description="Barrim Registry database setup")
    parser.add_argument("--database-url", help="Database URL (defaults to BARRIM_DATABASE_URL)")
    parser.add_argument("--sample", action="store_true", help="Create a sample wholesaler")
    args = parser.parse_args()

    print("🚀 Initializing Barrim Registry Database")
    print("=" * 50)

    issues = config_manager.validate_config()
    for issue in issues:
        print(f"⚠️  {issue}")

    database_url = args.database_url or get_config().database.url
    print(f"Creating database: {database_url}")
    registry = Registry(get_repository_container(database_url, create_schema=True))

    if args.sample:
        asyncio.run(create_sample_wholesaler(registry))

    print("\n" + "=" * 50)
    print("🎉 Database initialization complete!")


if __name__ == "__main__":
    main()
