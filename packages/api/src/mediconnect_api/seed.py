"""CLI entrypoint for seeding the country requirement registry.

Usage:
    python -m mediconnect_api.seed          # Seed starter requirements
    python -m mediconnect_api.seed --force  # Deactivate seeded rows and re-seed
"""

import argparse
import asyncio
import json
import logging
import sys
from decimal import Decimal

from mediconnect_db import CountryRequirement, DocumentType, SessionLocal, VisaType
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .services.audit import write_audit_event

logger = logging.getLogger(__name__)

SEED_USER = "system-seed"

STARTER_REQUIREMENTS = [
    {
        "country_code": "US",
        "country_name": "United States",
        "required_documents": [
            DocumentType.PASSPORT,
            DocumentType.PASSPORT_PHOTO,
            DocumentType.MEDICAL_REPORTS,
        ],
        "processing_time_days": 10,
        "validity_days": 60,
        "fees_usd": Decimal("80.00"),
    },
    {
        "country_code": "GB",
        "country_name": "United Kingdom",
        "required_documents": [
            DocumentType.PASSPORT,
            DocumentType.PASSPORT_PHOTO,
            DocumentType.MEDICAL_REPORTS,
            DocumentType.FINANCIAL_PROOF,
        ],
        "processing_time_days": 10,
        "validity_days": 60,
        "fees_usd": Decimal("80.00"),
    },
    {
        "country_code": "NG",
        "country_name": "Nigeria",
        "required_documents": [
            DocumentType.PASSPORT,
            DocumentType.PASSPORT_PHOTO,
            DocumentType.MEDICAL_REPORTS,
            DocumentType.BANK_STATEMENT,
            DocumentType.HOSPITAL_INVITATION,
        ],
        "processing_time_days": 15,
        "validity_days": 60,
        "fees_usd": Decimal("100.00"),
        "special_notes": "Yellow fever vaccination certificate is checked on arrival.",
    },
    {
        "country_code": "BD",
        "country_name": "Bangladesh",
        "required_documents": [
            DocumentType.PASSPORT,
            DocumentType.PASSPORT_PHOTO,
            DocumentType.MEDICAL_REPORTS,
            DocumentType.BANK_STATEMENT,
        ],
        "processing_time_days": 7,
        "validity_days": 60,
        "fees_usd": Decimal("0.00"),
    },
    {
        "country_code": "AF",
        "country_name": "Afghanistan",
        "required_documents": [
            DocumentType.PASSPORT,
            DocumentType.PASSPORT_PHOTO,
            DocumentType.MEDICAL_REPORTS,
            DocumentType.POLICE_CLEARANCE,
            DocumentType.HOSPITAL_INVITATION,
        ],
        "processing_time_days": 20,
        "validity_days": 30,
        "extension_available": False,
        "fees_usd": Decimal("60.00"),
    },
]


async def seed_requirements(session: AsyncSession, force: bool = False) -> dict:
    """Insert the starter registry. Existing active codes are left alone unless force."""
    codes = [r["country_code"] for r in STARTER_REQUIREMENTS]
    result = await session.execute(
        select(CountryRequirement.country_code).where(
            CountryRequirement.country_code.in_(codes),
            CountryRequirement.is_active.is_(True),
        )
    )
    existing = set(result.scalars().all())

    if existing and not force:
        return {"status": "already_seeded", "existing": sorted(existing)}

    if force and existing:
        # Requirements are never deleted; retire the old rows instead
        await session.execute(
            update(CountryRequirement)
            .where(
                CountryRequirement.country_code.in_(codes),
                CountryRequirement.is_active.is_(True),
            )
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )

    for definition in STARTER_REQUIREMENTS:
        row = dict(definition)
        row["required_documents"] = [d.value for d in row["required_documents"]]
        session.add(CountryRequirement(visa_type=VisaType.MEDICAL_VISA, **row))

    await session.flush()
    await write_audit_event(
        session,
        event_type="requirements_seeded",
        user_id=SEED_USER,
        user_role="admin",
        event_data={"codes": codes, "force": force},
    )
    await session.commit()
    logger.info("Seeded %d country requirements", len(codes))
    return {"status": "seeded", "codes": codes, "replaced": sorted(existing)}


async def main(force: bool = False) -> None:
    """Run requirement seeding."""
    async with SessionLocal() as session:
        result = await seed_requirements(session, force=force)
        print(json.dumps(result, indent=2, default=str))

        if result.get("status") == "already_seeded":
            print("\nRequirements already seeded. Use --force to re-seed.")
            sys.exit(0)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed MediConnect country requirements")
    parser.add_argument(
        "--force",
        action="store_true",
        help="Deactivate seeded requirements and insert them again",
    )
    args = parser.parse_args()
    asyncio.run(main(force=args.force))
