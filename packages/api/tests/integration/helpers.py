"""Row builders shared by the integration tests."""

from datetime import date, timedelta

from mediconnect_db import CountryRequirement
from mediconnect_db.enums import UserRole

from mediconnect_api.schemas.application import VisaApplicationCreate

from ..factories import make_user

PATIENT = make_user(UserRole.PATIENT, "patient-int-1")
OTHER_PATIENT = make_user(UserRole.PATIENT, "patient-int-2")
HOSPITAL = make_user(UserRole.HOSPITAL, "hospital-desk-int", hospital_id="hospital-int-1")
ADMIN = make_user(UserRole.ADMIN, "admin-int-1")


async def add_requirement(session, code="US", required=("passport", "passport_photo")):
    row = CountryRequirement(
        country_code=code,
        country_name=f"Country {code}",
        required_documents=list(required),
        processing_time_days=10,
        validity_days=60,
        fees_usd=80,
        is_active=True,
    )
    session.add(row)
    await session.commit()
    return row


def application_body(code="US", **overrides) -> VisaApplicationCreate:
    fields = {
        "country_of_origin": code,
        "passport_number": "X1234567",
        "passport_expiry": date.today() + timedelta(days=900),
        "hospital_id": HOSPITAL.data_scope.hospital_id,
    }
    fields.update(overrides)
    return VisaApplicationCreate(**fields)
