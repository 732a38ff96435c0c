"""Country requirement registry.

Administrators create, edit, and soft-deactivate per-country visa rules.
Deactivated rows stay in place so historical applications keep their
reference by country code; a country code is unique among active rows.
"""

import logging
from decimal import Decimal

from mediconnect_db import CountryRequirement
from mediconnect_db.enums import DocumentType, UserRole
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..schemas.auth import UserContext
from ..schemas.requirement import CountryRequirementCreate, CountryRequirementUpdate
from .audit import audit_user_event
from .errors import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

_CHECKLIST_TAGS = {t.value for t in DocumentType.checklist_tags()}

_UPDATABLE_FIELDS = (
    "country_name",
    "visa_type",
    "required_documents",
    "processing_time_days",
    "validity_days",
    "extension_available",
    "fees_usd",
    "special_notes",
)


def normalize_country_code(code: str) -> str:
    """Validate and uppercase a two-letter country code."""
    code = (code or "").strip()
    if len(code) != 2 or not code.isalpha():
        raise ValidationError(f"Country code must be exactly 2 letters, got '{code}'")
    return code.upper()


def normalize_required_documents(tags: list[str]) -> list[str]:
    """Validate tags against the checklist vocabulary, preserving order and dropping repeats."""
    unknown = [t for t in tags if t not in _CHECKLIST_TAGS]
    if unknown:
        raise ValidationError(
            f"Unknown document tags: {', '.join(unknown)}. "
            f"Allowed: {', '.join(sorted(_CHECKLIST_TAGS))}"
        )
    return list(dict.fromkeys(tags))


def validate_requirement_fields(
    *,
    country_name: str | None,
    processing_time_days: int | None,
    validity_days: int | None,
    fees_usd: Decimal | None,
) -> None:
    """Check the numeric and naming rules shared by create and update.

    ``None`` means "not being changed" and is skipped.
    """
    if country_name is not None and not country_name.strip():
        raise ValidationError("Country name must not be empty")
    if fees_usd is not None and fees_usd < 0:
        raise ValidationError(f"Fee must not be negative, got {fees_usd}")
    if processing_time_days is not None and processing_time_days <= 0:
        raise ValidationError(
            f"Processing time must be a positive number of days, got {processing_time_days}"
        )
    if validity_days is not None and validity_days <= 0:
        raise ValidationError(f"Validity must be a positive number of days, got {validity_days}")


async def get_active_requirement(
    session: AsyncSession,
    country_code: str,
) -> CountryRequirement | None:
    """Return the active requirement row for a country code, if any."""
    stmt = select(CountryRequirement).where(
        CountryRequirement.country_code == country_code.upper(),
        CountryRequirement.is_active.is_(True),
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_requirement(
    session: AsyncSession,
    requirement_id: int,
) -> CountryRequirement | None:
    stmt = select(CountryRequirement).where(CountryRequirement.id == requirement_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def list_requirements(
    session: AsyncSession,
    user: UserContext,
    *,
    active_only: bool = True,
) -> list[CountryRequirement]:
    """List registry rows ordered by country name.

    Only administrators may see deactivated rows; for everyone else
    ``active_only`` is forced on.
    """
    if user.role != UserRole.ADMIN:
        active_only = True

    stmt = select(CountryRequirement).order_by(
        CountryRequirement.country_name.asc(), CountryRequirement.id.asc(),
    )
    if active_only:
        stmt = stmt.where(CountryRequirement.is_active.is_(True))
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def create_requirement(
    session: AsyncSession,
    user: UserContext,
    data: CountryRequirementCreate,
) -> CountryRequirement:
    """Create an active requirement row.

    Raises:
        ValidationError: bad code, tag, fee, or day counts.
        ConflictError: an active row already exists for the code.
    """
    code = normalize_country_code(data.country_code)
    validate_requirement_fields(
        country_name=data.country_name,
        processing_time_days=data.processing_time_days,
        validity_days=data.validity_days,
        fees_usd=data.fees_usd,
    )
    required = normalize_required_documents(data.required_documents)

    if await get_active_requirement(session, code) is not None:
        raise ConflictError(f"An active requirement already exists for country '{code}'")

    requirement = CountryRequirement(
        country_code=code,
        country_name=data.country_name.strip(),
        visa_type=data.visa_type,
        required_documents=required,
        processing_time_days=data.processing_time_days,
        validity_days=data.validity_days,
        extension_available=data.extension_available,
        fees_usd=data.fees_usd,
        special_notes=data.special_notes,
        is_active=True,
    )
    session.add(requirement)
    try:
        await session.flush()
    except IntegrityError as exc:
        # Lost the race against another create for the same code.
        await session.rollback()
        raise ConflictError(f"An active requirement already exists for country '{code}'") from exc

    await audit_user_event(
        session,
        user,
        "requirement_created",
        event_data={"requirement_id": requirement.id, "country_code": code},
    )
    await session.commit()
    await session.refresh(requirement)
    logger.info("Requirement %s created for %s by %s", requirement.id, code, user.user_id)
    return requirement


async def update_requirement(
    session: AsyncSession,
    user: UserContext,
    requirement_id: int,
    data: CountryRequirementUpdate,
) -> CountryRequirement:
    """Apply a partial update to an active requirement row.

    Raises:
        NotFoundError: no such row, or it has been deactivated.
        ValidationError: bad tag, fee, or day counts.
    """
    requirement = await get_requirement(session, requirement_id)
    if requirement is None or not requirement.is_active:
        raise NotFoundError(f"Country requirement {requirement_id} not found")

    updates = data.model_dump(exclude_unset=True)
    validate_requirement_fields(
        country_name=updates.get("country_name"),
        processing_time_days=updates.get("processing_time_days"),
        validity_days=updates.get("validity_days"),
        fees_usd=updates.get("fees_usd"),
    )
    if updates.get("required_documents") is not None:
        updates["required_documents"] = normalize_required_documents(updates["required_documents"])

    changed = {}
    for field in _UPDATABLE_FIELDS:
        if field not in updates or (updates[field] is None and field != "special_notes"):
            continue
        setattr(requirement, field, updates[field])
        changed[field] = updates[field]

    await audit_user_event(
        session,
        user,
        "requirement_updated",
        event_data={
            "requirement_id": requirement.id,
            "country_code": requirement.country_code,
            "fields": sorted(changed),
        },
    )
    await session.commit()
    await session.refresh(requirement)
    logger.info("Requirement %s updated by %s: %s", requirement.id, user.user_id, sorted(changed))
    return requirement


async def deactivate_requirement(
    session: AsyncSession,
    user: UserContext,
    requirement_id: int,
) -> CountryRequirement:
    """Soft-deactivate a requirement row. Existing applications are unaffected.

    Deactivating an already inactive row is a no-op.
    """
    requirement = await get_requirement(session, requirement_id)
    if requirement is None:
        raise NotFoundError(f"Country requirement {requirement_id} not found")
    if not requirement.is_active:
        return requirement

    requirement.is_active = False
    await audit_user_event(
        session,
        user,
        "requirement_deactivated",
        event_data={"requirement_id": requirement.id, "country_code": requirement.country_code},
    )
    await session.commit()
    await session.refresh(requirement)
    logger.info(
        "Requirement %s (%s) deactivated by %s",
        requirement.id,
        requirement.country_code,
        user.user_id,
    )
    return requirement
