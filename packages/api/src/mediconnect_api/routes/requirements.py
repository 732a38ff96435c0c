"""Country requirement registry routes. Mutations are admin-only."""

from fastapi import APIRouter, Depends, Query
from mediconnect_db import get_db
from mediconnect_db.enums import UserRole
from sqlalchemy.ext.asyncio import AsyncSession

from ..middleware.auth import CurrentUser, require_roles
from ..schemas.requirement import (
    CountryRequirementCreate,
    CountryRequirementListResponse,
    CountryRequirementResponse,
    CountryRequirementUpdate,
)
from ..services import requirements as req_service
from ..services.errors import NotFoundError

router = APIRouter()

_ALL_AUTHENTICATED = (UserRole.ADMIN, UserRole.HOSPITAL, UserRole.PATIENT)


@router.get(
    "/",
    response_model=CountryRequirementListResponse,
    dependencies=[Depends(require_roles(*_ALL_AUTHENTICATED))],
)
async def list_requirements(
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
    active_only: bool = Query(default=True),
) -> CountryRequirementListResponse:
    """List country requirements. Only admins can include deactivated rows."""
    rows = await req_service.list_requirements(session, user, active_only=active_only)
    return CountryRequirementListResponse(
        data=[CountryRequirementResponse.model_validate(r) for r in rows],
        count=len(rows),
    )


@router.get(
    "/{country_code}",
    response_model=CountryRequirementResponse,
    dependencies=[Depends(require_roles(*_ALL_AUTHENTICATED))],
)
async def get_requirement(
    country_code: str,
    session: AsyncSession = Depends(get_db),
) -> CountryRequirementResponse:
    """Get the active requirement for a country code."""
    row = await req_service.get_active_requirement(session, country_code)
    if row is None:
        raise NotFoundError(f"No active visa requirement for country '{country_code.upper()}'")
    return CountryRequirementResponse.model_validate(row)


@router.post(
    "/",
    response_model=CountryRequirementResponse,
    status_code=201,
    dependencies=[Depends(require_roles(UserRole.ADMIN))],
)
async def create_requirement(
    body: CountryRequirementCreate,
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
) -> CountryRequirementResponse:
    row = await req_service.create_requirement(session, user, body)
    return CountryRequirementResponse.model_validate(row)


@router.patch(
    "/{requirement_id}",
    response_model=CountryRequirementResponse,
    dependencies=[Depends(require_roles(UserRole.ADMIN))],
)
async def update_requirement(
    requirement_id: int,
    body: CountryRequirementUpdate,
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
) -> CountryRequirementResponse:
    row = await req_service.update_requirement(session, user, requirement_id, body)
    return CountryRequirementResponse.model_validate(row)


@router.delete(
    "/{requirement_id}",
    response_model=CountryRequirementResponse,
    dependencies=[Depends(require_roles(UserRole.ADMIN))],
)
async def deactivate_requirement(
    requirement_id: int,
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
) -> CountryRequirementResponse:
    """Soft-deactivate a requirement. Historical applications keep their snapshot."""
    row = await req_service.deactivate_requirement(session, user, requirement_id)
    return CountryRequirementResponse.model_validate(row)
