"""Pure auth utility functions with no FastAPI or HTTP dependencies.

Used by the middleware layer and by scripts that act on behalf of a role
outside the request lifecycle (seeding, integration tests).
"""

from mediconnect_db.enums import UserRole

from ..schemas.auth import DataScope


def build_data_scope(
    role: UserRole,
    user_id: str,
    hospital_id: str | None = None,
) -> DataScope:
    """Build data scope rules based on the user's role.

    Hospital staff are scoped by the hospital their account is linked to;
    a hospital account without one sees nothing.
    """
    if role == UserRole.PATIENT:
        return DataScope(own_data_only=True, user_id=user_id)
    if role == UserRole.HOSPITAL:
        return DataScope(hospital_id=hospital_id)
    if role == UserRole.ADMIN:
        return DataScope(full_pipeline=True)
    # unknown -- minimal access
    return DataScope()
