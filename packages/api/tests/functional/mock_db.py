"""Mock database utilities for functional tests.

Provides an AsyncMock session that handles the result patterns used by
the service layer:
  1. ``.scalar()`` -- count queries
  2. ``.unique().scalars().all()`` / ``.scalars().all()`` -- list queries
  3. ``.unique().scalar_one_or_none()`` / ``.scalar_one_or_none()`` -- single-item queries
"""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

from fastapi import Request
from mediconnect_db import get_db

from mediconnect_api.middleware.auth import get_current_user
from mediconnect_api.schemas.auth import UserContext

from ..factories import make_result

_NOW = datetime(2026, 3, 2, 10, 0, tzinfo=UTC)


def make_mock_session(
    items: list | None = None,
    single: object | None = None,
    count: int | None = None,
) -> AsyncMock:
    """Build an AsyncMock session that returns the same result for every query.

    When only ``items`` is provided, count and single are inferred:
    - count = len(items)
    - single = items[0] if items else None
    """
    if items is not None and count is None:
        count = len(items)
    if items is not None and single is None:
        single = items[0] if items else None

    session = AsyncMock()
    session.execute = AsyncMock(return_value=make_result(value=single, items=items, count=count or 0))
    session.add = MagicMock()
    return session


def make_sequence_session(*results) -> AsyncMock:
    """Build an AsyncMock session answering queries in order.

    ``add()`` assigns an id and timestamps to new rows, standing in for the
    flush and refresh the database would perform.
    """
    session = AsyncMock()
    session.execute = AsyncMock(side_effect=list(results))

    def track_add(obj):
        if getattr(obj, "id", None) is None:
            obj.id = 501
        if hasattr(obj, "updated_at"):
            obj.created_at = obj.created_at or _NOW
            obj.updated_at = obj.updated_at or _NOW

    session.add = MagicMock(side_effect=track_add)
    return session


def configure_app_for_persona(app, user: UserContext, session: AsyncMock) -> None:
    """Override get_current_user and get_db on the real app."""

    async def fake_user(request: Request):
        return user

    async def fake_db():
        yield session

    app.dependency_overrides[get_current_user] = fake_user
    app.dependency_overrides[get_db] = fake_db
