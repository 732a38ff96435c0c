"""Fixtures for functional tests.

The real app from ``mediconnect_api.main`` is a module singleton.
``_clean_overrides`` ensures dependency_overrides are cleared after every
test so persona configuration from one test never leaks into the next.
The lifespan is not entered, so neither storage nor the notification
dispatcher is started; storage is patched where a test needs it.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from mediconnect_api.main import app as real_app
from mediconnect_api.schemas.auth import UserContext

from .mock_db import configure_app_for_persona


@pytest.fixture(autouse=True)
def _clean_overrides():
    """Clear app dependency overrides after each test."""
    yield
    real_app.dependency_overrides.clear()


@pytest.fixture
def app():
    """Return the real FastAPI app with all routers mounted."""
    return real_app


@pytest.fixture
def make_client(app):
    """Factory fixture: configure persona + mock DB, return TestClient."""

    def _make(user: UserContext, session: AsyncMock) -> TestClient:
        configure_app_for_persona(app, user, session)
        return TestClient(app)

    return _make


@pytest.fixture
def mock_storage():
    """Storage double patched into both the document and letter services."""
    storage = MagicMock()
    storage.build_document_path.return_value = "visa-docs/passport-test.pdf"
    storage.build_letter_path.return_value = "visa-letters/application-101-test.txt"
    storage.upload = AsyncMock(side_effect=lambda owner, path, data, ct: f"http://minio/documents/{owner}/{path}")
    storage.download = AsyncMock(return_value=b"%PDF-1.7 scan")
    with (
        patch("mediconnect_api.services.document.get_storage_service", return_value=storage),
        patch("mediconnect_api.services.letter.get_storage_service", return_value=storage),
    ):
        yield storage
