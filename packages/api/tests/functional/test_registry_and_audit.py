"""Functional tests: requirement registry, audit endpoints, and health."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from mediconnect_db import CountryRequirement, get_db_service

from ..factories import CREATED, added_of_type, audit_results, make_mock_requirement, make_result
from .mock_db import make_mock_session, make_sequence_session
from .personas import admin, hospital_apollo, patient_amara

pytestmark = pytest.mark.functional


class TestRequirements:
    def test_anyone_reads_active_requirement(self, make_client):
        client = make_client(patient_amara(), make_mock_session(single=make_mock_requirement()))
        resp = client.get("/api/visa-requirements/us")
        assert resp.status_code == 200
        body = resp.json()
        assert body["country_code"] == "US"
        assert body["required_documents"] == ["passport", "passport_photo", "medical_reports"]

    def test_missing_country_is_404(self, make_client):
        client = make_client(hospital_apollo(), make_mock_session(single=None))
        resp = client.get("/api/visa-requirements/zz")
        assert resp.status_code == 404
        assert resp.json()["detail"] == "No active visa requirement for country 'ZZ'"

    def test_list(self, make_client):
        rows = [make_mock_requirement(), make_mock_requirement(id=2, country_code="GB", country_name="United Kingdom")]
        client = make_client(patient_amara(), make_mock_session(items=rows))
        resp = client.get("/api/visa-requirements/")
        assert resp.status_code == 200
        assert resp.json()["count"] == 2

    def test_admin_creates(self, make_client):
        session = make_sequence_session(make_result(value=None), *audit_results())
        client = make_client(admin(), session)

        resp = client.post(
            "/api/visa-requirements/",
            json={
                "country_code": "fr",
                "country_name": "France",
                "required_documents": ["passport", "travel_insurance"],
                "fees_usd": "60.00",
            },
        )

        assert resp.status_code == 201
        [row] = added_of_type(session, CountryRequirement)
        assert row.country_code == "FR"
        assert row.required_documents == ["passport", "travel_insurance"]

    def test_duplicate_active_code_conflicts(self, make_client):
        session = make_sequence_session(make_result(value=make_mock_requirement()))
        client = make_client(admin(), session)
        resp = client.post(
            "/api/visa-requirements/", json={"country_code": "US", "country_name": "United States"},
        )
        assert resp.status_code == 409
        assert resp.json()["type"] == "/errors/conflict"

    def test_unknown_document_tag_rejected(self, make_client):
        client = make_client(admin(), make_sequence_session())
        resp = client.post(
            "/api/visa-requirements/",
            json={"country_code": "FR", "country_name": "France", "required_documents": ["selfie"]},
        )
        assert resp.status_code == 422

    def test_admin_deactivates(self, make_client):
        row = make_mock_requirement()
        session = make_sequence_session(make_result(value=row), *audit_results())
        client = make_client(admin(), session)

        resp = client.delete("/api/visa-requirements/1")

        assert resp.status_code == 200
        assert resp.json()["is_active"] is False


def _letter_event():
    event = MagicMock()
    event.id = 3
    event.timestamp = CREATED
    event.event_type = "letter_generated"
    event.user_id = "fortis-visa-desk"
    event.user_role = "hospital"
    event.application_id = 201
    event.event_data = {"document_id": 77}
    return event


class TestAudit:
    def test_verify_chain(self, make_client):
        client = make_client(admin(), make_mock_session(items=[]))
        resp = client.get("/api/audit/verify")
        assert resp.status_code == 200
        assert resp.json() == {"status": "OK", "events_checked": 0, "first_break_id": None}

    def test_events_by_application(self, make_client):
        client = make_client(admin(), make_mock_session(items=[_letter_event()]))

        resp = client.get("/api/audit/application/201")

        assert resp.status_code == 200
        body = resp.json()
        assert body["count"] == 1
        assert body["events"][0]["event_type"] == "letter_generated"

    def test_events_by_type(self, make_client):
        session = make_mock_session(items=[_letter_event()])
        client = make_client(admin(), session)

        resp = client.get("/api/audit/events", params={"event_type": "letter_generated", "limit": 5})

        assert resp.status_code == 200
        assert resp.json()["count"] == 1
        sql = str(
            session.execute.await_args.args[0].compile(compile_kwargs={"literal_binds": True})
        )
        assert "audit_events.event_type = 'letter_generated'" in sql
        assert "LIMIT 5" in sql

    def test_events_by_type_requires_event_type(self, make_client):
        client = make_client(admin(), make_mock_session(items=[]))
        resp = client.get("/api/audit/events")
        assert resp.status_code == 422

    def test_hospital_cannot_query_events(self, make_client):
        client = make_client(hospital_apollo(), make_mock_session(items=[]))
        resp = client.get("/api/audit/events", params={"event_type": "letter_generated"})
        assert resp.status_code == 403


class TestHealth:
    def test_degraded_when_database_down(self, app, make_client):
        db = MagicMock()
        db.health_check = AsyncMock(return_value=False)
        client = make_client(admin(), make_mock_session())
        app.dependency_overrides[get_db_service] = lambda: db

        resp = client.get("/health/")

        assert resp.status_code == 200
        assert resp.json() == {"status": "degraded", "database": False}

    def test_ok(self, app, make_client):
        db = MagicMock()
        db.health_check = AsyncMock(return_value=True)
        client = make_client(admin(), make_mock_session())
        app.dependency_overrides[get_db_service] = lambda: db

        resp = client.get("/health/")

        assert resp.json()["status"] == "ok"
