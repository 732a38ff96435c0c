"""Functional tests: workflow errors surface as RFC 7807 bodies with a typed kind."""

from unittest.mock import AsyncMock, patch

import pytest
from mediconnect_db.enums import LetterStatus, VisaStage

from mediconnect_api.services.errors import ConflictError, StorageError

from ..factories import make_result
from .data_factory import make_app_amara_101, make_app_rahim_201
from .mock_db import make_mock_session, make_sequence_session
from .personas import admin, hospital_apollo, hospital_fortis, patient_amara

pytestmark = pytest.mark.functional


def _assert_problem(resp, status, kind):
    assert resp.status_code == status
    body = resp.json()
    assert body["type"] == f"/errors/{kind}"
    assert body["status"] == status
    assert body["instance"] == resp.request.url.path
    return body


def test_unknown_application_is_not_found(make_client):
    client = make_client(admin(), make_mock_session(single=None))
    resp = client.get("/api/visa-applications/999")
    body = _assert_problem(resp, 404, "not-found")
    assert body["title"] == "Not Found"


def test_illegal_transition_is_409(make_client):
    client = make_client(hospital_apollo(), make_mock_session(single=make_app_amara_101()))
    resp = client.post(
        "/api/visa-applications/101/advance", json={"target_stage": "sent_to_embassy"},
    )
    _assert_problem(resp, 409, "illegal-transition")


def test_self_transition_is_409(make_client):
    client = make_client(hospital_apollo(), make_mock_session(single=make_app_amara_101()))
    resp = client.post(
        "/api/visa-applications/101/advance", json={"target_stage": "admin_verification"},
    )
    body = _assert_problem(resp, 409, "illegal-transition")
    assert "self-transitions" in body["detail"]


def test_unverified_letter_is_precondition_failure(make_client):
    client = make_client(hospital_fortis(), make_mock_session(single=make_app_rahim_201()))
    resp = client.post(
        "/api/visa-applications/201/advance", json={"target_stage": "visa_support_approved"},
    )
    body = _assert_problem(resp, 412, "precondition")
    assert body["title"] == "Precondition Failed"


def test_lost_race_is_conflict(make_client):
    app = make_app_amara_101(stage=VisaStage.DOCUMENTS_UPLOADED, required_documents=[])
    moved = make_app_amara_101(stage=VisaStage.ADMIN_VERIFICATION, required_documents=[])
    session = make_sequence_session(
        make_result(value=app), make_result(rowcount=0), make_result(value=moved),
    )
    client = make_client(hospital_apollo(), session)

    resp = client.post(
        "/api/visa-applications/101/advance", json={"target_stage": "admin_verification"},
    )

    _assert_problem(resp, 409, "conflict")


def test_conflict_from_service_keeps_detail(make_client):
    client = make_client(admin(), make_mock_session())
    with patch(
        "mediconnect_api.services.workflow.advance",
        AsyncMock(side_effect=ConflictError("Application 101 changed concurrently")),
    ):
        resp = client.post(
            "/api/visa-applications/101/advance", json={"target_stage": "hospital_letter_verified"},
        )
    body = _assert_problem(resp, 409, "conflict")
    assert body["detail"] == "Application 101 changed concurrently"


def test_reject_without_reason_is_validation_error(make_client):
    client = make_client(admin(), make_mock_session(single=make_app_amara_101()))
    resp = client.post("/api/visa-applications/101/reject", json={"reason": "   "})
    _assert_problem(resp, 422, "validation")


def test_malformed_body_is_validation_error(make_client):
    client = make_client(admin(), make_mock_session())
    resp = client.post("/api/visa-applications/101/advance", json={"target_stage": "teleported"})
    _assert_problem(resp, 422, "validation")


def test_storage_failure_is_502(make_client, mock_storage):
    mock_storage.upload.side_effect = StorageError("Blob store write failed for 'x'")
    client = make_client(patient_amara(), make_sequence_session())

    resp = client.post(
        "/api/documents/",
        data={"document_type": "passport"},
        files={"file": ("passport.pdf", b"%PDF-1.7", "application/pdf")},
    )

    _assert_problem(resp, 502, "storage")


def test_verify_letter_twice_is_precondition_failure(make_client):
    app = make_app_rahim_201(letter_status=LetterStatus.VERIFIED)
    client = make_client(hospital_fortis(), make_mock_session(single=app))
    resp = client.post("/api/visa-applications/201/letter/verify")
    _assert_problem(resp, 412, "precondition")


def test_request_id_is_echoed(make_client):
    client = make_client(admin(), make_mock_session(single=None))
    resp = client.get("/api/visa-applications/999", headers={"X-Request-ID": "req-abc"})
    assert resp.json()["request_id"] == "req-abc"
