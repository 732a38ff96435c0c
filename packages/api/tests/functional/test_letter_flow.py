"""Functional tests: invitation letter generation, verification, and retrieval."""

import pytest
from mediconnect_db import Document
from mediconnect_db.enums import DocumentStatus, DocumentType, LetterStatus, VisaStage

from ..factories import added_of_type, audit_results, make_mock_document, make_result
from .data_factory import make_app_amara_101, make_app_rahim_201
from .mock_db import make_mock_session, make_sequence_session
from .personas import (
    FORTIS_USER_ID,
    RAHIM_USER_ID,
    admin,
    hospital_fortis,
    patient_rahim,
)

pytestmark = pytest.mark.functional

_LETTER_BODY = {
    "patient_name": "Rahim Uddin",
    "doctor_name": "Dr. Priya Sharma",
    "designation": "Senior Cardiologist",
    "purpose": "Coronary bypass surgery",
    "treatment_duration": "3 weeks",
    "stay_duration": "6 weeks",
}


def _letter_document(status=DocumentStatus.PENDING):
    return make_mock_document(
        id=77,
        user_id=RAHIM_USER_ID,
        document_type=DocumentType.VISA_INVITATION_LETTER,
        verification_status=status,
    )


class TestGenerate:
    def test_hospital_generates_letter(self, make_client, mock_storage):
        app = make_app_rahim_201(letter_status=LetterStatus.NOT_GENERATED, letter_document_id=None)
        after = make_app_rahim_201(letter_document_id=501)
        session = make_sequence_session(
            make_result(value=app),
            make_result(rowcount=1),
            *audit_results(),
            make_result(value=after),
        )
        client = make_client(hospital_fortis(), session)

        resp = client.post("/api/visa-applications/201/letter", json=_LETTER_BODY)

        assert resp.status_code == 201
        body = resp.json()
        assert body["letter_status"] == "generated"
        assert body["hospital_letter_verified"] is False
        assert body["document"]["document_type"] == "visa_invitation_letter"
        assert body["document"]["user_id"] == RAHIM_USER_ID
        assert body["document"]["uploaded_by"] == FORTIS_USER_ID

        owner, path, data, content_type = mock_storage.upload.await_args.args
        assert owner == RAHIM_USER_ID
        assert path == "visa-letters/application-101-test.txt"
        assert content_type == "text/plain"
        text = data.decode("utf-8")
        assert "RE: MEDICAL VISA SUPPORT FOR RAHIM UDDIN" in text
        assert text.count("Fortis Hospital") >= 2

        [doc] = added_of_type(session, Document)
        assert doc.file_url == f"http://minio/documents/{RAHIM_USER_ID}/{path}"

    def test_empty_field_is_rejected_before_storage(self, make_client, mock_storage):
        client = make_client(hospital_fortis(), make_sequence_session())
        resp = client.post(
            "/api/visa-applications/201/letter", json={**_LETTER_BODY, "doctor_name": "  "},
        )
        assert resp.status_code == 422
        assert "doctor_name" in resp.json()["detail"]
        mock_storage.upload.assert_not_awaited()

    def test_rejected_application_cannot_get_letter(self, make_client, mock_storage):
        app = make_app_rahim_201(stage=VisaStage.REJECTED)
        client = make_client(hospital_fortis(), make_mock_session(single=app))
        resp = client.post("/api/visa-applications/201/letter", json=_LETTER_BODY)
        assert resp.status_code == 409
        mock_storage.upload.assert_not_awaited()

    def test_verified_letter_cannot_be_regenerated(self, make_client, mock_storage):
        app = make_app_rahim_201(letter_status=LetterStatus.VERIFIED)
        client = make_client(hospital_fortis(), make_mock_session(single=app))
        resp = client.post("/api/visa-applications/201/letter", json=_LETTER_BODY)
        assert resp.status_code == 412
        mock_storage.upload.assert_not_awaited()


class TestVerify:
    def test_hospital_verifies_generated_letter(self, make_client):
        verified = make_app_rahim_201(letter_status=LetterStatus.VERIFIED)
        session = make_sequence_session(
            make_result(value=make_app_rahim_201()),
            make_result(rowcount=1),
            make_result(rowcount=1),
            *audit_results(),
            make_result(value=verified),
            make_result(value=_letter_document(DocumentStatus.VERIFIED)),
        )
        client = make_client(hospital_fortis(), session)

        resp = client.post("/api/visa-applications/201/letter/verify")

        assert resp.status_code == 200
        body = resp.json()
        assert body["letter_status"] == "verified"
        assert body["hospital_letter_verified"] is True
        assert body["document"]["id"] == 77
        assert body["document"]["verification_status"] == "verified"

    def test_verify_without_letter_is_precondition_failure(self, make_client):
        app = make_app_amara_101()
        client = make_client(admin(), make_mock_session(single=app))
        resp = client.post("/api/visa-applications/101/letter/verify")
        assert resp.status_code == 412
        assert resp.json()["detail"] == "No invitation letter has been generated for this application"


class TestRead:
    def test_patient_reads_own_letter(self, make_client):
        session = make_sequence_session(
            make_result(value=make_app_rahim_201()), make_result(value=_letter_document()),
        )
        client = make_client(patient_rahim(), session)

        resp = client.get("/api/visa-applications/201/letter")

        assert resp.status_code == 200
        body = resp.json()
        assert body["letter_status"] == "generated"
        assert body["document"]["file_type"] == "application/pdf"

    def test_no_letter_yet(self, make_client):
        session = make_sequence_session(make_result(value=make_app_amara_101()))
        client = make_client(admin(), session)

        resp = client.get("/api/visa-applications/101/letter")

        assert resp.status_code == 200
        assert resp.json() == {
            "application_id": 101,
            "letter_status": "not_generated",
            "hospital_letter_verified": False,
            "document": None,
        }
