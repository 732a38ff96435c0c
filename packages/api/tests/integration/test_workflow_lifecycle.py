"""End-to-end lifecycle against real PostgreSQL and MinIO."""

import pytest
from mediconnect_db.enums import ApplicationStatus, DocumentType, LetterStatus, VisaStage

from mediconnect_api.schemas.letter import LetterGenerateRequest
from mediconnect_api.services import document as doc_service
from mediconnect_api.services import letter as letter_service
from mediconnect_api.services import workflow
from mediconnect_api.services.audit import get_events_by_application, verify_audit_chain
from mediconnect_api.services.checklist import get_checklist
from mediconnect_api.services.errors import PreconditionError

from .helpers import ADMIN, HOSPITAL, OTHER_PATIENT, PATIENT, add_requirement, application_body

pytestmark = pytest.mark.integration


async def _upload(session, doc_type):
    return await doc_service.upload_document(
        session,
        PATIENT,
        doc_type=doc_type,
        filename=f"{doc_type.value}.pdf",
        content_type="application/pdf",
        file_data=b"%PDF-1.7 integration",
    )


async def test_happy_path(db_session, storage_service):
    await add_requirement(db_session, code="US", required=("passport", "passport_photo"))
    app = await workflow.submit_application(db_session, PATIENT, application_body("us"))
    assert app.workflow_stage == VisaStage.DOCUMENTS_UPLOADED
    assert app.required_documents == ["passport", "passport_photo"]

    await _upload(db_session, DocumentType.PASSPORT)
    with pytest.raises(PreconditionError, match="passport_photo"):
        await workflow.advance(db_session, HOSPITAL, app.id, VisaStage.ADMIN_VERIFICATION)

    await _upload(db_session, DocumentType.PASSPORT_PHOTO)
    checklist = await get_checklist(db_session, PATIENT, app.id)
    assert checklist.is_complete

    await workflow.advance(db_session, HOSPITAL, app.id, VisaStage.ADMIN_VERIFICATION)
    await workflow.advance(db_session, ADMIN, app.id, VisaStage.HOSPITAL_LETTER_VERIFIED)

    with pytest.raises(PreconditionError):
        await workflow.advance(db_session, HOSPITAL, app.id, VisaStage.VISA_SUPPORT_APPROVED)

    letter = await letter_service.generate_letter(
        db_session,
        HOSPITAL,
        app.id,
        LetterGenerateRequest(
            doctor_name="Dr. Ade",
            designation="Oncologist",
            purpose="Chemotherapy",
            treatment_duration="8 weeks",
            stay_duration="10 weeks",
        ),
    )
    stored = await storage_service.download(letter.storage_key)
    assert b"MEDICAL VISA SUPPORT LETTER" in stored

    verified = await letter_service.verify_letter(db_session, HOSPITAL, app.id)
    assert verified.letter_status == LetterStatus.VERIFIED
    assert verified.letter_document_id == letter.id

    await workflow.advance(db_session, HOSPITAL, app.id, VisaStage.VISA_SUPPORT_APPROVED)
    await workflow.advance(db_session, ADMIN, app.id, VisaStage.SENT_TO_EMBASSY)
    done = await workflow.approve(db_session, ADMIN, app.id)

    assert done.workflow_stage == VisaStage.COMPLETED
    assert done.application_status == ApplicationStatus.APPROVED

    log = await workflow.get_workflow_log(db_session, PATIENT, app.id)
    assert workflow.is_valid_walk([e.stage for e in log])
    assert [e.stage for e in log][-1] == VisaStage.COMPLETED

    events = await get_events_by_application(db_session, app.id)
    assert [e.event_type for e in events] == ["letter_generated", "letter_verified"]
    assert (await verify_audit_chain(db_session))["status"] == "OK"


async def test_rejection_is_terminal(db_session):
    await add_requirement(db_session, code="GB", required=())
    app = await workflow.submit_application(db_session, PATIENT, application_body("GB"))

    rejected = await workflow.reject(db_session, ADMIN, app.id, "Passport damaged")

    assert rejected.application_status == ApplicationStatus.REJECTED
    assert rejected.rejection_reason == "Passport damaged"
    progress = await workflow.get_progress(db_session, PATIENT, app.id)
    assert progress.is_terminal
    assert progress.current_step == 1


async def test_scope_hides_other_patients(db_session):
    await add_requirement(db_session, code="NG", required=())
    app = await workflow.submit_application(db_session, PATIENT, application_body("NG"))

    assert await workflow.get_application(db_session, OTHER_PATIENT, app.id) is None
    assert await workflow.get_application(db_session, HOSPITAL, app.id) is not None
    rows, total = await workflow.list_applications(db_session, OTHER_PATIENT)
    assert (rows, total) == ([], 0)


async def test_registry_edit_does_not_move_snapshot(db_session):
    req = await add_requirement(db_session, code="BD", required=("passport",))
    app = await workflow.submit_application(db_session, PATIENT, application_body("BD"))

    req.required_documents = ["passport", "bank_statement"]
    await db_session.commit()

    checklist = await get_checklist(db_session, PATIENT, app.id)
    assert [i.doc_type for i in checklist.items] == [DocumentType.PASSPORT]
