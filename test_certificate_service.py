from datetime import datetime, timezone

import pytest

from app.core.errors import ErrorKind, ExamPortalError
from app.crud.crud_certificate import certificate_crud
from app.models.attempt import AttemptStatusEnum, ExamAttempt, ExamResult
from app.models.certificate import Certificate
from app.schemas.certificates import CertificateVerification
from app.services.certificate_service import (
    DEFAULT_TRAINER_NAME,
    CertificateIssueInput,
    build_certificate_no,
    render_verification_page,
)


def _evaluated_result(db, catalog, clock, score=80.0):
    attempt = ExamAttempt(
        exam_id=catalog.exam_id,
        student_id=catalog.student_id,
        attempt_no=1,
        started_at=clock.now,
        submitted_at=clock.now,
        status=AttemptStatusEnum.EVALUATED,
    )
    db.add(attempt)
    db.flush()
    result = ExamResult(
        attempt_id=attempt.attempt_id,
        exam_id=catalog.exam_id,
        student_id=catalog.student_id,
        total_questions=4,
        correct_answers=3,
        wrong_answers=1,
        unanswered=0,
        max_marks=100,
        marks_obtained=score,
        score_percentage=score,
        passed=True,
        evaluated_at=clock.now,
    )
    db.add(result)
    db.commit()
    return result.result_id


def _issue_input(catalog, clock, result_id, score=80.0, faculty=True):
    return CertificateIssueInput(
        result_id=result_id,
        exam_id=catalog.exam_id,
        student_id=catalog.student_id,
        course_id=catalog.course_id,
        faculty_id=catalog.faculty_id if faculty else None,
        score_percentage=score,
        passed_at=clock.now,
    )


def _pdf_files(storage):
    if not storage.certificates_root.exists():
        return []
    return list(storage.certificates_root.glob("*.pdf"))


@pytest.mark.parametrize("course_code, expected", [
    ("PY-101", "CERT-202503-PY101X-00000042"),
    ("data-science-2025", "CERT-202503-DATASC-00000042"),
    ("", "CERT-202503-XXXXXX-00000042"),
])
def test_certificate_number_format(course_code, expected):
    passed_at = datetime(2025, 3, 31, 23, 0, tzinfo=timezone.utc)
    assert build_certificate_no(42, course_code, passed_at) == expected


def test_score_below_certificate_threshold_issues_nothing(certificate_service, db, catalog, clock, renderers, storage):
    result_id = _evaluated_result(db, catalog, clock, score=74.99)

    issued = certificate_service.issue_certificate_if_eligible(db, _issue_input(catalog, clock, result_id, 74.99))

    assert issued is None
    assert renderers.pdf_payloads == []
    assert certificate_crud.get_by_result_id(db, result_id) is None
    assert _pdf_files(storage) == []


def test_issue_certificate_at_threshold(certificate_service, db, catalog, clock, storage):
    result_id = _evaluated_result(db, catalog, clock, score=75.0)

    summary = certificate_service.issue_certificate_if_eligible(db, _issue_input(catalog, clock, result_id, 75.0))

    certificate_no = f"CERT-202503-PY101X-{result_id:08d}"
    assert summary.certificate_no == certificate_no
    assert summary.verification_url == (
        f"http://testserver/api/v1/certificates/verify/{certificate_no}/page?token=token-0001"
    )
    assert summary.verification_api_url == (
        f"http://testserver/api/v1/certificates/verify/{certificate_no}?token=token-0001"
    )
    stored = certificate_crud.get_by_result_id(db, result_id)
    assert stored.revoked is False
    assert stored.file_key.startswith(f"certificates/{certificate_no}-")
    assert len(_pdf_files(storage)) == 1


def test_issuing_twice_returns_the_existing_certificate(certificate_service, db, catalog, clock, renderers):
    result_id = _evaluated_result(db, catalog, clock)

    first = certificate_service.issue_certificate_if_eligible(db, _issue_input(catalog, clock, result_id))
    second = certificate_service.issue_certificate_if_eligible(db, _issue_input(catalog, clock, result_id))

    assert second.certificate_id == first.certificate_id
    assert len(renderers.pdf_payloads) == 1
    assert db.query(Certificate).count() == 1


def test_default_trainer_name_without_faculty(certificate_service, db, catalog, clock, renderers):
    result_id = _evaluated_result(db, catalog, clock)

    certificate_service.issue_certificate_if_eligible(db, _issue_input(catalog, clock, result_id, faculty=False))

    assert renderers.pdf_payloads[0]["trainer_name"] == DEFAULT_TRAINER_NAME


def test_losing_the_insert_race_returns_the_winner_and_removes_the_new_file(
        certificate_service, db, catalog, clock, storage, monkeypatch):
    result_id = _evaluated_result(db, catalog, clock)
    winner = Certificate(
        certificate_no="CERT-202503-PY101X-WINNER01",
        result_id=result_id,
        exam_id=catalog.exam_id,
        student_id=catalog.student_id,
        course_id=catalog.course_id,
        faculty_id=catalog.faculty_id,
        score_percentage=80.0,
        passed_at=clock.now,
        file_key="certificates/winner.pdf",
        qr_payload="http://testserver/winner",
        verification_token="winner-token",
        issued_at=clock.now,
    )
    db.add(winner)
    db.commit()

    original_lookup = certificate_crud.get_by_result_id
    calls = []

    def lookup_missing_first(session, wanted_result_id):
        calls.append(wanted_result_id)
        if len(calls) == 1:
            return None
        return original_lookup(session, wanted_result_id)

    monkeypatch.setattr(certificate_crud, "get_by_result_id", lookup_missing_first)

    summary = certificate_service.issue_certificate_if_eligible(db, _issue_input(catalog, clock, result_id))

    assert summary.certificate_no == "CERT-202503-PY101X-WINNER01"
    assert len(calls) == 2
    assert _pdf_files(storage) == []
    assert db.query(Certificate).count() == 1


def test_persistence_failure_removes_the_written_file(certificate_service, db, catalog, clock, storage, monkeypatch):
    result_id = _evaluated_result(db, catalog, clock)

    def broken_create(session, certificate):
        raise RuntimeError("disk full")

    monkeypatch.setattr(certificate_crud, "create", broken_create)

    with pytest.raises(RuntimeError):
        certificate_service.issue_certificate_if_eligible(db, _issue_input(catalog, clock, result_id))

    assert _pdf_files(storage) == []


# --- Verificación ---

def test_verify_valid_certificate(certificate_service, db, catalog, clock):
    result_id = _evaluated_result(db, catalog, clock)
    summary = certificate_service.issue_certificate_if_eligible(db, _issue_input(catalog, clock, result_id))

    verification = certificate_service.verify_certificate(db, summary.certificate_no)

    assert verification.valid is True
    assert verification.status == "VALID"
    assert verification.student_name == "Ana López"
    assert verification.course == "Python Fundamentals"
    assert verification.trainer_name == "Carla Ruiz"
    assert verification.issue_date == "2025-03-14"
    assert verification.verification_page_url.endswith(f"/verify/{summary.certificate_no}/page")

    with_token = certificate_service.verify_certificate(db, summary.certificate_no, "token-0001")
    assert with_token.valid is True


def test_verify_rejects_wrong_token_unknown_and_revoked(certificate_service, db, catalog, clock):
    result_id = _evaluated_result(db, catalog, clock)
    summary = certificate_service.issue_certificate_if_eligible(db, _issue_input(catalog, clock, result_id))

    wrong_token = certificate_service.verify_certificate(db, summary.certificate_no, "forged")
    unknown = certificate_service.verify_certificate(db, "CERT-000000-NOPE00-00000000")

    certificate = certificate_crud.get_by_no(db, summary.certificate_no)
    certificate.revoked = True
    certificate.revoked_at = clock.now
    db.commit()
    revoked = certificate_service.verify_certificate(db, summary.certificate_no)

    for verification in (wrong_token, unknown, revoked):
        assert verification.valid is False
        assert verification.status == "INVALID"
        assert verification.message == "Invalid Certificate"
        assert verification.student_name is None
    assert certificate_service.get_certificate_summary_by_result_id(db, result_id) is None
    assert certificate_service.list_student_certificates(db, catalog.student_id) == []


def test_student_download_is_scoped_to_owner(certificate_service, db, catalog, clock):
    result_id = _evaluated_result(db, catalog, clock)
    summary = certificate_service.issue_certificate_if_eligible(db, _issue_input(catalog, clock, result_id))

    download = certificate_service.get_student_certificate_download(db, catalog.student_id, summary.certificate_no)
    assert download.file_name == f"{summary.certificate_no}.pdf"
    assert download.absolute_path.endswith(".pdf")

    with pytest.raises(ExamPortalError) as exc_info:
        certificate_service.get_student_certificate_download(db, catalog.other_student_id, summary.certificate_no)
    assert exc_info.value.kind == ErrorKind.NOT_FOUND


def test_list_student_certificates(certificate_service, db, catalog, clock):
    result_id = _evaluated_result(db, catalog, clock)
    summary = certificate_service.issue_certificate_if_eligible(db, _issue_input(catalog, clock, result_id))

    items = certificate_service.list_student_certificates(db, catalog.student_id)

    assert [item.certificate_no for item in items] == [summary.certificate_no]
    assert items[0].course_name == "Python Fundamentals"
    assert items[0].score_percentage == 80.0


def test_verification_page_escapes_values():
    page = render_verification_page(CertificateVerification(
        valid=True,
        status="VALID",
        certificate_number="CERT-1",
        student_name="<script>alert(1)</script>",
        course="Python & Data",
        issue_date="2025-03-14",
    ))

    assert "<script>" not in page
    assert "&lt;script&gt;alert(1)&lt;/script&gt;" in page
    assert "Python &amp; Data" in page
    assert "Valid Certificate" in page


def test_invalid_verification_page():
    page = render_verification_page(CertificateVerification(
        valid=False, status="INVALID", certificate_number="X", message="Invalid Certificate",
    ))
    assert "Invalid Certificate" in page
