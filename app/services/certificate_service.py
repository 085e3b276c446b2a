# app/services/certificate_service.py
"""
Emisión y verificación de certificados.

A lo sumo un certificado por resultado evaluado: la unicidad de
``certificates.result_id`` decide la carrera entre evaluaciones concurrentes y
el perdedor lee el certificado del ganador.
"""
import html
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional
from urllib.parse import quote

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import ExamPortalError
from app.core.logging_config import get_certificate_logger
from app.core.metrics import certificates_issued_total
from app.crud import crud_catalog
from app.crud.crud_certificate import certificate_crud
from app.models.certificate import Certificate
from app.schemas.certificates import (
    CertificateSummary, CertificateVerification, StudentCertificateItem
)
from app.services.certificate_storage import CertificateStorage
from app.services.deadlines import ensure_utc
from app.utils.pdf_utils import generate_certificate_pdf
from app.utils.qr_utils import generate_verification_qr

logger = get_certificate_logger()

# Porcentaje mínimo para emitir certificado (más estricto que el de aprobación)
CERTIFICATE_MIN_PERCENTAGE = 75.0
DEFAULT_TRAINER_NAME = "Assigned Faculty"
INVALID_CERTIFICATE_MESSAGE = "Invalid Certificate"


@dataclass(frozen=True)
class CertificateIssueInput:
    result_id: int
    exam_id: int
    student_id: int
    course_id: int
    faculty_id: Optional[int]
    score_percentage: float
    passed_at: datetime


@dataclass(frozen=True)
class CertificateDownload:
    certificate_no: str
    absolute_path: str
    file_name: str


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_verification_token() -> str:
    return uuid.uuid4().hex


def build_certificate_no(result_id: int, course_code: str, passed_at: datetime) -> str:
    """
    CERT-<YYYYMM>-<código de curso normalizado a 6>-<result_id a 8 dígitos>
    """
    passed_at = ensure_utc(passed_at)
    normalized_code = re.sub(r"[^A-Za-z0-9]", "", course_code or "").upper()[:6].ljust(6, "X")
    return f"CERT-{passed_at.strftime('%Y%m')}-{normalized_code}-{str(result_id).zfill(8)}"


class CertificateService:
    def __init__(
        self,
        storage: CertificateStorage,
        base_url: str,
        qr_renderer: Callable[[str], bytes] = generate_verification_qr,
        pdf_renderer: Callable[..., bytes] = generate_certificate_pdf,
        token_factory: Callable[[], str] = _new_verification_token,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.storage = storage
        self.base_url = base_url.rstrip("/")
        self.qr_renderer = qr_renderer
        self.pdf_renderer = pdf_renderer
        self.token_factory = token_factory
        self.clock = clock

    # --- URLs ---

    @staticmethod
    def build_download_url(certificate_no: str) -> str:
        return f"/api/v1/student/certificates/{certificate_no}/download"

    def build_verification_api_url(self, certificate_no: str, verification_token: Optional[str] = None) -> str:
        url = f"{self.base_url}/api/v1/certificates/verify/{quote(certificate_no, safe='')}"
        if verification_token:
            url += f"?token={quote(verification_token, safe='')}"
        return url

    def build_verification_page_url(self, certificate_no: str, verification_token: Optional[str] = None) -> str:
        url = f"{self.base_url}/api/v1/certificates/verify/{quote(certificate_no, safe='')}/page"
        if verification_token:
            url += f"?token={quote(verification_token, safe='')}"
        return url

    def to_summary(self, certificate: Certificate) -> CertificateSummary:
        return CertificateSummary(
            certificate_id=certificate.certificate_id,
            certificate_no=certificate.certificate_no,
            issued_at=ensure_utc(certificate.issued_at),
            download_url=self.build_download_url(certificate.certificate_no),
            verification_url=self.build_verification_page_url(
                certificate.certificate_no, certificate.verification_token
            ),
            verification_api_url=self.build_verification_api_url(
                certificate.certificate_no, certificate.verification_token
            ),
        )

    # --- Emisión ---

    def issue_certificate_if_eligible(self, db: Session, data: CertificateIssueInput) -> Optional[CertificateSummary]:
        """
        Emite el certificado del resultado si alcanza el umbral.

        Idempotente: si ya existe un certificado para el resultado se devuelve
        ese; si otra evaluación gana la carrera del INSERT, se borra el PDF
        recién escrito y se devuelve el certificado del ganador.
        """
        if data.score_percentage < CERTIFICATE_MIN_PERCENTAGE:
            return None

        existing = certificate_crud.get_by_result_id(db, data.result_id)
        if existing:
            certificates_issued_total.labels(outcome="existing").inc()
            return self.to_summary(existing)

        student = crud_catalog.get_user(db, data.student_id)
        if student is None:
            raise ExamPortalError.not_found("Student not found while issuing certificate.")

        course = crud_catalog.get_course(db, data.course_id)
        if course is None:
            raise ExamPortalError.not_found("Course not found while issuing certificate.")

        faculty = crud_catalog.get_user(db, data.faculty_id) if data.faculty_id else None
        trainer_name = faculty.full_name if faculty else DEFAULT_TRAINER_NAME

        certificate_no = build_certificate_no(data.result_id, course.course_code, data.passed_at)
        verification_token = self.token_factory()
        verification_page_url = self.build_verification_page_url(certificate_no, verification_token)
        issued_at = self.clock()

        qr_png = self.qr_renderer(verification_page_url)
        pdf_bytes = self.pdf_renderer(
            {
                "certificate_no": certificate_no,
                "student_name": student.full_name,
                "course_name": course.course_name,
                "score_percentage": data.score_percentage,
                "passed_at": data.passed_at,
                "issued_at": issued_at,
                "trainer_name": trainer_name,
                "verification_url": verification_page_url,
            },
            qr_png,
        )

        stored_file = self.storage.save_certificate_pdf(certificate_no, pdf_bytes)

        certificate = Certificate(
            certificate_no=certificate_no,
            result_id=data.result_id,
            exam_id=data.exam_id,
            student_id=data.student_id,
            course_id=data.course_id,
            faculty_id=data.faculty_id,
            score_percentage=data.score_percentage,
            passed_at=data.passed_at,
            file_key=stored_file.file_key,
            qr_payload=verification_page_url,
            verification_token=verification_token,
            issued_at=issued_at,
            revoked=False,
            revoked_at=None,
        )

        try:
            saved = certificate_crud.create(db, certificate)
        except IntegrityError:
            db.rollback()
            self.storage.safe_delete(stored_file.file_key)
            winner = certificate_crud.get_by_result_id(db, data.result_id)
            if winner is None:
                raise
            logger.warning(
                f"Certificate for result {data.result_id} already issued by a concurrent request",
                extra={"result_id": data.result_id, "certificate_no": winner.certificate_no},
            )
            certificates_issued_total.labels(outcome="race_recovered").inc()
            return self.to_summary(winner)
        except Exception:
            db.rollback()
            self.storage.safe_delete(stored_file.file_key)
            logger.error(
                f"Error persisting certificate {certificate_no}",
                exc_info=True,
                extra={"result_id": data.result_id, "certificate_no": certificate_no},
            )
            raise

        logger.info(
            f"Certificate issued: {saved.certificate_no}",
            extra={
                "result_id": data.result_id,
                "student_id": data.student_id,
                "exam_id": data.exam_id,
                "certificate_no": saved.certificate_no,
            },
        )
        certificates_issued_total.labels(outcome="issued").inc()
        return self.to_summary(saved)

    # --- Consultas ---

    def get_certificate_summary_by_result_id(self, db: Session, result_id: int) -> Optional[CertificateSummary]:
        certificate = certificate_crud.get_active_by_result_id(db, result_id)
        return self.to_summary(certificate) if certificate else None

    def list_student_certificates(self, db: Session, student_id: int) -> List[StudentCertificateItem]:
        items = []
        for certificate, course_name in certificate_crud.list_for_student(db, student_id):
            items.append(StudentCertificateItem(
                certificate_id=certificate.certificate_id,
                certificate_no=certificate.certificate_no,
                course_name=course_name,
                score_percentage=certificate.score_percentage,
                passed_at=ensure_utc(certificate.passed_at),
                issued_at=ensure_utc(certificate.issued_at),
                revoked=certificate.revoked,
                download_url=self.build_download_url(certificate.certificate_no),
                verification_url=self.build_verification_page_url(
                    certificate.certificate_no, certificate.verification_token
                ),
                verification_api_url=self.build_verification_api_url(
                    certificate.certificate_no, certificate.verification_token
                ),
            ))
        return items

    def get_student_certificate_download(self, db: Session, student_id: int, certificate_no: str) -> CertificateDownload:
        certificate = certificate_crud.get_active_for_student(db, student_id, certificate_no)
        if certificate is None:
            raise ExamPortalError.not_found("Certificate not found for this student.")

        absolute_path = self.storage.get_readable_path(certificate.file_key)
        return CertificateDownload(
            certificate_no=certificate.certificate_no,
            absolute_path=str(absolute_path),
            file_name=f"{certificate.certificate_no}.pdf",
        )

    def verify_certificate(self, db: Session, certificate_no: str,
                           verification_token: Optional[str] = None) -> CertificateVerification:
        """
        Verificación pública. Un certificado desconocido, revocado o con token
        incorrecto responde INVALID sin distinguir el motivo.
        """
        certificate = certificate_crud.get_by_no(db, certificate_no)
        if certificate is None or certificate.revoked:
            return self._invalid(certificate_no)

        if verification_token and verification_token != certificate.verification_token:
            return self._invalid(certificate_no)

        student = crud_catalog.get_user(db, certificate.student_id)
        course = crud_catalog.get_course(db, certificate.course_id)
        faculty = crud_catalog.get_user(db, certificate.faculty_id) if certificate.faculty_id else None

        return CertificateVerification(
            valid=True,
            status="VALID",
            certificate_number=certificate.certificate_no,
            student_name=student.full_name if student else None,
            course=course.course_name if course else None,
            issue_date=ensure_utc(certificate.issued_at).strftime("%Y-%m-%d"),
            trainer_name=faculty.full_name if faculty else None,
            verification_api_url=self.build_verification_api_url(certificate.certificate_no),
            verification_page_url=self.build_verification_page_url(certificate.certificate_no),
        )

    @staticmethod
    def _invalid(certificate_no: str) -> CertificateVerification:
        return CertificateVerification(
            valid=False,
            status="INVALID",
            certificate_number=certificate_no,
            message=INVALID_CERTIFICATE_MESSAGE,
        )


def render_verification_page(verification: CertificateVerification) -> str:
    """Página HTML de verificación; todos los valores se escapan."""
    status_color = "#0f766e" if verification.valid else "#b91c1c"
    status_text = "Valid Certificate" if verification.valid else (verification.message or INVALID_CERTIFICATE_MESSAGE)

    def value(text: Optional[str]) -> str:
        return html.escape(text if text else "-")

    return f"""<!doctype html>
<html lang="en">
  <head>
    <meta charset="utf-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1" />
    <title>Certificate Verification</title>
    <style>
      body {{ font-family: Arial, sans-serif; background: #f4f7fb; margin: 0; padding: 24px; }}
      .card {{ max-width: 640px; margin: 0 auto; background: #ffffff; border: 1px solid #d6dee8; border-radius: 12px; padding: 24px; }}
      .title {{ font-size: 22px; margin: 0 0 18px; color: #1f2937; }}
      .status {{ display: inline-block; padding: 8px 12px; border-radius: 8px; color: #ffffff; font-weight: 700; background: {status_color}; margin-bottom: 16px; }}
      .row {{ margin: 10px 0; color: #111827; }}
      .label {{ font-weight: 700; color: #374151; }}
    </style>
  </head>
  <body>
    <section class="card">
      <h1 class="title">Certificate Verification</h1>
      <div class="status">{html.escape(status_text)}</div>
      <p class="row"><span class="label">Student Name:</span> {value(verification.student_name)}</p>
      <p class="row"><span class="label">Course:</span> {value(verification.course)}</p>
      <p class="row"><span class="label">Certificate Number:</span> {value(verification.certificate_number)}</p>
      <p class="row"><span class="label">Issue Date:</span> {value(verification.issue_date)}</p>
    </section>
  </body>
</html>"""
