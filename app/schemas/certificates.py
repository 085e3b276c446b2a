# app/schemas/certificates.py
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional


class CertificateSummary(BaseModel):
    """Resumen del certificado adjunto a un resultado."""
    certificate_id: int
    certificate_no: str = Field(..., description="Número único del certificado")
    issued_at: datetime
    download_url: str = Field(..., description="Ruta de descarga del PDF (requiere sesión de estudiante)")
    verification_url: str = Field(..., description="Página pública de verificación (con token)")
    verification_api_url: str = Field(..., description="Endpoint JSON de verificación (con token)")

    class Config:
        json_schema_extra = {
            "example": {
                "certificate_id": 1,
                "certificate_no": "CERT-202610-PY101X-00000042",
                "issued_at": "2026-10-17T10:15:00Z",
                "download_url": "/api/v1/student/certificates/CERT-202610-PY101X-00000042/download",
                "verification_url": "http://localhost:8000/api/v1/certificates/verify/CERT-202610-PY101X-00000042/page?token=9f1c...",
                "verification_api_url": "http://localhost:8000/api/v1/certificates/verify/CERT-202610-PY101X-00000042?token=9f1c..."
            }
        }


class StudentCertificateItem(BaseModel):
    certificate_id: int
    certificate_no: str
    course_name: Optional[str] = None
    score_percentage: float
    passed_at: datetime
    issued_at: datetime
    revoked: bool
    download_url: str
    verification_url: str
    verification_api_url: str


class CertificateVerification(BaseModel):
    """Resultado público de la verificación de un certificado."""
    valid: bool
    status: str = Field(..., description="VALID o INVALID")
    certificate_number: str
    student_name: Optional[str] = None
    course: Optional[str] = None
    issue_date: Optional[str] = Field(None, description="Fecha de emisión (YYYY-MM-DD)")
    trainer_name: Optional[str] = None
    verification_api_url: Optional[str] = None
    verification_page_url: Optional[str] = None
    message: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "valid": False,
                "status": "INVALID",
                "certificate_number": "CERT-202610-PY101X-00000042",
                "message": "Invalid Certificate"
            }
        }
