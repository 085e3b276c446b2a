# app/api/v1/endpoints/certificates.py
"""
Verificación pública de certificados (JSON y página HTML para el código QR).
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import HTMLResponse
from sqlalchemy.orm import Session

from app.core.deps import get_certificate_service
from app.db.session import get_db
from app.schemas.certificates import CertificateVerification
from app.services.certificate_service import CertificateService, render_verification_page

router = APIRouter()


@router.get(
    "/verify/{certificate_no}",
    response_model=CertificateVerification,
    summary="Verificar un certificado",
)
def verify_certificate(
    certificate_no: str,
    token: Optional[str] = Query(None, description="Token de verificación impreso en el QR"),
    db: Session = Depends(get_db),
    certificates: CertificateService = Depends(get_certificate_service),
):
    return certificates.verify_certificate(db, certificate_no, token)


@router.get(
    "/verify/{certificate_no}/page",
    response_class=HTMLResponse,
    summary="Página pública de verificación",
)
def verification_page(
    certificate_no: str,
    token: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    certificates: CertificateService = Depends(get_certificate_service),
):
    verification = certificates.verify_certificate(db, certificate_no, token)
    return HTMLResponse(content=render_verification_page(verification))
