# app/api/v1/endpoints/student.py
"""
Endpoints del estudiante: ciclo de vida de intentos, resultados y certificados.
Todas las consultas se filtran por el estudiante autenticado.
"""
import logging
from typing import List, Optional, Union

from fastapi import APIRouter, Body, Depends
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from app.core.deps import (
    CurrentUser,
    get_attempt_service,
    get_certificate_service,
    get_client_context,
    require_student,
)
from app.db.session import get_db
from app.schemas.attempts import (
    AnswersSavedResponse,
    AttemptOutcomeResponse,
    AttemptStartResponse,
    AttemptStateResponse,
    HeartbeatRequest,
    HeartbeatResponse,
    SaveAnswersRequest,
    SecurityEventRequest,
    SecurityEventResponse,
    StudentResultItem,
    SubmitAttemptRequest,
)
from app.schemas.certificates import StudentCertificateItem
from app.services.anti_cheat import ClientContext, HeartbeatTelemetry
from app.services.attempt_service import AttemptService
from app.services.certificate_service import CertificateService

router = APIRouter()
logger = logging.getLogger('app.api.student')


@router.post(
    "/exams/{exam_id}/attempts/start",
    response_model=AttemptStartResponse,
    summary="Iniciar un intento de examen",
)
def start_exam(
    exam_id: int,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_student),
    client: ClientContext = Depends(get_client_context),
    service: AttemptService = Depends(get_attempt_service),
):
    """
    Crea un intento IN_PROGRESS y devuelve las preguntas (sin la respuesta correcta)
    junto con la fecha límite del intento.
    """
    logger.info(f"Student {user.user_id} starting exam {exam_id}")
    return service.start_exam(db, user.user_id, exam_id, client)


# Alias heredado de la ruta de inicio
router.add_api_route(
    "/exams/{exam_id}/attempts",
    start_exam,
    methods=["POST"],
    response_model=AttemptStartResponse,
    include_in_schema=False,
)


@router.patch(
    "/attempts/{attempt_id}/answers",
    response_model=Union[AnswersSavedResponse, AttemptOutcomeResponse],
    summary="Guardar respuestas del intento",
)
def save_answers(
    attempt_id: int,
    payload: SaveAnswersRequest,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_student),
    client: ClientContext = Depends(get_client_context),
    service: AttemptService = Depends(get_attempt_service),
):
    """
    Upsert por pregunta. Si el tiempo ya expiró el intento se envía
    automáticamente y se devuelve el resultado en lugar de guardar.
    """
    return service.save_answers(db, user.user_id, attempt_id, payload.answers, client)


@router.post(
    "/attempts/{attempt_id}/heartbeat",
    response_model=Union[HeartbeatResponse, AttemptOutcomeResponse],
    summary="Heartbeat anti-trampas del intento",
)
def heartbeat(
    attempt_id: int,
    payload: HeartbeatRequest,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_student),
    client: ClientContext = Depends(get_client_context),
    service: AttemptService = Depends(get_attempt_service),
):
    telemetry = HeartbeatTelemetry(
        tab_switch_count=payload.tab_switch_count,
        fullscreen_exit_count=payload.fullscreen_exit_count,
        copy_paste_count=payload.copy_paste_count,
        devtools_open=payload.devtools_open,
        multiple_face_detected=payload.multiple_face_detected,
    )
    return service.heartbeat(db, user.user_id, attempt_id, telemetry, client)


@router.post(
    "/attempts/{attempt_id}/security-events",
    response_model=Union[SecurityEventResponse, AttemptOutcomeResponse],
    summary="Registrar un evento de seguridad",
)
def record_security_event(
    attempt_id: int,
    payload: SecurityEventRequest,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_student),
    client: ClientContext = Depends(get_client_context),
    service: AttemptService = Depends(get_attempt_service),
):
    return service.record_security_event(db, user.user_id, attempt_id, payload, client)


@router.post(
    "/attempts/{attempt_id}/submit",
    response_model=AttemptOutcomeResponse,
    summary="Enviar el intento para evaluación",
)
def submit_exam(
    attempt_id: int,
    payload: Optional[SubmitAttemptRequest] = Body(None),
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_student),
    client: ClientContext = Depends(get_client_context),
    service: AttemptService = Depends(get_attempt_service),
):
    """
    Idempotente: reenviar un intento ya evaluado devuelve el mismo resultado.
    """
    time_spent = payload.time_spent_seconds if payload else None
    return service.submit_exam(db, user.user_id, attempt_id, time_spent, client)


@router.get(
    "/attempts/{attempt_id}",
    response_model=Union[AttemptStateResponse, AttemptOutcomeResponse],
    summary="Estado actual del intento",
)
def get_attempt_state(
    attempt_id: int,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_student),
    client: ClientContext = Depends(get_client_context),
    service: AttemptService = Depends(get_attempt_service),
):
    return service.get_attempt_state(db, user.user_id, attempt_id, client)


@router.get("/results", response_model=List[StudentResultItem], summary="Resultados del estudiante")
def list_results(
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_student),
    service: AttemptService = Depends(get_attempt_service),
):
    return service.list_results(db, user.user_id)


@router.get(
    "/certificates",
    response_model=List[StudentCertificateItem],
    summary="Certificados del estudiante",
)
def list_certificates(
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_student),
    certificates: CertificateService = Depends(get_certificate_service),
):
    return certificates.list_student_certificates(db, user.user_id)


@router.get("/certificates/{certificate_no}/download", summary="Descargar PDF del certificado")
def download_certificate(
    certificate_no: str,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_student),
    certificates: CertificateService = Depends(get_certificate_service),
):
    download = certificates.get_student_certificate_download(db, user.user_id, certificate_no)
    logger.info(f"Student {user.user_id} downloading certificate {download.certificate_no}")
    return FileResponse(
        download.absolute_path,
        media_type="application/pdf",
        filename=download.file_name,
    )
