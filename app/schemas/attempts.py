# app/schemas/attempts.py
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Any, Dict, List, Optional

from app.models.attempt import AttemptStatusEnum, SecurityEventTypeEnum
from app.schemas.certificates import CertificateSummary


# --- Peticiones ---

class AnswerEntry(BaseModel):
    question_id: int = Field(..., description="ID de la pregunta del examen")
    selected_option_id: Optional[int] = Field(None, description="Opción elegida; null limpia la respuesta")
    is_marked_for_review: Optional[bool] = Field(None, description="Marca de revisión; null conserva el valor guardado")


class SaveAnswersRequest(BaseModel):
    """Schema para guardar respuestas de un intento."""
    answers: List[AnswerEntry] = Field(..., min_length=1)

    class Config:
        json_schema_extra = {
            "example": {
                "answers": [
                    {"question_id": 10, "selected_option_id": 41, "is_marked_for_review": False},
                    {"question_id": 11, "selected_option_id": None}
                ]
            }
        }


class HeartbeatRequest(BaseModel):
    """Telemetría anti-trampas que el navegador envía periódicamente."""
    tab_switch_count: int = Field(0, ge=0)
    fullscreen_exit_count: int = Field(0, ge=0)
    copy_paste_count: int = Field(0, ge=0)
    devtools_open: bool = False
    multiple_face_detected: bool = False

    class Config:
        json_schema_extra = {
            "example": {
                "tab_switch_count": 2,
                "fullscreen_exit_count": 0,
                "copy_paste_count": 0,
                "devtools_open": False,
                "multiple_face_detected": False
            }
        }


class SecurityEventRequest(BaseModel):
    event_type: SecurityEventTypeEnum
    risk_score: Optional[int] = Field(None, ge=0, le=100, description="Si se omite se usa el riesgo por defecto del tipo")
    event_data: Optional[Dict[str, Any]] = None


class SubmitAttemptRequest(BaseModel):
    time_spent_seconds: Optional[int] = Field(None, description="Tiempo reportado por el cliente (se acota al medido por el servidor)")


# --- Respuestas ---

class StudentOption(BaseModel):
    option_id: int
    option_key: str
    option_text: str


class StudentQuestion(BaseModel):
    question_id: int
    question_text: str
    image_key: Optional[str] = None
    marks: float
    options: List[StudentOption]


class AttemptStartResponse(BaseModel):
    attempt_id: int
    exam_id: int
    attempt_no: int
    started_at: datetime
    deadline_at: datetime
    remaining_seconds: int
    time_limit_minutes: int
    status: AttemptStatusEnum
    questions: List[StudentQuestion]


class ExamResultResponse(BaseModel):
    result_id: int
    attempt_id: int
    exam_id: int
    student_id: int
    total_questions: int
    correct_answers: int
    wrong_answers: int
    unanswered: int
    max_marks: float
    marks_obtained: float
    score_percentage: float
    passed: bool
    evaluated_at: datetime
    certificate: Optional[CertificateSummary] = None


class AttemptOutcomeResponse(BaseModel):
    """Respuesta de toda transición terminal (envío manual o automático)."""
    attempt_id: int
    status: AttemptStatusEnum
    auto_submitted: bool
    reason: Optional[str] = None
    result: Optional[ExamResultResponse] = None


class AnswersSavedResponse(BaseModel):
    attempt_id: int
    status: AttemptStatusEnum
    answered_count: int
    remaining_seconds: int
    deadline_at: datetime


class HeartbeatResponse(BaseModel):
    attempt_id: int
    status: AttemptStatusEnum
    auto_submitted: bool = False
    deadline_at: datetime
    remaining_seconds: int


class SecurityEventResponse(BaseModel):
    event_id: int
    attempt_id: int
    event_type: SecurityEventTypeEnum
    risk_score: int
    occurred_at: datetime


class AttemptStateResponse(BaseModel):
    attempt_id: int
    exam_id: int
    status: AttemptStatusEnum
    started_at: datetime
    submitted_at: Optional[datetime] = None
    deadline_at: datetime
    remaining_seconds: int
    answered_count: int
    result: Optional[ExamResultResponse] = None


class StudentResultItem(BaseModel):
    result_id: int
    attempt_id: int
    exam_id: int
    exam_title: Optional[str] = None
    total_questions: int
    correct_answers: int
    wrong_answers: int
    unanswered: int
    max_marks: float
    marks_obtained: float
    score_percentage: float
    passed: bool
    evaluated_at: datetime
    certificate_no: Optional[str] = None
    certificate_download_url: Optional[str] = None
