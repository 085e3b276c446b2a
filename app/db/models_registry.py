# app/db/models_registry.py
# Este archivo importa todos los modelos para que Alembic pueda detectarlos
# Se importa en alembic/env.py

from app.db.base import Base
from app.models.exam import User, Course, StudentEnrollment, Exam, ExamQuestion, QuestionOption
from app.models.attempt import ExamAttempt, AttemptAnswer, AttemptSecurityEvent, ExamResult
from app.models.certificate import Certificate

# Exportar Base para uso en Alembic
__all__ = [
    "Base",
    "User",
    "Course",
    "StudentEnrollment",
    "Exam",
    "ExamQuestion",
    "QuestionOption",
    "ExamAttempt",
    "AttemptAnswer",
    "AttemptSecurityEvent",
    "ExamResult",
    "Certificate",
]
