# app/services/scoring.py
"""
Motor de calificación de intentos.

Función pura: recibe las preguntas del examen (con su opción correcta) y
las respuestas del estudiante, y devuelve el resumen de la calificación.
"""
import math
import sys
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

from app.core.errors import ExamPortalError

# Porcentaje mínimo para aprobar un examen
PASS_PERCENTAGE = 70.0


@dataclass(frozen=True)
class ScoredQuestion:
    question_id: int
    marks: float
    correct_option_id: Optional[int] = None


@dataclass(frozen=True)
class ScoreSummary:
    total_questions: int
    correct_answers: int
    wrong_answers: int
    unanswered: int
    marks_obtained: float
    max_marks: float
    score_percentage: float
    passed: bool


def round2(value: float) -> float:
    """Redondeo half-up a 2 decimales, con epsilon contra errores de punto flotante."""
    return math.floor((value + sys.float_info.epsilon) * 100 + 0.5) / 100


def score_answers(
    questions: Sequence[ScoredQuestion],
    selected_by_question: Mapping[int, Optional[int]],
    exam_total_marks: float = 0,
) -> ScoreSummary:
    """
    Califica un intento.

    Args:
        questions: Preguntas del examen con sus marcas y opción correcta
        selected_by_question: question_id -> selected_option_id (None = sin responder)
        exam_total_marks: Puntaje total configurado en el examen (0 = usar suma de preguntas)
    """
    if not questions:
        raise ExamPortalError.bad_request("Cannot evaluate exam without questions.")

    correct_answers = 0
    wrong_answers = 0
    unanswered = 0
    marks_obtained = 0.0

    for question in questions:
        selected = selected_by_question.get(question.question_id)
        if selected is None:
            unanswered += 1
            continue

        # Sin opción correcta registrada nunca hay coincidencia
        if question.correct_option_id is not None and selected == question.correct_option_id:
            correct_answers += 1
            marks_obtained += float(question.marks)
        else:
            wrong_answers += 1

    marks_from_questions = sum(float(question.marks) for question in questions)
    total_marks = float(exam_total_marks or 0)
    max_marks = round2(total_marks if total_marks > 0 else marks_from_questions)
    # Un total configurado menor que la suma de las preguntas acota el puntaje
    marks_obtained = min(round2(marks_obtained), max_marks)
    score_percentage = round2(marks_obtained * 100 / max_marks) if max_marks > 0 else 0.0

    return ScoreSummary(
        total_questions=len(questions),
        correct_answers=correct_answers,
        wrong_answers=wrong_answers,
        unanswered=unanswered,
        marks_obtained=marks_obtained,
        max_marks=max_marks,
        score_percentage=score_percentage,
        passed=score_percentage >= PASS_PERCENTAGE,
    )
