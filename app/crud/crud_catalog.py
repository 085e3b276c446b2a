# app/crud/crud_catalog.py
"""
Lecturas del catálogo (exámenes, preguntas, inscripciones, usuarios, cursos).
El núcleo de intentos nunca escribe en estas tablas.
"""
from typing import Dict, Iterable, List, Optional
from sqlalchemy.orm import Session

from app.models.exam import (
    Course, EnrollmentStatusEnum, Exam, ExamQuestion, QuestionOption,
    StudentEnrollment, User
)

# Inscripciones que habilitan presentar exámenes
ELIGIBLE_ENROLLMENT_STATUSES = (EnrollmentStatusEnum.ACTIVE, EnrollmentStatusEnum.COMPLETED)


def get_exam(db: Session, exam_id: int) -> Optional[Exam]:
    return db.query(Exam).filter(Exam.exam_id == exam_id).first()


def get_user(db: Session, user_id: int) -> Optional[User]:
    return db.query(User).filter(User.user_id == user_id).first()


def get_course(db: Session, course_id: int) -> Optional[Course]:
    return db.query(Course).filter(Course.course_id == course_id).first()


def get_eligible_enrollment(db: Session, student_id: int, batch_id: int) -> Optional[StudentEnrollment]:
    """
    Obtiene la inscripción ACTIVE o COMPLETED del estudiante en el batch del examen.
    """
    return (
        db.query(StudentEnrollment)
        .filter(
            StudentEnrollment.student_id == student_id,
            StudentEnrollment.batch_id == batch_id,
            StudentEnrollment.status.in_(ELIGIBLE_ENROLLMENT_STATUSES),
        )
        .first()
    )


def get_exam_questions(db: Session, exam_id: int) -> List[ExamQuestion]:
    """
    Preguntas del examen en su orden de presentación.
    """
    return (
        db.query(ExamQuestion)
        .filter(ExamQuestion.exam_id == exam_id)
        .order_by(ExamQuestion.display_order, ExamQuestion.question_id)
        .all()
    )


def get_questions_by_ids(db: Session, exam_id: int, question_ids: Iterable[int]) -> List[ExamQuestion]:
    return (
        db.query(ExamQuestion)
        .filter(ExamQuestion.exam_id == exam_id, ExamQuestion.question_id.in_(list(question_ids)))
        .all()
    )


def get_options_for_questions(db: Session, question_ids: Iterable[int]) -> List[QuestionOption]:
    return (
        db.query(QuestionOption)
        .filter(QuestionOption.question_id.in_(list(question_ids)))
        .order_by(QuestionOption.option_key)
        .all()
    )


def get_options_by_ids(db: Session, option_ids: Iterable[int]) -> List[QuestionOption]:
    return db.query(QuestionOption).filter(QuestionOption.option_id.in_(list(option_ids))).all()


def get_correct_option_map(db: Session, question_ids: Iterable[int]) -> Dict[int, int]:
    """
    question_id -> option_id de la opción correcta.
    Si hubiera más de una marcada como correcta se conserva la primera por clave.
    """
    options = (
        db.query(QuestionOption)
        .filter(
            QuestionOption.question_id.in_(list(question_ids)),
            QuestionOption.is_correct == True,  # noqa: E712
        )
        .order_by(QuestionOption.option_key)
        .all()
    )
    correct = {}
    for option in options:
        correct.setdefault(option.question_id, option.option_id)
    return correct
