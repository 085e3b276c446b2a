# app/crud/crud_attempt.py
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import and_, desc
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from app.models.attempt import (
    AttemptAnswer, AttemptSecurityEvent, AttemptStatusEnum, ExamAttempt, ExamResult
)
from app.models.certificate import Certificate
from app.models.exam import Exam
from app.services.anti_cheat import ClientContext, SecurityEventDraft
from app.services.scoring import ScoreSummary


def _dialect_insert(db: Session):
    """INSERT ... ON CONFLICT según el motor (PostgreSQL en producción, SQLite en pruebas)."""
    if db.get_bind().dialect.name == "postgresql":
        return postgresql_insert
    return sqlite_insert


class CRUDAttempt:
    """
    Acceso a intentos, respuestas, eventos de seguridad y resultados.

    Las transiciones de estado son compare-and-swap: solo se aplican si el
    intento sigue en el estado esperado. Los métodos que forman parte de una
    transición no hacen commit; el servicio decide el límite de la transacción.
    """

    def get(self, db: Session, attempt_id: int) -> Optional[ExamAttempt]:
        return db.query(ExamAttempt).filter(ExamAttempt.attempt_id == attempt_id).first()

    def get_owned(self, db: Session, attempt_id: int, student_id: int) -> Optional[ExamAttempt]:
        return (
            db.query(ExamAttempt)
            .filter(ExamAttempt.attempt_id == attempt_id, ExamAttempt.student_id == student_id)
            .first()
        )

    def get_active(self, db: Session, student_id: int, exam_id: int) -> Optional[ExamAttempt]:
        return (
            db.query(ExamAttempt)
            .filter(
                ExamAttempt.student_id == student_id,
                ExamAttempt.exam_id == exam_id,
                ExamAttempt.status == AttemptStatusEnum.IN_PROGRESS,
            )
            .order_by(desc(ExamAttempt.started_at))
            .first()
        )

    def count_for_student_exam(self, db: Session, student_id: int, exam_id: int) -> int:
        return (
            db.query(ExamAttempt)
            .filter(ExamAttempt.student_id == student_id, ExamAttempt.exam_id == exam_id)
            .count()
        )

    def create(
        self,
        db: Session,
        *,
        exam_id: int,
        student_id: int,
        attempt_no: int,
        started_at: datetime,
        client: ClientContext,
    ) -> ExamAttempt:
        """
        Inserta un intento IN_PROGRESS. El índice parcial único y la restricción
        (student_id, exam_id, attempt_no) rechazan inserciones concurrentes con
        IntegrityError, que el llamador traduce a conflicto.
        """
        db_obj = ExamAttempt(
            exam_id=exam_id,
            student_id=student_id,
            attempt_no=attempt_no,
            started_at=started_at,
            status=AttemptStatusEnum.IN_PROGRESS,
            ip_address=client.ip_address,
            user_agent=client.user_agent,
        )
        db.add(db_obj)
        db.commit()
        db.refresh(db_obj)
        return db_obj

    def transition_status(
        self,
        db: Session,
        attempt_id: int,
        expected: AttemptStatusEnum,
        new_status: AttemptStatusEnum,
        **values: Any,
    ) -> bool:
        """
        UPDATE exam_attempts SET status = :new_status ... WHERE attempt_id = :id AND status = :expected

        Retorna True si esta llamada ganó la transición.
        """
        changes = {ExamAttempt.status: new_status}
        for key, value in values.items():
            changes[getattr(ExamAttempt, key)] = value

        rowcount = (
            db.query(ExamAttempt)
            .filter(ExamAttempt.attempt_id == attempt_id, ExamAttempt.status == expected)
            .update(changes, synchronize_session=False)
        )
        return rowcount == 1

    def lock_status(self, db: Session, attempt_id: int) -> Optional[AttemptStatusEnum]:
        """
        Lee el estado actual con SELECT ... FOR UPDATE (ignorado en SQLite),
        sin pasar por el identity map.
        """
        row = (
            db.query(ExamAttempt.status)
            .filter(ExamAttempt.attempt_id == attempt_id)
            .with_for_update()
            .first()
        )
        return row[0] if row else None

    def get_answers(self, db: Session, attempt_id: int) -> List[AttemptAnswer]:
        return db.query(AttemptAnswer).filter(AttemptAnswer.attempt_id == attempt_id).all()

    def upsert_answers(
        self,
        db: Session,
        *,
        attempt_id: int,
        exam_id: int,
        entries: Sequence[Tuple[int, Optional[int], Optional[bool]]],
        now: datetime,
    ) -> None:
        """
        Inserta o actualiza una fila por pregunta (último en escribir gana).

        entries: (question_id, selected_option_id, is_marked_for_review). Un
        is_marked_for_review None conserva el valor guardado.
        """
        insert = _dialect_insert(db)
        for question_id, selected_option_id, is_marked_for_review in entries:
            answered_at = now if selected_option_id is not None else None
            stmt = insert(AttemptAnswer).values(
                attempt_id=attempt_id,
                exam_id=exam_id,
                question_id=question_id,
                selected_option_id=selected_option_id,
                answered_at=answered_at,
                is_marked_for_review=bool(is_marked_for_review),
            )
            updates = {
                "selected_option_id": stmt.excluded.selected_option_id,
                "answered_at": stmt.excluded.answered_at,
            }
            if is_marked_for_review is not None:
                updates["is_marked_for_review"] = stmt.excluded.is_marked_for_review
            stmt = stmt.on_conflict_do_update(
                index_elements=["attempt_id", "question_id"],
                set_=updates,
            )
            db.execute(stmt)
        db.commit()

    def count_answered(self, db: Session, attempt_id: int) -> int:
        return (
            db.query(AttemptAnswer)
            .filter(
                AttemptAnswer.attempt_id == attempt_id,
                AttemptAnswer.selected_option_id.isnot(None),
            )
            .count()
        )

    def log_security_event(
        self,
        db: Session,
        *,
        attempt_id: int,
        student_id: int,
        draft: SecurityEventDraft,
        occurred_at: datetime,
        commit: bool = True,
    ) -> AttemptSecurityEvent:
        db_obj = AttemptSecurityEvent(
            attempt_id=attempt_id,
            student_id=student_id,
            event_type=draft.event_type,
            event_data=draft.event_data,
            risk_score=draft.risk_score,
            occurred_at=occurred_at,
        )
        db.add(db_obj)
        if commit:
            db.commit()
            db.refresh(db_obj)
        else:
            db.flush()
        return db_obj

    def get_security_events(self, db: Session, attempt_id: int) -> List[AttemptSecurityEvent]:
        return (
            db.query(AttemptSecurityEvent)
            .filter(AttemptSecurityEvent.attempt_id == attempt_id)
            .order_by(AttemptSecurityEvent.event_id)
            .all()
        )

    def get_result_by_attempt(self, db: Session, attempt_id: int) -> Optional[ExamResult]:
        return db.query(ExamResult).filter(ExamResult.attempt_id == attempt_id).first()

    def upsert_result(
        self,
        db: Session,
        *,
        attempt_id: int,
        exam_id: int,
        student_id: int,
        summary: ScoreSummary,
        evaluated_at: datetime,
    ) -> ExamResult:
        """
        Crea o reemplaza el resultado del intento (clave: attempt_id). Sin commit.
        """
        values: Dict[str, Any] = {
            "exam_id": exam_id,
            "student_id": student_id,
            "total_questions": summary.total_questions,
            "correct_answers": summary.correct_answers,
            "wrong_answers": summary.wrong_answers,
            "unanswered": summary.unanswered,
            "max_marks": summary.max_marks,
            "marks_obtained": summary.marks_obtained,
            "score_percentage": summary.score_percentage,
            "passed": summary.passed,
            "evaluated_at": evaluated_at,
        }
        insert = _dialect_insert(db)
        stmt = insert(ExamResult).values(attempt_id=attempt_id, **values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["attempt_id"],
            set_={key: getattr(stmt.excluded, key) for key in values},
        )
        db.execute(stmt)
        db.flush()
        return (
            db.query(ExamResult)
            .filter(ExamResult.attempt_id == attempt_id)
            .populate_existing()
            .one()
        )

    def list_results_for_student(self, db: Session, student_id: int) -> List[Tuple[ExamResult, Optional[str], Optional[str]]]:
        """
        Resultados del estudiante (más recientes primero) con el título del
        examen y el número de certificado vigente, si existe.
        """
        return (
            db.query(ExamResult, Exam.title, Certificate.certificate_no)
            .outerjoin(Exam, Exam.exam_id == ExamResult.exam_id)
            .outerjoin(
                Certificate,
                and_(
                    Certificate.result_id == ExamResult.result_id,
                    Certificate.revoked == False,  # noqa: E712
                ),
            )
            .filter(ExamResult.student_id == student_id)
            .order_by(desc(ExamResult.evaluated_at), desc(ExamResult.result_id))
            .all()
        )


attempt_crud = CRUDAttempt()
