# app/services/attempt_service.py
"""
Ciclo de vida de los intentos de examen.

Máquina de estados ``IN_PROGRESS -> SUBMITTED -> EVALUATED``. Todo el estado
vive en la base de datos: cada operación vuelve a leer el intento y las
transiciones terminales son compare-and-swap sobre ``status``, de modo que un
envío manual y uno automático concurrentes nunca evalúan dos veces.
"""
import random
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import ExamPortalError, ValidationResult
from app.core.logging_config import get_attempt_logger, log_attempt_transition
from app.core.metrics import (
    attempt_security_events_total,
    exam_attempts_auto_submitted_total,
    exam_attempts_evaluated_total,
    exam_attempts_started_total,
)
from app.crud import crud_catalog
from app.crud.crud_attempt import attempt_crud
from app.models.attempt import AttemptStatusEnum, ExamAttempt, ExamResult
from app.models.exam import Exam, ExamStatusEnum
from app.schemas.attempts import (
    AnswerEntry,
    AnswersSavedResponse,
    AttemptOutcomeResponse,
    AttemptStartResponse,
    AttemptStateResponse,
    ExamResultResponse,
    HeartbeatResponse,
    SecurityEventRequest,
    SecurityEventResponse,
    StudentOption,
    StudentQuestion,
    StudentResultItem,
)
from app.schemas.certificates import CertificateSummary
from app.services.anti_cheat import (
    ClientContext,
    HeartbeatTelemetry,
    SecurityEventDraft,
    auto_submit_event,
    default_risk_for_event,
    evaluate_heartbeat,
    fingerprint_events,
    is_severe_event,
)
from app.services.certificate_service import CertificateIssueInput, CertificateService
from app.services.deadlines import (
    attempt_deadline, elapsed_seconds, ensure_utc, is_expired, remaining_seconds
)
from app.services.scoring import ScoreSummary, ScoredQuestion, score_answers

logger = get_attempt_logger()

TIME_LIMIT_REACHED = "TIME_LIMIT_REACHED"
ANTI_CHEAT_TRIGGER = "ANTI_CHEAT_TRIGGER"

TERMINAL_STATUSES = (AttemptStatusEnum.SUBMITTED, AttemptStatusEnum.EVALUATED)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# --- Validaciones de entrada ---

def validate_exam_window(exam: Exam, now: datetime) -> ValidationResult:
    if exam.status != ExamStatusEnum.PUBLISHED:
        return ValidationResult.failure("Exam is not available for attempts.")
    if exam.starts_at is not None and ensure_utc(now) < ensure_utc(exam.starts_at):
        return ValidationResult.failure("Exam has not started yet.")
    if exam.ends_at is not None and ensure_utc(now) > ensure_utc(exam.ends_at):
        return ValidationResult.failure("Exam time window has ended.")
    return ValidationResult.success()


def validate_answer_entries(entries: Sequence[AnswerEntry]) -> ValidationResult:
    if not entries:
        return ValidationResult.failure("At least one answer is required.")
    question_ids = [entry.question_id for entry in entries]
    if len(set(question_ids)) != len(question_ids):
        return ValidationResult.failure("Duplicate questionId values are not allowed in one save request.")
    return ValidationResult.success()


class AttemptService:
    def __init__(
        self,
        certificates: CertificateService,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.certificates = certificates
        self.rng = rng or random.Random()
        self.clock = clock

    # ------------------------------------------------------------------ #
    # Operaciones
    # ------------------------------------------------------------------ #

    def start_exam(self, db: Session, student_id: int, exam_id: int,
                   client: ClientContext) -> AttemptStartResponse:
        exam = self._get_exam_or_fail(db, exam_id)
        validate_exam_window(exam, self.clock()).raise_for_failure()

        enrollment = crud_catalog.get_eligible_enrollment(db, student_id, exam.batch_id)
        if enrollment is None:
            raise ExamPortalError.not_found("Student is not enrolled in this exam batch.")

        active = attempt_crud.get_active(db, student_id, exam_id)
        if active is not None:
            outcome = self._auto_submit_if_expired(db, active, exam, client)
            if outcome is None:
                raise ExamPortalError.conflict("Student already has an active attempt for this exam.")

        used_attempts = attempt_crud.count_for_student_exam(db, student_id, exam_id)
        if used_attempts >= exam.max_attempts:
            raise ExamPortalError.conflict("Maximum number of attempts reached for this exam.")

        questions = self._prepare_questions(db, exam)

        started_at = self.clock()
        try:
            attempt = attempt_crud.create(
                db,
                exam_id=exam_id,
                student_id=student_id,
                attempt_no=used_attempts + 1,
                started_at=started_at,
                client=client,
            )
        except IntegrityError:
            db.rollback()
            logger.warning(
                f"Concurrent start rejected for student {student_id} on exam {exam_id}",
                extra={"student_id": student_id, "exam_id": exam_id},
            )
            raise ExamPortalError.conflict("Student already has an active attempt for this exam.")

        exam_attempts_started_total.inc()
        log_attempt_transition(logger, "NEW->IN_PROGRESS", attempt.attempt_id,
                               student_id=student_id, exam_id=exam_id, attempt_no=attempt.attempt_no)

        deadline_at = self._deadline(attempt, exam)
        return AttemptStartResponse(
            attempt_id=attempt.attempt_id,
            exam_id=attempt.exam_id,
            attempt_no=attempt.attempt_no,
            started_at=ensure_utc(attempt.started_at),
            deadline_at=deadline_at,
            remaining_seconds=remaining_seconds(deadline_at, self.clock()),
            time_limit_minutes=exam.duration_minutes,
            status=attempt.status,
            questions=questions,
        )

    def save_answers(self, db: Session, student_id: int, attempt_id: int,
                     answers: Sequence[AnswerEntry], client: ClientContext):
        attempt = self._get_owned_attempt_or_fail(db, student_id, attempt_id)
        exam = self._get_exam_or_fail(db, attempt.exam_id)
        self._assert_modifiable(attempt)

        outcome = self._auto_submit_if_expired(db, attempt, exam, client)
        if outcome is not None:
            return outcome

        self._record_fingerprint(db, attempt, client)
        validate_answer_entries(answers).raise_for_failure()

        question_ids = [entry.question_id for entry in answers]
        questions = crud_catalog.get_questions_by_ids(db, attempt.exam_id, question_ids)
        if len(questions) != len(question_ids):
            raise ExamPortalError.bad_request("One or more questionId values do not belong to this exam.")

        selected_ids = [entry.selected_option_id for entry in answers if entry.selected_option_id is not None]
        option_by_id = {option.option_id: option for option in crud_catalog.get_options_by_ids(db, selected_ids)}
        for entry in answers:
            if entry.selected_option_id is None:
                continue
            option = option_by_id.get(entry.selected_option_id)
            if option is None or option.question_id != entry.question_id:
                raise ExamPortalError.bad_request(
                    f"selectedOptionId {entry.selected_option_id} does not belong to questionId {entry.question_id}."
                )

        # El estado se vuelve a comprobar justo antes de escribir
        if attempt_crud.lock_status(db, attempt.attempt_id) != AttemptStatusEnum.IN_PROGRESS:
            db.rollback()
            raise ExamPortalError.conflict("Attempt is no longer in progress.")

        attempt_crud.upsert_answers(
            db,
            attempt_id=attempt.attempt_id,
            exam_id=attempt.exam_id,
            entries=[(e.question_id, e.selected_option_id, e.is_marked_for_review) for e in answers],
            now=self.clock(),
        )

        deadline_at = self._deadline(attempt, exam)
        return AnswersSavedResponse(
            attempt_id=attempt.attempt_id,
            status=attempt.status,
            answered_count=attempt_crud.count_answered(db, attempt.attempt_id),
            remaining_seconds=remaining_seconds(deadline_at, self.clock()),
            deadline_at=deadline_at,
        )

    def heartbeat(self, db: Session, student_id: int, attempt_id: int,
                  telemetry: HeartbeatTelemetry, client: ClientContext):
        attempt = self._get_owned_attempt_or_fail(db, student_id, attempt_id)
        exam = self._get_exam_or_fail(db, attempt.exam_id)

        if attempt.status != AttemptStatusEnum.IN_PROGRESS:
            return self._current_outcome(db, attempt, exam)

        outcome = self._auto_submit_if_expired(db, attempt, exam, client)
        if outcome is not None:
            return outcome

        decision = evaluate_heartbeat(telemetry, attempt.ip_address, attempt.user_agent, client)
        self._append_events(db, attempt, decision.events)

        if decision.force_submit:
            return self.force_auto_submit(
                db, attempt, exam, client, ANTI_CHEAT_TRIGGER,
                telemetry.to_event_data(), record_fingerprint=False,
            )

        deadline_at = self._deadline(attempt, exam)
        return HeartbeatResponse(
            attempt_id=attempt.attempt_id,
            status=attempt.status,
            auto_submitted=False,
            deadline_at=deadline_at,
            remaining_seconds=remaining_seconds(deadline_at, self.clock()),
        )

    def record_security_event(self, db: Session, student_id: int, attempt_id: int,
                              event: SecurityEventRequest, client: ClientContext):
        attempt = self._get_owned_attempt_or_fail(db, student_id, attempt_id)
        exam = self._get_exam_or_fail(db, attempt.exam_id)
        self._record_fingerprint(db, attempt, client)

        risk_score = event.risk_score if event.risk_score is not None else default_risk_for_event(event.event_type)
        logged = self._append_events(db, attempt, [
            SecurityEventDraft(event_type=event.event_type, risk_score=risk_score, event_data=event.event_data)
        ])[0]

        if attempt.status == AttemptStatusEnum.IN_PROGRESS and is_severe_event(event.event_type):
            return self.force_auto_submit(
                db, attempt, exam, client, ANTI_CHEAT_TRIGGER,
                event.event_data or {}, record_fingerprint=False,
            )

        return SecurityEventResponse(
            event_id=logged.event_id,
            attempt_id=logged.attempt_id,
            event_type=logged.event_type,
            risk_score=logged.risk_score,
            occurred_at=ensure_utc(logged.occurred_at),
        )

    def submit_exam(self, db: Session, student_id: int, attempt_id: int,
                    time_spent_seconds: Optional[int], client: ClientContext) -> AttemptOutcomeResponse:
        attempt = self._get_owned_attempt_or_fail(db, student_id, attempt_id)
        exam = self._get_exam_or_fail(db, attempt.exam_id)

        if attempt.status in TERMINAL_STATUSES:
            return self._already_submitted_outcome(db, attempt, exam)

        self._assert_modifiable(attempt)
        outcome = self._auto_submit_if_expired(db, attempt, exam, client)
        if outcome is not None:
            return outcome

        self._record_fingerprint(db, attempt, client)

        submitted_at = self.clock()
        measured = elapsed_seconds(attempt.started_at, submitted_at)
        if time_spent_seconds and time_spent_seconds > 0:
            time_spent = min(time_spent_seconds, measured)
        else:
            time_spent = measured

        result = self._finalize(db, attempt, exam, submitted_at=submitted_at, time_spent=time_spent)
        if result is None:
            return self._already_submitted_outcome(db, self._reload(db, attempt), exam)

        return AttemptOutcomeResponse(
            attempt_id=attempt.attempt_id,
            status=AttemptStatusEnum.EVALUATED,
            auto_submitted=False,
            result=result,
        )

    def get_attempt_state(self, db: Session, student_id: int, attempt_id: int,
                          client: ClientContext):
        attempt = self._get_owned_attempt_or_fail(db, student_id, attempt_id)
        exam = self._get_exam_or_fail(db, attempt.exam_id)

        if attempt.status == AttemptStatusEnum.IN_PROGRESS:
            outcome = self._auto_submit_if_expired(db, attempt, exam, client)
            if outcome is not None:
                return outcome
            self._record_fingerprint(db, attempt, client)

        result = attempt_crud.get_result_by_attempt(db, attempt.attempt_id)
        deadline_at = self._deadline(attempt, exam)
        return AttemptStateResponse(
            attempt_id=attempt.attempt_id,
            exam_id=attempt.exam_id,
            status=attempt.status,
            started_at=ensure_utc(attempt.started_at),
            submitted_at=ensure_utc(attempt.submitted_at),
            deadline_at=deadline_at,
            remaining_seconds=remaining_seconds(deadline_at, self.clock()),
            answered_count=attempt_crud.count_answered(db, attempt.attempt_id),
            result=self._result_with_certificate(db, result) if result else None,
        )

    def force_auto_submit(self, db: Session, attempt: ExamAttempt, exam: Exam,
                          client: ClientContext, reason: str,
                          event_data: Optional[Dict] = None, *,
                          record_fingerprint: bool = True) -> AttemptOutcomeResponse:
        """
        Camino común de todo envío forzado (tiempo agotado o anti-trampas).

        No hace nada si el intento ya es terminal. El tiempo invertido es
        siempre el medido por el servidor.
        """
        if attempt.status != AttemptStatusEnum.IN_PROGRESS:
            return self._current_outcome(db, attempt, exam)

        if record_fingerprint:
            self._record_fingerprint(db, attempt, client)

        submitted_at = self.clock()
        result = self._finalize(
            db, attempt, exam,
            submitted_at=submitted_at,
            time_spent=elapsed_seconds(attempt.started_at, submitted_at),
            auto_event=auto_submit_event(reason, event_data),
        )
        if result is None:
            return self._current_outcome(db, self._reload(db, attempt), exam)

        exam_attempts_auto_submitted_total.labels(reason=reason).inc()
        return AttemptOutcomeResponse(
            attempt_id=attempt.attempt_id,
            status=AttemptStatusEnum.EVALUATED,
            auto_submitted=True,
            reason=reason,
            result=result,
        )

    def list_results(self, db: Session, student_id: int) -> List[StudentResultItem]:
        items = []
        for result, exam_title, certificate_no in attempt_crud.list_results_for_student(db, student_id):
            items.append(StudentResultItem(
                result_id=result.result_id,
                attempt_id=result.attempt_id,
                exam_id=result.exam_id,
                exam_title=exam_title,
                total_questions=result.total_questions,
                correct_answers=result.correct_answers,
                wrong_answers=result.wrong_answers,
                unanswered=result.unanswered,
                max_marks=result.max_marks,
                marks_obtained=result.marks_obtained,
                score_percentage=result.score_percentage,
                passed=result.passed,
                evaluated_at=ensure_utc(result.evaluated_at),
                certificate_no=certificate_no,
                certificate_download_url=(
                    self.certificates.build_download_url(certificate_no) if certificate_no else None
                ),
            ))
        return items

    # ------------------------------------------------------------------ #
    # Transición terminal
    # ------------------------------------------------------------------ #

    def _finalize(self, db: Session, attempt: ExamAttempt, exam: Exam, *,
                  submitted_at: datetime, time_spent: int,
                  auto_event: Optional[SecurityEventDraft] = None) -> Optional[ExamResultResponse]:
        """
        IN_PROGRESS -> SUBMITTED -> EVALUATED en una sola transacción, junto con
        el evento AUTO_SUBMIT y el resultado. Retorna None si otra petición
        ganó la transición. El certificado se emite después del commit.
        """
        attempt_id = attempt.attempt_id
        student_id = attempt.student_id
        exam_id = attempt.exam_id
        mode = "auto" if auto_event else "manual"

        try:
            won = attempt_crud.transition_status(
                db, attempt_id,
                AttemptStatusEnum.IN_PROGRESS, AttemptStatusEnum.SUBMITTED,
                submitted_at=submitted_at, time_spent_seconds=time_spent,
            )
            if not won:
                db.rollback()
                logger.info(
                    f"Attempt {attempt_id} already left IN_PROGRESS, skipping evaluation",
                    extra={"attempt_id": attempt_id, "student_id": student_id},
                )
                return None

            if auto_event is not None:
                attempt_crud.log_security_event(
                    db,
                    attempt_id=attempt_id,
                    student_id=student_id,
                    draft=auto_event,
                    occurred_at=submitted_at,
                    commit=False,
                )

            summary = self._evaluate(db, attempt_id, exam)
            result = attempt_crud.upsert_result(
                db,
                attempt_id=attempt_id,
                exam_id=exam_id,
                student_id=student_id,
                summary=summary,
                evaluated_at=submitted_at,
            )
            attempt_crud.transition_status(
                db, attempt_id, AttemptStatusEnum.SUBMITTED, AttemptStatusEnum.EVALUATED
            )
            db.commit()
        except Exception:
            db.rollback()
            logger.error(
                f"Evaluation of attempt {attempt_id} rolled back",
                exc_info=True,
                extra={"attempt_id": attempt_id, "student_id": student_id, "exam_id": exam_id},
            )
            raise

        if auto_event is not None:
            attempt_security_events_total.labels(event_type=auto_event.event_type.value).inc()
        exam_attempts_evaluated_total.labels(mode=mode).inc()
        log_attempt_transition(
            logger, "IN_PROGRESS->EVALUATED", attempt_id,
            student_id=student_id, exam_id=exam_id,
            reason=(auto_event.event_data or {}).get("reason") if auto_event else None,
        )

        return self._result_with_issued_certificate(db, result, exam)

    def _evaluate(self, db: Session, attempt_id: int, exam: Exam) -> ScoreSummary:
        questions = crud_catalog.get_exam_questions(db, exam.exam_id)
        question_ids = [question.question_id for question in questions]
        correct_by_question = crud_catalog.get_correct_option_map(db, question_ids)

        selected_by_question = {
            answer.question_id: answer.selected_option_id
            for answer in attempt_crud.get_answers(db, attempt_id)
        }

        scored = [
            ScoredQuestion(
                question_id=question.question_id,
                marks=question.marks,
                correct_option_id=correct_by_question.get(question.question_id),
            )
            for question in questions
        ]
        return score_answers(scored, selected_by_question, exam.total_marks)

    def _auto_submit_if_expired(self, db: Session, attempt: ExamAttempt, exam: Exam,
                                client: ClientContext) -> Optional[AttemptOutcomeResponse]:
        if attempt.status != AttemptStatusEnum.IN_PROGRESS:
            return None
        if not is_expired(self._deadline(attempt, exam), self.clock()):
            return None
        return self.force_auto_submit(db, attempt, exam, client, TIME_LIMIT_REACHED)

    # ------------------------------------------------------------------ #
    # Auxiliares
    # ------------------------------------------------------------------ #

    def _get_exam_or_fail(self, db: Session, exam_id: int) -> Exam:
        exam = crud_catalog.get_exam(db, exam_id)
        if exam is None:
            raise ExamPortalError.not_found("Exam not found.")
        return exam

    def _get_owned_attempt_or_fail(self, db: Session, student_id: int, attempt_id: int) -> ExamAttempt:
        # Un intento ajeno responde igual que uno inexistente
        attempt = attempt_crud.get_owned(db, attempt_id, student_id)
        if attempt is None:
            raise ExamPortalError.not_found("Attempt not found.")
        return attempt

    @staticmethod
    def _assert_modifiable(attempt: ExamAttempt) -> None:
        if attempt.status != AttemptStatusEnum.IN_PROGRESS:
            raise ExamPortalError.conflict("Attempt is no longer in progress.")

    @staticmethod
    def _reload(db: Session, attempt: ExamAttempt) -> ExamAttempt:
        db.refresh(attempt)
        return attempt

    @staticmethod
    def _deadline(attempt: ExamAttempt, exam: Exam) -> datetime:
        return attempt_deadline(attempt.started_at, exam.duration_minutes, exam.ends_at)

    def _record_fingerprint(self, db: Session, attempt: ExamAttempt, client: ClientContext) -> None:
        events = fingerprint_events(attempt.ip_address, attempt.user_agent, client)
        if events:
            self._append_events(db, attempt, events)

    def _append_events(self, db: Session, attempt: ExamAttempt, drafts: List[SecurityEventDraft]):
        """Los eventos de seguridad se confirman de inmediato (bitácora append-only)."""
        occurred_at = self.clock()
        logged = []
        for draft in drafts:
            logged.append(attempt_crud.log_security_event(
                db,
                attempt_id=attempt.attempt_id,
                student_id=attempt.student_id,
                draft=draft,
                occurred_at=occurred_at,
                commit=False,
            ))
            attempt_security_events_total.labels(event_type=draft.event_type.value).inc()
            logger.info(
                f"Security event {draft.event_type.value} on attempt {attempt.attempt_id}",
                extra={
                    "attempt_id": attempt.attempt_id,
                    "student_id": attempt.student_id,
                    "event_type": draft.event_type.value,
                },
            )
        if logged:
            db.commit()
        return logged

    def _prepare_questions(self, db: Session, exam: Exam) -> List[StudentQuestion]:
        questions = crud_catalog.get_exam_questions(db, exam.exam_id)
        if not questions:
            raise ExamPortalError.bad_request("Exam has no questions.")

        options_by_question: Dict[int, List[StudentOption]] = {}
        for option in crud_catalog.get_options_for_questions(db, [q.question_id for q in questions]):
            options_by_question.setdefault(option.question_id, []).append(StudentOption(
                option_id=option.option_id,
                option_key=option.option_key,
                option_text=option.option_text,
            ))

        prepared = [
            StudentQuestion(
                question_id=question.question_id,
                question_text=question.question_text,
                image_key=question.image_key,
                marks=question.marks,
                options=options_by_question.get(question.question_id, []),
            )
            for question in questions
        ]

        if exam.shuffle_questions:
            prepared = list(prepared)
            self.rng.shuffle(prepared)

        if exam.shuffle_options:
            for question in prepared:
                shuffled = list(question.options)
                self.rng.shuffle(shuffled)
                question.options = shuffled

        return prepared

    def _to_result_response(self, result: ExamResult,
                            certificate: Optional[CertificateSummary] = None) -> ExamResultResponse:
        return ExamResultResponse(
            result_id=result.result_id,
            attempt_id=result.attempt_id,
            exam_id=result.exam_id,
            student_id=result.student_id,
            total_questions=result.total_questions,
            correct_answers=result.correct_answers,
            wrong_answers=result.wrong_answers,
            unanswered=result.unanswered,
            max_marks=result.max_marks,
            marks_obtained=result.marks_obtained,
            score_percentage=result.score_percentage,
            passed=result.passed,
            evaluated_at=ensure_utc(result.evaluated_at),
            certificate=certificate,
        )

    def _result_with_certificate(self, db: Session, result: ExamResult) -> ExamResultResponse:
        certificate = self.certificates.get_certificate_summary_by_result_id(db, result.result_id)
        return self._to_result_response(result, certificate)

    def _result_with_issued_certificate(self, db: Session, result: ExamResult,
                                        exam: Exam) -> ExamResultResponse:
        """
        Resultado evaluado junto con su certificado, emitiéndolo si falta.

        Lo usan tanto el ganador de la transición como quien la pierde o llega
        con el intento ya terminal: la emisión es idempotente por resultado,
        así que todos reciben el mismo certificate_no y una emisión que falló
        después del commit se completa en el siguiente envío.
        """
        certificate = self.certificates.issue_certificate_if_eligible(db, CertificateIssueInput(
            result_id=result.result_id,
            exam_id=result.exam_id,
            student_id=result.student_id,
            course_id=exam.course_id,
            faculty_id=exam.created_by_faculty_id,
            score_percentage=result.score_percentage,
            passed_at=ensure_utc(result.evaluated_at),
        ))
        return self._to_result_response(result, certificate)

    def _current_outcome(self, db: Session, attempt: ExamAttempt, exam: Exam) -> AttemptOutcomeResponse:
        """Estado actual de un intento terminal; solo completa el certificado pendiente."""
        result = attempt_crud.get_result_by_attempt(db, attempt.attempt_id)
        return AttemptOutcomeResponse(
            attempt_id=attempt.attempt_id,
            status=attempt.status,
            auto_submitted=False,
            result=self._result_with_issued_certificate(db, result, exam) if result else None,
        )

    def _already_submitted_outcome(self, db: Session, attempt: ExamAttempt,
                                   exam: Exam) -> AttemptOutcomeResponse:
        result = attempt_crud.get_result_by_attempt(db, attempt.attempt_id)
        if result is None:
            raise ExamPortalError.not_found("Result not found for this attempt.")
        return AttemptOutcomeResponse(
            attempt_id=attempt.attempt_id,
            status=AttemptStatusEnum.EVALUATED,
            auto_submitted=False,
            result=self._result_with_issued_certificate(db, result, exam),
        )
