# app/models/attempt.py
import enum

from sqlalchemy import (
    Boolean, Column, Integer, String, ForeignKey, Numeric, DateTime,
    Enum, Index, UniqueConstraint, JSON, text
)
from sqlalchemy.dialects.postgresql import JSONB

from app.db.base import Base


class AttemptStatusEnum(str, enum.Enum):
    IN_PROGRESS = "IN_PROGRESS"
    SUBMITTED = "SUBMITTED"
    EVALUATED = "EVALUATED"


class SecurityEventTypeEnum(str, enum.Enum):
    TAB_SWITCH = "TAB_SWITCH"
    FULLSCREEN_EXIT = "FULLSCREEN_EXIT"
    COPY_PASTE = "COPY_PASTE"
    DEVTOOLS_OPEN = "DEVTOOLS_OPEN"
    MULTIPLE_FACE_DETECTED = "MULTIPLE_FACE_DETECTED"
    IP_MISMATCH = "IP_MISMATCH"
    USER_AGENT_MISMATCH = "USER_AGENT_MISMATCH"
    AUTO_SUBMIT = "AUTO_SUBMIT"
    WINDOW_BLUR = "WINDOW_BLUR"
    RIGHT_CLICK = "RIGHT_CLICK"
    NETWORK_DISCONNECT = "NETWORK_DISCONNECT"


# JSONB en PostgreSQL, JSON genérico en SQLite
EventPayload = JSON().with_variant(JSONB(), 'postgresql')


class ExamAttempt(Base):
    """
    Intento de examen de un estudiante.
    Solo puede existir un intento IN_PROGRESS por (student_id, exam_id).
    """
    __tablename__ = 'exam_attempts'

    attempt_id = Column(Integer, primary_key=True, autoincrement=True)
    exam_id = Column(Integer, ForeignKey("exams.exam_id"), nullable=False, index=True)
    student_id = Column(Integer, ForeignKey("users.user_id"), nullable=False, index=True)
    attempt_no = Column(Integer, nullable=False)
    started_at = Column(DateTime(timezone=True), nullable=False)
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    status = Column(
        Enum(AttemptStatusEnum, name='attempt_status', native_enum=False, length=20),
        nullable=False,
        default=AttemptStatusEnum.IN_PROGRESS,
    )
    time_spent_seconds = Column(Integer, nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)

    __table_args__ = (
        UniqueConstraint('student_id', 'exam_id', 'attempt_no', name='uq_attempt_student_exam_no'),
        Index(
            'uq_attempt_single_active',
            'student_id',
            'exam_id',
            unique=True,
            postgresql_where=text("status = 'IN_PROGRESS'"),
            sqlite_where=text("status = 'IN_PROGRESS'"),
        ),
    )

    def __repr__(self):
        return f"<ExamAttempt(attempt_id={self.attempt_id}, student_id={self.student_id}, status='{self.status}')>"


class AttemptAnswer(Base):
    __tablename__ = 'attempt_answers'

    answer_id = Column(Integer, primary_key=True, autoincrement=True)
    attempt_id = Column(Integer, ForeignKey("exam_attempts.attempt_id"), nullable=False, index=True)
    exam_id = Column(Integer, ForeignKey("exams.exam_id"), nullable=False)
    question_id = Column(Integer, ForeignKey("exam_questions.question_id"), nullable=False)
    selected_option_id = Column(Integer, ForeignKey("question_options.option_id"), nullable=True)
    answered_at = Column(DateTime(timezone=True), nullable=True)
    is_marked_for_review = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint('attempt_id', 'question_id', name='uq_attempt_answer_question'),
    )


class AttemptSecurityEvent(Base):
    """Bitácora append-only de eventos de seguridad de un intento."""
    __tablename__ = 'attempt_security_events'

    event_id = Column(Integer, primary_key=True, autoincrement=True)
    attempt_id = Column(Integer, ForeignKey("exam_attempts.attempt_id"), nullable=False, index=True)
    student_id = Column(Integer, ForeignKey("users.user_id"), nullable=False)
    event_type = Column(
        Enum(SecurityEventTypeEnum, name='security_event_type', native_enum=False, length=40),
        nullable=False,
    )
    event_data = Column(EventPayload, nullable=True)
    risk_score = Column(Integer, nullable=False, default=0)
    occurred_at = Column(DateTime(timezone=True), nullable=False)

    def __repr__(self):
        return f"<AttemptSecurityEvent(attempt_id={self.attempt_id}, type='{self.event_type}', risk={self.risk_score})>"


class ExamResult(Base):
    __tablename__ = 'exam_results'

    result_id = Column(Integer, primary_key=True, autoincrement=True)
    attempt_id = Column(Integer, ForeignKey("exam_attempts.attempt_id"), nullable=False, unique=True)
    exam_id = Column(Integer, ForeignKey("exams.exam_id"), nullable=False, index=True)
    student_id = Column(Integer, ForeignKey("users.user_id"), nullable=False, index=True)
    total_questions = Column(Integer, nullable=False)
    correct_answers = Column(Integer, nullable=False)
    wrong_answers = Column(Integer, nullable=False)
    unanswered = Column(Integer, nullable=False)
    max_marks = Column(Numeric(8, 2, asdecimal=False), nullable=False)
    marks_obtained = Column(Numeric(8, 2, asdecimal=False), nullable=False)
    score_percentage = Column(Numeric(5, 2, asdecimal=False), nullable=False)
    passed = Column(Boolean, nullable=False)
    evaluated_at = Column(DateTime(timezone=True), nullable=False)

    def __repr__(self):
        return f"<ExamResult(result_id={self.result_id}, attempt_id={self.attempt_id}, score={self.score_percentage})>"
