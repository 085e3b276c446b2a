"""create_exam_attempt_tables

Revision ID: 3c9d2e7a1f40
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3c9d2e7a1f40'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

IN_PROGRESS_ONLY = sa.text("status = 'IN_PROGRESS'")


def upgrade() -> None:
    """Create catalog, attempt, result and certificate tables."""
    op.create_table(
        'users',
        sa.Column('user_id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('first_name', sa.String(100), nullable=False),
        sa.Column('last_name', sa.String(100), nullable=False),
        sa.Column('role', sa.String(20), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint('user_id'),
        sa.UniqueConstraint('email')
    )

    op.create_table(
        'courses',
        sa.Column('course_id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('course_code', sa.String(50), nullable=False),
        sa.Column('course_name', sa.String(255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint('course_id'),
        sa.UniqueConstraint('course_code')
    )

    op.create_table(
        'student_enrollments',
        sa.Column('enrollment_id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('student_id', sa.Integer(), sa.ForeignKey('users.user_id'), nullable=False),
        sa.Column('batch_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('enrolled_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint('enrollment_id'),
        sa.UniqueConstraint('student_id', 'batch_id', name='uq_enrollment_student_batch')
    )
    op.create_index('ix_student_enrollments_student_id', 'student_enrollments', ['student_id'])
    op.create_index('ix_student_enrollments_batch_id', 'student_enrollments', ['batch_id'])

    op.create_table(
        'exams',
        sa.Column('exam_id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('course_id', sa.Integer(), sa.ForeignKey('courses.course_id'), nullable=False),
        sa.Column('batch_id', sa.Integer(), nullable=False),
        sa.Column('created_by_faculty_id', sa.Integer(), sa.ForeignKey('users.user_id'), nullable=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('duration_minutes', sa.Integer(), nullable=False),
        sa.Column('total_marks', sa.Numeric(8, 2), nullable=False, server_default='0'),
        sa.Column('max_attempts', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('starts_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('ends_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('shuffle_questions', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('shuffle_options', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint('exam_id')
    )
    op.create_index('ix_exams_course_id', 'exams', ['course_id'])
    op.create_index('ix_exams_batch_id', 'exams', ['batch_id'])

    op.create_table(
        'exam_questions',
        sa.Column('question_id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('exam_id', sa.Integer(), sa.ForeignKey('exams.exam_id'), nullable=False),
        sa.Column('question_text', sa.Text(), nullable=False),
        sa.Column('image_key', sa.String(500), nullable=True),
        sa.Column('marks', sa.Numeric(8, 2), nullable=False, server_default='1'),
        sa.Column('display_order', sa.Integer(), nullable=False, server_default='0'),
        sa.PrimaryKeyConstraint('question_id')
    )
    op.create_index('ix_exam_questions_exam_id', 'exam_questions', ['exam_id'])

    op.create_table(
        'question_options',
        sa.Column('option_id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('question_id', sa.Integer(), sa.ForeignKey('exam_questions.question_id'), nullable=False),
        sa.Column('option_key', sa.String(1), nullable=False),
        sa.Column('option_text', sa.Text(), nullable=False),
        sa.Column('is_correct', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.PrimaryKeyConstraint('option_id'),
        sa.UniqueConstraint('question_id', 'option_key', name='uq_question_option_key')
    )
    op.create_index('ix_question_options_question_id', 'question_options', ['question_id'])

    op.create_table(
        'exam_attempts',
        sa.Column('attempt_id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('exam_id', sa.Integer(), sa.ForeignKey('exams.exam_id'), nullable=False),
        sa.Column('student_id', sa.Integer(), sa.ForeignKey('users.user_id'), nullable=False),
        sa.Column('attempt_no', sa.Integer(), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('time_spent_seconds', sa.Integer(), nullable=True),
        sa.Column('ip_address', sa.String(64), nullable=True),
        sa.Column('user_agent', sa.String(512), nullable=True),
        sa.PrimaryKeyConstraint('attempt_id'),
        sa.UniqueConstraint('student_id', 'exam_id', 'attempt_no', name='uq_attempt_student_exam_no')
    )
    op.create_index('ix_exam_attempts_exam_id', 'exam_attempts', ['exam_id'])
    op.create_index('ix_exam_attempts_student_id', 'exam_attempts', ['student_id'])
    # Un solo intento IN_PROGRESS por estudiante y examen
    op.create_index(
        'uq_attempt_single_active',
        'exam_attempts',
        ['student_id', 'exam_id'],
        unique=True,
        postgresql_where=IN_PROGRESS_ONLY,
        sqlite_where=IN_PROGRESS_ONLY,
    )

    op.create_table(
        'attempt_answers',
        sa.Column('answer_id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('attempt_id', sa.Integer(), sa.ForeignKey('exam_attempts.attempt_id'), nullable=False),
        sa.Column('exam_id', sa.Integer(), sa.ForeignKey('exams.exam_id'), nullable=False),
        sa.Column('question_id', sa.Integer(), sa.ForeignKey('exam_questions.question_id'), nullable=False),
        sa.Column('selected_option_id', sa.Integer(), sa.ForeignKey('question_options.option_id'), nullable=True),
        sa.Column('answered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_marked_for_review', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.PrimaryKeyConstraint('answer_id'),
        sa.UniqueConstraint('attempt_id', 'question_id', name='uq_attempt_answer_question')
    )
    op.create_index('ix_attempt_answers_attempt_id', 'attempt_answers', ['attempt_id'])

    op.create_table(
        'attempt_security_events',
        sa.Column('event_id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('attempt_id', sa.Integer(), sa.ForeignKey('exam_attempts.attempt_id'), nullable=False),
        sa.Column('student_id', sa.Integer(), sa.ForeignKey('users.user_id'), nullable=False),
        sa.Column('event_type', sa.String(40), nullable=False),
        sa.Column('event_data', sa.JSON().with_variant(postgresql.JSONB(), 'postgresql'), nullable=True),
        sa.Column('risk_score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('event_id')
    )
    op.create_index('ix_attempt_security_events_attempt_id', 'attempt_security_events', ['attempt_id'])

    op.create_table(
        'exam_results',
        sa.Column('result_id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('attempt_id', sa.Integer(), sa.ForeignKey('exam_attempts.attempt_id'), nullable=False),
        sa.Column('exam_id', sa.Integer(), sa.ForeignKey('exams.exam_id'), nullable=False),
        sa.Column('student_id', sa.Integer(), sa.ForeignKey('users.user_id'), nullable=False),
        sa.Column('total_questions', sa.Integer(), nullable=False),
        sa.Column('correct_answers', sa.Integer(), nullable=False),
        sa.Column('wrong_answers', sa.Integer(), nullable=False),
        sa.Column('unanswered', sa.Integer(), nullable=False),
        sa.Column('max_marks', sa.Numeric(8, 2), nullable=False),
        sa.Column('marks_obtained', sa.Numeric(8, 2), nullable=False),
        sa.Column('score_percentage', sa.Numeric(5, 2), nullable=False),
        sa.Column('passed', sa.Boolean(), nullable=False),
        sa.Column('evaluated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('result_id'),
        sa.UniqueConstraint('attempt_id')
    )
    op.create_index('ix_exam_results_exam_id', 'exam_results', ['exam_id'])
    op.create_index('ix_exam_results_student_id', 'exam_results', ['student_id'])

    op.create_table(
        'certificates',
        sa.Column('certificate_id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('certificate_no', sa.String(64), nullable=False),
        sa.Column('result_id', sa.Integer(), sa.ForeignKey('exam_results.result_id'), nullable=False),
        sa.Column('exam_id', sa.Integer(), sa.ForeignKey('exams.exam_id'), nullable=False),
        sa.Column('student_id', sa.Integer(), sa.ForeignKey('users.user_id'), nullable=False),
        sa.Column('course_id', sa.Integer(), sa.ForeignKey('courses.course_id'), nullable=False),
        sa.Column('faculty_id', sa.Integer(), sa.ForeignKey('users.user_id'), nullable=True),
        sa.Column('score_percentage', sa.Numeric(5, 2), nullable=False),
        sa.Column('passed_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('file_key', sa.String(500), nullable=False),
        sa.Column('qr_payload', sa.Text(), nullable=False),
        sa.Column('verification_token', sa.String(64), nullable=False),
        sa.Column('issued_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('revoked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('certificate_id'),
        sa.UniqueConstraint('certificate_no'),
        sa.UniqueConstraint('result_id'),
        sa.UniqueConstraint('verification_token')
    )
    op.create_index('ix_certificates_student_id', 'certificates', ['student_id'])


def downgrade() -> None:
    """Drop all exam attempt tables."""
    op.drop_index('ix_certificates_student_id', table_name='certificates')
    op.drop_table('certificates')
    op.drop_index('ix_exam_results_student_id', table_name='exam_results')
    op.drop_index('ix_exam_results_exam_id', table_name='exam_results')
    op.drop_table('exam_results')
    op.drop_index('ix_attempt_security_events_attempt_id', table_name='attempt_security_events')
    op.drop_table('attempt_security_events')
    op.drop_index('ix_attempt_answers_attempt_id', table_name='attempt_answers')
    op.drop_table('attempt_answers')
    op.drop_index('uq_attempt_single_active', table_name='exam_attempts')
    op.drop_index('ix_exam_attempts_student_id', table_name='exam_attempts')
    op.drop_index('ix_exam_attempts_exam_id', table_name='exam_attempts')
    op.drop_table('exam_attempts')
    op.drop_index('ix_question_options_question_id', table_name='question_options')
    op.drop_table('question_options')
    op.drop_index('ix_exam_questions_exam_id', table_name='exam_questions')
    op.drop_table('exam_questions')
    op.drop_index('ix_exams_batch_id', table_name='exams')
    op.drop_index('ix_exams_course_id', table_name='exams')
    op.drop_table('exams')
    op.drop_index('ix_student_enrollments_batch_id', table_name='student_enrollments')
    op.drop_index('ix_student_enrollments_student_id', table_name='student_enrollments')
    op.drop_table('student_enrollments')
    op.drop_table('courses')
    op.drop_table('users')
