# app/models/exam.py
"""
Tablas de catálogo que el núcleo de intentos solo lee: usuarios, cursos,
inscripciones y exámenes con sus preguntas y opciones.
"""
import enum

from sqlalchemy import (
    Boolean, Column, Integer, String, Text, ForeignKey, Numeric,
    DateTime, Enum, UniqueConstraint, func
)
from sqlalchemy.orm import relationship

from app.db.base import Base


class RoleEnum(str, enum.Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    FACULTY = "FACULTY"
    STUDENT = "STUDENT"


class EnrollmentStatusEnum(str, enum.Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    DROPPED = "DROPPED"
    SUSPENDED = "SUSPENDED"


class ExamStatusEnum(str, enum.Enum):
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    CLOSED = "CLOSED"
    ARCHIVED = "ARCHIVED"


class User(Base):
    __tablename__ = 'users'

    user_id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False, default='')
    role = Column(Enum(RoleEnum, name='user_role', native_enum=False, length=20), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self):
        return f"<User(user_id={self.user_id}, email='{self.email}', role='{self.role}')>"


class Course(Base):
    __tablename__ = 'courses'

    course_id = Column(Integer, primary_key=True, autoincrement=True)
    course_code = Column(String(50), nullable=False, unique=True)
    course_name = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<Course(course_id={self.course_id}, course_code='{self.course_code}')>"


class StudentEnrollment(Base):
    __tablename__ = 'student_enrollments'

    enrollment_id = Column(Integer, primary_key=True, autoincrement=True)
    student_id = Column(Integer, ForeignKey("users.user_id"), nullable=False, index=True)
    batch_id = Column(Integer, nullable=False, index=True)
    status = Column(
        Enum(EnrollmentStatusEnum, name='enrollment_status', native_enum=False, length=20),
        nullable=False,
        default=EnrollmentStatusEnum.ACTIVE,
    )
    enrolled_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint('student_id', 'batch_id', name='uq_enrollment_student_batch'),
    )

    def __repr__(self):
        return f"<StudentEnrollment(student_id={self.student_id}, batch_id={self.batch_id}, status='{self.status}')>"


class Exam(Base):
    __tablename__ = 'exams'

    exam_id = Column(Integer, primary_key=True, autoincrement=True)
    course_id = Column(Integer, ForeignKey("courses.course_id"), nullable=False, index=True)
    batch_id = Column(Integer, nullable=False, index=True)
    created_by_faculty_id = Column(Integer, ForeignKey("users.user_id"), nullable=True)
    title = Column(String(255), nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    total_marks = Column(Numeric(8, 2, asdecimal=False), nullable=False, default=0)
    max_attempts = Column(Integer, nullable=False, default=1)
    starts_at = Column(DateTime(timezone=True), nullable=True)
    ends_at = Column(DateTime(timezone=True), nullable=True)
    status = Column(
        Enum(ExamStatusEnum, name='exam_status', native_enum=False, length=20),
        nullable=False,
        default=ExamStatusEnum.DRAFT,
    )
    shuffle_questions = Column(Boolean, nullable=False, default=False)
    shuffle_options = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    course = relationship("Course")
    faculty = relationship("User")
    questions = relationship(
        "ExamQuestion",
        back_populates="exam",
        order_by="ExamQuestion.display_order",
    )

    def __repr__(self):
        return f"<Exam(exam_id={self.exam_id}, title='{self.title}', status='{self.status}')>"


class ExamQuestion(Base):
    __tablename__ = 'exam_questions'

    question_id = Column(Integer, primary_key=True, autoincrement=True)
    exam_id = Column(Integer, ForeignKey("exams.exam_id"), nullable=False, index=True)
    question_text = Column(Text, nullable=False)
    image_key = Column(String(500), nullable=True)
    marks = Column(Numeric(8, 2, asdecimal=False), nullable=False, default=1)
    display_order = Column(Integer, nullable=False, default=0)

    exam = relationship("Exam", back_populates="questions")
    options = relationship(
        "QuestionOption",
        back_populates="question",
        order_by="QuestionOption.option_key",
    )


class QuestionOption(Base):
    __tablename__ = 'question_options'

    option_id = Column(Integer, primary_key=True, autoincrement=True)
    question_id = Column(Integer, ForeignKey("exam_questions.question_id"), nullable=False, index=True)
    option_key = Column(String(1), nullable=False)   # A, B, C, D
    option_text = Column(Text, nullable=False)
    is_correct = Column(Boolean, nullable=False, default=False)

    question = relationship("ExamQuestion", back_populates="options")

    __table_args__ = (
        UniqueConstraint('question_id', 'option_key', name='uq_question_option_key'),
    )
