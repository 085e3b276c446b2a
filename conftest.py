"""
Fixtures compartidas: SQLite en memoria, reloj controlable, catálogo sembrado
y el TestClient de FastAPI con las dependencias sustituidas.
"""
import itertools
import os
import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List

import pytest

from app.core.config_test import test_settings

# La configuración se lee al importar la app: SQLite y la clave de pruebas primero
os.environ.setdefault("DATABASE_URL_OVERRIDE", test_settings.DATABASE_URI)
os.environ.setdefault("SECRET_KEY", test_settings.SECRET_KEY)
os.environ.setdefault("ALGORITHM", test_settings.ALGORITHM)
os.environ.setdefault("APP_BASE_URL", test_settings.APP_BASE_URL)

from fastapi.testclient import TestClient  # noqa: E402
from jose import jwt  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.core.config import settings  # noqa: E402
from app.core.deps import get_attempt_service, get_certificate_service  # noqa: E402
from app.db.models_registry import Base  # noqa: E402
from app.db.session import get_db  # noqa: E402
from app.main import app  # noqa: E402
from app.models.exam import (  # noqa: E402
    Course, EnrollmentStatusEnum, Exam, ExamQuestion, ExamStatusEnum,
    QuestionOption, RoleEnum, StudentEnrollment, User
)
from app.services.anti_cheat import ClientContext  # noqa: E402
from app.services.attempt_service import AttemptService  # noqa: E402
from app.services.certificate_service import CertificateService  # noqa: E402
from app.services.certificate_storage import CertificateStorage  # noqa: E402

RNG_SEED = 20240611
BATCH_ID = 7


class FixedClock:
    """Reloj inyectable que solo avanza cuando la prueba lo pide."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeRenderers:
    """Sustituye qrcode/ReportLab y guarda lo que se pidió renderizar."""

    def __init__(self):
        self.qr_payloads: List[str] = []
        self.pdf_payloads: List[dict] = []

    def qr(self, url: str) -> bytes:
        self.qr_payloads.append(url)
        return b"QR:" + url.encode()

    def pdf(self, certificate_data: dict, qr_image_bytes: bytes = None) -> bytes:
        self.pdf_payloads.append(certificate_data)
        return b"%PDF-1.4 " + certificate_data["certificate_no"].encode()


@dataclass
class SeededCatalog:
    student_id: int
    other_student_id: int
    faculty_id: int
    course_id: int
    exam_id: int
    question_ids: List[int]
    correct_option_ids: Dict[int, int] = field(default_factory=dict)
    wrong_option_ids: Dict[int, int] = field(default_factory=dict)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return FixedClock(datetime(2025, 3, 14, 10, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def client_context():
    return ClientContext(ip_address="10.0.0.1", user_agent="pytest-browser/1.0")


@pytest.fixture
def renderers():
    return FakeRenderers()


@pytest.fixture
def storage(tmp_path):
    return CertificateStorage(tmp_path / "uploads")


@pytest.fixture
def certificate_service(storage, renderers, clock):
    counter = itertools.count(1)
    return CertificateService(
        storage=storage,
        base_url=test_settings.APP_BASE_URL,
        qr_renderer=renderers.qr,
        pdf_renderer=renderers.pdf,
        token_factory=lambda: f"token-{next(counter):04d}",
        clock=clock,
    )


@pytest.fixture
def attempt_service(certificate_service, clock):
    return AttemptService(certificates=certificate_service, rng=random.Random(RNG_SEED), clock=clock)


@pytest.fixture
def catalog(db, clock) -> SeededCatalog:
    """
    Un estudiante inscrito, un docente y un examen publicado de 4 preguntas
    de 25 puntos (opción B correcta en todas).
    """
    student = User(email="ana.lopez@example.com", first_name="Ana", last_name="López", role=RoleEnum.STUDENT)
    other = User(email="luis.perez@example.com", first_name="Luis", last_name="Pérez", role=RoleEnum.STUDENT)
    faculty = User(email="carla.ruiz@example.com", first_name="Carla", last_name="Ruiz", role=RoleEnum.FACULTY)
    course = Course(course_code="PY-101", course_name="Python Fundamentals")
    db.add_all([student, other, faculty, course])
    db.flush()

    db.add(StudentEnrollment(student_id=student.user_id, batch_id=BATCH_ID, status=EnrollmentStatusEnum.ACTIVE))

    exam = Exam(
        course_id=course.course_id,
        batch_id=BATCH_ID,
        created_by_faculty_id=faculty.user_id,
        title="Python Fundamentals - Final",
        duration_minutes=30,
        total_marks=100,
        max_attempts=2,
        starts_at=clock.now - timedelta(days=1),
        ends_at=clock.now + timedelta(days=1),
        status=ExamStatusEnum.PUBLISHED,
    )
    db.add(exam)
    db.flush()

    seeded = SeededCatalog(
        student_id=student.user_id,
        other_student_id=other.user_id,
        faculty_id=faculty.user_id,
        course_id=course.course_id,
        exam_id=exam.exam_id,
        question_ids=[],
    )

    for order in range(1, 5):
        question = ExamQuestion(
            exam_id=exam.exam_id,
            question_text=f"Question {order}",
            marks=25,
            display_order=order,
        )
        db.add(question)
        db.flush()
        options = {
            key: QuestionOption(
                question_id=question.question_id,
                option_key=key,
                option_text=f"Option {key}",
                is_correct=(key == "B"),
            )
            for key in ("A", "B", "C", "D")
        }
        db.add_all(options.values())
        db.flush()
        seeded.question_ids.append(question.question_id)
        seeded.correct_option_ids[question.question_id] = options["B"].option_id
        seeded.wrong_option_ids[question.question_id] = options["A"].option_id

    db.commit()
    return seeded


@pytest.fixture
def api_client(session_factory, attempt_service, certificate_service):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_attempt_service] = lambda: attempt_service
    app.dependency_overrides[get_certificate_service] = lambda: certificate_service
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


def make_token(user_id: int, role: RoleEnum = RoleEnum.STUDENT) -> str:
    return jwt.encode(
        {"sub": str(user_id), "role": role.value},
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM,
    )


def auth_headers(user_id: int, role: RoleEnum = RoleEnum.STUDENT) -> Dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user_id, role)}"}
