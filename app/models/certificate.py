# app/models/certificate.py
from sqlalchemy import (
    Boolean, Column, Integer, String, Text, ForeignKey, Numeric, DateTime
)

from app.db.base import Base


class Certificate(Base):
    """
    Certificado emitido para un resultado evaluado.
    result_id es único: como máximo un certificado por resultado.
    """
    __tablename__ = 'certificates'

    certificate_id = Column(Integer, primary_key=True, autoincrement=True)
    certificate_no = Column(String(64), nullable=False, unique=True)
    result_id = Column(Integer, ForeignKey("exam_results.result_id"), nullable=False, unique=True)
    exam_id = Column(Integer, ForeignKey("exams.exam_id"), nullable=False)
    student_id = Column(Integer, ForeignKey("users.user_id"), nullable=False, index=True)
    course_id = Column(Integer, ForeignKey("courses.course_id"), nullable=False)
    faculty_id = Column(Integer, ForeignKey("users.user_id"), nullable=True)
    score_percentage = Column(Numeric(5, 2, asdecimal=False), nullable=False)
    passed_at = Column(DateTime(timezone=True), nullable=False)
    file_key = Column(String(500), nullable=False)
    qr_payload = Column(Text, nullable=False)
    verification_token = Column(String(64), nullable=False, unique=True)
    issued_at = Column(DateTime(timezone=True), nullable=False)
    revoked = Column(Boolean, nullable=False, default=False)
    revoked_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<Certificate(certificate_no='{self.certificate_no}', result_id={self.result_id}, revoked={self.revoked})>"
