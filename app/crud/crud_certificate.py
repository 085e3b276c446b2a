# app/crud/crud_certificate.py
from typing import List, Optional, Tuple
from sqlalchemy import desc
from sqlalchemy.orm import Session

from app.models.certificate import Certificate
from app.models.exam import Course


class CRUDCertificate:
    def get_by_result_id(self, db: Session, result_id: int) -> Optional[Certificate]:
        return db.query(Certificate).filter(Certificate.result_id == result_id).first()

    def get_active_by_result_id(self, db: Session, result_id: int) -> Optional[Certificate]:
        return (
            db.query(Certificate)
            .filter(Certificate.result_id == result_id, Certificate.revoked == False)  # noqa: E712
            .first()
        )

    def get_by_no(self, db: Session, certificate_no: str) -> Optional[Certificate]:
        return db.query(Certificate).filter(Certificate.certificate_no == certificate_no).first()

    def get_active_for_student(self, db: Session, student_id: int, certificate_no: str) -> Optional[Certificate]:
        return (
            db.query(Certificate)
            .filter(
                Certificate.certificate_no == certificate_no,
                Certificate.student_id == student_id,
                Certificate.revoked == False,  # noqa: E712
            )
            .first()
        )

    def list_for_student(self, db: Session, student_id: int) -> List[Tuple[Certificate, Optional[str]]]:
        """
        Certificados vigentes del estudiante con el nombre del curso, más recientes primero.
        """
        return (
            db.query(Certificate, Course.course_name)
            .outerjoin(Course, Course.course_id == Certificate.course_id)
            .filter(Certificate.student_id == student_id, Certificate.revoked == False)  # noqa: E712
            .order_by(desc(Certificate.issued_at))
            .all()
        )

    def create(self, db: Session, db_obj: Certificate) -> Certificate:
        """
        Inserta el certificado. Una violación de unicidad (result_id) propaga
        IntegrityError para que el servicio recupere el certificado ganador.
        """
        db.add(db_obj)
        db.commit()
        db.refresh(db_obj)
        return db_obj


certificate_crud = CRUDCertificate()
