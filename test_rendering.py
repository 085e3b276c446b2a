from datetime import datetime, timezone

import pytest

from app.utils.pdf_utils import generate_certificate_pdf
from app.utils.qr_utils import generate_qr_code, generate_verification_qr

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


def test_verification_qr_is_png():
    png = generate_verification_qr("http://testserver/api/v1/certificates/verify/CERT-1/page?token=abc")
    assert png.startswith(PNG_SIGNATURE)


def test_empty_qr_data_is_rejected():
    with pytest.raises(ValueError):
        generate_qr_code("")


def test_certificate_pdf_with_qr_and_markup_in_names():
    qr_png = generate_verification_qr("http://testserver/verify")
    pdf = generate_certificate_pdf(
        {
            "certificate_no": "CERT-202503-PY101X-00000001",
            "student_name": "Ana <López> & Co",
            "course_name": "Python & Data",
            "score_percentage": 87.5,
            "passed_at": datetime(2025, 3, 14, tzinfo=timezone.utc),
            "issued_at": datetime(2025, 3, 14, tzinfo=timezone.utc),
            "trainer_name": "Carla Ruiz",
            "verification_url": "http://testserver/verify?token=a&b",
        },
        qr_png,
    )
    assert pdf.startswith(b"%PDF")
    assert len(pdf) > 1000


def test_certificate_pdf_without_qr():
    pdf = generate_certificate_pdf({"certificate_no": "CERT-X", "score_percentage": 75})
    assert pdf.startswith(b"%PDF")
