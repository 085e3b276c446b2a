# app/utils/pdf_utils.py
"""
Generación del PDF del certificado con ReportLab.
"""
import io
import logging
from xml.sax.saxutils import escape
from datetime import datetime
from typing import Dict, Any, Optional

from reportlab.lib.pagesizes import A4
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.styles import ParagraphStyle
from reportlab.platypus import (
    SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle, Image as RLImage
)
from reportlab.lib.colors import HexColor

logger = logging.getLogger(__name__)

# Colores del certificado
COLOR_PRIMARY = HexColor("#1F3B4D")
COLOR_TEXT = HexColor("#333333")
COLOR_DARK = HexColor("#111111")
COLOR_GRAY = HexColor("#666666")
COLOR_BORDER = HexColor("#4A4A4A")


def _format_date(value: Any) -> str:
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d")
    return str(value) if value else "N/A"


def _draw_border(canvas, doc):
    """Marco exterior de la página."""
    width, height = A4
    canvas.saveState()
    canvas.setStrokeColor(COLOR_PRIMARY)
    canvas.setLineWidth(3)
    canvas.rect(20, 20, width - 40, height - 40)
    canvas.restoreState()


def generate_certificate_pdf(
    certificate_data: Dict[str, Any],
    qr_image_bytes: Optional[bytes] = None
) -> bytes:
    """
    Genera el PDF de un certificado de aprobación.

    Args:
        certificate_data: certificate_no, student_name, course_name, score_percentage,
            passed_at, issued_at, trainer_name, verification_url
        qr_image_bytes: Imagen QR en bytes (opcional)

    Returns:
        PDF en bytes
    """
    buffer = io.BytesIO()

    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=50,
        leftMargin=50,
        topMargin=60,
        bottomMargin=40
    )

    elements = []
    page_width = A4[0] - 100  # ancho usable

    def centered(name: str, size: int, color, bold: bool = False, space_after: int = 6) -> ParagraphStyle:
        return ParagraphStyle(
            name,
            fontSize=size,
            leading=size + 6,
            textColor=color,
            alignment=TA_CENTER,
            fontName='Helvetica-Bold' if bold else 'Helvetica',
            spaceAfter=space_after,
        )

    score = float(certificate_data.get("score_percentage", 0))

    # === ENCABEZADO ===
    elements.append(Paragraph("EXAM &amp; CERTIFICATION PORTAL", centered('Portal', 14, COLOR_BORDER)))
    elements.append(Spacer(1, 12))
    elements.append(Paragraph("Certificate of Achievement", centered('Title', 32, COLOR_PRIMARY, bold=True)))
    elements.append(Spacer(1, 18))

    # === CUERPO ===
    elements.append(Paragraph("This certifies that", centered('Intro', 14, COLOR_TEXT)))
    elements.append(Paragraph(
        escape(str(certificate_data.get("student_name", "N/A"))),
        centered('Student', 26, COLOR_DARK, bold=True, space_after=12)
    ))
    elements.append(Paragraph(
        "has successfully completed the certification course",
        centered('Body', 13, COLOR_TEXT)
    ))
    elements.append(Paragraph(
        escape(str(certificate_data.get("course_name", "N/A"))),
        centered('Course', 18, COLOR_PRIMARY, bold=True, space_after=12)
    ))
    elements.append(Paragraph(f"Score: {score:.2f}%", centered('Score', 13, COLOR_TEXT)))
    elements.append(Spacer(1, 30))

    # === DATOS + FIRMA ===
    detail_style = ParagraphStyle('Detail', fontSize=11, leading=16, textColor=COLOR_DARK)
    details = [
        [Paragraph(f"Certificate No: {certificate_data.get('certificate_no', 'N/A')}", detail_style)],
        [Paragraph(f"Date of Passing: {_format_date(certificate_data.get('passed_at'))}", detail_style)],
        [Paragraph(f"Issued On: {_format_date(certificate_data.get('issued_at'))}", detail_style)],
    ]
    details_table = Table(details, colWidths=[page_width * 0.55])

    signature = Table(
        [
            [Paragraph("Trainer Signature", centered('SigLabel', 11, COLOR_DARK))],
            [Spacer(1, 24)],
            [Paragraph(escape(str(certificate_data.get("trainer_name", ""))), centered('Trainer', 11, COLOR_DARK))],
        ],
        colWidths=[page_width * 0.40],
    )
    signature.setStyle(TableStyle([
        ('LINEBELOW', (0, 1), (-1, 1), 1, COLOR_BORDER),
        ('ALIGN', (0, 0), (-1, -1), 'CENTER'),
    ]))

    body_table = Table([[details_table, signature]], colWidths=[page_width * 0.58, page_width * 0.42])
    body_table.setStyle(TableStyle([
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
    ]))
    elements.append(body_table)
    elements.append(Spacer(1, 30))

    # === SECCIÓN QR ===
    if qr_image_bytes:
        qr_image = RLImage(io.BytesIO(qr_image_bytes), width=110, height=110)
        qr_table = Table(
            [
                [qr_image],
                [Paragraph("Scan QR to verify certificate", centered('QRLabel', 9, COLOR_TEXT))],
            ],
            colWidths=[170],
        )
        qr_table.setStyle(TableStyle([
            ('ALIGN', (0, 0), (-1, -1), 'CENTER'),
        ]))
        qr_table.hAlign = 'RIGHT'
        elements.append(qr_table)

    verification_url = certificate_data.get("verification_url")
    if verification_url:
        url_style = ParagraphStyle('Url', fontSize=8, textColor=COLOR_GRAY)
        elements.append(Paragraph(escape(str(verification_url)), url_style))

    try:
        doc.build(elements, onFirstPage=_draw_border, onLaterPages=_draw_border)
    except Exception as e:
        logger.error(f"Error building PDF: {e}")
        raise

    pdf_bytes = buffer.getvalue()
    buffer.close()

    logger.info(f"PDF generated successfully, size: {len(pdf_bytes)} bytes")
    return pdf_bytes
