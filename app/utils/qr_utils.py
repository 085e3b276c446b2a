# app/utils/qr_utils.py
"""
Códigos QR de verificación de certificados.
"""
import logging
from io import BytesIO

import qrcode
from qrcode.constants import ERROR_CORRECT_M

logger = logging.getLogger(__name__)

# Mismo azul que el marco del PDF
CERTIFICATE_QR_COLOR = "#1F3B4D"


def generate_qr_code(data: str, box_size: int = 10, border: int = 4,
                     fill_color: str = "black", back_color: str = "white") -> bytes:
    """
    Codifica ``data`` en un QR y lo devuelve como PNG.

    Raises:
        ValueError: si no hay nada que codificar
    """
    if not data:
        raise ValueError("QR data cannot be empty")

    qr = qrcode.QRCode(error_correction=ERROR_CORRECT_M, box_size=box_size, border=border)
    qr.add_data(data)
    qr.make(fit=True)

    png = BytesIO()
    try:
        qr.make_image(fill_color=fill_color, back_color=back_color).convert("RGB").save(png, format="PNG")
    except Exception as e:
        logger.error(f"Could not render QR for {data[:60]}: {e}")
        raise

    logger.debug(f"QR rendered ({png.tell()} bytes)")
    return png.getvalue()


def generate_verification_qr(verification_url: str) -> bytes:
    """QR impreso en el certificado; apunta a la página pública de verificación."""
    return generate_qr_code(verification_url, box_size=8, border=2, fill_color=CERTIFICATE_QR_COLOR)
