# app/services/certificate_storage.py
"""
Almacenamiento local de los PDF de certificados.

Las claves tienen la forma ``certificates/<archivo>.pdf`` relativa a
``UPLOADS_DIR`` y nunca pueden resolver fuera de ``<UPLOADS_DIR>/certificates``.
"""
import logging
import re
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Union

from app.core.errors import ExamPortalError

logger = logging.getLogger(__name__)

CERTIFICATES_PREFIX = "certificates/"


@dataclass(frozen=True)
class StoredFile:
    file_key: str
    absolute_path: Path


class CertificateStorage:
    def __init__(self, uploads_dir: Union[str, Path]):
        self.uploads_root = Path(uploads_dir).resolve()
        self.certificates_root = self.uploads_root / "certificates"

    def save_certificate_pdf(self, certificate_no: str, pdf_bytes: bytes) -> StoredFile:
        """
        Guarda el PDF con un nombre único derivado del número de certificado.
        """
        self.certificates_root.mkdir(parents=True, exist_ok=True)

        safe_no = re.sub(r"[^A-Za-z0-9-]", "", certificate_no).upper()
        file_name = f"{safe_no}-{uuid.uuid4()}.pdf"
        absolute_path = self.certificates_root / file_name
        absolute_path.write_bytes(pdf_bytes)

        logger.info(f"Certificate PDF stored: {file_name} ({len(pdf_bytes)} bytes)")
        return StoredFile(file_key=f"{CERTIFICATES_PREFIX}{file_name}", absolute_path=absolute_path)

    def get_readable_path(self, file_key: str) -> Path:
        absolute_path = self._resolve_file_key(file_key)
        if not absolute_path.is_file():
            raise ExamPortalError.not_found("Certificate file not found in storage.")
        return absolute_path

    def safe_delete(self, file_key: str) -> None:
        """Borrado best-effort: un archivo ausente o bloqueado no es un error."""
        absolute_path = self._resolve_file_key(file_key)
        try:
            absolute_path.unlink()
        except FileNotFoundError:
            return
        except OSError as e:
            logger.warning(f"Could not delete certificate file {file_key}: {e}")

    def _resolve_file_key(self, file_key: str) -> Path:
        normalized = file_key.replace("\\", "/").lstrip("/")
        if not normalized.startswith(CERTIFICATES_PREFIX):
            raise ExamPortalError.bad_request("Invalid certificate file key.")

        resolved = (self.uploads_root / normalized).resolve()
        if self.certificates_root not in resolved.parents:
            raise ExamPortalError.bad_request("Certificate file key resolves outside storage root.")
        return resolved
