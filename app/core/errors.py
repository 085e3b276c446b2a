# app/core/errors.py
"""
Taxonomía de errores del dominio de exámenes.

Un único tipo de excepción etiquetado con ``ErrorKind`` para que los
llamadores (y las pruebas) distingan el tipo de fallo por ``.kind``.
"""
import enum
from dataclasses import dataclass
from typing import Dict, Optional


class ErrorKind(str, enum.Enum):
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    BAD_REQUEST = "BAD_REQUEST"
    UNPROCESSABLE = "UNPROCESSABLE"
    INTERNAL = "INTERNAL"


ERROR_STATUS_CODES: Dict[ErrorKind, int] = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.BAD_REQUEST: 400,
    ErrorKind.UNPROCESSABLE: 422,
    ErrorKind.INTERNAL: 500,
}


class ExamPortalError(Exception):
    """Excepción de dominio con su clasificación."""

    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message

    @property
    def status_code(self) -> int:
        return ERROR_STATUS_CODES[self.kind]

    @classmethod
    def not_found(cls, message: str) -> "ExamPortalError":
        return cls(ErrorKind.NOT_FOUND, message)

    @classmethod
    def conflict(cls, message: str) -> "ExamPortalError":
        return cls(ErrorKind.CONFLICT, message)

    @classmethod
    def bad_request(cls, message: str) -> "ExamPortalError":
        return cls(ErrorKind.BAD_REQUEST, message)

    @classmethod
    def unprocessable(cls, message: str) -> "ExamPortalError":
        return cls(ErrorKind.UNPROCESSABLE, message)

    @classmethod
    def internal(cls, message: str) -> "ExamPortalError":
        return cls(ErrorKind.INTERNAL, message)

    def to_detail(self) -> Dict[str, object]:
        return {
            "success": False,
            "error": self.kind.value,
            "message": self.message,
        }

    def __repr__(self) -> str:
        return f"<ExamPortalError(kind={self.kind.value}, message='{self.message}')>"


@dataclass(frozen=True)
class ValidationResult:
    """Resultado de una validación de entrada: ok o error con motivo."""
    ok: bool
    reason: Optional[str] = None

    @classmethod
    def success(cls) -> "ValidationResult":
        return cls(ok=True)

    @classmethod
    def failure(cls, reason: str) -> "ValidationResult":
        return cls(ok=False, reason=reason)

    def raise_for_failure(self) -> None:
        if not self.ok:
            raise ExamPortalError.bad_request(self.reason or "Invalid request.")
