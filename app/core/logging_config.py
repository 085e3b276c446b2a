# app/core/logging_config.py
"""
Logging del portal de exámenes.

Consola legible para desarrollo y archivos rotativos en JSON, uno por
dominio (intentos, certificados, API), más un archivo solo de errores.
"""
import json
import logging
import logging.config
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

# Atributos del LogRecord que pasan al JSON cuando vienen en `extra`
STRUCTURED_FIELDS = (
    "service",
    "endpoint",
    "method",
    "status_code",
    "response_time_ms",
    "request_id",
    "user_id",
    "student_id",
    "exam_id",
    "attempt_id",
    "result_id",
    "certificate_no",
    "event_type",
    "reason",
    "transition",
    "error_code",
)

ROTATE_AT_BYTES = 10 * 1024 * 1024

# logger -> (archivo de dominio, incluye consola)
DOMAIN_LOGGERS = {
    "app": ("app.log", True),
    "app.services.attempt_service": ("attempts.log", True),
    "app.services.certificate_service": ("certificates.log", True),
    "app.api": ("api.log", True),
    "fastapi": ("api.log", True),
    "uvicorn": ("api.log", True),
    "uvicorn.access": ("api.log", False),
}


class StructuredFormatter(logging.Formatter):
    """Una línea JSON por registro, con los campos de STRUCTURED_FIELDS presentes."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
            "pid": record.process,
        }
        payload.update(
            (name, getattr(record, name)) for name in STRUCTURED_FIELDS if hasattr(record, name)
        )
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def _file_handler(path: Path, level: str = "INFO", backups: int = 10) -> Dict[str, Any]:
    return {
        "class": "logging.handlers.RotatingFileHandler",
        "formatter": "json",
        "filename": str(path),
        "maxBytes": ROTATE_AT_BYTES,
        "backupCount": backups,
        "level": level,
    }


def setup_logging(log_dir: str = "logs") -> None:
    """Crea ``log_dir`` si hace falta y aplica la configuración con dictConfig."""
    directory = Path(log_dir)
    directory.mkdir(parents=True, exist_ok=True)

    handlers: Dict[str, Dict[str, Any]] = {
        "stdout": {
            "class": "logging.StreamHandler",
            "formatter": "plain",
            "stream": "ext://sys.stdout",
            "level": "INFO",
        },
        "errors": _file_handler(directory / "errors.log", level="ERROR"),
    }
    loggers: Dict[str, Dict[str, Any]] = {}

    for name, (filename, to_console) in DOMAIN_LOGGERS.items():
        handler_id = filename.rsplit(".", 1)[0]
        if handler_id not in handlers:
            backups = 5 if handler_id == "certificates" else 10
            handlers[handler_id] = _file_handler(directory / filename, backups=backups)

        targets: List[str] = ["stdout"] if to_console else []
        targets.append(handler_id)
        if name.startswith("app"):
            targets.append("errors")
        loggers[name] = {"level": "INFO", "handlers": targets, "propagate": False}

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {"()": StructuredFormatter},
            "plain": {
                "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": handlers,
        "loggers": loggers,
        "root": {"level": "WARNING", "handlers": ["stdout", "app"]},
    })

    logging.getLogger("app").info(f"Logging configured, files under {directory.resolve()}")


class LoggerAdapter(logging.LoggerAdapter):
    """Adjunta un contexto fijo a cada registro; el `extra` de la llamada tiene prioridad."""

    def __init__(self, logger: logging.Logger, extra: Optional[Dict[str, Any]] = None):
        super().__init__(logger, extra or {})

    def process(self, msg, kwargs):
        if self.extra:
            kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs


def get_attempt_logger() -> LoggerAdapter:
    return LoggerAdapter(logging.getLogger("app.services.attempt_service"), {"service": "attempts"})


def get_certificate_logger() -> LoggerAdapter:
    return LoggerAdapter(logging.getLogger("app.services.certificate_service"), {"service": "certificates"})


def log_api_request(logger: logging.Logger, method: str, endpoint: str,
                    status_code: Optional[int] = None, response_time_ms: Optional[int] = None,
                    user_id: Optional[str] = None, **context):
    """
    Deja constancia de una petición HTTP atendida.

    El nivel depende del código de respuesta: ERROR para 5xx, WARNING para
    4xx e INFO para el resto.
    """
    extra: Dict[str, Any] = {"service": "api", "method": method, "endpoint": endpoint}
    optional = {"status_code": status_code, "response_time_ms": response_time_ms, "user_id": user_id}
    extra.update((key, value) for key, value in optional.items() if value is not None)
    extra.update(context)

    code = status_code or 0
    if code >= 500:
        logger.error(f"{method} {endpoint} -> {code}", extra=extra)
    elif code >= 400:
        logger.warning(f"{method} {endpoint} -> {code}", extra=extra)
    else:
        logger.info(f"{method} {endpoint} -> {code or '-'}", extra=extra)


def log_attempt_transition(logger: logging.LoggerAdapter, transition: str,
                           attempt_id: int, student_id: Optional[int] = None,
                           exam_id: Optional[int] = None, **context):
    """Registra un cambio de estado de intento, p. ej. ``IN_PROGRESS->EVALUATED``."""
    extra: Dict[str, Any] = {"transition": transition, "attempt_id": attempt_id}
    if student_id is not None:
        extra["student_id"] = student_id
    if exam_id is not None:
        extra["exam_id"] = exam_id
    extra.update(context)
    logger.info(f"Attempt {attempt_id}: {transition}", extra=extra)
