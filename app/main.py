# app/main.py
import logging

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from app.api.v1.endpoints import certificates, health, student
from app.core.config import settings
from app.core.errors import ErrorKind, ExamPortalError
from app.core.logging_config import setup_logging
from middleware.request_logging import RequestLoggingMiddleware

API_VERSION = "1.0.0"

setup_logging()
logger = logging.getLogger("app")

app = FastAPI(
    title="Exam Portal API",
    version=API_VERSION,
    description="""
    ## Portal de exámenes y certificación

    - **Student**: intentos con tiempo límite, guardado de respuestas, heartbeat anti-trampas y entrega
    - **Results**: historial de resultados del estudiante
    - **Certificates**: descarga del PDF y verificación pública por QR
    - **Health / Metrics**: estado de la base de datos y métricas Prometheus
    """,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)

app.include_router(health.router, prefix="/api/v1", tags=["Health Check"])
app.include_router(student.router, prefix="/api/v1/student", tags=["Student Attempts"])
app.include_router(certificates.router, prefix="/api/v1/certificates", tags=["Certificate Verification"])


@app.exception_handler(ExamPortalError)
async def exam_portal_error_handler(request: Request, exc: ExamPortalError):
    """Errores de dominio -> código HTTP y cuerpo ``{"detail": {success, error, message}}``."""
    route = f"{request.method} {request.url.path}"
    if exc.kind == ErrorKind.INTERNAL:
        logger.error(f"{route} failed: {exc.message}")
    else:
        logger.warning(
            f"{route} rejected with {exc.kind.value}: {exc.message}",
            extra={"error_code": exc.kind.value, "status_code": exc.status_code},
        )
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_detail()})


@app.get("/")
async def root():
    return {
        "message": "Exam Portal API",
        "status": "operativo",
        "version": API_VERSION,
        "docs": "/docs",
        "available_services": ["health", "student", "certificates", "metrics"],
    }


@app.get("/metrics", include_in_schema=False)
async def prometheus_metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


logger.info(f"Exam Portal API {API_VERSION} ready")
