# app/api/v1/endpoints/health.py
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.db.session import get_db

router = APIRouter()
logger = logging.getLogger(__name__)


def _probe_database(db: Session) -> dict:
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Database probe failed: {e}")
        return {"status": "unhealthy", "error": str(e)}
    return {"status": "healthy"}


@router.get("/health", summary="Estado del portal y de la base de datos")
def check_health(db: Session = Depends(get_db)):
    """Responde 503 con el mismo cuerpo cuando la base de datos no contesta."""
    database = _probe_database(db)
    report = {
        "status": "ok" if database["status"] == "healthy" else "unhealthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "services": {"database": database},
    }
    if report["status"] != "ok":
        raise HTTPException(status_code=503, detail=report)
    return report
