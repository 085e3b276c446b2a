# app/db/session.py
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import settings

DATABASE_URI = settings.DATABASE_URI

if DATABASE_URI.startswith("sqlite"):
    # Uvicorn atiende endpoints síncronos desde un pool de hilos
    engine = create_engine(DATABASE_URI, connect_args={"check_same_thread": False})
else:
    engine = create_engine(DATABASE_URI, pool_pre_ping=True)

SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=True)


def get_db() -> Iterator[Session]:
    """Una sesión por petición, cerrada siempre al terminar."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
