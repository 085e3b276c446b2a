# app/core/config.py
from typing import List, Optional

from pydantic import PostgresDsn, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Configuración del portal leída del entorno (y de `.env` si existe).

    La base de datos se arma a partir de las variables POSTGRES_*, salvo que
    DATABASE_URL_OVERRIDE traiga una URI completa.
    """
    model_config = SettingsConfigDict(env_file=".env", env_ignore_case=True, extra="ignore")

    POSTGRES_SERVER: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "exam_portal"
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    DATABASE_URL_OVERRIDE: Optional[str] = None

    # Los tokens los emite el servicio de identidad; aquí solo se validan
    SECRET_KEY: str = "change-me-exam-portal-signing-key"
    ALGORITHM: str = "HS256"

    # Base de los enlaces de verificación impresos en el QR
    APP_BASE_URL: str = "http://localhost:8000"
    # Los PDF de certificados se guardan en <UPLOADS_DIR>/certificates
    UPLOADS_DIR: str = "uploads"

    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    @computed_field
    @property
    def DATABASE_URI(self) -> str:
        if self.DATABASE_URL_OVERRIDE:
            return self.DATABASE_URL_OVERRIDE
        return str(PostgresDsn.build(
            scheme="postgresql+psycopg2",
            host=self.POSTGRES_SERVER,
            port=self.POSTGRES_PORT,
            path=self.POSTGRES_DB,
            username=self.POSTGRES_USER,
            password=self.POSTGRES_PASSWORD,
        ))


settings = Settings()
