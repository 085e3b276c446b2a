# app/core/deps.py
from dataclasses import dataclass
from functools import lru_cache

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt

from app.core.config import settings
from app.models.exam import RoleEnum
from app.services.anti_cheat import ClientContext
from app.services.attempt_service import AttemptService
from app.services.certificate_service import CertificateService
from app.services.certificate_storage import CertificateStorage

# Los tokens los emite el servicio de identidad; aquí solo se decodifican
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/token")


@dataclass(frozen=True)
class CurrentUser:
    user_id: int
    role: RoleEnum


def has_role(user: CurrentUser, *roles: RoleEnum) -> bool:
    """Predicado de autorización por rol."""
    return user.role in roles


def get_current_user(token: str = Depends(oauth2_scheme)) -> CurrentUser:
    """
    Dependencia para obtener el usuario actual desde el token JWT.
    Claims esperados: sub (user_id) y role.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        subject = payload.get("sub")
        role = payload.get("role")
        if subject is None or role is None:
            raise credentials_exception
        return CurrentUser(user_id=int(subject), role=RoleEnum(role))
    except (JWTError, ValueError):
        raise credentials_exception


def require_student(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not has_role(user, RoleEnum.STUDENT):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "success": False,
                "error": "FORBIDDEN",
                "message": "Only students can access this resource."
            },
        )
    return user


def get_client_context(request: Request) -> ClientContext:
    """Huella del cliente: IP de la conexión y cabecera User-Agent."""
    return ClientContext(
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )


@lru_cache()
def get_certificate_service() -> CertificateService:
    return CertificateService(
        storage=CertificateStorage(settings.UPLOADS_DIR),
        base_url=settings.APP_BASE_URL,
    )


def get_attempt_service(
    certificates: CertificateService = Depends(get_certificate_service),
) -> AttemptService:
    return AttemptService(certificates=certificates)
