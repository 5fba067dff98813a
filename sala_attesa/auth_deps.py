from __future__ import annotations

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from .auth_security import get_subject
from .auth_service import e_admin, get_clinica_by_id
from .models import Clinica

# OAuth2 Bearer (Authorization: Bearer <token>)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token")


def get_current_clinica(token: str = Depends(oauth2_scheme)) -> Clinica:
    clinica_id = get_subject(token)
    if not clinica_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "INVALID_TOKEN", "message": "Invalid or expired token"},
        )

    c = get_clinica_by_id(clinica_id)
    if not c or not c.attiva:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "INVALID_TOKEN", "message": "Clinic not found or inactive"},
        )
    return c


def richiedi_admin(clinica: Clinica = Depends(get_current_clinica)) -> Clinica:
    if not e_admin(clinica.email):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"code": "FORBIDDEN", "message": "Admin access required"},
        )
    return clinica
