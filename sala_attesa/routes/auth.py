from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import BaseModel

from ..auth_deps import get_current_clinica
from ..auth_service import autentica, e_admin, login
from ..auth_security import create_access_token
from ..models import Clinica
from ..schemas import LoginIn
from ..services import get_clinica
from . import ok

router = APIRouter(prefix="/api/auth", tags=["auth"])


class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"


@router.post("/login")
def api_login(payload: LoginIn) -> dict[str, Any]:
    risultato = login(payload.email, payload.password)
    risultato["clinica"]["admin"] = e_admin(risultato["clinica"]["email"])
    return ok(risultato)


@router.post("/token", response_model=TokenOut)
def api_token(form: OAuth2PasswordRequestForm = Depends()) -> TokenOut:
    """Login in formato OAuth2 (form), usato dalla pagina /docs."""
    profilo = autentica(form.username, form.password)
    if not profilo:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "INVALID_CREDENTIALS", "message": "Invalid email or password"},
        )
    token = create_access_token(subject=profilo["id"], extra={"email": profilo["email"], "name": profilo["nome"]})
    return TokenOut(access_token=token)


@router.post("/logout")
def api_logout(clinica: Clinica = Depends(get_current_clinica)) -> dict[str, Any]:
    # con JWT il logout è lato client: basta scartare il token
    return ok({"messaggio": "Logged out successfully"})


@router.get("/me")
def api_me(clinica: Clinica = Depends(get_current_clinica)) -> dict[str, Any]:
    profilo = get_clinica(clinica.id)
    profilo["admin"] = e_admin(clinica.email)
    return ok(profilo)
