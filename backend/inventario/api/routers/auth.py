import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ...config import Settings
from ...dependencies import get_app_settings, get_db
from ...security.auth import authenticate, create_access_token, get_current_user
from ...domain.models import User
from ...application.dtos import LoginIn, LoginOut, UserOut

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=LoginOut)
def login(
    payload: LoginIn,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    """Autenticación con usuario y clave. Devuelve el token JWT y el usuario."""
    user = authenticate(db, payload.username, payload.password)
    if not user:
        logger.warning("Login fallido para '%s'", payload.username)
        # No dar información sobre si el usuario existe o no
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
        )

    token = create_access_token(
        {"sub": user.username, "uid": user.id},
        secret_key=settings.secret_key,
        expires_minutes=settings.access_token_expire_minutes,
    )
    logger.info("Login exitoso: %s", user.username)
    return LoginOut(token=token, user=UserOut(id=user.id, username=user.username))


@router.get("/verify")
def verify(current_user: User = Depends(get_current_user)):
    return {"valid": True}


@router.get("/health")
def health():
    return {"status": "ok", "service": "auth"}
