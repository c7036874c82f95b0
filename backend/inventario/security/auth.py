import logging
from datetime import datetime, timedelta, timezone
from typing import Optional
import jwt
from passlib.context import CryptContext
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from ..config import Settings
from ..db import Database
from ..dependencies import get_app_settings, get_db
from ..domain.models import User
from ..infrastructure.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)

def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)

def create_access_token(data: dict, secret_key: str, expires_minutes: int) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, secret_key, algorithm=ALGORITHM)

def decode_access_token(token: str, secret_key: str) -> dict:
    return jwt.decode(token, secret_key, algorithms=[ALGORITHM])


def get_current_user(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    token: Optional[str] = Depends(oauth2_scheme),
) -> User:
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        payload = decode_access_token(token, settings.secret_key)
    except jwt.PyJWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    username = payload.get("sub")
    if not username:
        raise HTTPException(status_code=401, detail="Credenciales inválidas")
    user = UnitOfWork(db).users.by_username(username)
    if not user:
        raise HTTPException(status_code=401, detail="Usuario no encontrado")
    return user


def authenticate(db: Session, username: str, password: str) -> Optional[User]:
    user = UnitOfWork(db).users.by_username(username)
    if not user or not verify_password(password, user.password_hash):
        return None
    return user


def ensure_admin_user(database: Database, settings: Settings) -> None:
    """Crea el usuario administrador configurado si todavía no existe."""
    with UnitOfWork(database.session()).transaction() as uow:
        if uow.users.by_username(settings.admin_user):
            return
        uow.users.add(User(
            username=settings.admin_user,
            password_hash=get_password_hash(settings.admin_pass),
        ))
    logger.info("Usuario administrador '%s' creado", settings.admin_user)
