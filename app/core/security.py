import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import InvalidCredentials, InvalidToken, PrincipalNotFound, ValidationError
from app.db import models
from app.db.session import get_db

logger = logging.getLogger("cotacao.auth")

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def verify_password(plain_password: str, hashed_password: str) -> bool:
    if not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError):
        return False


def get_password_hash(password: str) -> str:
    if not isinstance(password, str) or not password:
        raise ValidationError.single("password", "Senha obrigatoria")
    if len(password.encode("utf-8")) > 72:
        raise ValidationError.single("password", "Senha maior que 72 bytes em UTF-8")
    return pwd_context.hash(password)


def create_access_token(data: dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(hours=settings.ACCESS_TOKEN_EXPIRE_HOURS))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def create_principal_token(user: models.User) -> str:
    return create_access_token({"sub": user.id, "role": user.role, "tenant_id": user.tenant_id})


def authenticate(db: Session, email: str, password: str) -> tuple[models.User, str]:
    normalized = normalize_email(email)
    user = db.query(models.User).filter(models.User.email == normalized).first()
    if not user:
        # keeps response time independent of whether the e-mail exists
        pwd_context.dummy_verify()
        logger.info("login rejected: unknown email")
        raise InvalidCredentials()
    if not verify_password(password, user.password_hash):
        logger.info("login rejected: bad password user_id=%s", user.id)
        raise InvalidCredentials()

    user.last_login_at = datetime.utcnow()
    db.commit()
    db.refresh(user)
    return user, create_principal_token(user)


def resolve_token(db: Session, token: str) -> models.User:
    """
    Valida assinatura e expiracao e recarrega o usuario do banco.
    Role e tenant vem sempre do registro atual, nunca das claims do token.
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError as exc:
        raise InvalidToken() from exc
    user_id = payload.get("sub")
    if not user_id or not isinstance(user_id, str):
        raise InvalidToken()

    user = db.query(models.User).filter(models.User.id == user_id).first()
    if not user:
        raise PrincipalNotFound()
    return user


def get_current_user(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> models.User:
    if not token:
        raise InvalidToken()
    user = resolve_token(db, token)
    request.state.principal_id = user.id
    request.state.principal_tenant_id = user.tenant_id
    return user
