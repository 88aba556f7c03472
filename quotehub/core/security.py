import hmac
import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import func
from sqlalchemy.orm import Session

from quotehub.core.authorization import ActorContext, AdministrativeOverride, UserActor
from quotehub.core.config import settings
from quotehub.db import models
from quotehub.db.session import get_db

logger = logging.getLogger("quotehub.security")

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/token", auto_error=False)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    if not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        return False


def get_password_hash(password: str) -> str:
    if not isinstance(password, str):
        raise ValueError("Senha invalida para hash: envie somente a senha em texto do usuario.")
    if len(password.encode("utf-8")) > 72:
        raise ValueError("Senha maior que 72 bytes em UTF-8.")
    return pwd_context.hash(password)


def create_access_token(data: dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(hours=settings.ACCESS_TOKEN_EXPIRE_HOURS))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Credenciais invalidas",
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_user_from_token(token: Optional[str], db: Session) -> models.User:
    if not token:
        raise _credentials_exception()
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        user_id: str | None = payload.get("sub")
        if user_id is None:
            raise _credentials_exception()
    except JWTError:
        raise _credentials_exception()

    user = db.query(models.User).filter(models.User.id == user_id).first()
    if not user:
        raise _credentials_exception()
    if user.status != "active":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Usuario inativo")
    return user


def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme), db: Session = Depends(get_db)
) -> models.User:
    return get_user_from_token(token, db)


def _resolve_override(db: Session, company_id: str) -> AdministrativeOverride:
    admin = (
        db.query(models.User)
        .filter(func.lower(models.User.email) == settings.ADMIN_USER_EMAIL)
        .first()
    )
    if not admin or admin.status != "active":
        logger.error("Acesso administrativo recusado: conta administrativa ausente ou inativa")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Acesso administrativo indisponivel")
    return AdministrativeOverride(admin_user_id=admin.id, company_id=company_id)


def get_actor_context(
    token: Optional[str] = Depends(oauth2_scheme),
    x_admin_secret: Optional[str] = Header(default=None),
    x_company_id: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
) -> ActorContext:
    """Identify who is calling, once, at the edge of the application.

    A matching ``X-Admin-Secret`` together with ``X-Company-Id`` yields an
    ``AdministrativeOverride`` for that company; everything else must carry a
    valid bearer token and yields a ``UserActor``.
    """
    if x_admin_secret is not None:
        expected = settings.ADMIN_OVERRIDE_SECRET
        if not expected or not hmac.compare_digest(x_admin_secret.encode("utf-8"), expected.encode("utf-8")):
            logger.warning("Segredo administrativo invalido recebido")
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Credenciais invalidas")
        if not x_company_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Cabecalho X-Company-Id e obrigatorio no acesso administrativo",
            )
        return _resolve_override(db, x_company_id)

    user = get_user_from_token(token, db)
    return UserActor(user_id=user.id)
