from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import BaseModel, Field
from sqlalchemy import func
from sqlalchemy.orm import Session

from quotehub.core.security import create_access_token, verify_password
from quotehub.db import models
from quotehub.db.session import get_db
from quotehub.services.accounts import register_user

router = APIRouter(tags=["Auth"])


class LoginRequest(BaseModel):
    email: str
    password: str


class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=6)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str
    user_id: str


def _authenticate(db: Session, email: str, password: str) -> models.User:
    normalized = email.strip().lower()
    user = db.query(models.User).filter(func.lower(models.User.email) == normalized).first()
    if not user or not verify_password(password, user.password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="E-mail ou senha invalidos")
    if user.status != "active":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Usuario inativo")
    return user


def _issue_token(user: models.User) -> dict:
    token = create_access_token({"sub": user.id, "role": user.role})
    return {"access_token": token, "token_type": "bearer", "user_id": user.id}


@router.post("/auth/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def register(payload: RegisterRequest, db: Session = Depends(get_db)):
    user = register_user(db, payload.name, payload.email, payload.password)
    return _issue_token(user)


@router.post("/auth/login", response_model=TokenResponse, summary="Login JSON (frontend)")
def login(payload: LoginRequest, db: Session = Depends(get_db)):
    return _issue_token(_authenticate(db, payload.email, payload.password))


@router.post("/auth/token", response_model=TokenResponse, summary="Login OAuth2 (formulario)")
def login_for_access_token(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db),
):
    return _issue_token(_authenticate(db, form_data.username, form_data.password))
