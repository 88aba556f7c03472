import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from quotehub.core.errors import Conflict, InvalidInput
from quotehub.core.security import get_password_hash
from quotehub.db import models
from quotehub.db.init_db import FREE_PLAN_NAME
from quotehub.db.session import transaction
from quotehub.services.companies import count_owned_companies
from quotehub.services.entitlements import resolve_in_force_plan, resolve_plan_features
from quotehub.services.shares import count_user_shares, list_shared_companies

logger = logging.getLogger("quotehub.accounts")


def register_user(db: Session, name: str, email: str, password: str) -> models.User:
    """Create a user and subscribe them to the free plan when it exists."""
    name = (name or "").strip()
    email = (email or "").strip().lower()
    if not name or not email or "@" not in email:
        raise InvalidInput("Nome e e-mail valido sao obrigatorios")
    if not password or len(password) < 6:
        raise InvalidInput("A senha deve ter pelo menos 6 caracteres")
    try:
        password_hash = get_password_hash(password)
    except ValueError as exc:
        raise InvalidInput(str(exc))

    if db.query(models.User.id).filter(func.lower(models.User.email) == email).first():
        raise Conflict("E-mail ja cadastrado.", code="AUTH_EMAIL_EXISTS")

    with transaction(db, conflict_message="E-mail ja cadastrado.", conflict_code="AUTH_EMAIL_EXISTS"):
        user = models.User(name=name, email=email, password_hash=password_hash, role="user", status="active")
        db.add(user)
        db.flush()
        free_plan = db.query(models.Plan).filter(models.Plan.name == FREE_PLAN_NAME).first()
        if free_plan:
            db.add(models.Subscription(user_id=user.id, plan_id=free_plan.id, status="active"))
        else:
            logger.warning("Plano gratuito nao encontrado para o usuario %s", user.id)
    db.refresh(user)
    logger.info("Usuario registrado user_id=%s", user.id)
    return user


def account_overview(db: Session, user: models.User) -> dict:
    plan = resolve_in_force_plan(db, user.id)
    features = resolve_plan_features(db, user.id)
    return {
        "user": {"id": user.id, "name": user.name, "email": user.email, "role": user.role},
        "plan": {"id": plan.id, "name": plan.name} if plan else None,
        "features": features.as_dict() if features else None,
        "usage": {
            "companies_owned": count_owned_companies(db, user.id),
            "shared_with_me": count_user_shares(db, user.id),
        },
        "shared_companies": list_shared_companies(db, user.id),
    }
