import logging
import secrets
from typing import Optional

from sqlalchemy.orm import Session

from quotehub.core.config import settings
from quotehub.core.security import get_password_hash
from quotehub.db import models
from quotehub.db.session import SessionLocal

logger = logging.getLogger("quotehub.init_db")

FREE_PLAN_NAME = "Gratuito"
ADMIN_PLAN_NAME = "super_admin"

BASIC_PLANS = [
    {
        "name": FREE_PLAN_NAME,
        "description": "Funcionalidades essenciais para comecar a gerenciar seus orcamentos.",
        "price_cents": 0,
        "billing_cycle": None,
        "features": {
            "max_companies_owned": 1,
            "max_quotes_per_month": 10,
            "max_items_per_quote": 5,
            "max_products_per_company": 0,
            "max_shares_per_company": 0,
            "max_shares_for_user": 1,
            "allow_product_catalog": False,
            "allow_pdf_customization": False,
            "allow_company_sharing": False,
        },
    },
    {
        "name": "Profissional",
        "description": "Recursos avancados para empresas e freelancers em crescimento.",
        "price_cents": 2990,
        "billing_cycle": "monthly",
        "features": {
            "max_companies_owned": 3,
            "max_quotes_per_month": 100,
            "max_items_per_quote": 25,
            "max_products_per_company": 200,
            "max_shares_per_company": 2,
            "max_shares_for_user": 5,
            "allow_product_catalog": True,
            "allow_pdf_customization": True,
            "allow_company_sharing": True,
        },
    },
    {
        "name": "Premium",
        "description": "Todas as funcionalidades e limites expandidos para alto volume.",
        "price_cents": 7990,
        "billing_cycle": "monthly",
        "features": {
            "max_companies_owned": 10,
            "max_quotes_per_month": -1,
            "max_items_per_quote": 50,
            "max_products_per_company": -1,
            "max_shares_per_company": 10,
            "max_shares_for_user": 10,
            "allow_product_catalog": True,
            "allow_pdf_customization": True,
            "allow_company_sharing": True,
            "priority_support": True,
        },
    },
    {
        "name": ADMIN_PLAN_NAME,
        "description": "Plano interno da conta administrativa.",
        "price_cents": 0,
        "billing_cycle": None,
        "features": {
            "allow_product_catalog": True,
            "allow_pdf_customization": True,
            "allow_company_sharing": True,
        },
    },
]


def ensure_plans(db: Session) -> None:
    for definition in BASIC_PLANS:
        plan = db.query(models.Plan).filter(models.Plan.name == definition["name"]).first()
        if plan:
            continue
        db.add(
            models.Plan(
                name=definition["name"],
                description=definition["description"],
                price_cents=definition["price_cents"],
                price_currency=settings.DEFAULT_CURRENCY,
                billing_cycle=definition["billing_cycle"],
                features=dict(definition["features"]),
                is_active=True,
            )
        )
        logger.info("Plano criado: %s", definition["name"])
    db.commit()


def ensure_admin_account(db: Session, password: Optional[str] = None) -> models.User:
    """Create the account the administrative override acts as, if missing."""
    admin = db.query(models.User).filter(models.User.email == settings.ADMIN_USER_EMAIL).first()
    if not admin:
        admin = models.User(
            name="Master User",
            email=settings.ADMIN_USER_EMAIL,
            password_hash=get_password_hash(password or settings.ADMIN_USER_PASSWORD or secrets.token_urlsafe(24)),
            role="admin",
            status="active",
        )
        db.add(admin)
        db.flush()
        logger.info("Conta administrativa criada: %s", admin.email)

    plan = db.query(models.Plan).filter(models.Plan.name == ADMIN_PLAN_NAME).first()
    if plan:
        subscription = (
            db.query(models.Subscription)
            .filter(
                models.Subscription.user_id == admin.id,
                models.Subscription.plan_id == plan.id,
                models.Subscription.status == "active",
            )
            .first()
        )
        if not subscription:
            db.add(models.Subscription(user_id=admin.id, plan_id=plan.id, status="active"))
    db.commit()
    return admin


def seed_initial_data() -> None:
    with SessionLocal() as db:
        ensure_plans(db)
        ensure_admin_account(db)
