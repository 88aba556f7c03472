import logging
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from quotehub.core.authorization import (
    COMPANY_ACTIVE,
    COMPANY_STATUSES,
    PERMISSION_EDIT_SETTINGS,
    ActorContext,
    AdministrativeOverride,
    OperationClass,
    resolve_company_access,
    resolve_owner_write_access,
)
from quotehub.core.errors import Conflict, Forbidden, InvalidInput
from quotehub.db import models
from quotehub.db.session import transaction
from quotehub.services.audit import record_audit
from quotehub.services.entitlements import (
    ensure_within_limit,
    resolve_in_force_plan,
    resolve_plan_features,
)
from quotehub.services.products import count_products
from quotehub.services.quotes import count_quotes
from quotehub.services.shares import count_company_shares

logger = logging.getLogger("quotehub.companies")

COMPANY_DOCUMENT_CONFLICT = "COMPANY_DOCUMENT_CONFLICT"
COMPANY_DOCUMENT_CONFLICT_MESSAGE = "Ja existe uma empresa cadastrada com este documento."

EDITABLE_FIELDS = ("name", "legal_name", "document_number", "email", "phone_number", "logo_url")


def _normalize_document(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    digits = "".join(ch for ch in str(value) if ch.isalnum())
    return digits or None


def _ensure_document_available(db: Session, document_number: Optional[str], exclude_id: Optional[str] = None) -> None:
    if not document_number:
        return
    query = db.query(models.Company.id).filter(models.Company.document_number == document_number)
    if exclude_id:
        query = query.filter(models.Company.id != exclude_id)
    if query.first():
        raise Conflict(COMPANY_DOCUMENT_CONFLICT_MESSAGE, code=COMPANY_DOCUMENT_CONFLICT)


def count_owned_companies(db: Session, user_id: str) -> int:
    return (
        db.query(func.count(models.Company.id))
        .filter(models.Company.owner_id == user_id)
        .scalar()
        or 0
    )


def create_company(db: Session, actor: ActorContext, payload: dict) -> models.Company:
    if isinstance(actor, AdministrativeOverride):
        raise Forbidden("Acesso administrativo nao pode criar empresas")

    features = resolve_plan_features(db, actor.user_id)
    ensure_within_limit(features, "max_companies_owned", count_owned_companies(db, actor.user_id))

    name = (payload.get("name") or "").strip()
    if not name:
        raise InvalidInput("Nome da empresa e obrigatorio")
    document_number = _normalize_document(payload.get("document_number"))
    _ensure_document_available(db, document_number)

    company = models.Company(
        owner_id=actor.user_id,
        name=name,
        legal_name=payload.get("legal_name"),
        document_number=document_number,
        email=payload.get("email"),
        phone_number=payload.get("phone_number"),
        logo_url=payload.get("logo_url"),
        status=COMPANY_ACTIVE,
    )
    with transaction(db, conflict_message=COMPANY_DOCUMENT_CONFLICT_MESSAGE, conflict_code=COMPANY_DOCUMENT_CONFLICT):
        db.add(company)
    db.refresh(company)
    logger.info("Empresa criada company_id=%s owner_id=%s", company.id, actor.user_id)
    return company


def list_owned_companies(db: Session, user_id: str) -> list[models.Company]:
    return (
        db.query(models.Company)
        .filter(models.Company.owner_id == user_id)
        .order_by(models.Company.created_at.asc())
        .all()
    )


def get_company(db: Session, actor: ActorContext, company_id: str) -> models.Company:
    return resolve_company_access(db, actor, company_id, OperationClass.READ).company


def update_company(db: Session, actor: ActorContext, company_id: str, payload: dict) -> models.Company:
    access = resolve_company_access(
        db, actor, company_id, OperationClass.WRITE, permission=PERMISSION_EDIT_SETTINGS
    )
    company = access.company

    changes = {name: payload[name] for name in EDITABLE_FIELDS if name in payload}
    if "name" in changes:
        changes["name"] = (changes["name"] or "").strip()
        if not changes["name"]:
            raise InvalidInput("Nome da empresa e obrigatorio")
    if "document_number" in changes:
        changes["document_number"] = _normalize_document(changes["document_number"])
        _ensure_document_available(db, changes["document_number"], exclude_id=company.id)

    with transaction(db, conflict_message=COMPANY_DOCUMENT_CONFLICT_MESSAGE, conflict_code=COMPANY_DOCUMENT_CONFLICT):
        for name, value in changes.items():
            setattr(company, name, value)
    db.refresh(company)
    logger.info("Empresa atualizada company_id=%s fields=%s", company.id, sorted(changes))
    return company


def update_company_status(db: Session, actor: ActorContext, company_id: str, status: str) -> models.Company:
    """Owner-only status change, available while the company is inactive."""
    access = resolve_owner_write_access(db, actor, company_id)
    company = access.company
    status = (status or "").strip().lower()
    if status not in COMPANY_STATUSES:
        raise InvalidInput(f"Status de empresa invalido: {status}")
    if status == company.status:
        return company

    previous = company.status
    with transaction(db):
        company.status = status
        record_audit(
            db,
            action="COMPANY_STATUS_CHANGED",
            user_id=access.user_id,
            company_id=company.id,
            resource_type="company",
            resource_id=company.id,
            payload={"from": previous, "to": status},
        )
    db.refresh(company)
    logger.info("Status da empresa alterado company_id=%s %s -> %s", company.id, previous, status)
    return company


def usage_summary(db: Session, company: models.Company) -> dict:
    """Current usage of the company against its owner's plan."""
    plan = resolve_in_force_plan(db, company.owner_id)
    features = resolve_plan_features(db, company.owner_id)
    return {
        "company_id": company.id,
        "plan": plan.name if plan else None,
        "limits": features.as_dict() if features else None,
        "usage": {
            "quotes_this_month": count_quotes(db, company.id, "month"),
            "products": count_products(db, company.id),
            "shares": count_company_shares(db, company.id),
        },
    }
