import logging
from typing import Any, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from quotehub.core.authorization import (
    COMPANY_ACTIVE,
    PERMISSION_CREATE_CLIENTS,
    PERMISSION_CREATE_QUOTES,
    PERMISSION_EDIT_SETTINGS,
    PERMISSION_MANAGE_PRODUCTS,
    PERMISSION_VIEW_CLIENTS,
    SHARE_ACTIVE,
    SHARE_REVOKED,
    ActorContext,
    OperationClass,
    resolve_company_access,
)
from quotehub.core.errors import Conflict, InvalidInput, ShareNotFound, UserNotFound
from quotehub.db import models
from quotehub.db.session import transaction
from quotehub.services.audit import record_audit
from quotehub.services.entitlements import ensure_within_limit, resolve_plan_features

logger = logging.getLogger("quotehub.shares")

SHARE_CONFLICT = "SHARE_CONFLICT"
SHARE_CONFLICT_MESSAGE = "Esta empresa ja esta compartilhada com este usuario."

PERMISSION_KEYS = (
    PERMISSION_VIEW_CLIENTS,
    PERMISSION_CREATE_CLIENTS,
    PERMISSION_CREATE_QUOTES,
    PERMISSION_MANAGE_PRODUCTS,
    PERMISSION_EDIT_SETTINGS,
)
DEFAULT_PERMISSIONS = {
    PERMISSION_VIEW_CLIENTS: True,
    PERMISSION_CREATE_CLIENTS: False,
    PERMISSION_CREATE_QUOTES: False,
    PERMISSION_MANAGE_PRODUCTS: False,
    PERMISSION_EDIT_SETTINGS: False,
}


def normalize_permissions(raw: Optional[dict[str, Any]]) -> dict[str, bool]:
    """Known permission keys only; anything but a literal ``True`` denies."""
    permissions = dict(DEFAULT_PERMISSIONS)
    if raw is None:
        return permissions
    if not isinstance(raw, dict):
        raise InvalidInput("Permissoes devem ser um objeto")
    unknown = sorted(set(raw) - set(PERMISSION_KEYS))
    if unknown:
        raise InvalidInput(f"Permissoes desconhecidas: {', '.join(unknown)}")
    for key, value in raw.items():
        permissions[key] = value is True
    return permissions


def count_company_shares(db: Session, company_id: str) -> int:
    return (
        db.query(func.count(models.CompanyShare.id))
        .filter(
            models.CompanyShare.company_id == company_id,
            models.CompanyShare.status == SHARE_ACTIVE,
        )
        .scalar()
        or 0
    )


def count_user_shares(db: Session, user_id: str) -> int:
    return (
        db.query(func.count(models.CompanyShare.id))
        .filter(
            models.CompanyShare.shared_with_user_id == user_id,
            models.CompanyShare.status == SHARE_ACTIVE,
        )
        .scalar()
        or 0
    )


def _get_share(db: Session, company_id: str, share_id: str) -> models.CompanyShare:
    share = (
        db.query(models.CompanyShare)
        .filter(models.CompanyShare.id == share_id, models.CompanyShare.company_id == company_id)
        .first()
    )
    if not share:
        raise ShareNotFound()
    return share


def create_share(db: Session, actor: ActorContext, company_id: str, payload: dict) -> models.CompanyShare:
    access = resolve_company_access(db, actor, company_id, OperationClass.WRITE, owner_only=True)
    company = access.company

    email = (payload.get("email") or "").strip().lower()
    if not email:
        raise InvalidInput("E-mail do usuario e obrigatorio")
    recipient = db.query(models.User).filter(func.lower(models.User.email) == email).first()
    if not recipient:
        raise UserNotFound("Usuario com este e-mail nao encontrado")
    if recipient.id == company.owner_id:
        raise InvalidInput("Voce nao pode compartilhar uma empresa com voce mesmo")

    permissions = normalize_permissions(payload.get("permissions"))

    existing = (
        db.query(models.CompanyShare)
        .filter(
            models.CompanyShare.company_id == company.id,
            models.CompanyShare.shared_with_user_id == recipient.id,
        )
        .first()
    )
    if existing:
        raise Conflict(SHARE_CONFLICT_MESSAGE, code=SHARE_CONFLICT)

    owner_features = resolve_plan_features(db, company.owner_id)
    ensure_within_limit(owner_features, "max_shares_per_company", count_company_shares(db, company.id))
    recipient_features = resolve_plan_features(db, recipient.id)
    ensure_within_limit(
        recipient_features,
        "max_shares_for_user",
        count_user_shares(db, recipient.id),
        message="O usuario convidado atingiu o limite de empresas compartilhadas do plano dele.",
    )

    with transaction(db, conflict_message=SHARE_CONFLICT_MESSAGE, conflict_code=SHARE_CONFLICT):
        share = models.CompanyShare(
            company_id=company.id,
            shared_with_user_id=recipient.id,
            shared_by_user_id=access.user_id,
            permissions=permissions,
            status=SHARE_ACTIVE,
        )
        db.add(share)
        db.flush()
        record_audit(
            db,
            action="COMPANY_SHARED",
            user_id=access.user_id,
            company_id=company.id,
            resource_type="company_share",
            resource_id=share.id,
            payload={"shared_with_user_id": recipient.id, "permissions": permissions},
        )
    db.refresh(share)
    logger.info(
        "Empresa compartilhada company_id=%s shared_with=%s share_id=%s",
        company.id,
        recipient.id,
        share.id,
    )
    return share


def list_shares(db: Session, actor: ActorContext, company_id: str) -> list[models.CompanyShare]:
    access = resolve_company_access(db, actor, company_id, OperationClass.READ, owner_only=True)
    return (
        db.query(models.CompanyShare)
        .filter(
            models.CompanyShare.company_id == access.company_id,
            models.CompanyShare.status != SHARE_REVOKED,
        )
        .order_by(models.CompanyShare.created_at.asc())
        .all()
    )


def update_share_permissions(
    db: Session, actor: ActorContext, company_id: str, share_id: str, permissions: dict
) -> models.CompanyShare:
    access = resolve_company_access(db, actor, company_id, OperationClass.WRITE, owner_only=True)
    share = _get_share(db, access.company_id, share_id)
    normalized = normalize_permissions(permissions)
    with transaction(db):
        share.permissions = normalized
    db.refresh(share)
    logger.info("Permissoes do compartilhamento atualizadas share_id=%s", share.id)
    return share


def delete_share(db: Session, actor: ActorContext, company_id: str, share_id: str) -> None:
    access = resolve_company_access(db, actor, company_id, OperationClass.WRITE, owner_only=True)
    share = _get_share(db, access.company_id, share_id)
    with transaction(db):
        record_audit(
            db,
            action="COMPANY_SHARE_REMOVED",
            user_id=access.user_id,
            company_id=access.company_id,
            resource_type="company_share",
            resource_id=share.id,
            payload={"shared_with_user_id": share.shared_with_user_id},
        )
        db.delete(share)
    logger.info("Compartilhamento removido share_id=%s company_id=%s", share_id, access.company_id)


def list_shared_companies(db: Session, user_id: str) -> list[dict]:
    """Companies shared with ``user_id``, with the permissions of each share."""
    rows = (
        db.query(models.CompanyShare, models.Company)
        .join(models.Company, models.Company.id == models.CompanyShare.company_id)
        .filter(
            models.CompanyShare.shared_with_user_id == user_id,
            models.CompanyShare.status == SHARE_ACTIVE,
        )
        .order_by(models.Company.name.asc())
        .all()
    )
    return [
        {
            "share_id": share.id,
            "company_id": company.id,
            "company_name": company.name,
            "company_status": company.status,
            "is_active": company.status == COMPANY_ACTIVE,
            "permissions": share.permissions or {},
        }
        for share, company in rows
    ]
