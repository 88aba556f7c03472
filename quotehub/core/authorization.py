"""Company access resolution.

Every company-scoped operation goes through ``resolve_company_access``. The
actor arrives already resolved by the security boundary as either a regular
``UserActor`` or an ``AdministrativeOverride``.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from sqlalchemy.orm import Session

from quotehub.core.errors import CompanyInactive, CompanyNotFound, Forbidden
from quotehub.db import models
from quotehub.services.audit import record_audit

logger = logging.getLogger("quotehub.access")

COMPANY_ACTIVE = "active"
COMPANY_INACTIVE = "inactive"
COMPANY_SUSPENDED = "suspended"
COMPANY_STATUSES = {COMPANY_ACTIVE, COMPANY_INACTIVE, COMPANY_SUSPENDED}

SHARE_ACTIVE = "active"
SHARE_PENDING = "pending_acceptance"
SHARE_REVOKED = "revoked"
SHARE_STATUSES = {SHARE_ACTIVE, SHARE_PENDING, SHARE_REVOKED}

PERMISSION_VIEW_CLIENTS = "can_view_clients"
PERMISSION_CREATE_CLIENTS = "can_create_clients"
PERMISSION_CREATE_QUOTES = "can_create_quotes"
PERMISSION_MANAGE_PRODUCTS = "can_manage_products"
PERMISSION_EDIT_SETTINGS = "can_edit_settings"

ROLE_OWNER = "owner"
ROLE_SHARED = "shared"
ROLE_ADMIN_OVERRIDE = "admin_override"


class OperationClass(str, Enum):
    READ = "read"
    WRITE = "write"


@dataclass(frozen=True)
class UserActor:
    user_id: str


@dataclass(frozen=True)
class AdministrativeOverride:
    admin_user_id: str
    company_id: str


ActorContext = Union[UserActor, AdministrativeOverride]


@dataclass
class CompanyAccess:
    company: models.Company
    user_id: str
    role: str
    permissions: dict = field(default_factory=dict)
    share: Optional[models.CompanyShare] = None

    @property
    def is_owner(self) -> bool:
        return self.role in (ROLE_OWNER, ROLE_ADMIN_OVERRIDE)

    @property
    def company_id(self) -> str:
        return self.company.id


def actor_user_id(actor: ActorContext) -> str:
    if isinstance(actor, AdministrativeOverride):
        return actor.admin_user_id
    return actor.user_id


def get_company(db: Session, company_id: str) -> models.Company:
    company = db.query(models.Company).filter(models.Company.id == company_id).first()
    if not company:
        raise CompanyNotFound()
    return company


def get_active_share(db: Session, company_id: str, user_id: str) -> Optional[models.CompanyShare]:
    return (
        db.query(models.CompanyShare)
        .filter(
            models.CompanyShare.company_id == company_id,
            models.CompanyShare.shared_with_user_id == user_id,
            models.CompanyShare.status == SHARE_ACTIVE,
        )
        .first()
    )


def _grant_override(db: Session, actor: AdministrativeOverride, company: models.Company, operation: OperationClass) -> CompanyAccess:
    if actor.company_id != company.id:
        raise Forbidden("Acesso administrativo restrito a empresa informada no cabecalho")
    logger.warning(
        "Acesso administrativo admin_user_id=%s assumindo proprietario company_id=%s operation=%s",
        actor.admin_user_id,
        company.id,
        operation.value,
    )
    record_audit(
        db,
        action="ADMIN_OVERRIDE_ACCESS",
        user_id=actor.admin_user_id,
        company_id=company.id,
        resource_type="company",
        resource_id=company.id,
        payload={"operation": operation.value, "owner_id": company.owner_id},
    )
    db.commit()
    return CompanyAccess(company=company, user_id=company.owner_id, role=ROLE_ADMIN_OVERRIDE)


def resolve_company_access(
    db: Session,
    actor: ActorContext,
    company_id: str,
    operation: OperationClass,
    permission: Optional[str] = None,
    owner_only: bool = False,
) -> CompanyAccess:
    company = get_company(db, company_id)

    if isinstance(actor, AdministrativeOverride):
        return _grant_override(db, actor, company, operation)

    company_active = company.status == COMPANY_ACTIVE

    if company.owner_id == actor.user_id:
        if operation == OperationClass.WRITE and not company_active:
            raise CompanyInactive(
                f'A empresa "{company.name}" esta inativa. '
                "Reative sua empresa para continuar cadastrando clientes e gerando orcamentos."
            )
        return CompanyAccess(company=company, user_id=actor.user_id, role=ROLE_OWNER)

    share = get_active_share(db, company.id, actor.user_id)
    if share is None:
        raise Forbidden()
    if owner_only:
        raise Forbidden("Apenas o proprietario da empresa pode realizar esta operacao")
    if not company_active:
        raise CompanyInactive(f'Acesso negado. A empresa "{company.name}" esta inativa.')

    permissions = share.permissions if isinstance(share.permissions, dict) else {}
    if operation == OperationClass.WRITE:
        if not permission or permissions.get(permission) is not True:
            raise Forbidden("Seu compartilhamento nao permite esta operacao")
    return CompanyAccess(
        company=company,
        user_id=actor.user_id,
        role=ROLE_SHARED,
        permissions=permissions,
        share=share,
    )


def resolve_owner_write_access(db: Session, actor: ActorContext, company_id: str) -> CompanyAccess:
    """Owner-only write that stays available while the company is inactive.

    Used to reactivate a company: the owner must be able to change its status
    even though every other write is blocked.
    """
    company = get_company(db, company_id)
    if isinstance(actor, AdministrativeOverride):
        return _grant_override(db, actor, company, OperationClass.WRITE)
    if company.owner_id != actor.user_id:
        if get_active_share(db, company.id, actor.user_id) is None:
            raise Forbidden()
        raise Forbidden("Apenas o proprietario da empresa pode realizar esta operacao")
    return CompanyAccess(company=company, user_id=actor.user_id, role=ROLE_OWNER)
