import logging
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from quotehub.core.authorization import (
    PERMISSION_CREATE_CLIENTS,
    PERMISSION_VIEW_CLIENTS,
    ROLE_SHARED,
    ActorContext,
    CompanyAccess,
    OperationClass,
    resolve_company_access,
)
from quotehub.core.errors import ClientNotFound, Conflict, Forbidden, InvalidInput
from quotehub.db import models
from quotehub.db.session import transaction

logger = logging.getLogger("quotehub.clients")

CLIENT_DOCUMENT_CONFLICT = "CLIENT_DOCUMENT_CONFLICT"
CLIENT_DOCUMENT_CONFLICT_MESSAGE = "Ja existe um cliente com este documento nesta empresa."

EDITABLE_FIELDS = (
    "name",
    "email",
    "phone_number",
    "document_number",
    "address_street",
    "address_city",
    "address_state",
    "address_zip_code",
)


def _normalize_document(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    digits = "".join(ch for ch in str(value) if ch.isalnum())
    return digits or None


def _read_access(db: Session, actor: ActorContext, company_id: str) -> CompanyAccess:
    access = resolve_company_access(db, actor, company_id, OperationClass.READ)
    if access.role == ROLE_SHARED and access.permissions.get(PERMISSION_VIEW_CLIENTS) is not True:
        raise Forbidden("Seu compartilhamento nao permite visualizar clientes")
    return access


def _ensure_document_available(
    db: Session, company_id: str, document_number: Optional[str], exclude_id: Optional[str] = None
) -> None:
    if not document_number:
        return
    query = db.query(models.Client.id).filter(
        models.Client.company_id == company_id,
        models.Client.document_number == document_number,
    )
    if exclude_id:
        query = query.filter(models.Client.id != exclude_id)
    if query.first():
        raise Conflict(CLIENT_DOCUMENT_CONFLICT_MESSAGE, code=CLIENT_DOCUMENT_CONFLICT)


def create_client(db: Session, actor: ActorContext, company_id: str, payload: dict) -> models.Client:
    access = resolve_company_access(
        db, actor, company_id, OperationClass.WRITE, permission=PERMISSION_CREATE_CLIENTS
    )
    name = (payload.get("name") or "").strip()
    if not name:
        raise InvalidInput("Nome do cliente e obrigatorio")
    document_number = _normalize_document(payload.get("document_number"))
    _ensure_document_available(db, access.company_id, document_number)

    client = models.Client(
        company_id=access.company_id,
        created_by_user_id=access.user_id,
        name=name,
        email=payload.get("email"),
        phone_number=payload.get("phone_number"),
        document_number=document_number,
        address_street=payload.get("address_street"),
        address_city=payload.get("address_city"),
        address_state=payload.get("address_state"),
        address_zip_code=payload.get("address_zip_code"),
    )
    with transaction(db, conflict_message=CLIENT_DOCUMENT_CONFLICT_MESSAGE, conflict_code=CLIENT_DOCUMENT_CONFLICT):
        db.add(client)
    db.refresh(client)
    logger.info("Cliente criado client_id=%s company_id=%s", client.id, access.company_id)
    return client


def list_clients(
    db: Session, actor: ActorContext, company_id: str, search: Optional[str] = None
) -> list[models.Client]:
    access = _read_access(db, actor, company_id)
    query = db.query(models.Client).filter(models.Client.company_id == access.company_id)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(
                models.Client.name.ilike(pattern),
                models.Client.email.ilike(pattern),
                models.Client.document_number.ilike(pattern),
            )
        )
    return query.order_by(models.Client.name.asc()).all()


def get_client(db: Session, actor: ActorContext, company_id: str, client_id: str) -> models.Client:
    access = _read_access(db, actor, company_id)
    client = (
        db.query(models.Client)
        .filter(models.Client.id == client_id, models.Client.company_id == access.company_id)
        .first()
    )
    if not client:
        raise ClientNotFound()
    return client


def update_client(
    db: Session, actor: ActorContext, company_id: str, client_id: str, payload: dict
) -> models.Client:
    access = resolve_company_access(
        db, actor, company_id, OperationClass.WRITE, permission=PERMISSION_CREATE_CLIENTS
    )
    client = (
        db.query(models.Client)
        .filter(models.Client.id == client_id, models.Client.company_id == access.company_id)
        .first()
    )
    if not client:
        raise ClientNotFound()

    changes = {name: payload[name] for name in EDITABLE_FIELDS if name in payload}
    if "name" in changes:
        changes["name"] = (changes["name"] or "").strip()
        if not changes["name"]:
            raise InvalidInput("Nome do cliente e obrigatorio")
    if "document_number" in changes:
        changes["document_number"] = _normalize_document(changes["document_number"])
        _ensure_document_available(db, access.company_id, changes["document_number"], exclude_id=client.id)

    with transaction(db, conflict_message=CLIENT_DOCUMENT_CONFLICT_MESSAGE, conflict_code=CLIENT_DOCUMENT_CONFLICT):
        for name, value in changes.items():
            setattr(client, name, value)
    db.refresh(client)
    logger.info("Cliente atualizado client_id=%s", client.id)
    return client
