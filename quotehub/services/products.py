import logging
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from quotehub.core.authorization import (
    PERMISSION_MANAGE_PRODUCTS,
    ActorContext,
    OperationClass,
    resolve_company_access,
)
from quotehub.core.errors import Conflict, InvalidInput, ProductNotFound
from quotehub.db import models
from quotehub.db.session import transaction
from quotehub.services.entitlements import ensure_feature, ensure_within_limit, resolve_plan_features

logger = logging.getLogger("quotehub.products")

PRODUCT_SKU_CONFLICT = "PRODUCT_SKU_CONFLICT"
PRODUCT_SKU_CONFLICT_MESSAGE = "Ja existe um produto com este SKU nesta empresa."

EDITABLE_FIELDS = ("name", "description", "sku", "unit", "unit_price_cents", "is_active")


def _validate_price(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInput("Preco unitario deve ser informado em centavos inteiros")
    if value < 0:
        raise InvalidInput("Preco unitario nao pode ser negativo")
    return value


def _normalize_sku(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip() or None


def _ensure_sku_available(db: Session, company_id: str, sku: Optional[str], exclude_id: Optional[str] = None) -> None:
    if not sku:
        return
    query = db.query(models.Product.id).filter(
        models.Product.company_id == company_id, models.Product.sku == sku
    )
    if exclude_id:
        query = query.filter(models.Product.id != exclude_id)
    if query.first():
        raise Conflict(PRODUCT_SKU_CONFLICT_MESSAGE, code=PRODUCT_SKU_CONFLICT)


def _get_product(db: Session, company_id: str, product_id: str) -> models.Product:
    product = (
        db.query(models.Product)
        .filter(models.Product.id == product_id, models.Product.company_id == company_id)
        .first()
    )
    if not product:
        raise ProductNotFound()
    return product


def count_products(db: Session, company_id: str) -> int:
    return (
        db.query(func.count(models.Product.id))
        .filter(models.Product.company_id == company_id)
        .scalar()
        or 0
    )


def create_product(db: Session, actor: ActorContext, company_id: str, payload: dict) -> models.Product:
    access = resolve_company_access(
        db, actor, company_id, OperationClass.WRITE, permission=PERMISSION_MANAGE_PRODUCTS
    )
    company = access.company

    features = resolve_plan_features(db, company.owner_id)
    ensure_feature(features, "allow_product_catalog")
    ensure_within_limit(features, "max_products_per_company", count_products(db, company.id))

    name = (payload.get("name") or "").strip()
    if not name:
        raise InvalidInput("Nome do produto e obrigatorio")
    sku = _normalize_sku(payload.get("sku"))
    _ensure_sku_available(db, company.id, sku)

    product = models.Product(
        company_id=company.id,
        name=name,
        description=payload.get("description"),
        sku=sku,
        unit=payload.get("unit"),
        unit_price_cents=_validate_price(payload.get("unit_price_cents", 0)),
        is_active=payload.get("is_active", True),
    )
    with transaction(db, conflict_message=PRODUCT_SKU_CONFLICT_MESSAGE, conflict_code=PRODUCT_SKU_CONFLICT):
        db.add(product)
    db.refresh(product)
    logger.info("Produto criado product_id=%s company_id=%s", product.id, company.id)
    return product


def list_products(
    db: Session,
    actor: ActorContext,
    company_id: str,
    search: Optional[str] = None,
    active_only: bool = False,
) -> list[models.Product]:
    access = resolve_company_access(db, actor, company_id, OperationClass.READ)
    query = db.query(models.Product).filter(models.Product.company_id == access.company_id)
    if active_only:
        query = query.filter(models.Product.is_active.is_(True))
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(models.Product.name.ilike(pattern), models.Product.sku.ilike(pattern)))
    return query.order_by(models.Product.name.asc()).all()


def get_product(db: Session, actor: ActorContext, company_id: str, product_id: str) -> models.Product:
    access = resolve_company_access(db, actor, company_id, OperationClass.READ)
    return _get_product(db, access.company_id, product_id)


def update_product(
    db: Session, actor: ActorContext, company_id: str, product_id: str, payload: dict
) -> models.Product:
    """Edit catalog data. Quote items keep the snapshot taken when they were created."""
    access = resolve_company_access(
        db, actor, company_id, OperationClass.WRITE, permission=PERMISSION_MANAGE_PRODUCTS
    )
    product = _get_product(db, access.company_id, product_id)

    changes = {name: payload[name] for name in EDITABLE_FIELDS if name in payload}
    if "name" in changes:
        changes["name"] = (changes["name"] or "").strip()
        if not changes["name"]:
            raise InvalidInput("Nome do produto e obrigatorio")
    if "unit_price_cents" in changes:
        changes["unit_price_cents"] = _validate_price(changes["unit_price_cents"])
    if "sku" in changes:
        changes["sku"] = _normalize_sku(changes["sku"])
        _ensure_sku_available(db, access.company_id, changes["sku"], exclude_id=product.id)

    with transaction(db, conflict_message=PRODUCT_SKU_CONFLICT_MESSAGE, conflict_code=PRODUCT_SKU_CONFLICT):
        for name, value in changes.items():
            setattr(product, name, value)
    db.refresh(product)
    logger.info("Produto atualizado product_id=%s fields=%s", product.id, sorted(changes))
    return product


def delete_product(db: Session, actor: ActorContext, company_id: str, product_id: str) -> None:
    access = resolve_company_access(
        db, actor, company_id, OperationClass.WRITE, permission=PERMISSION_MANAGE_PRODUCTS
    )
    product = _get_product(db, access.company_id, product_id)
    with transaction(db):
        # quote items keep their snapshot and lose only the link
        db.query(models.QuoteItem).filter(models.QuoteItem.product_id == product.id).update(
            {models.QuoteItem.product_id: None}, synchronize_session=False
        )
        db.delete(product)
    logger.info("Produto excluido product_id=%s company_id=%s", product_id, access.company_id)
