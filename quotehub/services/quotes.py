import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from quotehub.core.authorization import (
    PERMISSION_CREATE_QUOTES,
    ActorContext,
    OperationClass,
    resolve_company_access,
)
from quotehub.core.config import settings
from quotehub.core.errors import (
    ClientNotFound,
    Conflict,
    InvalidInput,
    ProductNotFound,
    QuoteItemNotFound,
    QuoteNotFound,
)
from quotehub.db import models
from quotehub.db.session import transaction
from quotehub.services.audit import record_audit
from quotehub.services.entitlements import PlanFeatures, ensure_within_limit, resolve_plan_features
from quotehub.services.pricing import compute_totals, line_total, normalize_discount_type, to_line_item
from quotehub.services.quote_lifecycle import (
    INITIAL_STATUS,
    QuoteStatus,
    ensure_deletable,
    ensure_editable,
    plan_transition,
)

logger = logging.getLogger("quotehub.quotes")

QUOTE_NUMBER_CONFLICT = "QUOTE_NUMBER_CONFLICT"
QUOTE_NUMBER_CONFLICT_MESSAGE = "Ja existe um orcamento com este numero nesta empresa."

SIMPLE_FIELDS = ("notes", "internal_notes", "terms_and_conditions_content")
PRICING_FIELDS = ("discount_type", "discount_value", "tax_amount")
COUNT_PERIODS = ("month", "year", "all")
EXPIRABLE_STATUSES = (QuoteStatus.SENT.value, QuoteStatus.VIEWED.value)

MIN_QUANTITY = Decimal("0.01")
# Numeric(.., 2) columns on quote_items.quantity and quotes.discount_value
STORED_SCALE = Decimal("0.01")

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

_NUMBER_PATTERN = re.compile(r"^(\d{4})-(\d+)$")


@dataclass(frozen=True)
class _ItemDraft:
    product_id: Optional[str]
    description: str
    complement: Optional[str]
    quantity: Decimal
    unit_price_cents: int


def _parse_date(value: Any, field: str) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise InvalidInput(f"Data invalida para {field}")


def _ensure_stored_scale(value: Decimal, field: str) -> Decimal:
    if value != value.quantize(STORED_SCALE):
        raise InvalidInput(f"{field} aceita no maximo duas casas decimais")
    return value


def _parse_discount_value(discount_type: Optional[str], value: Any) -> Optional[Decimal]:
    if discount_type is None or value is None:
        return None
    if isinstance(value, bool):
        raise InvalidInput("Valor numerico invalido para discount_value")
    try:
        number = Decimal(str(value))
    except ArithmeticError:
        raise InvalidInput("Valor numerico invalido para discount_value")
    if not number.is_finite():
        raise InvalidInput("Valor numerico invalido para discount_value")
    return _ensure_stored_scale(number, "discount_value")


def _get_quote(db: Session, company_id: str, quote_id: str) -> models.Quote:
    quote = (
        db.query(models.Quote)
        .filter(models.Quote.id == quote_id, models.Quote.company_id == company_id)
        .first()
    )
    if not quote:
        raise QuoteNotFound()
    return quote


def _ensure_client(db: Session, company_id: str, client_id: Optional[str]) -> models.Client:
    if not client_id:
        raise InvalidInput("Cliente e obrigatorio")
    client = (
        db.query(models.Client)
        .filter(models.Client.id == client_id, models.Client.company_id == company_id)
        .first()
    )
    if not client:
        raise ClientNotFound()
    return client


def _ensure_number_available(
    db: Session, company_id: str, quote_number: str, exclude_id: Optional[str] = None
) -> None:
    query = db.query(models.Quote.id).filter(
        models.Quote.company_id == company_id,
        models.Quote.quote_number == quote_number,
    )
    if exclude_id:
        query = query.filter(models.Quote.id != exclude_id)
    if query.first():
        raise Conflict(QUOTE_NUMBER_CONFLICT_MESSAGE, code=QUOTE_NUMBER_CONFLICT)


def _ensure_item_capacity(features: Optional[PlanFeatures], item_count: int) -> None:
    if item_count <= 0:
        return
    # a limit of N admits exactly N items
    ensure_within_limit(features, "max_items_per_quote", item_count - 1)


def _resolve_item(db: Session, company_id: str, raw: dict) -> _ItemDraft:
    product = None
    product_id = raw.get("product_id")
    if product_id:
        product = (
            db.query(models.Product)
            .filter(models.Product.id == product_id, models.Product.company_id == company_id)
            .first()
        )
        if not product:
            raise ProductNotFound()

    description = raw.get("description") or (product.name if product else None)
    if not description:
        raise InvalidInput("Descricao do item e obrigatoria")

    unit_price = raw.get("unit_price_cents")
    if unit_price is None and product is not None:
        unit_price = product.unit_price_cents
    if unit_price is None:
        raise InvalidInput("Preco unitario do item e obrigatorio")

    quantity = raw.get("quantity")
    line = to_line_item(1 if quantity is None else quantity, unit_price)
    if line.quantity < MIN_QUANTITY:
        raise InvalidInput("Quantidade deve ser de pelo menos 0.01")
    _ensure_stored_scale(line.quantity, "quantity")

    return _ItemDraft(
        product_id=product.id if product else None,
        description=description,
        complement=raw.get("complement"),
        quantity=line.quantity,
        unit_price_cents=line.unit_price,
    )


def _resolve_items(db: Session, company_id: str, raw_items: list) -> list[_ItemDraft]:
    drafts = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            raise InvalidInput("Item de orcamento invalido")
        drafts.append(_resolve_item(db, company_id, raw))
    return drafts


def _build_item(draft: _ItemDraft, order: int) -> models.QuoteItem:
    return models.QuoteItem(
        product_id=draft.product_id,
        description=draft.description,
        complement=draft.complement,
        quantity=draft.quantity,
        unit_price_cents=draft.unit_price_cents,
        total_price_cents=line_total(draft.quantity, draft.unit_price_cents),
        item_order=order,
    )


def _apply_totals(quote: models.Quote, items: list) -> None:
    totals = compute_totals(items, quote.discount_type, quote.discount_value, quote.tax)
    quote.subtotal = totals.subtotal
    quote.discount = totals.discount
    quote.tax = totals.tax
    quote.total = totals.total


def _resequence(quote: models.Quote) -> None:
    for index, item in enumerate(sorted(quote.items, key=lambda i: i.item_order or 0), start=1):
        item.item_order = index


def count_quotes(db: Session, company_id: str, period: str = "month", now: Optional[datetime] = None) -> int:
    if period not in COUNT_PERIODS:
        raise InvalidInput("Periodo invalido. Use month, year ou all")
    now = now or datetime.utcnow()
    query = db.query(func.count(models.Quote.id)).filter(models.Quote.company_id == company_id)
    if period == "month":
        query = query.filter(models.Quote.created_at >= datetime(now.year, now.month, 1))
    elif period == "year":
        query = query.filter(models.Quote.created_at >= datetime(now.year, 1, 1))
    return query.scalar() or 0


def generate_quote_number(db: Session, company_id: str, today: Optional[date] = None) -> str:
    """Next ``YYYY-NNN`` number for the company in the current year."""
    year = (today or date.today()).year
    numbers = (
        db.query(models.Quote.quote_number)
        .filter(
            models.Quote.company_id == company_id,
            models.Quote.quote_number.like(f"{year}-%"),
        )
        .all()
    )
    highest = 0
    for (number,) in numbers:
        match = _NUMBER_PATTERN.match(number or "")
        if match and int(match.group(1)) == year:
            highest = max(highest, int(match.group(2)))
    return f"{year}-{highest + 1:03d}"


def next_quote_number(db: Session, actor: ActorContext, company_id: str) -> str:
    access = resolve_company_access(db, actor, company_id, OperationClass.READ)
    return generate_quote_number(db, access.company_id)


def create_quote(db: Session, actor: ActorContext, company_id: str, payload: dict) -> models.Quote:
    access = resolve_company_access(
        db, actor, company_id, OperationClass.WRITE, permission=PERMISSION_CREATE_QUOTES
    )
    company = access.company

    features = resolve_plan_features(db, company.owner_id)
    ensure_within_limit(features, "max_quotes_per_month", count_quotes(db, company.id, "month"))
    raw_items = payload.get("items") or []
    _ensure_item_capacity(features, len(raw_items))

    client = _ensure_client(db, company.id, payload.get("client_id"))

    quote_number = (payload.get("quote_number") or "").strip() or generate_quote_number(db, company.id)
    _ensure_number_available(db, company.id, quote_number)

    drafts = _resolve_items(db, company.id, raw_items)

    discount_type = normalize_discount_type(payload.get("discount_type"))
    discount_value = _parse_discount_value(discount_type, payload.get("discount_value"))
    totals = compute_totals(
        [to_line_item(d.quantity, d.unit_price_cents) for d in drafts],
        discount_type,
        discount_value,
        payload.get("tax_amount"),
    )

    quote = models.Quote(
        company_id=company.id,
        client_id=client.id,
        created_by_user_id=access.user_id,
        quote_number=quote_number,
        status=INITIAL_STATUS.value,
        issue_date=_parse_date(payload.get("issue_date"), "issue_date") or date.today(),
        expiry_date=_parse_date(payload.get("expiry_date"), "expiry_date"),
        notes=payload.get("notes"),
        internal_notes=payload.get("internal_notes"),
        terms_and_conditions_content=payload.get("terms_and_conditions_content"),
        currency=(payload.get("currency") or settings.DEFAULT_CURRENCY).upper(),
        discount_type=discount_type,
        discount_value=discount_value,
        subtotal=totals.subtotal,
        discount=totals.discount,
        tax=totals.tax,
        total=totals.total,
    )
    quote.items = [_build_item(draft, order) for order, draft in enumerate(drafts, start=1)]

    with transaction(db, conflict_message=QUOTE_NUMBER_CONFLICT_MESSAGE, conflict_code=QUOTE_NUMBER_CONFLICT):
        db.add(quote)
        db.flush()
        record_audit(
            db,
            action="QUOTE_CREATED",
            user_id=access.user_id,
            company_id=company.id,
            resource_type="quote",
            resource_id=quote.id,
            payload={"quote_number": quote.quote_number, "total": quote.total},
        )

    db.refresh(quote)
    logger.info(
        "Orcamento criado quote_id=%s company_id=%s number=%s total=%s",
        quote.id,
        company.id,
        quote.quote_number,
        quote.total,
    )
    return quote


def get_quote(db: Session, actor: ActorContext, company_id: str, quote_id: str) -> models.Quote:
    access = resolve_company_access(db, actor, company_id, OperationClass.READ)
    return _get_quote(db, access.company_id, quote_id)


def list_quotes(
    db: Session,
    actor: ActorContext,
    company_id: str,
    filters: Optional[dict] = None,
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> dict:
    access = resolve_company_access(db, actor, company_id, OperationClass.READ)
    filters = filters or {}
    page = max(page, 1)
    page_size = min(max(page_size, 1), MAX_PAGE_SIZE)

    query = db.query(models.Quote).filter(models.Quote.company_id == access.company_id)
    if filters.get("status"):
        query = query.filter(models.Quote.status == filters["status"])
    if filters.get("client_id"):
        query = query.filter(models.Quote.client_id == filters["client_id"])
    if filters.get("quote_number"):
        query = query.filter(models.Quote.quote_number.ilike(f"%{filters['quote_number']}%"))
    issue_from = _parse_date(filters.get("issue_date_from"), "issue_date_from")
    issue_to = _parse_date(filters.get("issue_date_to"), "issue_date_to")
    expiry_from = _parse_date(filters.get("expiry_date_from"), "expiry_date_from")
    expiry_to = _parse_date(filters.get("expiry_date_to"), "expiry_date_to")
    if issue_from:
        query = query.filter(models.Quote.issue_date >= issue_from)
    if issue_to:
        query = query.filter(models.Quote.issue_date <= issue_to)
    if expiry_from:
        query = query.filter(models.Quote.expiry_date >= expiry_from)
    if expiry_to:
        query = query.filter(models.Quote.expiry_date <= expiry_to)

    total = query.count()
    quotes = (
        query.order_by(models.Quote.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    total_pages = (total + page_size - 1) // page_size if total else 0
    return {
        "data": quotes,
        "pagination": {
            "page": page,
            "page_size": page_size,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def update_quote(
    db: Session, actor: ActorContext, company_id: str, quote_id: str, payload: dict
) -> models.Quote:
    """Merge field changes and, when ``items`` is given, replace the item set.

    Status is not accepted here; it only changes through ``update_quote_status``.
    """
    access = resolve_company_access(
        db, actor, company_id, OperationClass.WRITE, permission=PERMISSION_CREATE_QUOTES
    )
    company = access.company
    quote = _get_quote(db, company.id, quote_id)

    if "status" in payload:
        raise InvalidInput("O status do orcamento deve ser alterado pela rota de status")
    ensure_editable(quote)

    changes: dict[str, Any] = {}
    if payload.get("client_id") and payload["client_id"] != quote.client_id:
        changes["client_id"] = _ensure_client(db, company.id, payload["client_id"]).id

    new_number = (payload.get("quote_number") or "").strip()
    if new_number and new_number != quote.quote_number:
        _ensure_number_available(db, company.id, new_number, exclude_id=quote.id)
        changes["quote_number"] = new_number

    if "issue_date" in payload and payload["issue_date"] is not None:
        changes["issue_date"] = _parse_date(payload["issue_date"], "issue_date")
    if "expiry_date" in payload:
        changes["expiry_date"] = _parse_date(payload["expiry_date"], "expiry_date")
    if payload.get("currency"):
        changes["currency"] = payload["currency"].upper()
    for name in SIMPLE_FIELDS:
        if name in payload:
            changes[name] = payload[name]

    drafts = None
    if payload.get("items") is not None:
        features = resolve_plan_features(db, company.owner_id)
        _ensure_item_capacity(features, len(payload["items"]))
        drafts = _resolve_items(db, company.id, payload["items"])

    repricing = drafts is not None or any(name in payload for name in PRICING_FIELDS)
    if repricing:
        discount_type = (
            normalize_discount_type(payload["discount_type"])
            if "discount_type" in payload
            else quote.discount_type
        )
        raw_discount = payload["discount_value"] if "discount_value" in payload else quote.discount_value
        discount_value = _parse_discount_value(discount_type, raw_discount)
        tax_amount = payload["tax_amount"] if "tax_amount" in payload else quote.tax
        line_items = (
            [to_line_item(d.quantity, d.unit_price_cents) for d in drafts]
            if drafts is not None
            else quote.items
        )
        totals = compute_totals(line_items, discount_type, discount_value, tax_amount)
        changes.update(
            discount_type=discount_type,
            discount_value=discount_value,
            subtotal=totals.subtotal,
            discount=totals.discount,
            tax=totals.tax,
            total=totals.total,
        )

    with transaction(db, conflict_message=QUOTE_NUMBER_CONFLICT_MESSAGE, conflict_code=QUOTE_NUMBER_CONFLICT):
        for name, value in changes.items():
            setattr(quote, name, value)
        if drafts is not None:
            quote.items = [_build_item(draft, order) for order, draft in enumerate(drafts, start=1)]
        quote.updated_at = datetime.utcnow()

    db.refresh(quote)
    logger.info(
        "Orcamento atualizado quote_id=%s company_id=%s items_replaced=%s",
        quote.id,
        company.id,
        drafts is not None,
    )
    return quote


def _apply_transition(quote: models.Quote, target, now: Optional[datetime] = None) -> bool:
    plan = plan_transition(quote.status, target, quote.accepted_at, quote.rejected_at, now)
    if not plan.changed:
        return False
    for name, value in plan.updates.items():
        setattr(quote, name, value)
    return True


def update_quote_status(
    db: Session,
    actor: ActorContext,
    company_id: str,
    quote_id: str,
    status,
    now: Optional[datetime] = None,
) -> models.Quote:
    access = resolve_company_access(
        db, actor, company_id, OperationClass.WRITE, permission=PERMISSION_CREATE_QUOTES
    )
    quote = _get_quote(db, access.company_id, quote_id)
    previous = quote.status

    with transaction(db):
        changed = _apply_transition(quote, status, now)
        if changed:
            record_audit(
                db,
                action="QUOTE_STATUS_CHANGED",
                user_id=access.user_id,
                company_id=access.company_id,
                resource_type="quote",
                resource_id=quote.id,
                payload={"from": previous, "to": quote.status},
            )

    if changed:
        db.refresh(quote)
        logger.info("Status do orcamento alterado quote_id=%s %s -> %s", quote.id, previous, quote.status)
    return quote


def delete_quote(db: Session, actor: ActorContext, company_id: str, quote_id: str) -> None:
    access = resolve_company_access(
        db, actor, company_id, OperationClass.WRITE, permission=PERMISSION_CREATE_QUOTES
    )
    quote = _get_quote(db, access.company_id, quote_id)
    ensure_deletable(quote)

    with transaction(db):
        record_audit(
            db,
            action="QUOTE_DELETED",
            user_id=access.user_id,
            company_id=access.company_id,
            resource_type="quote",
            resource_id=quote.id,
            payload={"quote_number": quote.quote_number},
        )
        db.delete(quote)
    logger.info("Orcamento excluido quote_id=%s company_id=%s", quote_id, access.company_id)


def add_quote_item(
    db: Session, actor: ActorContext, company_id: str, quote_id: str, payload: dict
) -> models.QuoteItem:
    access = resolve_company_access(
        db, actor, company_id, OperationClass.WRITE, permission=PERMISSION_CREATE_QUOTES
    )
    company = access.company
    quote = _get_quote(db, company.id, quote_id)
    ensure_editable(quote)

    features = resolve_plan_features(db, company.owner_id)
    _ensure_item_capacity(features, len(quote.items) + 1)
    draft = _resolve_item(db, company.id, payload)

    next_order = max((item.item_order or 0 for item in quote.items), default=0) + 1
    item = _build_item(draft, next_order)
    with transaction(db):
        quote.items.append(item)
        _apply_totals(quote, quote.items)
        quote.updated_at = datetime.utcnow()

    db.refresh(item)
    logger.info("Item adicionado quote_id=%s item_id=%s", quote.id, item.id)
    return item


def _find_item(quote: models.Quote, item_id: str) -> models.QuoteItem:
    for item in quote.items:
        if item.id == item_id:
            return item
    raise QuoteItemNotFound()


def update_quote_item(
    db: Session, actor: ActorContext, company_id: str, quote_id: str, item_id: str, payload: dict
) -> models.QuoteItem:
    access = resolve_company_access(
        db, actor, company_id, OperationClass.WRITE, permission=PERMISSION_CREATE_QUOTES
    )
    company = access.company
    quote = _get_quote(db, company.id, quote_id)
    ensure_editable(quote)
    item = _find_item(quote, item_id)

    merged = {
        "product_id": item.product_id,
        "description": item.description,
        "complement": item.complement,
        "quantity": item.quantity,
        "unit_price_cents": item.unit_price_cents,
    }
    if "product_id" in payload and payload["product_id"] != item.product_id:
        merged["product_id"] = payload["product_id"]
        if payload["product_id"]:
            # a new product snapshots its own name and price unless they are given
            merged["description"] = None
            merged["unit_price_cents"] = None
    merged.update({k: v for k, v in payload.items() if k in merged and k != "product_id" and v is not None})
    if "complement" in payload:
        merged["complement"] = payload["complement"]
    draft = _resolve_item(db, company.id, merged)

    with transaction(db):
        item.product_id = draft.product_id
        item.description = draft.description
        item.complement = draft.complement
        item.quantity = draft.quantity
        item.unit_price_cents = draft.unit_price_cents
        item.total_price_cents = line_total(draft.quantity, draft.unit_price_cents)
        _apply_totals(quote, quote.items)
        quote.updated_at = datetime.utcnow()

    db.refresh(item)
    logger.info("Item atualizado quote_id=%s item_id=%s", quote.id, item.id)
    return item


def delete_quote_item(
    db: Session, actor: ActorContext, company_id: str, quote_id: str, item_id: str
) -> models.Quote:
    access = resolve_company_access(
        db, actor, company_id, OperationClass.WRITE, permission=PERMISSION_CREATE_QUOTES
    )
    quote = _get_quote(db, access.company_id, quote_id)
    ensure_editable(quote)
    item = _find_item(quote, item_id)

    with transaction(db):
        quote.items.remove(item)
        _resequence(quote)
        _apply_totals(quote, quote.items)
        quote.updated_at = datetime.utcnow()

    db.refresh(quote)
    logger.info("Item removido quote_id=%s item_id=%s", quote.id, item_id)
    return quote


def list_expiring_quotes(
    db: Session,
    actor: ActorContext,
    company_id: str,
    days_ahead: Optional[int] = None,
    today: Optional[date] = None,
) -> list[models.Quote]:
    access = resolve_company_access(db, actor, company_id, OperationClass.READ)
    days = settings.QUOTE_EXPIRY_WARNING_DAYS if days_ahead is None else days_ahead
    if days < 0:
        raise InvalidInput("days_ahead nao pode ser negativo")
    today = today or date.today()
    return (
        db.query(models.Quote)
        .filter(
            models.Quote.company_id == access.company_id,
            models.Quote.status.in_(EXPIRABLE_STATUSES),
            models.Quote.expiry_date.isnot(None),
            models.Quote.expiry_date >= today,
            models.Quote.expiry_date <= today + timedelta(days=days),
        )
        .order_by(models.Quote.expiry_date.asc())
        .all()
    )


def quote_stats(db: Session, actor: ActorContext, company_id: str) -> dict:
    access = resolve_company_access(db, actor, company_id, OperationClass.READ)
    rows = (
        db.query(
            models.Quote.status,
            func.count(models.Quote.id),
            func.coalesce(func.sum(models.Quote.total), 0),
        )
        .filter(models.Quote.company_id == access.company_id)
        .group_by(models.Quote.status)
        .all()
    )
    by_status = {status.value: 0 for status in QuoteStatus}
    value_by_status = {status.value: 0 for status in QuoteStatus}
    for status, count, value in rows:
        by_status[status] = count
        value_by_status[status] = int(value or 0)

    accepted = by_status[QuoteStatus.ACCEPTED.value] + by_status[QuoteStatus.INVOICED.value]
    accepted_value = value_by_status[QuoteStatus.ACCEPTED.value] + value_by_status[QuoteStatus.INVOICED.value]
    decided = accepted + by_status[QuoteStatus.REJECTED.value]
    return {
        "total_quotes": sum(by_status.values()),
        "by_status": by_status,
        "accepted_value": accepted_value,
        "average_accepted_value": round(accepted_value / accepted) if accepted else 0,
        "acceptance_rate": round(accepted * 100 / decided, 2) if decided else 0.0,
    }


def expire_overdue_quotes(db: Session, today: Optional[date] = None) -> list[str]:
    """Move sent/viewed quotes whose expiry date has passed to ``expired``.

    Runs outside any request, from a scheduler; it goes through the same
    transition rules as a user-driven status change.
    """
    today = today or date.today()
    overdue = (
        db.query(models.Quote)
        .filter(
            models.Quote.status.in_(EXPIRABLE_STATUSES),
            models.Quote.expiry_date.isnot(None),
            models.Quote.expiry_date < today,
        )
        .all()
    )
    expired_ids: list[str] = []
    with transaction(db):
        for quote in overdue:
            previous = quote.status
            if _apply_transition(quote, QuoteStatus.EXPIRED):
                record_audit(
                    db,
                    action="QUOTE_STATUS_CHANGED",
                    company_id=quote.company_id,
                    resource_type="quote",
                    resource_id=quote.id,
                    payload={"from": previous, "to": quote.status, "source": "expiry_sweep"},
                )
                expired_ids.append(quote.id)

    logger.info("Varredura de validade concluida expired=%s", len(expired_ids))
    return expired_ids
