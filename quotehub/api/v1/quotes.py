from datetime import date, datetime
from decimal import Decimal

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from quotehub.core.authorization import ActorContext
from quotehub.core.security import get_actor_context
from quotehub.db import models
from quotehub.db.session import get_db
from quotehub.services import quotes as quote_service

router = APIRouter(tags=["Orcamentos"])


class QuoteItemPayload(BaseModel):
    product_id: str | None = None
    description: str | None = None
    complement: str | None = None
    quantity: Decimal = Field(Decimal("1"), ge=Decimal("0.01"), decimal_places=2)
    unit_price_cents: int | None = None


class QuoteItemUpdate(BaseModel):
    product_id: str | None = None
    description: str | None = None
    complement: str | None = None
    quantity: Decimal | None = Field(None, ge=Decimal("0.01"), decimal_places=2)
    unit_price_cents: int | None = None


class QuoteCreate(BaseModel):
    client_id: str
    quote_number: str | None = Field(None, max_length=50)
    issue_date: date | None = None
    expiry_date: date | None = None
    notes: str | None = None
    internal_notes: str | None = None
    terms_and_conditions_content: str | None = None
    currency: str | None = Field(None, min_length=3, max_length=3)
    discount_type: str | None = None
    discount_value: Decimal | None = Field(None, decimal_places=2)
    tax_amount: int | None = None
    items: list[QuoteItemPayload] = Field(default_factory=list)


class QuoteUpdate(BaseModel):
    client_id: str | None = None
    quote_number: str | None = Field(None, max_length=50)
    issue_date: date | None = None
    expiry_date: date | None = None
    notes: str | None = None
    internal_notes: str | None = None
    terms_and_conditions_content: str | None = None
    currency: str | None = Field(None, min_length=3, max_length=3)
    discount_type: str | None = None
    discount_value: Decimal | None = Field(None, decimal_places=2)
    tax_amount: int | None = None
    items: list[QuoteItemPayload] | None = None


class QuoteStatusUpdate(BaseModel):
    status: str


class QuoteItemResponse(BaseModel):
    id: str
    product_id: str | None = None
    description: str
    complement: str | None = None
    quantity: float
    unit_price_cents: int
    total_price_cents: int
    item_order: int | None = None


class QuoteResponse(BaseModel):
    id: str
    company_id: str
    client_id: str
    client_name: str | None = None
    created_by_user_id: str | None = None
    quote_number: str
    status: str
    issue_date: date
    expiry_date: date | None = None
    notes: str | None = None
    internal_notes: str | None = None
    terms_and_conditions_content: str | None = None
    currency: str
    subtotal: int
    discount_type: str | None = None
    discount_value: float | None = None
    discount: int
    tax: int
    total: int
    accepted_at: datetime | None = None
    rejected_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    items: list[QuoteItemResponse] = Field(default_factory=list)


def item_to_response(item: models.QuoteItem) -> QuoteItemResponse:
    return QuoteItemResponse(
        id=item.id,
        product_id=item.product_id,
        description=item.description,
        complement=item.complement,
        quantity=float(item.quantity),
        unit_price_cents=item.unit_price_cents,
        total_price_cents=item.total_price_cents,
        item_order=item.item_order,
    )


def to_response(quote: models.Quote, include_items: bool = True) -> QuoteResponse:
    return QuoteResponse(
        id=quote.id,
        company_id=quote.company_id,
        client_id=quote.client_id,
        client_name=quote.client.name if quote.client else None,
        created_by_user_id=quote.created_by_user_id,
        quote_number=quote.quote_number,
        status=quote.status,
        issue_date=quote.issue_date,
        expiry_date=quote.expiry_date,
        notes=quote.notes,
        internal_notes=quote.internal_notes,
        terms_and_conditions_content=quote.terms_and_conditions_content,
        currency=quote.currency,
        subtotal=quote.subtotal,
        discount_type=quote.discount_type,
        discount_value=float(quote.discount_value) if quote.discount_value is not None else None,
        discount=quote.discount,
        tax=quote.tax,
        total=quote.total,
        accepted_at=quote.accepted_at,
        rejected_at=quote.rejected_at,
        created_at=quote.created_at,
        updated_at=quote.updated_at,
        items=[item_to_response(i) for i in quote.items] if include_items else [],
    )


@router.post(
    "/companies/{company_id}/quotes",
    response_model=QuoteResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_quote(
    company_id: str,
    payload: QuoteCreate,
    actor: ActorContext = Depends(get_actor_context),
    db: Session = Depends(get_db),
):
    return to_response(quote_service.create_quote(db, actor, company_id, payload.model_dump()))


@router.get("/companies/{company_id}/quotes")
def list_quotes(
    company_id: str,
    status_filter: str | None = Query(default=None, alias="status"),
    client_id: str | None = Query(default=None),
    quote_number: str | None = Query(default=None),
    issue_date_from: date | None = Query(default=None),
    issue_date_to: date | None = Query(default=None),
    expiry_date_from: date | None = Query(default=None),
    expiry_date_to: date | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=quote_service.DEFAULT_PAGE_SIZE, ge=1, le=quote_service.MAX_PAGE_SIZE),
    actor: ActorContext = Depends(get_actor_context),
    db: Session = Depends(get_db),
):
    filters = {
        "status": status_filter,
        "client_id": client_id,
        "quote_number": quote_number,
        "issue_date_from": issue_date_from,
        "issue_date_to": issue_date_to,
        "expiry_date_from": expiry_date_from,
        "expiry_date_to": expiry_date_to,
    }
    result = quote_service.list_quotes(db, actor, company_id, filters, page=page, page_size=page_size)
    return {
        "data": [to_response(q, include_items=False) for q in result["data"]],
        "pagination": result["pagination"],
    }


@router.get("/companies/{company_id}/quotes/stats")
def get_quote_stats(
    company_id: str,
    actor: ActorContext = Depends(get_actor_context),
    db: Session = Depends(get_db),
):
    return quote_service.quote_stats(db, actor, company_id)


@router.get("/companies/{company_id}/quotes/expiring", response_model=list[QuoteResponse])
def list_expiring_quotes(
    company_id: str,
    days_ahead: int | None = Query(default=None, ge=0),
    actor: ActorContext = Depends(get_actor_context),
    db: Session = Depends(get_db),
):
    quotes = quote_service.list_expiring_quotes(db, actor, company_id, days_ahead=days_ahead)
    return [to_response(q, include_items=False) for q in quotes]


@router.get("/companies/{company_id}/quotes/next-number")
def get_next_quote_number(
    company_id: str,
    actor: ActorContext = Depends(get_actor_context),
    db: Session = Depends(get_db),
):
    return {"quote_number": quote_service.next_quote_number(db, actor, company_id)}


@router.get("/companies/{company_id}/quotes/{quote_id}", response_model=QuoteResponse)
def get_quote(
    company_id: str,
    quote_id: str,
    actor: ActorContext = Depends(get_actor_context),
    db: Session = Depends(get_db),
):
    return to_response(quote_service.get_quote(db, actor, company_id, quote_id))


@router.put("/companies/{company_id}/quotes/{quote_id}", response_model=QuoteResponse)
def update_quote(
    company_id: str,
    quote_id: str,
    payload: QuoteUpdate,
    actor: ActorContext = Depends(get_actor_context),
    db: Session = Depends(get_db),
):
    quote = quote_service.update_quote(db, actor, company_id, quote_id, payload.model_dump(exclude_unset=True))
    return to_response(quote)


@router.patch("/companies/{company_id}/quotes/{quote_id}/status", response_model=QuoteResponse)
def update_quote_status(
    company_id: str,
    quote_id: str,
    payload: QuoteStatusUpdate,
    actor: ActorContext = Depends(get_actor_context),
    db: Session = Depends(get_db),
):
    return to_response(quote_service.update_quote_status(db, actor, company_id, quote_id, payload.status))


@router.delete("/companies/{company_id}/quotes/{quote_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_quote(
    company_id: str,
    quote_id: str,
    actor: ActorContext = Depends(get_actor_context),
    db: Session = Depends(get_db),
):
    quote_service.delete_quote(db, actor, company_id, quote_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/companies/{company_id}/quotes/{quote_id}/items",
    response_model=QuoteItemResponse,
    status_code=status.HTTP_201_CREATED,
)
def add_quote_item(
    company_id: str,
    quote_id: str,
    payload: QuoteItemPayload,
    actor: ActorContext = Depends(get_actor_context),
    db: Session = Depends(get_db),
):
    item = quote_service.add_quote_item(db, actor, company_id, quote_id, payload.model_dump())
    return item_to_response(item)


@router.patch(
    "/companies/{company_id}/quotes/{quote_id}/items/{item_id}",
    response_model=QuoteItemResponse,
)
def update_quote_item(
    company_id: str,
    quote_id: str,
    item_id: str,
    payload: QuoteItemUpdate,
    actor: ActorContext = Depends(get_actor_context),
    db: Session = Depends(get_db),
):
    item = quote_service.update_quote_item(
        db, actor, company_id, quote_id, item_id, payload.model_dump(exclude_unset=True)
    )
    return item_to_response(item)


@router.delete(
    "/companies/{company_id}/quotes/{quote_id}/items/{item_id}",
    response_model=QuoteResponse,
)
def delete_quote_item(
    company_id: str,
    quote_id: str,
    item_id: str,
    actor: ActorContext = Depends(get_actor_context),
    db: Session = Depends(get_db),
):
    return to_response(quote_service.delete_quote_item(db, actor, company_id, quote_id, item_id))
