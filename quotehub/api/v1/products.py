from datetime import datetime

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from quotehub.core.authorization import ActorContext
from quotehub.core.security import get_actor_context
from quotehub.db import models
from quotehub.db.session import get_db
from quotehub.services import products as product_service

router = APIRouter(tags=["Produtos"])


class ProductCreate(BaseModel):
    name: str = Field(..., min_length=1)
    description: str | None = None
    sku: str | None = None
    unit: str | None = None
    unit_price_cents: int = Field(0, ge=0)
    is_active: bool = True


class ProductUpdate(BaseModel):
    name: str | None = None
    description: str | None = None
    sku: str | None = None
    unit: str | None = None
    unit_price_cents: int | None = Field(None, ge=0)
    is_active: bool | None = None


class ProductResponse(BaseModel):
    id: str
    company_id: str
    name: str
    description: str | None = None
    sku: str | None = None
    unit: str | None = None
    unit_price_cents: int
    is_active: bool
    created_at: datetime | None = None


def to_response(product: models.Product) -> ProductResponse:
    return ProductResponse(
        id=product.id,
        company_id=product.company_id,
        name=product.name,
        description=product.description,
        sku=product.sku,
        unit=product.unit,
        unit_price_cents=product.unit_price_cents,
        is_active=product.is_active,
        created_at=product.created_at,
    )


@router.post(
    "/companies/{company_id}/products",
    response_model=ProductResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_product(
    company_id: str,
    payload: ProductCreate,
    actor: ActorContext = Depends(get_actor_context),
    db: Session = Depends(get_db),
):
    return to_response(product_service.create_product(db, actor, company_id, payload.model_dump()))


@router.get("/companies/{company_id}/products", response_model=list[ProductResponse])
def list_products(
    company_id: str,
    search: str | None = Query(default=None),
    active_only: bool = Query(default=False),
    actor: ActorContext = Depends(get_actor_context),
    db: Session = Depends(get_db),
):
    products = product_service.list_products(db, actor, company_id, search=search, active_only=active_only)
    return [to_response(p) for p in products]


@router.get("/companies/{company_id}/products/{product_id}", response_model=ProductResponse)
def get_product(
    company_id: str,
    product_id: str,
    actor: ActorContext = Depends(get_actor_context),
    db: Session = Depends(get_db),
):
    return to_response(product_service.get_product(db, actor, company_id, product_id))


@router.patch("/companies/{company_id}/products/{product_id}", response_model=ProductResponse)
def update_product(
    company_id: str,
    product_id: str,
    payload: ProductUpdate,
    actor: ActorContext = Depends(get_actor_context),
    db: Session = Depends(get_db),
):
    product = product_service.update_product(
        db, actor, company_id, product_id, payload.model_dump(exclude_unset=True)
    )
    return to_response(product)


@router.delete("/companies/{company_id}/products/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_product(
    company_id: str,
    product_id: str,
    actor: ActorContext = Depends(get_actor_context),
    db: Session = Depends(get_db),
):
    product_service.delete_product(db, actor, company_id, product_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
