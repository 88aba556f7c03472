from datetime import datetime

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from quotehub.core.authorization import ActorContext, actor_user_id
from quotehub.core.security import get_actor_context
from quotehub.db import models
from quotehub.db.session import get_db
from quotehub.services import companies as company_service

router = APIRouter(tags=["Empresas"])


class CompanyCreate(BaseModel):
    name: str = Field(..., min_length=1)
    legal_name: str | None = None
    document_number: str | None = None
    email: str | None = None
    phone_number: str | None = None
    logo_url: str | None = None


class CompanyUpdate(BaseModel):
    name: str | None = None
    legal_name: str | None = None
    document_number: str | None = None
    email: str | None = None
    phone_number: str | None = None
    logo_url: str | None = None


class CompanyStatusUpdate(BaseModel):
    status: str


class CompanyResponse(BaseModel):
    id: str
    owner_id: str
    name: str
    legal_name: str | None = None
    document_number: str | None = None
    email: str | None = None
    phone_number: str | None = None
    logo_url: str | None = None
    status: str
    created_at: datetime | None = None


def to_response(company: models.Company) -> CompanyResponse:
    return CompanyResponse(
        id=company.id,
        owner_id=company.owner_id,
        name=company.name,
        legal_name=company.legal_name,
        document_number=company.document_number,
        email=company.email,
        phone_number=company.phone_number,
        logo_url=company.logo_url,
        status=company.status,
        created_at=company.created_at,
    )


@router.post("/companies", response_model=CompanyResponse, status_code=status.HTTP_201_CREATED)
def create_company(
    payload: CompanyCreate,
    actor: ActorContext = Depends(get_actor_context),
    db: Session = Depends(get_db),
):
    return to_response(company_service.create_company(db, actor, payload.model_dump()))


@router.get("/companies", response_model=list[CompanyResponse])
def list_companies(
    actor: ActorContext = Depends(get_actor_context),
    db: Session = Depends(get_db),
):
    return [to_response(c) for c in company_service.list_owned_companies(db, actor_user_id(actor))]


@router.get("/companies/{company_id}", response_model=CompanyResponse)
def get_company(
    company_id: str,
    actor: ActorContext = Depends(get_actor_context),
    db: Session = Depends(get_db),
):
    return to_response(company_service.get_company(db, actor, company_id))


@router.patch("/companies/{company_id}", response_model=CompanyResponse)
def update_company(
    company_id: str,
    payload: CompanyUpdate,
    actor: ActorContext = Depends(get_actor_context),
    db: Session = Depends(get_db),
):
    company = company_service.update_company(db, actor, company_id, payload.model_dump(exclude_unset=True))
    return to_response(company)


@router.patch("/companies/{company_id}/status", response_model=CompanyResponse)
def update_company_status(
    company_id: str,
    payload: CompanyStatusUpdate,
    actor: ActorContext = Depends(get_actor_context),
    db: Session = Depends(get_db),
):
    return to_response(company_service.update_company_status(db, actor, company_id, payload.status))


@router.get("/companies/{company_id}/usage")
def get_company_usage(
    company_id: str,
    actor: ActorContext = Depends(get_actor_context),
    db: Session = Depends(get_db),
):
    company = company_service.get_company(db, actor, company_id)
    return company_service.usage_summary(db, company)
