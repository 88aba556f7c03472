from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from quotehub.core.authorization import ActorContext
from quotehub.core.security import get_actor_context
from quotehub.db import models
from quotehub.db.session import get_db
from quotehub.services import clients as client_service

router = APIRouter(tags=["Clientes"])


class ClientCreate(BaseModel):
    name: str = Field(..., min_length=1)
    email: str | None = None
    phone_number: str | None = None
    document_number: str | None = None
    address_street: str | None = None
    address_city: str | None = None
    address_state: str | None = None
    address_zip_code: str | None = None


class ClientUpdate(BaseModel):
    name: str | None = None
    email: str | None = None
    phone_number: str | None = None
    document_number: str | None = None
    address_street: str | None = None
    address_city: str | None = None
    address_state: str | None = None
    address_zip_code: str | None = None


class ClientResponse(BaseModel):
    id: str
    company_id: str
    name: str
    email: str | None = None
    phone_number: str | None = None
    document_number: str | None = None
    address_street: str | None = None
    address_city: str | None = None
    address_state: str | None = None
    address_zip_code: str | None = None
    created_at: datetime | None = None


def to_response(client: models.Client) -> ClientResponse:
    return ClientResponse(
        id=client.id,
        company_id=client.company_id,
        name=client.name,
        email=client.email,
        phone_number=client.phone_number,
        document_number=client.document_number,
        address_street=client.address_street,
        address_city=client.address_city,
        address_state=client.address_state,
        address_zip_code=client.address_zip_code,
        created_at=client.created_at,
    )


@router.post(
    "/companies/{company_id}/clients",
    response_model=ClientResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_client(
    company_id: str,
    payload: ClientCreate,
    actor: ActorContext = Depends(get_actor_context),
    db: Session = Depends(get_db),
):
    return to_response(client_service.create_client(db, actor, company_id, payload.model_dump()))


@router.get("/companies/{company_id}/clients", response_model=list[ClientResponse])
def list_clients(
    company_id: str,
    search: str | None = Query(default=None),
    actor: ActorContext = Depends(get_actor_context),
    db: Session = Depends(get_db),
):
    return [to_response(c) for c in client_service.list_clients(db, actor, company_id, search)]


@router.get("/companies/{company_id}/clients/{client_id}", response_model=ClientResponse)
def get_client(
    company_id: str,
    client_id: str,
    actor: ActorContext = Depends(get_actor_context),
    db: Session = Depends(get_db),
):
    return to_response(client_service.get_client(db, actor, company_id, client_id))


@router.patch("/companies/{company_id}/clients/{client_id}", response_model=ClientResponse)
def update_client(
    company_id: str,
    client_id: str,
    payload: ClientUpdate,
    actor: ActorContext = Depends(get_actor_context),
    db: Session = Depends(get_db),
):
    client = client_service.update_client(
        db, actor, company_id, client_id, payload.model_dump(exclude_unset=True)
    )
    return to_response(client)
