from datetime import datetime

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from quotehub.core.authorization import ActorContext
from quotehub.core.security import get_actor_context
from quotehub.db import models
from quotehub.db.session import get_db
from quotehub.services import shares as share_service

router = APIRouter(tags=["Compartilhamentos"])


class ShareCreate(BaseModel):
    email: str = Field(..., min_length=3)
    permissions: dict[str, bool] | None = None


class SharePermissionsUpdate(BaseModel):
    permissions: dict[str, bool]


class ShareResponse(BaseModel):
    id: str
    company_id: str
    shared_with_user_id: str
    shared_with_email: str | None = None
    shared_by_user_id: str
    permissions: dict
    status: str
    created_at: datetime | None = None


def to_response(share: models.CompanyShare) -> ShareResponse:
    return ShareResponse(
        id=share.id,
        company_id=share.company_id,
        shared_with_user_id=share.shared_with_user_id,
        shared_with_email=share.recipient.email if share.recipient else None,
        shared_by_user_id=share.shared_by_user_id,
        permissions=share.permissions or {},
        status=share.status,
        created_at=share.created_at,
    )


@router.post(
    "/companies/{company_id}/shares",
    response_model=ShareResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_share(
    company_id: str,
    payload: ShareCreate,
    actor: ActorContext = Depends(get_actor_context),
    db: Session = Depends(get_db),
):
    return to_response(share_service.create_share(db, actor, company_id, payload.model_dump()))


@router.get("/companies/{company_id}/shares", response_model=list[ShareResponse])
def list_shares(
    company_id: str,
    actor: ActorContext = Depends(get_actor_context),
    db: Session = Depends(get_db),
):
    return [to_response(s) for s in share_service.list_shares(db, actor, company_id)]


@router.patch("/companies/{company_id}/shares/{share_id}", response_model=ShareResponse)
def update_share(
    company_id: str,
    share_id: str,
    payload: SharePermissionsUpdate,
    actor: ActorContext = Depends(get_actor_context),
    db: Session = Depends(get_db),
):
    share = share_service.update_share_permissions(db, actor, company_id, share_id, payload.permissions)
    return to_response(share)


@router.delete("/companies/{company_id}/shares/{share_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_share(
    company_id: str,
    share_id: str,
    actor: ActorContext = Depends(get_actor_context),
    db: Session = Depends(get_db),
):
    share_service.delete_share(db, actor, company_id, share_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
