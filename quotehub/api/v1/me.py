from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from quotehub.core.security import get_current_user
from quotehub.db import models
from quotehub.db.session import get_db
from quotehub.services.accounts import account_overview
from quotehub.services.shares import list_shared_companies

router = APIRouter(tags=["Usuario"])


@router.get("/me")
def get_me(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return account_overview(db, current_user)


@router.get("/me/shared-companies")
def get_shared_companies(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return list_shared_companies(db, current_user.id)
