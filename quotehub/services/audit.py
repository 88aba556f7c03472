from typing import Optional

from sqlalchemy.orm import Session

from quotehub.db import models


def record_audit(
    db: Session,
    action: str,
    user_id: Optional[str] = None,
    company_id: Optional[str] = None,
    resource_type: Optional[str] = None,
    resource_id: Optional[str] = None,
    payload: Optional[dict] = None,
) -> models.AuditLog:
    entry = models.AuditLog(
        company_id=company_id,
        user_id=user_id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        payload_resumo=payload or {},
    )
    db.add(entry)
    return entry
