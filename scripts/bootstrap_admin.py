import os

from quotehub.core.config import settings
from quotehub.db import models
from quotehub.db.init_db import ensure_admin_account, ensure_plans
from quotehub.db.session import SessionLocal, engine


def main() -> None:
    password = os.getenv("ADMIN_BOOTSTRAP_PASSWORD")
    if not settings.ADMIN_OVERRIDE_SECRET:
        print("ADMIN_OVERRIDE_SECRET nao definido: o acesso administrativo ficara desabilitado.")

    models.Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        ensure_plans(db)
        admin = ensure_admin_account(db, password=password)
        if admin.status != "active":
            admin.status = "active"
            db.commit()
        print(f"Conta administrativa ACTIVE: {admin.email}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
