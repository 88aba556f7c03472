import logging
import sys
from datetime import date

from quotehub.db.session import SessionLocal
from quotehub.services.quotes import expire_overdue_quotes


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    today = date.fromisoformat(sys.argv[1]) if len(sys.argv) > 1 else date.today()

    db = SessionLocal()
    try:
        expired = expire_overdue_quotes(db, today=today)
        print(f"Orcamentos expirados: {len(expired)}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
