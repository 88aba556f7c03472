import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from quotehub.core.config import settings
from quotehub.core.errors import Conflict, DomainError, InternalError

logger = logging.getLogger("quotehub.db")

engine = create_engine(
    settings.SQLALCHEMY_DATABASE_URI,
    pool_pre_ping=True,
    connect_args={"check_same_thread": False}
    if settings.SQLALCHEMY_DATABASE_URI.startswith("sqlite")
    else {},
)

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(
    db: Session,
    conflict_message: str = "Registro duplicado",
    conflict_code: Optional[str] = None,
) -> Iterator[Session]:
    """All-or-nothing unit of work over the request session.

    Commits on success. Any failure rolls back everything flushed inside the
    block; unique-constraint violations surface as ``Conflict`` and other
    database failures as ``InternalError``.
    """
    try:
        yield db
        db.commit()
    except DomainError:
        db.rollback()
        raise
    except IntegrityError as exc:
        db.rollback()
        logger.warning("Violacao de integridade: %s", exc.orig)
        raise Conflict(conflict_message, code=conflict_code) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Erro de banco de dados durante a transacao")
        raise InternalError() from exc
    except Exception as exc:
        db.rollback()
        logger.exception("Erro inesperado durante a transacao")
        raise InternalError() from exc
