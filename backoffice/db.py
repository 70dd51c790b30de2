from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from backoffice.config import settings
from backoffice.errors import ConcurrencyFailureError, ItemValidationError
from backoffice.logging_config import get_logger

logger = get_logger('db')

engine = create_engine(settings.database_url_normalized, pool_pre_ping=True)
SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        # Anything not explicitly committed by the handler is discarded.
        db.rollback()
        db.close()


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """Commit on success, roll back everything on failure.

    Operational database errors (lock timeouts, serialization failures, lost
    connections) are re-raised as ConcurrencyFailureError so callers can
    report a retryable failure.
    """
    try:
        yield db
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ItemValidationError('The change conflicts with existing data') from exc
    except (OperationalError, DBAPIError) as exc:
        db.rollback()
        logger.warning('transaction_failed', exc_info=True)
        raise ConcurrencyFailureError('The operation could not be completed, please retry') from exc
    except Exception:
        db.rollback()
        raise
