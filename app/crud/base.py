import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import DomainError, StorePassthroughError, ValidationError

log = logging.getLogger("app.store")


def store_error(exc: SQLAlchemyError) -> DomainError:
    """
    Translate a store failure:
      - IntegrityError -> ValidationError (constraint violated by input)
      - other SQLAlchemyError -> StorePassthroughError (retryable)
    """
    if isinstance(exc, IntegrityError):
        log.warning("write rejected by constraint: %s", exc.orig)
        return ValidationError("Constraint violation", message_key="error.constraint")
    log.error("store write failed: %s", exc)
    return StorePassthroughError("Store unavailable")


def commit_or_raise(db: Session) -> None:
    """Commit the unit of work; on failure roll back and raise `store_error`."""
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise store_error(exc) from exc
