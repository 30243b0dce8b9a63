import logging
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError

from roombook.errors import BookingEngineError, PersistenceError

logger = logging.getLogger(__name__)


@contextmanager
def atomic(session, failure_message="Operation failed. Please try again."):
    """Commit on success, roll back on any error.

    Store errors are re-raised as PersistenceError carrying only
    ``failure_message``; engine errors propagate unchanged.
    """
    try:
        yield session
        session.commit()
    except BookingEngineError:
        session.rollback()
        raise
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("Transaction rolled back: %s", failure_message)
        raise PersistenceError(failure_message) from exc
    except Exception:
        session.rollback()
        raise
