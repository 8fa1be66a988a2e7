"""
Service layer for Octagon Oracle.

Each operation takes an optional SQLAlchemy ``session`` (defaulting to
``db.session``) and runs in exactly one transaction: it either commits
everything it wrote or rolls back and raises an ``OracleError``.
"""

import logging
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError

from app import db
from app.services.errors import OracleError, SettlementError

logger = logging.getLogger(__name__)


def get_session(session=None):
    return session if session is not None else db.session


@contextmanager
def atomic(session, operation):
    """
    Commit the work done in the block, or roll all of it back

    OracleErrors raised inside the block propagate unchanged; store errors
    are logged and re-raised as SettlementError.
    """
    try:
        yield session
        session.commit()
    except OracleError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception(f"{operation} failed, rolled back")
        raise SettlementError() from e
    except Exception:
        session.rollback()
        logger.exception(f"{operation} failed unexpectedly, rolled back")
        raise
