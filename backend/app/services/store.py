from contextlib import contextmanager

import structlog
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from backend.app.errors import UpstreamUnavailable

logger = structlog.get_logger(__name__)


def commit(db: Session) -> None:
    """Commit, translating transient store failures into UpstreamUnavailable"""
    try:
        db.commit()
    except OperationalError as exc:
        db.rollback()
        logger.error("store_commit_failed", error=str(exc.orig))
        raise UpstreamUnavailable() from exc


@contextmanager
def store_read(operation: str):
    """Wrap a read so a transient store failure surfaces as UpstreamUnavailable"""
    try:
        yield
    except OperationalError as exc:
        logger.warning("store_read_failed", operation=operation, error=str(exc.orig))
        raise UpstreamUnavailable(f"Could not load {operation}") from exc
