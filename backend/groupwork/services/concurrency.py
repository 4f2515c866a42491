"""Optimistic read-modify-write helper shared by the group and submission services."""
import logging
from typing import Callable, TypeVar

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from groupwork.config import settings
from groupwork.errors import ConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def run_optimistic(
    db: Session,
    operation: Callable[[], T],
    what: str = "group",
    retry_on: tuple[type[Exception], ...] = (StaleDataError,),
) -> T:
    """Run ``operation`` and commit, re-running it on fresh state when the write loses a race.

    ``operation`` must re-read every aggregate it touches and re-validate every
    precondition, because each attempt starts from a rolled-back session.
    """
    attempts = max(1, settings.OPTIMISTIC_RETRIES)
    for attempt in range(1, attempts + 1):
        try:
            result = operation()
            db.commit()
            return result
        except retry_on as e:
            db.rollback()
            logger.warning(
                "Concurrent %s write detected (attempt %d/%d): %s", what, attempt, attempts, type(e).__name__
            )
        except Exception:
            db.rollback()
            raise
    raise ConflictError(f"The {what} was modified concurrently. Re-fetch and retry.")
