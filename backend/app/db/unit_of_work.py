"""
Unit of work for lifecycle transitions.

A transition's reads, ledger mutations, audit entries and status update are
committed together. Stale versioned rows and database lock/serialization
failures roll the whole transition back and run it again from scratch.
"""
import time
from typing import Callable, Optional, TypeVar

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.core.settings import get_settings
from app.exceptions import ConcurrencyError
from app.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

RETRYABLE_ERRORS = (StaleDataError, OperationalError)


def run_in_transaction(
    db: Session,
    work: Callable[[], T],
    *,
    max_retries: Optional[int] = None,
    backoff_ms: Optional[int] = None,
    sleep: Callable[[float], None] = time.sleep,
    description: str = "transition",
) -> T:
    """
    Run ``work`` and commit it as one atomic unit.

    ``work`` must be safe to call again: it is re-invoked after a retryable
    conflict, with the session rolled back and every instance expired.

    Raises:
        ConcurrencyError: conflicts persisted past ``max_retries`` retries
        Any other exception raised by ``work`` after the rollback
    """
    settings = get_settings()
    retries = settings.TRANSITION_MAX_RETRIES if max_retries is None else max_retries
    backoff = settings.TRANSITION_RETRY_BACKOFF_MS if backoff_ms is None else backoff_ms
    attempts = retries + 1

    for attempt in range(1, attempts + 1):
        try:
            result = work()
            db.commit()
            return result
        except RETRYABLE_ERRORS as e:
            db.rollback()
            db.expire_all()
            if attempt >= attempts:
                logger.error(
                    f"{description} failed after {attempt} attempts: {e}",
                    extra={"attempts": attempt},
                )
                raise ConcurrencyError(
                    f"{description} could not be applied because of concurrent changes; retry later",
                    attempts=attempt,
                ) from e
            logger.warning(
                f"Concurrency conflict during {description}, retrying ({attempt}/{retries})",
                extra={"attempt": attempt, "error": type(e).__name__},
            )
            if backoff:
                sleep(backoff * attempt / 1000)
        except Exception:
            db.rollback()
            raise

    # Unreachable: the loop either returns or raises
    raise ConcurrencyError(attempts=attempts)
