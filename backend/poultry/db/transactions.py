"""
Atomic units of work with bounded retry.

A unit is a callable that reads and writes through the session and returns a
value. run_in_transaction commits it once, or rolls it back completely. Version
conflicts and lock timeouts roll back and re-run the unit from scratch, so the
unit must re-read everything it depends on.
"""
import logging
import random
import time
from typing import Callable, Optional, Tuple, Type, TypeVar

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from poultry.core.config import settings
from poultry.core.exceptions import LedgerError, TransactionFailed

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_ERRORS: Tuple[Type[BaseException], ...] = (StaleDataError, OperationalError)


def _check_deadline(deadline: Optional[float], description: str) -> None:
    if deadline is not None and time.monotonic() >= deadline:
        raise TransactionFailed(f"{description} timed out before commit")


def _backoff(attempt: int, backoff_ms: int) -> None:
    if backoff_ms <= 0:
        return
    # Jitter keeps competing terminals from retrying in lockstep.
    delay_ms = random.uniform(0, backoff_ms * min(attempt, 5))
    time.sleep(delay_ms / 1000.0)


def run_in_transaction(
    db: Session,
    unit: Callable[[Session], T],
    *,
    description: str = "transaction",
    timeout: Optional[float] = None,
    max_attempts: Optional[int] = None,
    backoff_ms: Optional[int] = None,
    retry_on: Tuple[Type[BaseException], ...] = RETRYABLE_ERRORS,
) -> T:
    """
    Run unit(db) and commit, or roll back and raise.

    Args:
        db: Session owned by this call for the duration of the unit
        unit: Callable doing the reads and writes; must not commit
        description: Used in log lines and error messages
        timeout: Seconds; checked before every attempt and before commit
        max_attempts: Defaults to settings.LEDGER_MAX_RETRIES
        backoff_ms: Defaults to settings.LEDGER_RETRY_BACKOFF_MS
        retry_on: Exceptions that trigger a full retry

    Raises:
        LedgerError: Raised by the unit itself (after rollback)
        TransactionFailed: Timeout, retries exhausted, or a non-retryable
            storage error. State is exactly as before the call.
    """
    attempts = max_attempts if max_attempts is not None else settings.LEDGER_MAX_RETRIES
    backoff = backoff_ms if backoff_ms is not None else settings.LEDGER_RETRY_BACKOFF_MS
    deadline = time.monotonic() + timeout if timeout is not None else None
    last_error: Optional[BaseException] = None

    for attempt in range(1, max(1, attempts) + 1):
        try:
            _check_deadline(deadline, description)
            result = unit(db)
            db.flush()
            _check_deadline(deadline, description)
            db.commit()
            return result
        except LedgerError:
            db.rollback()
            raise
        except retry_on as e:
            db.rollback()
            last_error = e
            logger.info(f"{description}: attempt {attempt} conflicted ({type(e).__name__}), retrying")
            _backoff(attempt, backoff)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"{description} rolled back: {type(e).__name__}: {e}", exc_info=True)
            raise TransactionFailed(f"{description} could not be committed") from e

    logger.error(f"{description} gave up after {attempts} attempts")
    raise TransactionFailed(f"{description} gave up after {attempts} attempts") from last_error
