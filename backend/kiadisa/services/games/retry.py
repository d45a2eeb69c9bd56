import time
from typing import Callable, Optional, TypeVar

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from kiadisa import db
from .errors import GameError, StorageError

T = TypeVar('T')


def execute_with_retry(operation: Callable[[], T], max_retries: Optional[int] = None,
                       retry_delay: Optional[float] = None) -> T:
    """Run ``operation``, retrying storage failures.

    Attempts ``max_retries + 1`` times in total, sleeping
    ``retry_delay * attempt`` seconds between attempts and rolling back the
    session after each failure. Game errors other than StorageError are
    raised immediately. Raises StorageError once attempts are exhausted.
    """
    cfg = current_app.config
    if max_retries is None:
        max_retries = int(cfg.get('RETRY_MAX_RETRIES', 2))
    if retry_delay is None:
        retry_delay = float(cfg.get('RETRY_DELAY_SEC', 0.2))

    last_error: Exception | None = None
    for attempt in range(max_retries + 1):
        if attempt > 0 and retry_delay > 0:
            time.sleep(retry_delay * attempt)
        try:
            return operation()
        except GameError as exc:
            db.session.rollback()
            if not exc.retryable:
                raise
            last_error = exc
        except SQLAlchemyError as exc:
            db.session.rollback()
            last_error = exc
        current_app.logger.warning(
            f"[retry] attempt {attempt + 1}/{max_retries + 1} of {getattr(operation, '__name__', 'operation')} failed: {last_error}"
        )

    if isinstance(last_error, StorageError):
        raise last_error
    raise StorageError() from last_error
