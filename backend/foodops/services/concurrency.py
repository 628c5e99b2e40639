# Overview: Row locking and the retry policy applied around idempotent reads and whole transactions.

from __future__ import annotations

import time
from dataclasses import dataclass

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


@dataclass(frozen=True)
class RetryPolicy:
    """
    Explicit retry policy for data-store work.

    Only transient store failures are retryable. Validation, conflict and
    gateway errors propagate on the first attempt. Never wrap a payment
    gateway call in a policy: a retried call can create a duplicate
    external transaction.
    """
    max_attempts: int = 3
    backoff_base: float = 0.1
    retry_on: tuple = (OperationalError, StaleDataError)

    def is_retryable(self, exc: BaseException) -> bool:
        return isinstance(exc, self.retry_on)

    def delay_for(self, attempt: int) -> float:
        return self.backoff_base * (2 ** attempt)


# Up to 2 retries after the first attempt
DEFAULT_RETRY_POLICY = RetryPolicy()


def run_with_retry(func, *, policy: RetryPolicy = DEFAULT_RETRY_POLICY):
    """
    Execute a DB operation under a retry policy.

    `func` must be an idempotent read or a transaction that commits as a
    whole. The session is rolled back after every failed attempt, so no
    partial state from an attempt survives.
    """
    for attempt in range(policy.max_attempts):
        try:
            return func()
        except Exception as exc:
            db.session.rollback()
            if not policy.is_retryable(exc) or attempt >= policy.max_attempts - 1:
                raise
            time.sleep(policy.delay_for(attempt))
