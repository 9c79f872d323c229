"""
Mutation Coordinator.

WHAT: Runs a unit of work in one database transaction and, only after a
successful commit, hands its result to a post-commit event callback.

WHY: Notifications about a deletion that was rolled back are worse than
no notification at all. Splitting "change state" from "tell the world"
means:
1. Any failure inside the unit of work aborts everything; no event fires
2. Events always describe committed state
3. A failing notifier can never undo a commit

HOW: The unit of work runs inside ``session.begin()``, bounded by
asyncio.wait_for. Cancellation (timeout or client disconnect) unwinds
through the context manager, which rolls the transaction back.
Persistence errors are translated into the application exception
hierarchy; only TransactionConflictError is retried.
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from worktrack.core.config import settings
from worktrack.core.exceptions import (
    AppException,
    InternalError,
    ResourceAlreadyExistsError,
    TransactionConflictError,
    ValidationError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

OperationFn = Callable[[AsyncSession], Awaitable[T]]
EventsFn = Callable[[Any], Any]

# PostgreSQL serialization_failure / deadlock_detected / lock_not_available
_CONFLICT_SQLSTATES = {"40001", "40P01", "55P03"}

# PostgreSQL unique_violation
_UNIQUE_VIOLATION_SQLSTATE = "23505"


def _sqlstate(error: DBAPIError) -> Optional[str]:
    orig = getattr(error, "orig", None)
    for attr in ("sqlstate", "pgcode"):
        code = getattr(orig, attr, None)
        if code:
            return str(code)
    return None


def is_conflict_error(error: SQLAlchemyError) -> bool:
    """
    Whether a database error means "a concurrent transaction got in the way".

    Covers PostgreSQL serialization failures and deadlocks, and SQLite's
    database-level lock.
    """
    if not isinstance(error, DBAPIError):
        return False
    if _sqlstate(error) in _CONFLICT_SQLSTATES:
        return True
    if isinstance(error, OperationalError):
        message = str(error.orig).lower()
        return "database is locked" in message or "deadlock" in message
    return False


def is_unique_violation(error: SQLAlchemyError) -> bool:
    """Whether an integrity error comes from a unique constraint or index."""
    if not isinstance(error, IntegrityError):
        return False
    if _sqlstate(error) == _UNIQUE_VIOLATION_SQLSTATE:
        return True
    return "unique constraint" in str(error.orig).lower()


def translate_persistence_error(error: SQLAlchemyError) -> AppException:
    """
    Map a SQLAlchemy error onto the application exception hierarchy.

    Returns:
        TransactionConflictError, ResourceAlreadyExistsError (unique
        violations), ValidationError (other integrity violations such as a
        foreign key or NOT NULL) or InternalError
    """
    if is_conflict_error(error):
        return TransactionConflictError(sqlstate=_sqlstate(error))
    if is_unique_violation(error):
        return ResourceAlreadyExistsError()
    if isinstance(error, IntegrityError):
        return ValidationError(
            "The change violates a data integrity constraint", sqlstate=_sqlstate(error)
        )
    return InternalError("Database error")


class MutationCoordinator:
    """
    Transaction boundary for every state-changing operation.

    Attributes:
        session_factory: Factory producing one AsyncSession per operation
        timeout: Upper bound on a single transaction, in seconds
        max_attempts: Attempts made by execute_with_retry
        backoff: Base delay between retry attempts, in seconds
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        backoff: Optional[float] = None,
    ):
        self.session_factory = session_factory
        self.timeout = timeout if timeout is not None else settings.TRANSACTION_TIMEOUT_SECONDS
        self.max_attempts = (
            max_attempts if max_attempts is not None else settings.TRANSACTION_MAX_ATTEMPTS
        )
        self.backoff = backoff if backoff is not None else settings.TRANSACTION_RETRY_BACKOFF_SECONDS

    async def _run_transaction(self, operation_fn: OperationFn) -> T:
        async with self.session_factory() as session:
            async with session.begin():
                return await operation_fn(session)

    async def execute(
        self,
        operation_fn: OperationFn,
        events_fn: Optional[EventsFn] = None,
    ) -> T:
        """
        Run ``operation_fn(session)`` in a transaction, then fire events.

        Args:
            operation_fn: Async unit of work receiving the transactional session
            events_fn: Optional post-commit callback (sync or async) receiving
                the unit of work's result

        Returns:
            The unit of work's result

        Raises:
            AppException: Raised by the unit of work, unchanged
            TransactionConflictError: Concurrent modification or timeout
            ResourceAlreadyExistsError: Unique constraint violation
            ValidationError: Any other integrity constraint violation
            InternalError: Any other persistence failure
        """
        try:
            result = await asyncio.wait_for(self._run_transaction(operation_fn), self.timeout)
        except AppException:
            raise
        except asyncio.TimeoutError:
            logger.warning("Transaction aborted after %.1fs timeout", self.timeout)
            raise TransactionConflictError(
                "The operation timed out and was rolled back", timeout_seconds=self.timeout
            ) from None
        except SQLAlchemyError as e:
            translated = translate_persistence_error(e)
            if isinstance(translated, InternalError):
                logger.error("Transaction failed: %s", e, exc_info=True)
            else:
                logger.warning("Transaction aborted: %s", translated.code)
            raise translated from e

        if events_fn is not None:
            await self._emit(events_fn, result)
        return result

    async def _emit(self, events_fn: EventsFn, result: Any) -> None:
        try:
            outcome = events_fn(result)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception:
            # The transaction is committed; a notifier failure only loses events
            logger.exception("Post-commit event dispatch failed")

    async def execute_with_retry(
        self,
        operation_fn: OperationFn,
        events_fn: Optional[EventsFn] = None,
        max_attempts: Optional[int] = None,
    ) -> T:
        """
        execute() with exponential backoff on TransactionConflictError.

        Every other error is raised on the first occurrence. Events fire
        once, for the attempt that committed.
        """
        attempts = max_attempts or self.max_attempts
        for attempt in range(1, attempts + 1):
            try:
                return await self.execute(operation_fn, events_fn)
            except TransactionConflictError:
                if attempt >= attempts:
                    logger.warning("Giving up after %d conflicting attempts", attempt)
                    raise
                delay = self.backoff * (2 ** (attempt - 1))
                logger.info("Transaction conflict (attempt %d/%d), retrying in %.3fs", attempt, attempts, delay)
                await asyncio.sleep(delay)
        raise TransactionConflictError()
