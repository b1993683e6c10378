import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, TypeVar

from sqlalchemy import Select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from rewards_ledger.core.config import config
from rewards_ledger.core.exceptions import (
	LedgerError, ConcurrencyConflict, InternalError
)

logger = logging.getLogger("[LEDGER]")

T = TypeVar("T")

# serialization_failure, deadlock_detected
RETRYABLE_SQLSTATES = {"40001", "40P01"}


def is_concurrency_error(exc: DBAPIError) -> bool:
	orig = exc.orig
	sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
	if sqlstate in RETRYABLE_SQLSTATES:
		return True
	# sqlite: writer lock held by another connection
	return "database is locked" in str(orig)


async def run_atomic(
	session: AsyncSession,
	operation: Callable[[], Awaitable[T]],
	max_retries: int | None = None,
) -> T:
	"""
	Runs `operation` inside one transaction: everything it does commits
	together or not at all.
	Serialization failures and deadlocks are retried with a fresh transaction,
	up to `max_retries` attempts, then surface as ConcurrencyConflict.
	If the session already is in a transaction, the caller owns it (commit
	and retries included) and `operation` runs in a savepoint.
	"""
	if session.in_transaction():
		async with session.begin_nested():
			return await operation()

	attempts = max_retries or config.DB_MAX_RETRIES
	for attempt in range(1, attempts + 1):
		try:
			async with session.begin():
				return await operation()
		except DBAPIError as exc:
			if not is_concurrency_error(exc):
				raise
			if attempt >= attempts:
				raise ConcurrencyConflict() from exc
			logger.warning(f"Concurrency conflict, retry {attempt}/{attempts}: {exc.orig}")
			await asyncio.sleep(0.05 * attempt)
	raise ConcurrencyConflict()


async def run_operation(
	session: AsyncSession,
	operation: Callable[[], Awaitable[T]],
	on_failure: Callable[[LedgerError], T],
	log: logging.Logger = logger,
) -> T:
	"""
	Operation boundary: business failures and unexpected persistence errors
	become a structured failure result, never an exception.
	"""
	try:
		return await run_atomic(session, operation)
	except LedgerError as exc:
		log.info(f"Operation rejected: {exc.code.value}: {exc.message}")
		return on_failure(exc)
	except SQLAlchemyError:
		log.exception("Unexpected persistence error")
		return on_failure(InternalError())


def dialect_insert(session: AsyncSession, model):
	# INSERT ... ON CONFLICT is dialect specific
	if session.get_bind().dialect.name == "postgresql":
		return pg_insert(model)
	return sqlite_insert(model)


def for_update(query: Select) -> Select:
	# row lock + refresh objects already in the identity map
	return query.with_for_update().execution_options(populate_existing=True)


def as_utc(value: datetime | None) -> datetime | None:
	# sqlite gives back naive datetimes
	if value is not None and value.tzinfo is None:
		return value.replace(tzinfo=timezone.utc)
	return value


def normalize_code(code: str | None) -> str:
	return (code or "").strip().upper()
