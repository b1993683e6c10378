import logging

from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from rewards_ledger.core.database import utc_now
from rewards_ledger.core.exceptions import (
	LedgerError, InvalidAmount, InsufficientBalance, NegativeResultingBalance
)
from rewards_ledger.models import (
	Account, CurrencyKind, LedgerTransaction, TransactionType, AdminOperationType
)
from rewards_ledger.schemas.ledger import (
	BalanceResponse, BalanceCheckResponse, LedgerOperationResponse,
	TransactionPaginatedList
)
from rewards_ledger.schemas.serializers import serialize_transaction
from rewards_ledger.utils.common import (
	run_atomic, run_operation, dialect_insert, for_update
)
from rewards_ledger.utils.logging import get_extra_data_log, write_admin_log
from rewards_ledger.utils.redis_cache import (
	cache_get_balance, cache_set_balance, cache_delete_balance,
	cache_balance_version
)

logger = logging.getLogger("[LEDGER]")


def _check_amount(amount) -> int:
	# bool is an int too
	if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
		raise InvalidAmount(f"Amount must be a positive integer, got {amount!r}")
	return amount


class LedgerService:
	"""
	Atomic balance store, one account per (user_id, currency).

	Public methods are operation boundaries: each runs in its own transaction
	and returns a result model. The `apply_*` / `lock_account` methods are
	building blocks for other services and must run inside a transaction
	the caller controls (see run_atomic).
	"""

	def __init__(self, session: AsyncSession):
		self.session = session

	# ************** building blocks

	async def lock_account(self, user_id: str, currency: CurrencyKind) -> Account:
		"""Creates the account at zero if absent and locks its row."""
		stmt = dialect_insert(self.session, Account).values(
			user_id=user_id,
			currency=currency,
			balance=0,
			total_in=0,
			total_out=0,
			created_at=utc_now(),
			updated_at=utc_now(),
		).on_conflict_do_nothing(index_elements=["user_id", "currency"])
		await self.session.execute(stmt)

		result = await self.session.execute(
			for_update(
				select(Account).where(
					Account.user_id == user_id, Account.currency == currency
				)
			)
		)
		return result.scalar_one()

	async def _append(
		self,
		account: Account,
		tx_type: TransactionType,
		amount: int,
		related_id: int | None,
		related_type: str | None,
		description: str | None,
		operator_id: str | None,
	) -> LedgerTransaction:
		balance_before = account.balance
		balance_after = balance_before + amount

		if amount > 0:
			account.total_in += amount
		else:
			account.total_out += abs(amount)
		account.balance = balance_after
		account.updated_at = utc_now()

		tx = LedgerTransaction(
			user_id=account.user_id,
			currency=account.currency,
			type=tx_type,
			amount=amount,
			balance_before=balance_before,
			balance_after=balance_after,
			related_id=related_id,
			related_type=related_type,
			description=description,
			operator_id=operator_id,
			created_at=utc_now(),
		)
		self.session.add(tx)
		await self.session.flush()

		logger.info("Updated balance. Transaction:", extra=get_extra_data_log(tx))
		return tx

	async def apply_credit(
		self,
		user_id: str,
		currency: CurrencyKind,
		amount: int,
		related_id: int | None = None,
		related_type: str | None = None,
		description: str | None = None,
		operator_id: str | None = None,
		tx_type: TransactionType = TransactionType.RECHARGE,
	) -> LedgerTransaction:
		amount = _check_amount(amount)
		account = await self.lock_account(user_id, currency)
		return await self._append(
			account, tx_type, amount, related_id, related_type,
			description or f"Added {amount} {currency.value}", operator_id
		)

	async def apply_debit(
		self,
		user_id: str,
		currency: CurrencyKind,
		amount: int,
		related_id: int | None = None,
		related_type: str | None = None,
		description: str | None = None,
		operator_id: str | None = None,
		tx_type: TransactionType = TransactionType.CONSUME,
	) -> LedgerTransaction:
		amount = _check_amount(amount)
		account = await self.lock_account(user_id, currency)
		if account.balance < amount:
			raise InsufficientBalance(
				f"Insufficient {currency.value}: balance {account.balance}, required {amount}",
				balance=account.balance,
			)
		return await self._append(
			account, tx_type, -amount, related_id, related_type,
			description or f"Spent {amount} {currency.value}", operator_id
		)

	async def apply_adjust(
		self,
		user_id: str,
		currency: CurrencyKind,
		amount: int,
		operator_id: str | None,
		description: str | None = None,
		related_id: int | None = None,
		related_type: str | None = None,
	) -> LedgerTransaction:
		if isinstance(amount, bool) or not isinstance(amount, int) or amount == 0:
			raise InvalidAmount(f"Adjustment must be a non-zero integer, got {amount!r}")
		account = await self.lock_account(user_id, currency)
		if account.balance + amount < 0:
			raise NegativeResultingBalance(balance=account.balance)
		sign = "+" if amount > 0 else ""
		return await self._append(
			account, TransactionType.ADMIN_ADJUST, amount, related_id, related_type,
			description or f"Adjusted {sign}{amount} {currency.value}", operator_id
		)

	# ************** operations

	async def _read_balance(self, user_id: str, currency: CurrencyKind) -> BalanceResponse:
		async def op():
			account = await self.lock_account(user_id, currency)
			return BalanceResponse(
				user_id=user_id,
				currency=currency,
				balance=account.balance,
				total_in=account.total_in,
				total_out=account.total_out,
			)

		return await run_atomic(self.session, op)

	async def get_balance(self, user_id: str, currency: CurrencyKind) -> BalanceResponse:
		"""Balance snapshot: Redis first, then the database (account created if new)."""
		cached = await cache_get_balance(user_id, currency.value)
		if cached:
			return BalanceResponse(user_id=user_id, currency=currency, **cached)

		version = await cache_balance_version(user_id, currency.value)
		snapshot = await self._read_balance(user_id, currency)
		await cache_set_balance(
			user_id, currency.value,
			snapshot.model_dump(include={"balance", "total_in", "total_out"}),
			version,
		)
		return snapshot

	async def check_balance(
		self, user_id: str, currency: CurrencyKind, required: int
	) -> BalanceCheckResponse:
		# always the locked database row
		snapshot = await self._read_balance(user_id, currency)
		sufficient = snapshot.balance >= required
		return BalanceCheckResponse(
			user_id=user_id,
			currency=currency,
			sufficient=sufficient,
			balance=snapshot.balance,
			required=required,
			shortage=0 if sufficient else required - snapshot.balance,
		)

	async def _current_balance(self, user_id: str, currency: CurrencyKind) -> int:
		"""Balance for a failure raised before the account row was read; 0 when unreadable."""
		async def op():
			return await self.session.scalar(
				select(Account.balance).where(
					Account.user_id == user_id, Account.currency == currency
				)
			)

		try:
			return await run_atomic(self.session, op) or 0
		except (LedgerError, SQLAlchemyError):
			logger.exception(f"Balance read failed for {user_id}:{currency.value}")
			return 0

	async def _mutate(self, user_id: str, currency: CurrencyKind, apply, message: str):
		async def op():
			tx = await apply()
			return LedgerOperationResponse(
				success=True,
				message=message.format(amount=abs(tx.amount)),
				balance=tx.balance_after,
				transaction_id=tx.id,
			)

		errors = []

		def on_failure(exc):
			errors.append(exc)
			return LedgerOperationResponse.failure(exc, balance=exc.context.get("balance", 0))

		result = await run_operation(self.session, op, on_failure, logger)
		if result.success:
			await cache_delete_balance(user_id, currency.value)
		elif "balance" not in errors[0].context:
			result.balance = await self._current_balance(user_id, currency)
		return result

	async def credit(
		self,
		user_id: str,
		currency: CurrencyKind,
		amount: int,
		related_id: int | None = None,
		related_type: str | None = None,
		description: str | None = None,
		operator_id: str | None = None,
		tx_type: TransactionType = TransactionType.RECHARGE,
	) -> LedgerOperationResponse:
		return await self._mutate(
			user_id, currency,
			lambda: self.apply_credit(
				user_id, currency, amount, related_id, related_type,
				description, operator_id, tx_type
			),
			"Added {amount} " + currency.value,
		)

	async def debit(
		self,
		user_id: str,
		currency: CurrencyKind,
		amount: int,
		related_id: int | None = None,
		related_type: str | None = None,
		description: str | None = None,
		operator_id: str | None = None,
		tx_type: TransactionType = TransactionType.CONSUME,
	) -> LedgerOperationResponse:
		return await self._mutate(
			user_id, currency,
			lambda: self.apply_debit(
				user_id, currency, amount, related_id, related_type,
				description, operator_id, tx_type
			),
			"Spent {amount} " + currency.value,
		)

	async def adjust(
		self,
		user_id: str,
		currency: CurrencyKind,
		amount: int,
		operator_id: str | None,
		description: str | None = None,
		related_id: int | None = None,
		related_type: str | None = None,
	) -> LedgerOperationResponse:
		"""Administrative override: the AdminLog row commits with the movement."""
		sign = "+" if isinstance(amount, int) and amount > 0 else "-"

		async def apply():
			tx = await self.apply_adjust(
				user_id, currency, amount, operator_id, description,
				related_id, related_type
			)
			await write_admin_log(
				self.session,
				AdminOperationType.ADJUST_BALANCE,
				entity="Account",
				entity_id=f"{user_id}:{currency.value}",
				changes={
					"success": True,
					"amount": tx.amount,
					"balance_before": tx.balance_before,
					"balance_after": tx.balance_after,
					"transaction_id": tx.id,
					"description": tx.description,
				},
				operator_id=operator_id,
			)
			return tx

		return await self._mutate(
			user_id, currency, apply,
			"Adjusted " + sign + "{amount} " + currency.value,
		)

	async def list_transactions(
		self,
		user_id: str,
		currency: CurrencyKind | None = None,
		limit: int = 20,
		offset: int = 0,
	) -> TransactionPaginatedList:
		filters = [LedgerTransaction.user_id == user_id]
		if currency is not None:
			filters.append(LedgerTransaction.currency == currency)

		async def op():
			total = await self.session.scalar(
				select(func.count()).select_from(LedgerTransaction).where(*filters)
			)
			result = await self.session.execute(
				select(LedgerTransaction)
				.where(*filters)
				.order_by(LedgerTransaction.id.desc())
				.limit(limit)
				.offset(offset)
			)
			return TransactionPaginatedList(
				total=total or 0,
				limit=limit,
				offset=offset,
				transactions=[serialize_transaction(tx) for tx in result.scalars().all()],
			)

		return await run_atomic(self.session, op)
