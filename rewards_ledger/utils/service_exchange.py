import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rewards_ledger.core.config import config
from rewards_ledger.core.exceptions import (
	InvalidAmount, InsufficientBalance, InsufficientPoints
)
from rewards_ledger.models import (
	CurrencyKind, ExchangeHistory, TransactionType
)
from rewards_ledger.schemas.points import (
	ExchangeResponse, ExchangeHistoryDetail, ExchangeHistoryList
)
from rewards_ledger.utils.common import run_atomic, run_operation, as_utc
from rewards_ledger.utils.logging import get_extra_data_log
from rewards_ledger.utils.redis_cache import cache_delete_balance
from rewards_ledger.utils.service_ledger import LedgerService

logger = logging.getLogger("[POINTS]")


class ExchangeService:
	def __init__(self, session: AsyncSession, ledger: LedgerService | None = None):
		self.session = session
		self.ledger = ledger or LedgerService(session)

	async def exchange_points_for_credits(
		self, user_id: str, credits: int, rate: int | None = None
	) -> ExchangeResponse:
		"""Buys `credits` for `credits * rate` points: both legs commit together or not at all."""
		rate = config.EXCHANGE_RATE if rate is None else rate

		async def op():
			for value, name in ((credits, "Credits"), (rate, "Exchange rate")):
				if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
					raise InvalidAmount(f"{name} must be a positive integer, got {value!r}")
			points_needed = credits * rate

			history = ExchangeHistory(
				user_id=user_id,
				points_spent=points_needed,
				credits_received=credits,
				exchange_rate=rate,
			)
			self.session.add(history)
			await self.session.flush()

			try:
				points_tx = await self.ledger.apply_debit(
					user_id,
					CurrencyKind.POINTS,
					points_needed,
					related_id=history.id,
					related_type="exchange_credits",
					description=f"Exchanged {points_needed} points for {credits} credits",
				)
			except InsufficientBalance as exc:
				raise InsufficientPoints(
					f"Insufficient points: need {points_needed}, "
					f"balance {exc.context.get('balance', 0)}",
					balance=exc.context.get("balance", 0),
				) from exc

			credits_tx = await self.ledger.apply_credit(
				user_id,
				CurrencyKind.CREDITS,
				credits,
				related_id=history.id,
				related_type="point_exchange",
				description=f"Received {credits} credits for {points_needed} points",
				tx_type=TransactionType.RECHARGE,
			)

			logger.info("Exchanged points for credits:", extra=get_extra_data_log(history))
			return ExchangeResponse(
				success=True,
				message=f"Exchanged {points_needed} points for {credits} credits",
				points_spent=points_needed,
				credits_received=credits,
				point_balance=points_tx.balance_after,
				credit_balance=credits_tx.balance_after,
			)

		result = await run_operation(self.session, op, ExchangeResponse.failure, logger)
		if result.success:
			await cache_delete_balance(user_id, CurrencyKind.POINTS.value)
			await cache_delete_balance(user_id, CurrencyKind.CREDITS.value)
		return result

	async def get_exchange_history(self, user_id: str, limit: int = 20) -> ExchangeHistoryList:
		async def op():
			result = await self.session.execute(
				select(ExchangeHistory)
				.where(ExchangeHistory.user_id == user_id)
				.order_by(ExchangeHistory.created_at.desc(), ExchangeHistory.id.desc())
				.limit(limit)
			)
			return ExchangeHistoryList(history=[
				ExchangeHistoryDetail(
					id=row.id,
					points_spent=row.points_spent,
					credits_received=row.credits_received,
					exchange_rate=row.exchange_rate,
					created_at=as_utc(row.created_at),
				)
				for row in result.scalars().all()
			])

		return await run_atomic(self.session, op)
