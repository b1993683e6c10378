import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from rewards_ledger.core.database import utc_now
from rewards_ledger.core.exceptions import (
	RedeemCodeNotFound, RedeemCodeUnavailable, AlreadyRedeemed, InternalError
)
from rewards_ledger.models import (
	RedeemCode, RedeemHistory, RedeemCodeStatus, CurrencyKind,
	TransactionType, AdminOperationType
)
from rewards_ledger.schemas.redeem import (
	RedeemResponse, RedeemCodeCreate, RedeemCodeResponse
)
from rewards_ledger.schemas.serializers import serialize_redeem_code
from rewards_ledger.utils.common import (
	run_atomic, run_operation, for_update, as_utc, normalize_code
)
from rewards_ledger.utils.logging import write_admin_log
from rewards_ledger.utils.redis_cache import cache_delete_balance
from rewards_ledger.utils.service_ledger import LedgerService
from rewards_ledger.utils.service_referral import generate_referral_code, MAX_CODE_ATTEMPTS

logger = logging.getLogger("[REDEEM]")


class RedeemService:
	def __init__(self, session: AsyncSession, ledger: LedgerService | None = None):
		self.session = session
		self.ledger = ledger or LedgerService(session)

	async def _lock_code(self, code: str) -> RedeemCode | None:
		result = await self.session.execute(
			for_update(select(RedeemCode).where(RedeemCode.code == code))
		)
		return result.scalar_one_or_none()

	async def _check_usable(self, redeem_code: RedeemCode) -> str | None:
		"""Reason the code can not be redeemed, or None. Stale statuses are fixed on the way."""
		now = utc_now()
		if redeem_code.status != RedeemCodeStatus.ACTIVE:
			return f"Redeem code is {redeem_code.status.value}"
		if redeem_code.expires_at is not None and as_utc(redeem_code.expires_at) <= now:
			redeem_code.status = RedeemCodeStatus.EXPIRED
			redeem_code.updated_at = now
			return "Redeem code has expired"
		if redeem_code.used_count >= redeem_code.max_uses:
			redeem_code.status = RedeemCodeStatus.USED_UP
			redeem_code.updated_at = now
			return "Redeem code has been used up"
		return None

	async def redeem_code(self, user_id: str, code: str) -> RedeemResponse:
		code = normalize_code(code)
		# status fixes (expired / used up) must survive the rejection
		rejection: list[str] = []

		async def op():
			redeem_code = await self._lock_code(code)
			if redeem_code is None:
				raise RedeemCodeNotFound()

			reason = await self._check_usable(redeem_code)
			if reason is not None:
				rejection.append(reason)
				return None

			already = await self.session.scalar(
				select(RedeemHistory.id).where(
					RedeemHistory.code_id == redeem_code.id,
					RedeemHistory.user_id == user_id,
				)
			)
			if already is not None:
				raise AlreadyRedeemed()

			now = utc_now()
			history = RedeemHistory(
				code_id=redeem_code.id,
				user_id=user_id,
				credits=redeem_code.credits,
				status="success",
				message=f"Redeemed {redeem_code.credits} credits",
				redeemed_at=now,
			)
			self.session.add(history)
			try:
				await self.session.flush()
			except IntegrityError as exc:
				raise AlreadyRedeemed() from exc

			tx = await self.ledger.apply_credit(
				user_id,
				CurrencyKind.CREDITS,
				redeem_code.credits,
				related_id=redeem_code.id,
				related_type="redeem_code",
				description=f"Redeem code {redeem_code.code}: {redeem_code.credits} credits",
				tx_type=TransactionType.RECHARGE,
			)

			redeem_code.used_count += 1
			if redeem_code.used_count >= redeem_code.max_uses:
				redeem_code.status = RedeemCodeStatus.USED_UP
			redeem_code.updated_at = now

			logger.info(f"User {user_id} redeemed code {redeem_code.code} (history {history.id})")
			return RedeemResponse(
				success=True,
				message=f"Redeemed {redeem_code.credits} credits",
				credits=redeem_code.credits,
				balance=tx.balance_after,
			)

		result = await run_operation(self.session, op, RedeemResponse.failure, logger)
		if result is None:
			return RedeemResponse.failure(RedeemCodeUnavailable(rejection[0]))
		if result.success:
			await cache_delete_balance(user_id, CurrencyKind.CREDITS.value)
		return result

	async def create_redeem_code(
		self, payload: RedeemCodeCreate, operator_id: str | None = None
	) -> RedeemCodeResponse:
		"""Admin operation. Raises IntegrityError when an explicit code is taken."""

		async def op():
			code = normalize_code(payload.code)
			if not code:
				for _ in range(MAX_CODE_ATTEMPTS):
					candidate = generate_referral_code()
					taken = await self.session.scalar(
						select(RedeemCode.id).where(RedeemCode.code == candidate)
					)
					if taken is None:
						code = candidate
						break
				else:
					raise InternalError("Could not generate a unique redeem code")

			now = utc_now()
			redeem_code = RedeemCode(
				code=code,
				credits=payload.credits,
				max_uses=payload.max_uses,
				used_count=0,
				status=RedeemCodeStatus.ACTIVE,
				expires_at=payload.expires_at,
				created_by=operator_id,
				created_at=now,
				updated_at=now,
			)
			self.session.add(redeem_code)
			await self.session.flush()

			await write_admin_log(
				self.session,
				AdminOperationType.CREATE_REDEEM_CODE,
				entity="RedeemCode",
				entity_id=str(redeem_code.id),
				changes={
					"success": True,
					"code": code,
					"credits": payload.credits,
					"max_uses": payload.max_uses,
					"expires_at": payload.expires_at.isoformat() if payload.expires_at else None,
				},
				operator_id=operator_id,
			)
			return serialize_redeem_code(redeem_code)

		return await run_atomic(self.session, op)
