import logging
from datetime import date, datetime, timedelta, timezone
from typing import Callable
from zoneinfo import ZoneInfo

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from rewards_ledger.core.config import config
from rewards_ledger.core.database import utc_now
from rewards_ledger.core.exceptions import AlreadyCheckedIn
from rewards_ledger.models import (
	CheckIn, CheckInRule, CurrencyKind, TransactionType, AdminOperationType
)
from rewards_ledger.schemas.points import (
	CheckInResponse, CheckInDetail, CheckInStatusResponse,
	CheckInRuleCreate, CheckInRuleUpdate, CheckInRuleResponse, CheckInRuleList
)
from rewards_ledger.utils.common import run_atomic, run_operation
from rewards_ledger.utils.logging import get_extra_data_log, write_admin_log
from rewards_ledger.utils.redis_cache import cache_delete_balance
from rewards_ledger.utils.service_ledger import LedgerService

logger = logging.getLogger("[POINTS]")

# (streak threshold, points), highest threshold first
CHECKIN_TIERS = (
	(30, 100),
	(14, 50),
	(7, 30),
	(3, 20),
)


def points_for_streak(streak: int) -> int:
	for threshold, points in CHECKIN_TIERS:
		if streak >= threshold:
			return points
	return config.CHECKIN_BASE_POINTS


def checkin_timezone():
	if config.CHECKIN_TIMEZONE.upper() == "UTC":
		return timezone.utc
	return ZoneInfo(config.CHECKIN_TIMEZONE)


class CheckInService:
	"""
	Once-a-day points grant; the streak bonus grows with consecutive days
	following CHECKIN_TIERS. Admin managed CheckInRules are published to users
	with the check-in status and never change the payout.
	"""

	def __init__(
		self,
		session: AsyncSession,
		ledger: LedgerService | None = None,
		clock: Callable[[], datetime] = utc_now,
	):
		self.session = session
		self.ledger = ledger or LedgerService(session)
		self.clock = clock

	def today(self) -> date:
		return self.clock().astimezone(checkin_timezone()).date()

	async def _get_check_in(self, user_id: str, day: date) -> CheckIn | None:
		return await self.session.scalar(
			select(CheckIn).where(CheckIn.user_id == user_id, CheckIn.check_in_date == day)
		)

	async def daily_check_in(self, user_id: str) -> CheckInResponse:
		today = self.today()

		async def op():
			if await self._get_check_in(user_id, today) is not None:
				raise AlreadyCheckedIn()

			yesterday = await self._get_check_in(user_id, today - timedelta(days=1))
			streak = yesterday.consecutive_days + 1 if yesterday is not None else 1
			points = points_for_streak(streak)

			check_in = CheckIn(
				user_id=user_id,
				check_in_date=today,
				points=points,
				consecutive_days=streak,
				created_at=utc_now(),
			)
			self.session.add(check_in)
			try:
				await self.session.flush()
			except IntegrityError as exc:
				# concurrent check-in of the same user won
				raise AlreadyCheckedIn() from exc

			tx = await self.ledger.apply_credit(
				user_id,
				CurrencyKind.POINTS,
				points,
				related_id=check_in.id,
				related_type="daily_checkin",
				description=f"Daily check-in, day {streak}: {points} points",
				tx_type=TransactionType.GIFT,
			)

			logger.info("Checked in:", extra=get_extra_data_log(check_in))
			return CheckInResponse(
				success=True,
				message=f"Checked in, {streak} day(s) in a row",
				points=points,
				consecutive_days=streak,
				balance=tx.balance_after,
			)

		result = await run_operation(self.session, op, CheckInResponse.failure, logger)
		if result.success:
			await cache_delete_balance(user_id, CurrencyKind.POINTS.value)
		return result

	async def get_check_in_status(self, user_id: str) -> CheckInStatusResponse:
		today = self.today()

		async def op():
			today_row = await self._get_check_in(user_id, today)
			if today_row is not None:
				streak = today_row.consecutive_days
			else:
				# streak is still alive until the end of today
				yesterday = await self._get_check_in(user_id, today - timedelta(days=1))
				streak = yesterday.consecutive_days if yesterday is not None else 0

			month_days = await self.session.scalar(
				select(func.count()).select_from(CheckIn).where(
					CheckIn.user_id == user_id,
					CheckIn.check_in_date >= today.replace(day=1),
					CheckIn.check_in_date <= today,
				)
			)
			result = await self.session.execute(
				select(CheckIn)
				.where(CheckIn.user_id == user_id)
				.order_by(CheckIn.check_in_date.desc())
				.limit(7)
			)
			rules = await self.session.execute(
				select(CheckInRule)
				.where(CheckInRule.is_active.is_(True))
				.order_by(CheckInRule.consecutive_days, CheckInRule.id)
			)
			return CheckInStatusResponse(
				has_checked_in_today=today_row is not None,
				today_check_in=CheckInDetail.model_validate(today_row) if today_row else None,
				consecutive_days=streak,
				month_check_in_days=month_days or 0,
				recent_check_ins=[
					CheckInDetail.model_validate(row) for row in result.scalars().all()
				],
				rules=[CheckInRuleResponse.model_validate(r) for r in rules.scalars().all()],
			)

		return await run_atomic(self.session, op)

	async def create_rule(
		self, payload: CheckInRuleCreate, operator_id: str | None = None
	) -> CheckInRuleResponse:
		async def op():
			rule = CheckInRule(
				**payload.model_dump(),
				is_active=True,
				created_at=utc_now(),
				updated_at=utc_now(),
			)
			self.session.add(rule)
			await self.session.flush()

			await write_admin_log(
				self.session,
				AdminOperationType.CREATE_CHECKIN_RULE,
				entity="CheckInRule",
				entity_id=str(rule.id),
				changes={"success": True, **payload.model_dump()},
				operator_id=operator_id,
			)
			return CheckInRuleResponse.model_validate(rule)

		return await run_atomic(self.session, op)

	async def list_rules(self, active_only: bool = False) -> CheckInRuleList:
		query = select(CheckInRule).order_by(CheckInRule.consecutive_days, CheckInRule.id)
		if active_only:
			query = query.where(CheckInRule.is_active.is_(True))

		async def op():
			result = await self.session.execute(query)
			return CheckInRuleList(
				rules=[CheckInRuleResponse.model_validate(r) for r in result.scalars().all()]
			)

		return await run_atomic(self.session, op)

	async def get_rule(self, rule_id: int) -> CheckInRuleResponse | None:
		async def op():
			rule = await self.session.get(CheckInRule, rule_id)
			return CheckInRuleResponse.model_validate(rule) if rule is not None else None

		return await run_atomic(self.session, op)

	async def update_rule(
		self,
		rule_id: int,
		payload: CheckInRuleUpdate,
		operator_id: str | None = None,
		operation_type: AdminOperationType = AdminOperationType.UPDATE_CHECKIN_RULE,
	) -> CheckInRuleResponse | None:
		"""Partial update; None when the rule does not exist."""
		changes = {
			field: value
			for field, value in payload.model_dump(exclude_unset=True).items()
			if value is not None or field == "description"
		}

		async def op():
			rule = await self.session.get(
				CheckInRule, rule_id, with_for_update=True, populate_existing=True
			)
			if rule is None:
				return None

			old = {field: getattr(rule, field) for field in changes}
			for field, value in changes.items():
				setattr(rule, field, value)
			rule.updated_at = utc_now()
			await self.session.flush()

			await write_admin_log(
				self.session,
				operation_type,
				entity="CheckInRule",
				entity_id=str(rule.id),
				changes={"success": True, "old": old, "new": changes},
				operator_id=operator_id,
			)
			return CheckInRuleResponse.model_validate(rule)

		return await run_atomic(self.session, op)

	async def deactivate_rule(
		self, rule_id: int, operator_id: str | None = None
	) -> CheckInRuleResponse | None:
		return await self.update_rule(
			rule_id,
			CheckInRuleUpdate(is_active=False),
			operator_id=operator_id,
			operation_type=AdminOperationType.DEACTIVATE_CHECKIN_RULE,
		)
