import logging
import math
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from fractions import Fraction

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from rewards_ledger.core.config import config
from rewards_ledger.core.database import utc_now
from rewards_ledger.core.exceptions import (
	LedgerError, ErrorCode, InternalError, ReferralCodeNotFound,
	DuplicateReferral, InviteLimitReached, RelationNotFound, CampaignMismatch
)
from rewards_ledger.models import (
	CurrencyKind, TransactionType, ReferralCode, ReferralRelation,
	RewardRecord, RelationStatus, RewardType, RewardStatus, AdminOperationType
)
from rewards_ledger.schemas.referral import (
	ReferralCodeResponse, ReferralCodeValidation, ReferralRelationResponse,
	ReferralTaskResponse, ReferralStatsResponse, UplineReward
)
from rewards_ledger.schemas.serializers import serialize_invitee
from rewards_ledger.utils.campaign import CampaignProvider, DatabaseCampaignProvider
from rewards_ledger.utils.common import (
	run_atomic, run_operation, dialect_insert, for_update, as_utc, normalize_code
)
from rewards_ledger.utils.invite_level import InviteLevelResolver, MAX_INVITE_LEVEL
from rewards_ledger.utils.logging import get_extra_data_log, write_admin_log
from rewards_ledger.utils.redis_cache import cache_delete_balance
from rewards_ledger.utils.service_ledger import LedgerService

logger = logging.getLogger("[REFERRAL]")

# no 0/O, 1/I: codes are typed by hand
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CODE_LENGTH = 8
MAX_CODE_ATTEMPTS = 10

# share of the nominal inviter reward, keyed by distance from the invitee's
# direct inviter (0 = direct inviter, 1 = the one who invited them, ...)
REWARD_DECAY = {
	0: Fraction(1),
	1: Fraction(1, 2),
	2: Fraction(0),
}
MAX_REWARD_DISTANCE = max(REWARD_DECAY)


def decayed_reward(nominal: int, distance: int) -> int:
	return math.floor(nominal * REWARD_DECAY.get(distance, Fraction(0)))


def generate_referral_code(length: int = CODE_LENGTH) -> str:
	return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


@dataclass
class _Payout:
	user_id: str
	reward_type: RewardType
	level: int
	amount: int


@dataclass
class _Plan:
	relation_id: int
	inviter_id: str
	invitee_id: str
	level: int = 0
	inviter_amount: int = 0
	invitee_amount: int = 0
	payouts: list[_Payout] = field(default_factory=list)
	cutoff: bool = False
	expired: bool = False


class ReferralService:
	"""
	Referral relation lifecycle: pending -> completed | expired.

	Completing a relation pays the invitee, the direct inviter and (decayed)
	the inviter's own inviters. Every party is settled in its own
	transaction with the relation row locked, so a retry after a partial
	failure only pays whoever is still unpaid.
	"""

	def __init__(
		self,
		session: AsyncSession,
		campaign_provider: CampaignProvider | None = None,
		ledger: LedgerService | None = None,
		resolver: InviteLevelResolver | None = None,
	):
		self.session = session
		self.campaign_provider = campaign_provider or DatabaseCampaignProvider()
		self.ledger = ledger or LedgerService(session)
		self.resolver = resolver or InviteLevelResolver(session)

	# ************** referral codes

	async def ensure_code(self, user_id: str) -> ReferralCode:
		"""Returns the user's code, creating it on first need. Needs a transaction."""
		query = select(ReferralCode).where(ReferralCode.user_id == user_id)
		existing = await self.session.scalar(query)
		if existing is not None:
			return existing

		for _ in range(MAX_CODE_ATTEMPTS):
			now = utc_now()
			# a clash on user_id (concurrent creation) or on code both end up here
			stmt = dialect_insert(self.session, ReferralCode).values(
				user_id=user_id,
				code=generate_referral_code(),
				total_invites=0,
				successful_invites=0,
				total_rewards_issued=0,
				created_at=now,
				updated_at=now,
			).on_conflict_do_nothing()
			await self.session.execute(stmt)
			created = await self.session.scalar(query)
			if created is not None:
				return created
		raise InternalError("Could not generate a unique referral code")

	async def get_or_create_referral_code(self, user_id: str) -> ReferralCodeResponse:
		async def op():
			referral_code = await self.ensure_code(user_id)
			return ReferralCodeResponse(
				success=True, message="Referral code ready", code=referral_code.code
			)

		return await run_operation(self.session, op, ReferralCodeResponse.failure, logger)

	async def validate_referral_code(self, code: str) -> ReferralCodeValidation:
		code = normalize_code(code)

		async def op():
			owner = await self.session.scalar(
				select(ReferralCode.user_id).where(ReferralCode.code == code)
			)
			if owner is None:
				return ReferralCodeValidation(valid=False, message="Referral code does not exist")
			return ReferralCodeValidation(valid=True, user_id=owner, message="Referral code is valid")

		return await run_atomic(self.session, op)

	# ************** relations

	async def create_referral_relation(
		self, invitee_id: str, code: str
	) -> ReferralRelationResponse:
		code = normalize_code(code)

		async def op():
			if not code:
				raise ReferralCodeNotFound()
			result = await self.session.execute(
				for_update(select(ReferralCode).where(ReferralCode.code == code))
			)
			referral_code: ReferralCode | None = result.scalar_one_or_none()
			if referral_code is None:
				raise ReferralCodeNotFound(f"Referral code '{code}' does not exist")

			inviter_id = referral_code.user_id
			if inviter_id == invitee_id:
				raise DuplicateReferral("Can not use your own referral code")

			already = await self.session.scalar(
				select(ReferralRelation.id).where(ReferralRelation.invitee_id == invitee_id)
			)
			if already is not None:
				raise DuplicateReferral("User was already referred")

			upline = await self.resolver.get_upline(
				inviter_id, max_hops=config.REFERRAL_CYCLE_SCAN_HOPS
			)
			if invitee_id in upline:
				raise DuplicateReferral("Referral code belongs to one of your invitees")

			campaign = await self.campaign_provider.get_active_campaign(self.session)
			limit = campaign.max_invites_per_user
			if limit is not None and referral_code.total_invites >= limit:
				raise InviteLimitReached()

			now = utc_now()
			relation = ReferralRelation(
				inviter_id=inviter_id,
				invitee_id=invitee_id,
				referral_code=code,
				status=RelationStatus.PENDING,
				inviter_reward_amount=campaign.inviter_reward,
				invitee_reward_amount=campaign.invitee_reward,
				inviter_rewarded=False,
				invitee_rewarded=False,
				created_at=now,
				updated_at=now,
			)
			self.session.add(relation)
			referral_code.total_invites += 1
			referral_code.updated_at = now
			try:
				await self.session.flush()
			except IntegrityError as exc:
				# lost the race against another redemption by the same invitee
				raise DuplicateReferral("User was already referred") from exc

			logger.info("Created referral relation:", extra=get_extra_data_log(relation))
			return ReferralRelationResponse(success=True, message="Referral relation created")

		return await run_operation(
			self.session, op, ReferralRelationResponse.failure, logger
		)

	def _is_stale(self, relation: ReferralRelation, now: datetime) -> bool:
		ttl = timedelta(days=config.REFERRAL_PENDING_TTL_DAYS)
		return as_utc(relation.created_at) < now - ttl

	async def _lock_relation(self, relation_id: int) -> ReferralRelation:
		result = await self.session.execute(
			for_update(select(ReferralRelation).where(ReferralRelation.id == relation_id))
		)
		return result.scalar_one()

	async def _prepare(self, invitee_id: str, task_type: str, now: datetime) -> _Plan:
		result = await self.session.execute(
			for_update(
				select(ReferralRelation).where(
					ReferralRelation.invitee_id == invitee_id,
					ReferralRelation.status == RelationStatus.PENDING,
				)
			)
		)
		relation: ReferralRelation | None = result.scalar_one_or_none()
		if relation is None:
			raise RelationNotFound()

		plan = _Plan(
			relation_id=relation.id,
			inviter_id=relation.inviter_id,
			invitee_id=relation.invitee_id,
		)

		if self._is_stale(relation, now):
			relation.status = RelationStatus.EXPIRED
			relation.updated_at = now
			logger.info("Referral relation expired:", extra=get_extra_data_log(relation))
			plan.expired = True
			return plan

		campaign = await self.campaign_provider.get_active_campaign(self.session)
		if campaign.requirement_type != task_type:
			raise CampaignMismatch(
				f"Active campaign requires the '{campaign.requirement_type}' task"
			)

		# depth of the inviter: 0 when the inviter is a root user
		plan.level = await self.resolver.get_invite_level(relation.inviter_id)
		if plan.level >= MAX_INVITE_LEVEL:
			relation.status = RelationStatus.COMPLETED
			relation.completed_at = now
			relation.updated_at = now
			relation.inviter_reward_amount = 0
			relation.invitee_reward_amount = 0
			logger.info("Invite chain too deep, no rewards:", extra=get_extra_data_log(relation))
			plan.cutoff = True
			return plan

		nominal = relation.inviter_reward_amount
		plan.inviter_amount = decayed_reward(nominal, 0)
		plan.invitee_amount = relation.invitee_reward_amount

		if plan.inviter_amount > 0:
			plan.payouts.append(
				_Payout(relation.inviter_id, RewardType.INVITER, 0, plan.inviter_amount)
			)
		upline = await self.resolver.get_upline(
			relation.inviter_id, max_hops=MAX_REWARD_DISTANCE
		)
		for distance, ancestor_id in enumerate(upline, start=1):
			amount = decayed_reward(nominal, distance)
			if amount > 0:
				plan.payouts.append(_Payout(ancestor_id, RewardType.UPLINE, distance, amount))
		if plan.invitee_amount > 0:
			plan.payouts.append(
				_Payout(relation.invitee_id, RewardType.INVITEE, 0, plan.invitee_amount)
			)
		return plan

	async def _settle(self, plan: _Plan, payout: _Payout, now: datetime) -> bool:
		"""Pays one party unless already paid. True when credits moved in this call."""
		relation = await self._lock_relation(plan.relation_id)
		if relation.status != RelationStatus.PENDING:
			return False
		if payout.reward_type == RewardType.INVITER and relation.inviter_rewarded:
			return False
		if payout.reward_type == RewardType.INVITEE and relation.invitee_rewarded:
			return False
		issued = await self.session.scalar(
			select(RewardRecord.id).where(
				RewardRecord.relation_id == relation.id,
				RewardRecord.user_id == payout.user_id,
				RewardRecord.reward_type == payout.reward_type,
				RewardRecord.status == RewardStatus.ISSUED,
			)
		)
		if issued is not None:
			return False

		if payout.reward_type == RewardType.INVITEE:
			description = f"Welcome reward {payout.amount} credits"
		else:
			description = (
				f"Referral reward {payout.amount} credits (level {payout.level + 1} invite)"
			)
		await self.ledger.apply_credit(
			payout.user_id,
			CurrencyKind.CREDITS,
			payout.amount,
			related_id=relation.id,
			related_type=f"referral_{payout.reward_type.value}",
			description=description,
			tx_type=TransactionType.GIFT,
		)

		if payout.reward_type == RewardType.INVITER:
			relation.inviter_rewarded = True
		elif payout.reward_type == RewardType.INVITEE:
			relation.invitee_rewarded = True
		relation.updated_at = now

		record = RewardRecord(
			relation_id=relation.id,
			user_id=payout.user_id,
			reward_type=payout.reward_type,
			reward_amount=payout.amount,
			level=payout.level,
			status=RewardStatus.ISSUED,
			issued_at=now,
			created_at=now,
		)
		self.session.add(record)

		if payout.reward_type != RewardType.INVITEE:
			result = await self.session.execute(
				for_update(select(ReferralCode).where(ReferralCode.user_id == payout.user_id))
			)
			referral_code = result.scalar_one_or_none()
			if referral_code is not None:
				if payout.reward_type == RewardType.INVITER:
					referral_code.successful_invites += 1
				referral_code.total_rewards_issued += payout.amount
				referral_code.updated_at = now

		await self.session.flush()
		logger.info("Issued referral reward:", extra=get_extra_data_log(record))
		return True

	async def _finish(self, plan: _Plan, now: datetime) -> bool:
		relation = await self._lock_relation(plan.relation_id)
		if relation.status != RelationStatus.PENDING:
			return False
		relation.status = RelationStatus.COMPLETED
		relation.completed_at = now
		relation.updated_at = now
		relation.inviter_reward_amount = plan.inviter_amount
		relation.invitee_reward_amount = plan.invitee_amount
		logger.info("Completed referral relation:", extra=get_extra_data_log(relation))
		return True

	async def complete_referral_task(
		self, invitee_id: str, task_type: str
	) -> ReferralTaskResponse:
		now = utc_now()

		plan = await run_operation(
			self.session,
			lambda: self._prepare(invitee_id, task_type, now),
			ReferralTaskResponse.failure,
			logger,
		)
		if isinstance(plan, ReferralTaskResponse):
			return plan
		if plan.expired:
			return ReferralTaskResponse.failure(
				RelationNotFound("Referral relation expired before the task was completed")
			)
		if plan.cutoff:
			return ReferralTaskResponse(
				success=True,
				message="Invite chain is too deep, no rewards issued",
			)

		inviter_reward = 0
		invitee_reward = 0
		upline_rewards: list[UplineReward] = []
		failed: list[_Payout] = []

		for payout in plan.payouts:
			try:
				paid = await run_atomic(
					self.session, lambda p=payout: self._settle(plan, p, now)
				)
			except (LedgerError, SQLAlchemyError):
				logger.exception(
					f"Referral reward to {payout.user_id} "
					f"({payout.reward_type.value}) for relation {plan.relation_id} failed"
				)
				failed.append(payout)
				continue
			if not paid:
				continue

			await cache_delete_balance(payout.user_id, CurrencyKind.CREDITS.value)
			if payout.reward_type == RewardType.INVITER:
				inviter_reward = payout.amount
			elif payout.reward_type == RewardType.INVITEE:
				invitee_reward = payout.amount
			else:
				upline_rewards.append(
					UplineReward(user_id=payout.user_id, level=payout.level, amount=payout.amount)
				)

		rewards = dict(
			inviter_reward=inviter_reward,
			invitee_reward=invitee_reward,
			upline_rewards=upline_rewards,
		)
		if failed:
			# relation stays pending: a retry pays only the unpaid parties
			return ReferralTaskResponse(
				success=False,
				message="Some referral rewards could not be issued, please retry",
				error=ErrorCode.INTERNAL_ERROR.value,
				**rewards,
			)

		try:
			completed = await run_atomic(self.session, lambda: self._finish(plan, now))
		except (LedgerError, SQLAlchemyError):
			logger.exception(f"Could not complete referral relation {plan.relation_id}")
			return ReferralTaskResponse.failure(InternalError(), **rewards)

		paid_anything = inviter_reward or invitee_reward or upline_rewards
		if not completed and not paid_anything:
			return ReferralTaskResponse(
				success=True, message="Referral task was already completed", **rewards
			)
		return ReferralTaskResponse(
			success=True,
			message=f"Referral task completed, rewards issued (inviter level {plan.level})",
			**rewards,
		)

	async def expire_stale_relations(
		self, now: datetime | None = None, operator_id: str | None = None
	) -> int:
		"""Moves pending relations older than the TTL to expired (admin-triggered sweep)."""
		now = now or utc_now()
		threshold = now - timedelta(days=config.REFERRAL_PENDING_TTL_DAYS)

		async def op():
			result = await self.session.execute(
				update(ReferralRelation)
				.where(
					ReferralRelation.status == RelationStatus.PENDING,
					ReferralRelation.created_at < threshold,
				)
				.values(status=RelationStatus.EXPIRED, updated_at=now)
				.execution_options(synchronize_session=False)
			)
			expired = result.rowcount or 0
			await write_admin_log(
				self.session,
				AdminOperationType.EXPIRE_REFERRALS,
				entity="ReferralRelation",
				entity_id=None,
				changes={"success": True, "expired": expired, "created_before": threshold.isoformat()},
				operator_id=operator_id,
			)
			return expired

		expired = await run_atomic(self.session, op)
		logger.info(f"Expired {expired} pending referral relations older than {threshold.isoformat()}")
		return expired

	async def get_referral_stats(self, user_id: str) -> ReferralStatsResponse:
		async def op():
			referral_code = await self.session.scalar(
				select(ReferralCode).where(ReferralCode.user_id == user_id)
			)
			if referral_code is None:
				return ReferralStatsResponse()
			result = await self.session.execute(
				select(ReferralRelation)
				.where(ReferralRelation.inviter_id == user_id)
				.order_by(ReferralRelation.created_at.desc(), ReferralRelation.id.desc())
				# bulk expiry bypasses the identity map
				.execution_options(populate_existing=True)
			)
			return ReferralStatsResponse(
				referral_code=referral_code.code,
				total_invites=referral_code.total_invites,
				successful_invites=referral_code.successful_invites,
				total_rewards_issued=referral_code.total_rewards_issued,
				invitees=[serialize_invitee(r) for r in result.scalars().all()],
			)

		return await run_atomic(self.session, op)
