from datetime import timedelta

import pytest
from sqlalchemy import select, update

from rewards_ledger.core.database import utc_now
from rewards_ledger.core.exceptions import ErrorCode, InternalError
from rewards_ledger.models import (
	CurrencyKind, ReferralCampaign, ReferralCode, ReferralRelation,
	RelationStatus, RewardRecord, RewardType
)
from rewards_ledger.schemas.referral import CampaignConfig
from rewards_ledger.utils.campaign import StaticCampaignProvider, default_campaign
from rewards_ledger.utils.service_ledger import LedgerService
from rewards_ledger.utils.service_referral import (
	CODE_ALPHABET, CODE_LENGTH, ReferralService, decayed_reward
)

TASK = "verified_email"


def make_service(session, **campaign_fields) -> ReferralService:
	campaign = default_campaign().model_copy(update=campaign_fields)
	return ReferralService(session, campaign_provider=StaticCampaignProvider(campaign))


async def invite(service: ReferralService, inviter_id: str, invitee_id: str):
	code = (await service.get_or_create_referral_code(inviter_id)).code
	result = await service.create_referral_relation(invitee_id, code)
	assert result.success, result.message
	return code


async def build_chain(service: ReferralService, *users: str):
	for inviter_id, invitee_id in zip(users, users[1:]):
		await invite(service, inviter_id, invitee_id)


async def credits_of(session, user_id: str) -> int:
	return (await LedgerService(session).get_balance(user_id, CurrencyKind.CREDITS)).balance


def test_decay_table():
	assert decayed_reward(10, 0) == 10
	assert decayed_reward(10, 1) == 5
	assert decayed_reward(7, 1) == 3
	assert decayed_reward(10, 2) == 0
	assert decayed_reward(10, 5) == 0


@pytest.mark.asyncio
async def test_referral_code_is_created_once(session):
	service = make_service(session)

	first = await service.get_or_create_referral_code("user_a")
	second = await service.get_or_create_referral_code("user_a")

	assert first.success
	assert first.code == second.code
	assert len(first.code) == CODE_LENGTH
	assert set(first.code) <= set(CODE_ALPHABET)


@pytest.mark.asyncio
async def test_validate_referral_code(session):
	service = make_service(session)
	code = (await service.get_or_create_referral_code("user_a")).code

	valid = await service.validate_referral_code(code.lower())
	assert valid.valid
	assert valid.user_id == "user_a"

	assert not (await service.validate_referral_code("NOPE2345")).valid


@pytest.mark.asyncio
async def test_create_relation_uses_campaign_rewards(session, fetch):
	service = make_service(session, inviter_reward=12, invitee_reward=6)
	await invite(service, "user_a", "user_b")

	relations = await fetch(select(ReferralRelation))
	assert len(relations) == 1
	relation = relations[0]
	assert (relation.inviter_id, relation.invitee_id) == ("user_a", "user_b")
	assert relation.status == RelationStatus.PENDING
	assert (relation.inviter_reward_amount, relation.invitee_reward_amount) == (12, 6)

	codes = await fetch(select(ReferralCode).where(ReferralCode.user_id == "user_a"))
	assert codes[0].total_invites == 1
	assert codes[0].successful_invites == 0


@pytest.mark.asyncio
async def test_unknown_code_is_rejected(session):
	service = make_service(session)

	result = await service.create_referral_relation("user_b", "ZZZZZZZZ")

	assert not result.success
	assert result.error == ErrorCode.REFERRAL_CODE_NOT_FOUND.value


@pytest.mark.asyncio
async def test_own_code_and_second_inviter_are_rejected(session):
	service = make_service(session)
	code_a = await invite(service, "user_a", "user_b")
	code_c = (await service.get_or_create_referral_code("user_c")).code

	own = await service.create_referral_relation("user_a", code_a)
	assert own.error == ErrorCode.DUPLICATE_REFERRAL.value

	again = await service.create_referral_relation("user_b", code_c)
	assert again.error == ErrorCode.DUPLICATE_REFERRAL.value


@pytest.mark.asyncio
async def test_relation_cycle_is_rejected(session, fetch):
	service = make_service(session)
	await build_chain(service, "user_a", "user_b", "user_c")
	code_c = (await service.get_or_create_referral_code("user_c")).code

	result = await service.create_referral_relation("user_a", code_c)

	assert not result.success
	assert result.error == ErrorCode.DUPLICATE_REFERRAL.value
	assert len(await fetch(select(ReferralRelation))) == 2


@pytest.mark.asyncio
async def test_invite_limit(session):
	service = make_service(session, max_invites_per_user=2)
	code = await invite(service, "user_a", "user_b")
	await service.create_referral_relation("user_c", code)

	result = await service.create_referral_relation("user_d", code)

	assert not result.success
	assert result.error == ErrorCode.INVITE_LIMIT_REACHED.value


@pytest.mark.asyncio
async def test_direct_invite_pays_both_sides(session, fetch):
	service = make_service(session)
	await invite(service, "user_a", "user_b")

	result = await service.complete_referral_task("user_b", TASK)

	assert result.success
	assert (result.inviter_reward, result.invitee_reward) == (10, 5)
	assert result.upline_rewards == []
	assert await credits_of(session, "user_a") == 10
	assert await credits_of(session, "user_b") == 5

	relation = (await fetch(select(ReferralRelation)))[0]
	assert relation.status == RelationStatus.COMPLETED
	assert relation.inviter_rewarded and relation.invitee_rewarded
	assert relation.completed_at is not None

	code = (await fetch(select(ReferralCode).where(ReferralCode.user_id == "user_a")))[0]
	assert code.successful_invites == 1
	assert code.total_rewards_issued == 10


@pytest.mark.asyncio
async def test_rewards_decay_along_the_chain(session, fetch):
	service = make_service(session)
	await build_chain(service, "user_a", "user_b", "user_c", "user_d")

	result = await service.complete_referral_task("user_d", TASK)

	assert result.success
	assert result.inviter_reward == 10
	assert result.invitee_reward == 5
	assert [(r.user_id, r.level, r.amount) for r in result.upline_rewards] == [("user_b", 1, 5)]

	assert await credits_of(session, "user_c") == 10
	assert await credits_of(session, "user_b") == 5
	assert await credits_of(session, "user_a") == 0
	assert await credits_of(session, "user_d") == 5

	records = await fetch(select(RewardRecord).order_by(RewardRecord.id))
	assert [(r.user_id, r.reward_type, r.reward_amount) for r in records] == [
		("user_c", RewardType.INVITER, 10),
		("user_b", RewardType.UPLINE, 5),
		("user_d", RewardType.INVITEE, 5),
	]

	code_b = (await fetch(select(ReferralCode).where(ReferralCode.user_id == "user_b")))[0]
	assert code_b.successful_invites == 0
	assert code_b.total_rewards_issued == 5


@pytest.mark.asyncio
async def test_completion_is_paid_once(session):
	service = make_service(session)
	await invite(service, "user_a", "user_b")
	await service.complete_referral_task("user_b", TASK)

	again = await service.complete_referral_task("user_b", TASK)

	assert not again.success
	assert again.error == ErrorCode.RELATION_NOT_FOUND.value
	assert (again.inviter_reward, again.invitee_reward) == (0, 0)
	assert await credits_of(session, "user_a") == 10
	assert await credits_of(session, "user_b") == 5


@pytest.mark.asyncio
async def test_too_deep_chain_gets_no_rewards(session, fetch):
	service = make_service(session)
	await build_chain(service, "user_a", "user_b", "user_c", "user_d", "user_e")

	result = await service.complete_referral_task("user_e", TASK)

	assert result.success
	assert (result.inviter_reward, result.invitee_reward) == (0, 0)
	assert await credits_of(session, "user_d") == 0
	assert await credits_of(session, "user_e") == 0

	relation = (await fetch(select(ReferralRelation).where(ReferralRelation.invitee_id == "user_e")))[0]
	assert relation.status == RelationStatus.COMPLETED
	assert (relation.inviter_reward_amount, relation.invitee_reward_amount) == (0, 0)


@pytest.mark.asyncio
async def test_wrong_task_type_keeps_relation_pending(session, fetch):
	service = make_service(session)
	await invite(service, "user_a", "user_b")

	result = await service.complete_referral_task("user_b", "first_comic")

	assert not result.success
	assert result.error == ErrorCode.CAMPAIGN_MISMATCH.value
	relation = (await fetch(select(ReferralRelation)))[0]
	assert relation.status == RelationStatus.PENDING
	assert await credits_of(session, "user_a") == 0


@pytest.mark.asyncio
async def test_no_relation(session):
	service = make_service(session)

	result = await service.complete_referral_task("stranger", TASK)

	assert result.error == ErrorCode.RELATION_NOT_FOUND.value


@pytest.mark.asyncio
async def test_failed_payout_is_retried_without_double_pay(session, fetch, monkeypatch):
	service = make_service(session)
	await invite(service, "user_a", "user_b")

	apply_credit = service.ledger.apply_credit
	failures = []

	async def flaky_apply_credit(user_id, *args, **kwargs):
		if user_id == "user_b" and not failures:
			failures.append(user_id)
			raise InternalError("ledger unavailable")
		return await apply_credit(user_id, *args, **kwargs)

	monkeypatch.setattr(service.ledger, "apply_credit", flaky_apply_credit)

	first = await service.complete_referral_task("user_b", TASK)
	assert not first.success
	assert first.inviter_reward == 10
	assert first.invitee_reward == 0
	relation = (await fetch(select(ReferralRelation)))[0]
	assert relation.status == RelationStatus.PENDING
	assert relation.inviter_rewarded and not relation.invitee_rewarded

	second = await service.complete_referral_task("user_b", TASK)
	assert second.success
	assert second.inviter_reward == 0
	assert second.invitee_reward == 5

	assert await credits_of(session, "user_a") == 10
	assert await credits_of(session, "user_b") == 5
	relation = (await fetch(select(ReferralRelation)))[0]
	assert relation.status == RelationStatus.COMPLETED
	assert len(await fetch(select(RewardRecord))) == 2


@pytest.mark.asyncio
async def test_stale_relation_expires_on_completion(session, session_factory, fetch):
	service = make_service(session)
	await invite(service, "user_a", "user_b")
	async with session_factory() as s:
		await s.execute(
			update(ReferralRelation).values(created_at=utc_now() - timedelta(days=31))
		)
		await s.commit()

	result = await service.complete_referral_task("user_b", TASK)

	assert not result.success
	assert result.error == ErrorCode.RELATION_NOT_FOUND.value
	assert "expired" in result.message
	relation = (await fetch(select(ReferralRelation)))[0]
	assert relation.status == RelationStatus.EXPIRED
	assert await credits_of(session, "user_a") == 0


@pytest.mark.asyncio
async def test_expire_stale_relations_sweep(session, session_factory, fetch):
	service = make_service(session)
	await build_chain(service, "user_a", "user_b", "user_c")
	async with session_factory() as s:
		await s.execute(
			update(ReferralRelation)
			.where(ReferralRelation.invitee_id == "user_b")
			.values(created_at=utc_now() - timedelta(days=40))
		)
		await s.commit()

	assert await service.expire_stale_relations(operator_id="admin_1") == 1
	assert await service.expire_stale_relations() == 0

	statuses = {
		r.invitee_id: r.status for r in await fetch(select(ReferralRelation))
	}
	assert statuses == {"user_b": RelationStatus.EXPIRED, "user_c": RelationStatus.PENDING}


@pytest.mark.asyncio
async def test_referral_stats(session):
	service = make_service(session)
	await invite(service, "user_a", "user_b")
	await invite(service, "user_a", "user_c")
	await service.complete_referral_task("user_b", TASK)

	stats = await service.get_referral_stats("user_a")

	assert stats.total_invites == 2
	assert stats.successful_invites == 1
	assert stats.total_rewards_issued == 10
	assert {i.invitee_id: i.status for i in stats.invitees} == {
		"user_b": "completed", "user_c": "pending"
	}
	assert (await service.get_referral_stats("nobody")).referral_code is None


@pytest.mark.asyncio
async def test_active_campaign_is_read_from_database(session, session_factory, fetch):
	async with session_factory() as s:
		s.add(ReferralCampaign(
			name="Spring",
			inviter_reward=20,
			invitee_reward=8,
			requirement_type="register",
			is_active=True,
			start_date=utc_now() - timedelta(days=1),
			end_date=utc_now() + timedelta(days=1),
		))
		await s.commit()
	service = ReferralService(session)
	await invite(service, "user_a", "user_b")

	mismatch = await service.complete_referral_task("user_b", TASK)
	assert mismatch.error == ErrorCode.CAMPAIGN_MISMATCH.value

	result = await service.complete_referral_task("user_b", "register")
	assert (result.inviter_reward, result.invitee_reward) == (20, 8)


def test_campaign_config_from_defaults():
	campaign = default_campaign()
	assert isinstance(campaign, CampaignConfig)
	assert (campaign.inviter_reward, campaign.invitee_reward) == (10, 5)
	assert campaign.requirement_type == TASK
	assert campaign.max_invites_per_user == 3
