from datetime import datetime
from typing import Protocol

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from rewards_ledger.core.config import config
from rewards_ledger.core.database import utc_now
from rewards_ledger.models import ReferralCampaign
from rewards_ledger.schemas.referral import CampaignConfig


def default_campaign() -> CampaignConfig:
	return CampaignConfig(
		id=None,
		name=config.DEFAULT_CAMPAIGN_NAME,
		inviter_reward=config.DEFAULT_INVITER_REWARD,
		invitee_reward=config.DEFAULT_INVITEE_REWARD,
		requirement_type=config.DEFAULT_REQUIREMENT_TYPE,
		max_invites_per_user=config.DEFAULT_MAX_INVITES_PER_USER,
	)


class CampaignProvider(Protocol):
	async def get_active_campaign(self, session: AsyncSession) -> CampaignConfig:
		...


class StaticCampaignProvider:
	def __init__(self, campaign: CampaignConfig | None = None):
		self.campaign = campaign or default_campaign()

	async def get_active_campaign(self, session: AsyncSession) -> CampaignConfig:
		return self.campaign


class DatabaseCampaignProvider:
	"""Newest active campaign inside its window, or the configured default."""

	async def get_active_campaign(
		self, session: AsyncSession, now: datetime | None = None
	) -> CampaignConfig:
		now = now or utc_now()
		campaign = await session.scalar(
			select(ReferralCampaign)
			.where(
				ReferralCampaign.is_active.is_(True),
				or_(ReferralCampaign.start_date.is_(None), ReferralCampaign.start_date <= now),
				or_(ReferralCampaign.end_date.is_(None), ReferralCampaign.end_date >= now),
			)
			.order_by(ReferralCampaign.created_at.desc(), ReferralCampaign.id.desc())
			.limit(1)
		)
		if campaign is None:
			return default_campaign()
		return CampaignConfig.model_validate(campaign)
